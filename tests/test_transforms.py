"""
Unit tests for the observation transforms.

Tests cover:
- Round trip of every transform kind over a range of powers
- Scalar handling and special cases
- Bounded parameter mapping used by the residual optimizer
"""

import numpy as np
import pytest

from saem.core.utils.transforms import (
    BOX_COX,
    LOG_NORMAL,
    NO_TRANSFORM,
    TRANSFORM_NAMES,
    YEO_JOHNSON,
    from_bounded,
    inverse_transform,
    power_transform,
    to_bounded,
    transform_endpoints,
)

LAMBDAS = [-2.5, -1.0, 0.0, 0.5, 1.0, 2.0, 2.9]


class TestRoundTrip:
    """Transforms followed by their inverse return the input."""

    @pytest.mark.parametrize("kind", sorted(TRANSFORM_NAMES.values()))
    @pytest.mark.parametrize("lambda_", LAMBDAS)
    def test_inverse_recovers_values(self, kind, lambda_):
        """Test the round trip for values inside (low, hi)."""
        low, hi = 0.0, 10.0
        y = np.linspace(0.5, 9.5, 19)
        yt = power_transform(y, lambda_, kind, low, hi)
        np.testing.assert_allclose(inverse_transform(yt, lambda_, kind, low, hi), y, rtol=1e-6)

    @pytest.mark.parametrize("lambda_", LAMBDAS)
    def test_yeo_johnson_negative_values(self, lambda_):
        """Test that Yeo-Johnson handles both signs."""
        y = np.array([-3.0, -0.5, 0.0, 0.5, 3.0])
        yt = power_transform(y, lambda_, YEO_JOHNSON)
        np.testing.assert_allclose(inverse_transform(yt, lambda_, YEO_JOHNSON), y, atol=1e-8)


class TestPowerTransform:
    """Tests for individual transform kinds."""

    def test_identity(self):
        """Test that 'none' leaves values untouched."""
        y = np.array([-1.0, 0.0, 2.5])
        np.testing.assert_array_equal(power_transform(y, 0.3, NO_TRANSFORM), y)

    def test_box_cox_zero_is_log(self):
        """Test that Box-Cox with lambda 0 is the logarithm."""
        y = np.array([0.5, 1.0, 4.0])
        np.testing.assert_allclose(power_transform(y, 0.0, BOX_COX), np.log(y))

    def test_lnorm(self):
        """Test the log-normal transform."""
        assert power_transform(np.e, 1.0, LOG_NORMAL) == pytest.approx(1.0)

    def test_scalar_in_scalar_out(self):
        """Test that scalars come back as floats."""
        out = power_transform(2.0, 0.5, BOX_COX)
        assert isinstance(out, float)
        assert out == pytest.approx((np.sqrt(2.0) - 1.0) / 0.5)

    def test_unknown_kind(self):
        """Test that an unknown transform code raises."""
        with pytest.raises(ValueError, match="Unknown transform"):
            power_transform(1.0, 1.0, 42)
        with pytest.raises(ValueError, match="Unknown transform"):
            inverse_transform(1.0, 1.0, 42)

    def test_transform_endpoints(self):
        """Test that each endpoint uses its own transform."""
        transform_dict = {
            "lambda": np.array([1.0, 0.0]),
            "yj": np.array([NO_TRANSFORM, BOX_COX]),
            "low": np.array([0.0, 0.0]),
            "hi": np.array([1.0, 1.0]),
        }
        x = np.array([2.0, 2.0, 3.0])
        endpoint = np.array([0, 1, 1])
        np.testing.assert_allclose(
            transform_endpoints(x, endpoint, transform_dict), [2.0, np.log(2.0), np.log(3.0)]
        )


class TestBoundedMapping:
    """Tests for the scaled logistic used for power and lambda parameters."""

    def test_round_trip(self):
        """Test that values inside the bound are recovered."""
        for value in (-2.5, 0.0, 1.3):
            assert to_bounded(from_bounded(value, 3.0), 3.0) == pytest.approx(value)

    def test_boundary_is_clamped(self):
        """Test that values on the boundary map to a finite number."""
        x = from_bounded(3.0, 3.0)
        assert np.isfinite(x)
        assert to_bounded(x, 3.0) == pytest.approx(0.99 * 3.0)

    def test_range(self):
        """Test that any real number maps inside the bound."""
        for x in (-50.0, -1.0, 0.0, 1.0, 50.0):
            assert -10.0 <= to_bounded(x, 10.0) <= 10.0
