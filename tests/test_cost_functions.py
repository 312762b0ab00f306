"""
Unit tests for the residual-model objective.

Tests cover:
- Expectation of the objective at the generating parameters for every variant
- Residual scale edge cases
- Parameter encoding and fixed parameters
"""

import numpy as np
import pytest

from saem.core.utils.cost_functions import residual_cost, unpack_parameters
from saem.core.utils.residual_models import (
    RESIDUAL_MODELS,
    XMAX,
    XMIN,
    decode_parameter,
    encode_parameter,
    has_lambda,
    residual_model_code,
    residual_scale,
)
from saem.core.utils.transforms import BOX_COX, NO_TRANSFORM, inverse_transform, power_transform

TRUE_VALUES = {"ares": 0.2, "bres": 0.05, "cres": 0.8, "lres": 0.5}
RANGES = {"lambda": 3.0, "pow": 10.0}


def _simulated_context(variant, n=4000, seed=42):
    """Simulate observations whose standardized residuals are standard normal."""
    rng = np.random.default_rng(seed)
    lambda_ = TRUE_VALUES["lres"]
    yj = BOX_COX if has_lambda(variant) else NO_TRANSFORM
    f = rng.uniform(5.0, 10.0, n)
    ft = power_transform(f, lambda_, yj)
    g = residual_scale(f, ft, TRUE_VALUES, variant)
    y = inverse_transform(ft + g * rng.standard_normal(n), lambda_, yj)
    context = {
        "variant": variant,
        "free": RESIDUAL_MODELS[variant]["params"],
        "fixed": {},
        "y": y,
        "f": f,
        "yt": power_transform(y, lambda_, yj),
        "ft": ft,
        "lambda": lambda_,
        "yj": yj,
        "low": 0.0,
        "hi": 1.0,
        "combined": 1,
        "prop_transformed": False,
        "ranges": RANGES,
    }
    return context, g


class TestResidualCost:
    """Tests for residual_cost."""

    @pytest.mark.parametrize("variant", sorted(RESIDUAL_MODELS))
    def test_expectation_at_truth(self, variant):
        """Test that the objective is close to n + 2*sum(log g) at the truth."""
        context, g = _simulated_context(variant)
        n = len(g)
        x = np.array(
            [encode_parameter(name, TRUE_VALUES[name], RANGES) for name in context["free"]]
        )

        value = residual_cost(x, context)
        expected = n + 2.0 * np.sum(np.log(g))
        assert abs(value - expected) < 5.0 * np.sqrt(2.0 * n)

    def test_truth_beats_wrong_scale(self):
        """Test that a wrong additive SD gives a larger objective."""
        context, _ = _simulated_context(1)
        at_truth = residual_cost(np.array([encode_parameter("ares", 0.2, RANGES)]), context)
        too_large = residual_cost(np.array([encode_parameter("ares", 1.0, RANGES)]), context)
        too_small = residual_cost(np.array([encode_parameter("ares", 0.05, RANGES)]), context)
        assert at_truth < too_large
        assert at_truth < too_small

    def test_fixed_parameters_are_used(self):
        """Test that fixed values complete the free vector."""
        context, _ = _simulated_context(4)
        context["free"] = ("bres",)
        context["fixed"] = {"ares": 0.2}
        values = unpack_parameters(np.array([encode_parameter("bres", 0.05, RANGES)]), context)
        assert values["ares"] == 0.2
        assert values["bres"] == pytest.approx(0.05)


class TestResidualScale:
    """Tests for residual_scale."""

    def test_additive(self):
        """Test that the additive scale is constant."""
        f = np.array([1.0, 5.0])
        np.testing.assert_array_equal(residual_scale(f, f, {"ares": 0.3}, 1), [0.3, 0.3])

    def test_proportional_zero_prediction(self):
        """Test that a zero prediction does not give a zero scale."""
        f = np.array([0.0, 2.0])
        g = residual_scale(f, f, {"bres": 0.1}, 2)
        np.testing.assert_allclose(g, [0.1, 0.2])

    def test_zero_scale_becomes_one(self):
        """Test that a zero scale is replaced by 1."""
        f = np.array([1.0])
        assert residual_scale(f, f, {"ares": 0.0}, 1)[0] == 1.0

    def test_quadrature(self):
        """Test the combination of additive and proportional terms."""
        f = np.array([2.0])
        values = {"ares": 0.3, "bres": 0.2}
        assert residual_scale(f, f, values, 4, combined=1)[0] == pytest.approx(0.7)
        assert residual_scale(f, f, values, 4, combined=2)[0] == pytest.approx(0.5)

    def test_clipped(self):
        """Test that scales stay inside [1e-200, 1e300]."""
        f = np.array([1e200])
        g = residual_scale(f, f, {"bres": 1e200, "cres": 2.0}, 3)
        assert g[0] == XMAX
        g = residual_scale(f, f, {"ares": 1e-250}, 1)
        assert g[0] == XMIN


class TestEncoding:
    """Tests for the optimizer scale of the residual parameters."""

    @pytest.mark.parametrize(
        "name,value", [("ares", 0.7), ("bres", 0.05), ("cres", -1.5), ("lres", 0.5)]
    )
    def test_round_trip(self, name, value):
        """Test that decoding inverts encoding."""
        x = encode_parameter(name, value, RANGES)
        assert decode_parameter(name, x, RANGES) == pytest.approx(value)

    def test_model_codes(self):
        """Test residual model resolution by name and code."""
        assert residual_model_code("add+pow+lambda") == 10
        assert residual_model_code(3) == 3
        with pytest.raises(ValueError, match="Unknown residual model"):
            residual_model_code("exponential")
        with pytest.raises(ValueError, match="Unknown residual model"):
            residual_model_code(11)
