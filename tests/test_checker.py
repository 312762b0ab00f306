"""
Unit tests for the input checks.

Tests cover:
- Observation, event and covariate validation
- Parameter model validation
- Residual model and transform validation
- Controls and step schedules
"""

import numpy as np
import pandas as pd
import pytest

from saem.core.checker import parameters_checker
from saem.core.checker.data_checks import (
    MAX_ENDPOINTS,
    _check_covariates,
    _check_events,
    _check_observations,
)
from saem.core.checker.model_checks import _check_residual_models, _check_transforms
from saem.core.checker.parameter_checks import _check_controls, _check_phi
from saem.core.utils.transforms import (
    BOX_COX,
    LOGIT_YEO_JOHNSON,
    PROBIT_YEO_JOHNSON,
    YEO_JOHNSON,
)


class TestObservations:
    """Tests for _check_observations and _check_events."""

    def test_subject_coding(self):
        """Test that subjects are numbered by first appearance."""
        obs = _check_observations([1.0, 2.0, 3.0, 4.0], ["b", "b", "a", "a"])
        np.testing.assert_array_equal(obs["subject"], [0, 0, 1, 1])
        assert obs["n_subjects"] == 2
        assert list(obs["subject_ids"]) == ["b", "a"]

    def test_subjects_must_be_grouped(self):
        """Test that interleaved subjects raise."""
        with pytest.raises(ValueError, match="grouped by subject"):
            _check_observations([1.0, 2.0, 3.0], [1, 2, 1])

    def test_missing_values(self):
        """Test that missing observations raise."""
        with pytest.raises(ValueError, match="missing or non-numeric"):
            _check_observations([1.0, np.nan], [1, 1])

    def test_length_mismatch(self):
        """Test that id and y must have the same length."""
        with pytest.raises(ValueError, match="'id' has 1 values"):
            _check_observations([1.0, 2.0], [1])

    def test_too_many_endpoints(self):
        """Test the endpoint limit."""
        n = MAX_ENDPOINTS + 1
        with pytest.raises(ValueError, match="At most 40 endpoints"):
            _check_observations(np.ones(n), np.zeros(n), endpoint=np.arange(n))

    def test_default_events(self):
        """Test the default event table."""
        obs = _check_observations([1.0, 2.0, 3.0], [7, 7, 9])
        evt = _check_events(None, obs)
        np.testing.assert_array_equal(evt, [[0, 0], [0, 1], [1, 2]])

    def test_event_subjects_recoded(self):
        """Test that event subjects are mapped to zero-based indices."""
        obs = _check_observations([1.0, 2.0], [7, 9])
        evt = _check_events(pd.DataFrame({"id": [9, 7], "time": [0.0, 1.0]}), obs)
        np.testing.assert_array_equal(evt[:, 0], [1, 0])

    def test_unknown_event_subject(self):
        """Test that events of unknown subjects raise."""
        obs = _check_observations([1.0, 2.0], [7, 9])
        with pytest.raises(ValueError, match="no observations"):
            _check_events(np.array([[8, 0.0]]), obs)

    def test_covariates(self):
        """Test covariate names and shape checks."""
        values, names = _check_covariates(pd.DataFrame({"wt": [60.0, 70.0]}), 2)
        assert names == ["wt"]
        assert values.shape == (2, 1)
        with pytest.raises(ValueError, match="one row per subject"):
            _check_covariates(np.ones((3, 1)), 2)


class TestPhi:
    """Tests for _check_phi."""

    def test_defaults(self):
        """Test the default parameter model."""
        phi = _check_phi([1.0, 2.0], 0)
        np.testing.assert_array_equal(phi["i1"], [0, 1])
        np.testing.assert_array_equal(phi["omega"], np.eye(2))
        assert phi["names"] == ["phi1", "phi2"]

    def test_random_effect_required(self):
        """Test that at least one random effect is needed."""
        with pytest.raises(ValueError, match="At least one parameter"):
            _check_phi([1.0, 2.0], 0, random_effects=[False, False])

    def test_omega_shape(self):
        """Test that omega must match the random effects."""
        with pytest.raises(ValueError, match="'omega' must be 1x1"):
            _check_phi([1.0, 2.0], 0, random_effects=[True, False], omega=np.eye(2))

    def test_omega_positive(self):
        """Test that non-positive variances raise."""
        with pytest.raises(ValueError, match="positive variances"):
            _check_phi([1.0], 0, omega=[0.0])

    def test_covstruct_masks_omega(self):
        """Test that covstruct removes unestimated covariances."""
        omega = np.array([[1.0, 0.5], [0.5, 1.0]])
        phi = _check_phi([1.0, 2.0], 0, omega=omega)
        np.testing.assert_array_equal(phi["omega"], np.eye(2))

    def test_covstruct_diagonal_warning(self, capsys):
        """Test that an unestimated diagonal is restored with a warning."""
        phi = _check_phi([1.0], 0, covstruct=[[0.0]])
        assert phi["covstruct"][0, 0] == 1.0
        assert "Warning:" in capsys.readouterr().out


class TestResidualModels:
    """Tests for residual model and transform checks."""

    def test_unknown_model(self):
        """Test that an unknown residual model raises."""
        with pytest.raises(ValueError, match="Unknown residual model"):
            _check_residual_models(
                "exp", 1.0, 1.0, 1.0, None, 1, False, None, np.array([1.0]), 1
            )

    def test_lres_defaults_to_lambda(self):
        """Test that lres starts from the transform power."""
        residual = _check_residual_models(
            "add+lambda", 1.0, 1.0, 1.0, None, 1, False, None, np.array([0.3]), 1
        )
        np.testing.assert_array_equal(residual["lres"], [0.3])

    def test_initial_sigma2(self):
        """Test the initial residual variances."""
        residual = _check_residual_models(
            ["add", "prop", "pow"], [2.0, 1.0, 1.0], [1.0, 0.5, 1.0], 1.0, None, 1,
            False, None, np.ones(3), 3,
        )
        np.testing.assert_array_equal(residual["sigma2"], [10.0, 1.0, 10.0])

    def test_fixed_unknown_parameter(self, capsys):
        """Test that fixing a parameter the model does not have warns."""
        residual = _check_residual_models(
            "add", 1.0, 1.0, 1.0, None, 1, False, ["cres"], np.array([1.0]), 1
        )
        assert residual["fixed"] == [{}]
        assert "not part of the 'add' model" in capsys.readouterr().out

    def test_combined(self):
        """Test that combined must be 1 or 2."""
        with pytest.raises(ValueError, match="'combined'"):
            _check_residual_models(
                "add+prop", 1.0, 1.0, 1.0, None, 3, False, None, np.array([1.0]), 1
            )

    def test_unknown_transform(self):
        """Test that an unknown transform raises."""
        with pytest.raises(ValueError, match="Unknown transform"):
            _check_transforms("sqrt", 1.0, 0.0, 1.0, np.array([1]), 1)

    def test_bounded_transform_needs_interval(self):
        """Test that logit bounds must be ordered."""
        with pytest.raises(ValueError, match="'low' must be smaller"):
            _check_transforms("logit", 1.0, 1.0, 1.0, np.array([1]), 1)

    @pytest.mark.parametrize(
        "kind,expected",
        [
            ("none", BOX_COX),
            ("lnorm", BOX_COX),
            ("logit", LOGIT_YEO_JOHNSON),
            ("probit", PROBIT_YEO_JOHNSON),
            ("yeoJohnson", YEO_JOHNSON),
        ],
    )
    def test_lambda_needs_power_transform(self, kind, expected, capsys):
        """Test that lambda models switch to a transform with a power."""
        transform = _check_transforms(kind, 1.0, 0.0, 1.0, np.array([6]), 1)
        assert transform["yj"][0] == expected
        out = capsys.readouterr().out
        assert ("has no power" in out) == (kind != "yeoJohnson")


class TestControls:
    """Tests for _check_controls."""

    def test_defaults(self):
        """Test the default controls."""
        general = _check_controls()
        assert general["niter"] == 500
        assert general["nb_sa"] == 100
        assert general["niter_phi0"] == 100
        assert general["distribution"] == 1

    def test_no_iterations(self):
        """Test that at least one iteration is needed."""
        with pytest.raises(ValueError, match="At least one iteration"):
            _check_controls(n_burn=0, n_em=0)

    def test_unknown_distribution(self):
        """Test that unknown distributions raise."""
        with pytest.raises(ValueError, match="Unknown distribution"):
            _check_controls(distribution="gamma")
        with pytest.raises(ValueError, match="Unknown distribution"):
            _check_controls(distribution=4)

    def test_unknown_optimizer(self):
        """Test that unknown optimizers raise."""
        with pytest.raises(ValueError, match="Unknown optimizer"):
            _check_controls(optimizer="bobyqa")

    @pytest.mark.parametrize(
        "pas,match",
        [
            ([1.0, 1.0, 0.5], "must have 4 values"),
            ([1.0, 0.5, 0.8, 0.2], "non-increasing"),
            ([1.0, 1.0, 0.5, 0.0], r"\(0, 1\]"),
            ([1.5, 1.0, 0.5, 0.2], r"\(0, 1\]"),
        ],
    )
    def test_invalid_schedule(self, pas, match):
        """Test that invalid step schedules raise."""
        with pytest.raises(ValueError, match=match):
            _check_controls(n_burn=2, n_em=2, pas=pas)


class TestParametersChecker:
    """Tests for the full input check."""

    def test_output_structure(self, population_data):
        """Test that all sections are present."""
        checked = parameters_checker(
            population_data["y"], population_data["id"], [5.0], evt=population_data["evt"],
            controls={"n_burn": 5, "n_em": 5},
        )
        for key in ("general", "observations", "phi", "residual", "transform", "history"):
            assert key in checked
        assert checked["ue"].shape == (20, 1)
        assert checked["evt"][0, 0] == 0

    def test_ue_shape(self, population_data):
        """Test that a wrongly shaped exposure matrix raises."""
        with pytest.raises(ValueError, match="'ue' must have shape"):
            parameters_checker(
                population_data["y"], population_data["id"], [5.0], ue=np.ones((20, 2))
            )
