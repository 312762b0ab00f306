"""
Pytest configuration and shared fixtures for saem package tests.
"""

import numpy as np
import pytest

from saem.core.checker.model_checks import _check_residual_models, _check_transforms


def linear_model(phi, evt, options):
    """Intercept and slope per subject: ``phi[i, 0] + phi[i, 1] * t``."""
    subject = evt[:, 0].astype(int)
    t = evt[:, 1]
    if phi.shape[1] == 1:
        return phi[subject, 0] + 0.5 * t
    return phi[subject, 0] + phi[subject, 1] * t


@pytest.fixture
def population_data():
    """
    Twenty subjects with six observations each.

    Individual intercepts are normal around 5 with standard deviation 1,
    the slope is 0.5 for everyone and the additive residual SD is 0.5.
    """
    np.random.seed(42)
    n_subjects = 20
    times = np.array([0.0, 1.0, 2.0, 4.0, 6.0, 8.0])
    intercepts = 5.0 + np.random.randn(n_subjects)

    id = np.repeat(np.arange(1, n_subjects + 1), len(times))
    t = np.tile(times, n_subjects)
    y = intercepts[id - 1] + 0.5 * t + np.random.randn(len(t)) * 0.5
    evt = np.column_stack([id, t])
    return {
        "y": y,
        "id": id,
        "t": t,
        "evt": evt,
        "model": linear_model,
        "true_ares": 0.5,
        "true_omega": 1.0,
        "intercepts": intercepts,
    }


@pytest.fixture
def slope_data():
    """Subjects with random intercepts and a shared slope, two parameters."""
    np.random.seed(42)
    n_subjects = 15
    times = np.array([0.5, 1.0, 2.0, 3.0, 5.0])
    intercepts = 2.0 + 0.5 * np.random.randn(n_subjects)

    id = np.repeat(np.arange(n_subjects), len(times))
    t = np.tile(times, n_subjects)
    y = intercepts[id] + 1.5 * t + np.random.randn(len(t)) * 0.3
    return {"y": y, "id": id, "evt": np.column_stack([id, t]), "model": linear_model}


@pytest.fixture
def additive_residual():
    """Single-endpoint additive residual model with ``ares=1``."""
    return _check_residual_models(
        "add", 1.0, 1.0, 1.0, None, 1, False, None, np.array([1.0]), 1, silent=True
    )


@pytest.fixture
def identity_transform():
    """Single-endpoint identity transform."""
    return _check_transforms("none", 1.0, 0.0, 1.0, np.array([1]), 1, silent=True)
