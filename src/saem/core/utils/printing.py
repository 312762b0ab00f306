"""
Printing utilities for SAEM models.

This module provides functions to generate formatted summaries of fitted SAEM
models: population coefficients, random-effect variances, residual models
and sampler diagnostics.
"""

from typing import Any, List

import numpy as np

from saem.core.utils.distributions import DISTRIBUTIONS
from saem.core.utils.residual_models import RESIDUAL_MODELS
from saem.core.utils.transforms import TRANSFORM_NAMES


def _format_distribution(distribution: int) -> str:
    """
    Format distribution name for display.

    Parameters
    ----------
    distribution : int
        Distribution code (1 normal, 2 Poisson, 3 binomial)

    Returns
    -------
    str
        Human-readable distribution name
    """
    dist_names = {"normal": "Normal", "poisson": "Poisson", "binomial": "Binomial"}
    for name, code in DISTRIBUTIONS.items():
        if code == distribution:
            return dist_names.get(name, name)
    return str(distribution)


def _format_table(names: List[str], values: np.ndarray, digits: int = 4) -> str:
    """Two-column name/value table with right-aligned values."""
    width = max(len(name) for name in names) if names else 0
    value_width = max(digits + 6, 10)
    lines = []
    for name, value in zip(names, values):
        lines.append(f"  {name:<{width}} {value:>{value_width}.{digits}f}")
    return "\n".join(lines)


def _format_residual_models(model: Any, digits: int = 4) -> str:
    residual = model._results["residual"]
    transform = model._results["transform"]
    endpoint_names = model._results["endpoint_names"]
    transform_names = {code: name for name, code in TRANSFORM_NAMES.items()}

    lines = []
    for b, variant in enumerate(residual["model"]):
        info = RESIDUAL_MODELS[variant]
        params = ", ".join(
            f"{name}={residual[name][b]:.{digits}f}" for name in info["params"]
        )
        lines.append(
            f"  {endpoint_names[b]}: {info['name']} ({params}); "
            f"transform {transform_names.get(transform['yj'][b], transform['yj'][b])}"
        )
    return "\n".join(lines)


def _format_acceptance(model: Any) -> str:
    rates = model.acceptance_
    lines = []
    for block, row in rates.iterrows():
        if row.isna().all():
            continue
        values = "; ".join(
            f"{kernel}: {rate * 100:.1f}%" for kernel, rate in row.items() if np.isfinite(rate)
        )
        lines.append(f"  {block}: {values}")
    return "\n".join(lines)


def model_summary(model: Any, digits: int = 4) -> str:
    """
    Generate a formatted summary of a fitted SAEM model.

    Parameters
    ----------
    model : SAEM
        Fitted SAEM model instance
    digits : int, default=4
        Number of decimal places for numeric output

    Returns
    -------
    str
        Formatted model summary string

    Examples
    --------
    >>> from saem import SAEM
    >>> model = SAEM(theta=[1.0, 0.5])
    >>> model.fit(structural_model, y, id)
    >>> print(model_summary(model))
    """
    results = model._results
    general = results["general"]
    lines = []

    if results.get("time_elapsed") is not None:
        lines.append(f"Time elapsed: {results['time_elapsed']:.2f} seconds")

    lines.append(
        f"Model estimated using SAEM() function with {general['nmc']} chains, "
        f"{general['n_burn']} burn-in and {general['n_em']} smoothing iterations"
    )
    lines.append(
        f"Distribution assumed in the model: {_format_distribution(general['distribution'])}"
    )

    lines.append("Population parameters:")
    lines.append(_format_table(results["beta_names"], model.plambda_, digits))

    omega_names = [f"V({results['phi_names'][j]})" for j in results["i1"]]
    lines.append("Variance of random effects:")
    lines.append(_format_table(omega_names, np.diag(model.omega_), digits))

    if general["distribution"] == DISTRIBUTIONS["normal"]:
        lines.append("Residual models:")
        lines.append(_format_residual_models(model, digits))

    acceptance = _format_acceptance(model)
    if acceptance:
        lines.append("Acceptance rates of the MCMC kernels:")
        lines.append(acceptance)

    lines.append(f"Sample size: {results['n_obs']}")
    lines.append(f"Number of subjects: {results['n_subjects']}")
    lines.append(f"Number of estimated parameters: {len(results['history_names'])}")

    return "\n".join(lines)
