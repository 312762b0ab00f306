"""
Observation likelihoods used by the E-step.

The sampler works with per-observation negative log-likelihood contributions
``dyf`` which are summed per chain-subject. Three observation distributions
are supported: normal (with the endpoint residual model, transforms and
censoring), Poisson and binomial (Bernoulli).
"""

import numpy as np
from scipy.special import xlog1py, xlogy

from saem.core.utils.censoring import censored_nll
from saem.core.utils.residual_models import RESIDUAL_MODELS, residual_scale
from saem.core.utils.transforms import transform_endpoints

NORMAL = 1
POISSON = 2
BINOMIAL = 3

DISTRIBUTIONS = {"normal": NORMAL, "poisson": POISSON, "binomial": BINOMIAL}


def current_lambda(residual_dict, transform_dict):
    """Transform power per endpoint; lambda variants use their estimated ``lres``."""
    lambdas = np.array(transform_dict["lambda"], dtype=float)
    for b, variant in enumerate(residual_dict["model"]):
        if "lres" in RESIDUAL_MODELS[variant]["params"]:
            lambdas[b] = residual_dict["lres"][b]
    return lambdas


def endpoint_scale(f, ft, endpoint, residual_dict):
    """
    Residual scale of each observation under the current residual parameters.

    Parameters
    ----------
    f, ft : numpy.ndarray
        Predictions on the original and transformed scale.
    endpoint : numpy.ndarray
        Endpoint index of each observation.
    residual_dict : dict
        Residual model state.

    Returns
    -------
    numpy.ndarray
        Scale per observation.
    """
    g = np.empty(len(f), dtype=float)
    for b, variant in enumerate(residual_dict["model"]):
        mask = endpoint == b
        if not np.any(mask):
            continue
        values = {
            "ares": residual_dict["ares"][b],
            "bres": residual_dict["bres"][b],
            "cres": residual_dict["cres"][b],
        }
        g[mask] = residual_scale(
            f[mask],
            ft[mask],
            values,
            variant,
            combined=residual_dict["combined"][b],
            prop_transformed=residual_dict["prop_transformed"][b],
        )
    return g


def observation_nll(y, f, cens, limit, endpoint, residual_dict, transform_dict, distribution):
    """
    Negative log-likelihood contribution of every observation.

    Parameters
    ----------
    y : numpy.ndarray
        Observations, stacked for all chains.
    f : numpy.ndarray
        Model predictions in the same order.
    cens : numpy.ndarray
        Censoring code per observation.
    limit : numpy.ndarray
        Censoring limit per observation.
    endpoint : numpy.ndarray
        Endpoint index per observation.
    residual_dict : dict
        Residual model state.
    transform_dict : dict
        Per-endpoint transforms.
    distribution : int
        ``1`` normal, ``2`` Poisson, ``3`` binomial.

    Returns
    -------
    numpy.ndarray
        Contributions ``0.5*r**2 + log(g)`` (normal, censored rows replaced
        by their interval likelihood), ``-y*log(f) + f`` (Poisson) or
        ``-y*log(f) - (1-y)*log(1-f)`` (binomial).

    Raises
    ------
    ValueError
        For an unknown distribution code.
    """
    if distribution == NORMAL:
        lambdas = current_lambda(residual_dict, transform_dict)
        yt = transform_endpoints(y, endpoint, transform_dict, lambdas)
        ft = transform_endpoints(f, endpoint, transform_dict, lambdas)
        limit_t = transform_endpoints(limit, endpoint, transform_dict, lambdas)
        g = endpoint_scale(f, ft, endpoint, residual_dict)
        r = (yt - ft) / g
        dyf = 0.5 * r * r + np.log(g)
        return censored_nll(dyf, cens, limit_t, yt, ft, g)

    # xlogy keeps 0*log(0) at 0
    with np.errstate(divide="ignore", invalid="ignore"):
        if distribution == POISSON:
            return -xlogy(y, f) + f
        if distribution == BINOMIAL:
            return -xlogy(y, f) - xlog1py(1.0 - y, -f)

    raise ValueError(f"Unknown distribution (id={distribution})")


def subject_nll(dyf, subject, n_subjects):
    """Sum the contributions of each chain-subject."""
    return np.bincount(subject, weights=dyf, minlength=n_subjects)
