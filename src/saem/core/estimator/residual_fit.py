import warnings

import numpy as np

from saem.core.estimator.optimization import minimize
from saem.core.utils.cost_functions import residual_cost
from saem.core.utils.residual_models import (
    ADD,
    PROP,
    RESIDUAL_MODELS,
    decode_parameter,
    encode_parameter,
)
from saem.core.utils.transforms import power_transform

SIGMA2_CAP = 1e99
INITIAL_STEP = -0.2


def _line_search_bounds(name, x0):
    """Search interval of a single free parameter on the optimizer scale."""
    if name in ("cres", "lres"):
        # covers the clamped start at +-0.99 of the range
        edge = np.log(199.0)
        return -edge, edge
    return 0.0, max(4.0 * abs(x0), 1.0)


def _objective_context(b, variant, free, fixed, y, f, residual_dict, transform_dict):
    lambda_ = transform_dict["lambda"][b]
    yj = transform_dict["yj"][b]
    low = transform_dict["low"][b]
    hi = transform_dict["hi"][b]
    return {
        "variant": variant,
        "free": free,
        "fixed": fixed,
        "y": y,
        "f": f,
        "yt": power_transform(y, lambda_, yj, low, hi),
        "ft": power_transform(f, lambda_, yj, low, hi),
        "lambda": lambda_,
        "yj": yj,
        "low": low,
        "hi": hi,
        "combined": residual_dict["combined"][b],
        "prop_transformed": residual_dict["prop_transformed"][b],
        "ranges": residual_dict["ranges"],
    }


def fit_endpoint(b, y, f, residual_dict, transform_dict, general, step, use_fixed):
    """
    Fit the residual parameters of one endpoint with the optimizer.

    Free parameters start from their current values (encoded), fixed ones
    are excluded from the optimizer vector. The result is blended into the
    current values, ``v <- v + step*(candidate - v)``.

    Parameters
    ----------
    b : int
        Endpoint index.
    y, f : numpy.ndarray
        Observations and predictions of the endpoint over all chains.
    residual_dict : dict
        Residual model state, updated in place.
    transform_dict : dict
        Per-endpoint transforms.
    general : dict
        Optimizer controls (``tol``, ``itmax``, ``optimizer``).
    step : float
        Stochastic approximation step of the iteration.
    use_fixed : bool
        Whether user-fixed parameters are held at their value.

    Returns
    -------
    bool
        False when the optimizer failed and the parameters were left as is.
    """
    variant = residual_dict["model"][b]
    params = RESIDUAL_MODELS[variant]["params"]
    user_fixed = residual_dict["fixed"][b] if use_fixed else {}
    free = tuple(name for name in params if name not in user_fixed)
    fixed = {name: user_fixed[name] for name in params if name in user_fixed}

    for name, value in fixed.items():
        residual_dict[name][b] = value
    if not free:
        return True

    ranges = residual_dict["ranges"]
    start = np.array(
        [encode_parameter(name, residual_dict[name][b], ranges) for name in free]
    )
    context = _objective_context(
        b, variant, free, fixed, y, f, residual_dict, transform_dict
    )
    bounds = _line_search_bounds(free[0], start[0]) if len(free) == 1 else None

    x = minimize(
        lambda x: residual_cost(x, context),
        start,
        np.full(len(free), INITIAL_STEP),
        tol=general["tol"],
        itmax=general["itmax"],
        algorithm=general["optimizer"],
        bounds=bounds,
    )
    if x is None:
        warnings.warn(
            f"Residual model optimization failed for endpoint {b + 1}; "
            "keeping the previous parameters.",
            RuntimeWarning,
        )
        return False

    for name, xi in zip(free, x):
        candidate = decode_parameter(name, xi, ranges)
        residual_dict[name][b] += step * (candidate - residual_dict[name][b])
    return True


def fit_residual_models(state, general, observations_dict, f, kiter, step):
    """
    Update the residual parameters of every endpoint.

    The additive and proportional models use the closed form
    ``sqrt(statrese/n_obs)``; the other variants call :func:`fit_endpoint`
    on all chains' predictions. ``sigma2`` keeps the residual variance
    statistic of each endpoint (capped at ``1e99``).

    Parameters
    ----------
    state : dict
        Engine state, updated in place.
    general : dict
        Iteration and optimizer controls.
    observations_dict : dict
        Observations of one chain.
    f : numpy.ndarray
        Cached predictions over the stacked observations.
    kiter : int
        Zero-based iteration number.
    step : float
        Stochastic approximation step.
    """
    residual_dict = state["residual"]
    transform_dict = state["transform"]
    endpoint = observations_dict["endpoint"]
    nmc = len(f) // observations_dict["n_obs"]
    endpoint_M = np.tile(endpoint, nmc)
    y_M = np.tile(observations_dict["y"], nmc)
    use_fixed = kiter > general["nb_fix_resid"]

    for b, variant in enumerate(residual_dict["model"]):
        sig2 = state["statrese"][b] / observations_dict["n_obs_endpoint"][b]
        fixed = residual_dict["fixed"][b] if use_fixed else {}

        if variant == ADD:
            residual_dict["ares"][b] = fixed.get("ares", np.sqrt(sig2))
        elif variant == PROP:
            if sig2 == 0:
                sig2 = 1.0
            residual_dict["bres"][b] = fixed.get("bres", np.sqrt(sig2))
        else:
            mask = endpoint_M == b
            fit_endpoint(
                b,
                y_M[mask],
                f[mask],
                residual_dict,
                transform_dict,
                general,
                step,
                use_fixed,
            )

        if np.isnan(sig2) or sig2 > SIGMA2_CAP:
            sig2 = SIGMA2_CAP
        residual_dict["sigma2"][b] = sig2
