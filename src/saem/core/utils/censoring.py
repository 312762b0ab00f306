"""
Likelihood contributions of censored observations.

Censoring codes follow the usual convention of the event data:

- ``0``: observed value, contribution left unchanged
- ``1``: left censored, the true value lies below the reported value
- ``-1``: right censored, the true value lies above the reported value

An optional ``limit`` closes the interval on the other side (e.g. a
left-censored concentration known to be positive).
"""

import numpy as np
from scipy.special import log_ndtr, ndtr

PROBABILITY_FLOOR = 1e-300


def _interval_nll(lower, upper):
    """Negative log probability of a standard normal falling in ``(lower, upper)``."""
    out = np.empty(len(lower), dtype=float)
    open_below = ~np.isfinite(lower) & (lower < 0)
    open_above = ~np.isfinite(upper) & (upper > 0)

    below = open_below & ~open_above
    out[below] = -log_ndtr(upper[below])

    above = open_above & ~open_below
    out[above] = -log_ndtr(-lower[above])

    both = ~open_below & ~open_above
    prob = ndtr(upper[both]) - ndtr(lower[both])
    out[both] = -np.log(np.maximum(prob, PROBABILITY_FLOOR))

    out[open_below & open_above] = 0.0
    return out


def censored_nll(dyf, cens, limit_t, yt, ft, g):
    """
    Replace contributions of censored rows by their interval likelihood.

    Parameters
    ----------
    dyf : numpy.ndarray
        Per-observation negative log-likelihood contributions of the
        uncensored model; a modified copy is returned.
    cens : numpy.ndarray
        Censoring code per observation (0, 1 or -1).
    limit_t : numpy.ndarray
        Transformed censoring limits; non-finite entries mean no limit.
    yt : numpy.ndarray
        Transformed observations (the censoring bound).
    ft : numpy.ndarray
        Transformed predictions.
    g : numpy.ndarray
        Residual scale per observation.

    Returns
    -------
    numpy.ndarray
        Contributions with censored rows replaced by
        ``-log(Phi(z_upper) - Phi(z_lower))``.
    """
    dyf = np.array(dyf, dtype=float, copy=True)
    cens = np.asarray(cens)
    if not np.any(cens != 0):
        return dyf

    limit_t = np.asarray(limit_t, dtype=float)
    left = cens == 1
    right = cens == -1

    if np.any(left):
        upper = yt[left]
        lim = limit_t[left]
        has_limit = np.isfinite(lim) & (lim < upper)
        lower = np.where(has_limit, lim, -np.inf)
        dyf[left] = _interval_nll(
            (lower - ft[left]) / g[left], (upper - ft[left]) / g[left]
        )

    if np.any(right):
        lower = yt[right]
        lim = limit_t[right]
        has_limit = np.isfinite(lim) & (lim > lower)
        upper = np.where(has_limit, lim, np.inf)
        dyf[right] = _interval_nll(
            (lower - ft[right]) / g[right], (upper - ft[right]) / g[right]
        )

    return dyf
