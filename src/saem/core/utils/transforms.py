"""
Power and bounded transformations applied to observations and predictions.

Each endpoint carries a transform kind, a power parameter ``lambda`` and
optional bounds ``low``/``hi``. Observations and model predictions are passed
through the same transform before residuals are formed, so that e.g. a
Box-Cox or logit scale can be used for the residual error model.

Transform kinds (integer codes are kept for compatibility with stored
configurations):

====  ====================  =====================================
code  name                  definition
====  ====================  =====================================
0     ``boxCox``            ``(x**lambda - 1)/lambda``, ``log(x)`` at 0
1     ``yeoJohnson``        Yeo-Johnson power transform
2     ``none``              identity
3     ``lnorm``             ``log(x)``
4     ``logit``             ``logit((x - low)/(hi - low))``
5     ``logit+yeoJohnson``  Yeo-Johnson of the logit
6     ``probit``            ``Phi^-1((x - low)/(hi - low))``
7     ``probit+yeoJohnson`` Yeo-Johnson of the probit
====  ====================  =====================================
"""

import numpy as np
from scipy.special import expit, logit, ndtr, ndtri

BOX_COX = 0
YEO_JOHNSON = 1
NO_TRANSFORM = 2
LOG_NORMAL = 3
LOGIT = 4
LOGIT_YEO_JOHNSON = 5
PROBIT = 6
PROBIT_YEO_JOHNSON = 7

TRANSFORM_NAMES = {
    "boxCox": BOX_COX,
    "yeoJohnson": YEO_JOHNSON,
    "none": NO_TRANSFORM,
    "lnorm": LOG_NORMAL,
    "logit": LOGIT,
    "logit+yeoJohnson": LOGIT_YEO_JOHNSON,
    "probit": PROBIT,
    "probit+yeoJohnson": PROBIT_YEO_JOHNSON,
}

DBL_EPSILON = np.finfo(float).eps


def _box_cox(x, lambda_):
    x = np.where(x <= 0, DBL_EPSILON, x)
    if lambda_ == 0:
        return np.log(x)
    return (np.power(x, lambda_) - 1.0) / lambda_


def _box_cox_inverse(x, lambda_):
    if lambda_ == 0:
        return np.exp(x)
    base = np.maximum(lambda_ * x + 1.0, 0.0)
    return np.power(base, 1.0 / lambda_)


def _yeo_johnson(x, lambda_):
    x = np.asarray(x, dtype=float)
    out = np.empty_like(x)
    pos = x >= 0
    xp = x[pos]
    xn = x[~pos]
    if lambda_ == 0:
        out[pos] = np.log1p(xp)
    else:
        out[pos] = (np.power(xp + 1.0, lambda_) - 1.0) / lambda_
    if lambda_ == 2:
        out[~pos] = -np.log1p(-xn)
    else:
        out[~pos] = -(np.power(1.0 - xn, 2.0 - lambda_) - 1.0) / (2.0 - lambda_)
    return out


def _yeo_johnson_inverse(x, lambda_):
    x = np.asarray(x, dtype=float)
    out = np.empty_like(x)
    pos = x >= 0
    xp = x[pos]
    xn = x[~pos]
    if lambda_ == 0:
        out[pos] = np.expm1(xp)
    else:
        out[pos] = np.power(np.maximum(lambda_ * xp + 1.0, 0.0), 1.0 / lambda_) - 1.0
    if lambda_ == 2:
        out[~pos] = -np.expm1(-xn)
    else:
        base = np.maximum(1.0 - (2.0 - lambda_) * xn, 0.0)
        out[~pos] = 1.0 - np.power(base, 1.0 / (2.0 - lambda_))
    return out


def _scale_unit(x, low, hi):
    return (x - low) / (hi - low)


def power_transform(x, lambda_=1.0, kind=BOX_COX, low=0.0, hi=1.0):
    """
    Transform values onto the residual scale.

    Parameters
    ----------
    x : array-like or float
        Values to transform (observations, predictions or limits).
    lambda_ : float, default=1.0
        Power parameter of the Box-Cox and Yeo-Johnson transforms.
    kind : int, default=0
        Transform code, see the module docstring.
    low, hi : float
        Bounds used by the logit and probit transforms.

    Returns
    -------
    numpy.ndarray or float
        Transformed values, scalar in scalar out.

    Raises
    ------
    ValueError
        If ``kind`` is not a known transform code.
    """
    scalar = np.ndim(x) == 0
    x = np.asarray(x, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if kind == BOX_COX:
            out = _box_cox(x, lambda_)
        elif kind == YEO_JOHNSON:
            out = _yeo_johnson(np.atleast_1d(x), lambda_).reshape(x.shape)
        elif kind == NO_TRANSFORM:
            out = x.copy()
        elif kind == LOG_NORMAL:
            out = np.log(np.where(x <= 0, DBL_EPSILON, x))
        elif kind == LOGIT:
            out = logit(_scale_unit(x, low, hi))
        elif kind == LOGIT_YEO_JOHNSON:
            out = _yeo_johnson(
                np.atleast_1d(logit(_scale_unit(x, low, hi))), lambda_
            ).reshape(x.shape)
        elif kind == PROBIT:
            out = ndtri(_scale_unit(x, low, hi))
        elif kind == PROBIT_YEO_JOHNSON:
            out = _yeo_johnson(
                np.atleast_1d(ndtri(_scale_unit(x, low, hi))), lambda_
            ).reshape(x.shape)
        else:
            raise ValueError(f"Unknown transform code: {kind}")

    return float(out) if scalar else out


def inverse_transform(x, lambda_=1.0, kind=BOX_COX, low=0.0, hi=1.0):
    """
    Map values on the residual scale back to the original scale.

    Guarded against invalid bases: a negative Box-Cox/Yeo-Johnson base is
    clamped at zero instead of producing NaN.

    Parameters
    ----------
    x : array-like or float
        Transformed values.
    lambda_ : float, default=1.0
        Power parameter.
    kind : int, default=0
        Transform code.
    low, hi : float
        Bounds of the logit and probit transforms.

    Returns
    -------
    numpy.ndarray or float
        Values on the original scale.
    """
    scalar = np.ndim(x) == 0
    x = np.asarray(x, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if kind == BOX_COX:
            out = _box_cox_inverse(x, lambda_)
        elif kind == YEO_JOHNSON:
            out = _yeo_johnson_inverse(np.atleast_1d(x), lambda_).reshape(x.shape)
        elif kind == NO_TRANSFORM:
            out = x.copy()
        elif kind == LOG_NORMAL:
            out = np.exp(x)
        elif kind == LOGIT:
            out = low + (hi - low) * expit(x)
        elif kind == LOGIT_YEO_JOHNSON:
            z = _yeo_johnson_inverse(np.atleast_1d(x), lambda_).reshape(x.shape)
            out = low + (hi - low) * expit(z)
        elif kind == PROBIT:
            out = low + (hi - low) * ndtr(x)
        elif kind == PROBIT_YEO_JOHNSON:
            z = _yeo_johnson_inverse(np.atleast_1d(x), lambda_).reshape(x.shape)
            out = low + (hi - low) * ndtr(z)
        else:
            raise ValueError(f"Unknown transform code: {kind}")

    return float(out) if scalar else out


def to_bounded(x, bound):
    """Map a real number onto ``(-bound, bound)`` with a scaled logistic."""
    return inverse_transform(x, 1.0, LOGIT, -bound, bound)


def from_bounded(value, bound):
    """
    Inverse of :func:`to_bounded`.

    The value is clamped to ``+-0.99*bound`` first so that starting points on
    the boundary map to a finite number.
    """
    value = np.clip(value, -0.99 * bound, 0.99 * bound)
    return power_transform(value, 1.0, LOGIT, -bound, bound)


def transform_endpoints(x, endpoint, transform_dict, lambda_=None):
    """
    Apply the per-endpoint transforms to a stacked vector.

    Parameters
    ----------
    x : numpy.ndarray
        Values, one per observation.
    endpoint : numpy.ndarray
        Endpoint index of each value.
    transform_dict : dict
        Per-endpoint ``lambda``, ``yj``, ``low`` and ``hi`` arrays.
    lambda_ : numpy.ndarray, optional
        Per-endpoint power parameters overriding ``transform_dict["lambda"]``.

    Returns
    -------
    numpy.ndarray
        Transformed values in the input order.
    """
    lambdas = transform_dict["lambda"] if lambda_ is None else lambda_
    out = np.empty(len(x), dtype=float)
    for b in np.unique(endpoint):
        mask = endpoint == b
        out[mask] = power_transform(
            x[mask],
            lambdas[b],
            transform_dict["yj"][b],
            transform_dict["low"][b],
            transform_dict["hi"][b],
        )
    return out
