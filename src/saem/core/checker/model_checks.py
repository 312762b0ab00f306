import numpy as np

from saem.core.utils.residual_models import (
    ADD,
    PROP,
    RESIDUAL_MODELS,
    has_lambda,
    residual_model_code,
)
from saem.core.utils.transforms import (
    BOX_COX,
    LOG_NORMAL,
    LOGIT,
    LOGIT_YEO_JOHNSON,
    NO_TRANSFORM,
    PROBIT,
    PROBIT_YEO_JOHNSON,
    TRANSFORM_NAMES,
)

from ._utils import _per_endpoint, _warn

BOUNDED_TRANSFORMS = (LOGIT, LOGIT_YEO_JOHNSON, PROBIT, PROBIT_YEO_JOHNSON)

# Transforms without a power, mapped to the closest one with a power
LAMBDA_TRANSFORMS = {
    NO_TRANSFORM: BOX_COX,
    LOG_NORMAL: BOX_COX,
    LOGIT: LOGIT_YEO_JOHNSON,
    PROBIT: PROBIT_YEO_JOHNSON,
}


def _transform_code(transform):
    if isinstance(transform, str):
        if transform not in TRANSFORM_NAMES:
            raise ValueError(
                f"Unknown transform '{transform}'. "
                f"Use one of: {', '.join(TRANSFORM_NAMES)}"
            )
        return TRANSFORM_NAMES[transform]
    code = int(transform)
    if code not in TRANSFORM_NAMES.values():
        raise ValueError(f"Unknown transform code: {transform}")
    return code


def _residual_codes(residual_model, n_endpoints):
    """Residual model code of each endpoint."""
    if isinstance(residual_model, (str, int, np.integer)):
        residual_model = [residual_model] * n_endpoints
    if len(residual_model) != n_endpoints:
        raise ValueError(
            f"'residual_model' must have one entry per endpoint ({n_endpoints})."
        )
    return np.array([residual_model_code(m) for m in residual_model], dtype=int)


def _check_fixed_residual(fixed_residual, models, n_endpoints, silent=False):
    """
    Normalise the fixed residual parameters to one dict per endpoint.

    Each endpoint entry can be an iterable of parameter names (held at their
    initial value) or a dict of name to fixed value. A single entry applies
    to a single-endpoint model.

    Returns
    -------
    list of dict
        Fixed parameter names per endpoint; values are None when the initial
        value is to be used.
    """
    if fixed_residual is None:
        return [{} for _ in range(n_endpoints)]
    if isinstance(fixed_residual, (dict, str)) or (
        n_endpoints == 1
        and len(fixed_residual) > 0
        and all(isinstance(x, str) for x in fixed_residual)
    ):
        fixed_residual = [fixed_residual]
    if len(fixed_residual) != n_endpoints:
        raise ValueError(
            f"'fixed_residual' must have one entry per endpoint ({n_endpoints})."
        )

    out = []
    for b, entry in enumerate(fixed_residual):
        if isinstance(entry, str):
            entry = [entry]
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            entry = {name: None for name in entry}
        params = RESIDUAL_MODELS[models[b]]["params"]
        kept = {}
        for name, value in entry.items():
            if name not in params:
                _warn(
                    f"Residual parameter '{name}' is not part of the "
                    f"'{RESIDUAL_MODELS[models[b]]['name']}' model of endpoint "
                    f"{b + 1}. It is ignored.",
                    silent,
                )
                continue
            kept[name] = value
        out.append(kept)
    return out


def _check_residual_models(
    residual_model,
    ares,
    bres,
    cres,
    lres,
    combined,
    prop_transformed,
    fixed_residual,
    lambda_param,
    n_endpoints,
    lambda_range=3.0,
    pow_range=10.0,
    silent=False,
):
    """
    Check the residual models of all endpoints.

    Parameters
    ----------
    residual_model : str, int or sequence
        Residual model name or code, per endpoint or shared.
    ares, bres, cres, lres : float or sequence
        Initial residual parameters. ``lres`` defaults to the transform
        ``lambda_param``.
    combined : int or sequence
        ``1`` (sum) or ``2`` (quadrature) combination of additive and
        proportional terms.
    prop_transformed : bool or sequence
        Whether the proportional term uses the transformed prediction.
    fixed_residual : sequence, optional
        Fixed residual parameters, see :func:`_check_fixed_residual`.
    lambda_param : numpy.ndarray
        Checked per-endpoint transform powers.
    n_endpoints : int
        Number of endpoints.
    lambda_range, pow_range : float
        Half-widths of the intervals of the estimated lambda and power.
    silent : bool
        Whether to suppress warnings.

    Returns
    -------
    dict
        Residual model state with per-endpoint arrays.
    """
    models = _residual_codes(residual_model, n_endpoints)

    combined = _per_endpoint(combined, n_endpoints, "combined", dtype=int)
    if np.any(~np.isin(combined, (1, 2))):
        raise ValueError("'combined' must be 1 (sum) or 2 (quadrature).")
    if lambda_range <= 0 or pow_range <= 0:
        raise ValueError("'lambda_range' and 'pow_range' must be positive.")

    residual_dict = {
        "model": models,
        "ares": _per_endpoint(ares, n_endpoints, "ares"),
        "bres": _per_endpoint(bres, n_endpoints, "bres"),
        "cres": _per_endpoint(cres, n_endpoints, "cres"),
        "lres": (
            np.array(lambda_param, dtype=float, copy=True)
            if lres is None
            else _per_endpoint(lres, n_endpoints, "lres")
        ),
        "combined": combined,
        "prop_transformed": _per_endpoint(
            prop_transformed, n_endpoints, "prop_transformed", dtype=bool
        ),
        "ranges": {"lambda": float(lambda_range), "pow": float(pow_range)},
    }

    for name in ("ares", "bres"):
        if np.any(residual_dict[name] < 0):
            _warn(f"Negative '{name}' replaced by its absolute value.", silent)
            residual_dict[name] = np.abs(residual_dict[name])

    fixed = _check_fixed_residual(fixed_residual, models, n_endpoints, silent)
    for b, entry in enumerate(fixed):
        for name, value in entry.items():
            if value is None:
                entry[name] = float(residual_dict[name][b])
            else:
                residual_dict[name][b] = float(value)
    residual_dict["fixed"] = fixed

    sigma2 = np.full(n_endpoints, 10.0)
    for b, variant in enumerate(models):
        if variant == ADD:
            sigma2[b] = max(residual_dict["ares"][b] ** 2, 10.0)
        elif variant == PROP:
            sigma2[b] = max(residual_dict["bres"][b] ** 2, 1.0)
    residual_dict["sigma2"] = sigma2
    return residual_dict


def _check_transforms(transform, lambda_param, low, hi, models, n_endpoints, silent=False):
    """
    Check the per-endpoint transforms.

    Returns
    -------
    dict
        ``lambda``, ``yj``, ``low`` and ``hi`` arrays.

    Raises
    ------
    ValueError
        For unknown transforms or empty bounds of the logit/probit kinds.
    """
    if isinstance(transform, (str, int, np.integer)):
        transform = [transform] * n_endpoints
    if len(transform) != n_endpoints:
        raise ValueError(f"'transform' must have one entry per endpoint ({n_endpoints}).")
    yj = np.array([_transform_code(t) for t in transform], dtype=int)

    transform_dict = {
        "lambda": _per_endpoint(lambda_param, n_endpoints, "lambda_param"),
        "yj": yj,
        "low": _per_endpoint(low, n_endpoints, "low"),
        "hi": _per_endpoint(hi, n_endpoints, "hi"),
    }
    transform_names = {code: name for name, code in TRANSFORM_NAMES.items()}

    for b in range(n_endpoints):
        if yj[b] in BOUNDED_TRANSFORMS and not transform_dict["low"][b] < transform_dict["hi"][b]:
            raise ValueError(
                f"Endpoint {b + 1}: 'low' must be smaller than 'hi' for bounded transforms."
            )
        if has_lambda(models[b]) and yj[b] in LAMBDA_TRANSFORMS:
            replacement = LAMBDA_TRANSFORMS[yj[b]]
            _warn(
                f"Endpoint {b + 1} estimates lambda but its transform has no power; "
                f"using the {transform_names[replacement]} transform.",
                silent,
            )
            yj[b] = replacement
    return transform_dict
