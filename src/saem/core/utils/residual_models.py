"""
Residual error model table.

Every endpoint uses one of ten residual variants. The table below is the
single source of truth for the fitter, the likelihood, the history columns
and the result matrices: each entry names the variant, lists its parameters
in their reporting order and describes which terms enter the residual scale.
"""

import numpy as np

from saem.core.utils.transforms import from_bounded, to_bounded

XMIN = 1e-200
XMAX = 1e300

RESIDUAL_PARAMETERS = ("ares", "bres", "cres", "lres")

RESIDUAL_MODELS = {
    1: {"name": "add", "params": ("ares",), "additive": True, "power": None},
    2: {"name": "prop", "params": ("bres",), "additive": False, "power": "prop"},
    3: {"name": "pow", "params": ("bres", "cres"), "additive": False, "power": "pow"},
    4: {"name": "add+prop", "params": ("ares", "bres"), "additive": True, "power": "prop"},
    5: {
        "name": "add+pow",
        "params": ("ares", "bres", "cres"),
        "additive": True,
        "power": "pow",
    },
    6: {"name": "add+lambda", "params": ("ares", "lres"), "additive": True, "power": None},
    7: {
        "name": "prop+lambda",
        "params": ("bres", "lres"),
        "additive": False,
        "power": "prop",
    },
    8: {
        "name": "pow+lambda",
        "params": ("bres", "cres", "lres"),
        "additive": False,
        "power": "pow",
    },
    9: {
        "name": "add+prop+lambda",
        "params": ("ares", "bres", "lres"),
        "additive": True,
        "power": "prop",
    },
    10: {
        "name": "add+pow+lambda",
        "params": ("ares", "bres", "cres", "lres"),
        "additive": True,
        "power": "pow",
    },
}

RESIDUAL_MODEL_CODES = {info["name"]: code for code, info in RESIDUAL_MODELS.items()}

ADD = 1
PROP = 2


def residual_model_code(model):
    """
    Resolve a residual model given by name or code.

    Raises
    ------
    ValueError
        If the model is unknown.
    """
    if isinstance(model, str):
        if model not in RESIDUAL_MODEL_CODES:
            raise ValueError(
                f"Unknown residual model '{model}'. "
                f"Use one of: {', '.join(RESIDUAL_MODEL_CODES)}"
            )
        return RESIDUAL_MODEL_CODES[model]
    code = int(model)
    if code not in RESIDUAL_MODELS:
        raise ValueError(f"Unknown residual model code: {model}")
    return code


def has_lambda(variant):
    return "lres" in RESIDUAL_MODELS[variant]["params"]


def is_closed_form(variant):
    """Additive-only and proportional-only models have a closed-form update."""
    return variant in (ADD, PROP)


def encode_parameter(name, value, ranges):
    """
    Map a natural parameter value onto the unconstrained optimizer scale.

    Scale terms are optimized as ``x`` with natural value ``x**2``; the power
    and lambda terms use a scaled logistic on ``(-range, range)``.
    """
    if name == "cres":
        return from_bounded(value, ranges["pow"])
    if name == "lres":
        return from_bounded(value, ranges["lambda"])
    return np.sqrt(np.abs(value))


def decode_parameter(name, x, ranges):
    """Inverse of :func:`encode_parameter`."""
    if name == "cres":
        return to_bounded(x, ranges["pow"])
    if name == "lres":
        return to_bounded(x, ranges["lambda"])
    return x * x


def residual_scale(f, ft, values, variant, combined=1, prop_transformed=False):
    """
    Residual standard deviation of each observation.

    Parameters
    ----------
    f : numpy.ndarray
        Predictions on the original scale.
    ft : numpy.ndarray
        Predictions on the transformed scale.
    values : dict
        Natural values of ``ares``, ``bres`` and ``cres``.
    variant : int
        Residual model code.
    combined : int, default=1
        ``1`` sums the additive and proportional terms, ``2`` combines them
        in quadrature.
    prop_transformed : bool, default=False
        Whether the proportional term uses the transformed prediction.

    Returns
    -------
    numpy.ndarray
        Scale clipped into ``[1e-200, 1e300]``.
    """
    info = RESIDUAL_MODELS[variant]
    n = len(f)

    if info["power"] is None:
        g = np.full(n, float(values["ares"]))
    else:
        fa = np.abs(ft if prop_transformed else f)
        if not info["additive"]:
            # zero predictions would give a zero scale
            fa = np.where(fa == 0.0, 1.0, fa)
        power = 1.0 if info["power"] == "prop" else values["cres"]
        with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
            term = values["bres"] * np.power(fa, power)
            if not info["additive"]:
                g = term
            elif combined == 1:
                g = values["ares"] + term
            else:
                g = np.sqrt(values["ares"] ** 2 + term**2)

    g = np.where(np.isnan(g), XMAX, g)
    g = np.where(g == 0.0, 1.0, g)
    return np.clip(g, XMIN, XMAX)
