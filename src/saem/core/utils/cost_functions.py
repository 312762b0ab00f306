import numpy as np

from saem.core.utils.residual_models import (
    RESIDUAL_MODELS,
    decode_parameter,
    residual_scale,
)
from saem.core.utils.transforms import power_transform


def unpack_parameters(x, context):
    """
    Build the natural parameter values from an optimizer vector.

    Free parameters are taken from ``x`` in the order of ``context["free"]``
    and decoded; fixed ones are read from ``context["fixed"]``.

    Parameters
    ----------
    x : array-like
        Optimizer vector on the unconstrained scale.
    context : dict
        Objective context, see :func:`residual_cost`.

    Returns
    -------
    dict
        Natural values keyed by parameter name.
    """
    values = dict(context["fixed"])
    for name, xi in zip(context["free"], np.atleast_1d(x)):
        values[name] = decode_parameter(name, float(xi), context["ranges"])
    return values


def residual_cost(x, context):
    """
    Residual-model objective of one endpoint.

    Computes ``sum(r**2 + 2*log(g))`` with ``r = (T(y) - T(f))/g`` where
    ``T`` is the endpoint transform and ``g`` the residual scale of the
    variant. This is twice the normal negative log-likelihood up to a
    constant.

    Parameters
    ----------
    x : array-like
        Free parameters on the optimizer scale.
    context : dict
        Objective context with keys:

        - ``variant``: residual model code
        - ``free``: names of the optimized parameters, in order
        - ``fixed``: natural values of the remaining parameters
        - ``y``, ``f``: observations and predictions of the endpoint
        - ``yt``, ``ft``: the same on the transformed scale
        - ``lambda``, ``yj``, ``low``, ``hi``: transform of the endpoint
        - ``combined``, ``prop_transformed``: scale options
        - ``ranges``: bounds of the power and lambda parameters

    Returns
    -------
    float
        Objective value.
    """
    values = unpack_parameters(x, context)

    if "lres" in RESIDUAL_MODELS[context["variant"]]["params"]:
        lam = values["lres"]
        yt = power_transform(context["y"], lam, context["yj"], context["low"], context["hi"])
        ft = power_transform(context["f"], lam, context["yj"], context["low"], context["hi"])
    else:
        yt = context["yt"]
        ft = context["ft"]

    g = residual_scale(
        context["f"],
        ft,
        values,
        context["variant"],
        combined=context["combined"],
        prop_transformed=context["prop_transformed"],
    )
    r = (yt - ft) / g
    return float(np.sum(r * r + 2.0 * np.log(g)))
