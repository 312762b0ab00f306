import nlopt
import numpy as np
from scipy.optimize import minimize_scalar

# Values at or above this cap count as a failed evaluation
COST_CAP = 1e300

OPTIMIZERS = {
    "nelder-mead": "LN_NELDERMEAD",
    "newuoa": "LN_NEWUOA",
}


def _configure_optimizer(opt, step, tol, maxeval, relative_ftol=True):
    """
    Configure an NLopt optimizer for the residual-model problems.

    Parameters
    ----------
    opt : nlopt.opt
        NLopt optimizer object
    step : array-like
        Initial step per parameter; only its magnitude is used
    tol : float
        Convergence tolerance
    maxeval : int
        Maximum number of objective evaluations
    relative_ftol : bool, default=True
        Use ``tol`` as relative tolerance on the objective (simplex) instead
        of absolute tolerance on the parameters (quadratic models)

    Returns
    -------
    nlopt.opt
        Configured optimizer
    """
    opt.set_initial_step(np.abs(np.asarray(step, dtype=float)))
    if relative_ftol:
        opt.set_ftol_rel(tol)
    else:
        opt.set_xtol_abs(tol)
    opt.set_maxeval(int(maxeval))
    return opt


def _create_objective_function(objective, best):
    """
    Wrap a plain ``objective(x)`` into the NLopt ``f(x, grad)`` signature.

    Exceptions and non-finite values are mapped to :data:`COST_CAP`. The best
    point seen is recorded in ``best`` so that it can be recovered when the
    optimizer stops on round-off.
    """

    def objective_wrapper(x, grad):
        try:
            cf_value = float(objective(x))
        except Exception:
            cf_value = COST_CAP

        if not np.isfinite(cf_value) or cf_value > COST_CAP:
            cf_value = COST_CAP

        if cf_value < best["value"]:
            best["value"] = cf_value
            best["x"] = np.array(x, dtype=float)
        return cf_value

    return objective_wrapper


def _run_optimization(opt, x0, best):
    """
    Run optimization.

    Returns
    -------
    tuple
        ``(x, value)``; ``x`` is None when the run failed
    """
    try:
        x = opt.optimize(np.array(x0, dtype=float))
        value = opt.last_optimum_value()
    except nlopt.RoundoffLimited:
        # the best point reached is still usable
        x = best["x"]
        value = best["value"]
    except Exception:
        return None, COST_CAP

    if x is None or not np.all(np.isfinite(x)) or not value < COST_CAP:
        return None, value
    return np.asarray(x, dtype=float), value


def _run_algorithm(objective, start, step, tol, itmax, algorithm):
    n = len(start)
    nlopt_algorithm = getattr(nlopt, OPTIMIZERS[algorithm], nlopt.LN_NELDERMEAD)
    opt = nlopt.opt(nlopt_algorithm, n)
    if algorithm == "nelder-mead":
        opt = _configure_optimizer(opt, step, tol, itmax * n)
    else:
        opt = _configure_optimizer(opt, step, tol, itmax * n * n, relative_ftol=False)

    best = {"value": COST_CAP, "x": None}
    opt.set_min_objective(_create_objective_function(objective, best))
    return _run_optimization(opt, start, best)


def _minimize_scalar(objective, start, bounds, tol, itmax):
    lower, upper = bounds

    def scalar_objective(x):
        try:
            cf_value = float(objective(np.array([x])))
        except Exception:
            return COST_CAP
        if not np.isfinite(cf_value):
            return COST_CAP
        return min(cf_value, COST_CAP)

    res = minimize_scalar(
        scalar_objective,
        bounds=(lower, upper),
        method="bounded",
        options={"xatol": tol, "maxiter": itmax},
    )
    if not res.success or not np.isfinite(res.x) or not res.fun < COST_CAP:
        return None
    # keep the start when the line search does not improve it
    if scalar_objective(start[0]) < res.fun:
        return np.array([start[0]], dtype=float)
    return np.array([res.x], dtype=float)


def minimize(
    objective,
    start,
    step,
    tol=1e-4,
    itmax=100,
    algorithm="nelder-mead",
    bounds=None,
):
    """
    Minimize a small-dimensional objective without derivatives.

    The configured NLopt algorithm is tried first; if it fails (an exception
    other than round-off termination, a non-finite solution or an optimum at
    or above :data:`COST_CAP`) the alternate algorithm is tried from the same
    start. One-parameter problems with ``bounds`` use SciPy's bounded scalar
    minimizer instead.

    Parameters
    ----------
    objective : callable
        ``objective(x) -> float`` with ``x`` a 1-D array.
    start : array-like
        Starting point.
    step : array-like
        Initial step per parameter (sign is ignored).
    tol : float, default=1e-4
        Convergence tolerance.
    itmax : int, default=100
        Iteration budget per parameter.
    algorithm : str, default="nelder-mead"
        ``"nelder-mead"`` or ``"newuoa"``.
    bounds : tuple of float, optional
        Search interval of the one-parameter line search.

    Returns
    -------
    numpy.ndarray or None
        Minimizer, or None when every attempt failed.
    """
    start = np.atleast_1d(np.asarray(start, dtype=float))
    if algorithm not in OPTIMIZERS:
        raise ValueError(
            f"Unknown optimizer '{algorithm}'. Use one of: {', '.join(OPTIMIZERS)}"
        )

    if len(start) == 1 and bounds is not None:
        return _minimize_scalar(objective, start, bounds, tol, itmax)

    alternate = "newuoa" if algorithm == "nelder-mead" else "nelder-mead"
    for name in (algorithm, alternate):
        # NEWUOA needs at least two parameters
        if len(start) < 2 and name == "newuoa":
            continue
        x, _ = _run_algorithm(objective, start, step, tol, itmax, name)
        if x is not None:
            return x
    return None
