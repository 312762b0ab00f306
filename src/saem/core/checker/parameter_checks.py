import numpy as np

from saem.core.estimator.optimization import OPTIMIZERS
from saem.core.utils.distributions import DISTRIBUTIONS

from ._utils import _warn


def _as_matrix(value, shape, name, default=0.0, dtype=float):
    """Return ``value`` as an array of ``shape``, or a filled default when None."""
    if value is None:
        return np.full(shape, default, dtype=dtype)
    value = np.asarray(value, dtype=dtype)
    if value.shape != shape:
        raise ValueError(f"'{name}' must have shape {shape}, got {value.shape}.")
    return value


def _check_random_effects(random_effects, nphi):
    """Boolean mask of the parameters with inter-individual variability."""
    if random_effects is None:
        return np.ones(nphi, dtype=bool)
    mask = np.asarray(random_effects)
    if mask.dtype != bool:
        # list of parameter positions
        positions = mask.astype(int).ravel()
        if np.any((positions < 0) | (positions >= nphi)):
            raise ValueError("'random_effects' refers to unknown parameters.")
        mask = np.zeros(nphi, dtype=bool)
        mask[positions] = True
    if mask.shape != (nphi,):
        raise ValueError(f"'random_effects' must have one value per parameter ({nphi}).")
    return mask


def _check_omega(omega, nphi1):
    """
    Initial covariance of the random effects.

    A vector is taken as the diagonal; None gives the identity.

    Raises
    ------
    ValueError
        If the matrix is not square of the right size, not symmetric or has
        non-positive variances.
    """
    if omega is None:
        return np.eye(nphi1)
    omega = np.asarray(omega, dtype=float)
    if omega.ndim <= 1:
        omega = np.diag(np.atleast_1d(omega))
    if omega.shape != (nphi1, nphi1):
        raise ValueError(
            f"'omega' must be {nphi1}x{nphi1} (one row per random effect), "
            f"got {omega.shape}."
        )
    if not np.allclose(omega, omega.T):
        raise ValueError("'omega' must be symmetric.")
    if np.any(np.diag(omega) <= 0):
        raise ValueError("'omega' must have positive variances.")
    return omega


def _check_phi(
    theta,
    n_covariates,
    random_effects=None,
    omega=None,
    covariate_model=None,
    beta=None,
    fixed_theta=None,
    fixed_beta=None,
    covstruct=None,
    fixed_omega=None,
    omega0=None,
    minv=1e-20,
    phi_names=None,
    silent=False,
):
    """
    Check the individual-parameter model.

    Parameters
    ----------
    theta : array-like
        Initial population values (intercepts) of the ``nphi`` parameters.
    n_covariates : int
        Number of subject covariates.
    random_effects : array-like, optional
        Boolean mask or positions of the parameters with random effects.
    omega : array-like, optional
        Initial covariance (or variances) of the random effects.
    covariate_model : array-like, optional
        ``(n_covariates, nphi)`` indicator of covariate effects.
    beta : array-like, optional
        Initial covariate coefficients, same shape as ``covariate_model``.
    fixed_theta, fixed_beta : array-like, optional
        Masks of intercepts and coefficients held at their initial value.
    covstruct : array-like, optional
        0/1 mask of the estimated covariance elements; diagonal by default.
    fixed_omega : array-like, optional
        Mask of covariance elements held at their initial value.
    omega0 : array-like, optional
        Initial variances of the covariate-only parameters.
    minv : float or array-like
        Lower bound of the variances.
    phi_names : list of str, optional
        Parameter names.
    silent : bool
        Whether to suppress warnings.

    Returns
    -------
    dict
        Parameter model specification.
    """
    theta = np.atleast_1d(np.asarray(theta, dtype=float)).ravel()
    nphi = len(theta)
    if nphi == 0:
        raise ValueError("'theta' must contain at least one parameter.")

    mask = _check_random_effects(random_effects, nphi)
    i1 = np.flatnonzero(mask)
    i0 = np.flatnonzero(~mask)
    if len(i1) == 0:
        raise ValueError("At least one parameter must have a random effect.")
    nphi1 = len(i1)

    omega = _check_omega(omega, nphi1)

    covariate_model = _as_matrix(
        covariate_model, (n_covariates, nphi), "covariate_model", 0, dtype=int
    )
    if np.any(~np.isin(covariate_model, (0, 1))):
        raise ValueError("'covariate_model' must contain only 0 and 1.")
    beta = _as_matrix(beta, (n_covariates, nphi), "beta")
    if np.any(beta[covariate_model == 0] != 0):
        _warn("Coefficients outside 'covariate_model' are ignored.", silent)
        beta = np.where(covariate_model == 1, beta, 0.0)

    fixed_theta = _as_matrix(fixed_theta, (nphi,), "fixed_theta", False, dtype=bool)
    fixed_beta = _as_matrix(fixed_beta, (n_covariates, nphi), "fixed_beta", False, dtype=bool)

    if covstruct is None:
        covstruct = np.eye(nphi1)
    covstruct = _as_matrix(covstruct, (nphi1, nphi1), "covstruct")
    if np.any(np.diag(covstruct) != 1):
        _warn("The diagonal of 'covstruct' must be estimated; setting it to 1.", silent)
        np.fill_diagonal(covstruct, 1.0)
    if not np.array_equal(covstruct, covstruct.T):
        raise ValueError("'covstruct' must be symmetric.")
    omega = omega * covstruct

    if fixed_omega is not None:
        fixed_omega = _as_matrix(fixed_omega, (nphi1, nphi1), "fixed_omega", dtype=bool)
        if not fixed_omega.any():
            fixed_omega = None

    if omega0 is None:
        omega0 = np.ones(len(i0))
    omega0 = np.atleast_1d(np.asarray(omega0, dtype=float)).ravel()
    if len(omega0) != len(i0):
        raise ValueError(
            f"'omega0' must have one value per parameter without random effect ({len(i0)})."
        )

    minv = np.asarray(minv, dtype=float)
    minv = np.full(nphi, float(minv)) if minv.ndim == 0 else minv.ravel()
    if len(minv) != nphi:
        raise ValueError(f"'minv' must be a scalar or have {nphi} values.")

    if phi_names is None:
        phi_names = [f"phi{j + 1}" for j in range(nphi)]
    if len(phi_names) != nphi:
        raise ValueError(f"'phi_names' must have {nphi} names.")

    return {
        "nphi": nphi,
        "names": list(phi_names),
        "theta": theta,
        "i1": i1,
        "i0": i0,
        "omega": omega,
        "omega0": omega0,
        "covariate_model": covariate_model,
        "beta": beta,
        "fixed_theta": fixed_theta,
        "fixed_beta": fixed_beta,
        "covstruct": covstruct,
        "fixed_omega": fixed_omega,
        "minv": minv,
    }


def _check_schedule(schedule, niter, name):
    """
    Check a user-supplied step schedule.

    Raises
    ------
    ValueError
        Unless the schedule has ``niter`` values in ``(0, 1]`` that never
        increase.
    """
    if schedule is None:
        return None
    schedule = np.asarray(schedule, dtype=float).ravel()
    if len(schedule) != niter:
        raise ValueError(f"'{name}' must have {niter} values (n_burn + n_em).")
    if np.any((schedule <= 0) | (schedule > 1)):
        raise ValueError(f"'{name}' values must lie in (0, 1].")
    if np.any(np.diff(schedule) > 0):
        raise ValueError(f"'{name}' must be non-increasing.")
    return schedule


def _check_distribution(distribution):
    if isinstance(distribution, str):
        if distribution not in DISTRIBUTIONS:
            raise ValueError(
                f"Unknown distribution '{distribution}'. "
                f"Use one of: {', '.join(DISTRIBUTIONS)}"
            )
        return DISTRIBUTIONS[distribution]
    code = int(distribution)
    if code not in DISTRIBUTIONS.values():
        raise ValueError(f"Unknown distribution (id={distribution})")
    return code


def _check_controls(
    n_burn=200,
    n_em=300,
    nmc=3,
    nu=(2, 2, 2),
    rmcmc=0.5,
    nb_sa=None,
    coef_sa=0.95,
    nb_correl=0,
    nb_fix_omega=0,
    nb_fix_resid=0,
    niter_phi0=None,
    coef_phi0=0.9638,
    step_power=1.0,
    pas=None,
    pash=None,
    itmax=100,
    tol=1e-4,
    optimizer="nelder-mead",
    max_ode_recalc=5,
    ode_recalc_factor=10**0.5,
    distribution="normal",
    print_level=0,
    phi_file=None,
    random_state=None,
    silent=False,
):
    """
    Check the iteration, sampler and optimizer controls.

    Returns
    -------
    dict
        General controls of the fit.
    """
    for name, value in (("n_burn", n_burn), ("n_em", n_em)):
        if int(value) != value or value < 0:
            raise ValueError(f"'{name}' must be a non-negative integer.")
    niter = int(n_burn) + int(n_em)
    if niter == 0:
        raise ValueError("At least one iteration is needed (n_burn + n_em > 0).")
    if int(nmc) < 1:
        raise ValueError("'nmc' must be at least 1.")

    nu = np.asarray(nu, dtype=int).ravel()
    if nu.shape != (3,) or np.any(nu < 0):
        raise ValueError("'nu' must hold three non-negative repetition counts.")
    if rmcmc < 0:
        raise ValueError("'rmcmc' must be non-negative.")
    if not 0 < coef_sa <= 1 or not 0 < coef_phi0 <= 1:
        raise ValueError("'coef_sa' and 'coef_phi0' must lie in (0, 1].")
    if optimizer not in OPTIMIZERS:
        raise ValueError(
            f"Unknown optimizer '{optimizer}'. Use one of: {', '.join(OPTIMIZERS)}"
        )
    if step_power <= 0 or step_power > 1:
        _warn("'step_power' outside (0, 1] does not ensure convergence.", silent)

    return {
        "n_burn": int(n_burn),
        "n_em": int(n_em),
        "niter": niter,
        "nmc": int(nmc),
        "nu": nu,
        "rmcmc": float(rmcmc),
        "nb_sa": int(n_burn) // 2 if nb_sa is None else int(nb_sa),
        "coef_sa": float(coef_sa),
        "nb_correl": int(nb_correl),
        "nb_fix_omega": int(nb_fix_omega),
        "nb_fix_resid": int(nb_fix_resid),
        "niter_phi0": int(n_burn) // 2 if niter_phi0 is None else int(niter_phi0),
        "coef_phi0": float(coef_phi0),
        "step_power": float(step_power),
        "pas": _check_schedule(pas, niter, "pas"),
        "pash": _check_schedule(pash, niter, "pash"),
        "itmax": int(itmax),
        "tol": float(tol),
        "optimizer": optimizer,
        "max_ode_recalc": int(max_ode_recalc),
        "ode_recalc_factor": float(ode_recalc_factor),
        "distribution": _check_distribution(distribution),
        "print_level": int(print_level),
        "phi_file": phi_file,
        "random_state": random_state,
        "silent": silent,
    }
