"""
Sufficient statistics and population parameter updates.

After the E-step every chain contributes first and second moments of the
individual parameters and, per endpoint, a sum of squared standardized
residuals. Their chain averages are smoothed into the running statistics
with the Robbins-Monro recursion ``s <- s + step*(avg - s)``, from which the
covariate coefficients (generalized least squares) and the random-effect
covariances are re-estimated.
"""

import numpy as np
from scipy import linalg

from saem.core.utils.distributions import current_lambda
from saem.core.utils.residual_models import ADD, PROP, XMAX, XMIN, residual_scale
from saem.core.utils.transforms import power_transform


def robbins_monro(stat, average, step):
    """One stochastic approximation step; ``step=1`` returns ``average``."""
    return stat + step * (average - stat)


def squared_residuals(y, f, b, residual_dict, transform_dict, lambda_):
    """
    Sum of squared standardized residuals of one endpoint.

    The residual is ``T(y) - T(f)``; the proportional model divides it by
    ``|f|`` and models without a closed-form update divide it by their
    current residual scale. The sum is clipped into ``[1e-200, 1e300]``.

    Raises
    ------
    ValueError
        If a transformed observation is not finite.
    """
    yj = transform_dict["yj"][b]
    low = transform_dict["low"][b]
    hi = transform_dict["hi"][b]
    yt = power_transform(y, lambda_, yj, low, hi)
    if not np.all(np.isfinite(yt)):
        raise ValueError(
            "NaN in data or transformed data; please check transformation/data"
        )
    ft = power_transform(f, lambda_, yj, low, hi)
    resid = yt - ft

    variant = residual_dict["model"][b]
    if variant == PROP:
        fa = np.abs(ft if residual_dict["prop_transformed"][b] else f)
        fa = np.where(fa <= XMIN, 1.0, np.minimum(fa, XMAX))
        resid = resid / fa
    elif variant != ADD:
        values = {
            "ares": residual_dict["ares"][b],
            "bres": residual_dict["bres"][b],
            "cres": residual_dict["cres"][b],
        }
        resid = resid / residual_scale(
            f,
            ft,
            values,
            variant,
            combined=residual_dict["combined"][b],
            prop_transformed=residual_dict["prop_transformed"][b],
        )

    resk = float(np.dot(resid, resid))
    if np.isnan(resk):
        return XMAX
    return min(max(resk, XMIN), XMAX)


def chain_statistics(phi, f, state, observations_dict, design):
    """
    Per-chain sufficient statistics summed over chains.

    Parameters
    ----------
    phi : numpy.ndarray
        Individual parameters, shape ``(N, nphi, nmc)``.
    f : numpy.ndarray
        Cached predictions over the stacked observations.
    state : dict
        Engine state (residual and transform models).
    observations_dict : dict
        Observations of one chain.
    design : dict
        Covariate design with the ``i1``/``i0`` partition.

    Returns
    -------
    dict
        ``statphi11``, ``statphi12``, ``statphi01``, ``statphi02`` and
        ``statr`` summed over chains, and ``resy`` (squared residuals of the
        first endpoint per chain).
    """
    i1 = design["i1"]
    i0 = design["i0"]
    n_obs = observations_dict["n_obs"]
    endpoint = observations_dict["endpoint"]
    y = observations_dict["y"]
    residual_dict = state["residual"]
    transform_dict = state["transform"]
    lambdas = current_lambda(residual_dict, transform_dict)
    nmc = phi.shape[2]
    n_endpoints = len(residual_dict["model"])

    stats = {
        "statphi11": np.zeros((phi.shape[0], len(i1))),
        "statphi12": np.zeros((len(i1), len(i1))),
        "statphi01": np.zeros((phi.shape[0], len(i0))),
        "statphi02": np.zeros((len(i0), len(i0))),
        "statr": np.zeros(n_endpoints),
        "resy": np.zeros(nmc),
    }

    for k in range(nmc):
        phi1k = phi[:, i1, k]
        phi0k = phi[:, i0, k]
        stats["statphi11"] += phi1k
        stats["statphi12"] += phi1k.T @ phi1k
        stats["statphi01"] += phi0k
        stats["statphi02"] += phi0k.T @ phi0k

        fk = f[k * n_obs : (k + 1) * n_obs]
        for b in range(n_endpoints):
            mask = endpoint == b
            resk = squared_residuals(
                y[mask], fk[mask], b, residual_dict, transform_dict, lambdas[b]
            )
            stats["statr"][b] += resk
            if b == 0:
                stats["resy"][k] = resk

    return stats


def update_statistics(state, stats, step, nmc):
    """Smooth the chain averages into the running statistics in place."""
    for key in ("statphi11", "statphi12", "statphi01", "statphi02"):
        state[key] = robbins_monro(state[key], stats[key] / nmc, step)
    state["statrese"] = robbins_monro(state["statrese"], stats["statr"] / nmc, step)


def precision(gamma, block_design):
    """
    Precision-weighted design quantities of one block.

    Returns
    -------
    dict
        ``igamma`` (inverse covariance), ``d1gamma`` (``LCOV @ Gamma^-1``)
        and ``cgamma`` (``COV'COV * LCOV Gamma^-1 LCOV'``).
    """
    if gamma.shape[0] == 0:
        empty = np.zeros((0, 0))
        return {"igamma": empty, "d1gamma": np.zeros((0, 0)), "cgamma": empty}
    igamma = linalg.inv(gamma, check_finite=False)
    d1gamma = block_design["lcov"] @ igamma
    d2gamma = d1gamma @ block_design["lcov"].T
    return {
        "igamma": igamma,
        "d1gamma": d1gamma,
        "cgamma": block_design["cov2"] * d2gamma,
    }


def update_coefficients(block_design, prec, statphi):
    """
    Generalized least-squares update of the covariate coefficients of a block.

    Fixed coefficients keep their value. ``block_design["mcov"]`` is updated
    in place.

    Returns
    -------
    tuple
        ``(plambda, mprior)``: estimated coefficients and prior means.
    """
    n_beta = block_design["cov"].shape[1]
    if n_beta == 0:
        return np.zeros(0), block_design["cov"] @ block_design["mcov"]

    rhs = np.sum(prec["d1gamma"] * (block_design["cov"].T @ statphi), axis=1)
    plambda = linalg.solve(prec["cgamma"], rhs, assume_a="pos")

    rows = np.arange(n_beta)
    cols = block_design["col"]
    fixed = block_design["fixed"]
    if len(fixed) > 0:
        plambda[fixed] = block_design["mcov"][rows[fixed], cols[fixed]]
    block_design["mcov"][rows, cols] = plambda
    return plambda, block_design["cov"] @ block_design["mcov"]


def _floor_diagonal(gamma, minv):
    diag = np.diag(gamma).copy()
    low = diag < minv
    gamma[low, low] = minv[low]
    return gamma


def estimate_covariance(statphi1, statphi2, mprior, n_subjects):
    """``(s2 + m'm - s1'm - m's1)/N``."""
    return (
        statphi2
        + mprior.T @ mprior
        - statphi1.T @ mprior
        - mprior.T @ statphi1
    ) / n_subjects


def update_covariance(state, general, design, kiter):
    """
    Update the random-effect covariances in place.

    Parameters
    ----------
    state : dict
        Engine state with the running statistics, prior means and current
        ``gamma2_phi1``/``gamma2_phi0``.
    general : dict
        Iteration controls (``nb_sa``, ``coef_sa``, ``nb_correl``,
        ``nb_fix_omega``, ``niter_phi0``, ``coef_phi0``).
    design : dict
        Design with the block partition, ``covstruct``, ``minv`` and the
        fixed covariance elements.
    kiter : int
        Zero-based iteration number.
    """
    i1 = design["i1"]
    i0 = design["i0"]
    n_subjects = state["mprior_phi1"].shape[0]

    g1 = estimate_covariance(
        state["statphi11"], state["statphi12"], state["mprior_phi1"], n_subjects
    )
    if kiter <= general["nb_sa"]:
        gamma = np.maximum(state["gamma2_phi1"] * general["coef_sa"], np.diag(np.diag(g1)))
    else:
        gamma = g1
    gamma = gamma * design["covstruct"]
    gamma = _floor_diagonal(gamma, design["minv"][i1])

    fixed = design["fixed_omega"]
    if fixed is not None and kiter > general["nb_fix_omega"]:
        gamma[fixed] = design["omega_values"][fixed]

    if kiter <= general["nb_correl"]:
        gamma = np.diag(np.diag(gamma))
    state["gamma2_phi1"] = gamma

    if len(i0) > 0:
        if kiter <= general["niter_phi0"]:
            g0 = estimate_covariance(
                state["statphi01"], state["statphi02"], state["mprior_phi0"], n_subjects
            )
            g0 = _floor_diagonal(g0, design["minv"][i0])
            state["dgamma2_phi0"] = np.diag(g0).copy()
        else:
            state["dgamma2_phi0"] = state["dgamma2_phi0"] * general["coef_phi0"]
        state["gamma2_phi0"] = np.diag(state["dgamma2_phi0"])
