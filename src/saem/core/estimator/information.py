"""
Stochastic approximation of the observed Fisher information.

Per chain the complete-data score ``d1logk`` and second-derivative matrix
``d2logk`` are evaluated with respect to the covariate coefficients, the
random-effect variances and the residual variance of the first endpoint.
Their chain averages are smoothed with the ``pash`` schedule into ``L``
(score), ``Ha`` (Louis' formula with the score outer product) and ``Hb``
(without). Posterior means and second moments of the individual parameters
are smoothed the same way.
"""

import numpy as np

from saem.core.creator.architector import n_information_parameters
from saem.core.estimator.stochastic_approximation import robbins_monro

# Bound of the residual variance terms; the score outer product stays finite
SCORE_CAP = 1e150


def chain_information(phi, state, design, observations_dict):
    """
    Sum the per-chain score and curvature terms.

    Parameters
    ----------
    phi : numpy.ndarray
        Individual parameters, shape ``(N, nphi, nmc)``.
    state : dict
        Engine state at the start of the iteration: prior means, the
        ``precision1``/``precision0`` quantities, ``gamma2_phi1``, ``sigma2``
        and the per-chain squared residuals ``resy``.
    design : dict
        Covariate design.
    observations_dict : dict
        Observations of one chain.

    Returns
    -------
    tuple
        ``(D1, D11, D2)`` summed over chains.
    """
    i1 = design["i1"]
    i0 = design["i0"]
    block1 = design["phi1"]
    block0 = design["phi0"]
    nl1 = block1["n_beta"]
    nl = nl1 + block0["n_beta"]
    nphi1 = len(i1)
    nb_param = n_information_parameters(design)
    n_subjects = phi.shape[0]
    n_obs = observations_dict["n_obs"]
    mcov = design["covariate_matrix"]
    sigma2 = state["residual"]["sigma2"][0]
    gamma2_phi1 = np.diag(state["gamma2_phi1"])
    prec1 = state["precision1"]
    prec0 = state["precision0"]

    d2_base = np.zeros((nb_param, nb_param))
    d2_base[:nl1, :nl1] = -prec1["cgamma"]
    if len(i0) > 0:
        d2_base[nl1:nl, nl1:nl] = -prec0["cgamma"]

    D1 = np.zeros(nb_param)
    D11 = np.zeros((nb_param, nb_param))
    D2 = np.zeros((nb_param, nb_param))

    for k in range(phi.shape[2]):
        dphi1k = phi[:, i1, k] - state["mprior_phi1"]
        dphi0k = phi[:, i0, k] - state["mprior_phi0"]
        sdg1 = np.sum(dphi1k * dphi1k, axis=0) / gamma2_phi1

        md1 = (prec1["igamma"] @ (dphi1k.T @ mcov)).T
        d1_mu_phi1 = md1[block1["cov_row"], block1["col"]]
        if len(i0) > 0:
            md0 = (prec0["igamma"] @ (dphi0k.T @ mcov)).T
            d1_mu_phi0 = md0[block0["cov_row"], block0["col"]]
        else:
            d1_mu_phi0 = np.zeros(0)
        d1_loggamma2_phi1 = 0.5 * sdg1 - 0.5 * n_subjects
        d1_logsigma2 = np.clip(
            0.5 * state["resy"][k] / sigma2 - 0.5 * n_obs, -SCORE_CAP, SCORE_CAP
        )

        d1logk = np.concatenate(
            [d1_mu_phi1, d1_mu_phi0, d1_loggamma2_phi1, [d1_logsigma2]]
        )
        D1 += d1logk
        D11 += np.outer(d1logk, d1logk)

        d2logk = d2_base.copy()
        for l in range(nl1):
            j = block1["col"][l]
            temp = -np.dot(block1["cov"][:, l], dphi1k[:, j]) / gamma2_phi1[j]
            d2logk[l, nl + j] = temp
            d2logk[nl + j, l] = temp
        for j in range(nphi1):
            d2logk[nl + j, nl + j] = -0.5 * sdg1[j]
        d2logk[-1, -1] = max(-0.5 * state["resy"][k] / sigma2, -SCORE_CAP)
        D2 += d2logk

    return D1, D11, D2


def update_information(state, D1, D11, D2, phi, step, i0):
    """
    Smooth the information terms and posterior moments in place.

    ``mpost_phi`` of the covariate-only parameters is reset to their prior
    mean since they carry no random effect.
    """
    nmc = phi.shape[2]
    dda = np.outer(D1 / nmc, D1 / nmc) - D11 / nmc - D2 / nmc
    ddb = -D11 / nmc - D2 / nmc
    state["L"] = robbins_monro(state["L"], D1 / nmc, step)
    state["Ha"] = robbins_monro(state["Ha"], dda, step)
    state["Hb"] = robbins_monro(state["Hb"], ddb, step)

    state["mpost_phi"] = robbins_monro(state["mpost_phi"], phi.mean(axis=2), step)
    state["cpost_phi"] = robbins_monro(state["cpost_phi"], (phi * phi).mean(axis=2), step)
    state["mpost_phi"][:, i0] = state["mprior_phi0"]
