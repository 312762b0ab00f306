"""
Metropolis-Hastings sampling of the individual parameters.

The chain state ``phiM`` stacks ``nmc`` chains of ``N`` subjects
chain-major: rows ``k*N .. (k+1)*N - 1`` belong to chain ``k``. Each kernel
proposes new values for all chain-subjects at once, evaluates the
structural model once over the whole stack and accepts or rejects every
chain-subject independently.
"""

import numpy as np

from saem.core.utils.distributions import observation_nll, subject_nll

INDEPENDENT = 1
RANDOM_WALK = 2
COORDINATE_WALK = 3


def _cholesky_upper(gamma):
    """Upper Cholesky factor, repairing a covariance that is not positive definite."""
    try:
        return np.linalg.cholesky(gamma).T
    except np.linalg.LinAlgError:
        eigval, eigvec = np.linalg.eigh((gamma + gamma.T) / 2.0)
        eigval = np.maximum(eigval, np.finfo(float).eps * max(1.0, eigval.max()))
        return np.linalg.cholesky((eigvec * eigval) @ eigvec.T).T


def set_block(indices, gamma, igamma, mprior, nmc):
    """
    Collect what the kernels need about one block of parameters.

    Parameters
    ----------
    indices : numpy.ndarray
        Columns of ``phiM`` forming the block.
    gamma : numpy.ndarray
        Covariance of the block.
    igamma : numpy.ndarray
        Its inverse.
    mprior : numpy.ndarray
        Prior means, shape ``(N, len(indices))``.
    nmc : int
        Number of chains.

    Returns
    -------
    dict
        Block description used by :func:`do_mcmc`.
    """
    return {
        "i": np.asarray(indices, dtype=int),
        "gamma": gamma,
        "igamma": igamma,
        "chol": _cholesky_upper(gamma),
        "sd": np.sqrt(np.diag(gamma)),
        "mprior_M": np.tile(mprior, (nmc, 1)),
    }


def prior_energy(phiM, block):
    """Quadratic prior term ``0.5*d' Gamma^-1 d`` per chain-subject."""
    dphi = phiM[:, block["i"]] - block["mprior_M"]
    return 0.5 * np.sum(dphi * (dphi @ block["igamma"]), axis=1)


def likelihood_energy(prediction, context):
    """
    Negative log-likelihood of each chain-subject for a set of predictions.

    Parameters
    ----------
    prediction : dict
        ``f``, ``cens`` and ``limit`` arrays over the stacked observations.
    context : dict
        Stacked observations (``y``, ``subject``, ``endpoint``), number of
        chain-subjects ``n_chain_subjects``, ``residual``, ``transform`` and
        ``distribution``.

    Returns
    -------
    numpy.ndarray
        ``U_y`` per chain-subject.
    """
    dyf = observation_nll(
        context["y"],
        prediction["f"],
        prediction["cens"],
        prediction["limit"],
        context["endpoint"],
        context["residual"],
        context["transform"],
        context["distribution"],
    )
    return subject_nll(dyf, context["subject"], context["n_chain_subjects"])


def _accept(phiM, phiMc, u_y, uc_y, u_phi, uc_phi, prediction, candidate, context, rng):
    if u_phi is None:
        deltu = uc_y - u_y
    else:
        deltu = uc_y - u_y + uc_phi - u_phi
    with np.errstate(divide="ignore", invalid="ignore"):
        accepted = deltu < -np.log(rng.uniform(size=len(deltu)))

    phiM[accepted] = phiMc[accepted]
    u_y[accepted] = uc_y[accepted]
    if u_phi is not None:
        u_phi[accepted] = uc_phi[accepted]

    rows = accepted[context["subject"]]
    for key in ("f", "cens", "limit"):
        prediction[key][rows] = candidate[key][rows]
    return int(accepted.sum())


def do_mcmc(method, n_rep, block, phiM, u_y, u_phi, prediction, evaluate, context, rng):
    """
    Run one MH kernel ``n_rep`` times, updating the chain state in place.

    Kernels:

    1. independence proposal from the prior ``mprior + Z @ chol(Gamma)``;
    2. joint random walk ``phi + Z * sqrt(diag(Gamma)) * rmcmc``;
    3. the random walk of kernel 2 applied one coordinate at a time.

    Proposals are masked by the user-exposure matrix ``ue``. Kernel 1 only
    compares likelihoods; kernels 2 and 3 add the prior term.

    Parameters
    ----------
    method : int
        Kernel number (1, 2 or 3).
    n_rep : int
        Number of repetitions.
    block : dict
        Block from :func:`set_block`.
    phiM : numpy.ndarray
        Chain state, modified in place.
    u_y : numpy.ndarray
        Current likelihood energy per chain-subject, modified in place.
    u_phi : numpy.ndarray or None
        Current prior energy, modified in place (kernels 2 and 3).
    prediction : dict
        Cached predictions of the current state, modified in place for the
        accepted chain-subjects.
    evaluate : callable
        ``evaluate(phiM) -> dict`` with ``f``, ``cens`` and ``limit``.
    context : dict
        Likelihood context plus ``ue`` (stacked exposure matrix) and
        ``rmcmc``.
    rng : numpy.random.Generator
        Random generator.

    Returns
    -------
    tuple
        ``(accepted, proposed)`` counts over chain-subjects.
    """
    idx = block["i"]
    n_rows = phiM.shape[0]
    ue = context["ue"]
    accepted = 0
    proposed = 0

    for _ in range(n_rep):
        if method == INDEPENDENT:
            phiMc = phiM.copy()
            z = rng.standard_normal((n_rows, len(idx)))
            phiMc[:, idx] = (z @ block["chol"]) * ue[:, idx] + block["mprior_M"]
            candidate = evaluate(phiMc)
            uc_y = likelihood_energy(candidate, context)
            accepted += _accept(
                phiM, phiMc, u_y, uc_y, None, None, prediction, candidate, context, rng
            )
            proposed += n_rows

        elif method == RANDOM_WALK:
            phiMc = phiM.copy()
            z = rng.standard_normal((n_rows, len(idx)))
            phiMc[:, idx] = phiM[:, idx] + z * (block["sd"] * context["rmcmc"]) * ue[:, idx]
            candidate = evaluate(phiMc)
            uc_y = likelihood_energy(candidate, context)
            uc_phi = prior_energy(phiMc, block)
            accepted += _accept(
                phiM, phiMc, u_y, uc_y, u_phi, uc_phi, prediction, candidate, context, rng
            )
            proposed += n_rows

        elif method == COORDINATE_WALK:
            for k1, col in enumerate(idx):
                phiMc = phiM.copy()
                z = rng.standard_normal(n_rows)
                phiMc[:, col] = (
                    phiM[:, col] + z * block["sd"][k1] * context["rmcmc"] * ue[:, col]
                )
                candidate = evaluate(phiMc)
                uc_y = likelihood_energy(candidate, context)
                uc_phi = prior_energy(phiMc, block)
                accepted += _accept(
                    phiM, phiMc, u_y, uc_y, u_phi, uc_phi, prediction, candidate, context, rng
                )
                proposed += n_rows

        else:
            raise ValueError(f"Unknown MCMC kernel: {method}")

    return accepted, proposed


def sample_block(block, nu, phiM, u_y, prediction, evaluate, context, rng):
    """
    Run the three kernels on one block.

    Returns
    -------
    numpy.ndarray
        Accepted and proposed counts per kernel, shape ``(3, 2)``.
    """
    counts = np.zeros((3, 2), dtype=int)
    counts[0] = do_mcmc(
        INDEPENDENT, nu[0], block, phiM, u_y, None, prediction, evaluate, context, rng
    )
    u_phi = prior_energy(phiM, block)
    counts[1] = do_mcmc(
        RANDOM_WALK, nu[1], block, phiM, u_y, u_phi, prediction, evaluate, context, rng
    )
    counts[2] = do_mcmc(
        COORDINATE_WALK, nu[2], block, phiM, u_y, u_phi, prediction, evaluate, context, rng
    )
    return counts
