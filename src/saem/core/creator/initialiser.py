import copy

import numpy as np

from saem.core.creator.architector import n_information_parameters
from saem.core.utils.residual_models import RESIDUAL_MODELS


def step_schedules(general_dict):
    """
    Default step-size schedules.

    Both schedules are 1 during the ``n_burn`` exploration iterations and
    then decrease: ``pas[k] = 1/k**step_power`` and ``pash[k] = 1/k`` for the
    ``n_em`` smoothing iterations (``k`` starting at 1).

    Returns
    -------
    tuple
        ``(pas, pash)`` arrays of length ``n_burn + n_em``.
    """
    n_burn = general_dict["n_burn"]
    k = np.arange(1, general_dict["n_em"] + 1, dtype=float)
    pas = general_dict["pas"]
    pash = general_dict["pash"]
    if pas is None:
        pas = np.concatenate([np.ones(n_burn), 1.0 / k ** general_dict["step_power"]])
    if pash is None:
        pash = np.concatenate([np.ones(n_burn), 1.0 / k])
    return np.asarray(pas, dtype=float), np.asarray(pash, dtype=float)


def stack_events(evt, n_subjects, nmc):
    """Tile the events once per chain, offsetting the subject column by ``k*N``."""
    blocks = []
    for k in range(nmc):
        evt_k = np.array(evt, dtype=float, copy=True)
        evt_k[:, 0] += k * n_subjects
        blocks.append(evt_k)
    return np.vstack(blocks)


def stack_observations(observations_dict, ue, nmc):
    """
    Observation context of the stacked chains.

    Returns
    -------
    dict
        ``y``, ``subject`` (chain-subject index), ``endpoint``, ``ue`` and
        ``n_chain_subjects`` over ``nmc`` copies of the data.
    """
    n_subjects = observations_dict["n_subjects"]
    subject = observations_dict["subject"]
    return {
        "y": np.tile(observations_dict["y"], nmc),
        "subject": np.concatenate([subject + k * n_subjects for k in range(nmc)]),
        "endpoint": np.tile(observations_dict["endpoint"], nmc),
        "ue": np.tile(ue, (nmc, 1)),
        "n_chain_subjects": n_subjects * nmc,
    }


def history_columns(design, residual_dict, history_dict):
    """
    Select the columns of the parameter history.

    The history holds the kept covariate coefficients, the kept diagonal
    elements of ``Gamma2_phi1`` and the residual parameters that are not
    fixed, in this order.

    Returns
    -------
    dict
        ``theta_keep`` and ``omega_keep`` index arrays, ``res_keep`` list of
        ``(endpoint, parameter)`` pairs and the column ``names``.
    """
    theta_keep = history_dict["theta_keep"]
    if theta_keep is None:
        theta_keep = np.arange(design["n_beta"])
    omega_keep = history_dict["omega_keep"]
    if omega_keep is None:
        omega_keep = np.arange(len(design["i1"]))

    names = [design["beta_names"][i] for i in theta_keep]
    names += [f"V({history_dict['phi_names'][design['i1'][j]]})" for j in omega_keep]

    res_keep = []
    n_endpoints = len(residual_dict["model"])
    for b, variant in enumerate(residual_dict["model"]):
        for name in RESIDUAL_MODELS[variant]["params"]:
            if name in residual_dict["fixed"][b]:
                continue
            res_keep.append((b, name))
            names.append(name if n_endpoints == 1 else f"{name}.{b + 1}")

    return {
        "theta_keep": np.asarray(theta_keep, dtype=int),
        "omega_keep": np.asarray(omega_keep, dtype=int),
        "res_keep": res_keep,
        "names": names,
    }


def initialiser(general_dict, observations_dict, phi_dict, design, residual_dict, transform_dict):
    """
    Create the engine state before the first iteration.

    Chains start at the prior means; all sufficient statistics, information
    terms and posterior moments start at zero.

    Parameters
    ----------
    general_dict : dict
        Iteration controls.
    observations_dict : dict
        Checked observations.
    phi_dict : dict
        Checked parameter specification.
    design : dict
        Covariate design from :func:`~saem.core.creator.architector`.
    residual_dict : dict
        Checked residual models (copied).
    transform_dict : dict
        Checked transforms (copied).

    Returns
    -------
    dict
        Mutable engine state.
    """
    n_subjects = observations_dict["n_subjects"]
    nmc = general_dict["nmc"]
    i1 = design["i1"]
    i0 = design["i0"]
    nb_param = n_information_parameters(design)

    mprior_phi1 = design["phi1"]["cov"] @ design["phi1"]["mcov"]
    mprior_phi0 = design["phi0"]["cov"] @ design["phi0"]["mcov"]
    mprior = np.zeros((n_subjects, phi_dict["nphi"]))
    mprior[:, i1] = mprior_phi1
    mprior[:, i0] = mprior_phi0

    return {
        "phiM": np.tile(mprior, (nmc, 1)),
        "mprior_phi1": mprior_phi1,
        "mprior_phi0": mprior_phi0,
        "gamma2_phi1": np.array(phi_dict["omega"], dtype=float, copy=True),
        "dgamma2_phi0": np.array(phi_dict["omega0"], dtype=float, copy=True),
        "gamma2_phi0": np.diag(phi_dict["omega0"]).astype(float),
        "statphi11": np.zeros((n_subjects, len(i1))),
        "statphi12": np.zeros((len(i1), len(i1))),
        "statphi01": np.zeros((n_subjects, len(i0))),
        "statphi02": np.zeros((len(i0), len(i0))),
        "statrese": np.zeros(len(residual_dict["model"])),
        "plambda": design["beta_values"].copy(),
        "residual": copy.deepcopy(residual_dict),
        "transform": copy.deepcopy(transform_dict),
        "resy": np.zeros(nmc),
        "L": np.zeros(nb_param),
        "Ha": np.zeros((nb_param, nb_param)),
        "Hb": np.zeros((nb_param, nb_param)),
        "mpost_phi": np.zeros((n_subjects, phi_dict["nphi"])),
        "cpost_phi": np.zeros((n_subjects, phi_dict["nphi"])),
        # block x kernel x (accepted, proposed)
        "acceptance": np.zeros((2, 3, 2), dtype=int),
    }
