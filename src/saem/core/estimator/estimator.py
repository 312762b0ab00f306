import warnings

import numpy as np

from saem.core.creator.initialiser import stack_events, stack_observations, step_schedules

from .information import chain_information, update_information
from .mcmc import likelihood_energy, sample_block, set_block
from .residual_fit import fit_residual_models
from .stochastic_approximation import (
    chain_statistics,
    precision,
    update_coefficients,
    update_covariance,
    update_statistics,
)

NON_FINITE_PREDICTION = 1e99


class FitInterrupted(RuntimeError):
    """
    Raised when a fit is stopped before its last iteration.

    Attributes
    ----------
    history : numpy.ndarray
        Parameter history of the completed iterations.
    iteration : int
        Number of completed iterations.
    """

    def __init__(self, message, history, iteration):
        super().__init__(message)
        self.history = history
        self.iteration = iteration


def _get_rng(random_state):
    if random_state is not None:
        if isinstance(random_state, (int, np.integer)):
            return np.random.default_rng(random_state)
        return random_state
    return np.random.default_rng()


def _split_prediction(result, n_rows):
    """Split an evaluator result into predictions, censoring codes and limits."""
    result = np.asarray(result, dtype=float)
    if result.ndim == 1:
        f = result.copy()
        cens = np.zeros(len(f))
        limit = np.full(len(f), -np.inf)
    elif result.ndim == 2 and result.shape[1] == 3:
        f = result[:, 0].copy()
        cens = result[:, 1].copy()
        limit = result[:, 2].copy()
    else:
        raise ValueError(
            "The structural model must return an array of shape (n_obs,) or "
            f"(n_obs, 3), got {result.shape}."
        )
    if len(f) != n_rows:
        raise ValueError(
            f"The structural model returned {len(f)} predictions, expected {n_rows}."
        )
    return {"f": f, "cens": cens, "limit": limit}


def _create_model_evaluator(model, evt_M, model_options, general_dict, n_rows):
    """
    Wrap the structural model into ``evaluate(phiM) -> prediction``.

    Non-finite predictions trigger up to ``max_ode_recalc`` re-evaluations
    with ``options["tolerance_factor"]`` multiplied by ``ode_recalc_factor``
    each time. Predictions still non-finite afterwards are replaced by
    ``1e99`` and reported once per fit.
    """
    base_options = dict(model_options or {})
    base_options.setdefault("tolerance_factor", 1.0)
    warned = [False]

    def evaluate(phiM):
        options = dict(base_options)
        prediction = _split_prediction(model(phiM, evt_M, options), n_rows)
        n_recalc = 0
        while (
            not np.all(np.isfinite(prediction["f"]))
            and n_recalc < general_dict["max_ode_recalc"]
        ):
            options["tolerance_factor"] *= general_dict["ode_recalc_factor"]
            prediction = _split_prediction(model(phiM, evt_M, options), n_rows)
            n_recalc += 1

        bad = ~np.isfinite(prediction["f"])
        if np.any(bad):
            prediction["f"][bad] = NON_FINITE_PREDICTION
            if not warned[0]:
                warnings.warn(
                    "The structural model returned non-finite predictions; "
                    f"they were replaced by {NON_FINITE_PREDICTION:g}.",
                    RuntimeWarning,
                )
                warned[0] = True
        return prediction

    return evaluate


def _history_row(state, history_cols):
    residual_dict = state["residual"]
    row = [state["plambda"][history_cols["theta_keep"]]]
    row.append(np.diag(state["gamma2_phi1"])[history_cols["omega_keep"]])
    row.append(
        np.array([residual_dict[name][b] for b, name in history_cols["res_keep"]])
    )
    return np.concatenate(row)


def _print_history(kiter, row, print_level):
    if print_level != 0 and (kiter == 0 or (kiter + 1) % print_level == 0):
        print(f"{kiter + 1:03d}: " + "\t".join(f"{value:f}" for value in row))


def _iteration(kiter, state, general_dict, observations_dict, design, context, prediction,
               evaluate, rng, pas, pash):
    """Run the E-step, statistics, population, residual and information updates."""
    i1 = design["i1"]
    i0 = design["i0"]
    nmc = general_dict["nmc"]
    n_subjects = observations_dict["n_subjects"]
    nphi = state["phiM"].shape[1]
    nu = general_dict["nu"] * 20 if kiter == 0 else general_dict["nu"]

    state["precision1"] = precision(state["gamma2_phi1"], design["phi1"])
    state["precision0"] = precision(state["gamma2_phi0"], design["phi0"])

    # E-step
    u_y = likelihood_energy(prediction, context)
    block1 = set_block(
        i1, state["gamma2_phi1"], state["precision1"]["igamma"], state["mprior_phi1"], nmc
    )
    state["acceptance"][0] += sample_block(
        block1, nu, state["phiM"], u_y, prediction, evaluate, context, rng
    )
    if len(i0) > 0:
        block0 = set_block(
            i0, state["gamma2_phi0"], state["precision0"]["igamma"], state["mprior_phi0"], nmc
        )
        state["acceptance"][1] += sample_block(
            block0, nu, state["phiM"], u_y, prediction, evaluate, context, rng
        )

    phi = state["phiM"].reshape(nmc, n_subjects, nphi).transpose(1, 2, 0)

    # sufficient statistics and information of this iteration's chains
    stats = chain_statistics(phi, prediction["f"], state, observations_dict, design)
    state["resy"] = stats["resy"]
    D1, D11, D2 = chain_information(phi, state, design, observations_dict)
    update_statistics(state, stats, pas[kiter], nmc)

    # M-step
    plambda1, state["mprior_phi1"] = update_coefficients(
        design["phi1"], state["precision1"], state["statphi11"]
    )
    state["plambda"][design["phi1"]["index"]] = plambda1
    if len(i0) > 0:
        plambda0, state["mprior_phi0"] = update_coefficients(
            design["phi0"], state["precision0"], state["statphi01"]
        )
        state["plambda"][design["phi0"]["index"]] = plambda0
    update_covariance(state, general_dict, design, kiter)
    fit_residual_models(
        state, general_dict, observations_dict, prediction["f"], kiter, pas[kiter]
    )

    update_information(state, D1, D11, D2, phi, pash[kiter], i0)
    return phi


def estimator(
    model,
    general_dict,
    observations_dict,
    design,
    state,
    history_cols,
    evt,
    ue,
    model_options=None,
    interrupt_check=None,
):
    """
    Run the SAEM iterations.

    Each iteration samples the individual parameters with the three
    Metropolis-Hastings kernels, smooths the sufficient statistics with the
    ``pas`` schedule, re-estimates the covariate coefficients and
    covariances, refits the residual models and accumulates the Fisher
    information with the ``pash`` schedule. The first ``n_burn`` iterations
    use unit steps (exploration), the last ``n_em`` decreasing ones.

    Parameters
    ----------
    model : callable
        Structural model ``model(phi, evt, options)`` returning predictions
        of shape ``(n_obs,)`` or ``(n_obs, 3)`` (prediction, censoring code,
        limit) for the stacked subjects of ``phi``.
    general_dict : dict
        Checked controls.
    observations_dict : dict
        Checked observations.
    design : dict
        Covariate design; the coefficient matrices are updated in place.
    state : dict
        Engine state from ``initialiser``; updated in place.
    history_cols : dict
        Column selection of the parameter history.
    evt : numpy.ndarray
        Event table of one chain with zero-based subjects in column 0.
    ue : numpy.ndarray
        ``(N, nphi)`` user-exposure matrix.
    model_options : dict, optional
        Options forwarded to the structural model.
    interrupt_check : callable, optional
        Called without arguments after every iteration; a true result stops
        the fit.

    Returns
    -------
    dict
        ``history`` (``niter`` rows), the final ``state`` and ``prediction``
        and the last individual parameter array ``phi``.

    Raises
    ------
    FitInterrupted
        When ``interrupt_check`` asks to stop or on ``KeyboardInterrupt``.
    ValueError
        For non-finite transformed observations or malformed model output.
    """
    nmc = general_dict["nmc"]
    niter = general_dict["niter"]
    n_subjects = observations_dict["n_subjects"]
    rng = _get_rng(general_dict["random_state"])
    pas, pash = step_schedules(general_dict)

    context = stack_observations(observations_dict, ue, nmc)
    context.update(
        {
            "residual": state["residual"],
            "transform": state["transform"],
            "distribution": general_dict["distribution"],
            "rmcmc": general_dict["rmcmc"],
        }
    )
    evt_M = stack_events(evt, n_subjects, nmc)
    evaluate = _create_model_evaluator(
        model, evt_M, model_options, general_dict, observations_dict["n_obs"] * nmc
    )
    prediction = evaluate(state["phiM"])

    history = np.zeros((niter, len(history_cols["names"])))
    phi_handle = open(general_dict["phi_file"], "w") if general_dict["phi_file"] else None
    completed = 0
    phi = None
    try:
        for kiter in range(niter):
            phi = _iteration(
                kiter,
                state,
                general_dict,
                observations_dict,
                design,
                context,
                prediction,
                evaluate,
                rng,
                pas,
                pash,
            )
            if phi_handle is not None:
                np.savetxt(phi_handle, state["phiM"])

            history[kiter] = _history_row(state, history_cols)
            _print_history(kiter, history[kiter], general_dict["print_level"])
            completed = kiter + 1

            if interrupt_check is not None and interrupt_check():
                raise FitInterrupted(
                    f"Fit interrupted after {completed} iterations.",
                    history[:completed].copy(),
                    completed,
                )
    except KeyboardInterrupt:
        raise FitInterrupted(
            f"Fit interrupted after {completed} iterations.",
            history[:completed].copy(),
            completed,
        ) from None
    finally:
        if phi_handle is not None:
            phi_handle.close()

    return {"history": history, "state": state, "prediction": prediction, "phi": phi}
