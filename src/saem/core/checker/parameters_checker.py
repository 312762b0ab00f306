import numpy as np

from ._utils import _warn
from .data_checks import _check_covariates, _check_events, _check_observations
from .model_checks import _check_residual_models, _check_transforms, _residual_codes
from .parameter_checks import _check_controls, _check_phi


def parameters_checker(
    y,
    id,
    theta,
    evt=None,
    endpoint=None,
    covariates=None,
    controls=None,
    phi_model=None,
    residual=None,
    transform=None,
    history=None,
    ue=None,
    silent=False,
):
    """
    Validate the data and the model specification of a SAEM fit.

    All user inputs are checked for consistency and converted into the
    plain dictionaries consumed by the creator and the estimator. Problems
    that can be repaired are reported with a printed warning (unless
    ``silent``); everything else raises ``ValueError`` before any iteration
    runs.

    **Validation Process**:

    1. **Observations**: numeric values, subject grouping, endpoint coding
    2. **Events**: subject column recoded to zero-based subject indices
    3. **Covariates**: one finite row per subject
    4. **Parameters**: random-effect partition, covariances, covariate model
    5. **Residual models and transforms**: one per endpoint
    6. **Controls**: iteration counts, schedules, sampler and optimizer settings

    Parameters
    ----------
    y : array-like
        Observations, grouped by subject.
    id : array-like
        Subject identifier of each observation.
    theta : array-like
        Initial population values of the individual parameters.
    evt : array-like or pandas.DataFrame, optional
        Event table passed to the structural model; column 0 is the subject.
    endpoint : array-like, optional
        Endpoint label of each observation.
    covariates : array-like or pandas.DataFrame, optional
        Subject-level covariates, one row per subject in order of appearance.
    controls : dict, optional
        Keyword arguments of ``_check_controls``.
    phi_model : dict, optional
        Keyword arguments of ``_check_phi`` (besides ``theta``).
    residual : dict, optional
        Keyword arguments of ``_check_residual_models``.
    transform : dict, optional
        ``transform``, ``lambda_param``, ``low`` and ``hi``.
    history : dict, optional
        ``theta_keep`` and ``omega_keep`` column selections.
    ue : array-like, optional
        ``(N, nphi)`` user-exposure matrix masking the MCMC proposals.
    silent : bool, default=False
        Whether to suppress warnings.

    Returns
    -------
    dict
        ``general``, ``observations``, ``phi``, ``residual``, ``transform``,
        ``history``, ``evt`` and ``ue``.

    Raises
    ------
    ValueError
        If the data or the specification is invalid.
    """
    controls = dict(controls or {})
    phi_model = dict(phi_model or {})
    residual = dict(residual or {})
    transform = dict(transform or {})
    history = dict(history or {})

    general_dict = _check_controls(silent=silent, **controls)

    observations_dict = _check_observations(y, id, endpoint)
    n_subjects = observations_dict["n_subjects"]
    n_endpoints = observations_dict["n_endpoints"]
    evt = _check_events(evt, observations_dict)

    covariate_values, covariate_names = _check_covariates(covariates, n_subjects)
    phi_dict = _check_phi(
        theta, covariate_values.shape[1], silent=silent, **phi_model
    )
    phi_dict["covariates"] = covariate_values
    phi_dict["covariate_names"] = covariate_names

    models = _residual_codes(residual.get("residual_model", "add"), n_endpoints)
    transform_dict = _check_transforms(
        transform.get("transform", "none"),
        transform.get("lambda_param", 1.0),
        transform.get("low", 0.0),
        transform.get("hi", 1.0),
        models,
        n_endpoints,
        silent=silent,
    )
    residual_dict = _check_residual_models(
        residual.get("residual_model", "add"),
        residual.get("ares", 10.0),
        residual.get("bres", 1.0),
        residual.get("cres", 1.0),
        residual.get("lres"),
        residual.get("combined", 1),
        residual.get("prop_transformed", False),
        residual.get("fixed_residual"),
        transform_dict["lambda"],
        n_endpoints,
        lambda_range=residual.get("lambda_range", 3.0),
        pow_range=residual.get("pow_range", 10.0),
        silent=silent,
    )
    if general_dict["distribution"] != 1 and np.any(models != 1):
        _warn(
            "Residual models only apply to normal observations and are ignored.",
            silent,
        )

    if ue is None:
        ue = np.ones((n_subjects, phi_dict["nphi"]))
    ue = np.asarray(ue, dtype=float)
    if ue.shape != (n_subjects, phi_dict["nphi"]):
        raise ValueError(
            f"'ue' must have shape ({n_subjects}, {phi_dict['nphi']}), got {ue.shape}."
        )

    history_dict = {
        "theta_keep": history.get("theta_keep"),
        "omega_keep": history.get("omega_keep"),
        "phi_names": phi_dict["names"],
    }

    return {
        "general": general_dict,
        "observations": observations_dict,
        "phi": phi_dict,
        "residual": residual_dict,
        "transform": transform_dict,
        "history": history_dict,
        "evt": evt,
        "ue": ue,
    }
