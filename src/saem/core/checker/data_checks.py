import numpy as np
import pandas as pd

MAX_ENDPOINTS = 40


def _check_observations(y, id, endpoint=None):
    """
    Check the observations and index them by subject and endpoint.

    Parameters
    ----------
    y : array-like
        Observed values, one per observation.
    id : array-like
        Subject identifier of each observation. Observations of a subject
        must be contiguous.
    endpoint : array-like, optional
        Endpoint of each observation (any hashable labels). A single
        endpoint is assumed when omitted.

    Returns
    -------
    dict
        ``y``, zero-based ``subject`` and ``endpoint`` indices, counts and the
        original subject and endpoint labels.

    Raises
    ------
    ValueError
        For mismatched lengths, missing values, subjects that are not
        contiguous or more than 40 endpoints.
    """
    y = np.asarray(pd.to_numeric(pd.Series(np.asarray(y).ravel()), errors="coerce"), dtype=float)
    id = np.asarray(id).ravel()
    n_obs = len(y)
    if n_obs == 0:
        raise ValueError("No observations were provided.")
    if len(id) != n_obs:
        raise ValueError(
            f"'id' has {len(id)} values but there are {n_obs} observations."
        )
    if np.any(np.isnan(y)):
        raise ValueError("Observations contain missing or non-numeric values.")

    subject, subject_ids = pd.factorize(id)
    if np.any(subject < 0):
        raise ValueError("Subject identifiers contain missing values.")
    # factorize numbers subjects by first appearance
    if np.any(np.diff(subject) < 0):
        raise ValueError("Observations must be grouped by subject.")

    if endpoint is None:
        endpoint_codes = np.zeros(n_obs, dtype=int)
        endpoint_names = np.array(["1"])
    else:
        endpoint = np.asarray(endpoint).ravel()
        if len(endpoint) != n_obs:
            raise ValueError(
                f"'endpoint' has {len(endpoint)} values but there are {n_obs} observations."
            )
        endpoint_codes, endpoint_names = pd.factorize(endpoint, sort=True)
        if np.any(endpoint_codes < 0):
            raise ValueError("Endpoint labels contain missing values.")
    n_endpoints = len(endpoint_names)
    if n_endpoints > MAX_ENDPOINTS:
        raise ValueError(
            f"At most {MAX_ENDPOINTS} endpoints are supported, got {n_endpoints}."
        )

    return {
        "y": y,
        "subject": subject.astype(int),
        "endpoint": endpoint_codes.astype(int),
        "n_obs": n_obs,
        "n_subjects": len(subject_ids),
        "n_endpoints": n_endpoints,
        "n_obs_endpoint": np.bincount(endpoint_codes, minlength=n_endpoints),
        "subject_ids": np.asarray(subject_ids),
        "endpoint_names": [str(name) for name in endpoint_names],
    }


def _check_events(evt, observations_dict):
    """
    Check the event table passed to the structural model.

    Column 0 holds the subject identifier and is recoded to the zero-based
    subject index. When no events are given a two-column table
    ``[subject, observation row]`` is built, one row per observation.

    Raises
    ------
    ValueError
        If the table is not two-dimensional or references unknown subjects.
    """
    if evt is None:
        return np.column_stack(
            [observations_dict["subject"], np.arange(observations_dict["n_obs"])]
        ).astype(float)

    if isinstance(evt, pd.DataFrame):
        evt = evt.to_numpy()
    evt = np.array(evt, copy=True)
    if evt.ndim != 2 or evt.shape[0] == 0:
        raise ValueError("'evt' must be a non-empty two-dimensional table.")

    codes = pd.Index(observations_dict["subject_ids"]).get_indexer(evt[:, 0])
    if np.any(codes < 0):
        raise ValueError("'evt' references subjects that have no observations.")
    evt = evt.astype(float)
    evt[:, 0] = codes
    return evt


def _check_covariates(covariates, n_subjects):
    """
    Check the subject-level covariates.

    Returns
    -------
    tuple
        ``(values, names)`` with ``values`` of shape ``(N, n_covariates)``.
    """
    if covariates is None:
        return np.zeros((n_subjects, 0)), []

    if isinstance(covariates, pd.DataFrame):
        names = [str(c) for c in covariates.columns]
        values = covariates.to_numpy(dtype=float)
    else:
        values = np.asarray(covariates, dtype=float)
        if values.ndim == 1:
            values = values[:, None]
        names = [f"cov{j + 1}" for j in range(values.shape[1])]

    if values.shape[0] != n_subjects:
        raise ValueError(
            f"'covariates' must have one row per subject ({n_subjects}), "
            f"got {values.shape[0]}."
        )
    if not np.all(np.isfinite(values)):
        raise ValueError("Covariates contain missing or non-finite values.")
    return values, names
