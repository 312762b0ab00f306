import numpy as np


def _warn(msg, silent=False):
    """
    Print a warning about a repaired input unless ``silent``.

    Parameters
    ----------
    msg : str
        Warning message
    silent : bool, optional
        Whether to suppress the message
    """
    if not silent:
        print(f"Warning: {msg}")


def _per_endpoint(value, n_endpoints, name, dtype=float):
    """
    Broadcast a scalar or check a sequence of per-endpoint values.

    Raises
    ------
    ValueError
        If a sequence does not have one value per endpoint.
    """
    if np.ndim(value) == 0:
        return np.full(n_endpoints, value, dtype=dtype)
    values = np.asarray(value, dtype=dtype).ravel()
    if len(values) != n_endpoints:
        raise ValueError(
            f"'{name}' must be a scalar or have one value per endpoint "
            f"({n_endpoints}), got {len(values)}."
        )
    return values
