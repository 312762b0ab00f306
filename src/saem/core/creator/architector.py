import numpy as np


def _block_design(indices, cov, lcov, mcov, fixed, beta_param, beta_cov):
    """
    Restrict the coefficient design to the parameters of one block.

    Parameters
    ----------
    indices : numpy.ndarray
        Parameter columns of the block (sorted).
    cov, lcov, mcov : numpy.ndarray
        Full design: subject-by-coefficient covariate values, the
        coefficient-to-parameter indicator and the coefficient values.
    fixed : numpy.ndarray
        Whether each coefficient is fixed.
    beta_param, beta_cov : numpy.ndarray
        Parameter and covariate row of each coefficient.

    Returns
    -------
    dict
        Block design with the covariate columns ``cov``, indicator ``lcov``,
        coefficient matrix ``mcov``, Gram matrix ``cov2``, the block column
        ``col`` and covariate row ``cov_row`` of each coefficient, the
        indices of fixed coefficients and the positions ``index`` of the
        block coefficients in the full coefficient vector.
    """
    index = np.flatnonzero(np.isin(beta_param, indices))
    col = np.searchsorted(indices, beta_param[index])
    block_cov = cov[:, index]
    return {
        "index": index,
        "n_beta": len(index),
        "cov": block_cov,
        "lcov": lcov[np.ix_(index, indices)],
        "mcov": mcov[np.ix_(index, indices)].copy(),
        "cov2": block_cov.T @ block_cov,
        "col": col,
        "cov_row": beta_cov[index],
        "fixed": np.flatnonzero(fixed[index]),
        "pc": np.bincount(col, minlength=len(indices)),
    }


def architector(phi_dict):
    """
    Build the covariate design of the individual parameters.

    Every parameter ``j`` has a population intercept (``theta[j]``) and one
    coefficient per covariate selected in ``covariate_model[:, j]``. With
    ``X = [1, covariates]`` the prior mean of subject ``i`` is
    ``mprior[i, j] = sum_c X[i, c] * MCOV[c, j]``. Coefficients are ordered
    parameter by parameter, intercept first.

    The parameters are split into two blocks: ``i1`` (with inter-individual
    variability, covariance ``Gamma2_phi1``) and ``i0`` (covariate-only,
    diagonal covariance that vanishes over the iterations).

    Parameters
    ----------
    phi_dict : dict
        Checked parameter specification from ``parameters_checker``.

    Returns
    -------
    dict
        Design with keys ``covariate_matrix``, ``beta_param``, ``beta_cov``,
        ``n_beta``, ``beta_names``, ``i1``, ``i0``, ``phi1``, ``phi0``,
        ``covstruct``, ``minv``, ``fixed_omega`` and ``omega_values``.
    """
    covariates = phi_dict["covariates"]
    n_subjects = covariates.shape[0]
    nphi = phi_dict["nphi"]

    covariate_matrix = np.column_stack([np.ones(n_subjects), covariates])
    cov_model = np.vstack([np.ones((1, nphi), dtype=int), phi_dict["covariate_model"]])
    values = np.vstack([phi_dict["theta"][None, :], phi_dict["beta"]])
    fixed_all = np.vstack([phi_dict["fixed_theta"][None, :], phi_dict["fixed_beta"]])

    # row-major over the transpose: parameter by parameter
    beta_param, beta_cov = np.nonzero(cov_model.T)
    n_beta = len(beta_param)

    cov = covariate_matrix[:, beta_cov]
    lcov = np.zeros((n_beta, nphi))
    lcov[np.arange(n_beta), beta_param] = 1.0
    mcov = lcov * values[beta_cov, beta_param][:, None]
    fixed = fixed_all[beta_cov, beta_param].astype(bool)

    names = phi_dict["names"]
    cov_names = ["(Intercept)"] + list(phi_dict["covariate_names"])
    beta_names = [
        names[p] if c == 0 else f"{names[p]}:{cov_names[c]}"
        for p, c in zip(beta_param, beta_cov)
    ]

    i1 = phi_dict["i1"]
    i0 = phi_dict["i0"]

    return {
        "covariate_matrix": covariate_matrix,
        "beta_param": beta_param,
        "beta_cov": beta_cov,
        "n_beta": n_beta,
        "beta_names": beta_names,
        "beta_values": values[beta_cov, beta_param].astype(float),
        "i1": i1,
        "i0": i0,
        "phi1": _block_design(i1, cov, lcov, mcov, fixed, beta_param, beta_cov),
        "phi0": _block_design(i0, cov, lcov, mcov, fixed, beta_param, beta_cov),
        "covstruct": phi_dict["covstruct"],
        "minv": phi_dict["minv"],
        "fixed_omega": phi_dict["fixed_omega"],
        "omega_values": phi_dict["omega"],
    }


def n_information_parameters(design):
    """Coefficients of both blocks, one variance per random effect, one residual variance."""
    return design["phi1"]["n_beta"] + design["phi0"]["n_beta"] + len(design["i1"]) + 1
