import time
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from saem.core.checker import parameters_checker
from saem.core.creator import architector, history_columns, initialiser
from saem.core.estimator import estimator
from saem.core.estimator.estimator import _split_prediction
from saem.core.utils.residual_models import RESIDUAL_MODELS

# Type hint groups
RESIDUAL_OPTIONS = Literal[
    "add",
    "prop",
    "pow",
    "add+prop",
    "add+pow",
    "add+lambda",
    "prop+lambda",
    "pow+lambda",
    "add+prop+lambda",
    "add+pow+lambda",
]

TRANSFORM_OPTIONS = Literal[
    "boxCox",
    "yeoJohnson",
    "none",
    "lnorm",
    "logit",
    "logit+yeoJohnson",
    "probit",
    "probit+yeoJohnson",
]

DISTRIBUTION_OPTIONS = Literal["normal", "poisson", "binomial"]

KERNEL_NAMES = ["independent", "random_walk", "coordinate_walk"]


class SAEM:
    """
    Stochastic Approximation EM estimation of nonlinear mixed-effects models.

    Individual parameters ``phi[i] = X[i] @ MCOV + eta[i]`` of every subject
    are sampled with Metropolis-Hastings kernels given the observations of
    that subject. The population coefficients, the random-effect covariance
    and the residual models of every endpoint are re-estimated from
    stochastic-approximation averages of the sufficient statistics. The
    Fisher information is accumulated along the way.

    The structural model is any callable ``model(phi, evt, options)`` that
    returns the predictions of the observations of the subjects in ``phi``,
    either as a vector or as an ``(n_obs, 3)`` array of prediction, censoring
    code (``1`` left, ``-1`` right, ``0`` none) and limit.

    Parameters
    ----------
    theta : array-like
        Initial population values (intercepts) of the individual parameters.
    omega : array-like, optional
        Initial covariance of the random effects (or its diagonal). Identity
        by default.
    random_effects : array-like, optional
        Boolean mask (or positions) of the parameters with inter-individual
        variability. All parameters by default.
    covariate_model : array-like, optional
        ``(n_covariates, nphi)`` 0/1 indicator of covariate effects.
    beta : array-like, optional
        Initial covariate coefficients, same shape as ``covariate_model``.
    fixed_theta, fixed_beta : array-like, optional
        Masks of coefficients held at their initial value.
    covstruct : array-like, optional
        0/1 mask of the estimated elements of the random-effect covariance.
    fixed_omega : array-like, optional
        Mask of covariance elements held at their initial value after
        ``nb_fix_omega`` iterations.
    omega0 : array-like, optional
        Initial variances of the parameters without random effect.
    residual_model : str or list, default="add"
        Residual model per endpoint.
    ares, bres, cres, lres : float or list
        Initial residual parameters (additive, proportional, power, lambda).
    transform : str or list, default="none"
        Observation transform per endpoint.
    lambda_param : float or list, default=1.0
        Power of the Box-Cox/Yeo-Johnson transforms. Can also be passed as
        ``**{"lambda": value}``.
    low, hi : float or list
        Bounds of the logit/probit transforms.
    prop_transformed : bool or list, default=False
        Whether proportional terms use the transformed prediction.
    combined : int or list, default=1
        ``1`` adds the additive and proportional standard deviations, ``2``
        combines them in quadrature.
    fixed_residual : list, optional
        Residual parameters held at their value per endpoint, either names
        or ``{name: value}`` dicts.
    phi_names : list of str, optional
        Names of the individual parameters.
    history_theta_keep, history_omega_keep : array-like, optional
        Columns of the coefficient vector and of the variances recorded in
        the parameter history.
    ue : array-like, optional
        ``(N, nphi)`` exposure matrix masking the MCMC proposals.
    model_options : dict, optional
        Options passed to the structural model.
    n_burn, n_em : int
        Exploration and smoothing iterations.
    nmc : int, default=3
        Number of chains per subject.
    nu : tuple of int, default=(2, 2, 2)
        Repetitions of the three MCMC kernels per iteration.
    rmcmc : float, default=0.5
        Scale of the random-walk proposals.
    nb_sa : int, optional
        Iterations with simulated-annealing of the variances
        (``n_burn // 2`` by default).
    coef_sa : float, default=0.95
        Decay of the variances during simulated annealing.
    nb_correl : int, default=0
        Iterations with a diagonal random-effect covariance.
    nb_fix_omega, nb_fix_resid : int, default=0
        Iterations before fixed covariance elements and residual parameters
        are enforced.
    niter_phi0 : int, optional
        Iterations during which the covariate-only variances are estimated
        (``n_burn // 2`` by default); they decay by ``coef_phi0`` afterwards.
    coef_phi0 : float, default=0.9638
        Decay of the covariate-only variances.
    step_power : float, default=1.0
        Exponent of the smoothing steps ``1/k**step_power``.
    pas, pash : array-like, optional
        User step schedules of the statistics and of the information.
    minv : float or array-like, default=1e-20
        Lower bound of the variances.
    itmax : int, default=100
        Iteration factor of the residual optimizer.
    tol : float, default=1e-4
        Tolerance of the residual optimizer.
    optimizer : {"nelder-mead", "newuoa"}, default="nelder-mead"
        NLopt algorithm of the residual fit; the other one is the fallback.
    lambda_range, pow_range : float
        Half-widths of the intervals of the estimated lambda and power.
    max_ode_recalc : int, default=5
        Re-evaluations of non-finite predictions.
    ode_recalc_factor : float, default=10**0.5
        Factor applied to ``options["tolerance_factor"]`` at each
        re-evaluation.
    distribution : {"normal", "poisson", "binomial"}, default="normal"
        Observation likelihood.
    print_level : int, default=0
        Print the parameter history every ``print_level`` iterations.
    phi_file : str, optional
        File receiving the chain state after every iteration.
    random_state : int or numpy.random.Generator, optional
        Seed of the sampler.
    silent : bool, default=False
        Whether to suppress configuration warnings.

    Examples
    --------
    >>> def linear(phi, evt, options):
    ...     subject = evt[:, 0].astype(int)
    ...     return phi[subject, 0] + phi[subject, 1] * evt[:, 1]
    >>> model = SAEM(theta=[1.0, 0.5], n_burn=100, n_em=100, random_state=42)
    >>> model.fit(linear, y, id, evt=evt)
    >>> print(model)
    """

    def __init__(
        self,
        theta: NDArray,
        omega: Optional[NDArray] = None,
        random_effects: Optional[NDArray] = None,
        covariate_model: Optional[NDArray] = None,
        beta: Optional[NDArray] = None,
        fixed_theta: Optional[NDArray] = None,
        fixed_beta: Optional[NDArray] = None,
        covstruct: Optional[NDArray] = None,
        fixed_omega: Optional[NDArray] = None,
        omega0: Optional[NDArray] = None,
        # residual models and transforms
        residual_model: Union[RESIDUAL_OPTIONS, List[str]] = "add",
        ares: Union[float, Sequence[float]] = 10.0,
        bres: Union[float, Sequence[float]] = 1.0,
        cres: Union[float, Sequence[float]] = 1.0,
        lres: Optional[Union[float, Sequence[float]]] = None,
        transform: Union[TRANSFORM_OPTIONS, List[str]] = "none",
        lambda_param: Union[float, Sequence[float]] = 1.0,
        low: Union[float, Sequence[float]] = 0.0,
        hi: Union[float, Sequence[float]] = 1.0,
        prop_transformed: Union[bool, Sequence[bool]] = False,
        combined: Union[int, Sequence[int]] = 1,
        fixed_residual: Optional[List[Any]] = None,
        # end of residual models
        phi_names: Optional[List[str]] = None,
        history_theta_keep: Optional[NDArray] = None,
        history_omega_keep: Optional[NDArray] = None,
        ue: Optional[NDArray] = None,
        model_options: Optional[Dict[str, Any]] = None,
        # ---- iteration controls ----
        n_burn: int = 200,
        n_em: int = 300,
        nmc: int = 3,
        nu: Sequence[int] = (2, 2, 2),
        rmcmc: float = 0.5,
        nb_sa: Optional[int] = None,
        coef_sa: float = 0.95,
        nb_correl: int = 0,
        nb_fix_omega: int = 0,
        nb_fix_resid: int = 0,
        niter_phi0: Optional[int] = None,
        coef_phi0: float = 0.9638,
        step_power: float = 1.0,
        pas: Optional[NDArray] = None,
        pash: Optional[NDArray] = None,
        minv: Union[float, NDArray] = 1e-20,
        itmax: int = 100,
        tol: float = 1e-4,
        optimizer: Literal["nelder-mead", "newuoa"] = "nelder-mead",
        lambda_range: float = 3.0,
        pow_range: float = 10.0,
        max_ode_recalc: int = 5,
        ode_recalc_factor: float = 10**0.5,
        distribution: DISTRIBUTION_OPTIONS = "normal",
        print_level: int = 0,
        phi_file: Optional[str] = None,
        random_state: Optional[Union[int, np.random.Generator]] = None,
        silent: bool = False,
        **kwargs,
    ):
        # Store model specification
        self.theta = theta
        self.omega = omega
        self.random_effects = random_effects
        self.covariate_model = covariate_model
        self.beta = beta
        self.fixed_theta = fixed_theta
        self.fixed_beta = fixed_beta
        self.covstruct = covstruct
        self.fixed_omega = fixed_omega
        self.omega0 = omega0
        self.residual_model = residual_model
        self.ares = ares
        self.bres = bres
        self.cres = cres
        self.lres = lres
        self.transform = transform
        # Handle 'lambda' from kwargs (since 'lambda' is a reserved word in Python)
        if "lambda" in kwargs:
            self.lambda_param = kwargs.pop("lambda")
        else:
            self.lambda_param = lambda_param
        if kwargs:
            raise TypeError(f"Unexpected keyword arguments: {', '.join(kwargs)}")
        self.low = low
        self.hi = hi
        self.prop_transformed = prop_transformed
        self.combined = combined
        self.fixed_residual = fixed_residual
        self.phi_names = phi_names
        self.history_theta_keep = history_theta_keep
        self.history_omega_keep = history_omega_keep
        self.ue = ue
        self.model_options = model_options

        # Store iteration controls
        self.n_burn = n_burn
        self.n_em = n_em
        self.nmc = nmc
        self.nu = nu
        self.rmcmc = rmcmc
        self.nb_sa = nb_sa
        self.coef_sa = coef_sa
        self.nb_correl = nb_correl
        self.nb_fix_omega = nb_fix_omega
        self.nb_fix_resid = nb_fix_resid
        self.niter_phi0 = niter_phi0
        self.coef_phi0 = coef_phi0
        self.step_power = step_power
        self.pas = pas
        self.pash = pash
        self.minv = minv
        self.itmax = itmax
        self.tol = tol
        self.optimizer = optimizer
        self.lambda_range = lambda_range
        self.pow_range = pow_range
        self.max_ode_recalc = max_ode_recalc
        self.ode_recalc_factor = ode_recalc_factor
        self.distribution = distribution
        self.print_level = print_level
        self.phi_file = phi_file
        self.random_state = random_state
        self.silent = silent

        self._results = None

    def fit(
        self,
        model: Callable[[NDArray, NDArray, Dict[str, Any]], NDArray],
        y: NDArray,
        id: NDArray,
        evt: Optional[Union[NDArray, pd.DataFrame]] = None,
        endpoint: Optional[NDArray] = None,
        covariates: Optional[Union[NDArray, pd.DataFrame]] = None,
        interrupt_check: Optional[Callable[[], bool]] = None,
    ):
        """
        Fit the mixed-effects model with the SAEM algorithm.

        **Estimation Process**:

        1. **Parameter Validation**: Check all inputs via ``parameters_checker()``
        2. **Covariate Design**: Build the coefficient layout via ``architector()``
        3. **Initial State**: Chains, statistics and information via ``initialiser()``
        4. **Iterations**: ``n_burn + n_em`` SAEM iterations via ``estimator()``

        Parameters
        ----------
        model : callable
            Structural model ``model(phi, evt, options)``. ``phi`` holds one
            row per (chain, subject) pair and ``evt`` the matching events,
            column 0 being the row of ``phi``.
        y : array-like
            Observations, grouped by subject.
        id : array-like
            Subject identifier of each observation.
        evt : array-like or pandas.DataFrame, optional
            Event table with the subject identifier in column 0. When
            omitted, ``[subject, observation index]`` rows are used.
        endpoint : array-like, optional
            Endpoint label of each observation.
        covariates : array-like or pandas.DataFrame, optional
            One row of covariates per subject, in order of appearance.
        interrupt_check : callable, optional
            Called after every iteration; returning True raises
            :class:`~saem.FitInterrupted`.

        Returns
        -------
        self : SAEM
            The fitted model instance.

        Raises
        ------
        ValueError
            For invalid data or model specification.
        FitInterrupted
            When the fit is cancelled.
        """
        start_time = time.time()

        checked = parameters_checker(
            y,
            id,
            self.theta,
            evt=evt,
            endpoint=endpoint,
            covariates=covariates,
            controls=self._controls(),
            phi_model={
                "random_effects": self.random_effects,
                "omega": self.omega,
                "covariate_model": self.covariate_model,
                "beta": self.beta,
                "fixed_theta": self.fixed_theta,
                "fixed_beta": self.fixed_beta,
                "covstruct": self.covstruct,
                "fixed_omega": self.fixed_omega,
                "omega0": self.omega0,
                "minv": self.minv,
                "phi_names": self.phi_names,
            },
            residual={
                "residual_model": self.residual_model,
                "ares": self.ares,
                "bres": self.bres,
                "cres": self.cres,
                "lres": self.lres,
                "combined": self.combined,
                "prop_transformed": self.prop_transformed,
                "fixed_residual": self.fixed_residual,
                "lambda_range": self.lambda_range,
                "pow_range": self.pow_range,
            },
            transform={
                "transform": self.transform,
                "lambda_param": self.lambda_param,
                "low": self.low,
                "hi": self.hi,
            },
            history={
                "theta_keep": self.history_theta_keep,
                "omega_keep": self.history_omega_keep,
            },
            ue=self.ue,
            silent=self.silent,
        )

        design = architector(checked["phi"])
        state = initialiser(
            checked["general"],
            checked["observations"],
            checked["phi"],
            design,
            checked["residual"],
            checked["transform"],
        )
        history_cols = history_columns(design, checked["residual"], checked["history"])

        estimated = estimator(
            model,
            checked["general"],
            checked["observations"],
            design,
            state,
            history_cols,
            checked["evt"],
            checked["ue"],
            model_options=self.model_options,
            interrupt_check=interrupt_check,
        )

        self._model = model
        self._checked = checked
        self._design = design
        self._prepare_results(estimated, checked, design, history_cols)
        self._results["time_elapsed"] = time.time() - start_time
        return self

    def _controls(self):
        return {
            "n_burn": self.n_burn,
            "n_em": self.n_em,
            "nmc": self.nmc,
            "nu": self.nu,
            "rmcmc": self.rmcmc,
            "nb_sa": self.nb_sa,
            "coef_sa": self.coef_sa,
            "nb_correl": self.nb_correl,
            "nb_fix_omega": self.nb_fix_omega,
            "nb_fix_resid": self.nb_fix_resid,
            "niter_phi0": self.niter_phi0,
            "coef_phi0": self.coef_phi0,
            "step_power": self.step_power,
            "pas": self.pas,
            "pash": self.pash,
            "itmax": self.itmax,
            "tol": self.tol,
            "optimizer": self.optimizer,
            "max_ode_recalc": self.max_ode_recalc,
            "ode_recalc_factor": self.ode_recalc_factor,
            "distribution": self.distribution,
            "print_level": self.print_level,
            "phi_file": self.phi_file,
            "random_state": self.random_state,
        }

    def _prepare_results(self, estimated, checked, design, history_cols):
        """Copy the final engine state into the result dictionary."""
        state = estimated["state"]
        i1 = design["i1"]

        mpost_phi = state["mpost_phi"].copy()
        mprior_phi = mpost_phi.copy()
        mprior_phi[:, i1] = state["mprior_phi1"]
        eta = (mpost_phi[:, i1] - state["mprior_phi1"]) * checked["ue"][:, i1]

        self._results = {
            "general": checked["general"],
            "n_obs": checked["observations"]["n_obs"],
            "n_subjects": checked["observations"]["n_subjects"],
            "subject_ids": checked["observations"]["subject_ids"],
            "endpoint_names": checked["observations"]["endpoint_names"],
            "phi_names": checked["phi"]["names"],
            "beta_names": design["beta_names"],
            "i1": i1,
            "i0": design["i0"],
            "evt": checked["evt"],
            "residual": state["residual"],
            "transform": state["transform"],
            "mprior_phi": mprior_phi,
            "mpost_phi": mpost_phi,
            "cpost_phi": state["cpost_phi"].copy(),
            "eta": eta,
            "omega": state["gamma2_phi1"].copy(),
            "omega0": state["gamma2_phi0"].copy(),
            "plambda": state["plambda"].copy(),
            "L": state["L"].copy(),
            "Ha": state["Ha"].copy(),
            "Hb": state["Hb"].copy(),
            "history": estimated["history"],
            "history_names": history_cols["names"],
            "acceptance": state["acceptance"].copy(),
            "time_elapsed": None,
        }

    def _check_is_fitted(self):
        """Check if model has been fitted."""
        if not hasattr(self, "_results") or self._results is None:
            raise ValueError("Model has not been fitted. Call fit() first.")

    # =========================================================================
    # Fitted results
    # =========================================================================

    @property
    def residual_matrix_(self) -> NDArray:
        """
        Residual parameters of every endpoint.

        Returns
        -------
        NDArray
            ``(n_endpoints, 4)`` array with columns ``ares``, ``bres``,
            ``cres`` and ``lres``.
        """
        self._check_is_fitted()
        residual = self._results["residual"]
        return np.column_stack(
            [residual["ares"], residual["bres"], residual["cres"], residual["lres"]]
        )

    @property
    def transform_matrix_(self) -> NDArray:
        """
        Transform parameters of every endpoint.

        Returns
        -------
        NDArray
            ``(n_endpoints, 4)`` array with columns ``lambda``, ``yj`` (transform
            code), ``low`` and ``hi``.
        """
        self._check_is_fitted()
        transform = self._results["transform"]
        return np.column_stack(
            [transform["lambda"], transform["yj"], transform["low"], transform["hi"]]
        )

    @property
    def mprior_phi_(self) -> NDArray:
        """Prior means of the individual parameters, ``(N, nphi)``."""
        self._check_is_fitted()
        return self._results["mprior_phi"]

    @property
    def mpost_phi_(self) -> NDArray:
        """Posterior means of the individual parameters, ``(N, nphi)``."""
        self._check_is_fitted()
        return self._results["mpost_phi"]

    @property
    def cpost_phi_(self) -> NDArray:
        """Posterior second moments of the individual parameters, ``(N, nphi)``."""
        self._check_is_fitted()
        return self._results["cpost_phi"]

    @property
    def eta_(self) -> NDArray:
        """
        Posterior random effects.

        Posterior means minus prior means of the parameters with random
        effects, scaled by the exposure matrix ``ue``.

        Returns
        -------
        NDArray
            ``(N, len(i1))`` array.
        """
        self._check_is_fitted()
        return self._results["eta"]

    @property
    def omega_(self) -> NDArray:
        """Covariance of the random effects (``Gamma2_phi1``)."""
        self._check_is_fitted()
        return self._results["omega"]

    @property
    def omega0_(self) -> NDArray:
        """Diagonal covariance of the covariate-only parameters (``Gamma2_phi0``)."""
        self._check_is_fitted()
        return self._results["omega0"]

    @property
    def plambda_(self) -> NDArray:
        """
        Estimated covariate coefficients.

        Coefficients are ordered parameter by parameter, the intercept of each
        parameter first; see ``coef`` for the labelled version.
        """
        self._check_is_fitted()
        return self._results["plambda"]

    @property
    def coef(self) -> pd.Series:
        """Estimated covariate coefficients labelled ``parameter[:covariate]``."""
        self._check_is_fitted()
        return pd.Series(self._results["plambda"], index=self._results["beta_names"])

    @property
    def L_(self) -> NDArray:
        """Smoothed score of the Fisher information approximation."""
        self._check_is_fitted()
        return self._results["L"]

    @property
    def Ha_(self) -> NDArray:
        """
        Smoothed Louis information term.

        ``Ha = E[d2 log L] + E[d log L d log L'] - L L'`` accumulated with
        the ``pash`` schedule.
        """
        self._check_is_fitted()
        return self._results["Ha"]

    @property
    def Hb_(self) -> NDArray:
        """Smoothed complete-data Hessian term."""
        self._check_is_fitted()
        return self._results["Hb"]

    @property
    def sig2_(self) -> NDArray:
        """Residual variance per endpoint."""
        self._check_is_fitted()
        return self._results["residual"]["sigma2"]

    @property
    def history_(self) -> pd.DataFrame:
        """
        Parameter history.

        Returns
        -------
        pd.DataFrame
            One row per iteration (index starting at 1) with the kept
            coefficients, variances and estimated residual parameters.
        """
        self._check_is_fitted()
        history = self._results["history"]
        return pd.DataFrame(
            history,
            columns=self._results["history_names"],
            index=pd.RangeIndex(1, history.shape[0] + 1, name="iteration"),
        )

    @property
    def res_info_(self) -> pd.DataFrame:
        """
        Residual summary.

        Returns
        -------
        pd.DataFrame
            One row per endpoint with the residual model name, its
            parameters (NaN when unused) and the residual variance.
        """
        self._check_is_fitted()
        residual = self._results["residual"]
        rows = []
        for b, variant in enumerate(residual["model"]):
            params = RESIDUAL_MODELS[variant]["params"]
            row = {"model": RESIDUAL_MODELS[variant]["name"]}
            for name in ("ares", "bres", "cres", "lres"):
                row[name] = residual[name][b] if name in params else np.nan
            row["sigma2"] = residual["sigma2"][b]
            rows.append(row)
        return pd.DataFrame(rows, index=pd.Index(self._results["endpoint_names"], name="endpoint"))

    @property
    def acceptance_(self) -> pd.DataFrame:
        """
        Acceptance rates of the MCMC kernels.

        Returns
        -------
        pd.DataFrame
            Rows ``phi1`` (random-effect block) and ``phi0`` (covariate-only
            block), one column per kernel. NaN where nothing was proposed.
        """
        self._check_is_fitted()
        counts = self._results["acceptance"]
        accepted = counts[:, :, 0].astype(float)
        proposed = counts[:, :, 1].astype(float)
        rates = np.full(accepted.shape, np.nan)
        np.divide(accepted, proposed, out=rates, where=proposed > 0)
        return pd.DataFrame(rates, index=["phi1", "phi0"], columns=KERNEL_NAMES)

    @property
    def time_elapsed_(self) -> float:
        """
        Time taken to fit the model in seconds.

        Raises
        ------
        ValueError
            If the model has not been fitted yet.
        """
        self._check_is_fitted()
        return self._results["time_elapsed"]

    @property
    def nobs(self) -> int:
        """Number of observations."""
        self._check_is_fitted()
        return self._results["n_obs"]

    def predict(self, phi: Optional[NDArray] = None) -> NDArray:
        """
        Evaluate the structural model on the fitted subjects.

        Parameters
        ----------
        phi : array-like, optional
            ``(N, nphi)`` individual parameters. The posterior means are used
            when omitted.

        Returns
        -------
        NDArray
            Predictions of the observations, in data order.

        Raises
        ------
        ValueError
            If the model has not been fitted or ``phi`` has the wrong shape.
        """
        self._check_is_fitted()
        if phi is None:
            phi = self._results["mpost_phi"]
        phi = np.asarray(phi, dtype=float)
        expected = (self._results["n_subjects"], len(self._results["phi_names"]))
        if phi.shape != expected:
            raise ValueError(f"'phi' must have shape {expected}, got {phi.shape}.")

        options = dict(self.model_options or {})
        options.setdefault("tolerance_factor", 1.0)
        prediction = _split_prediction(
            self._model(phi, self._results["evt"].copy(), options), self._results["n_obs"]
        )
        return prediction["f"]

    def summary(self, digits: int = 4) -> str:
        """
        Formatted summary of the fitted model.

        Parameters
        ----------
        digits : int, default=4
            Number of decimal places.

        Returns
        -------
        str
            Summary text.
        """
        from saem.core.utils.printing import model_summary

        self._check_is_fitted()
        return model_summary(self, digits)

    def __str__(self) -> str:
        """
        Return a formatted string representation of the fitted model.

        Returns
        -------
        str
            Formatted model summary
        """
        if self._results is None:
            return f"SAEM(nphi={len(np.atleast_1d(self.theta))}) - not fitted"
        return self.summary()

    def __repr__(self) -> str:
        """
        Return a string representation of the SAEM model.

        Returns
        -------
        str
            Brief model representation
        """
        nphi = len(np.atleast_1d(self.theta))
        if self._results is not None:
            return f"SAEM(nphi={nphi}, residual_model={self.residual_model!r}, fitted=True)"
        return f"SAEM(nphi={nphi}, residual_model={self.residual_model!r}, fitted=False)"
