"""
Unit tests for the SAEM class.

Tests cover:
- Initialization and configuration
- End-to-end fits (additive model, censoring, covariates, several endpoints)
- Fitted results and summaries
- Interruption, reproducibility and structural model failures
"""

import warnings

import numpy as np
import pandas as pd
import pytest

from saem import SAEM, FitInterrupted


def _fit(data, **kwargs):
    settings = {"n_burn": 30, "n_em": 20, "random_state": 42, "silent": True}
    settings.update(kwargs)
    theta = settings.pop("theta", [4.0])
    model = SAEM(theta=theta, **settings)
    return model.fit(data["model"], data["y"], data["id"], evt=data["evt"])


class TestSAEMInitialization:
    """Tests for SAEM initialization."""

    def test_import(self):
        """Test that SAEM can be imported from saem."""
        from saem import SAEM
        assert SAEM is not None

    def test_show_versions(self, capsys):
        """Test that dependency versions are printed."""
        from saem import show_versions
        show_versions()
        out = capsys.readouterr().out
        assert "numpy:" in out
        assert "nlopt:" in out

    def test_lambda_keyword(self):
        """Test that 'lambda' is accepted as a keyword."""
        model = SAEM(theta=[1.0], **{"lambda": 0.5})
        assert model.lambda_param == 0.5

    def test_unexpected_keyword(self):
        """Test that unknown keywords raise."""
        with pytest.raises(TypeError, match="Unexpected keyword"):
            SAEM(theta=[1.0], n_iter=10)

    def test_repr_unfitted(self):
        """Test the representation before fitting."""
        model = SAEM(theta=[1.0, 2.0])
        assert repr(model) == "SAEM(nphi=2, residual_model='add', fitted=False)"
        assert "not fitted" in str(model)

    def test_results_need_fit(self):
        """Test that results raise before fitting."""
        model = SAEM(theta=[1.0])
        with pytest.raises(ValueError, match="not been fitted"):
            model.omega_
        with pytest.raises(ValueError, match="not been fitted"):
            model.predict()


class TestSAEMFit:
    """End-to-end fits."""

    def test_additive_scenario(self, population_data):
        """Test the history and the convergence of ares on simulated data."""
        model = _fit(population_data, ares=1.0)
        history = model.history_

        assert history.shape == (50, 3)
        assert list(history.columns) == ["phi1", "V(phi1)", "ares"]
        assert np.all(np.isfinite(history.to_numpy()))

        ares = history["ares"].to_numpy()
        assert ares[-1] == pytest.approx(population_data["true_ares"], rel=0.35)
        early = np.max(np.abs(np.diff(ares[:11])))
        late = np.max(np.abs(np.diff(ares[-11:])))
        assert late <= early

        assert model.plambda_[0] == pytest.approx(5.0, abs=0.6)
        assert 0.2 < model.omega_[0, 0] < 3.0

    def test_fit_returns_self(self, population_data):
        """Test that fit returns self for chaining."""
        model = SAEM(theta=[4.0], n_burn=2, n_em=1, silent=True)
        result = model.fit(
            population_data["model"], population_data["y"], population_data["id"],
            evt=population_data["evt"],
        )
        assert result is model

    def test_reproducible(self, population_data):
        """Test that the same seed gives the same history."""
        first = _fit(population_data, n_burn=5, n_em=5)
        second = _fit(population_data, n_burn=5, n_em=5)
        pd.testing.assert_frame_equal(first.history_, second.history_)

    def test_censored_observation(self, population_data):
        """Test that a left-censored row changes the fit and keeps it finite."""
        censored_row = int(np.argmin(population_data["y"]))
        base_model = population_data["model"]

        def censored_model(phi, evt, options):
            f = base_model(phi, evt, options)
            n_obs = len(population_data["y"])
            cens = np.zeros(len(f))
            cens[censored_row::n_obs] = 1
            limit = np.where(cens == 1, 0.0, -np.inf)
            return np.column_stack([f, cens, limit])

        censored = dict(population_data, model=censored_model)
        plain = _fit(population_data, n_burn=10, n_em=10)
        fitted = _fit(censored, n_burn=10, n_em=10)

        assert np.all(np.isfinite(fitted.history_.to_numpy()))
        assert not np.allclose(fitted.history_.to_numpy(), plain.history_.to_numpy())

    def test_covariate_only_parameter(self, slope_data):
        """Test a parameter without random effect."""
        model = _fit(
            slope_data, theta=[1.0, 1.0], random_effects=[True, False], n_burn=20, n_em=20
        )
        assert list(model.history_.columns) == ["phi1", "phi2", "V(phi1)", "ares"]
        assert model.plambda_[1] == pytest.approx(1.5, abs=0.3)
        assert np.all(np.isfinite(model.omega0_)) and model.omega0_[0, 0] > 0
        assert model.omega0_.shape == (1, 1)
        assert model.eta_.shape == (15, 1)

    def test_covariates(self, population_data):
        """Test the coefficient layout with a covariate."""
        np.random.seed(42)
        covariates = pd.DataFrame({"wt": np.random.uniform(50.0, 90.0, 20)})
        model = SAEM(
            theta=[4.0], covariate_model=[[1]], n_burn=5, n_em=5, random_state=1, silent=True
        )
        model.fit(
            population_data["model"], population_data["y"], population_data["id"],
            evt=population_data["evt"], covariates=covariates,
        )
        assert list(model.coef.index) == ["phi1", "phi1:wt"]
        assert model.plambda_.shape == (2,)
        assert model.mprior_phi_.shape == (20, 1)

    def test_two_endpoints(self, population_data):
        """Test separate residual models per endpoint."""
        np.random.seed(42)
        n = len(population_data["y"])
        endpoint = np.tile(["conc", "effect"], n // 2)
        y = population_data["y"].copy()
        effect = endpoint == "effect"
        y[effect] = 2.0 * population_data["intercepts"][population_data["id"][effect] - 1]
        y[effect] *= 1.0 + 0.1 * np.random.randn(effect.sum())
        evt = np.column_stack([population_data["evt"], effect.astype(float)])

        def two_outputs(phi, evt, options):
            subject = evt[:, 0].astype(int)
            return np.where(
                evt[:, 2] == 1.0, 2.0 * phi[subject, 0], phi[subject, 0] + 0.5 * evt[:, 1]
            )

        model = SAEM(
            theta=[4.0], residual_model=["add", "prop"], n_burn=10, n_em=10,
            random_state=42, silent=True,
        )
        model.fit(two_outputs, y, population_data["id"], evt=evt, endpoint=endpoint)

        assert list(model.history_.columns) == ["phi1", "V(phi1)", "ares.1", "bres.2"]
        assert np.all(np.isfinite(model.history_.to_numpy()))
        assert list(model.res_info_.index) == ["conc", "effect"]
        assert model.residual_matrix_.shape == (2, 4)
        assert model.sig2_.shape == (2,)

    def test_poisson(self):
        """Test the Poisson likelihood."""
        np.random.seed(42)
        id = np.repeat(np.arange(12), 8)
        rates = np.exp(1.0 + 0.3 * np.random.randn(12))
        y = np.random.poisson(rates[id]).astype(float)

        def log_rate(phi, evt, options):
            return np.exp(phi[evt[:, 0].astype(int), 0])

        model = SAEM(
            theta=[0.5], distribution="poisson", n_burn=10, n_em=10,
            random_state=42, silent=True,
        )
        model.fit(log_rate, y, id)
        assert np.all(np.isfinite(model.history_.to_numpy()))
        assert model.plambda_[0] == pytest.approx(1.0, abs=0.4)


class TestSAEMResults:
    """Tests for fitted results."""

    @pytest.fixture
    def fitted(self, population_data):
        return _fit(population_data, n_burn=10, n_em=10)

    def test_predict(self, fitted, population_data):
        """Test predictions at the posterior means."""
        prediction = fitted.predict()
        assert prediction.shape == population_data["y"].shape
        assert np.mean(np.abs(prediction - population_data["y"])) < 1.0

    def test_predict_shape_check(self, fitted):
        """Test that a wrongly shaped phi raises."""
        with pytest.raises(ValueError, match="'phi' must have shape"):
            fitted.predict(np.zeros((3, 1)))

    def test_matrices(self, fitted):
        """Test the shapes of the result matrices."""
        assert fitted.residual_matrix_.shape == (1, 4)
        np.testing.assert_array_equal(fitted.transform_matrix_[0], [1.0, 2.0, 0.0, 1.0])
        assert fitted.mpost_phi_.shape == (20, 1)
        assert fitted.cpost_phi_.shape == (20, 1)
        assert fitted.L_.shape == (3,)
        assert fitted.Ha_.shape == (3, 3)
        assert fitted.Hb_.shape == (3, 3)
        assert np.all(np.isfinite(fitted.Ha_))

    def test_second_moment_bounds_mean(self, fitted):
        """Test that posterior second moments are at least the squared means."""
        assert np.all(fitted.cpost_phi_ >= fitted.mpost_phi_**2 - 1e-8)

    def test_acceptance(self, fitted):
        """Test the acceptance rates table."""
        rates = fitted.acceptance_
        assert list(rates.index) == ["phi1", "phi0"]
        assert list(rates.columns) == ["independent", "random_walk", "coordinate_walk"]
        assert np.all((rates.loc["phi1"] > 0) & (rates.loc["phi1"] <= 1))
        assert rates.loc["phi0"].isna().all()

    def test_res_info(self, fitted):
        """Test the residual summary."""
        info = fitted.res_info_
        assert info.loc["1", "model"] == "add"
        assert np.isnan(info.loc["1", "bres"])
        assert info.loc["1", "ares"] == fitted.residual_matrix_[0, 0]

    def test_summary(self, fitted):
        """Test the printed summary."""
        text = str(fitted)
        assert "Population parameters:" in text
        assert "V(phi1)" in text
        assert "add (ares=" in text
        assert "Sample size: 120" in text
        assert repr(fitted).endswith("fitted=True)")
        assert fitted.time_elapsed_ >= 0


class TestSAEMControl:
    """Tests for progress output, interruption and model failures."""

    def test_print_level(self, population_data, capsys):
        """Test that history rows are printed every print_level iterations."""
        _fit(population_data, n_burn=5, n_em=5, print_level=5)
        lines = [line for line in capsys.readouterr().out.splitlines() if line[:3].isdigit()]
        assert [line[:5] for line in lines] == ["001: ", "005: ", "010: "]

    def test_interrupt(self, population_data):
        """Test that the interrupt check stops the fit with the partial history."""
        calls = []

        def stop_after_three():
            calls.append(1)
            return len(calls) == 3

        model = SAEM(theta=[4.0], n_burn=10, n_em=10, random_state=42, silent=True)
        with pytest.raises(FitInterrupted) as excinfo:
            model.fit(
                population_data["model"], population_data["y"], population_data["id"],
                evt=population_data["evt"], interrupt_check=stop_after_three,
            )
        assert excinfo.value.iteration == 3
        assert excinfo.value.history.shape == (3, 3)
        assert isinstance(excinfo.value, RuntimeError)

    def test_first_iteration_warm_start(self, population_data):
        """Test that the first iteration repeats every kernel 20 times as often."""
        calls = []
        totals = []
        base_model = population_data["model"]

        def counting(phi, evt, options):
            calls.append(1)
            return base_model(phi, evt, options)

        def record():
            totals.append(len(calls))
            return False

        model = SAEM(theta=[4.0], nu=(2, 2, 2), n_burn=3, n_em=0, random_state=42, silent=True)
        model.fit(
            counting, population_data["y"], population_data["id"],
            evt=population_data["evt"], interrupt_check=record,
        )
        # one initial evaluation, then one per kernel repetition
        assert np.diff([0] + totals).tolist() == [1 + 20 * 6, 6, 6]

    def test_phi_file(self, population_data, tmp_path):
        """Test that the chain state is written after every iteration."""
        path = tmp_path / "phi.txt"
        _fit(population_data, n_burn=2, n_em=1, phi_file=str(path))
        values = np.loadtxt(path, ndmin=2)
        assert values.shape == (3 * 3 * 20, 1)

    def test_recalculation_with_looser_tolerance(self, population_data):
        """Test that non-finite predictions are re-evaluated."""
        factors = []
        base_model = population_data["model"]

        def unstable(phi, evt, options):
            factors.append(options["tolerance_factor"])
            f = base_model(phi, evt, options)
            if options["tolerance_factor"] == 1.0:
                f = f.copy()
                f[0] = np.nan
            return f

        with warnings.catch_warnings(record=True) as record:
            warnings.simplefilter("always")
            model = _fit(dict(population_data, model=unstable), n_burn=2, n_em=1)
        assert not any("non-finite predictions" in str(w.message) for w in record)
        assert max(factors) == pytest.approx(10**0.5)
        assert np.all(np.isfinite(model.history_.to_numpy()))

    def test_non_finite_predictions_warn_once(self, population_data):
        """Test that persistent non-finite predictions are replaced with one warning."""
        base_model = population_data["model"]

        def broken(phi, evt, options):
            f = base_model(phi, evt, options).copy()
            f[0] = np.nan
            return f

        with pytest.warns(RuntimeWarning, match="non-finite predictions") as record:
            _fit(dict(population_data, model=broken), n_burn=2, n_em=0, max_ode_recalc=1)
        messages = [w for w in record if "non-finite predictions" in str(w.message)]
        assert len(messages) == 1

    def test_information_finite_with_replaced_predictions(self, population_data):
        """Test that replaced predictions keep the information matrices finite."""
        base_model = population_data["model"]

        def broken(phi, evt, options):
            f = base_model(phi, evt, options).copy()
            f[0] = np.nan
            return f

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            model = _fit(dict(population_data, model=broken), n_burn=3, n_em=3, max_ode_recalc=0)
        assert np.all(np.isfinite(model.L_))
        assert np.all(np.isfinite(model.Ha_))
        assert np.all(np.isfinite(model.Hb_))

    def test_bad_model_output(self, population_data):
        """Test that a wrongly sized model output raises."""

        def short(phi, evt, options):
            return np.zeros(5)

        with pytest.raises(ValueError, match="returned 5 predictions"):
            _fit(dict(population_data, model=short), n_burn=1, n_em=0)
