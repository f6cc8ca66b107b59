"""Tests for simulation-based model diagnostics."""

from types import SimpleNamespace

import numpy as np
import pytest

from naproxen_physa.analysis import validation
from naproxen_physa.analysis.fitting import (
    fit_growth_model,
    fit_reproduction_model,
    fit_survival_model,
)


def poisson_fit(observed, mean):
    return SimpleNamespace(
        name="counts",
        family="poisson",
        observed=np.asarray(observed, dtype=float),
        fitted=np.full(len(observed), float(mean)),
        scale=1.0,
    )


class TestSimulatedResiduals:
    """Tests for scaled residual simulation."""

    def test_residuals_in_unit_interval(self):
        rng = np.random.default_rng(0)
        fit = poisson_fit(rng.poisson(3.0, size=300), 3.0)
        sim = validation.simulate_residuals(fit, n_simulations=100, random_state=1)

        assert sim.simulated.shape == (300, 100)
        assert sim.n_simulations == 100
        assert ((sim.scaled_residuals >= 0) & (sim.scaled_residuals <= 1)).all()

    def test_reproducible_with_seed(self):
        fit = poisson_fit(np.arange(20) % 5, 2.0)
        a = validation.simulate_residuals(fit, 50, random_state=7)
        b = validation.simulate_residuals(fit, 50, random_state=7)
        np.testing.assert_array_equal(a.scaled_residuals, b.scaled_residuals)

    def test_correct_model_is_roughly_uniform(self):
        rng = np.random.default_rng(2)
        fit = poisson_fit(rng.poisson(4.0, size=500), 4.0)
        sim = validation.simulate_residuals(fit, n_simulations=250, random_state=3)
        assert abs(np.mean(sim.scaled_residuals) - 0.5) < 0.05

    def test_unknown_family_raises(self):
        fit = poisson_fit([1, 2], 1.0)
        fit.family = "gamma"
        with pytest.raises(ValueError, match="Cannot simulate"):
            validation.simulate_residuals(fit, 20)


class TestResidualTests:
    """Tests for dispersion, zero-inflation and outlier checks."""

    def test_overdispersion_detected(self):
        rng = np.random.default_rng(4)
        observed = rng.negative_binomial(n=1, p=1 / 6, size=400)  # mean 5, variance 30
        sim = validation.simulate_residuals(poisson_fit(observed, 5.0), 200, random_state=5)
        result = validation.test_dispersion(sim)

        assert result.statistic > 2
        assert result.reject_null

    def test_zero_inflation_detected(self):
        rng = np.random.default_rng(6)
        observed = rng.poisson(3.0, size=400)
        observed[:200] = 0
        mean = observed.mean()
        sim = validation.simulate_residuals(poisson_fit(observed, mean), 200, random_state=7)
        result = validation.test_zero_inflation(sim)

        assert result.statistic > 1
        assert result.reject_null
        assert result.details["observed_zeros"] >= 200

    def test_outlier_rate(self):
        fit = poisson_fit([0, 0, 0, 50], 1.0)
        sim = validation.simulate_residuals(fit, 100, random_state=8)
        result = validation.test_outliers(sim)

        assert result.details["n_outliers"] >= 1
        assert result.details["expected_rate"] == pytest.approx(2 / 101)

    def test_uniformity_result(self):
        rng = np.random.default_rng(9)
        sim = validation.simulate_residuals(
            poisson_fit(rng.poisson(2.0, size=200), 2.0), 100, random_state=10
        )
        result = validation.test_uniformity(sim)
        assert result.test_name == "Uniformity (KS)"
        assert 0 <= result.p_value <= 1


class TestValidateModel:
    """Tests for the per-family diagnostic sets."""

    def test_growth_diagnostics(self, prepared):
        fit = fit_growth_model(prepared.growth)
        diagnostics = validation.validate_model(fit, n_simulations=50, random_state=1)
        names = [t.test_name for t in diagnostics.tests]

        assert diagnostics.model_name == "growth"
        assert {"Uniformity (KS)", "Dispersion", "Outliers", "Levene's Test"} <= set(names)
        assert "Shapiro-Wilk" in names
        assert "Zero-inflation" not in names

    def test_reproduction_diagnostics(self, prepared):
        fit = fit_reproduction_model(prepared.reproduction)
        diagnostics = validation.validate_model(fit, n_simulations=50, random_state=1)

        assert diagnostics.get("Zero-inflation") is not None
        assert diagnostics.simulation.scaled_residuals.shape == (fit.n_observations,)

    def test_survival_diagnostics(self, prepared):
        fit = fit_survival_model(prepared.survival)
        diagnostics = validation.validate_model(fit)

        assert diagnostics.simulation is None
        assert len(diagnostics.tests) == 3
        assert all(t.test_name.startswith("Proportional hazards") for t in diagnostics.tests)

    def test_problems_are_rejected_tests(self, prepared):
        fit = fit_reproduction_model(prepared.reproduction)
        diagnostics = validation.validate_model(fit, n_simulations=50, random_state=2)
        assert all(t.reject_null for t in diagnostics.problems)
        assert diagnostics.get("missing test") is None
