"""Tests for model fitting."""

import numpy as np
import pandas as pd
import pytest

from naproxen_physa.analysis.fitting import (
    COEFFICIENT_COLUMNS,
    fit_growth_model,
    fit_reproduction_model,
    fit_feeding_model,
    fit_survival_model,
    kaplan_meier_table,
)


@pytest.fixture
def growth_fit(prepared):
    return fit_growth_model(prepared.growth)


@pytest.fixture
def reproduction_fit(prepared):
    return fit_reproduction_model(prepared.reproduction)


@pytest.fixture
def feeding_fit(prepared):
    return fit_feeding_model(prepared.feeding)


@pytest.fixture
def survival_fit(prepared):
    return fit_survival_model(prepared.survival)


class TestGrowthModel:
    """Tests for the linear mixed model."""

    def test_uses_complete_rows_only(self, growth_fit, prepared):
        assert growth_fit.n_observations == int(prepared.growth["Growth"].notna().sum())
        assert len(growth_fit.fitted) == growth_fit.n_observations
        assert growth_fit.n_groups == prepared.growth.dropna(subset=["Growth"])["Snail"].nunique()

    def test_fixed_effects(self, growth_fit):
        # Intercept, 3 treatment effects, Week, 3 interactions
        assert len(growth_fit.params) == 8
        assert growth_fit.cov_params.shape == (8, 8)
        assert list(growth_fit.coefficients.columns) == COEFFICIENT_COLUMNS
        assert growth_fit.coefficients["term"].iloc[0] == "Intercept"

    def test_reference_level_is_control(self, growth_fit):
        assert growth_fit.treatments[0] == "0"
        assert "C(Treatment)[T.0]" not in growth_fit.params.index

    def test_family_and_criteria(self, growth_fit):
        assert growth_fit.family == "gaussian"
        assert growth_fit.link == "identity"
        assert growth_fit.scale > 0
        assert {"AIC", "BIC", "logLik", "snail_variance"} <= set(growth_fit.criteria)

    def test_information_criteria_are_finite(self, growth_fit):
        assert np.isfinite(growth_fit.aic)
        assert np.isfinite(growth_fit.criteria["AIC"])
        assert np.isfinite(growth_fit.criteria["BIC"])
        assert growth_fit.aic == growth_fit.criteria["AIC"]

    def test_design_matrix_for_new_rows(self, growth_fit):
        levels = growth_fit.treatments
        grid = pd.DataFrame({
            "Treatment": pd.Categorical(levels, categories=levels),
            "Week": 2.0,
        })
        X = growth_fit.design_matrix(grid)
        assert X.shape == (4, 8)
        np.testing.assert_array_equal(X[:, 0], np.ones(4))

    def test_residuals(self, growth_fit):
        np.testing.assert_allclose(
            growth_fit.residuals, growth_fit.observed - growth_fit.fitted
        )


class TestReproductionModel:
    """Tests for the Poisson GEE."""

    def test_family(self, reproduction_fit):
        assert reproduction_fit.family == "poisson"
        assert reproduction_fit.link == "log"
        assert reproduction_fit.time_variable == "Week"

    def test_fitted_means_positive(self, reproduction_fit):
        assert (reproduction_fit.fitted > 0).all()

    def test_criteria(self, reproduction_fit):
        assert {"QIC", "QICu", "working_correlation"} <= set(reproduction_fit.criteria)

    def test_observed_counts(self, reproduction_fit, prepared):
        assert reproduction_fit.n_observations == len(prepared.reproduction)
        np.testing.assert_array_equal(
            reproduction_fit.observed, prepared.reproduction["EggSacs"].to_numpy(dtype=float)
        )


class TestFeedingModel:
    """Tests for the binomial GEE."""

    def test_fitted_probabilities(self, feeding_fit):
        assert feeding_fit.family == "binomial"
        assert ((feeding_fit.fitted > 0) & (feeding_fit.fitted < 1)).all()

    def test_time_variable_is_day(self, feeding_fit):
        assert feeding_fit.time_variable == "Day"
        assert any("Day" in term for term in feeding_fit.params.index)


class TestSurvivalModel:
    """Tests for the Cox model."""

    def test_one_coefficient_per_non_reference_treatment(self, survival_fit):
        assert list(survival_fit.coefficients["term"]) == [
            "Treatment_10", "Treatment_50", "Treatment_100"
        ]

    def test_hazard_ratios(self, survival_fit):
        table = survival_fit.coefficients
        np.testing.assert_allclose(table["hazard_ratio"], np.exp(table["estimate"]))

    def test_counts(self, survival_fit, deaths):
        assert survival_fit.n_observations == 40
        assert survival_fit.observed.sum() == len(deaths)
        assert 0 <= survival_fit.criteria["concordance"] <= 1

    def test_partial_aic(self, survival_fit):
        assert survival_fit.aic == pytest.approx(survival_fit.criteria["partial_AIC"])
        assert survival_fit.converged

    def test_reference_without_deaths_is_not_converged(self, prepared):
        survival = prepared.survival.copy()
        survival.loc[survival["Treatment"] == "0", "Death"] = 0
        fit = fit_survival_model(survival)
        assert fit.converged is False
        assert fit.warnings

    def test_no_deaths_raises(self, prepared):
        survival = prepared.survival.copy()
        survival["Death"] = 0
        with pytest.raises(ValueError, match="No deaths"):
            fit_survival_model(survival)


class TestModelFrame:
    """Tests for input validation shared by all models."""

    def test_single_treatment_raises(self, prepared):
        growth = prepared.growth.loc[prepared.growth["Treatment"] == "0"]
        with pytest.raises(ValueError, match="two treatments"):
            fit_growth_model(growth)

    def test_empty_data_raises(self, prepared):
        reproduction = prepared.reproduction.iloc[0:0]
        with pytest.raises(ValueError, match="No complete rows"):
            fit_reproduction_model(reproduction)


class TestKaplanMeier:
    """Tests for per-treatment survival curves."""

    def test_columns_and_treatments(self, prepared):
        table = kaplan_meier_table(prepared.survival)
        assert list(table.columns) == ["Treatment", "Week", "at_risk", "deaths", "survival"]
        assert list(pd.unique(table["Treatment"])) == ["0", "10", "50", "100"]

    def test_curves_non_increasing(self, prepared):
        table = kaplan_meier_table(prepared.survival)
        for _, curve in table.groupby("Treatment"):
            values = curve.sort_values("Week")["survival"].to_numpy()
            assert (np.diff(values) <= 1e-12).all()
            assert values.max() <= 1.0

    def test_death_totals(self, prepared, deaths):
        table = kaplan_meier_table(prepared.survival)
        assert table["deaths"].sum() == len(deaths)


class TestDesignRows:
    """Tests for design rows rebuilt from the model formula."""

    @pytest.mark.parametrize("name", ["growth", "reproduction", "feeding"])
    def test_matches_fitted_design(self, name, prepared):
        fit = {
            "growth": fit_growth_model,
            "reproduction": fit_reproduction_model,
            "feeding": fit_feeding_model,
        }[name](getattr(prepared, name))

        X = fit.design_matrix(fit.data)
        np.testing.assert_allclose(X, np.asarray(fit.results.model.exog, dtype=float))

    def test_gee_criteria_give_aic(self, reproduction_fit, feeding_fit):
        for fit in (reproduction_fit, feeding_fit):
            assert fit.aic == pytest.approx(fit.criteria["QIC"])
