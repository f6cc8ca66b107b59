"""
Model Validation Module.

Simulation-based residual diagnostics for the fitted models:

    - Scaled (quantile) residuals from response values simulated under the
      fitted model; uniform on [0, 1] when the model is correct
    - Uniformity (Kolmogorov-Smirnov), dispersion, zero-inflation and
      outlier tests on those residuals
    - Residual normality and equal variance for the growth model
    - Schoenfeld-residual proportional hazards test for the Cox model
"""

from dataclasses import dataclass, field
from typing import List, Optional
import numpy as np
from numpy.typing import NDArray
from scipy.stats import kstest, binomtest
from lifelines.statistics import proportional_hazard_test

from naproxen_physa.analysis.fitting import ModelFitResult
from naproxen_physa.analysis.statistics import HypothesisTestResult, StatisticalTests


@dataclass
class SimulatedResiduals:
    """
    Scaled residuals from simulations of the fitted model.

    Attributes:
        family: Response distribution used for simulation
        observed: Observed responses (n,)
        fitted: Fitted mean responses (n,)
        simulated: Simulated responses (n, n_simulations)
        scaled_residuals: Randomised PIT residuals in [0, 1] (n,)
    """
    family: str
    observed: NDArray[np.float64]
    fitted: NDArray[np.float64]
    simulated: NDArray[np.float64]
    scaled_residuals: NDArray[np.float64]

    @property
    def n_simulations(self) -> int:
        return self.simulated.shape[1]


@dataclass
class ModelDiagnostics:
    """All diagnostic tests run for one model."""
    model_name: str
    tests: List[HypothesisTestResult] = field(default_factory=list)
    simulation: Optional[SimulatedResiduals] = None

    @property
    def problems(self) -> List[HypothesisTestResult]:
        """Tests whose null hypothesis (adequate fit) was rejected."""
        return [t for t in self.tests if t.reject_null]

    def get(self, test_name: str) -> Optional[HypothesisTestResult]:
        for test in self.tests:
            if test.test_name == test_name:
                return test
        return None


def _simulate_response(
    family: str,
    fitted: NDArray[np.float64],
    scale: float,
    n_simulations: int,
    rng: np.random.Generator
) -> NDArray[np.float64]:
    size = (len(fitted), n_simulations)
    mu = fitted[:, None]

    if family == "gaussian":
        return mu + rng.normal(0.0, np.sqrt(scale), size=size)
    if family == "poisson":
        return rng.poisson(np.clip(mu, 0, None), size=size).astype(np.float64)
    if family == "binomial":
        return rng.binomial(1, np.clip(mu, 0, 1), size=size).astype(np.float64)

    raise ValueError(f"Cannot simulate responses for family '{family}'")


def simulate_residuals(
    fit: ModelFitResult,
    n_simulations: int = 250,
    random_state: Optional[int] = None
) -> SimulatedResiduals:
    """
    Simulate responses under the fitted model and compute scaled residuals.

    For each observation the residual is
        (#{sim < y} + U * #{sim == y}) / n_simulations,   U ~ Uniform(0, 1)
    which randomises ties so that residuals of discrete responses are
    uniform under a correct model.

    Args:
        fit: Fitted gaussian, poisson or binomial model
        n_simulations: Simulations per observation
        random_state: Seed for reproducibility

    Returns:
        SimulatedResiduals
    """
    rng = np.random.default_rng(random_state)

    observed = np.asarray(fit.observed, dtype=np.float64)
    fitted = np.asarray(fit.fitted, dtype=np.float64)
    simulated = _simulate_response(fit.family, fitted, fit.scale, n_simulations, rng)

    y = observed[:, None]
    n_less = np.sum(simulated < y, axis=1)
    n_equal = np.sum(simulated == y, axis=1)
    scaled = (n_less + rng.uniform(size=len(observed)) * n_equal) / n_simulations

    return SimulatedResiduals(
        family=fit.family,
        observed=observed,
        fitted=fitted,
        simulated=simulated,
        scaled_residuals=scaled,
    )


def _two_sided_simulation_p(observed: float, simulated: NDArray[np.float64]) -> float:
    p = 2 * min(np.mean(simulated >= observed), np.mean(simulated <= observed))
    return float(min(p, 1.0))


def test_uniformity(sim: SimulatedResiduals, alpha: float = 0.05) -> HypothesisTestResult:
    """KS test of the scaled residuals against Uniform(0, 1)."""
    stat, p_value = kstest(sim.scaled_residuals, "uniform")

    return HypothesisTestResult(
        test_name="Uniformity (KS)",
        statistic=float(stat),
        p_value=float(p_value),
        null_hypothesis="Scaled residuals are uniform (model is correctly specified)",
        alternative_hypothesis="Scaled residuals deviate from uniformity",
        reject_null=p_value < alpha,
        alpha=alpha,
        details={"n_observations": len(sim.scaled_residuals)},
    )


def test_dispersion(sim: SimulatedResiduals, alpha: float = 0.05) -> HypothesisTestResult:
    """
    Compare the observed residual spread with the simulated spread.

    ratio > 1 indicates overdispersion, ratio < 1 underdispersion.
    """
    observed_spread = float(np.var(sim.observed - sim.fitted, ddof=1))
    simulated_spread = np.var(sim.simulated - sim.fitted[:, None], axis=0, ddof=1)

    mean_simulated = float(np.mean(simulated_spread))
    ratio = observed_spread / mean_simulated if mean_simulated > 0 else np.nan
    p_value = _two_sided_simulation_p(observed_spread, simulated_spread)

    return HypothesisTestResult(
        test_name="Dispersion",
        statistic=ratio,
        p_value=p_value,
        null_hypothesis="Residual dispersion matches the fitted model",
        alternative_hypothesis="Data are over- or underdispersed relative to the model",
        reject_null=p_value < alpha,
        alpha=alpha,
        details={
            "observed_spread": observed_spread,
            "mean_simulated_spread": mean_simulated,
        },
    )


def test_zero_inflation(sim: SimulatedResiduals, alpha: float = 0.05) -> HypothesisTestResult:
    """Compare the observed number of zeros with the simulated numbers of zeros."""
    observed_zeros = float(np.sum(sim.observed == 0))
    simulated_zeros = np.sum(sim.simulated == 0, axis=0).astype(np.float64)

    mean_simulated = float(np.mean(simulated_zeros))
    ratio = observed_zeros / mean_simulated if mean_simulated > 0 else np.nan
    p_value = _two_sided_simulation_p(observed_zeros, simulated_zeros)

    return HypothesisTestResult(
        test_name="Zero-inflation",
        statistic=ratio,
        p_value=p_value,
        null_hypothesis="Number of zeros matches the fitted model",
        alternative_hypothesis="More or fewer zeros than expected",
        reject_null=p_value < alpha,
        alpha=alpha,
        details={
            "observed_zeros": int(observed_zeros),
            "mean_simulated_zeros": mean_simulated,
        },
    )


def test_outliers(sim: SimulatedResiduals, alpha: float = 0.05) -> HypothesisTestResult:
    """
    Binomial test for observations outside the simulation envelope.

    Residuals of exactly 0 or 1 lie outside every simulated value; under a
    correct model that happens with probability 2 / (n_simulations + 1).
    """
    residuals = sim.scaled_residuals
    n_outliers = int(np.sum((residuals == 0) | (residuals == 1)))
    expected_rate = 2.0 / (sim.n_simulations + 1)
    result = binomtest(n_outliers, len(residuals), expected_rate)

    return HypothesisTestResult(
        test_name="Outliers",
        statistic=n_outliers / len(residuals),
        p_value=float(result.pvalue),
        null_hypothesis="Outlier frequency matches the simulation envelope",
        alternative_hypothesis="Outlier frequency differs from expectation",
        reject_null=result.pvalue < alpha,
        alpha=alpha,
        details={"n_outliers": n_outliers, "expected_rate": expected_rate},
    )


def test_proportional_hazards(fit: ModelFitResult, alpha: float = 0.05) -> List[HypothesisTestResult]:
    """
    Schoenfeld-residual test of the proportional hazards assumption.

    Returns one result per treatment coefficient.
    """
    ph = proportional_hazard_test(fit.results, fit.data, time_transform="rank")
    summary = ph.summary

    results = []
    for term, row in summary.iterrows():
        term_name = term[0] if isinstance(term, tuple) else term
        results.append(HypothesisTestResult(
            test_name=f"Proportional hazards ({term_name})",
            statistic=float(row["test_statistic"]),
            p_value=float(row["p"]),
            null_hypothesis="Hazard ratio is constant over time",
            alternative_hypothesis="Hazard ratio changes over time",
            reject_null=row["p"] < alpha,
            alpha=alpha,
            details={"time_transform": "rank"},
        ))
    return results


def _residuals_by_treatment(fit: ModelFitResult) -> dict:
    treatment = fit.data["Treatment"].astype(str).to_numpy()
    residuals = fit.residuals
    return {level: residuals[treatment == level] for level in fit.treatments}


def validate_model(
    fit: ModelFitResult,
    n_simulations: int = 250,
    random_state: Optional[int] = None,
    alpha: float = 0.05
) -> ModelDiagnostics:
    """
    Run every diagnostic that applies to the model's family.

    Args:
        fit: Fitted model
        n_simulations: Simulations for the residual diagnostics
        random_state: Seed for reproducibility
        alpha: Significance level

    Returns:
        ModelDiagnostics
    """
    diagnostics = ModelDiagnostics(model_name=fit.name)

    if fit.family == "cox":
        diagnostics.tests.extend(test_proportional_hazards(fit, alpha))
        return diagnostics

    sim = simulate_residuals(fit, n_simulations, random_state)
    diagnostics.simulation = sim
    diagnostics.tests.append(test_uniformity(sim, alpha))
    diagnostics.tests.append(test_dispersion(sim, alpha))
    diagnostics.tests.append(test_outliers(sim, alpha))

    if fit.family == "poisson":
        diagnostics.tests.append(test_zero_inflation(sim, alpha))

    if fit.family == "gaussian":
        diagnostics.tests.append(
            StatisticalTests.test_residual_normality(fit.residuals, alpha)
        )
        diagnostics.tests.append(
            StatisticalTests.test_homoscedasticity(_residuals_by_treatment(fit), alpha)
        )

    return diagnostics
