"""
Statistical Tests Module.

Provides:
    - Assumption tests for model residuals (normality, equal variance)
    - Non-parametric treatment comparisons
    - Log-rank comparison of survival curves
    - Pairwise post-hoc treatment contrasts with multiplicity adjustment
"""

from dataclasses import dataclass
from itertools import combinations
from typing import Any, Dict, List, Optional
import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats
from scipy.stats import shapiro, levene
from statsmodels.stats.multitest import multipletests
from lifelines.statistics import multivariate_logrank_test


P_ADJUST_METHODS = (
    "holm", "bonferroni", "sidak", "holm-sidak", "hommel",
    "fdr_bh", "fdr_by", "none",
)


@dataclass
class HypothesisTestResult:
    """
    Result of a hypothesis test.

    Attributes:
        test_name: Name of the statistical test
        statistic: Test statistic
        p_value: P-value
        null_hypothesis: Description of H0
        alternative_hypothesis: Description of H1
        reject_null: Whether to reject H0 at given alpha
        alpha: Significance level
        details: Additional test-specific information
    """
    test_name: str
    statistic: float
    p_value: float
    null_hypothesis: str
    alternative_hypothesis: str
    reject_null: bool
    alpha: float = 0.05
    details: dict = None

    def __post_init__(self):
        if self.details is None:
            self.details = {}


class StatisticalTests:
    """
    Collection of statistical tests for the exposure trial.
    """

    @staticmethod
    def test_residual_normality(
        residuals: NDArray[np.float64],
        alpha: float = 0.05
    ) -> HypothesisTestResult:
        """
        Test if residuals follow a normal distribution.

        Uses Shapiro-Wilk test for small samples, D'Agostino-Pearson for large.

        Args:
            residuals: Array of residuals
            alpha: Significance level

        Returns:
            HypothesisTestResult
        """
        residuals = np.asarray(residuals, dtype=np.float64)
        residuals = residuals[np.isfinite(residuals)]

        if len(residuals) < 3:
            return HypothesisTestResult(
                test_name="Normality Test",
                statistic=np.nan,
                p_value=np.nan,
                null_hypothesis="Residuals are normally distributed",
                alternative_hypothesis="Residuals are not normally distributed",
                reject_null=False,
                alpha=alpha,
                details={"error": "Insufficient data"}
            )

        if len(residuals) <= 5000:
            stat, p_value = shapiro(residuals)
            test_name = "Shapiro-Wilk"
        else:
            stat, p_value = stats.normaltest(residuals)
            test_name = "D'Agostino-Pearson"

        return HypothesisTestResult(
            test_name=test_name,
            statistic=float(stat),
            p_value=float(p_value),
            null_hypothesis="Residuals are normally distributed",
            alternative_hypothesis="Residuals are not normally distributed",
            reject_null=p_value < alpha,
            alpha=alpha,
            details={
                "n_samples": len(residuals),
                "mean": float(np.mean(residuals)),
                "std": float(np.std(residuals)),
                "skewness": float(stats.skew(residuals)),
                "kurtosis": float(stats.kurtosis(residuals)),
            }
        )

    @staticmethod
    def test_homoscedasticity(
        groups: Dict[str, NDArray[np.float64]],
        alpha: float = 0.05
    ) -> HypothesisTestResult:
        """
        Test for equal variances across treatments.

        Uses Levene's test (robust to non-normality).

        Args:
            groups: Treatment -> values (e.g. residuals per treatment)
            alpha: Significance level

        Returns:
            HypothesisTestResult
        """
        valid = {}
        for name, values in groups.items():
            v = np.asarray(values, dtype=np.float64)
            v = v[np.isfinite(v)]
            if len(v) > 2:
                valid[name] = v

        if len(valid) < 2:
            return HypothesisTestResult(
                test_name="Levene's Test",
                statistic=np.nan,
                p_value=np.nan,
                null_hypothesis="Variances are equal across groups",
                alternative_hypothesis="Variances differ across groups",
                reject_null=False,
                alpha=alpha,
                details={"error": "Insufficient groups"}
            )

        stat, p_value = levene(*valid.values())

        return HypothesisTestResult(
            test_name="Levene's Test",
            statistic=float(stat),
            p_value=float(p_value),
            null_hypothesis="Variances are equal across groups",
            alternative_hypothesis="Variances differ across groups",
            reject_null=p_value < alpha,
            alpha=alpha,
            details={
                "n_groups": len(valid),
                "group_variances": {k: float(np.var(v, ddof=1)) for k, v in valid.items()},
            }
        )

    @staticmethod
    def test_treatment_differences(
        groups: Dict[str, NDArray[np.float64]],
        alpha: float = 0.05
    ) -> HypothesisTestResult:
        """
        Test if a response differs across treatments.

        Uses Kruskal-Wallis H-test (non-parametric ANOVA).

        Args:
            groups: Treatment -> values
            alpha: Significance level

        Returns:
            HypothesisTestResult
        """
        valid = {}
        for name, values in groups.items():
            v = np.asarray(values, dtype=np.float64)
            v = v[np.isfinite(v)]
            if len(v) > 0:
                valid[name] = v

        pooled = np.concatenate(list(valid.values())) if valid else np.array([])
        if len(valid) < 2 or np.ptp(pooled) == 0:
            return HypothesisTestResult(
                test_name="Kruskal-Wallis H-test",
                statistic=np.nan,
                p_value=np.nan,
                null_hypothesis="Distributions are identical across treatments",
                alternative_hypothesis="At least one treatment has a different distribution",
                reject_null=False,
                alpha=alpha,
                details={"error": "Insufficient groups or no variation"}
            )

        stat, p_value = stats.kruskal(*valid.values())

        return HypothesisTestResult(
            test_name="Kruskal-Wallis H-test",
            statistic=float(stat),
            p_value=float(p_value),
            null_hypothesis="Distributions are identical across treatments",
            alternative_hypothesis="At least one treatment has a different distribution",
            reject_null=p_value < alpha,
            alpha=alpha,
            details={
                "treatments": list(valid),
                "group_medians": {k: float(np.median(v)) for k, v in valid.items()},
            }
        )

    @staticmethod
    def test_survival_difference(
        survival: pd.DataFrame,
        alpha: float = 0.05
    ) -> HypothesisTestResult:
        """
        Log-rank test for equal survival curves across treatments.

        Args:
            survival: Survival table (Treatment, Week, Death)
            alpha: Significance level

        Returns:
            HypothesisTestResult
        """
        result = multivariate_logrank_test(
            survival["Week"], survival["Treatment"].astype(str), survival["Death"]
        )

        return HypothesisTestResult(
            test_name="Log-rank test",
            statistic=float(result.test_statistic),
            p_value=float(result.p_value),
            null_hypothesis="Survival curves are identical across treatments",
            alternative_hypothesis="At least one treatment has a different survival curve",
            reject_null=result.p_value < alpha,
            alpha=alpha,
            details={
                "degrees_of_freedom": result.degrees_of_freedom,
                "deaths": survival.groupby("Treatment", observed=True)["Death"].sum().to_dict(),
            }
        )


def adjust_pvalues(p_values: NDArray[np.float64], method: str = "holm") -> NDArray[np.float64]:
    """
    Adjust p-values for multiple comparisons.

    Args:
        p_values: Unadjusted p-values
        method: Any statsmodels multipletests method, or "none"

    Returns:
        Adjusted p-values (NaN inputs stay NaN)
    """
    if method not in P_ADJUST_METHODS:
        raise ValueError(f"Unknown p-value adjustment: {method}. Available: {list(P_ADJUST_METHODS)}")

    p_values = np.asarray(p_values, dtype=np.float64)
    adjusted = p_values.copy()
    finite = np.isfinite(p_values)
    if method == "none" or not finite.any():
        return adjusted

    adjusted[finite] = multipletests(p_values[finite], method=method)[1]
    return adjusted


def pairwise_contrasts(
    fit: Any,
    at: Optional[float] = None,
    adjust: str = "holm",
    confidence_level: float = 0.95
) -> pd.DataFrame:
    """
    All pairwise treatment contrasts on the linear-predictor scale.

    Each treatment's linear predictor is built from the fitted design at a
    common value of the model's time covariate (its mean over the fitted
    data unless ``at`` is given). Differences are tested with Wald z-tests
    and adjusted for multiplicity.

    Args:
        fit: ModelFitResult
        at: Value of the time covariate at which treatments are compared
        adjust: P-value adjustment method
        confidence_level: Confidence level for the contrast intervals

    Returns:
        DataFrame with contrast, estimate, std_error, z, p_value, p_adjusted,
        ci_lower, ci_upper, and ratio columns for log/logit links
    """
    levels = fit.treatments
    grid = pd.DataFrame({"Treatment": pd.Categorical(levels, categories=levels)})
    if fit.time_variable is not None:
        if at is None:
            at = float(fit.data[fit.time_variable].mean())
        grid[fit.time_variable] = at

    X = np.asarray(fit.design_matrix(grid), dtype=np.float64)
    beta = np.asarray(fit.params, dtype=np.float64)
    cov = np.asarray(fit.cov_params, dtype=np.float64)

    pairs = list(combinations(range(len(levels)), 2))
    rows: List[Dict[str, Any]] = []
    for i, j in pairs:
        L = X[i] - X[j]
        estimate = float(L @ beta)
        se = float(np.sqrt(L @ cov @ L))
        z = estimate / se if se > 0 else np.nan
        p = 2 * stats.norm.sf(abs(z)) if np.isfinite(z) else np.nan
        rows.append({
            "contrast": f"{levels[i]} - {levels[j]}",
            "estimate": estimate,
            "std_error": se,
            "z": z,
            "p_value": p,
        })

    table = pd.DataFrame(
        rows, columns=["contrast", "estimate", "std_error", "z", "p_value"]
    )
    table["p_adjusted"] = adjust_pvalues(table["p_value"].to_numpy(), adjust)

    z_crit = stats.norm.ppf(0.5 + confidence_level / 2)
    table["ci_lower"] = table["estimate"] - z_crit * table["std_error"]
    table["ci_upper"] = table["estimate"] + z_crit * table["std_error"]

    if fit.link in ("log", "logit"):
        table["ratio"] = np.exp(table["estimate"])

    table.attrs["at"] = at
    table.attrs["adjust"] = adjust
    return table
