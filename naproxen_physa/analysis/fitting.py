"""
Model Fitting Module.

One model per response variable:

    growth        linear mixed model, random intercept per snail
                  Growth ~ C(Treatment) * Week
    reproduction  Poisson GEE, exchangeable correlation within snail
                  EggSacs ~ C(Treatment) * Week
    feeding       binomial GEE, exchangeable correlation within snail
                  Fed ~ C(Treatment) * Day
    survival      Cox proportional hazards on the censored survival table
                  Surv(Week, Death) ~ Treatment

The first treatment level (control) is the reference in every model.
Library warnings raised during fitting are recorded on the result.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from patsy import build_design_matrices, dmatrix
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from lifelines import CoxPHFitter, KaplanMeierFitter
from lifelines.exceptions import ConvergenceWarning as LifelinesConvergenceWarning


GROWTH_FORMULA = "Growth ~ C(Treatment) * Week"
REPRODUCTION_FORMULA = "EggSacs ~ C(Treatment) * Week"
FEEDING_FORMULA = "Fed ~ C(Treatment) * Day"

COEFFICIENT_COLUMNS = [
    "term", "estimate", "std_error", "statistic", "p_value", "ci_lower", "ci_upper",
]


@dataclass
class ModelFitResult:
    """
    Fitted model for one response variable.

    Attributes:
        name: Model name ("growth", "reproduction", "feeding", "survival")
        response: Response column
        formula: Model formula (descriptive for the Cox model)
        family: Response distribution ("gaussian", "poisson", "binomial", "cox")
        link: Link function of the linear predictor
        time_variable: Time covariate in the fixed effects (None for Cox)
        treatments: Treatment levels in the fitted data, reference first
        results: Underlying statsmodels results / lifelines fitter
        data: Data the model was fitted to
        params: Fixed-effect estimates
        cov_params: Covariance matrix of the fixed effects
        coefficients: Coefficient table
        fitted: Fitted mean response per observation
        observed: Observed response per observation
        scale: Residual variance (gaussian) or dispersion estimate
        design_matrix: Builds fixed-effect design rows for new data
        n_observations: Rows used in the fit
        n_groups: Snails contributing to the fit
        converged: Whether the optimiser reported convergence
        aic: AIC (ML refit for growth, QIC for GEE, partial AIC for Cox)
        criteria: Information criteria / fit statistics
        warnings: Library warnings raised while fitting
    """
    name: str
    response: str
    formula: str
    family: str
    link: str
    time_variable: Optional[str]
    treatments: List[str]
    results: Any
    data: pd.DataFrame
    params: pd.Series
    cov_params: pd.DataFrame
    coefficients: pd.DataFrame
    fitted: np.ndarray
    observed: np.ndarray
    scale: float
    design_matrix: Callable[[pd.DataFrame], np.ndarray]
    n_observations: int
    n_groups: int
    converged: bool = True
    aic: float = np.nan
    criteria: Dict[str, float] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def residuals(self) -> np.ndarray:
        """Response residuals (observed - fitted)."""
        return self.observed - self.fitted


def _model_frame(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """Complete cases of the model columns, with unused treatment levels removed."""
    frame = df.dropna(subset=columns)[columns].copy()
    if frame.empty:
        raise ValueError(f"No complete rows for columns {columns}")
    frame["Treatment"] = frame["Treatment"].cat.remove_unused_categories()
    if len(frame["Treatment"].cat.categories) < 2:
        raise ValueError("At least two treatments are required to fit a treatment effect")
    return frame.reset_index(drop=True)


def _formula_design(
    formula: str,
    data: pd.DataFrame,
    names: List[str]
) -> Callable[[pd.DataFrame], np.ndarray]:
    """
    Fixed-effect design rows for new data, columns in parameter order.

    The right-hand side of the formula is re-expanded with patsy on the
    fitted data, so new rows must use the same treatment categories.
    """
    rhs = formula.split("~", 1)[1]
    design_info = dmatrix(rhs, data, return_type="dataframe").design_info
    columns = list(design_info.column_names)
    if set(columns) == set(names):
        order = [columns.index(n) for n in names]
    elif len(columns) == len(names):
        order = list(range(len(columns)))
    else:
        raise ValueError(
            f"Design columns {columns} do not match model parameters {names}"
        )

    def build(grid: pd.DataFrame) -> np.ndarray:
        X = np.asarray(build_design_matrices([design_info], grid)[0], dtype=float)
        return X[:, order]

    return build


def _coefficient_table(results: Any, names: List[str]) -> pd.DataFrame:
    conf = results.conf_int()
    table = pd.DataFrame({
        "term": names,
        "estimate": np.asarray(results.params.loc[names], dtype=float),
        "std_error": np.asarray(results.bse.loc[names], dtype=float),
        "statistic": np.asarray(results.tvalues.loc[names], dtype=float),
        "p_value": np.asarray(results.pvalues.loc[names], dtype=float),
        "ci_lower": np.asarray(conf.loc[names].iloc[:, 0], dtype=float),
        "ci_upper": np.asarray(conf.loc[names].iloc[:, 1], dtype=float),
    })
    return table[COEFFICIENT_COLUMNS]


def fit_growth_model(growth: pd.DataFrame, reml: bool = True) -> ModelFitResult:
    """
    Fit the growth mixed model.

    Args:
        growth: Output of compute_growth
        reml: Use restricted maximum likelihood

    Returns:
        ModelFitResult (family "gaussian")
    """
    data = _model_frame(growth, ["Snail", "Treatment", "Week", "Growth"])

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        model = smf.mixedlm(GROWTH_FORMULA, data, groups=data["Snail"])
        results = model.fit(reml=reml)
        # Information criteria need the maximum likelihood fit
        ml_results = model.fit(reml=False) if reml else results

    fe_names = list(results.fe_params.index)
    cov = results.cov_params().loc[fe_names, fe_names]

    return ModelFitResult(
        name="growth",
        response="Growth",
        formula=f"{GROWTH_FORMULA} + (1 | Snail)",
        family="gaussian",
        link="identity",
        time_variable="Week",
        treatments=list(data["Treatment"].cat.categories),
        results=results,
        data=data,
        params=results.fe_params,
        cov_params=cov,
        coefficients=_coefficient_table(results, fe_names),
        fitted=np.asarray(results.fittedvalues, dtype=float),
        observed=data["Growth"].to_numpy(dtype=float),
        scale=float(results.scale),
        design_matrix=_formula_design(GROWTH_FORMULA, data, fe_names),
        n_observations=int(results.nobs),
        n_groups=int(data["Snail"].nunique()),
        converged=bool(results.converged),
        aic=float(ml_results.aic),
        criteria={
            "logLik": float(results.llf),
            "REML_criterion": float(-2 * results.llf),
            "AIC": float(ml_results.aic),
            "BIC": float(ml_results.bic),
            "snail_variance": float(results.cov_re.iloc[0, 0]),
            "residual_variance": float(results.scale),
        },
        warnings=[str(w.message) for w in caught],
    )


def _fit_gee(
    name: str,
    formula: str,
    data: pd.DataFrame,
    response: str,
    time_variable: str,
    family: sm.families.Family,
    family_name: str,
    link_name: str
) -> ModelFitResult:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        model = smf.gee(
            formula,
            groups="Snail",
            data=data,
            family=family,
            cov_struct=sm.cov_struct.Exchangeable(),
        )
        results = model.fit()
        qic, qicu = results.qic()

    names = list(results.params.index)
    linear = model.exog @ np.asarray(results.params, dtype=float)
    fitted = model.family.link.inverse(linear)
    messages = [str(w.message) for w in caught]
    converged = not any(issubclass(w.category, ConvergenceWarning) for w in caught)

    return ModelFitResult(
        name=name,
        response=response,
        formula=formula,
        family=family_name,
        link=link_name,
        time_variable=time_variable,
        treatments=list(data["Treatment"].cat.categories),
        results=results,
        data=data,
        params=results.params,
        cov_params=results.cov_params(),
        coefficients=_coefficient_table(results, names),
        fitted=np.asarray(fitted, dtype=float),
        observed=data[response].to_numpy(dtype=float),
        scale=float(results.scale),
        design_matrix=_formula_design(formula, data, names),
        n_observations=int(results.nobs),
        n_groups=int(data["Snail"].nunique()),
        converged=converged,
        aic=float(qic),
        criteria={
            "QIC": float(qic),
            "QICu": float(qicu),
            "working_correlation": float(results.model.cov_struct.dep_params),
            "dispersion": float(results.scale),
        },
        warnings=messages,
    )


def fit_reproduction_model(reproduction: pd.DataFrame) -> ModelFitResult:
    """
    Fit the egg-sac Poisson model.

    Args:
        reproduction: Output of prepare_reproduction

    Returns:
        ModelFitResult (family "poisson", log link)
    """
    data = _model_frame(reproduction, ["Snail", "Treatment", "Week", "EggSacs"])
    return _fit_gee(
        "reproduction", REPRODUCTION_FORMULA, data, "EggSacs", "Week",
        sm.families.Poisson(), "poisson", "log",
    )


def fit_feeding_model(feeding: pd.DataFrame) -> ModelFitResult:
    """
    Fit the feeding binomial model.

    Args:
        feeding: Output of prepare_feeding / exclude_after_death

    Returns:
        ModelFitResult (family "binomial", logit link)
    """
    data = _model_frame(feeding, ["Snail", "Treatment", "Day", "Fed"])
    return _fit_gee(
        "feeding", FEEDING_FORMULA, data, "Fed", "Day",
        sm.families.Binomial(), "binomial", "logit",
    )


def _treatment_dummies(treatment: pd.Series, levels: List[str]) -> pd.DataFrame:
    categorical = pd.Categorical(treatment, categories=levels)
    dummies = pd.get_dummies(categorical, prefix="Treatment", drop_first=True, dtype=float)
    dummies.index = treatment.index
    return dummies


def fit_survival_model(survival: pd.DataFrame, penalizer: float = 0.0) -> ModelFitResult:
    """
    Fit the Cox proportional hazards model.

    Args:
        survival: Output of build_survival_dataset
        penalizer: L2 penalty passed to CoxPHFitter

    Returns:
        ModelFitResult (family "cox", log link; estimates are log hazard ratios)
    """
    data = _model_frame(survival, ["Snail", "Treatment", "Week", "Death"])
    if data["Death"].sum() == 0:
        raise ValueError("No deaths recorded; the Cox model cannot be estimated")

    levels = list(data["Treatment"].cat.categories)
    dummies = _treatment_dummies(data["Treatment"], levels)
    covariates = list(dummies.columns)
    frame = pd.concat([data[["Week", "Death"]], dummies], axis=1)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        cph = CoxPHFitter(penalizer=penalizer)
        cph.fit(frame, duration_col="Week", event_col="Death")

    converged = not any(
        issubclass(w.category, LifelinesConvergenceWarning) or "norm(delta)" in str(w.message)
        for w in caught
    )

    summary = cph.summary.loc[covariates]
    coefficients = pd.DataFrame({
        "term": covariates,
        "estimate": summary["coef"].to_numpy(),
        "std_error": summary["se(coef)"].to_numpy(),
        "statistic": summary["z"].to_numpy(),
        "p_value": summary["p"].to_numpy(),
        "ci_lower": summary["coef lower 95%"].to_numpy(),
        "ci_upper": summary["coef upper 95%"].to_numpy(),
    })[COEFFICIENT_COLUMNS]
    coefficients["hazard_ratio"] = np.exp(coefficients["estimate"])

    # Per-snail cumulative hazard at the observed time is the martingale "fitted" count
    martingale = cph.compute_residuals(frame, "martingale")["martingale"].reindex(frame.index)
    expected = frame["Death"].to_numpy(dtype=float) - martingale.to_numpy(dtype=float)

    def design(grid: pd.DataFrame) -> np.ndarray:
        return _treatment_dummies(grid["Treatment"], levels).to_numpy()

    return ModelFitResult(
        name="survival",
        response="Death",
        formula="Surv(Week, Death) ~ Treatment",
        family="cox",
        link="log",
        time_variable=None,
        treatments=levels,
        results=cph,
        data=frame,
        params=cph.params_.loc[covariates],
        cov_params=cph.variance_matrix_.loc[covariates, covariates],
        coefficients=coefficients,
        fitted=expected,
        observed=frame["Death"].to_numpy(dtype=float),
        scale=1.0,
        design_matrix=design,
        n_observations=len(frame),
        n_groups=int(data["Snail"].nunique()),
        converged=converged,
        aic=float(cph.AIC_partial_),
        criteria={
            "partial_logLik": float(cph.log_likelihood_),
            "partial_AIC": float(cph.AIC_partial_),
            "concordance": float(cph.concordance_index_),
        },
        warnings=[str(w.message) for w in caught],
    )


def kaplan_meier_table(survival: pd.DataFrame) -> pd.DataFrame:
    """
    Kaplan-Meier survival estimates per treatment.

    Returns:
        DataFrame with Treatment, Week, at_risk, deaths, survival
    """
    frames = []
    for level in survival["Treatment"].cat.categories:
        subset = survival.loc[survival["Treatment"] == level]
        if subset.empty:
            continue
        kmf = KaplanMeierFitter(label=str(level))
        kmf.fit(subset["Week"], event_observed=subset["Death"])

        table = kmf.event_table[["at_risk", "observed"]].rename(columns={"observed": "deaths"})
        table["survival"] = kmf.survival_function_.iloc[:, 0].reindex(table.index).to_numpy()
        table = table.rename_axis("Week").reset_index()
        table.insert(0, "Treatment", str(level))
        frames.append(table)

    if not frames:
        return pd.DataFrame(columns=["Treatment", "Week", "at_risk", "deaths", "survival"])
    return pd.concat(frames, ignore_index=True)
