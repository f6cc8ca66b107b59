"""
Analysis Pipeline Module.

Statistical analysis of the naproxen sodium exposure trial on Physa snails.

Pipeline Components:

1. Preprocessing (preprocessing.py)
   - Growth as week-to-week change in shell length
   - Egg-sac counts of living snails
   - One censored survival record per snail
   - Feeding observations as day offsets, truncated at death

2. Model Fitting (fitting.py)
   - Growth: linear mixed model with a random intercept per snail
   - Egg sacs: Poisson GEE, exchangeable within snail
   - Feeding: binomial GEE, exchangeable within snail
   - Survival: Cox proportional hazards, Kaplan-Meier curves

3. Validation (validation.py)
   - Simulation-based scaled residuals
   - Uniformity, dispersion, zero-inflation and outlier tests
   - Proportional hazards check

4. Statistics (statistics.py)
   - Pairwise treatment contrasts with p-value adjustment
   - Assumption tests and log-rank comparison

5. Reporting (reporting.py) and Pipeline (pipeline.py)
   - Console reports
   - Step-isolated end-to-end run
"""

from naproxen_physa.analysis.preprocessing import (
    PreparationReport,
    PreparedData,
    compute_growth,
    prepare_reproduction,
    build_survival_dataset,
    prepare_feeding,
    exclude_after_death,
    proportion_alive,
    proportion_fed,
    summarize_by_treatment,
    prepare_experiment,
)
from naproxen_physa.analysis.fitting import (
    ModelFitResult,
    fit_growth_model,
    fit_reproduction_model,
    fit_feeding_model,
    fit_survival_model,
    kaplan_meier_table,
)
from naproxen_physa.analysis.statistics import (
    HypothesisTestResult,
    StatisticalTests,
    adjust_pvalues,
    pairwise_contrasts,
)
from naproxen_physa.analysis.validation import (
    ModelDiagnostics,
    SimulatedResiduals,
    simulate_residuals,
    validate_model,
)
from naproxen_physa.analysis.reporting import generate_pipeline_report
from naproxen_physa.analysis.pipeline import (
    ExperimentPipeline,
    PipelineResult,
    run_analysis,
)

__all__ = [
    "PreparationReport",
    "PreparedData",
    "compute_growth",
    "prepare_reproduction",
    "build_survival_dataset",
    "prepare_feeding",
    "exclude_after_death",
    "proportion_alive",
    "proportion_fed",
    "summarize_by_treatment",
    "prepare_experiment",
    "ModelFitResult",
    "fit_growth_model",
    "fit_reproduction_model",
    "fit_feeding_model",
    "fit_survival_model",
    "kaplan_meier_table",
    "HypothesisTestResult",
    "StatisticalTests",
    "adjust_pvalues",
    "pairwise_contrasts",
    "ModelDiagnostics",
    "SimulatedResiduals",
    "simulate_residuals",
    "validate_model",
    "generate_pipeline_report",
    "ExperimentPipeline",
    "PipelineResult",
    "run_analysis",
]
