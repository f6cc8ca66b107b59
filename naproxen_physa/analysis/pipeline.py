"""
Analysis Pipeline.

Runs the complete analysis of the exposure trial:

    load -> reshape -> growth -> reproduction -> survival -> feeding -> figures

A failing model step is reported and recorded; the remaining independent
steps still run. Steps that need the output of a failed step are skipped.
Failure to load the measurement table aborts the run.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
import warnings

import pandas as pd

from config import Settings, get_settings
from naproxen_physa.data.loader import load_measurements, load_feeding
from naproxen_physa.analysis.preprocessing import (
    PreparedData,
    prepare_experiment,
    summarize_by_treatment,
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
    pairwise_contrasts,
)
from naproxen_physa.analysis.validation import ModelDiagnostics, validate_model


STEPS = ("load", "reshape", "growth", "reproduction", "survival", "feeding", "figures")


@dataclass
class StepFailure:
    """A pipeline step that failed or was skipped."""
    step: str
    error: str
    skipped: bool = False


@dataclass
class ModelAnalysis:
    """Fitted model with its diagnostics and post-hoc contrasts."""
    fit: ModelFitResult
    diagnostics: Optional[ModelDiagnostics] = None
    contrasts: Optional[pd.DataFrame] = None
    summary: Optional[pd.DataFrame] = None


@dataclass
class PipelineResult:
    """
    Everything produced by one pipeline run.

    Attributes:
        data: Derived datasets (None if reshaping failed)
        analyses: Model name -> ModelAnalysis for every model that was fitted
        survival_curves: Kaplan-Meier table per treatment
        logrank: Log-rank comparison of the survival curves
        figures: Figure name -> saved file paths
        failures: Failed or skipped steps
    """
    data: Optional[PreparedData] = None
    analyses: Dict[str, ModelAnalysis] = field(default_factory=dict)
    survival_curves: Optional[pd.DataFrame] = None
    logrank: Optional[HypothesisTestResult] = None
    figures: Dict[str, List[str]] = field(default_factory=dict)
    failures: List[StepFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def failed_steps(self) -> List[str]:
        return [f.step for f in self.failures]


class ExperimentPipeline:
    """
    End-to-end analysis driven by Settings.

    Example:
        >>> pipeline = ExperimentPipeline(get_settings())
        >>> result = pipeline.run()
        >>> result.analyses["growth"].contrasts
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def load(self) -> Tuple[pd.DataFrame, Optional[pd.DataFrame], Optional[str]]:
        """
        Read the raw tables.

        Errors reading the measurement table propagate. A missing or invalid
        feeding table is returned as an error message instead.
        """
        data = self.settings.data
        measurements = load_measurements(
            data.measurements_path, treatment_order=data.treatment_order
        )

        # Feeding levels follow the measurement table so both share one reference
        order = data.treatment_order or [
            str(c) for c in measurements["Treatment"].cat.categories
        ]
        try:
            feeding = load_feeding(
                data.feeding_path,
                date_format=data.date_format,
                treatment_order=order,
            )
        except (FileNotFoundError, ValueError) as e:
            return measurements, None, f"{type(e).__name__}: {e}"

        return measurements, feeding, None

    def _run_step(
        self,
        result: PipelineResult,
        step: str,
        func: Callable[..., Any],
        *args: Any
    ) -> Any:
        try:
            return func(*args)
        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            warnings.warn(f"Step '{step}' failed: {message}")
            result.failures.append(StepFailure(step=step, error=message))
            return None

    @staticmethod
    def _skip(result: PipelineResult, step: str, reason: str) -> None:
        result.failures.append(StepFailure(step=step, error=reason, skipped=True))

    def _analyze(
        self,
        fit: ModelFitResult,
        contrasts: bool = True
    ) -> ModelAnalysis:
        analysis = self.settings.analysis
        diagnostics = validate_model(
            fit,
            n_simulations=analysis.n_simulations,
            random_state=analysis.random_seed,
            alpha=analysis.alpha,
        )
        table = None
        if contrasts:
            table = pairwise_contrasts(
                fit,
                adjust=analysis.p_adjust_method,
                confidence_level=1 - analysis.alpha,
            )
        return ModelAnalysis(fit=fit, diagnostics=diagnostics, contrasts=table)

    def _growth(self, data: PreparedData) -> ModelAnalysis:
        analysis = self._analyze(fit_growth_model(data.growth))
        analysis.summary = summarize_by_treatment(
            data.growth, "Growth", by=("Treatment", "Week"),
            confidence_level=1 - self.settings.analysis.alpha,
        )
        return analysis

    def _reproduction(self, data: PreparedData) -> ModelAnalysis:
        analysis = self._analyze(fit_reproduction_model(data.reproduction))
        analysis.summary = summarize_by_treatment(
            data.reproduction, "EggSacs", by=("Treatment", "Week"),
            confidence_level=1 - self.settings.analysis.alpha,
        )
        return analysis

    def _survival(self, data: PreparedData, result: PipelineResult) -> ModelAnalysis:
        alpha = self.settings.analysis.alpha
        result.survival_curves = kaplan_meier_table(data.survival)
        result.logrank = StatisticalTests.test_survival_difference(data.survival, alpha)

        fit = fit_survival_model(data.survival, penalizer=self.settings.analysis.cox_penalizer)
        analysis = self._analyze(fit)
        analysis.summary = summarize_by_treatment(
            data.survival, "Death", confidence_level=1 - alpha
        )
        return analysis

    def _feeding(self, data: PreparedData) -> ModelAnalysis:
        analysis = self._analyze(fit_feeding_model(data.feeding))
        analysis.summary = summarize_by_treatment(
            data.feeding, "Fed", confidence_level=1 - self.settings.analysis.alpha
        )
        return analysis

    def _figures(self, data: PreparedData) -> Dict[str, List[str]]:
        from naproxen_physa.visualization.figures import FigureGenerator

        output = self.settings.output
        generator = FigureGenerator(
            output_dir=str(output.output_dir),
            style=output.style,
            save_formats=list(output.formats),
        )
        figures = generator.generate_all(
            data,
            demographic_name=output.demographic_figure,
            feeding_name=output.feeding_figure,
        )

        if output.interactive:
            from naproxen_physa.visualization.interactive import create_interactive_summary

            path = create_interactive_summary(
                data.alive, data.fed, Path(output.output_dir) / "summary.html"
            )
            figures["interactive_summary"] = [str(path)]

        return figures

    def run(self) -> PipelineResult:
        """
        Run every step.

        Returns:
            PipelineResult

        Raises:
            FileNotFoundError, ValueError: The measurement table could not be loaded
        """
        result = PipelineResult()
        settings = self.settings

        measurements, feeding, feeding_error = self.load()
        if feeding_error is not None:
            warnings.warn(f"Feeding data unavailable: {feeding_error}")
            result.failures.append(StepFailure(step="load", error=feeding_error))

        data = self._run_step(
            result, "reshape", prepare_experiment,
            measurements, feeding, settings.data.start_date, settings.data.snail_ids,
            settings.analysis.days_per_week, settings.analysis.include_baseline_week,
        )
        result.data = data
        if data is None:
            for step in STEPS[2:]:
                self._skip(result, step, "reshape failed")
            return result

        for step, runner in (
            ("growth", self._growth),
            ("reproduction", self._reproduction),
        ):
            analysis = self._run_step(result, step, runner, data)
            if analysis is not None:
                result.analyses[step] = analysis

        analysis = self._run_step(result, "survival", self._survival, data, result)
        if analysis is not None:
            result.analyses["survival"] = analysis

        if data.feeding is None:
            self._skip(result, "feeding", "no feeding data")
        else:
            analysis = self._run_step(result, "feeding", self._feeding, data)
            if analysis is not None:
                result.analyses["feeding"] = analysis

        figures = self._run_step(result, "figures", self._figures, data)
        if figures is not None:
            result.figures = figures

        return result


def run_analysis(settings: Optional[Settings] = None) -> PipelineResult:
    """Convenience wrapper around ExperimentPipeline(settings).run()."""
    return ExperimentPipeline(settings).run()
