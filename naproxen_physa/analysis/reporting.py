"""
Text Reports.

Every report is returned as a single string in the project's banner format
so that it can be printed to the console or written to a file.
"""

from typing import List, Optional
import numpy as np
import pandas as pd

from naproxen_physa.analysis.fitting import ModelFitResult
from naproxen_physa.analysis.preprocessing import PreparationReport
from naproxen_physa.analysis.statistics import HypothesisTestResult
from naproxen_physa.analysis.validation import ModelDiagnostics


BANNER = "=" * 70

MODEL_TITLES = {
    "growth": "GROWTH (LINEAR MIXED MODEL)",
    "reproduction": "REPRODUCTION (POISSON GEE)",
    "feeding": "FEEDING (BINOMIAL GEE)",
    "survival": "SURVIVAL (COX PROPORTIONAL HAZARDS)",
}


def _format_p(p: float) -> str:
    if p is None or not np.isfinite(p):
        return "NA"
    if p < 0.001:
        return "<0.001"
    return f"{p:.3f}"


def _significance(p: float) -> str:
    if p is None or not np.isfinite(p):
        return ""
    if p < 0.001:
        return "***"
    if p < 0.01:
        return "**"
    if p < 0.05:
        return "*"
    return ""


def _indent(text: str, prefix: str = "   ") -> List[str]:
    return [prefix + line for line in text.splitlines()]


def format_test_result(result: HypothesisTestResult) -> str:
    """One-line summary of a hypothesis test."""
    verdict = "REJECT H0" if result.reject_null else "no evidence against H0"
    return (
        f"{result.test_name}: statistic = {result.statistic:.3f}, "
        f"p = {_format_p(result.p_value)} ({verdict})"
    )


def generate_preparation_report(report: PreparationReport) -> str:
    """Row accounting for the derived datasets."""
    lines = [BANNER, "DATA PREPARATION REPORT", BANNER]

    lines.append("\n1. SNAILS")
    lines.append(f"   Snails in survival table: {report.n_snails}")
    lines.append(f"   Deaths observed: {report.n_deaths}")
    lines.append(f"   Censored: {report.n_snails - report.n_deaths}")

    lines.append("\n2. MEASUREMENTS")
    lines.append(f"   Raw measurement rows: {report.n_measurement_rows}")
    lines.append(f"   Growth rows used: {report.n_growth_rows}")
    lines.append(f"   Growth rows undefined: {report.n_growth_missing}")
    lines.append(f"   Egg-sac rows used: {report.n_reproduction_rows}")

    lines.append("\n3. FEEDING")
    if report.n_feeding_rows_raw:
        lines.append(f"   Raw feeding rows: {report.n_feeding_rows_raw}")
        lines.append(f"   Rows after death (excluded): {report.n_feeding_after_death}")
        lines.append(f"   Feeding rows used: {report.n_feeding_rows}")
    else:
        lines.append("   No feeding data")

    if report.warnings:
        lines.append("\n4. WARNINGS")
        for warning in report.warnings:
            lines.append(f"   ! {warning}")

    lines.append("\n" + BANNER)
    return "\n".join(lines)


def generate_model_report(
    fit: ModelFitResult,
    diagnostics: Optional[ModelDiagnostics] = None,
    contrasts: Optional[pd.DataFrame] = None
) -> str:
    """
    Coefficients, fit criteria, diagnostics and contrasts of one model.
    """
    lines = [BANNER, MODEL_TITLES.get(fit.name, fit.name.upper()), BANNER]

    lines.append("\n1. MODEL")
    lines.append(f"   Formula: {fit.formula}")
    lines.append(f"   Family: {fit.family} (link: {fit.link})")
    lines.append(f"   Observations: {fit.n_observations}  Snails: {fit.n_groups}")
    lines.append(f"   Reference treatment: {fit.treatments[0]}")
    lines.append(f"   Converged: {'yes' if fit.converged else 'NO'}")
    for name, value in fit.criteria.items():
        lines.append(f"   {name}: {value:.4g}")

    lines.append("\n2. COEFFICIENTS")
    table = fit.coefficients.copy()
    table[""] = table["p_value"].map(_significance)
    table["p_value"] = table["p_value"].map(_format_p)
    lines.extend(_indent(table.to_string(index=False, float_format=lambda v: f"{v:.4f}")))
    lines.append("   Significance: *** p<0.001, ** p<0.01, * p<0.05")

    section = 3
    if diagnostics is not None and diagnostics.tests:
        lines.append(f"\n{section}. DIAGNOSTICS")
        if diagnostics.simulation is not None:
            lines.append(
                f"   Scaled residuals from {diagnostics.simulation.n_simulations} simulations"
            )
        for test in diagnostics.tests:
            lines.append(f"   - {format_test_result(test)}")
        if not diagnostics.problems:
            lines.append("   No assumption violations detected")
        section += 1

    if contrasts is not None and not contrasts.empty:
        lines.append(f"\n{section}. PAIRWISE TREATMENT CONTRASTS")
        lines.extend(_indent(generate_contrast_table(contrasts)))
        section += 1

    if fit.warnings:
        lines.append(f"\n{section}. WARNINGS")
        for warning in fit.warnings:
            lines.append(f"   ! {warning}")

    lines.append("\n" + BANNER)
    return "\n".join(lines)


def generate_contrast_table(contrasts: pd.DataFrame) -> str:
    """Contrast table with the adjustment method and evaluation point."""
    table = contrasts.copy()
    table[""] = table["p_adjusted"].map(_significance)
    for col in ("p_value", "p_adjusted"):
        table[col] = table[col].map(_format_p)

    header = f"Adjustment: {contrasts.attrs.get('adjust', 'none')}"
    at = contrasts.attrs.get("at")
    if at is not None:
        header += f"; evaluated at time = {at:.2f}"

    body = table.to_string(index=False, float_format=lambda v: f"{v:.4f}")
    return header + "\n" + body


def generate_summary_report(title: str, summary: pd.DataFrame) -> str:
    """Descriptive statistics table (output of summarize_by_treatment)."""
    lines = [BANNER, title.upper(), BANNER]
    lines.extend(_indent(summary.to_string(index=False, float_format=lambda v: f"{v:.3f}")))
    lines.append(BANNER)
    return "\n".join(lines)


def generate_survival_report(
    km_table: pd.DataFrame,
    logrank: Optional[HypothesisTestResult] = None
) -> str:
    """Kaplan-Meier tables per treatment and the log-rank comparison."""
    lines = [BANNER, "SURVIVAL CURVES", BANNER]

    for treatment, table in km_table.groupby("Treatment", sort=False):
        lines.append(f"\nTreatment {treatment}")
        body = table.drop(columns="Treatment").to_string(
            index=False, float_format=lambda v: f"{v:.3f}"
        )
        lines.extend(_indent(body))

    if logrank is not None:
        lines.append("\nComparison of curves")
        lines.append(f"   {format_test_result(logrank)}")
        deaths = logrank.details.get("deaths", {})
        if deaths:
            counts = ", ".join(f"{k}: {int(v)}" for k, v in deaths.items())
            lines.append(f"   Deaths per treatment: {counts}")

    lines.append("\n" + BANNER)
    return "\n".join(lines)


def generate_pipeline_report(result) -> str:
    """
    Full console report for a PipelineResult.
    """
    sections = []
    if result.data is not None:
        sections.append(generate_preparation_report(result.data.report))

    for name, analysis in result.analyses.items():
        sections.append(
            generate_model_report(analysis.fit, analysis.diagnostics, analysis.contrasts)
        )
        if analysis.summary is not None:
            sections.append(
                generate_summary_report(f"{name} by treatment", analysis.summary)
            )

    # Curves are estimated before the Cox fit and survive its failure
    if result.survival_curves is not None:
        sections.append(generate_survival_report(result.survival_curves, result.logrank))

    lines = [BANNER, "RUN SUMMARY", BANNER]
    lines.append(f"   Models fitted: {', '.join(result.analyses) or 'none'}")
    for name, paths in result.figures.items():
        lines.append(f"   {name}: {', '.join(paths)}")
    if result.failures:
        lines.append("\n   Failed or skipped steps:")
        for failure in result.failures:
            status = "skipped" if failure.skipped else "failed"
            lines.append(f"   ! {failure.step} ({status}): {failure.error}")
    lines.append(BANNER)
    sections.append("\n".join(lines))

    return "\n\n".join(sections)
