"""
Visualization Module.

Publication-quality figures for the naproxen exposure trial.

Figures:
    1. DemographicResults: growth, egg sacs and proportion alive
    2. FeedingResults: proportion fed over the exposure period

Style:
    - Colorblind-friendly treatment palette, control first
    - No transparency (EPS output)
"""

from naproxen_physa.visualization.figures import (
    FigureGenerator,
    plot_grouped_boxplot,
    plot_proportion_over_time,
)
from naproxen_physa.visualization.style import (
    set_publication_style,
    get_treatment_colors,
    get_treatment_markers,
    save_figure,
)
from naproxen_physa.visualization.interactive import create_interactive_summary

__all__ = [
    "FigureGenerator",
    "plot_grouped_boxplot",
    "plot_proportion_over_time",
    "set_publication_style",
    "get_treatment_colors",
    "get_treatment_markers",
    "save_figure",
    "create_interactive_summary",
]
