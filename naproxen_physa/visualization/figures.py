"""
Publication Figure Generation.

Generates the two figures of the exposure trial:

1. DemographicResults
   A) weekly growth per treatment (boxplots)
   B) weekly egg-sac counts per treatment (boxplots)
   C) proportion of snails alive per treatment over weeks
2. FeedingResults
   proportion of snails feeding per treatment over days

All elements are drawn fully opaque so the figures can be exported as EPS.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import pandas as pd
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches

from naproxen_physa.visualization.style import (
    set_publication_style,
    get_treatment_colors,
    get_treatment_markers,
    create_figure_panel,
    add_panel_labels,
    save_figure,
)


def _treatment_levels(df: pd.DataFrame) -> List[str]:
    treatment = df["Treatment"]
    if isinstance(treatment.dtype, pd.CategoricalDtype):
        return [str(c) for c in treatment.cat.categories]
    return [str(t) for t in pd.unique(treatment.dropna())]


def _treatment_legend(
    ax: plt.Axes,
    levels: Sequence[str],
    colors: Dict[str, str],
    title: str = "Treatment"
) -> None:
    handles = [
        mpatches.Patch(facecolor=colors[level], edgecolor="black", linewidth=0.5, label=level)
        for level in levels
    ]
    ax.legend(handles=handles, title=title, loc="upper left", frameon=False, fontsize=7)


def plot_grouped_boxplot(
    df: pd.DataFrame,
    value: str,
    x: str = "Week",
    ax: Optional[plt.Axes] = None,
    levels: Optional[Sequence[str]] = None,
    colors: Optional[Dict[str, str]] = None
) -> plt.Axes:
    """
    Boxplots of ``value`` per ``x`` with one box per treatment side by side.

    Args:
        df: Long table with Treatment, ``x`` and ``value`` columns
        value: Response column
        x: Grouping column on the horizontal axis
        ax: Axes to draw on (created if None)
        levels: Treatment order (default: categorical order)
        colors: Treatment -> colour

    Returns:
        The axes
    """
    if ax is None:
        _, ax = plt.subplots()
    levels = list(levels) if levels is not None else _treatment_levels(df)
    colors = colors or get_treatment_colors(levels)

    data = df.dropna(subset=[value])
    xs = sorted(data[x].unique())
    n = max(len(levels), 1)
    width = 0.8 / n

    for j, level in enumerate(levels):
        subset = data.loc[data["Treatment"].astype(str) == level]
        values, positions = [], []
        for k, xv in enumerate(xs):
            v = subset.loc[subset[x] == xv, value].to_numpy(dtype=float)
            if len(v):
                values.append(v)
                positions.append(k + (j - (n - 1) / 2) * width)
        if not values:
            continue

        parts = ax.boxplot(
            values,
            positions=positions,
            widths=width * 0.85,
            patch_artist=True,
            manage_ticks=False,
            medianprops={"color": "black", "linewidth": 1.0},
            whiskerprops={"linewidth": 0.8},
            capprops={"linewidth": 0.8},
            flierprops={"marker": "o", "markersize": 2,
                        "markerfacecolor": colors[level], "markeredgecolor": colors[level]},
        )
        for box in parts["boxes"]:
            box.set_facecolor(colors[level])
            box.set_edgecolor("black")
            box.set_linewidth(0.6)

    ax.set_xticks(range(len(xs)))
    ax.set_xticklabels([str(int(v)) if float(v).is_integer() else str(v) for v in xs])
    ax.set_xlim(-0.6, len(xs) - 0.4)
    ax.set_xlabel(x)
    return ax


def plot_proportion_over_time(
    df: pd.DataFrame,
    time: str,
    ax: Optional[plt.Axes] = None,
    levels: Optional[Sequence[str]] = None,
    colors: Optional[Dict[str, str]] = None,
    errorbars: bool = True
) -> plt.Axes:
    """
    Proportion curves per treatment (output of proportion_alive/proportion_fed).

    Args:
        df: Table with Treatment, ``time``, proportion and se columns
        time: Time column ("Week" or "Day")
        ax: Axes to draw on (created if None)
        levels: Treatment order
        colors: Treatment -> colour
        errorbars: Draw +/- one binomial standard error

    Returns:
        The axes
    """
    if ax is None:
        _, ax = plt.subplots()
    levels = list(levels) if levels is not None else _treatment_levels(df)
    colors = colors or get_treatment_colors(levels)
    markers = get_treatment_markers(levels)

    for level in levels:
        subset = df.loc[df["Treatment"].astype(str) == level].sort_values(time)
        if subset.empty:
            continue
        ax.errorbar(
            subset[time],
            subset["proportion"],
            yerr=subset["se"] if errorbars else None,
            color=colors[level],
            marker=markers[level],
            markersize=3,
            linewidth=1.0,
            capsize=1.5 if errorbars else 0,
            elinewidth=0.6,
            label=level,
        )

    ax.set_xlabel(time)
    ax.set_ylim(-0.02, 1.05)
    return ax


class FigureGenerator:
    """
    Generate the trial figures.

    Example:
        >>> generator = FigureGenerator(output_dir="figures/")
        >>> generator.generate_all(prepared)
    """

    def __init__(
        self,
        output_dir: str = "figures",
        style: str = "nature",
        save_formats: Optional[List[str]] = None
    ):
        """
        Initialize figure generator.

        Args:
            output_dir: Directory to save figures
            style: Visualization style
            save_formats: Formats to save figures in (default: EPS)
        """
        self.output_dir = output_dir
        self.style = style
        self.save_formats = save_formats or ["eps"]

        # Apply style
        set_publication_style(style)

    def generate_all(
        self,
        prepared: Any,
        demographic_name: str = "DemographicResults",
        feeding_name: str = "FeedingResults"
    ) -> Dict[str, List[str]]:
        """
        Generate all figures from a PreparedData instance.

        The feeding figure is skipped when there is no feeding data.

        Returns dictionary of figure names to file paths.
        """
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)

        figures = {}

        fig = self.demographic_figure(prepared.growth, prepared.reproduction, prepared.alive)
        figures[demographic_name] = save_figure(
            fig, f"{self.output_dir}/{demographic_name}", self.save_formats
        )

        if prepared.fed is not None and not prepared.fed.empty:
            fig = self.feeding_figure(prepared.fed)
            figures[feeding_name] = save_figure(
                fig, f"{self.output_dir}/{feeding_name}", self.save_formats
            )

        plt.close("all")
        return figures

    def demographic_figure(
        self,
        growth: pd.DataFrame,
        reproduction: pd.DataFrame,
        alive: pd.DataFrame
    ) -> plt.Figure:
        """
        Growth, egg sacs and survival in one row of three panels.
        """
        fig, axes = create_figure_panel(1, 3, figure_width=10.0, aspect_ratio=0.8)
        ax_growth, ax_eggs, ax_alive = axes[0]

        levels = _treatment_levels(alive)
        colors = get_treatment_colors(levels)

        plot_grouped_boxplot(growth, "Growth", ax=ax_growth, levels=levels, colors=colors)
        ax_growth.axhline(0, color="gray", linewidth=0.6, linestyle="--")
        ax_growth.set_ylabel("Growth (change in shell length)")
        ax_growth.set_title("Growth", fontweight="bold")

        plot_grouped_boxplot(reproduction, "EggSacs", ax=ax_eggs, levels=levels, colors=colors)
        ax_eggs.set_ylabel("Egg sacs per snail")
        ax_eggs.set_title("Reproduction", fontweight="bold")

        plot_proportion_over_time(alive, "Week", ax=ax_alive, levels=levels, colors=colors)
        ax_alive.set_ylabel("Proportion alive")
        ax_alive.set_title("Survival", fontweight="bold")

        _treatment_legend(ax_growth, levels, colors)
        add_panel_labels(axes)

        fig.tight_layout()
        return fig

    def feeding_figure(self, fed: pd.DataFrame) -> plt.Figure:
        """
        Proportion of snails feeding per day and treatment.
        """
        fig, ax = plt.subplots(figsize=(6, 3.5))

        levels = _treatment_levels(fed)
        plot_proportion_over_time(fed, "Day", ax=ax, levels=levels, errorbars=False)

        ax.set_xlabel("Day of exposure")
        ax.set_ylabel("Proportion fed")
        ax.legend(title="Treatment", loc="lower left", frameon=False, fontsize=7)
        ax.set_title("Feeding", fontweight="bold")

        fig.tight_layout()
        return fig
