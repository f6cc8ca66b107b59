"""
Interactive Visualization Module.

Plotly versions of the survival and feeding curves for exploratory use.
"""

from pathlib import Path
from typing import Optional, Union
import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from naproxen_physa.visualization.style import get_treatment_colors, TREATMENT_MARKERS


PLOTLY_SYMBOLS = {"o": "circle", "s": "square", "^": "triangle-up",
                  "D": "diamond", "v": "triangle-down", "p": "pentagon"}


def _add_proportion_traces(
    fig: go.Figure,
    df: pd.DataFrame,
    time: str,
    col: int,
    show_legend: bool
) -> None:
    levels = [str(c) for c in df["Treatment"].cat.categories] \
        if isinstance(df["Treatment"].dtype, pd.CategoricalDtype) \
        else [str(t) for t in pd.unique(df["Treatment"])]
    colors = get_treatment_colors(levels)

    for i, level in enumerate(levels):
        subset = df.loc[df["Treatment"].astype(str) == level].sort_values(time)
        if subset.empty:
            continue
        fig.add_trace(
            go.Scatter(
                x=subset[time],
                y=subset["proportion"],
                mode="lines+markers",
                name=level,
                legendgroup=level,
                showlegend=show_legend,
                line=dict(color=colors[level], width=1.5),
                marker=dict(symbol=PLOTLY_SYMBOLS[TREATMENT_MARKERS[i % len(TREATMENT_MARKERS)]],
                            size=6),
                customdata=subset[["n"]].to_numpy(),
                hovertemplate=(
                    f"Treatment {level}<br>{time} %{{x}}"
                    "<br>proportion %{y:.2f}<br>n = %{customdata[0]}<extra></extra>"
                ),
            ),
            row=1, col=col
        )


def create_interactive_summary(
    alive: pd.DataFrame,
    fed: Optional[pd.DataFrame] = None,
    output_path: Optional[Union[str, Path]] = None
) -> Union[go.Figure, Path]:
    """
    Side-by-side proportion alive (by week) and proportion fed (by day).

    Args:
        alive: Output of proportion_alive
        fed: Output of proportion_fed (panel left empty if None)
        output_path: Write a standalone HTML file here

    Returns:
        The path written to, or the Plotly figure if no path was given
    """
    fig = make_subplots(
        rows=1, cols=2,
        subplot_titles=("Proportion alive", "Proportion fed"),
    )

    _add_proportion_traces(fig, alive, "Week", col=1, show_legend=True)
    if fed is not None and not fed.empty:
        _add_proportion_traces(fig, fed, "Day", col=2, show_legend=False)

    fig.update_xaxes(title_text="Week", row=1, col=1)
    fig.update_xaxes(title_text="Day", row=1, col=2)
    fig.update_yaxes(title_text="Proportion", range=[0, 1.05])
    fig.update_layout(
        title="Naproxen exposure: survival and feeding",
        template="plotly_white",
        legend_title_text="Treatment",
        height=450,
        width=1000,
    )

    if output_path is None:
        return fig

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.write_html(str(path), include_plotlyjs="cdn")
    return path
