"""
Visualization Style Configuration.

Provides publication-quality styling for figures following
journal guidelines, plus the treatment colour scheme shared by all figures.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
import matplotlib.pyplot as plt
import numpy as np


# Colorblind-friendly palette
NATURE_COLORS = {
    "blue": "#3B7EA1",
    "red": "#C5203E",
    "green": "#228B22",
    "orange": "#E5811E",
    "purple": "#7B3294",
    "teal": "#008080",
    "gold": "#D4A017",
    "gray": "#808080",
    "dark_gray": "#404040",
}

# Control first, then increasing naproxen concentration
TREATMENT_PALETTE = [
    NATURE_COLORS["dark_gray"],
    NATURE_COLORS["blue"],
    NATURE_COLORS["orange"],
    NATURE_COLORS["red"],
    NATURE_COLORS["purple"],
    NATURE_COLORS["teal"],
]

TREATMENT_MARKERS = ["o", "s", "^", "D", "v", "p"]

# PostScript output does not support transparency
VECTOR_FORMATS = ("eps", "ps", "pdf", "svg")


def get_treatment_colors(levels: Sequence[str]) -> Dict[str, str]:
    """Map treatment levels (reference first) to colours."""
    return {
        str(level): TREATMENT_PALETTE[i % len(TREATMENT_PALETTE)]
        for i, level in enumerate(levels)
    }


def get_treatment_markers(levels: Sequence[str]) -> Dict[str, str]:
    """Map treatment levels (reference first) to markers."""
    return {
        str(level): TREATMENT_MARKERS[i % len(TREATMENT_MARKERS)]
        for i, level in enumerate(levels)
    }


def set_publication_style(
    style: str = "nature",
    font_size: int = 10,
    figure_width: float = 3.5,  # Single column width in inches
) -> None:
    """
    Set matplotlib style for publication-quality figures.

    Args:
        style: Style preset ("nature", "science", "default")
        font_size: Base font size in points
        figure_width: Figure width in inches
    """
    plt.rcdefaults()

    base_params = {
        # Figure
        "figure.figsize": (figure_width, figure_width * 0.75),
        "figure.dpi": 150,
        "savefig.dpi": 300,
        "savefig.bbox": "tight",
        "savefig.pad_inches": 0.05,

        # Font
        "font.family": "sans-serif",
        "font.sans-serif": ["Arial", "Helvetica", "DejaVu Sans"],
        "font.size": font_size,
        "axes.labelsize": font_size,
        "axes.titlesize": font_size + 1,
        "xtick.labelsize": font_size - 1,
        "ytick.labelsize": font_size - 1,
        "legend.fontsize": font_size - 1,

        # Axes
        "axes.linewidth": 0.8,
        "axes.spines.top": False,
        "axes.spines.right": False,
        "axes.labelpad": 4,
        "axes.titlepad": 8,

        # Ticks
        "xtick.major.size": 3,
        "xtick.major.width": 0.8,
        "ytick.major.size": 3,
        "ytick.major.width": 0.8,
        "xtick.direction": "out",
        "ytick.direction": "out",

        # Lines
        "lines.linewidth": 1.2,
        "lines.markersize": 4,

        # Legend
        "legend.frameon": False,
        "legend.borderaxespad": 0.5,

        # Grid
        "axes.grid": False,

        # Embed text as Type 42 so EPS/PDF stay editable
        "ps.fonttype": 42,
        "pdf.fonttype": 42,
    }

    if style == "nature":
        style_params = {
            "axes.prop_cycle": plt.cycler(color=TREATMENT_PALETTE),
            "axes.facecolor": "white",
            "figure.facecolor": "white",
        }
    elif style == "science":
        style_params = {
            "axes.prop_cycle": plt.cycler(color=[
                "#000000", "#0072B2", "#D55E00", "#009E73",
                "#CC79A7", "#56B4E9", "#E69F00", "#F0E442"
            ]),
        }
    else:
        style_params = {}

    params = {**base_params, **style_params}
    plt.rcParams.update(params)


def create_figure_panel(
    n_rows: int = 1,
    n_cols: int = 1,
    figure_width: float = 7.0,  # Double column width
    aspect_ratio: float = 0.75,
    **kwargs
) -> Tuple[plt.Figure, np.ndarray]:
    """
    Create a multi-panel figure with consistent styling.

    Args:
        n_rows: Number of rows
        n_cols: Number of columns
        figure_width: Total figure width in inches
        aspect_ratio: Height/width ratio of a single panel
        **kwargs: Additional gridspec arguments

    Returns:
        Tuple of (Figure, 2-D array of Axes)
    """
    fig_height = figure_width * aspect_ratio * n_rows / n_cols

    fig, axes = plt.subplots(
        n_rows, n_cols,
        figsize=(figure_width, fig_height),
        gridspec_kw=kwargs or None,
        squeeze=False
    )

    return fig, axes


def add_panel_labels(
    axes: np.ndarray,
    labels: Optional[List[str]] = None,
    fontsize: int = 12,
    fontweight: str = "bold",
    x_offset: float = -0.1,
    y_offset: float = 1.05
) -> None:
    """
    Add panel labels (A, B, C, etc.) to figure.

    Args:
        axes: Array of axes
        labels: Custom labels (default: A, B, C, ...)
        fontsize: Label font size
        fontweight: Label font weight
        x_offset: Horizontal offset from axis origin
        y_offset: Vertical offset from axis origin
    """
    flat_axes = np.asarray(axes).flatten()

    if labels is None:
        labels = [chr(65 + i) for i in range(len(flat_axes))]  # A, B, C, ...

    for ax, label in zip(flat_axes, labels):
        ax.text(
            x_offset, y_offset, label,
            transform=ax.transAxes,
            fontsize=fontsize,
            fontweight=fontweight,
            va="bottom",
            ha="right"
        )


def save_figure(
    fig: plt.Figure,
    filename: str,
    formats: Sequence[str] = ("eps",),
    dpi: int = 300
) -> List[str]:
    """
    Save figure in multiple formats.

    Args:
        fig: Figure to save
        filename: Base filename (without extension)
        formats: List of formats to save
        dpi: DPI for raster formats

    Returns:
        List of saved file paths
    """
    saved_files = []
    base_path = Path(filename)
    base_path.parent.mkdir(parents=True, exist_ok=True)

    for fmt in formats:
        fmt = fmt.lower().lstrip(".")
        filepath = base_path.with_suffix(f".{fmt}")
        fig.savefig(
            filepath,
            format=fmt,
            dpi=None if fmt in VECTOR_FORMATS else dpi,
            bbox_inches="tight",
            pad_inches=0.05,
            facecolor="white",
            edgecolor="none"
        )
        saved_files.append(str(filepath))

    return saved_files
