"""
Per-residue score profile of a refined prediction.

The plot shows the smoothed soluble, transmembrane and signal-peptide tracks
(raw tracks when nothing was smoothed) with the final helices shaded and a
side strip below the axis: inside residues in one colour, outside residues in
another, signal peptide and re-entrant loops in their own colours.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import matplotlib.pyplot as plt
import numpy as np

from ..core.models import Label, TopologyResult

logger = logging.getLogger(__name__)


TRACK_COLORS = {
    "sol": "#377eb8",  # Blue
    "tmh": "#e41a1c",  # Red
    "sig": "#4daf4a",  # Green
}

HELIX_COLOR = "#ff9999"

SIDE_COLORS = {
    Label.INSIDE: "#984ea3",
    Label.OUTSIDE: "#ff7f00",
    Label.SIGNAL: "#4daf4a",
    Label.LOOP: "#a65628",
    Label.TMH: "#e41a1c",
}


@dataclass
class ProfilePlotConfig:
    """
    Appearance of a topology profile.

    ``helix_alpha`` is the opacity of the helix shading; the side strip is
    ``strip_height`` tall in probability units, drawn just below zero.
    ``title`` defaults to the protein id.
    """
    figsize: tuple[float, float] = (12, 4)
    dpi: int = 150
    line_width: float = 1.5
    helix_alpha: float = 0.3
    show_sides: bool = True
    strip_height: float = 0.05
    show_legend: bool = True
    title: Optional[str] = None
    font_size: int = 10


def plot_topology_profile(
    result: TopologyResult,
    config: Optional[ProfilePlotConfig] = None,
    ax: Optional[Any] = None,
) -> Any:
    """
    Plot score tracks and the final topology of one protein.

    Args:
        result: Successful TopologyResult
        config: Plot configuration
        ax: Optional matplotlib axes to plot on

    Returns:
        matplotlib Figure object

    Raises:
        ValueError: If the result has no labels
    """
    if result.labels is None:
        raise ValueError(f"Result for {result.protein_id} has no prediction to plot")

    config = config or ProfilePlotConfig()

    if ax is None:
        fig, ax = plt.subplots(figsize=config.figsize, dpi=config.dpi)
    else:
        fig = ax.figure

    length = len(result.sequence)
    positions = np.arange(length)
    scores = result.smoothed_scores or result.raw_scores

    if scores is not None:
        for name in ("sol", "tmh", "sig"):
            ax.plot(
                positions,
                np.asarray(getattr(scores, name)) / 1000.0,
                color=TRACK_COLORS[name],
                linewidth=config.line_width,
                label=name.upper(),
            )

    first = True
    for segment in result.segments():
        if not segment.label.is_tmh:
            continue
        ax.axvspan(
            segment.start - 0.5, segment.end + 0.5,
            alpha=config.helix_alpha,
            color=HELIX_COLOR,
            label="TMH" if first else None,
        )
        first = False

    if config.show_sides:
        for segment in result.segments():
            color = SIDE_COLORS.get(segment.label)
            if color is None:
                continue
            ax.add_patch(plt.Rectangle(
                (segment.start - 0.5, -0.03 - config.strip_height),
                segment.length,
                config.strip_height,
                color=color,
                clip_on=False,
            ))

    ax.set_xlabel("Residue Position", fontsize=config.font_size)
    ax.set_ylabel("Probability", fontsize=config.font_size)
    ax.set_xlim(-0.5, length - 0.5)
    ax.set_ylim(-0.1, 1.05)
    ax.set_title(config.title or result.protein_id, fontsize=config.font_size + 2)

    if config.show_legend and (scores is not None or not first):
        ax.legend(loc="upper right", fontsize=config.font_size - 2)

    fig.tight_layout()
    return fig


def save_topology_profile(
    result: TopologyResult,
    filepath: Union[str, Path],
    config: Optional[ProfilePlotConfig] = None,
) -> Path:
    """Plot a result to ``filepath``; the format follows the file suffix."""
    config = config or ProfilePlotConfig()
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    fig = plot_topology_profile(result, config)
    fig.savefig(filepath, dpi=config.dpi, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Saved profile plot to {filepath}")
    return filepath
