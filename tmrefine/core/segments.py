"""
Segment scanning over label sequences.

Every refinement stage reasons about maximal runs of one label (helices,
signal peptides, soluble loops). The helpers here are the single place where
such runs are found, so all stages agree on run boundaries.
"""

from __future__ import annotations

from typing import Iterator, Sequence

from .models import Label, Segment


def iter_runs(labels: Sequence[Label]) -> Iterator[Segment]:
    """
    Yield every maximal run of identical labels, left to right.

    Args:
        labels: Label sequence

    Yields:
        Segment objects covering the whole sequence without gaps
    """
    n = len(labels)
    i = 0
    while i < n:
        start = i
        label = labels[i]
        while i < n and labels[i] is label:
            i += 1
        yield Segment(start=start, end=i - 1, label=label)


def find_runs(labels: Sequence[Label]) -> list[Segment]:
    """All maximal runs of the label sequence."""
    return list(iter_runs(labels))


def find_segments(labels: Sequence[Label], label: Label = Label.TMH) -> list[Segment]:
    """
    Find all maximal runs of one label.

    Args:
        labels: Label sequence
        label: Label to look for (transmembrane helix by default)

    Returns:
        Runs in sequence order
    """
    return [segment for segment in iter_runs(labels) if segment.label is label]


def run_end(labels: Sequence[Label], start: int) -> int:
    """Last index of the run that begins at ``start``."""
    label = labels[start]
    i = start
    while i + 1 < len(labels) and labels[i + 1] is label:
        i += 1
    return i


def has_label(labels: Sequence[Label], label: Label) -> bool:
    return any(item is label for item in labels)
