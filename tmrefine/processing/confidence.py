"""
Reliability index (0-9) for predicted helices.

Every residue of a helix run gets the same reliability: the run's average
over residues of the better of two evidences, divided by 100 and capped at 9.
The two evidences are the residue-level margin of the transmembrane over
the soluble track (shifted by an offset so that a tie still counts as
moderate support) and the segment-oracle score of the run.
"""

from __future__ import annotations

from typing import Sequence

from tmrefine.core.models import Label
from tmrefine.core.segments import find_segments

DEFAULT_CONFIDENCE_OFFSET = 125
MAX_CONFIDENCE = 9


def assign_confidence(
    labels: Sequence[Label],
    tmh: Sequence[int],
    sol: Sequence[int],
    segment_scores: Sequence[int],
    offset: int = DEFAULT_CONFIDENCE_OFFSET,
) -> list[int]:
    """
    Per-residue reliability of the final prediction.

    Args:
        labels: Final label sequence
        tmh: Smoothed transmembrane track
        sol: Smoothed soluble track
        segment_scores: Segment-oracle score per residue
        offset: Added to the tmh - sol margin

    Returns:
        List of integers in [0, 9]; 0 outside helices

    Raises:
        ValueError: If the inputs differ in length
    """
    n = len(labels)
    if not (len(tmh) == len(sol) == len(segment_scores) == n):
        raise ValueError(
            f"Inputs differ in length: labels={n}, tmh={len(tmh)}, "
            f"sol={len(sol)}, segment_scores={len(segment_scores)}"
        )

    confidence = [0] * n

    for run in find_segments(labels, Label.TMH):
        total = 0
        for i in range(run.start, run.end + 1):
            total += max(int(tmh[i]) - int(sol[i]) + offset, int(segment_scores[i]))

        value = min(max(total // run.length // 100, 0), MAX_CONFIDENCE)
        for i in range(run.start, run.end + 1):
            confidence[i] = value

    return confidence
