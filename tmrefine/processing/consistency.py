"""
Consistency checking and extrapolation of annotated membrane topology.

Experimental annotations often assign a side (inside "1" / outside "2") to
only a few soluble residues. Before such an annotation can serve as a
topology training example it must be physically consistent: a chain that
crosses the membrane once must end up on the opposite side, so annotated
sides have to alternate at every helix. Consistent annotations are then
completed by propagating the first annotated side outward in both directions.

Only helix runs flip the side. Re-entrant loops, signal peptides and unknown
residues neither flip it nor receive a side.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from tmrefine.core.models import Label, TopologySide
from tmrefine.core.segments import run_end

logger = logging.getLogger(__name__)


class TopologyInconsistencyError(Exception):
    """Raised when annotated sides do not alternate across helices."""

    def __init__(self, message: str, protein_id: str = "", position: Optional[int] = None):
        super().__init__(message)
        self.protein_id = protein_id
        self.position = position


def find_anchor(labels: Sequence[Label]) -> Optional[tuple[int, TopologySide]]:
    """
    First residue with an annotated side.

    Returns:
        Tuple of (position, side), or None if no side is annotated
    """
    for i, label in enumerate(labels):
        if label.side is not None:
            return i, label.side
    return None


def first_inconsistency(labels: Sequence[Label]) -> Optional[int]:
    """
    Position of the first annotated side that contradicts the anchor.

    Returns:
        Offending position, or None if the annotation is consistent
    """
    anchor_side = None
    switched = False

    i = 0
    while i < len(labels):
        label = labels[i]
        if anchor_side is None:
            anchor_side = label.side
        elif label.is_tmh:
            switched = not switched
            i = run_end(labels, i)
        elif label.side is not None:
            expected = anchor_side.flipped() if switched else anchor_side
            if label.side is not expected:
                return i
        i += 1

    return None


def check_topology(labels: Sequence[Label]) -> bool:
    """
    Whether annotated sides alternate consistently across helix runs.

    Scanning starts at the first annotated side; after it, every helix run
    toggles the expected side and every annotated side must match the
    expectation. Annotations without any side are trivially consistent.
    """
    return first_inconsistency(labels) is None


def require_consistent_topology(labels: Sequence[Label], protein_id: str = "") -> None:
    """
    Raise if the annotated topology is inconsistent.

    Raises:
        TopologyInconsistencyError: With the offending position
    """
    position = first_inconsistency(labels)
    if position is not None:
        raise TopologyInconsistencyError(
            f"Inconsistent topology for {protein_id or 'protein'} at residue {position + 1}",
            protein_id=protein_id,
            position=position,
        )


def _fill(
    labels: list[Label],
    positions: range,
    anchor_side: TopologySide,
    step: int,
) -> None:
    switched = False
    i = positions.start
    while i != positions.stop:
        label = labels[i]
        if label is Label.UNKNOWN:
            pass
        elif label.is_tmh:
            switched = not switched
            while i + step != positions.stop and labels[i + step] is Label.TMH:
                i += step
        elif label is Label.NOT_TMH:
            side = anchor_side.flipped() if switched else anchor_side
            labels[i] = side.to_label()
        i += step


def extrapolate_topology(labels: Sequence[Label]) -> list[Label]:
    """
    Fill unannotated soluble residues from the first annotated side.

    Starting at the anchor, the sequence is walked towards the N-terminus and,
    independently, towards the C-terminus. Every helix run crossed toggles
    the side; every NOT_TMH residue receives the anchor side, or the opposite
    side after an odd number of crossings. Residues that already carry a side
    are left as they are.

    Args:
        labels: Annotated label sequence

    Returns:
        New label list; an unchanged copy if no side is annotated
    """
    out = list(labels)
    anchor = find_anchor(out)
    if anchor is None:
        logger.debug("No annotated side, nothing to extrapolate")
        return out

    position, side = anchor
    _fill(out, range(position, -1, -1), side, -1)
    _fill(out, range(position, len(out)), side, 1)
    return out
