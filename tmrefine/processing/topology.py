"""
Membrane-side assignment for predicted transmembrane proteins.

Once helix boundaries are final, only one binary decision is left: on which
side of the membrane does the N-terminus lie? Every helix flips the side, so
this single decision fixes the side of every soluble residue.

The decision is made by a topology oracle from residues flanking the helices:

1. **Windows.** Around every helix, observation windows reach up to
   ``far_offset`` residues into the adjacent loop and ``near_offset`` residues
   into the helix itself (never beyond the helix's far end). Each internal
   loop gets one window hanging off the preceding helix and one leading into
   the following helix; the termini get one window each. Windows carry the
   parity of the loop they observe (0 for the N-terminal side).
2. **Features.** Profile counts of all windows of the same parity as the
   first window form side A, the others side B.
3. **Decision.** The oracle returns P(Inside) of side A. A confirmed signal
   peptide forces an outside N-terminus; otherwise the N-terminus is inside
   iff P(Inside) reaches the cutoff.
4. **Propagation.** Soluble residues take the current side, each helix run
   flips it.

The same window / feature machinery turns consistent experimental
annotations into topology training examples.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

import numpy as np

from tmrefine.core.models import (
    ConservationProfile,
    Label,
    ProteinRecord,
    Segment,
    TopologySide,
)
from tmrefine.core.profile import ProfileError, check_profile
from tmrefine.core.segments import find_segments
from tmrefine.predictors.base import TopologyScorer
from tmrefine.predictors.features import SideFeatures, side_feature_vector
from tmrefine.processing.boundaries import probability_to_score
from tmrefine.processing.consistency import (
    TopologyInconsistencyError,
    extrapolate_topology,
    find_anchor,
    require_consistent_topology,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TopologyConfig:
    """
    Parameters of side assignment.

    Attributes:
        near_offset: Residues a window reaches into a helix
        far_offset: Residues a window reaches into a loop
        cutoff: Minimum P(Inside) for an inside N-terminus
    """
    near_offset: int = 8
    far_offset: int = 15
    cutoff: float = 0.45


# =============================================================================
# Windows and features
# =============================================================================

def _window(start: int, end: int, parity: int) -> Optional[Segment]:
    if start > end:
        return None
    return Segment(start=start, end=end, label=Label.NOT_TMH, side=parity)


def build_windows(
    labels: Sequence[Label],
    config: Optional[TopologyConfig] = None,
) -> list[Segment]:
    """
    Observation windows flanking every helix run.

    Args:
        labels: Label sequence with final helix boundaries
        config: Window offsets

    Returns:
        Windows in sequence order, ``side`` holding the loop parity (0/1);
        empty windows are dropped
    """
    config = config or TopologyConfig()
    near, far = config.near_offset, config.far_offset
    last = len(labels) - 1
    helices = find_segments(labels, Label.TMH)

    windows: list[Optional[Segment]] = []
    parity = 0

    for k, helix in enumerate(helices):
        if k == 0:
            windows.append(_window(
                max(helix.start - far, 0),
                min(helix.start + near, last, helix.end),
                parity,
            ))
        else:
            prev = helices[k - 1]
            windows.append(_window(
                max(prev.end - near, 0, prev.start),
                min(prev.end + far, last, helix.start + near, helix.end),
                parity,
            ))
            windows.append(_window(
                max(helix.start - far, 0, prev.end - near, prev.start),
                min(helix.start + near, last, helix.end),
                parity,
            ))

        parity = (parity + 1) % 2

        if k == len(helices) - 1:
            windows.append(_window(
                max(helix.end - near, 0, helix.start),
                min(helix.end + far, last),
                parity,
            ))

    return [w for w in windows if w is not None]


def aggregate_side_features(
    profile: ConservationProfile,
    labels: Sequence[Label],
    windows: Sequence[Segment],
    start_position: int = 0,
) -> tuple[SideFeatures, SideFeatures]:
    """
    Sum profile counts of all windows per side.

    Windows ending before ``start_position`` are ignored and the others are
    clipped to it. Side A is the parity of the first window used. Unknown
    residues are not counted.

    Returns:
        Tuple of (side A, side B) features
    """
    side_a = SideFeatures()
    side_b = SideFeatures()
    first_parity = None

    for window in windows:
        if window.end < start_position:
            continue
        if first_parity is None:
            first_parity = window.side

        target = side_a if window.side == first_parity else side_b
        for i in range(max(window.start, start_position), window.end + 1):
            if labels[i] is Label.UNKNOWN:
                continue
            target.add_position(profile, i)

    return side_a, side_b


# =============================================================================
# Decision and propagation
# =============================================================================

def decide_start_side(
    p_inside: float,
    has_signal_peptide: bool,
    cutoff: float = TopologyConfig.cutoff,
) -> TopologySide:
    """Side of the N-terminal loop."""
    if not has_signal_peptide and p_inside >= cutoff:
        return TopologySide.INSIDE
    return TopologySide.OUTSIDE


def propagate_sides(labels: Sequence[Label], start_side: TopologySide) -> list[Label]:
    """
    Assign alternating sides along the chain.

    Every soluble residue (NOT_TMH, INSIDE or OUTSIDE) takes the current side;
    every helix run flips it. Signal peptide, loop and unknown residues are
    left unchanged.

    Returns:
        New label list
    """
    out = list(labels)
    side = start_side
    previous = None

    for i, label in enumerate(out):
        if label.is_tmh:
            if previous is not Label.TMH:
                side = side.flipped()
        elif label.is_soluble:
            out[i] = side.to_label()
        previous = label

    return out


@dataclass
class TopologyAssignment:
    """
    Result of side assignment.

    Attributes:
        labels: Labels with sides assigned
        p_inside: Oracle P(Inside) of the N-terminal side
        topology_raw: P(Inside) x 1000
        start_side: Side chosen for the N-terminus
    """
    labels: list[Label]
    p_inside: float
    topology_raw: int
    start_side: TopologySide


class TopologyAssigner:
    """
    Chooses the N-terminal side with a topology oracle and propagates it.

    Usage:
        >>> assigner = TopologyAssigner(PositiveInsideScorer())
        >>> assignment = assigner.assign(labels, profile, has_signal_peptide=False)
    """

    def __init__(self, scorer: TopologyScorer, config: Optional[TopologyConfig] = None):
        self.scorer = scorer
        self.config = config or TopologyConfig()

    def assign(
        self,
        labels: Sequence[Label],
        profile: ConservationProfile,
        has_signal_peptide: bool,
        protein_id: str = "",
    ) -> TopologyAssignment:
        """
        Assign membrane sides to all soluble residues.

        Raises:
            OracleError: If the topology oracle fails
        """
        windows = build_windows(labels, self.config)
        side_a, side_b = aggregate_side_features(profile, labels, windows)

        p_inside = self.scorer.score_sides(profile, side_a, side_b)
        start_side = decide_start_side(p_inside, has_signal_peptide, self.config.cutoff)

        logger.debug(
            f"{protein_id or 'protein'}: {len(windows)} windows, P(inside)={p_inside:.3f}, "
            f"signal peptide={has_signal_peptide} -> N-terminus {start_side.value}"
        )

        return TopologyAssignment(
            labels=propagate_sides(labels, start_side),
            p_inside=p_inside,
            topology_raw=probability_to_score(p_inside),
            start_side=start_side,
        )


# =============================================================================
# Training examples from annotated topologies
# =============================================================================

@dataclass
class TopologyExample:
    """
    One topology training example.

    Attributes:
        protein_id: Source protein
        side_a: Features of the side of the first sided residue
        side_b: Features of the opposite side
        side: Side of the first sided residue (the target)
        start_position: First sided residue of the extrapolated
            annotation; features start here
    """
    protein_id: str
    side_a: SideFeatures
    side_b: SideFeatures
    side: TopologySide
    start_position: int

    @property
    def features(self) -> np.ndarray:
        return side_feature_vector(self.side_a, self.side_b)

    @property
    def target(self) -> int:
        """Class index: 0 inside, 1 outside."""
        return 0 if self.side is TopologySide.INSIDE else 1


def topology_training_example(
    record: ProteinRecord,
    profile: ConservationProfile,
    config: Optional[TopologyConfig] = None,
) -> Optional[TopologyExample]:
    """
    Build a training example from an annotated protein.

    The annotation is checked for consistency, extrapolated, and side
    features are collected from the first sided residue of the
    extrapolated annotation onwards.

    Returns:
        TopologyExample, or None if the annotation assigns no side

    Raises:
        TopologyInconsistencyError: If annotated sides do not alternate
        ProfileError: If the profile does not match the sequence
        ValueError: If the record has no annotation
    """
    if record.annotation is None:
        raise ValueError(f"Record {record.id} has no annotation")

    check_profile(profile, record.sequence, record.id)

    labels = record.labels()
    require_consistent_topology(labels, record.id)

    filled = extrapolate_topology(labels)
    anchor = find_anchor(filled)
    if anchor is None:
        return None

    start_position, side = anchor
    windows = build_windows(filled, config)
    side_a, side_b = aggregate_side_features(profile, filled, windows, start_position)

    return TopologyExample(
        protein_id=record.id,
        side_a=side_a,
        side_b=side_b,
        side=side,
        start_position=start_position,
    )


ProfileSource = Union[
    Mapping[str, ConservationProfile],
    Callable[[ProteinRecord], ConservationProfile],
]


def topology_training_set(
    records: Iterable[ProteinRecord],
    profiles: ProfileSource,
    config: Optional[TopologyConfig] = None,
) -> list[TopologyExample]:
    """
    Build training examples, skipping unusable records.

    Inconsistent annotations and missing or mismatching profiles are logged
    and skipped; records without any annotated side are skipped silently.

    Args:
        records: Annotated proteins
        profiles: Profiles by protein id, or a callable building one
        config: Window offsets
    """
    examples = []

    for record in records:
        if not callable(profiles) and record.id not in profiles:
            logger.warning(f"No profile for {record.id}, skipping")
            continue

        try:
            profile = profiles(record) if callable(profiles) else profiles[record.id]
            example = topology_training_example(record, profile, config)
        except TopologyInconsistencyError as e:
            logger.warning(f"Invalid topology, skipping: {e}")
            continue
        except ProfileError as e:
            logger.warning(f"Skipping {record.id}: {e}")
            continue

        if example is None:
            logger.debug(f"{record.id}: no annotated side, skipping")
            continue
        examples.append(example)

    logger.info(f"Built {len(examples)} topology training examples")
    return examples
