"""
Rule-based oracles that need no trained model.

These oracles make the pipeline usable out of the box and serve as a baseline
for comparing model-backed oracles. Each one implements a textbook rule:

1. **Hydropathy residue scorer**: sliding-window Kyte-Doolittle hydropathy
   (window 19, the length of a membrane-spanning helix) mapped through a
   logistic curve; N-terminal residues with a short, strongly hydrophobic
   core additionally score as signal peptide.

2. **Hydropathy segment scorer**: average hydropathy of the conserved amino
   acids of the segment, damped for segments too short or too long to span
   the membrane.

3. **Positive-inside topology scorer**: the side richer in conserved K/R is
   the cytoplasmic one.

References
----------
- Kyte & Doolittle (1982) - hydropathy window analysis
- von Heijne (1992) - positive-inside rule
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..core.models import ConservationProfile
from .base import (
    OracleConfig,
    OracleType,
    ResidueScorer,
    SegmentScorer,
    TopologyScorer,
    register_oracle,
)
from .features import KYTE_DOOLITTLE, SideFeatures, segment_features

logger = logging.getLogger(__name__)

# Only residues this close to the N-terminus can belong to a signal peptide
SIGNAL_REGION = 40


def _logistic(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def window_hydropathy(sequence: str, window_size: int) -> np.ndarray:
    """
    Mean Kyte-Doolittle hydropathy of a centred window at every position.

    The window is truncated at the sequence ends; unknown residues count 0.
    """
    values = np.array([KYTE_DOOLITTLE.get(aa, 0.0) for aa in sequence.upper()])
    half = window_size // 2
    out = np.zeros(len(values))
    for i in range(len(values)):
        lo = max(0, i - half)
        hi = min(len(values), i + half + 1)
        out[i] = values[lo:hi].mean()
    return out


# =============================================================================
# Residue scorer
# =============================================================================

@dataclass(frozen=True)
class HydropathyParameters:
    """Shape of the hydropathy-to-probability mapping."""
    helix_window: int = 19
    helix_midpoint: float = 1.6
    helix_slope: float = 2.5
    signal_window: int = 9
    signal_midpoint: float = 2.0
    signal_slope: float = 2.0


@register_oracle
class HydropathyResidueScorer(ResidueScorer):
    """
    Per-residue scorer based on window hydropathy.

    Usage:
        >>> scorer = HydropathyResidueScorer()
        >>> scores = scorer.score_sequence(sequence, profile)
    """

    name = "Hydropathy"
    version = "1.0"
    oracle_type = OracleType.RULE_BASED
    description = "Kyte-Doolittle window hydropathy (19 residues) with N-terminal signal core"

    def __init__(
        self,
        config: Optional[OracleConfig] = None,
        parameters: Optional[HydropathyParameters] = None,
    ):
        super().__init__(config)
        self.parameters = parameters or HydropathyParameters()

    def _score_sequence_impl(
        self,
        sequence: str,
        profile: ConservationProfile,
    ) -> tuple[list[int], list[int], list[int]]:
        p = self.parameters
        helix_h = window_hydropathy(sequence, p.helix_window)
        core_h = window_hydropathy(sequence, p.signal_window)

        sol, tmh, sig = [], [], []
        for i in range(len(sequence)):
            p_tmh = _logistic(p.helix_slope * (helix_h[i] - p.helix_midpoint))
            p_sol = 1.0 - p_tmh
            p_sig = 0.0
            if i < SIGNAL_REGION:
                # strong short core that is not long enough to span the membrane
                p_sig = _logistic(p.signal_slope * (core_h[i] - p.signal_midpoint)) * p_sol
                p_sig *= 1.0 - i / SIGNAL_REGION

            total = p_sol + p_tmh + p_sig
            sol.append(int(1000 * p_sol / total))
            tmh.append(int(1000 * p_tmh / total))
            sig.append(int(1000 * p_sig / total))

        return sol, tmh, sig


# =============================================================================
# Segment scorer
# =============================================================================

@register_oracle
class HydropathySegmentScorer(SegmentScorer):
    """
    Segment scorer from conserved hydropathy and segment length.

    Segments between ``min_length`` and ``max_length`` residues are scored by
    hydropathy alone; outside that range the probability decays
    exponentially with the distance to the range.
    """

    name = "HydropathySegment"
    version = "1.0"
    oracle_type = OracleType.RULE_BASED
    description = "Average conserved hydropathy with a membrane-span length term"

    min_length = 17
    max_length = 30
    midpoint = 1.0
    slope = 1.5
    length_decay = 4.0

    def _score_segment_impl(self, profile: ConservationProfile, start: int, end: int) -> float:
        features = segment_features(profile, start, end)
        length = features[40]
        conserved_hydropathy = features[41]

        probability = _logistic(self.slope * (conserved_hydropathy - self.midpoint))

        if length < self.min_length:
            probability *= math.exp(-(self.min_length - length) / self.length_decay)
        elif length > self.max_length:
            probability *= math.exp(-(length - self.max_length) / self.length_decay)

        return probability


# =============================================================================
# Topology scorer
# =============================================================================

@register_oracle
class PositiveInsideScorer(TopologyScorer):
    """
    Topology scorer implementing the positive-inside rule.

    P(Inside) of side A grows with the difference in the fraction of
    conserved K/R between side A and side B.
    """

    name = "PositiveInside"
    version = "1.0"
    oracle_type = OracleType.RULE_BASED
    description = "von Heijne positive-inside rule on conserved K/R fractions"

    slope = 20.0

    def _score_sides_impl(
        self,
        profile: ConservationProfile,
        side_a: SideFeatures,
        side_b: SideFeatures,
    ) -> float:
        frac_a, _ = side_a.positive_fractions()
        frac_b, _ = side_b.positive_fractions()
        probability = _logistic(self.slope * (frac_a - frac_b))
        logger.debug(
            f"{self.name}: K/R fraction {frac_a:.3f} vs {frac_b:.3f} -> P(inside)={probability:.3f}"
        )
        return probability
