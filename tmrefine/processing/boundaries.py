"""
Iterative boundary refinement of predicted transmembrane helices.

Residue-level arbitration finds roughly where helices are, but it tends to
fuse two adjacent helices separated by a short loop into one long run, and
its run ends are only accurate to a few residues. The refiner corrects both
with a local search against a segment-level oracle that scores a whole
residue range at once:

Split
-----
A run long enough to hold two minimal helices plus a gap is tentatively cut
by every admissible pair of break points ``(b1, b2)``: ``[start, b1]`` and
``[b2 + 1, end]`` stay helical and ``(b1, b2]`` becomes a loop. The pair with
the best average sub-helix probability wins, provided both sub-helices pass
the cutoff and the average strictly beats the probability of the uncut run.

Adjust
------
Each run's start and end are shifted independently by up to ``max_shift``
residues. A run whose best probability is below the cutoff is deleted. If a
shifted window strictly improves on the run itself, the union of old and new
extent is rewritten so that exactly the best window is helical.

Control loop
------------
One split pass and one adjust pass, then up to ``max_rounds`` further rounds
of split-then-adjust. A round stops the loop as soon as the split pass changes
nothing (adjust is then skipped) or the adjust pass changes nothing. A final
split pass always closes the refinement.

Each helix residue carries the oracle score of its run (probability x 1000);
all other residues score 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from tmrefine.core.models import ConservationProfile, Label
from tmrefine.core.segments import run_end
from tmrefine.predictors.base import SegmentScorer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundaryConfig:
    """
    Parameters of the boundary search.

    Attributes:
        helix_min_size: Shortest helix a split may produce
        gap_min_size: Shortest loop a split may insert
        max_shift: Largest shift of a run start or end during adjustment
        cutoff: Minimum P(TMH) for a run to survive / a split to be accepted
        max_rounds: Split-then-adjust rounds after the initial pair of passes
    """
    helix_min_size: int = 17
    gap_min_size: int = 1
    max_shift: int = 3
    cutoff: float = 0.0
    max_rounds: int = 5

    def __post_init__(self):
        if self.helix_min_size < 1:
            raise ValueError("helix_min_size must be at least 1")
        if self.gap_min_size < 1:
            raise ValueError("gap_min_size must be at least 1")
        if self.max_shift < 0:
            raise ValueError("max_shift must not be negative")
        if self.max_rounds < 0:
            raise ValueError("max_rounds must not be negative")

    @property
    def min_split_length(self) -> int:
        """Shortest run that is considered for splitting."""
        return 2 * self.helix_min_size + self.gap_min_size


def probability_to_score(probability: float) -> int:
    """Segment score (0-1000) of a probability."""
    return int(round(1000 * probability))


class SegmentProbabilities:
    """
    Memoised P(TMH) lookups for one protein.

    The boundary search queries overlapping ranges many times; the oracle is
    deterministic, so every ``(start, end)`` is scored once. Instances are
    local to one refinement and never shared between proteins.
    """

    def __init__(self, scorer: SegmentScorer, profile: ConservationProfile):
        self.scorer = scorer
        self.profile = profile
        self._memo: dict[tuple[int, int], float] = {}
        self.n_queries = 0

    def __call__(self, start: int, end: int) -> float:
        key = (start, end)
        if key not in self._memo:
            self._memo[key] = self.scorer.score_segment(self.profile, start, end)
            self.n_queries += 1
        return self._memo[key]


@dataclass
class RefinementResult:
    """
    Outcome of a refinement.

    Attributes:
        labels: Refined label sequence
        segment_scores: Oracle score of the enclosing helix per residue, 0 elsewhere
        rounds: Extra split-then-adjust rounds that were entered
        n_splits: Accepted splits over all passes
        n_adjustments: Accepted boundary moves over all passes
        n_deletions: Runs deleted for falling below the cutoff
        n_oracle_queries: Distinct ranges sent to the segment oracle
    """
    labels: list[Label]
    segment_scores: list[int]
    rounds: int = 0
    n_splits: int = 0
    n_adjustments: int = 0
    n_deletions: int = 0
    n_oracle_queries: int = 0


class BoundaryRefiner:
    """
    Split / adjust local search over helix boundaries.

    The refiner itself is stateless; everything that changes during one
    refinement lives in the lists passed to the passes, so one refiner can
    serve several threads.

    Usage:
        >>> refiner = BoundaryRefiner(scorer)
        >>> result = refiner.refine(labels, profile)
        >>> result.labels, result.segment_scores
    """

    def __init__(self, scorer: SegmentScorer, config: Optional[BoundaryConfig] = None):
        self.scorer = scorer
        self.config = config or BoundaryConfig()

    def refine(
        self,
        labels: Sequence[Label],
        profile: ConservationProfile,
        protein_id: str = "",
    ) -> RefinementResult:
        """
        Run the full split / adjust control loop.

        Args:
            labels: Label sequence after arbitration and length filtering
            profile: Conservation profile handed to the segment oracle
            protein_id: Used in log messages only

        Returns:
            RefinementResult with new label and score lists

        Raises:
            OracleError: If the segment oracle fails
        """
        state = _RefinementState(
            labels=list(labels),
            scores=[0] * len(labels),
            probabilities=SegmentProbabilities(self.scorer, profile),
        )

        self._split(state)
        self._adjust(state)

        rounds = 0
        for _ in range(self.config.max_rounds):
            rounds += 1
            if not self._split(state) or not self._adjust(state):
                break

        self._split(state)

        logger.debug(
            f"{protein_id or 'protein'}: refinement done after {rounds} extra round(s), "
            f"{state.n_splits} split(s), {state.n_adjustments} adjustment(s), "
            f"{state.n_deletions} deletion(s), {state.probabilities.n_queries} oracle queries"
        )

        return RefinementResult(
            labels=state.labels,
            segment_scores=state.scores,
            rounds=rounds,
            n_splits=state.n_splits,
            n_adjustments=state.n_adjustments,
            n_deletions=state.n_deletions,
            n_oracle_queries=state.probabilities.n_queries,
        )

    # -------------------------------------------------------------------------
    # Single passes
    # -------------------------------------------------------------------------

    def split_pass(
        self,
        labels: list[Label],
        segment_scores: list[int],
        probabilities: SegmentProbabilities,
    ) -> bool:
        """
        One split pass over all helix runs, rewriting both lists in place.

        Returns:
            Whether any run was split
        """
        state = _RefinementState(labels, segment_scores, probabilities)
        return self._split(state)

    def adjust_pass(
        self,
        labels: list[Label],
        segment_scores: list[int],
        probabilities: SegmentProbabilities,
    ) -> bool:
        """
        One adjust pass over all helix runs, rewriting both lists in place.

        Returns:
            Whether any run boundary was moved (deletions do not count)
        """
        state = _RefinementState(labels, segment_scores, probabilities)
        return self._adjust(state)

    def _split(self, state: _RefinementState) -> bool:
        cfg = self.config
        labels, scores, prob = state.labels, state.scores, state.probabilities
        split = False

        i = 0
        while i < len(labels):
            if labels[i] is not Label.TMH:
                i += 1
                continue

            start = i
            end = run_end(labels, start)
            i = end + 1

            if end - start + 1 < cfg.min_split_length:
                continue

            best = prob(start, end)
            best_pair = None
            best_probs = (0.0, 0.0)

            for b1 in range(start + cfg.helix_min_size - 1, end):
                for b2 in range(b1 + cfg.gap_min_size, end - cfg.helix_min_size + 1):
                    if b2 == b1:
                        continue

                    p1 = prob(start, b1)
                    p2 = prob(b2 + 1, end)
                    if p1 < cfg.cutoff or p2 < cfg.cutoff:
                        continue

                    average = (p1 + p2) / 2.0
                    if average > best:
                        best = average
                        best_pair = (b1, b2)
                        best_probs = (p1, p2)

            if best_pair is None:
                continue

            b1, b2 = best_pair
            for j in range(start, b1 + 1):
                labels[j] = Label.TMH
                scores[j] = probability_to_score(best_probs[0])
            for j in range(b1 + 1, b2 + 1):
                labels[j] = Label.NOT_TMH
                scores[j] = 0
            for j in range(b2 + 1, end + 1):
                labels[j] = Label.TMH
                scores[j] = probability_to_score(best_probs[1])

            logger.debug(f"Split helix {start}-{end} into {start}-{b1} and {b2 + 1}-{end}")
            state.n_splits += 1
            split = True

        return split

    def _adjust(self, state: _RefinementState) -> bool:
        cfg = self.config
        labels, scores, prob = state.labels, state.scores, state.probabilities
        n = len(labels)
        adjusted = False

        i = 0
        while i < n:
            if labels[i] is not Label.TMH:
                scores[i] = 0
                i += 1
                continue

            start = i
            end = run_end(labels, start)

            best = prob(start, end)
            best_window = None

            for new_start in range(start - cfg.max_shift, start + cfg.max_shift + 1):
                if new_start < 0:
                    continue
                for new_end in range(end - cfg.max_shift, end + cfg.max_shift + 1):
                    if new_end >= n:
                        break
                    if new_end < new_start:
                        continue

                    p = prob(new_start, new_end)
                    if p > best:
                        best = p
                        best_window = (new_start, new_end)

            if best < cfg.cutoff:
                for j in range(start, end + 1):
                    labels[j] = Label.NOT_TMH
                    scores[j] = 0
                logger.debug(f"Deleted helix {start}-{end} (P={best:.3f} < {cfg.cutoff})")
                state.n_deletions += 1
                i = end + 1

            elif best_window is not None:
                best_start, best_end = best_window
                union_start = min(start, best_start)
                union_end = max(end, best_end)
                for j in range(union_start, union_end + 1):
                    if best_start <= j <= best_end:
                        labels[j] = Label.TMH
                        scores[j] = probability_to_score(best)
                    else:
                        labels[j] = Label.NOT_TMH
                        scores[j] = 0
                logger.debug(f"Moved helix {start}-{end} to {best_start}-{best_end}")
                state.n_adjustments += 1
                adjusted = True
                i = union_end + 1

            else:
                for j in range(start, end + 1):
                    scores[j] = probability_to_score(best)
                i = end + 1

        return adjusted


@dataclass
class _RefinementState:
    labels: list[Label]
    scores: list[int]
    probabilities: SegmentProbabilities
    n_splits: int = 0
    n_adjustments: int = 0
    n_deletions: int = 0
