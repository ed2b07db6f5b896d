"""
Shared fixtures for TMRefine tests.

Stub oracles make the refinement engine testable without any trained model:
their scores are set per test, so expected labels can be derived by hand.
"""

from pathlib import Path
from typing import Callable

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from tmrefine.core.models import ConservationProfile, ProteinRecord
from tmrefine.core.profile import profile_from_sequence
from tmrefine.predictors.base import ResidueScorer, SegmentScorer, TopologyScorer


# =============================================================================
# Stub oracles
# =============================================================================

class FixedResidueScorer(ResidueScorer):
    """Returns preset tracks regardless of the input."""

    name = "FixedResidue"

    def __init__(self, sol, tmh, sig=None, config=None):
        super().__init__(config)
        self.sol = list(sol)
        self.tmh = list(tmh)
        self.sig = list(sig) if sig is not None else [0] * len(self.sol)

    def _score_sequence_impl(self, sequence, profile):
        return self.sol, self.tmh, self.sig


class FunctionSegmentScorer(SegmentScorer):
    """P(TMH) computed by a plain function of (start, end)."""

    name = "FunctionSegment"

    def __init__(self, func: Callable[[int, int], float], config=None):
        super().__init__(config)
        self.func = func
        self.calls = []

    def _score_segment_impl(self, profile, start, end):
        self.calls.append((start, end))
        return self.func(start, end)


class FixedTopologyScorer(TopologyScorer):
    """Constant P(Inside)."""

    name = "FixedTopology"

    def __init__(self, p_inside: float = 0.8, config=None):
        super().__init__(config)
        self.p_inside = p_inside
        self.seen = []

    def _score_sides_impl(self, profile, side_a, side_b):
        self.seen.append((side_a, side_b))
        return self.p_inside


class FailingSegmentScorer(SegmentScorer):
    name = "FailingSegment"

    def _score_segment_impl(self, profile, start, end):
        raise RuntimeError("model crashed")


def exact_window_scorer(start: int, end: int, peak: float = 0.9, step: float = 0.1) -> Callable:
    """
    Segment function peaking at exactly ``[start, end]``.

    Every residue of boundary displacement costs ``step``.
    """
    def func(s, e):
        return max(0.0, peak - step * (abs(s - start) + abs(e - end)))
    return func


# =============================================================================
# Data fixtures
# =============================================================================

# Soluble N-terminus, one hydrophobic helix, soluble C-terminus
SINGLE_TM = "MSKRKDESNQ" * 4 + "L" * 22 + "DESNQKTPGS" * 3

# No hydrophobic stretch at all
SOLUBLE = "MSKRKDESNQ" * 5

# Two helices; inside, outside, inside
GOOD_ANNOTATION = "11NNHHHHHHHNNNNNNNHHHHHHHNNN11"
# Inside annotated between the helices, where outside is expected
BAD_ANNOTATION = "11NNHHHHHHHNNN1NNNHHHHHHHNNN11"


def flat_profile(length: int, value: int = 1) -> ConservationProfile:
    """Profile of poly-alanine with every score set to ``value``."""
    return ConservationProfile(
        sequence="A" * length,
        scores=np.full((length, 20), value, dtype=np.int64),
    )


@pytest.fixture
def poly_ala_profile() -> ConservationProfile:
    return flat_profile(60)


@pytest.fixture
def single_tm_record() -> ProteinRecord:
    return ProteinRecord(id="single_tm", header=">single_tm test protein", sequence=SINGLE_TM)


@pytest.fixture
def single_tm_profile() -> ConservationProfile:
    return profile_from_sequence(SINGLE_TM)


@pytest.fixture
def structure_file(tmp_path: Path) -> Path:
    """Structure file with one consistent and one inconsistent record."""
    path = tmp_path / "annotated.txt"
    path.write_text(
        f">good consistent two-helix protein\n{'A' * 30}\n{GOOD_ANNOTATION}\n"
        f">bad same side twice\n{'A' * 30}\n{BAD_ANNOTATION}\n"
    )
    return path


def write_pssm(path: Path, sequence: str, value: int = 1) -> Path:
    """Write a minimal PSI-BLAST style ASCII PSSM with constant scores."""
    alphabet = "ARNDCQEGHILKMFPSTWYV"
    lines = [
        "",
        "Last position-specific scoring matrix computed",
        "           " + " ".join(f"{aa:>3}" for aa in alphabet) + " " + " ".join(f"{aa:>3}" for aa in alphabet),
    ]
    for i, residue in enumerate(sequence):
        scores = " ".join(f"{value:>3}" for _ in alphabet)
        percents = " ".join(f"{0:>3}" for _ in alphabet)
        lines.append(f"{i + 1:>5} {residue} {scores} {percents}  0.00 0.00")
    lines.append("")
    lines.append("                      K         Lambda")
    path.write_text("\n".join(lines) + "\n")
    return path
