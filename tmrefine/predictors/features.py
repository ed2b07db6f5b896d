"""
Feature construction for the model-backed oracles.

All features are derived from the conservation profile alone. An amino acid
counts as *conserved* at a position when its profile score is positive and as
*non-conserved* when the score is negative; zero scores are ignored. Three
feature sets exist, one per oracle role:

Residue window features (ResidueScorer)
---------------------------------------
For a window of +/-9 residues around the centre: the 20 raw profile scores of
every position plus an in-range indicator (-10 inside the sequence, 10 beyond
its ends, where the scores are 0). Over the inner +/-4 residues,
conserved and non-conserved averages of Kyte-Doolittle hydropathy and
fractions of hydrophobic, positively charged, negatively charged and polar
amino acids. Then binned N- and C-terminal distances, binned protein length and
the global conserved / non-conserved composition of the whole profile.

Segment features (SegmentScorer)
--------------------------------
Conserved and non-conserved composition over the segment, its length, average
hydropathy, and hydrophobic and charged fractions.

Side features (TopologyScorer)
------------------------------
Conserved and non-conserved composition of all residues on one membrane side,
fraction of positively charged amino acids (positive-inside rule), and the
count differences of positively charged amino acids between the two sides.

Biological Rationale
--------------------
Transmembrane helices are enriched in hydrophobic residues (I, L, V, F, A)
and depleted of charged ones; a ~20-residue window of positive hydropathy is
the classic TMH signature. Cytoplasmic loops carry more K/R than periplasmic
or extracellular loops (von Heijne's positive-inside rule), which is what the
side features capture.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from ..core.models import PROFILE_ALPHABET, ConservationProfile


# =============================================================================
# Amino acid scales
# =============================================================================

# Kyte-Doolittle hydropathy
KYTE_DOOLITTLE = {
    "A": 1.8, "C": 2.5, "D": -3.5, "E": -3.5, "F": 2.8,
    "G": -0.4, "H": -3.2, "I": 4.5, "K": -3.9, "L": 3.8,
    "M": 1.9, "N": -3.5, "P": -1.6, "Q": -3.5, "R": -4.5,
    "S": -0.8, "T": -0.7, "V": 4.2, "W": -0.9, "Y": -1.3,
}

CHARGE = {"D": -1, "E": -1, "K": 1, "R": 1}

POLAR = set("CDEHKNQRSTY")

# Column-aligned vectors (PROFILE_ALPHABET order)
HYDROPATHY = np.array([KYTE_DOOLITTLE[aa] for aa in PROFILE_ALPHABET])
IS_HYDROPHOBIC = HYDROPATHY > 0
IS_POSITIVE = np.array([CHARGE.get(aa, 0) > 0 for aa in PROFILE_ALPHABET])
IS_NEGATIVE = np.array([CHARGE.get(aa, 0) < 0 for aa in PROFILE_ALPHABET])
IS_CHARGED = IS_POSITIVE | IS_NEGATIVE
IS_POLAR = np.array([aa in POLAR for aa in PROFILE_ALPHABET])

# Window geometry of the residue features
WINDOW_RADIUS = 9
INNER_RADIUS = 4
IN_RANGE_FLAG = -10
OUT_OF_RANGE_FLAG = 10

N_RESIDUE_FEATURES = (2 * WINDOW_RADIUS + 1) * 21 + 10 + 3 + 40
N_SEGMENT_FEATURES = 47
N_SIDE_FEATURES = 86


def _bin_distance(distance: int) -> int:
    if distance > 40:
        return 4
    if distance > 30:
        return 3
    if distance > 20:
        return 2
    if distance > 10:
        return 1
    return 0


def _bin_length(length: int) -> int:
    if length > 240:
        return 4
    if length > 180:
        return 3
    if length > 120:
        return 2
    if length > 60:
        return 1
    return 0


# =============================================================================
# Residue window features
# =============================================================================

def global_composition(profile: ConservationProfile) -> np.ndarray:
    """
    Conserved / non-conserved composition over the whole profile.

    Returns:
        40 values, conserved and non-conserved fraction interleaved per
        amino acid
    """
    conserved = (profile.scores > 0).sum(axis=0).astype(float)
    non_conserved = (profile.scores < 0).sum(axis=0).astype(float)

    conserved /= max(conserved.sum(), 1.0)
    non_conserved /= max(non_conserved.sum(), 1.0)

    return np.column_stack([conserved, non_conserved]).ravel()


def residue_window_features(
    profile: ConservationProfile,
    center: int,
    global_comp: np.ndarray | None = None,
) -> np.ndarray:
    """
    Feature vector of the window centred on one residue.

    Args:
        profile: Conservation profile
        center: 0-indexed window centre
        global_comp: Precomputed global_composition (computed if None)

    Returns:
        Vector of N_RESIDUE_FEATURES values
    """
    length = profile.length
    if global_comp is None:
        global_comp = global_composition(profile)

    values: list[float] = []
    cons_hydro = non_cons_hydro = 0.0
    # rows: conserved, non-conserved; columns: hydrophobic, K/R, D/E, polar
    counts = np.zeros((2, 4))
    n_cons = n_non_cons = 0

    for i in range(center - WINDOW_RADIUS, center + WINDOW_RADIUS + 1):
        if not 0 <= i < length:
            values.extend([0] * 20)
            values.append(OUT_OF_RANGE_FLAG)
            continue

        row = profile.scores[i]
        values.extend(row.tolist())
        values.append(IN_RANGE_FLAG)

        if abs(i - center) > INNER_RADIUS:
            continue

        cons, non_cons = row > 0, row < 0
        for row_idx, mask in ((0, cons), (1, non_cons)):
            counts[row_idx] += [
                IS_HYDROPHOBIC[mask].sum(),
                IS_POSITIVE[mask].sum(),
                IS_NEGATIVE[mask].sum(),
                IS_POLAR[mask].sum(),
            ]
        cons_hydro += HYDROPATHY[cons].sum()
        non_cons_hydro += HYDROPATHY[non_cons].sum()
        n_cons += int(cons.sum())
        n_non_cons += int(non_cons.sum())

    n_cons = max(n_cons, 1)
    n_non_cons = max(n_non_cons, 1)

    values.extend([cons_hydro / n_cons, non_cons_hydro / n_non_cons])
    for column in range(4):
        values.extend([counts[0, column] / n_cons, counts[1, column] / n_non_cons])

    values.extend([
        _bin_distance(center + 1),
        _bin_distance(length - center),
        _bin_length(length),
    ])
    values.extend(global_comp.tolist())

    return np.asarray(values, dtype=float)


def residue_feature_matrix(profile: ConservationProfile) -> np.ndarray:
    """Window features for every residue (L x N_RESIDUE_FEATURES)."""
    global_comp = global_composition(profile)
    return np.vstack([
        residue_window_features(profile, i, global_comp) for i in range(profile.length)
    ])


# =============================================================================
# Segment features
# =============================================================================

def segment_features(profile: ConservationProfile, start: int, end: int) -> np.ndarray:
    """
    Feature vector of the closed residue range ``[start, end]``.

    Returns:
        Vector of N_SEGMENT_FEATURES values: conserved composition (20),
        non-conserved composition (20), length, conserved and non-conserved
        average hydropathy, hydrophobic fractions and charged fractions
    """
    block = profile.scores[start:end + 1]
    cons = block > 0
    non_cons = block < 0

    cons_comp = cons.sum(axis=0).astype(float)
    non_cons_comp = non_cons.sum(axis=0).astype(float)
    n_cons = max(cons_comp.sum(), 1.0)
    n_non_cons = max(non_cons_comp.sum(), 1.0)

    return np.concatenate([
        cons_comp / n_cons,
        non_cons_comp / n_non_cons,
        [
            end - start + 1,
            (cons_comp * HYDROPATHY).sum() / n_cons,
            (non_cons_comp * HYDROPATHY).sum() / n_non_cons,
            cons_comp[IS_HYDROPHOBIC].sum() / n_cons,
            non_cons_comp[IS_HYDROPHOBIC].sum() / n_non_cons,
            cons_comp[IS_CHARGED].sum() / n_cons,
            non_cons_comp[IS_CHARGED].sum() / n_non_cons,
        ],
    ])


# =============================================================================
# Side features
# =============================================================================

@dataclass
class SideFeatures:
    """
    Aggregated profile counts for all residues on one membrane side.

    Counts are accumulated residue by residue with ``add_position``; the
    normalised views divide by the respective total (at least 1).
    """
    conserved: np.ndarray = field(default_factory=lambda: np.zeros(20))
    non_conserved: np.ndarray = field(default_factory=lambda: np.zeros(20))
    n_positions: int = 0

    def add_position(self, profile: ConservationProfile, position: int) -> None:
        row = profile.scores[position]
        self.conserved += row > 0
        self.non_conserved += row < 0
        self.n_positions += 1

    @property
    def conserved_total(self) -> float:
        return max(float(self.conserved.sum()), 1.0)

    @property
    def non_conserved_total(self) -> float:
        return max(float(self.non_conserved.sum()), 1.0)

    @property
    def conserved_positive(self) -> int:
        return int(self.conserved[IS_POSITIVE].sum())

    @property
    def non_conserved_positive(self) -> int:
        return int(self.non_conserved[IS_POSITIVE].sum())

    def conserved_composition(self) -> np.ndarray:
        return self.conserved / self.conserved_total

    def non_conserved_composition(self) -> np.ndarray:
        return self.non_conserved / self.non_conserved_total

    def positive_fractions(self) -> tuple[float, float]:
        """Conserved and non-conserved fraction of K/R."""
        return (
            self.conserved_positive / self.conserved_total,
            self.non_conserved_positive / self.non_conserved_total,
        )


def side_feature_vector(side_a: SideFeatures, side_b: SideFeatures) -> np.ndarray:
    """
    Feature vector for the topology oracle (N_SIDE_FEATURES values).

    Side A is the side of the first observation window.
    """
    return np.concatenate([
        side_a.conserved_composition(),
        side_a.non_conserved_composition(),
        side_b.conserved_composition(),
        side_b.non_conserved_composition(),
        side_a.positive_fractions(),
        side_b.positive_fractions(),
        [
            side_a.conserved_positive - side_b.conserved_positive,
            side_a.non_conserved_positive - side_b.non_conserved_positive,
        ],
    ])
