"""
Consensus arbitration between the soluble, transmembrane and signal tracks.

The residue scorer produces three independent probability tracks. Turning
them into a first label sequence happens in three steps:

1. **Arbitration**: every residue takes the label of the best bias-corrected
   track. Ties resolve by the fixed priority NOT_TMH > TMH > SIGNAL, so the
   cascade is not a symmetric arg-max.
2. **Length filter**: helix runs shorter than the minimum helix length are
   turned back into soluble residues; a protein is transmembrane when at
   least one helix survives.
3. **Signal-peptide validation**: fragmentary signal evidence is discarded,
   while a sufficiently long signal run promotes the whole N-terminal prefix
   (up to the last signal residue) into one contiguous signal peptide.

All functions return new label lists; inputs are never modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from tmrefine.core.models import Label
from tmrefine.core.segments import find_segments

logger = logging.getLogger(__name__)

DEFAULT_MIN_HELIX_LENGTH = 7
DEFAULT_SIGNAL_MIN_LENGTH = 4


@dataclass(frozen=True)
class ArbiterWeights:
    """
    Bias subtracted from each track before arbitration.

    Attributes:
        sol: Penalty on the soluble track
        tmh: Penalty on the transmembrane track
        sig: Penalty on the signal-peptide track
    """
    sol: int = 185
    tmh: int = 60
    sig: int = 0


@dataclass
class ArbitrationResult:
    """Labels from arbitration plus the last residue labelled SIGNAL."""
    labels: list[Label]
    last_signal_index: Optional[int] = None

    @property
    def has_signal_evidence(self) -> bool:
        return self.last_signal_index is not None


def arbitrate(
    sol: Sequence[int],
    tmh: Sequence[int],
    sig: Sequence[int],
    weights: ArbiterWeights = ArbiterWeights(),
) -> ArbitrationResult:
    """
    Per-residue three-way arbitration.

    Args:
        sol: Smoothed soluble track
        tmh: Smoothed transmembrane track
        sig: Smoothed signal-peptide track
        weights: Bias per track

    Returns:
        ArbitrationResult with labels drawn from {NOT_TMH, TMH, SIGNAL}

    Raises:
        ValueError: If the tracks differ in length
    """
    if not (len(sol) == len(tmh) == len(sig)):
        raise ValueError(
            f"Score tracks differ in length: {len(sol)}, {len(tmh)}, {len(sig)}"
        )

    s_sol = np.asarray(sol, dtype=np.int64) - weights.sol
    s_tmh = np.asarray(tmh, dtype=np.int64) - weights.tmh
    s_sig = np.asarray(sig, dtype=np.int64) - weights.sig

    labels: list[Label] = []
    last_signal = None

    for i in range(len(s_sol)):
        if s_sol[i] >= s_tmh[i] and s_sol[i] >= s_sig[i]:
            labels.append(Label.NOT_TMH)
        elif s_tmh[i] >= s_sig[i]:
            labels.append(Label.TMH)
        else:
            labels.append(Label.SIGNAL)
            last_signal = i

    return ArbitrationResult(labels=labels, last_signal_index=last_signal)


def validate_signal_peptide(
    labels: Sequence[Label],
    last_signal_index: Optional[int],
    min_length: int = DEFAULT_SIGNAL_MIN_LENGTH,
) -> tuple[list[Label], bool]:
    """
    Confirm or discard a putative N-terminal signal peptide.

    Within the prefix ``[0, last_signal_index]`` a SIGNAL run of at least
    ``min_length`` residues turns the whole prefix into SIGNAL; otherwise all
    SIGNAL residues of the prefix become NOT_TMH.

    Args:
        labels: Labels after arbitration
        last_signal_index: Last SIGNAL position, or None if there is none
        min_length: Shortest run accepted as signal evidence

    Returns:
        Tuple of (new labels, signal peptide present)
    """
    out = list(labels)
    if last_signal_index is None:
        return out, False

    prefix = out[:last_signal_index + 1]
    present = any(
        run.length >= min_length for run in find_segments(prefix, Label.SIGNAL)
    )

    if present:
        for i in range(last_signal_index + 1):
            out[i] = Label.SIGNAL
    else:
        for i in range(last_signal_index + 1):
            if out[i] is Label.SIGNAL:
                out[i] = Label.NOT_TMH

    return out, present


def filter_short_helices(
    labels: Sequence[Label],
    min_length: int = DEFAULT_MIN_HELIX_LENGTH,
) -> tuple[list[Label], bool]:
    """
    Remove helix runs shorter than ``min_length``.

    Args:
        labels: Label sequence
        min_length: Minimum helix length

    Returns:
        Tuple of (new labels, is transmembrane)
    """
    out = list(labels)
    is_transmembrane = False

    for run in find_segments(out, Label.TMH):
        if run.length < min_length:
            for i in range(run.start, run.end + 1):
                out[i] = Label.NOT_TMH
        else:
            is_transmembrane = True

    return out, is_transmembrane


def is_transmembrane(labels: Sequence[Label]) -> bool:
    """Whether any residue is labelled as transmembrane helix."""
    return any(label.is_tmh for label in labels)
