"""
Core data models for TMRefine.

This module defines the fundamental data structures used throughout the
refinement pipeline: per-residue structural labels, membrane sides, residue
runs (segments), protein records, conservation profiles and prediction results.
Record-like models use Pydantic for validation and serialization; the small
value types that sit on hot paths of the boundary search are plain
dataclasses and enums.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Column order of the 20-column conservation profile matrix
PROFILE_ALPHABET = "ACDEFGHIKLMNPQRSTVWY"


class Label(str, Enum):
    """
    Per-residue structural label.

    The value of each member is its one-character annotation code, which is
    also the code used in structure files and in the label string of a
    prediction:

    - NOT_TMH ("N"): soluble / non-membrane residue, side not yet known
    - TMH ("H"): residue of a transmembrane helix
    - LOOP ("L"): re-entrant membrane loop
    - SIGNAL ("S"): N-terminal signal peptide
    - UNKNOWN ("U"): unannotated / unresolved residue
    - INSIDE ("1"): soluble residue on the cytoplasmic side
    - OUTSIDE ("2"): soluble residue on the non-cytoplasmic side
    """
    NOT_TMH = "N"
    TMH = "H"
    LOOP = "L"
    SIGNAL = "S"
    UNKNOWN = "U"
    INSIDE = "1"
    OUTSIDE = "2"

    @classmethod
    def from_code(cls, code: str) -> Label:
        """
        Parse an annotation character.

        Lower-case helix codes are accepted; any unrecognised character
        (including "." and "T") is read as NOT_TMH.
        """
        code = code.upper()
        if code == "H":
            return cls.TMH
        if code == "L":
            return cls.LOOP
        if code == "S":
            return cls.SIGNAL
        if code in ("U", " "):
            return cls.UNKNOWN
        if code == "1":
            return cls.INSIDE
        if code == "2":
            return cls.OUTSIDE
        return cls.NOT_TMH

    @property
    def is_tmh(self) -> bool:
        return self is Label.TMH

    @property
    def is_soluble(self) -> bool:
        """Non-membrane residue, with or without a side assigned."""
        return self in (Label.NOT_TMH, Label.INSIDE, Label.OUTSIDE)

    @property
    def side(self) -> Optional[TopologySide]:
        """Membrane side carried by this label, if any."""
        if self is Label.INSIDE:
            return TopologySide.INSIDE
        if self is Label.OUTSIDE:
            return TopologySide.OUTSIDE
        return None


class TopologySide(str, Enum):
    """Side of the membrane a soluble segment lies on."""
    INSIDE = "inside"
    OUTSIDE = "outside"

    def flipped(self) -> TopologySide:
        """The opposite side; crossing a helix always yields this."""
        if self is TopologySide.INSIDE:
            return TopologySide.OUTSIDE
        return TopologySide.INSIDE

    def to_label(self) -> Label:
        return Label.INSIDE if self is TopologySide.INSIDE else Label.OUTSIDE


def parse_labels(annotation: str) -> list[Label]:
    """Convert an annotation string into a label sequence."""
    return [Label.from_code(ch) for ch in annotation]


def labels_to_string(labels: Sequence[Label]) -> str:
    """Convert a label sequence back into its one-character code string."""
    return "".join(label.value for label in labels)


@dataclass(frozen=True)
class Segment:
    """
    Maximal run of one label.

    Attributes:
        start: 0-indexed first residue (inclusive)
        end: 0-indexed last residue (inclusive)
        label: Label shared by every residue of the run
        score: Optional score attached to the run
        side: Optional side parity (0/1) used when building topology windows
    """
    start: int
    end: int
    label: Label = Label.TMH
    score: Optional[int] = None
    side: Optional[int] = None

    @property
    def length(self) -> int:
        """Number of residues covered by the run."""
        return self.end - self.start + 1

    def contains(self, position: int) -> bool:
        return self.start <= position <= self.end


class ProteinRecord(BaseModel):
    """
    Protein input record.

    This is the primary input object of the pipeline. An optional annotation
    (one label code per residue) is required for post-processing mode and for
    topology training-example construction.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(..., description="Identifier (first token of the FASTA header)")
    header: Optional[str] = Field(None, description="Full FASTA header line")
    sequence: str = Field(..., min_length=1)
    annotation: Optional[str] = Field(
        None, description="Per-residue structure annotation (label codes)"
    )

    @field_validator("sequence")
    @classmethod
    def validate_sequence(cls, v: str) -> str:
        """Validate that sequence contains only amino acid characters."""
        allowed = set(PROFILE_ALPHABET) | set("BXZJUO")

        v = v.upper().replace(" ", "").replace("\n", "")
        invalid = set(v) - allowed

        if invalid:
            raise ValueError(f"Invalid amino acid characters: {invalid}")
        if not v:
            raise ValueError("Sequence is empty")

        return v

    @model_validator(mode="after")
    def annotation_matches_sequence(self) -> ProteinRecord:
        if self.annotation is not None and len(self.annotation) != len(self.sequence):
            raise ValueError(
                f"Sequence and annotation for protein {self.id} do not match "
                f"({len(self.sequence)} vs {len(self.annotation)} residues)"
            )
        return self

    @property
    def sequence_length(self) -> int:
        return len(self.sequence)

    def labels(self) -> list[Label]:
        """Annotation as a label sequence (all NOT_TMH when unannotated)."""
        if self.annotation is None:
            return [Label.NOT_TMH] * len(self.sequence)
        return parse_labels(self.annotation)

    @property
    def has_annotated_helix(self) -> bool:
        return self.annotation is not None and any(
            label.is_tmh for label in self.labels()
        )

    @property
    def has_annotated_signal(self) -> bool:
        return self.annotation is not None and any(
            label is Label.SIGNAL for label in self.labels()
        )


class ConservationProfile(BaseModel):
    """
    Per-residue, per-amino-acid substitution scores (L x 20).

    Columns follow PROFILE_ALPHABET. A positive score marks an amino acid as
    conserved at that position, a negative score as non-conserved; zero is
    neutral. The profile is opaque to the refinement engine and is consumed
    only by the scoring oracles.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    sequence: str = Field(..., min_length=1)
    scores: np.ndarray

    @field_validator("scores", mode="before")
    @classmethod
    def coerce_scores(cls, v: Any) -> np.ndarray:
        arr = np.asarray(v, dtype=np.int64)
        if arr.ndim != 2 or arr.shape[1] != len(PROFILE_ALPHABET):
            raise ValueError(
                f"Profile must be an L x {len(PROFILE_ALPHABET)} matrix, got shape {arr.shape}"
            )
        return arr

    @model_validator(mode="after")
    def rows_match_sequence(self) -> ConservationProfile:
        if self.scores.shape[0] != len(self.sequence):
            raise ValueError(
                f"Profile has {self.scores.shape[0]} rows but sequence has "
                f"{len(self.sequence)} residues"
            )
        return self

    @property
    def length(self) -> int:
        return len(self.sequence)

    def conserved(self, position: int) -> np.ndarray:
        """Boolean mask of amino acids with a positive score at a position."""
        return self.scores[position] > 0

    def non_conserved(self, position: int) -> np.ndarray:
        """Boolean mask of amino acids with a negative score at a position."""
        return self.scores[position] < 0

    def fingerprint(self) -> str:
        """Stable hash of sequence and matrix, used for cache keys."""
        digest = hashlib.sha256(self.sequence.encode())
        digest.update(np.ascontiguousarray(self.scores).tobytes())
        return digest.hexdigest()[:16]


class RawScores(BaseModel):
    """
    Three per-residue probability tracks (probability x 1000).

    Produced once per protein by a ResidueScorer and never mutated.
    """
    sol: list[int]
    tmh: list[int]
    sig: list[int]

    @field_validator("sol", "tmh", "sig")
    @classmethod
    def values_in_range(cls, v: list[int]) -> list[int]:
        for value in v:
            if value < 0 or value > 1000:
                raise ValueError(f"Score {value} outside [0, 1000]")
        return v

    @model_validator(mode="after")
    def equal_lengths(self) -> RawScores:
        if not (len(self.sol) == len(self.tmh) == len(self.sig)):
            raise ValueError(
                f"Score tracks differ in length: sol={len(self.sol)}, "
                f"tmh={len(self.tmh)}, sig={len(self.sig)}"
            )
        return self

    def __len__(self) -> int:
        return len(self.sol)


class TopologyResult(BaseModel):
    """
    Complete refinement result for one protein.

    Contains the final label string together with every per-residue track
    a downstream formatter may want to report.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    protein_id: str
    header: Optional[str] = None
    sequence: str
    mode: str = "full"

    labels: Optional[str] = Field(None, description="Final label codes, one per residue")
    raw_scores: Optional[RawScores] = Field(None, description="Unsmoothed oracle output")
    smoothed_scores: Optional[RawScores] = None
    segment_scores: Optional[list[int]] = Field(
        None, description="Segment-oracle score stamped on each helix residue"
    )
    confidence: Optional[list[int]] = Field(None, description="Reliability 0-9 per residue")
    topology_raw: Optional[int] = Field(None, description="P(Inside) x 1000 of the N-terminal side")

    is_transmembrane: bool = False
    has_signal_peptide: bool = False

    runtime_seconds: Optional[float] = Field(None, ge=0)
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        """Whether the protein went through the pipeline without failure."""
        return self.error_message is None

    def label_sequence(self) -> list[Label]:
        if self.labels is None:
            return []
        return parse_labels(self.labels)

    def segments(self) -> list[Segment]:
        """All maximal runs of the final label string, in order."""
        from .segments import find_runs

        return find_runs(self.label_sequence())

    @property
    def n_helices(self) -> int:
        return sum(1 for segment in self.segments() if segment.label.is_tmh)
