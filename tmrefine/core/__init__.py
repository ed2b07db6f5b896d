"""
Core data structures and utilities for TMRefine.

This module provides the foundational components for working with protein
sequences, conservation profiles, label sequences and refinement results.

Modules:
    models: Labels, segments and Pydantic data models
    segments: Maximal-run scanning over label sequences
    sequence: FASTA / structure-file parsing and validation
    profile: PSSM parsing and single-sequence profiles
"""

from .models import (
    PROFILE_ALPHABET,
    ConservationProfile,
    Label,
    ProteinRecord,
    RawScores,
    Segment,
    TopologyResult,
    TopologySide,
    labels_to_string,
    parse_labels,
)
from .profile import ProfileError, check_profile, parse_pssm, profile_from_sequence, read_pssm
from .segments import find_runs, find_segments, iter_runs, run_end
from .sequence import (
    STANDARD_AA,
    SequenceError,
    SequenceValidator,
    parse_fasta,
    parse_structure_file,
    sequence_hash,
    to_fasta,
    to_structure_text,
)

__all__ = [
    "PROFILE_ALPHABET",
    "ConservationProfile",
    "Label",
    "ProteinRecord",
    "RawScores",
    "Segment",
    "TopologyResult",
    "TopologySide",
    "labels_to_string",
    "parse_labels",
    "ProfileError",
    "check_profile",
    "parse_pssm",
    "profile_from_sequence",
    "read_pssm",
    "find_runs",
    "find_segments",
    "iter_runs",
    "run_end",
    "STANDARD_AA",
    "SequenceError",
    "SequenceValidator",
    "parse_fasta",
    "parse_structure_file",
    "sequence_hash",
    "to_fasta",
    "to_structure_text",
]
