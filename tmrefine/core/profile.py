"""
Conservation profile construction and PSSM parsing.

Scoring oracles see a protein through its position-specific scoring matrix
(PSSM): for every residue, a substitution score for each of the 20 standard
amino acids. PSI-BLAST ASCII matrices are parsed here; for proteins without
an alignment, a single-sequence profile is derived from BLOSUM62, which is
what PSI-BLAST reports when no homologues are found.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import numpy as np
from Bio.Align import substitution_matrices

from .models import PROFILE_ALPHABET, ConservationProfile

logger = logging.getLogger(__name__)

_ALPHABET_INDEX = {aa: i for i, aa in enumerate(PROFILE_ALPHABET)}

# Tokens on a PSI-BLAST matrix header line / data row
_HEADER_TOKENS = 40
_ROW_TOKENS = 44


class ProfileError(Exception):
    """Raised for malformed profiles or profile/sequence length mismatches."""
    pass


def read_pssm(path: Union[str, Path], sequence: str) -> ConservationProfile:
    """
    Read a PSI-BLAST ASCII PSSM.

    The header line lists the 20 amino acids twice (log-odds and weighted
    percentages); its first 20 tokens define the column order of the
    following data rows. Data rows are read until the first line that is not
    a 44-column row.

    Args:
        path: PSSM file
        sequence: Sequence the profile belongs to

    Returns:
        ConservationProfile with columns in PROFILE_ALPHABET order

    Raises:
        ProfileError: If the file is missing, malformed, or its row count
            differs from the sequence length
    """
    path = Path(path)
    if not path.exists():
        raise ProfileError(f"Could not find pssm file: {path}")

    try:
        with open(path, "r", encoding="utf-8") as handle:
            text = handle.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ProfileError(f"Could not read pssm file {path}: {e}") from e

    return parse_pssm(text, sequence, source=str(path))


def parse_pssm(text: str, sequence: str, source: str = "<string>") -> ConservationProfile:
    """Parse PSSM text; see read_pssm."""
    lines = text.splitlines()
    column_map = None
    rows: dict[int, np.ndarray] = {}

    i = 0
    while i < len(lines):
        tokens = lines[i].split()
        i += 1
        if len(tokens) != _HEADER_TOKENS:
            continue

        column_map = []
        for aa in tokens[:20]:
            if aa.upper() not in _ALPHABET_INDEX:
                raise ProfileError(f"Malformed pssm matrix header in {source}")
            column_map.append(_ALPHABET_INDEX[aa.upper()])

        while i < len(lines):
            tokens = lines[i].split()
            if len(tokens) != _ROW_TOKENS:
                break
            try:
                position = int(tokens[0]) - 1
                values = [int(v) for v in tokens[2:22]]
            except ValueError as e:
                raise ProfileError(f"Malformed pssm row {i + 1} in {source}: {e}") from e

            row = np.zeros(len(PROFILE_ALPHABET), dtype=np.int64)
            row[column_map] = values
            rows[position] = row
            i += 1
        break

    if column_map is None:
        raise ProfileError(f"No pssm matrix header found in {source}")

    if len(rows) != len(sequence) or set(rows) != set(range(len(sequence))):
        raise ProfileError(
            f"Sequence length and pssm file size do not match for {source} "
            f"({len(sequence)} residues, {len(rows)} rows)"
        )

    matrix = np.vstack([rows[p] for p in range(len(sequence))])
    return ConservationProfile(sequence=sequence, scores=matrix)


def profile_from_sequence(sequence: str, matrix_name: str = "BLOSUM62") -> ConservationProfile:
    """
    Build a single-sequence profile from a substitution matrix.

    Each row is the substitution matrix row of the residue at that position;
    ambiguous residues get an all-zero row.

    Args:
        sequence: Protein sequence
        matrix_name: Any matrix known to Bio.Align.substitution_matrices

    Returns:
        ConservationProfile
    """
    matrix = substitution_matrices.load(matrix_name)
    scores = np.zeros((len(sequence), len(PROFILE_ALPHABET)), dtype=np.int64)

    for i, residue in enumerate(sequence.upper()):
        if residue not in _ALPHABET_INDEX:
            continue
        for j, aa in enumerate(PROFILE_ALPHABET):
            scores[i, j] = int(matrix[residue, aa])

    logger.debug(f"Built {matrix_name} single-sequence profile ({len(sequence)} residues)")
    return ConservationProfile(sequence=sequence, scores=scores)


def check_profile(profile: ConservationProfile, sequence: str, protein_id: str = "") -> None:
    """
    Verify that a profile belongs to a sequence.

    Raises:
        ProfileError: On length or residue mismatch
    """
    if profile.length != len(sequence):
        raise ProfileError(
            f"Profile length {profile.length} does not match sequence length "
            f"{len(sequence)} for {protein_id or 'protein'}"
        )
    if profile.sequence.upper() != sequence.upper():
        raise ProfileError(f"Profile residues differ from sequence for {protein_id or 'protein'}")
