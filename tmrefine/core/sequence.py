"""
Sequence handling utilities for TMRefine.

This module reads protein sequences from FASTA files and annotated structure
files, validates them, and renders records back to text. Parsing is kept out
of the refinement engine itself: the engine only ever sees validated
ProteinRecord objects.

Structure files hold one record per three lines::

    >header
    SEQUENCE
    ANNOTATION

where the annotation carries one label code per residue (see Label).
"""

from __future__ import annotations

import hashlib
from contextlib import contextmanager
from io import StringIO
from pathlib import Path
from typing import Iterator, Optional, TextIO, Union

from Bio import SeqIO

from .models import PROFILE_ALPHABET, ProteinRecord, labels_to_string, parse_labels


# Residues with a column in the conservation profile
STANDARD_AA = frozenset(PROFILE_ALPHABET)

# Ambiguity codes PSI-BLAST passes through into the PSSM residue column
AMBIGUOUS_AA = frozenset("BXZJUO")

SourceType = Union[str, Path, TextIO]


class SequenceError(Exception):
    """Exception raised for malformed sequence or structure input."""
    pass


class SequenceValidator:
    """
    Screens sequences before they become ProteinRecord objects.

    Ambiguity codes have no profile column of their own, but PSSMs written
    for such sequences still carry them, so they are accepted unless
    ``strict`` is set.
    """

    def __init__(self, strict: bool = False, max_length: Optional[int] = 40000):
        self.strict = strict
        self.max_length = max_length
        self.alphabet = STANDARD_AA if strict else STANDARD_AA | AMBIGUOUS_AA

    def problems(self, sequence: str) -> list[str]:
        """List everything wrong with a cleaned sequence (empty if usable)."""
        found = []
        if not sequence:
            found.append("no residues")
        elif self.max_length is not None and len(sequence) > self.max_length:
            found.append(f"{len(sequence)} residues exceed the limit of {self.max_length}")

        unknown = set(sequence) - self.alphabet
        if unknown:
            found.append(f"unknown residue codes {''.join(sorted(unknown))}")
        return found

    def check(self, protein_id: str, sequence: str) -> str:
        """
        Return ``sequence`` unchanged if it is usable.

        Raises:
            SequenceError: Naming the protein and every problem found
        """
        found = self.problems(sequence)
        if found:
            raise SequenceError(f"Rejected sequence of {protein_id}: {'; '.join(found)}")
        return sequence


def clean_sequence(sequence: str) -> str:
    """Upper-case a sequence and strip all whitespace."""
    return "".join(sequence.split()).upper()


def record_id(header: str) -> str:
    """
    Derive a protein identifier from a FASTA header.

    The identifier is the first whitespace-separated token without the
    leading ">", cut at the first "|".
    """
    token = header.strip().lstrip(">").split()
    if not token:
        return ""
    return token[0].split("|")[0].strip()


@contextmanager
def _open_source(source: SourceType, looks_inline: bool) -> Iterator[TextIO]:
    if isinstance(source, Path):
        with open(source, "r") as handle:
            yield handle
    elif isinstance(source, str):
        if looks_inline:
            yield StringIO(source)
        else:
            with open(source, "r") as handle:
                yield handle
    else:
        yield source


def _is_inline(source: SourceType) -> bool:
    return isinstance(source, str) and (source.startswith(">") or "\n>" in source)


def parse_fasta(
    source: SourceType,
    validate: bool = True,
    validator: Optional[SequenceValidator] = None,
) -> Iterator[ProteinRecord]:
    """
    Read unannotated proteins from FASTA.

    Args:
        source: Path, FASTA text, or an open handle
        validate: Screen every sequence with ``validator``
        validator: Screening rules (default SequenceValidator())

    Yields:
        ProteinRecord per FASTA entry, in file order

    Raises:
        SequenceError: On the first rejected sequence
    """
    validator = validator or SequenceValidator()

    with _open_source(source, _is_inline(source)) as handle:
        for entry in SeqIO.parse(handle, "fasta"):
            protein_id = record_id(entry.description)
            residues = clean_sequence(str(entry.seq))
            if validate:
                validator.check(protein_id, residues)

            yield ProteinRecord(id=protein_id, header=f">{entry.description}", sequence=residues)


def parse_structure_file(
    source: SourceType,
    validate: bool = True,
    validator: Optional[SequenceValidator] = None,
) -> Iterator[ProteinRecord]:
    """
    Read annotated proteins (header, sequence and annotation lines).

    Lines before the first header are ignored. Annotation characters are
    normalised to canonical label codes.

    Raises:
        SequenceError: On a record cut short by the end of input, a
            rejected sequence, or an annotation of the wrong length
    """
    validator = validator or SequenceValidator()

    with _open_source(source, _is_inline(source)) as handle:
        lines = iter(handle)
        for line in lines:
            if not line.startswith(">"):
                continue

            header = line.strip()
            protein_id = record_id(header)
            residue_line = next(lines, None)
            annotation_line = next(lines, None)
            if residue_line is None or annotation_line is None:
                raise SequenceError(f"Truncated structure record: {header}")

            residues = clean_sequence(residue_line)
            annotation = "".join(annotation_line.split())
            if validate:
                validator.check(protein_id, residues)
            if len(residues) != len(annotation):
                raise SequenceError(f"Sequence and structure for protein {protein_id} do not match")

            yield ProteinRecord(
                id=protein_id,
                header=header,
                sequence=residues,
                annotation=normalize_annotation(annotation),
            )


def normalize_annotation(annotation: str) -> str:
    """Rewrite an annotation string into canonical label codes."""
    return labels_to_string(parse_labels(annotation))


def sequence_hash(sequence: str) -> str:
    """MD5 of the cleaned sequence; keys the oracle cache and log messages."""
    return hashlib.md5(clean_sequence(sequence).encode()).hexdigest()


def to_fasta(records: list[ProteinRecord], line_width: int = 60) -> str:
    """
    Render records as FASTA text.

    Args:
        records: Records to render
        line_width: Residues per sequence line

    Returns:
        FASTA formatted string
    """
    lines = []
    for record in records:
        lines.append(record.header or f">{record.id}")
        for i in range(0, len(record.sequence), line_width):
            lines.append(record.sequence[i:i + line_width])
    return "\n".join(lines) + "\n"


def to_structure_text(records: list[ProteinRecord]) -> str:
    """Render annotated records in the three-line structure format."""
    lines = []
    for record in records:
        if record.annotation is None:
            raise SequenceError(f"Record {record.id} has no annotation")
        lines.append(record.header or f">{record.id}")
        lines.append(record.sequence)
        lines.append(record.annotation)
    return "\n".join(lines) + "\n"
