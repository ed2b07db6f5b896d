"""
Tests for sequence and structure-file parsing.
"""

from io import StringIO

import pytest

from tmrefine.core.sequence import (
    SequenceError,
    SequenceValidator,
    clean_sequence,
    normalize_annotation,
    parse_fasta,
    parse_structure_file,
    record_id,
    sequence_hash,
    to_fasta,
    to_structure_text,
)
from tmrefine.core.models import ProteinRecord


class TestSequenceValidator:
    def test_usable(self):
        assert SequenceValidator().problems("MKTLLLAVAV") == []
        assert SequenceValidator().check("p1", "MKXLL") == "MKXLL"

    def test_strict_rejects_ambiguity_codes(self):
        problems = SequenceValidator(strict=True).problems("MKXLLB")
        assert problems == ["unknown residue codes BX"]

    def test_length_limit(self):
        assert SequenceValidator(max_length=5).problems("MKTLLL")
        assert SequenceValidator(max_length=None).problems("MKTLLL" * 10000) == []

    def test_check_names_protein(self):
        with pytest.raises(SequenceError, match="p7: no residues"):
            SequenceValidator().check("p7", "")


class TestHelpers:
    def test_clean_sequence(self):
        assert clean_sequence(" mk tl\nl ") == "MKTLL"

    def test_record_id(self):
        assert record_id(">sp|P12345 some protein") == "sp"
        assert record_id(">Q9XYZ1 membrane protein") == "Q9XYZ1"
        assert record_id(">") == ""

    def test_normalize_annotation(self):
        assert normalize_annotation("..hhT12") == "NNHHN12"

    def test_sequence_hash_ignores_case_and_whitespace(self):
        assert sequence_hash("mktl l") == sequence_hash("MKTLL")


class TestParseFasta:
    def test_inline_string(self):
        records = list(parse_fasta(">p1 first\nMKTLL\nAVA\n>p2\nMSS\n"))
        assert [r.id for r in records] == ["p1", "p2"]
        assert records[0].sequence == "MKTLLAVA"
        assert records[0].header == ">p1 first"

    def test_file(self, tmp_path):
        path = tmp_path / "in.fasta"
        path.write_text(">p1\nMKTLL\n")
        records = list(parse_fasta(path))
        assert records[0].sequence == "MKTLL"

    def test_invalid_sequence(self):
        with pytest.raises(SequenceError, match="Rejected sequence of p1"):
            list(parse_fasta(">p1\nMK1LL\n"))

    def test_round_trip(self):
        records = [ProteinRecord(id="p1", header=">p1", sequence="MKTLL" * 20)]
        text = to_fasta(records, line_width=30)
        assert list(parse_fasta(text))[0].sequence == "MKTLL" * 20


class TestParseStructureFile:
    def test_records(self, structure_file):
        records = list(parse_structure_file(structure_file))
        assert len(records) == 2
        assert records[0].id == "good"
        assert records[0].annotation.startswith("11NNHHHH")

    def test_normalizes_annotation(self):
        records = list(parse_structure_file(">p\nMKTL\n..hh\n"))
        assert records[0].annotation == "NNHH"

    def test_length_mismatch(self):
        with pytest.raises(SequenceError, match="do not match"):
            list(parse_structure_file(">p\nMKTL\nNNH\n"))

    def test_truncated(self):
        with pytest.raises(SequenceError, match="Truncated"):
            list(parse_structure_file(StringIO(">p\nMKTL\n")))

    def test_to_structure_text(self):
        record = ProteinRecord(id="p", header=">p", sequence="MKTL", annotation="11HH")
        assert to_structure_text([record]) == ">p\nMKTL\n11HH\n"

    def test_to_structure_text_needs_annotation(self):
        with pytest.raises(SequenceError):
            to_structure_text([ProteinRecord(id="p", sequence="MKTL")])
