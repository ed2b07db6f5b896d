"""
Tests for the refinement pipeline, single proteins and batches.
"""

from unittest import mock

import pytest

from tmrefine import predict
from tmrefine.core.models import Label, ProteinRecord
from tmrefine.core.profile import ProfileError, profile_from_sequence, read_pssm
from tmrefine.pipeline import PipelineConfig, PredictionMode, TopologyPipeline
from tmrefine.predictors.heuristic import HydropathyResidueScorer
from tmrefine.processing.boundaries import BoundaryConfig
from tests.conftest import (
    GOOD_ANNOTATION,
    SINGLE_TM,
    SOLUBLE,
    FailingSegmentScorer,
    FixedResidueScorer,
    FixedTopologyScorer,
    FunctionSegmentScorer,
    exact_window_scorer,
    flat_profile,
    write_pssm,
)


TOY_SEQUENCE = "MAAAAAAAAAAAAAAAAAAM"


def _toy_pipeline(p_inside=0.8, segment=None):
    """Residue scores favour a helix over positions 2-18 of TOY_SEQUENCE."""
    tmh = [900 if 2 <= i <= 18 else 100 for i in range(20)]
    sol = [100 if 2 <= i <= 18 else 900 for i in range(20)]
    return TopologyPipeline(
        residue_scorer=FixedResidueScorer(sol, tmh),
        segment_scorer=segment or FunctionSegmentScorer(exact_window_scorer(2, 18)),
        topology_scorer=FixedTopologyScorer(p_inside),
    )


class TestPipelineConfig:
    def test_defaults(self):
        config = PipelineConfig()
        assert config.smoothing_window == 5
        assert config.weights.sol == 185
        assert config.boundary.max_rounds == 5
        assert config.topology.cutoff == 0.45

    def test_from_dict(self):
        config = PipelineConfig.from_dict({"min_helix_length": 9, "boundary": {"cutoff": 0.3}})
        assert config.min_helix_length == 9
        assert config.boundary.cutoff == 0.3
        assert config.boundary.helix_min_size == 17

    def test_unknown_keys(self):
        with pytest.raises(ValueError, match="Unknown pipeline options"):
            PipelineConfig.from_dict({"window": 3})
        with pytest.raises(ValueError, match="Unknown boundary options"):
            PipelineConfig.from_dict({"boundary": {"shift": 3}})

    def test_even_window_rejected(self):
        with pytest.raises(ValueError):
            PipelineConfig(smoothing_window=4)

    def test_round_trip(self):
        config = PipelineConfig(boundary=BoundaryConfig(cutoff=0.2))
        assert PipelineConfig.from_dict(config.to_dict()) == config


class TestFullPrediction:
    """End-to-end behaviour with stub oracles."""

    def test_toy_helix(self):
        record = ProteinRecord(id="toy", sequence=TOY_SEQUENCE)
        result = _toy_pipeline().predict(record)

        assert result.success
        assert result.is_transmembrane
        assert not result.has_signal_peptide
        assert result.labels == "11" + "H" * 17 + "2"
        assert all(result.confidence[i] > 0 for i in range(2, 19))
        assert result.confidence[0] == 0
        assert result.segment_scores[2] == 900
        assert result.topology_raw == 800
        assert result.raw_scores.tmh[2] == 900
        assert result.runtime_seconds >= 0

    def test_outside_start(self):
        result = _toy_pipeline(p_inside=0.1).predict(ProteinRecord(id="toy", sequence=TOY_SEQUENCE))
        assert result.labels == "22" + "H" * 17 + "1"

    def test_refinement_moves_boundary(self):
        pipeline = _toy_pipeline(segment=FunctionSegmentScorer(exact_window_scorer(1, 17)))
        result = pipeline.predict(ProteinRecord(id="toy", sequence=TOY_SEQUENCE))
        assert result.labels == "1" + "H" * 17 + "22"

    def test_helix_deleted_by_refinement(self):
        pipeline = TopologyPipeline(
            residue_scorer=_toy_pipeline().residue_scorer,
            segment_scorer=FunctionSegmentScorer(lambda s, e: 0.1),
            topology_scorer=FixedTopologyScorer(),
            config=PipelineConfig(boundary=BoundaryConfig(cutoff=0.5)),
        )
        result = pipeline.predict(ProteinRecord(id="toy", sequence=TOY_SEQUENCE))

        assert result.success
        assert not result.is_transmembrane
        assert result.labels == "N" * 20
        assert result.topology_raw is None

    def test_signal_peptide(self):
        sig = [900 if i < 6 else 0 for i in range(30)]
        sol = [50 if i < 6 else 900 for i in range(30)]
        tmh = [50] * 30
        pipeline = TopologyPipeline(
            residue_scorer=FixedResidueScorer(sol, tmh, sig),
            segment_scorer=FunctionSegmentScorer(lambda s, e: 0.5),
            topology_scorer=FixedTopologyScorer(),
        )
        result = pipeline.predict(ProteinRecord(id="sp", sequence="A" * 30))

        assert result.has_signal_peptide
        assert not result.is_transmembrane
        assert result.labels.startswith("SSSSSS")

    def test_rule_based_defaults(self, single_tm_record, single_tm_profile):
        result = TopologyPipeline().predict(single_tm_record, single_tm_profile)

        assert result.success
        assert result.is_transmembrane
        assert result.n_helices >= 1
        runs = [s.label for s in result.segments() if s.label in (Label.INSIDE, Label.OUTSIDE)]
        assert all(a is not b for a, b in zip(runs, runs[1:]))

    def test_soluble_protein(self):
        result = TopologyPipeline().predict(ProteinRecord(id="sol", sequence=SOLUBLE))
        assert result.success
        assert not result.is_transmembrane
        assert "H" not in result.labels

    def test_high_level_predict(self, single_tm_record):
        result = predict(single_tm_record)
        assert result.success
        assert result.mode == "full"


class TestFailures:
    """Per-protein failures are reported, not raised."""

    def test_profile_mismatch(self):
        result = _toy_pipeline().predict(ProteinRecord(id="toy", sequence=TOY_SEQUENCE), flat_profile(19))
        assert not result.success
        assert "length" in result.error_message
        assert result.labels is None

    def test_oracle_failure(self):
        pipeline = _toy_pipeline(segment=FailingSegmentScorer())
        result = pipeline.predict(ProteinRecord(id="toy", sequence=TOY_SEQUENCE))
        assert not result.success
        assert "model crashed" in result.error_message

    def test_residue_oracle_exception_wrapped(self):
        with mock.patch.object(
            HydropathyResidueScorer, "_score_sequence_impl", side_effect=RuntimeError("weights not loaded")
        ):
            result = TopologyPipeline().predict(ProteinRecord(id="toy", sequence=TOY_SEQUENCE))
        assert not result.success
        assert "weights not loaded" in result.error_message

    def test_postprocess_needs_annotation(self):
        result = _toy_pipeline().predict(
            ProteinRecord(id="toy", sequence=TOY_SEQUENCE), mode=PredictionMode.POSTPROCESS
        )
        assert not result.success
        assert "annotation" in result.error_message


class TestPostProcessing:
    def _record(self):
        annotation = "NN" + "H" * 17 + "N"
        return ProteinRecord(id="ann", sequence=TOY_SEQUENCE, annotation=annotation)

    def test_postprocess(self):
        pipeline = _toy_pipeline(segment=FunctionSegmentScorer(exact_window_scorer(1, 17)))
        result = pipeline.predict(self._record(), mode=PredictionMode.POSTPROCESS)

        assert result.success
        assert result.labels == "1" + "H" * 17 + "22"
        assert result.confidence is None
        assert result.raw_scores is None
        assert result.segment_scores[1] == 900

    def test_topology_only_keeps_boundaries(self):
        pipeline = _toy_pipeline(segment=FunctionSegmentScorer(exact_window_scorer(1, 17)))
        result = pipeline.predict(self._record(), mode=PredictionMode.TOPOLOGY_ONLY)

        assert result.labels == "11" + "H" * 17 + "2"
        assert result.segment_scores is None
        assert result.mode == "topology_only"

    def test_signal_annotation_forces_outside(self):
        record = ProteinRecord(id="ann", sequence="A" * 30, annotation="SSS" + "N" * 7 + "H" * 17 + "NNN")
        pipeline = TopologyPipeline(
            segment_scorer=FunctionSegmentScorer(lambda s, e: 0.5),
            topology_scorer=FixedTopologyScorer(0.99),
        )
        result = pipeline.predict(record, flat_profile(30), mode=PredictionMode.TOPOLOGY_ONLY)

        assert result.has_signal_peptide
        assert result.labels == "SSS" + "2" * 7 + "H" * 17 + "111"

    def test_annotation_sides_replaced(self):
        record = ProteinRecord(id="ann", sequence="A" * 30, annotation=GOOD_ANNOTATION)
        pipeline = TopologyPipeline(topology_scorer=FixedTopologyScorer(0.1))
        result = pipeline.predict(record, flat_profile(30), mode=PredictionMode.TOPOLOGY_ONLY)
        assert result.labels == "2222" + "H" * 7 + "1" * 7 + "H" * 7 + "22222"


class TestBatch:
    def _records(self):
        return [
            ProteinRecord(id="a", sequence=TOY_SEQUENCE),
            ProteinRecord(id="b", sequence=TOY_SEQUENCE),
            ProteinRecord(id="c", sequence=TOY_SEQUENCE),
        ]

    def test_order_and_progress(self):
        progress = []
        results = _toy_pipeline().predict_batch(
            self._records(), progress_callback=lambda done, total: progress.append((done, total))
        )
        assert [r.protein_id for r in results] == ["a", "b", "c"]
        assert progress[-1] == (3, 3)

    def test_threaded(self):
        results = _toy_pipeline().predict_batch(self._records(), max_workers=3)
        assert [r.protein_id for r in results] == ["a", "b", "c"]
        assert all(r.success for r in results)

    def test_missing_profile_isolated(self):
        profiles = {"a": profile_from_sequence(TOY_SEQUENCE), "c": flat_profile(5)}
        results = _toy_pipeline().predict_batch(self._records(), profiles=profiles)

        assert results[0].success
        assert not results[1].success
        assert "No profile for b" in results[1].error_message
        assert not results[2].success

    def test_unreadable_pssm_isolated(self, tmp_path):
        write_pssm(tmp_path / "a.pssm", TOY_SEQUENCE)
        (tmp_path / "b.pssm").write_bytes(b"\xff\xfe garbage \x80\x81\n")
        write_pssm(tmp_path / "c.pssm", TOY_SEQUENCE)

        def loader(record):
            return read_pssm(tmp_path / f"{record.id}.pssm", record.sequence)

        results = _toy_pipeline().predict_batch(self._records(), profiles=loader)
        assert [r.success for r in results] == [True, False, True]
        assert "Could not read" in results[1].error_message

    def test_loader_os_error_isolated(self):
        def loader(record):
            if record.id == "a":
                raise PermissionError(f"permission denied: {record.id}.pssm")
            return profile_from_sequence(record.sequence)

        results = _toy_pipeline().predict_batch(self._records(), profiles=loader, max_workers=2)
        assert [r.success for r in results] == [False, True, True]
        assert "permission denied" in results[0].error_message

    def test_profile_loader(self):
        def loader(record):
            if record.id == "b":
                raise ProfileError("broken pssm")
            return profile_from_sequence(record.sequence)

        results = _toy_pipeline().predict_batch(self._records(), profiles=loader)
        assert [r.success for r in results] == [True, False, True]
