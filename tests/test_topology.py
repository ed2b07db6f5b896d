"""
Tests for membrane-side assignment and topology training examples.
"""

import logging

import pytest

from tmrefine.core.models import Label, ProteinRecord, TopologySide, labels_to_string, parse_labels
from tmrefine.core.profile import ProfileError
from tmrefine.processing.consistency import TopologyInconsistencyError
from tmrefine.processing.topology import (
    TopologyAssigner,
    TopologyConfig,
    aggregate_side_features,
    build_windows,
    decide_start_side,
    propagate_sides,
    topology_training_example,
    topology_training_set,
)
from tests.conftest import (
    BAD_ANNOTATION,
    GOOD_ANNOTATION,
    FixedTopologyScorer,
    flat_profile,
)


ONE_HELIX = "N" * 10 + "H" * 20 + "N" * 20
TWO_HELICES = "N" * 10 + "H" * 20 + "N" * 10 + "H" * 20 + "N" * 20


class TestBuildWindows:
    """Tests for observation windows flanking helices."""

    def test_single_helix(self):
        windows = build_windows(parse_labels(ONE_HELIX))
        assert [(w.start, w.end, w.side) for w in windows] == [(0, 18, 0), (21, 44, 1)]

    def test_internal_loop_has_two_windows_of_same_parity(self):
        windows = build_windows(parse_labels(TWO_HELICES))
        assert [(w.start, w.end, w.side) for w in windows] == [
            (0, 18, 0),
            (21, 44, 1),
            (25, 48, 1),
            (51, 74, 0),
        ]

    def test_windows_clipped_to_sequence(self):
        labels = parse_labels("H" * 10 + "NN")
        windows = build_windows(labels, TopologyConfig(near_offset=8, far_offset=15))
        assert windows[0].start == 0
        assert windows[-1].end == 11

    def test_no_helix(self):
        assert build_windows(parse_labels("NNNN")) == []


class TestAggregateSideFeatures:
    def test_counts_per_side(self):
        labels = parse_labels(ONE_HELIX)
        profile = flat_profile(50)
        side_a, side_b = aggregate_side_features(profile, labels, build_windows(labels))
        assert side_a.n_positions == 19
        assert side_b.n_positions == 24
        assert side_a.conserved.sum() == 19 * 20

    def test_unknown_residues_skipped(self):
        labels = parse_labels("U" + ONE_HELIX[1:])
        side_a, _ = aggregate_side_features(flat_profile(50), labels, build_windows(labels))
        assert side_a.n_positions == 18

    def test_start_position_clips(self):
        labels = parse_labels(ONE_HELIX)
        side_a, _ = aggregate_side_features(flat_profile(50), labels, build_windows(labels), 5)
        assert side_a.n_positions == 14

    def test_start_position_skips_windows(self):
        """Side A is the parity of the first window still in range."""
        labels = parse_labels(ONE_HELIX)
        side_a, side_b = aggregate_side_features(flat_profile(50), labels, build_windows(labels), 20)
        assert side_a.n_positions == 24
        assert side_b.n_positions == 0


class TestSideDecision:
    def test_inside_above_cutoff(self):
        assert decide_start_side(0.45, False) is TopologySide.INSIDE
        assert decide_start_side(0.44, False) is TopologySide.OUTSIDE

    def test_signal_peptide_forces_outside(self):
        assert decide_start_side(0.99, True) is TopologySide.OUTSIDE

    def test_propagation_alternates(self):
        labels = propagate_sides(parse_labels("NNHHHNNHHHNN"), TopologySide.INSIDE)
        assert labels_to_string(labels) == "11HHH22HHH11"

    def test_propagation_keeps_signal_and_loops(self):
        labels = propagate_sides(parse_labels("SSNHHHNLLN"), TopologySide.OUTSIDE)
        assert labels_to_string(labels) == "SS2HHH1LL1"

    def test_propagation_overwrites_old_sides(self):
        labels = propagate_sides(parse_labels("22HH11"), TopologySide.INSIDE)
        assert labels_to_string(labels) == "11HH22"


class TestTopologyAssigner:
    def test_inside_start(self):
        scorer = FixedTopologyScorer(0.8)
        assignment = TopologyAssigner(scorer).assign(parse_labels(TWO_HELICES), flat_profile(80), False)

        assert assignment.start_side is TopologySide.INSIDE
        assert assignment.topology_raw == 800
        assert assignment.labels[0] is Label.INSIDE
        assert assignment.labels[35] is Label.OUTSIDE
        assert assignment.labels[-1] is Label.INSIDE
        assert len(scorer.seen) == 1

    def test_signal_peptide(self):
        labels = parse_labels("SSSSS" + ONE_HELIX[5:])
        assignment = TopologyAssigner(FixedTopologyScorer(0.9)).assign(labels, flat_profile(50), True)
        assert assignment.start_side is TopologySide.OUTSIDE
        assert labels_to_string(assignment.labels[:10]) == "SSSSS22222"
        assert assignment.labels[-1] is Label.INSIDE

    def test_sides_alternate_across_every_helix(self):
        assignment = TopologyAssigner(FixedTopologyScorer(0.2)).assign(
            parse_labels(TWO_HELICES), flat_profile(80), False
        )
        sides = [run.label for run in _soluble_runs(assignment.labels)]
        assert all(a is not b for a, b in zip(sides, sides[1:]))


def _soluble_runs(labels):
    from tmrefine.core.segments import find_runs

    return [run for run in find_runs(labels) if run.label.side is not None]


class TestTrainingExamples:
    """Tests for training examples built from annotated proteins."""

    def _record(self, annotation, pid="p"):
        return ProteinRecord(id=pid, sequence="A" * len(annotation), annotation=annotation)

    def test_consistent_annotation(self):
        example = topology_training_example(self._record(GOOD_ANNOTATION), flat_profile(30))
        assert example.side is TopologySide.INSIDE
        assert example.target == 0
        assert example.start_position == 0
        assert example.features.shape == (86,)

    def test_outside_anchor(self):
        annotation = "NN2" + GOOD_ANNOTATION[3:].replace("1", "N")
        example = topology_training_example(self._record(annotation), flat_profile(30))
        assert example.side is TopologySide.OUTSIDE
        assert example.target == 1
        assert example.start_position == 0

    def test_inconsistent_annotation(self):
        with pytest.raises(TopologyInconsistencyError) as exc:
            topology_training_example(self._record(BAD_ANNOTATION), flat_profile(30))
        assert exc.value.position == 14

    def test_no_side(self):
        annotation = GOOD_ANNOTATION.replace("1", "N")
        assert topology_training_example(self._record(annotation), flat_profile(30)) is None

    def test_needs_annotation(self):
        with pytest.raises(ValueError, match="no annotation"):
            topology_training_example(ProteinRecord(id="p", sequence="AAAA"), flat_profile(4))

    def test_profile_mismatch(self):
        with pytest.raises(ProfileError):
            topology_training_example(self._record(GOOD_ANNOTATION), flat_profile(29))

    def test_training_set_skips_bad_records(self, caplog):
        records = [
            self._record(GOOD_ANNOTATION, "good"),
            self._record(BAD_ANNOTATION, "bad"),
            self._record(GOOD_ANNOTATION.replace("1", "N"), "noside"),
            self._record(GOOD_ANNOTATION, "missing"),
        ]
        profiles = {pid: flat_profile(30) for pid in ("good", "bad", "noside")}

        with caplog.at_level(logging.WARNING, logger="tmrefine"):
            examples = topology_training_set(records, profiles)

        assert [e.protein_id for e in examples] == ["good"]
        assert "Invalid topology" in caplog.text
        assert "No profile for missing" in caplog.text

    def test_training_set_with_callable(self):
        records = [self._record(GOOD_ANNOTATION, "a"), self._record(GOOD_ANNOTATION, "b")]
        examples = topology_training_set(records, lambda record: flat_profile(len(record.sequence)))
        assert len(examples) == 2
