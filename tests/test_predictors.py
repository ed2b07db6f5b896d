"""
Tests for scoring oracles: contracts, registry, caching, rule-based and
model-backed implementations, and feature construction.
"""

import joblib
import numpy as np
import pytest
from sklearn.linear_model import LogisticRegression

from tmrefine.core.models import ConservationProfile
from tmrefine.core.profile import profile_from_sequence
from tmrefine.predictors.base import (
    OracleConfig,
    OracleError,
    OracleRole,
    OracleType,
    OracleUnavailableError,
    get_oracle,
    list_oracles,
)
from tmrefine.predictors.classifiers import (
    ResidueClassifier,
    SegmentClassifier,
    TopologyClassifier,
    load_classifiers,
    load_estimator,
)
from tmrefine.predictors.features import (
    N_RESIDUE_FEATURES,
    N_SEGMENT_FEATURES,
    N_SIDE_FEATURES,
    OUT_OF_RANGE_FLAG,
    SideFeatures,
    global_composition,
    residue_feature_matrix,
    residue_window_features,
    segment_features,
    side_feature_vector,
)
from tmrefine.predictors.heuristic import (
    SIGNAL_REGION,
    HydropathyResidueScorer,
    HydropathySegmentScorer,
    PositiveInsideScorer,
    window_hydropathy,
)
from tests.conftest import SINGLE_TM, FixedResidueScorer, FunctionSegmentScorer, flat_profile


class ConstantEstimator:
    """Minimal estimator with fixed class probabilities."""

    def __init__(self, probabilities, classes):
        self.probabilities = np.asarray(probabilities, dtype=float)
        self.classes_ = np.asarray(classes)

    def predict_proba(self, X):
        return np.tile(self.probabilities, (len(X), 1))


def _sides(sequence_a, sequence_b):
    side_a, side_b = SideFeatures(), SideFeatures()
    profile_a = profile_from_sequence(sequence_a)
    profile_b = profile_from_sequence(sequence_b)
    for i in range(len(sequence_a)):
        side_a.add_position(profile_a, i)
    for i in range(len(sequence_b)):
        side_b.add_position(profile_b, i)
    return side_a, side_b


# =============================================================================
# Registry
# =============================================================================

class TestRegistry:
    def test_rule_based_oracles_registered(self):
        names = {info["name"] for info in list_oracles()}
        assert {"Hydropathy", "HydropathySegment", "PositiveInside"} <= names

    def test_filter_by_role(self):
        infos = list_oracles(role=OracleRole.TOPOLOGY)
        assert [info["name"] for info in infos] == ["PositiveInside"]

    def test_get_oracle(self):
        oracle = get_oracle("Hydropathy")
        assert isinstance(oracle, HydropathyResidueScorer)
        assert oracle.oracle_type is OracleType.RULE_BASED

    def test_unknown_oracle(self):
        with pytest.raises(KeyError, match="not found"):
            get_oracle("NoSuchOracle")

    def test_info(self):
        info = PositiveInsideScorer().get_info()
        assert info["role"] == "topology"
        assert info["type"] == "rule_based"
        assert "PositiveInside" in repr(PositiveInsideScorer())


# =============================================================================
# Contracts
# =============================================================================

class TestResidueScorerContract:
    def test_track_length_checked(self):
        scorer = FixedResidueScorer([0, 0, 0], [1000, 1000, 1000])
        with pytest.raises(OracleError, match="produced 3 scores"):
            scorer.score_sequence("MKTLL", flat_profile(5))

    def test_out_of_range_wrapped(self):
        scorer = FixedResidueScorer([0, 2000], [0, 0])
        with pytest.raises(OracleError, match="residue scoring failed"):
            scorer.score_sequence("MK", flat_profile(2))

    def test_cache(self, tmp_path):
        config = OracleConfig(use_cache=True, cache_dir=tmp_path / "cache")
        scorer = HydropathyResidueScorer(config)
        profile = profile_from_sequence(SINGLE_TM)

        first = scorer.score_sequence(SINGLE_TM, profile)
        second = scorer.score_sequence(SINGLE_TM, profile)

        assert first == second
        assert (tmp_path / "cache").exists()
        scorer.clear_cache()

    def test_cache_disabled_by_default(self):
        assert HydropathyResidueScorer()._cache is None


class TestSegmentScorerContract:
    def test_invalid_range(self):
        scorer = FunctionSegmentScorer(lambda s, e: 0.5)
        with pytest.raises(OracleError, match="invalid segment"):
            scorer.score_segment(flat_profile(10), 5, 10)
        with pytest.raises(OracleError, match="invalid segment"):
            scorer.score_segment(flat_profile(10), 6, 5)

    def test_probability_range(self):
        scorer = FunctionSegmentScorer(lambda s, e: 1.5)
        with pytest.raises(OracleError, match="outside"):
            scorer.score_segment(flat_profile(10), 0, 5)


# =============================================================================
# Rule-based oracles
# =============================================================================

class TestHydropathyOracles:
    """Biological sanity of the rule-based oracles."""

    def test_window_hydropathy(self):
        values = window_hydropathy("LLLLL", 3)
        assert values == pytest.approx([3.8] * 5)

    def test_residue_scores(self):
        scores = HydropathyResidueScorer().score_sequence(SINGLE_TM, profile_from_sequence(SINGLE_TM))
        centre = 40 + 11

        assert scores.tmh[centre] > 900
        assert scores.sol[5] > 900
        assert all(v == 0 for v in scores.sig[SIGNAL_REGION:])
        for i in range(len(SINGLE_TM)):
            total = scores.sol[i] + scores.tmh[i] + scores.sig[i]
            assert 997 <= total <= 1000

    def test_segment_scores(self):
        profile = profile_from_sequence(SINGLE_TM)
        scorer = HydropathySegmentScorer()

        helix = scorer.score_segment(profile, 40, 61)
        soluble = scorer.score_segment(profile, 0, 21)
        short = scorer.score_segment(profile, 45, 50)

        assert helix > 0.9
        assert soluble < 0.5
        assert short < helix

    def test_positive_inside(self):
        scorer = PositiveInsideScorer()
        side_k, side_d = _sides("KKKK", "DDDD")

        assert scorer.score_sides(flat_profile(4), side_k, side_d) > 0.9
        assert scorer.score_sides(flat_profile(4), side_d, side_k) < 0.1


# =============================================================================
# Model-backed oracles
# =============================================================================

class TestClassifiers:
    def test_residue_classifier(self):
        estimator = ConstantEstimator([0.25, 0.5, 0.25], [0, 1, 2])
        sequence = "A" * 50
        scores = ResidueClassifier(estimator).score_sequence(sequence, flat_profile(50))

        assert scores.sol[0] == 250
        assert scores.tmh[0] == 500
        assert scores.sig[0] == 250
        assert scores.sig[SIGNAL_REGION] == 0

    def test_class_order_from_estimator(self):
        estimator = ConstantEstimator([0.125, 0.5, 0.375], [2, 1, 0])
        scores = ResidueClassifier(estimator).score_sequence("AAAA", flat_profile(4))
        assert scores.sol[0] == 375
        assert scores.sig[0] == 125

    def test_segment_classifier_sklearn(self):
        profile = profile_from_sequence(SINGLE_TM)
        X = np.vstack([
            segment_features(profile, 40, 61),
            segment_features(profile, 0, 21),
            segment_features(profile, 42, 59),
            segment_features(profile, 62, 80),
        ])
        y = np.array([1, 0, 1, 0])
        model = LogisticRegression().fit(X, y)

        oracle = SegmentClassifier(model)
        assert oracle.oracle_type is OracleType.MACHINE_LEARNING
        assert oracle.score_segment(profile, 40, 61) > oracle.score_segment(profile, 0, 21)

    def test_topology_classifier(self):
        estimator = ConstantEstimator([0.75, 0.25], [0, 1])
        side_a, side_b = _sides("KK", "DD")
        assert TopologyClassifier(estimator).score_sides(flat_profile(2), side_a, side_b) == 0.75

    def test_missing_class(self):
        estimator = ConstantEstimator([0.5, 0.5], [0, 1])
        with pytest.raises(OracleError):
            ResidueClassifier(estimator).score_sequence("AA", flat_profile(2))

    def test_estimator_without_predict_proba(self):
        with pytest.raises(OracleUnavailableError):
            SegmentClassifier(object())

    def test_load_with_version(self, tmp_path):
        path = tmp_path / "segment.joblib"
        joblib.dump({"model": ConstantEstimator([0.5, 0.5], [0, 1]), "version": "2.1"}, path)
        estimator, version = load_estimator(path)
        assert version == "2.1"
        assert SegmentClassifier.from_file(path).version == "2.1"

    def test_load_invalid(self, tmp_path):
        path = tmp_path / "bad.joblib"
        joblib.dump({"weights": [1, 2, 3]}, path)
        with pytest.raises(OracleUnavailableError, match="predict_proba"):
            load_estimator(path)

    def test_load_classifiers_missing(self, tmp_path):
        with pytest.raises(OracleUnavailableError, match="not found"):
            load_classifiers(tmp_path)

    def test_load_classifiers(self, tmp_path):
        joblib.dump(ConstantEstimator([0.25, 0.5, 0.25], [0, 1, 2]), tmp_path / "residue.joblib")
        joblib.dump(ConstantEstimator([0.5, 0.5], [0, 1]), tmp_path / "segment.joblib")
        joblib.dump(ConstantEstimator([0.5, 0.5], [0, 1]), tmp_path / "topology.joblib")

        residue, segment, topology = load_classifiers(tmp_path)
        assert residue.role is OracleRole.RESIDUE
        assert segment.role is OracleRole.SEGMENT
        assert topology.role is OracleRole.TOPOLOGY


# =============================================================================
# Features
# =============================================================================

class TestFeatures:
    def test_residue_window_size(self):
        profile = flat_profile(30)
        features = residue_window_features(profile, 15)
        assert features.shape == (N_RESIDUE_FEATURES,)

    def test_out_of_range_positions(self):
        features = residue_window_features(flat_profile(30), 0)
        # first window position lies 9 residues before the sequence start
        assert features[20] == OUT_OF_RANGE_FLAG
        assert not features[:20].any()

    def test_feature_matrix(self):
        matrix = residue_feature_matrix(flat_profile(12))
        assert matrix.shape == (12, N_RESIDUE_FEATURES)

    def test_global_composition(self):
        composition = global_composition(flat_profile(10))
        assert composition.shape == (40,)
        assert composition[0::2].sum() == pytest.approx(1.0)
        assert composition[1::2].sum() == 0.0

    def test_segment_features(self):
        features = segment_features(flat_profile(30), 5, 24)
        assert features.shape == (N_SEGMENT_FEATURES,)
        assert features[40] == 20

    def test_side_features(self):
        side_a, side_b = _sides("KKR", "DEE")
        assert side_a.conserved_positive > side_b.conserved_positive
        vector = side_feature_vector(side_a, side_b)
        assert vector.shape == (N_SIDE_FEATURES,)

    def test_empty_side(self):
        side = SideFeatures()
        assert side.positive_fractions() == (0.0, 0.0)
        assert side.conserved_composition().sum() == 0.0
