"""
Scoring oracles for TMRefine.

The refinement engine consumes three scoring contracts (residue, segment and
topology scorers). Rule-based implementations are registered on import;
model-backed implementations are loaded from joblib files.
"""

from .base import (
    BaseOracle,
    OracleConfig,
    OracleError,
    OracleRole,
    OracleType,
    OracleUnavailableError,
    ResidueScorer,
    SegmentScorer,
    TopologyScorer,
    get_oracle,
    list_oracles,
    register_oracle,
)
from .classifiers import (
    ResidueClassifier,
    SegmentClassifier,
    TopologyClassifier,
    load_classifiers,
)
from .features import SideFeatures, segment_features, side_feature_vector
from .heuristic import (
    HydropathyResidueScorer,
    HydropathySegmentScorer,
    PositiveInsideScorer,
)

__all__ = [
    "BaseOracle",
    "OracleConfig",
    "OracleError",
    "OracleRole",
    "OracleType",
    "OracleUnavailableError",
    "ResidueScorer",
    "SegmentScorer",
    "TopologyScorer",
    "get_oracle",
    "list_oracles",
    "register_oracle",
    "ResidueClassifier",
    "SegmentClassifier",
    "TopologyClassifier",
    "load_classifiers",
    "SideFeatures",
    "segment_features",
    "side_feature_vector",
    "HydropathyResidueScorer",
    "HydropathySegmentScorer",
    "PositiveInsideScorer",
]
