"""
Model-backed oracles wrapping fitted scikit-learn style estimators.

Any estimator exposing ``predict_proba`` can serve as an oracle; the class
order is read from ``estimator.classes_`` when present. Expected classes:

- residue model: 0 = soluble, 1 = transmembrane, 2 = signal peptide
- segment model: 0 = not TMH, 1 = TMH
- topology model: 0 = inside, 1 = outside

Models are stored with joblib, either as the bare estimator or as a dict with
``"model"`` and optional ``"version"`` keys. Training is not part of this
package.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

import joblib
import numpy as np

from ..core.models import ConservationProfile
from .base import (
    OracleConfig,
    OracleType,
    OracleUnavailableError,
    ResidueScorer,
    SegmentScorer,
    TopologyScorer,
)
from .features import (
    SideFeatures,
    residue_feature_matrix,
    segment_features,
    side_feature_vector,
)
from .heuristic import SIGNAL_REGION

logger = logging.getLogger(__name__)

# File names inside a models directory
RESIDUE_MODEL_FILE = "residue.joblib"
SEGMENT_MODEL_FILE = "segment.joblib"
TOPOLOGY_MODEL_FILE = "topology.joblib"

CLASS_SOLUBLE = 0
CLASS_TMH = 1
CLASS_SIGNAL = 2
CLASS_INSIDE = 0


def load_estimator(path: Union[str, Path]) -> tuple[Any, Optional[str]]:
    """
    Load a joblib model file.

    Returns:
        Tuple of (estimator, version or None)

    Raises:
        OracleUnavailableError: If the file is missing, unreadable, or holds
            no estimator with ``predict_proba``
    """
    path = Path(path)
    if not path.exists():
        raise OracleUnavailableError(f"Model file not found: {path}")

    try:
        data = joblib.load(path)
    except Exception as e:
        raise OracleUnavailableError(f"Could not load model file {path}: {e}") from e

    version = None
    if isinstance(data, dict):
        version = data.get("version")
        data = data.get("model")

    if data is None or not hasattr(data, "predict_proba"):
        raise OracleUnavailableError(f"{path} does not contain an estimator with predict_proba")

    logger.info(f"Loaded model from {path}")
    return data, version


def _class_column(estimator: Any, label: int) -> int:
    classes = getattr(estimator, "classes_", None)
    if classes is None:
        return label
    matches = np.flatnonzero(np.asarray(classes) == label)
    if len(matches) == 0:
        raise ValueError(f"Estimator has no class {label} (classes: {list(classes)})")
    return int(matches[0])


class _EstimatorOracle:
    """Shared construction of estimator-backed oracles."""

    oracle_type = OracleType.MACHINE_LEARNING
    model_file = ""

    def _init_estimator(self, estimator: Any, version: Optional[str]):
        if not hasattr(estimator, "predict_proba"):
            raise OracleUnavailableError(f"{type(estimator).__name__} has no predict_proba")
        self.estimator = estimator
        if version:
            self.version = str(version)

    @classmethod
    def from_file(cls, path: Union[str, Path], config: Optional[OracleConfig] = None):
        """Build the oracle from a joblib model file."""
        estimator, version = load_estimator(path)
        return cls(estimator, config=config, version=version)

    @classmethod
    def from_directory(cls, models_dir: Union[str, Path], config: Optional[OracleConfig] = None):
        """Build the oracle from the conventional file inside ``models_dir``."""
        return cls.from_file(Path(models_dir) / cls.model_file, config=config)


class ResidueClassifier(_EstimatorOracle, ResidueScorer):
    """Per-residue three-class model on +/-9 window features."""

    name = "ResidueClassifier"
    version = "1.0"
    description = "Fitted 3-class estimator on residue window features"
    model_file = RESIDUE_MODEL_FILE

    def __init__(
        self,
        estimator: Any,
        config: Optional[OracleConfig] = None,
        version: Optional[str] = None,
    ):
        self._init_estimator(estimator, version)
        super().__init__(config)

    def _score_sequence_impl(
        self,
        sequence: str,
        profile: ConservationProfile,
    ) -> tuple[list[int], list[int], list[int]]:
        features = residue_feature_matrix(profile)
        proba = np.asarray(self.estimator.predict_proba(features))

        sol = (1000 * proba[:, _class_column(self.estimator, CLASS_SOLUBLE)]).astype(int)
        tmh = (1000 * proba[:, _class_column(self.estimator, CLASS_TMH)]).astype(int)
        sig = (1000 * proba[:, _class_column(self.estimator, CLASS_SIGNAL)]).astype(int)
        sig[SIGNAL_REGION:] = 0

        return sol.tolist(), tmh.tolist(), sig.tolist()


class SegmentClassifier(_EstimatorOracle, SegmentScorer):
    """Binary TMH / not-TMH model on segment features."""

    name = "SegmentClassifier"
    version = "1.0"
    description = "Fitted binary estimator on segment composition features"
    model_file = SEGMENT_MODEL_FILE

    def __init__(
        self,
        estimator: Any,
        config: Optional[OracleConfig] = None,
        version: Optional[str] = None,
    ):
        self._init_estimator(estimator, version)
        super().__init__(config)

    def _score_segment_impl(self, profile: ConservationProfile, start: int, end: int) -> float:
        features = segment_features(profile, start, end).reshape(1, -1)
        proba = self.estimator.predict_proba(features)[0]
        return float(proba[_class_column(self.estimator, CLASS_TMH)])


class TopologyClassifier(_EstimatorOracle, TopologyScorer):
    """Binary inside / outside model on side features."""

    name = "TopologyClassifier"
    version = "1.0"
    description = "Fitted binary estimator on per-side composition features"
    model_file = TOPOLOGY_MODEL_FILE

    def __init__(
        self,
        estimator: Any,
        config: Optional[OracleConfig] = None,
        version: Optional[str] = None,
    ):
        self._init_estimator(estimator, version)
        super().__init__(config)

    def _score_sides_impl(
        self,
        profile: ConservationProfile,
        side_a: SideFeatures,
        side_b: SideFeatures,
    ) -> float:
        features = side_feature_vector(side_a, side_b).reshape(1, -1)
        proba = self.estimator.predict_proba(features)[0]
        return float(proba[_class_column(self.estimator, CLASS_INSIDE)])


def load_classifiers(
    models_dir: Union[str, Path],
    config: Optional[OracleConfig] = None,
) -> tuple[ResidueClassifier, SegmentClassifier, TopologyClassifier]:
    """
    Load all three model-backed oracles from a directory.

    Raises:
        OracleUnavailableError: If any model file is missing or invalid
    """
    return (
        ResidueClassifier.from_directory(models_dir, config),
        SegmentClassifier.from_directory(models_dir, config),
        TopologyClassifier.from_directory(models_dir, config),
    )
