"""
Refinement pipeline: from oracle scores to a consistent topology.

The pipeline wires the deterministic stages of ``tmrefine.processing`` to the
three scoring oracles and runs them per protein:

Full prediction
---------------
1. Residue scorer -> sol / tmh / sig tracks (x 1000)
2. Median smoothing of each track
3. Arbitration into soluble / helix / signal labels
4. Helix length filter (decides whether the protein is transmembrane)
5. Signal-peptide validation
6. Boundary refinement (transmembrane proteins only)
7. Side assignment (proteins still transmembrane after refinement)
8. Reliability index per helix

Post-processing
---------------
An existing annotation replaces steps 1-5; boundary refinement (skipped in
topology-only mode) and side assignment then run as above. No residue
scores exist in this mode, so no reliability is reported.

Failures of a single protein (malformed input, mismatching profile, oracle
errors) never escape ``predict``: they are logged with the protein id and
returned as a result with ``error_message`` set, so batches keep going.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .core.models import (
    ConservationProfile,
    Label,
    ProteinRecord,
    RawScores,
    TopologyResult,
    labels_to_string,
)
from .core.profile import ProfileError, check_profile, profile_from_sequence
from .core.sequence import SequenceError
from .predictors.base import (
    OracleConfig,
    OracleError,
    ResidueScorer,
    SegmentScorer,
    TopologyScorer,
)
from .predictors.classifiers import load_classifiers
from .predictors.heuristic import (
    HydropathyResidueScorer,
    HydropathySegmentScorer,
    PositiveInsideScorer,
)
from .processing.boundaries import BoundaryConfig, BoundaryRefiner
from .processing.confidence import DEFAULT_CONFIDENCE_OFFSET, assign_confidence
from .processing.consensus import (
    DEFAULT_MIN_HELIX_LENGTH,
    DEFAULT_SIGNAL_MIN_LENGTH,
    ArbiterWeights,
    arbitrate,
    filter_short_helices,
    is_transmembrane,
    validate_signal_peptide,
)
from .processing.smoothing import DEFAULT_WINDOW, median_filter
from .processing.topology import TopologyAssigner, TopologyConfig

logger = logging.getLogger(__name__)


class PredictionMode(str, Enum):
    """What the pipeline starts from."""
    FULL = "full"  # Residue scores from the residue oracle
    POSTPROCESS = "postprocess"  # Supplied annotation, refined and sided
    TOPOLOGY_ONLY = "topology_only"  # Supplied annotation, sided only


@dataclass(frozen=True)
class PipelineConfig:
    """
    Immutable configuration of all pipeline stages.

    Attributes:
        smoothing_window: Median filter width (odd)
        min_helix_length: Shortest helix kept after arbitration
        signal_min_length: Shortest signal run confirming a signal peptide
        confidence_offset: Offset added to the tmh - sol margin
        weights: Arbitration bias per track
        boundary: Boundary refinement parameters
        topology: Side assignment parameters
    """
    smoothing_window: int = DEFAULT_WINDOW
    min_helix_length: int = DEFAULT_MIN_HELIX_LENGTH
    signal_min_length: int = DEFAULT_SIGNAL_MIN_LENGTH
    confidence_offset: int = DEFAULT_CONFIDENCE_OFFSET
    weights: ArbiterWeights = field(default_factory=ArbiterWeights)
    boundary: BoundaryConfig = field(default_factory=BoundaryConfig)
    topology: TopologyConfig = field(default_factory=TopologyConfig)

    def __post_init__(self):
        if self.smoothing_window < 1 or self.smoothing_window % 2 == 0:
            raise ValueError(f"smoothing_window must be a positive odd number, got {self.smoothing_window}")
        if self.min_helix_length < 1:
            raise ValueError("min_helix_length must be at least 1")

    _NESTED = {"weights": ArbiterWeights, "boundary": BoundaryConfig, "topology": TopologyConfig}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PipelineConfig:
        """
        Build a configuration from (possibly partial) nested dicts.

        Example:
            >>> PipelineConfig.from_dict({"boundary": {"cutoff": 0.2}})

        Raises:
            ValueError: On unknown keys
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown pipeline options: {sorted(unknown)}")

        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            nested_cls = cls._NESTED.get(key)
            if nested_cls is not None and isinstance(value, Mapping):
                nested_known = {f.name for f in fields(nested_cls)}
                bad = set(value) - nested_known
                if bad:
                    raise ValueError(f"Unknown {key} options: {sorted(bad)}")
                value = nested_cls(**value)
            kwargs[key] = value

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


ProfileSource = Union[
    Mapping[str, ConservationProfile],
    Callable[[ProteinRecord], ConservationProfile],
]


class TopologyPipeline:
    """
    Per-protein refinement pipeline.

    Oracles default to the rule-based implementations, so a pipeline works
    without any trained model.

    Usage:
        >>> pipeline = TopologyPipeline()
        >>> result = pipeline.predict(record, profile)
        >>> print(result.labels)
        >>>
        >>> # Model-backed oracles
        >>> pipeline = TopologyPipeline.from_models_dir("models/")
    """

    def __init__(
        self,
        residue_scorer: Optional[ResidueScorer] = None,
        segment_scorer: Optional[SegmentScorer] = None,
        topology_scorer: Optional[TopologyScorer] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.config = config or PipelineConfig()
        self.residue_scorer = residue_scorer or HydropathyResidueScorer()
        self.segment_scorer = segment_scorer or HydropathySegmentScorer()
        self.topology_scorer = topology_scorer or PositiveInsideScorer()

        self.refiner = BoundaryRefiner(self.segment_scorer, self.config.boundary)
        self.assigner = TopologyAssigner(self.topology_scorer, self.config.topology)

    @classmethod
    def from_models_dir(
        cls,
        models_dir: Union[str, Path],
        config: Optional[PipelineConfig] = None,
        oracle_config: Optional[OracleConfig] = None,
    ) -> TopologyPipeline:
        """
        Pipeline with model-backed oracles loaded from a directory.

        Raises:
            OracleUnavailableError: If a model file is missing or invalid
        """
        residue, segment, topology = load_classifiers(models_dir, oracle_config)
        return cls(residue, segment, topology, config)

    def __repr__(self) -> str:
        return (
            f"TopologyPipeline(residue={self.residue_scorer.name}, "
            f"segment={self.segment_scorer.name}, topology={self.topology_scorer.name})"
        )

    # -------------------------------------------------------------------------
    # Single protein
    # -------------------------------------------------------------------------

    def predict(
        self,
        record: ProteinRecord,
        profile: Optional[ConservationProfile] = None,
        mode: PredictionMode = PredictionMode.FULL,
    ) -> TopologyResult:
        """
        Run the pipeline on one protein.

        Args:
            record: Protein (with annotation for the post-processing modes)
            profile: Conservation profile; a BLOSUM62 single-sequence profile
                is used if None
            mode: Operating mode

        Returns:
            TopologyResult; ``error_message`` is set if the protein failed
        """
        start_time = time.time()

        try:
            if profile is None:
                logger.debug(f"{record.id}: no profile given, using single-sequence profile")
                profile = profile_from_sequence(record.sequence)
            check_profile(profile, record.sequence, record.id)

            if mode is PredictionMode.FULL:
                result = self._predict_full(record, profile)
            else:
                result = self._postprocess(record, profile, mode)

        except (ProfileError, SequenceError, OracleError, ValueError) as e:
            logger.error(f"Prediction failed for {record.id}: {e}")
            return self._failed_result(record, mode, str(e), time.time() - start_time)

        result.runtime_seconds = time.time() - start_time
        logger.info(
            f"{record.id}: {result.n_helices} helices, "
            f"signal peptide={result.has_signal_peptide} ({result.runtime_seconds:.2f}s)"
        )
        return result

    def _predict_full(self, record: ProteinRecord, profile: ConservationProfile) -> TopologyResult:
        cfg = self.config

        raw = self.residue_scorer.score_sequence(record.sequence, profile)
        smoothed = RawScores(
            sol=median_filter(raw.sol, cfg.smoothing_window).tolist(),
            tmh=median_filter(raw.tmh, cfg.smoothing_window).tolist(),
            sig=median_filter(raw.sig, cfg.smoothing_window).tolist(),
        )

        arbitration = arbitrate(smoothed.sol, smoothed.tmh, smoothed.sig, cfg.weights)
        labels, tm = filter_short_helices(arbitration.labels, cfg.min_helix_length)
        labels, has_signal = validate_signal_peptide(
            labels, arbitration.last_signal_index, cfg.signal_min_length
        )

        labels, segment_scores, tm, topology_raw = self._refine_and_side(
            record, profile, labels, tm, has_signal, refine=True
        )

        confidence = assign_confidence(
            labels, smoothed.tmh, smoothed.sol, segment_scores, cfg.confidence_offset
        )

        return TopologyResult(
            protein_id=record.id,
            header=record.header,
            sequence=record.sequence,
            mode=PredictionMode.FULL.value,
            labels=labels_to_string(labels),
            raw_scores=raw,
            smoothed_scores=smoothed,
            segment_scores=segment_scores,
            confidence=confidence,
            topology_raw=topology_raw,
            is_transmembrane=tm,
            has_signal_peptide=has_signal,
        )

    def _postprocess(
        self,
        record: ProteinRecord,
        profile: ConservationProfile,
        mode: PredictionMode,
    ) -> TopologyResult:
        if record.annotation is None:
            raise ValueError(f"Post-processing needs an annotation for {record.id}")

        labels = record.labels()
        tm = is_transmembrane(labels)
        has_signal = any(label is Label.SIGNAL for label in labels)
        refine = mode is PredictionMode.POSTPROCESS

        labels, segment_scores, tm, topology_raw = self._refine_and_side(
            record, profile, labels, tm, has_signal, refine=refine
        )

        return TopologyResult(
            protein_id=record.id,
            header=record.header,
            sequence=record.sequence,
            mode=mode.value,
            labels=labels_to_string(labels),
            segment_scores=segment_scores if refine else None,
            topology_raw=topology_raw,
            is_transmembrane=tm,
            has_signal_peptide=has_signal,
        )

    def _refine_and_side(
        self,
        record: ProteinRecord,
        profile: ConservationProfile,
        labels: list[Label],
        tm: bool,
        has_signal: bool,
        refine: bool,
    ) -> tuple[list[Label], list[int], bool, Optional[int]]:
        segment_scores = [0] * len(labels)
        topology_raw = None

        if tm and refine:
            refinement = self.refiner.refine(labels, profile, record.id)
            labels = refinement.labels
            segment_scores = refinement.segment_scores
            tm = is_transmembrane(labels)
            if not tm:
                logger.info(f"{record.id}: no helix left after refinement")

        if tm:
            assignment = self.assigner.assign(labels, profile, has_signal, record.id)
            labels = assignment.labels
            topology_raw = assignment.topology_raw

        return labels, segment_scores, tm, topology_raw

    @staticmethod
    def _failed_result(
        record: ProteinRecord,
        mode: PredictionMode,
        message: str,
        runtime: float,
    ) -> TopologyResult:
        return TopologyResult(
            protein_id=record.id,
            header=record.header,
            sequence=record.sequence,
            mode=mode.value,
            runtime_seconds=runtime,
            error_message=message,
        )

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def _predict_from_source(
        self,
        record: ProteinRecord,
        profiles: Optional[ProfileSource],
        mode: PredictionMode,
    ) -> TopologyResult:
        profile = None
        if profiles is not None:
            try:
                if callable(profiles):
                    profile = profiles(record)
                elif record.id in profiles:
                    profile = profiles[record.id]
                else:
                    raise ProfileError(f"No profile for {record.id}")
            except (ProfileError, OSError, ValueError) as e:
                logger.error(f"Prediction failed for {record.id}: {e}")
                return self._failed_result(record, mode, str(e), 0.0)

        return self.predict(record, profile, mode)

    def predict_batch(
        self,
        records: Iterable[ProteinRecord],
        profiles: Optional[ProfileSource] = None,
        mode: PredictionMode = PredictionMode.FULL,
        max_workers: int = 1,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> list[TopologyResult]:
        """
        Run the pipeline on many proteins.

        Proteins are independent; with ``max_workers > 1`` they are processed
        on a thread pool. Oracles must therefore be stateless.

        Args:
            records: Proteins
            profiles: Profiles by protein id, a callable loading one, or
                None for single-sequence profiles
            mode: Operating mode
            max_workers: Worker threads (1 = sequential)
            progress_callback: Optional callback(completed, total)

        Returns:
            One result per record, in input order (failed proteins carry
            ``error_message``)
        """
        records = list(records)
        total = len(records)
        results: list[Optional[TopologyResult]] = [None] * total

        if max_workers <= 1:
            for i, record in enumerate(records):
                results[i] = self._predict_from_source(record, profiles, mode)
                if progress_callback:
                    progress_callback(i + 1, total)
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures: dict[Future, int] = {
                    executor.submit(self._predict_from_source, record, profiles, mode): i
                    for i, record in enumerate(records)
                }
                completed = 0
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
                    completed += 1
                    if progress_callback:
                        progress_callback(completed, total)

        n_failed = sum(1 for r in results if r is not None and not r.success)
        if n_failed:
            logger.warning(f"{n_failed} of {total} proteins failed")

        return results
