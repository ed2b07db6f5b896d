"""
TMRefine: refinement of transmembrane helix and topology predictions.

Per-residue predictors of transmembrane helices produce noisy label strings:
helices that are too short or too long, two helices fused through a short
loop, boundaries shifted by a few residues, and no statement about which side
of the membrane each loop faces. TMRefine turns such raw scores (or an
existing annotation) into a consistent topology:

    - median smoothing and arbitration of soluble / helix / signal scores
    - a split / shift search over helix boundaries, driven by a segment scorer
    - membrane-side assignment from the residues flanking every helix,
      following the positive-inside rule by default
    - a per-helix reliability index

The three scorers are pluggable. Rule-based scorers (hydropathy windows and
the positive-inside rule) are registered on import; trained scikit-learn
models can be loaded from a directory of joblib files.

Key components:
    - core: Labels, records, profiles and parsing
    - predictors: Scoring oracles (rule-based and model-backed)
    - processing: Smoothing, arbitration, boundary refinement, topology
    - pipeline: Per-protein and batch orchestration
    - export: Segment reports, raw score tables, JSON and summaries
    - visualization: Score profile plots
    - cli: Command-line interface

Basic usage:
    >>> from tmrefine import predict
    >>> from tmrefine.core.models import ProteinRecord
    >>>
    >>> protein = ProteinRecord(id="query", sequence="MKTLLLAVAVLAAVLLAGCSSKEE")
    >>> result = predict(protein)
    >>> print(result.labels)
    >>> for segment in result.segments():
    ...     print(segment.label.name, segment.start, segment.end)

References:
    - Bernhofer et al. (2016) TMSEG: Novel prediction of transmembrane
      helices. Proteins 84:1706-1716
    - von Heijne (1992) Membrane protein structure prediction. J Mol Biol
      225:487-494
"""

__version__ = "0.1.0"

from .core.models import (
    ConservationProfile,
    Label,
    ProteinRecord,
    RawScores,
    Segment,
    TopologyResult,
)
from .core.profile import profile_from_sequence, read_pssm
from .core.sequence import parse_fasta, parse_structure_file, sequence_hash
from .predictors.base import (
    OracleConfig,
    OracleError,
    get_oracle,
    list_oracles,
)
from .pipeline import PipelineConfig, PredictionMode, TopologyPipeline
from .processing.consistency import check_topology, extrapolate_topology


def predict(
    protein: ProteinRecord,
    profile: ConservationProfile | None = None,
    mode: PredictionMode | str = PredictionMode.FULL,
    config: PipelineConfig | None = None,
) -> TopologyResult:
    """
    Predict helices and topology of one protein with the rule-based oracles.

    This is the high-level interface. For trained models, custom oracles or
    batches, use TopologyPipeline directly.

    Args:
        protein: ProteinRecord (with annotation for the post-processing modes)
        profile: Conservation profile (BLOSUM62 single-sequence if None)
        mode: 'full', 'postprocess' or 'topology_only'
        config: Pipeline configuration

    Returns:
        TopologyResult
    """
    pipeline = TopologyPipeline(config=config)
    return pipeline.predict(protein, profile, PredictionMode(mode))


__all__ = [
    "__version__",
    "predict",
    "ConservationProfile",
    "Label",
    "ProteinRecord",
    "RawScores",
    "Segment",
    "TopologyResult",
    "profile_from_sequence",
    "read_pssm",
    "parse_fasta",
    "parse_structure_file",
    "sequence_hash",
    "OracleConfig",
    "OracleError",
    "get_oracle",
    "list_oracles",
    "PipelineConfig",
    "PredictionMode",
    "TopologyPipeline",
    "check_topology",
    "extrapolate_topology",
]
