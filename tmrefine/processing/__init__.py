"""
Deterministic refinement stages.

Stages in pipeline order:
    smoothing: Median filter over the raw score tracks
    consensus: Arbitration, helix length filter, signal-peptide validation
    boundaries: Split / adjust search over helix boundaries
    topology: Membrane-side assignment
    confidence: Per-helix reliability index

consistency holds the checker / extrapolator for annotated topologies.
"""

from .boundaries import BoundaryConfig, BoundaryRefiner, RefinementResult, SegmentProbabilities
from .confidence import assign_confidence
from .consensus import (
    ArbiterWeights,
    ArbitrationResult,
    arbitrate,
    filter_short_helices,
    is_transmembrane,
    validate_signal_peptide,
)
from .consistency import (
    TopologyInconsistencyError,
    check_topology,
    extrapolate_topology,
    require_consistent_topology,
)
from .smoothing import median_filter
from .topology import (
    TopologyAssigner,
    TopologyAssignment,
    TopologyConfig,
    TopologyExample,
    aggregate_side_features,
    build_windows,
    decide_start_side,
    propagate_sides,
    topology_training_example,
    topology_training_set,
)

__all__ = [
    "BoundaryConfig",
    "BoundaryRefiner",
    "RefinementResult",
    "SegmentProbabilities",
    "assign_confidence",
    "ArbiterWeights",
    "ArbitrationResult",
    "arbitrate",
    "filter_short_helices",
    "is_transmembrane",
    "validate_signal_peptide",
    "TopologyInconsistencyError",
    "check_topology",
    "extrapolate_topology",
    "require_consistent_topology",
    "median_filter",
    "TopologyAssigner",
    "TopologyAssignment",
    "TopologyConfig",
    "TopologyExample",
    "aggregate_side_features",
    "build_windows",
    "decide_start_side",
    "propagate_sides",
    "topology_training_example",
    "topology_training_set",
]
