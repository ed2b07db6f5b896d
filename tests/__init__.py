"""
tmrefine test suite.

Tests are organized by module:
- test_models, test_sequence, test_profile: data model and input parsing
- test_smoothing, test_consensus, test_boundaries, test_topology,
  test_consistency, test_confidence: refinement stages
- test_predictors: oracle contracts and implementations
- test_pipeline, test_export, test_cli: end-to-end workflows
"""
