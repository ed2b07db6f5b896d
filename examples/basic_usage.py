#!/usr/bin/env python3
"""
TMRefine Example: Refining Transmembrane Topology

This script walks through the main entry points of TMRefine on small
proteins: a full prediction from sequence, post-processing of an existing
annotation, a consistency check of annotated sides, and batch export.

Run with: python examples/basic_usage.py
"""

import tempfile
from pathlib import Path

from tmrefine import (
    PredictionMode,
    ProteinRecord,
    TopologyPipeline,
    check_topology,
    extrapolate_topology,
    list_oracles,
    predict,
)
from tmrefine.core.models import labels_to_string
from tmrefine.export import export_batch_results, format_segment_report


# Glycophorin A transmembrane region with flanking residues: a single-pass
# protein with a basic cytoplasmic juxtamembrane stretch (RRLIKK)
GLYCOPHORIN_TM = "SEPEITLIIFGVMAGVIGTILLISYGIRRLIKKSPSDVKPLPSPDTDVPLSSVEIENPETSDQ"

# Two hydrophobic stretches joined by a short loop
HAIRPIN = "MSDKNQSE" + "LLAVLIGVLAFLLAIVGL" + "NPDGS" + "VLAILFGLVAGLLIVALV" + "KRKKSDEQNS"


def print_header(title: str):
    """Print a formatted section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def single_protein():
    """Full prediction with the rule-based oracles."""
    print_header("Glycophorin A (single pass)")

    protein = ProteinRecord(id="GYPA_TM", header=">GYPA_TM glycophorin A", sequence=GLYCOPHORIN_TM)
    result = predict(protein)

    print(f"\nSequence: {protein.sequence}")
    print(f"Labels:   {result.labels}")
    print(f"Transmembrane helices: {result.n_helices}")
    print(f"P(N-terminus inside): {result.topology_raw / 1000 if result.topology_raw is not None else 'n/a'}")
    print("\nSegment report:")
    print(format_segment_report(result))


def post_processing():
    """Refine and side an annotation produced elsewhere."""
    print_header("Post-processing an existing annotation")

    # A rough annotation: helices slightly misplaced, no sides
    annotation = "N" * 10 + "H" * 16 + "N" * 7 + "H" * 16 + "N" * 10
    record = ProteinRecord(id="hairpin", sequence=HAIRPIN, annotation=annotation)

    pipeline = TopologyPipeline()
    refined = pipeline.predict(record, mode=PredictionMode.POSTPROCESS)
    sided = pipeline.predict(record, mode=PredictionMode.TOPOLOGY_ONLY)

    print(f"\nInput:          {annotation}")
    print(f"Refined + side: {refined.labels}")
    print(f"Side only:      {sided.labels}")


def consistency():
    """Check and extrapolate annotated sides."""
    print_header("Topology consistency")

    record = ProteinRecord(
        id="annotated",
        sequence=HAIRPIN,
        annotation="1" + "N" * 9 + "H" * 16 + "N" * 7 + "H" * 16 + "N" * 9 + "1",
    )
    labels = record.labels()

    print(f"\nAnnotation:   {record.annotation}")
    print(f"Consistent:   {check_topology(labels)}")
    print(f"Extrapolated: {labels_to_string(extrapolate_topology(labels))}")


def batch_export():
    """Predict several proteins and export per-protein files."""
    print_header("Batch export")

    records = [
        ProteinRecord(id="GYPA_TM", sequence=GLYCOPHORIN_TM),
        ProteinRecord(id="hairpin", sequence=HAIRPIN),
    ]
    results = TopologyPipeline().predict_batch(records, max_workers=2)

    output_dir = Path(tempfile.mkdtemp(prefix="tmrefine_"))
    paths = export_batch_results(results, output_dir, raw=True)

    for protein_id, files in paths.items():
        print(f"  {protein_id}: {files['report'].name}, {files['raw'].name}")
    print(f"  summary: {output_dir / 'summary.tsv'}")


def available_oracles():
    print_header("Registered oracles")
    for info in list_oracles():
        print(f"  {info['name']:<20} {info['role']:<10} {info['description']}")


if __name__ == "__main__":
    single_protein()
    post_processing()
    consistency()
    batch_export()
    available_oracles()
