"""
Result export.

Text formats of a refined prediction:

- **Segment report**: one line per maximal run of the final label string
  (1-based, inclusive), followed by header, sequence and label string::

      # SEGMENT	START	END	RI
      ##
      # INSIDE	1	12
      # TRANSMEM	13	33	7
      # OUTSIDE	34	50
      ##
      >header
      SEQUENCE
      LABELS

  RI is the reliability index of a helix, or -1 when none was computed
  (post-processing modes).

- **Raw table**: per-residue unsmoothed oracle scores (probability), segment
  score, P(Inside) of the N-terminus on the first row, and final label; "."
  marks a missing value.

- **JSON** of the full TopologyResult, and a pandas summary table for
  batches.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Sequence, Union

import pandas as pd

from .core.models import Label, TopologyResult

logger = logging.getLogger(__name__)


REPORT_HEADER = "# SEGMENT\tSTART\tEND\tRI"
RAW_HEADER = "# SEQ\tSOL\tTMH\tSIG\tSEG\tTOP\tPRED"

_RUN_NAMES = {
    Label.LOOP: "REENTRANT",
    Label.SIGNAL: "SIGNAL",
    Label.INSIDE: "INSIDE",
    Label.OUTSIDE: "OUTSIDE",
    Label.NOT_TMH: "NON-MEM",
    Label.UNKNOWN: "UNKNOWN",
}


def _require_labels(result: TopologyResult) -> None:
    if result.labels is None:
        raise ValueError(f"Result for {result.protein_id} has no prediction")


# ============================================================================
# Formatting
# ============================================================================

def format_segment_report(result: TopologyResult) -> str:
    """
    Render the segment report of a result.

    Raises:
        ValueError: If the result carries no labels (failed prediction)
    """
    _require_labels(result)

    lines = [REPORT_HEADER, "##"]
    for run in result.segments():
        start, end = run.start + 1, run.end + 1
        if run.label.is_tmh:
            ri = result.confidence[run.start] if result.confidence is not None else -1
            lines.append(f"# TRANSMEM\t{start}\t{end}\t{ri}")
        else:
            lines.append(f"# {_RUN_NAMES[run.label]}\t{start}\t{end}")
    lines.append("##")

    lines.append(result.header or f">{result.protein_id}")
    lines.append(result.sequence)
    lines.append(result.labels)

    return "\n".join(lines) + "\n"


def _value(values: Optional[Sequence[int]], i: int) -> str:
    if values is None or values[i] < 0:
        return "."
    return str(values[i] / 1000.0)


def format_raw_table(result: TopologyResult) -> str:
    """
    Render the per-residue raw score table of a result.

    Raises:
        ValueError: If the result carries no labels (failed prediction)
    """
    _require_labels(result)

    raw = result.raw_scores
    sol = raw.sol if raw is not None else None
    tmh = raw.tmh if raw is not None else None
    sig = raw.sig if raw is not None else None

    lines = [f"# {result.header or '>' + result.protein_id}", RAW_HEADER]
    for i, residue in enumerate(result.sequence):
        if i == 0 and result.topology_raw is not None:
            top = str(result.topology_raw / 1000.0)
        else:
            top = "."
        lines.append("\t".join([
            residue,
            _value(sol, i),
            _value(tmh, i),
            _value(sig, i),
            _value(result.segment_scores, i),
            top,
            result.labels[i],
        ]))

    return "\n".join(lines) + "\n"


def result_to_json(result: TopologyResult, indent: int = 2) -> str:
    return result.model_dump_json(indent=indent)


def results_to_dataframe(results: Sequence[TopologyResult]) -> pd.DataFrame:
    """One summary row per result."""
    rows = []
    for result in results:
        rows.append({
            "id": result.protein_id,
            "length": len(result.sequence),
            "mode": result.mode,
            "success": result.success,
            "is_transmembrane": result.is_transmembrane,
            "has_signal_peptide": result.has_signal_peptide,
            "n_helices": result.n_helices,
            "n_terminus": result.labels[0] if result.labels else None,
            "topology_raw": result.topology_raw,
            "runtime_seconds": result.runtime_seconds,
            "error": result.error_message,
        })
    return pd.DataFrame(rows)


# ============================================================================
# Writing
# ============================================================================

def _write(text: str, filepath: Union[str, Path]) -> Path:
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w") as handle:
        handle.write(text)
    return filepath


def write_segment_report(result: TopologyResult, filepath: Union[str, Path]) -> Path:
    path = _write(format_segment_report(result), filepath)
    logger.debug(f"Wrote segment report for {result.protein_id} to {path}")
    return path


def write_raw_table(result: TopologyResult, filepath: Union[str, Path]) -> Path:
    path = _write(format_raw_table(result), filepath)
    logger.debug(f"Wrote raw table for {result.protein_id} to {path}")
    return path


def write_json(result: TopologyResult, filepath: Union[str, Path]) -> Path:
    return _write(result_to_json(result), filepath)


def write_reports(
    results: Sequence[TopologyResult],
    filepath: Union[str, Path],
) -> Path:
    """Write segment reports of all successful results into one file."""
    text = "".join(format_segment_report(r) for r in results if r.success)
    path = _write(text, filepath)
    logger.info(f"Wrote {sum(1 for r in results if r.success)} reports to {path}")
    return path


def write_raw_tables(
    results: Sequence[TopologyResult],
    filepath: Union[str, Path],
) -> Path:
    """Write raw tables of all successful results into one file."""
    text = "".join(format_raw_table(r) for r in results if r.success)
    return _write(text, filepath)


def export_batch_results(
    results: Sequence[TopologyResult],
    output_dir: Union[str, Path],
    raw: bool = False,
    json: bool = False,
) -> dict[str, dict[str, Optional[Path]]]:
    """
    Export results to a directory, one file per protein.

    Creates ``<id>.tmseg`` segment reports, optionally ``<id>.raw`` tables
    and ``<id>.json`` dumps, and a ``summary.tsv`` over all results. Failed
    proteins appear only in the summary.

    Returns:
        Mapping protein id -> {report, raw, json} paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths: dict[str, dict[str, Optional[Path]]] = {}
    for result in results:
        if not result.success:
            continue
        safe_id = _safe_filename(result.protein_id)
        paths[result.protein_id] = {
            "report": write_segment_report(result, output_dir / f"{safe_id}.tmseg"),
            "raw": write_raw_table(result, output_dir / f"{safe_id}.raw") if raw else None,
            "json": write_json(result, output_dir / f"{safe_id}.json") if json else None,
        }

    summary_path = output_dir / "summary.tsv"
    results_to_dataframe(results).to_csv(summary_path, sep="\t", index=False)

    logger.info(f"Batch export complete: {len(paths)} of {len(results)} proteins to {output_dir}")
    return paths


def _safe_filename(name: str) -> str:
    """Convert string to safe filename."""
    return re.sub(r"[^A-Za-z0-9._-]", "_", name) or "protein"
