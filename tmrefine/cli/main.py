"""
TMRefine Command Line Interface.

Usage:
    tmrefine predict proteins.fasta --pssm pssm_dir/ -o proteins.tmseg
    tmrefine predict annotated.txt --post-process --pssm pssm_dir/
    tmrefine check-topology annotated.txt --extrapolate filled.txt
    tmrefine list-oracles
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .. import __version__

# Status output goes to stderr so reports can be piped from stdout
console = Console(stderr=True)

VERBOSITY_LEVELS = {
    -1: logging.ERROR,
    0: logging.WARNING,
    1: logging.DEBUG,
}


def setup_logging(verbosity: int = 0) -> None:
    """
    Route the package loggers through rich.

    Args:
        verbosity: -1 (errors only), 0 (warnings) or 1 (debug)
    """
    level = VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)

    logger = logging.getLogger("tmrefine")
    logger.setLevel(level)
    logger.handlers.clear()

    handler = RichHandler(console=console, rich_tracebacks=True, show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(level)
    logger.addHandler(handler)


def print_banner():
    """Print the TMRefine banner."""
    console.print(f"TMRefine v{__version__}: transmembrane helix and topology refinement", style="bold blue")


@click.group()
@click.version_option(version=__version__, prog_name="TMRefine")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug output")
@click.option("--quiet", "-q", is_flag=True, help="Only report errors")
@click.pass_context
def cli(ctx, verbose: bool, quiet: bool):
    """
    TMRefine: refinement of transmembrane helix and topology predictions.

    \b
    • Per-residue helix / signal-peptide scoring
    • Helix boundary refinement by split / shift search
    • Membrane-side assignment (positive-inside or trained model)
    • Consistency checks of annotated topologies

    Run 'tmrefine COMMAND --help' for command-specific help.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    setup_logging(-1 if quiet else (1 if verbose else 0))

    if not quiet:
        print_banner()


def _collect_inputs(input_path: Path, annotated: bool) -> list:
    from ..core.sequence import parse_fasta, parse_structure_file

    parser = parse_structure_file if annotated else parse_fasta

    if input_path.is_dir():
        files = sorted(
            p for p in input_path.iterdir()
            if p.suffix.lower() in (".fasta", ".fa", ".faa", ".txt")
        )
    else:
        files = [input_path]

    records = []
    for path in files:
        records.extend(parser(path))
    return records


def _profile_source(pssm: Optional[Path], n_records: int) -> Optional[Callable]:
    from ..core.profile import read_pssm

    if pssm is None:
        return None

    if pssm.is_dir():
        def load(record):
            return read_pssm(pssm / f"{record.id}.pssm", record.sequence)
        return load

    if n_records > 1:
        console.print(
            "[yellow]Warning:[/yellow] Single PSSM file given for several proteins; "
            "proteins of another length will fail."
        )
    return lambda record: read_pssm(pssm, record.sequence)


@cli.command("predict")
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--pssm", "-p",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="PSSM file, or directory of <id>.pssm files (default: BLOSUM62 single-sequence profile)",
)
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Segment report file (default: stdout)")
@click.option("--raw", "-r", type=click.Path(path_type=Path), help="Per-residue raw score table file")
@click.option("--json", "json_path", type=click.Path(path_type=Path), help="JSON dump of all results")
@click.option("--export-dir", type=click.Path(path_type=Path), help="Per-protein files and summary.tsv")
@click.option("--plot-dir", type=click.Path(path_type=Path), help="Save score profile plots here")
@click.option("--post-process", is_flag=True, help="Refine and side an existing annotation")
@click.option("--topology-only", is_flag=True, help="Only assign sides to an existing annotation")
@click.option(
    "--models-dir", "-m",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory with residue/segment/topology .joblib models (default: rule-based oracles)",
)
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path), help="JSON pipeline configuration")
@click.option("--workers", "-w", type=int, default=1, help="Parallel worker threads")
@click.option("--cache/--no-cache", default=False, help="Cache residue scores on disk")
@click.option("--cache-dir", type=click.Path(path_type=Path), help="Cache location")
@click.pass_context
def predict(
    ctx,
    input_path: Path,
    pssm: Optional[Path],
    output: Optional[Path],
    raw: Optional[Path],
    json_path: Optional[Path],
    export_dir: Optional[Path],
    plot_dir: Optional[Path],
    post_process: bool,
    topology_only: bool,
    models_dir: Optional[Path],
    config_path: Optional[Path],
    workers: int,
    cache: bool,
    cache_dir: Optional[Path],
):
    """
    Predict transmembrane helices and topology.

    INPUT_PATH is a FASTA file, a structure file (header / sequence /
    annotation lines) with --post-process or --topology-only, or a directory
    of such files.

    \b
    Examples:
        tmrefine predict query.fasta --pssm query.pssm
        tmrefine predict proteome/ --pssm pssms/ --export-dir results/ -w 4
        tmrefine predict annotated.txt --topology-only -o sides.tmseg
    """
    from ..core.sequence import SequenceError
    from ..export import export_batch_results, format_segment_report, write_raw_tables, write_reports
    from ..pipeline import PipelineConfig, PredictionMode, TopologyPipeline
    from ..predictors.base import OracleConfig, OracleUnavailableError
    from ..predictors.heuristic import HydropathyResidueScorer

    if topology_only:
        mode = PredictionMode.TOPOLOGY_ONLY
    elif post_process:
        mode = PredictionMode.POSTPROCESS
    else:
        mode = PredictionMode.FULL

    try:
        records = _collect_inputs(input_path, annotated=mode is not PredictionMode.FULL)
    except (SequenceError, ValueError, OSError) as e:
        console.print(f"[red]✗ Error loading sequences:[/red] {e}")
        sys.exit(1)

    if not records:
        console.print(f"[yellow]No sequences found in {input_path}[/yellow]")
        sys.exit(1)

    console.print(f"[green]✓[/green] Loaded {len(records)} sequence(s) from {input_path}")

    try:
        config = PipelineConfig()
        if config_path is not None:
            with open(config_path) as handle:
                config = PipelineConfig.from_dict(json.load(handle))
    except (ValueError, TypeError) as e:
        console.print(f"[red]✗ Invalid configuration:[/red] {e}")
        sys.exit(1)

    oracle_config = OracleConfig(use_cache=cache, cache_dir=cache_dir)

    try:
        if models_dir is not None:
            pipeline = TopologyPipeline.from_models_dir(models_dir, config, oracle_config)
        else:
            pipeline = TopologyPipeline(HydropathyResidueScorer(oracle_config), config=config)
    except OracleUnavailableError as e:
        console.print(f"[red]✗ Could not load models:[/red] {e}")
        sys.exit(1)

    profiles = _profile_source(pssm, len(records))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
        disable=ctx.obj.get("quiet", False),
    ) as progress:
        task = progress.add_task(f"Predicting ({mode.value})", total=len(records))
        results = pipeline.predict_batch(
            records,
            profiles=profiles,
            mode=mode,
            max_workers=workers,
            progress_callback=lambda done, total: progress.update(task, completed=done),
        )

    succeeded = [r for r in results if r.success]

    if output is not None:
        write_reports(results, output)
        console.print(f"[green]✓[/green] Reports saved to: {output}")
    else:
        for result in succeeded:
            click.echo(format_segment_report(result), nl=False)

    if raw is not None:
        write_raw_tables(results, raw)
        console.print(f"[green]✓[/green] Raw scores saved to: {raw}")

    if json_path is not None:
        json_path.parent.mkdir(parents=True, exist_ok=True)
        with open(json_path, "w") as handle:
            json.dump([r.model_dump(mode="json") for r in results], handle, indent=2)
        console.print(f"[green]✓[/green] JSON saved to: {json_path}")

    if export_dir is not None:
        export_batch_results(results, export_dir, raw=True)
        console.print(f"[green]✓[/green] Per-protein results saved to: {export_dir}")

    if plot_dir is not None:
        from ..visualization.profiles import save_topology_profile
        from ..export import _safe_filename

        for result in succeeded:
            save_topology_profile(result, plot_dir / f"{_safe_filename(result.protein_id)}.png")
        console.print(f"[green]✓[/green] Plots saved to: {plot_dir}")

    if not ctx.obj.get("quiet"):
        summary_table = Table(show_header=True, header_style="bold")
        summary_table.add_column("Protein")
        summary_table.add_column("TMHs")
        summary_table.add_column("Signal")
        summary_table.add_column("N-term")
        summary_table.add_column("Status")

        for result in results:
            if result.success:
                n_term = {"1": "inside", "2": "outside"}.get(result.labels[0], "-")
                summary_table.add_row(
                    result.protein_id,
                    str(result.n_helices),
                    "yes" if result.has_signal_peptide else "no",
                    n_term,
                    "[green]ok[/green]",
                )
            else:
                summary_table.add_row(result.protein_id, "-", "-", "-", f"[red]{result.error_message}[/red]")

        console.print(summary_table)

    if len(succeeded) < len(results):
        console.print(f"[yellow]{len(results) - len(succeeded)} protein(s) failed[/yellow]")


@cli.command("check-topology")
@click.argument("structure_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--extrapolate", "-e",
    type=click.Path(path_type=Path),
    help="Write consistent records with sides filled in to this file",
)
def check_topology_cmd(structure_file: Path, extrapolate: Optional[Path]):
    """
    Check that annotated sides alternate across helices.

    STRUCTURE_FILE holds header / sequence / annotation line triples.
    Exits with status 1 if any record is inconsistent.

    \b
    Examples:
        tmrefine check-topology annotated.txt
        tmrefine check-topology annotated.txt --extrapolate filled.txt
    """
    from ..core.models import ProteinRecord, labels_to_string
    from ..core.sequence import SequenceError, parse_structure_file, to_structure_text
    from ..processing.consistency import extrapolate_topology, first_inconsistency

    try:
        records = list(parse_structure_file(structure_file))
    except (SequenceError, ValueError, OSError) as e:
        console.print(f"[red]✗ Error reading file:[/red] {e}")
        sys.exit(1)

    table = Table(title="Topology consistency", show_header=True, header_style="bold cyan")
    table.add_column("Protein", style="bold")
    table.add_column("Consistent")
    table.add_column("First conflict")

    consistent = []
    for record in records:
        position = first_inconsistency(record.labels())
        if position is None:
            consistent.append(record)
            table.add_row(record.id, "[green]✓[/green]", "-")
        else:
            table.add_row(record.id, "[red]✗[/red]", str(position + 1))

    console.print(table)

    if extrapolate is not None:
        filled = [
            ProteinRecord(
                id=record.id,
                header=record.header,
                sequence=record.sequence,
                annotation=labels_to_string(extrapolate_topology(record.labels())),
            )
            for record in consistent
        ]
        extrapolate.parent.mkdir(parents=True, exist_ok=True)
        with open(extrapolate, "w") as handle:
            handle.write(to_structure_text(filled) if filled else "")
        console.print(f"[green]✓[/green] {len(filled)} extrapolated record(s) saved to: {extrapolate}")

    sys.exit(0 if len(consistent) == len(records) else 1)


@cli.command("list-oracles")
def list_oracles_cmd():
    """
    List the registered rule-based scoring oracles.

    Model-backed oracles are loaded with 'predict --models-dir'.
    """
    from ..predictors.base import list_oracles

    oracles = list_oracles()

    if not oracles:
        console.print("[yellow]No oracles registered.[/yellow]")
        return

    table = Table(title="Available Oracles", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="bold")
    table.add_column("Role")
    table.add_column("Version")
    table.add_column("Type")
    table.add_column("Description")

    for oracle in oracles:
        table.add_row(
            oracle["name"],
            oracle["role"],
            oracle["version"],
            oracle["type"],
            oracle["description"],
        )

    console.print(table)


def main():
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
