"""
Command-line interface for TMRefine.

Usage patterns:
    tmrefine predict proteins.fasta --pssm pssms/ -o proteins.tmseg
    tmrefine predict annotated.txt --post-process
    tmrefine check-topology annotated.txt
    tmrefine list-oracles
"""

from .main import cli, main

__all__ = ["cli", "main"]
