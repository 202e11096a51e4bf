"""
Human-readable output formatting.

Centralizes CLI output formatting while keeping CLI commands thin and focused.
"""
from __future__ import annotations

from typing import List

import typer

from ..chunks import Chunk
from ..client import PushResult


def print_push_summary(result: PushResult) -> None:
    """Print the outcome of a completed push."""
    typer.echo(f"Pushed {result.name}")
    typer.echo(f"   Rounds: {result.rounds}")
    typer.echo(f"   Uploads: {result.uploads} ({_format_bytes(result.bytes_uploaded)})")


def print_chunk_plan(size: int, chunks: List[Chunk]) -> None:
    """Print a multipart layout, one part per line."""
    typer.echo(f"Blob size: {_format_bytes(size)} ({size} bytes), {len(chunks)} parts")
    for chunk in chunks:
        typer.echo(f"  part {chunk.part_number:>5}  offset {chunk.offset:>14}  size {chunk.size:>12}")


def _format_bytes(size_bytes: int) -> str:
    """Format byte count as human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
