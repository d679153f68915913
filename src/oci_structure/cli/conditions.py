"""CLI command for validating conditions files."""

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from oci_structure.cli.utils import console, error_message, fail, status_icon
from oci_structure.utils.errors import StructureError


def conditions_cmd(
    path: Path = typer.Argument(..., help="Conditions YAML file"),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the normalized conditions here",
    ),
) -> None:
    """
    Validate a conditions file and summarize it.

    Example:
        oci-structure conditions distroless.yaml -o normalized.yaml
    """
    from oci_structure.core.loader import load_conditions, save_conditions

    try:
        loaded = load_conditions(path)
    except StructureError as e:
        raise fail(error_message(e))
    except OSError as e:
        raise fail(f"reading {path}: {e}")

    table = Table(title=str(path))
    table.add_column("Kind", style="bold")
    table.add_column("Entries", justify="right")
    for condition in loaded.conditions:
        table.add_row(condition.kind, str(len(condition.want)))
    console.print(table)
    console.print(f"{status_icon(True)} {len(loaded)} condition(s)")

    if output:
        save_conditions(loaded, output)
        console.print(f"Conditions written to {output}")
