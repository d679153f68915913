"""Shared utilities for CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape

from oci_structure.utils.errors import StructureError

if TYPE_CHECKING:
    from oci_structure.core.image import OCIImage
    from oci_structure.utils.config import StructureConfig

# Shared console instance
console = Console()

EXIT_VIOLATIONS = 1
EXIT_ERROR = 2


def fail(message: str, code: int = EXIT_ERROR) -> typer.Exit:
    """Print an error and build the exit to raise.

    Usage:
        raise fail("bad input")
    """
    console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(code)


def load_image(
    reference: str,
    config: "StructureConfig",
    layout: Path | None = None,
    platform: str | None = None,
) -> "OCIImage":
    """Resolve a reference to a single image.

    Reads from an OCI layout directory when ``layout`` is given, otherwise
    from the registry named in the reference.

    Raises:
        StructureError: If the image cannot be resolved
    """
    from oci_structure.core.image import resolve_image
    from oci_structure.registry import LayoutSource, OCIRegistry

    if layout is not None:
        source: Any = LayoutSource(layout)
    else:
        source = OCIRegistry(
            timeout=config.registry.timeout,
            max_retries=config.registry.max_retries,
            insecure=config.registry.insecure,
        )

    with console.status("Resolving image..."):
        descriptor = source.resolve(config.resolve_alias(reference))
        return resolve_image(descriptor, platform or config.registry.platform)


def output_json(data: dict[str, Any] | BaseModel, output: Path | None = None) -> None:
    """Output data as JSON to console or file.

    Args:
        data: Data to output (dict or Pydantic model)
        output: Optional output file path
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")

    json_str = json.dumps(data, indent=2, default=str)

    if output:
        output.write_text(json_str)
        console.print(f"Report written to {output}")
    else:
        console.print_json(json_str)


def status_icon(success: bool) -> str:
    """Get a colored status icon."""
    return "[green]OK[/green]" if success else "[red]FAIL[/red]"


def error_message(error: StructureError) -> str:
    """One-line description of an error for the terminal."""
    return f"{error.message} ({error.code})"
