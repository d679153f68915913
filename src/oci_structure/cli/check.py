"""CLI command for checking image structure."""

from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from oci_structure.cli.utils import EXIT_VIOLATIONS, console, error_message, fail, load_image, output_json
from oci_structure.models.result import CheckResult
from oci_structure.utils.errors import StructureError


def check_cmd(
    reference: str = typer.Argument(
        "",
        help="Image reference, or the ref name inside --layout",
    ),
    file: Optional[list[str]] = typer.Option(
        None,
        "--file",
        "-f",
        help="PATH[=REGEX]: file must exist (and match REGEX). Repeatable.",
    ),
    env: Optional[list[str]] = typer.Option(
        None,
        "--env",
        "-e",
        help="KEY=VALUE: config env must hold this value. Repeatable.",
    ),
    conditions: Optional[Path] = typer.Option(
        None,
        "--conditions",
        "-c",
        help="Path to a conditions YAML file",
    ),
    platform: Optional[str] = typer.Option(
        None,
        "--platform",
        help="Platform to pick from an image index, as os/arch or os/arch/variant",
    ),
    layout: Optional[Path] = typer.Option(
        None,
        "--layout",
        help="Read the image from an OCI layout directory instead of a registry",
    ),
    format: Optional[str] = typer.Option(
        None,
        "--format",
        help="Output format (terminal, json)",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output file path (json format)",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Give up after this many seconds",
    ),
    spool_dir: Optional[Path] = typer.Option(
        None,
        "--spool-dir",
        help="Directory for the temporary flattened filesystem",
    ),
) -> None:
    """
    Check that an image meets structural conditions.

    Prints nothing and exits 0 when every condition holds. Otherwise
    prints every violation and exits 1. Errors exit 2.

    Example:
        oci-structure check cgr.dev/chainguard/static:latest \\
            -f /etc/passwd='nonroot:x:65532' -e PATH=/usr/local/bin:/usr/bin:/bin
    """
    from oci_structure.core.check import ConditionChecker
    from oci_structure.core.loader import conditions_from_flags, load_conditions
    from oci_structure.models.conditions import ConditionSet
    from oci_structure.utils.config import get_config

    try:
        config = get_config()
    except StructureError as e:
        raise fail(error_message(e))

    if not reference and layout is None:
        raise fail("an image reference is required unless --layout is given")

    fmt = format or config.output.default_format
    if fmt not in ("terminal", "json"):
        raise fail(f"unknown format: {fmt}")

    try:
        wanted = load_conditions(conditions) if conditions else ConditionSet()
        wanted = wanted.extended(*conditions_from_flags(file, env).conditions)
    except StructureError as e:
        raise fail(error_message(e))
    except OSError as e:
        raise fail(f"reading {conditions}: {e}")

    if not len(wanted):
        raise fail("no conditions given (use --file, --env or --conditions)")

    checker = ConditionChecker(
        spool_dir=str(spool_dir) if spool_dir else config.check.spool_dir,
        timeout=timeout or config.check.timeout,
    )
    try:
        image = load_image(reference, config, layout=layout, platform=platform)
        with console.status("Checking conditions..."):
            result = checker.evaluate(image, wanted)
    except ValueError as e:
        # Platform strings are parsed late.
        raise fail(str(e))
    except StructureError as e:
        raise fail(error_message(e))

    if fmt == "json":
        output_json(
            {
                "image": result.image_reference,
                "passed": result.passed,
                "violations": [v.model_dump() for v in result.violations],
            },
            output,
        )
    elif not result.passed:
        _print_terminal_report(result)

    if not result.passed:
        raise typer.Exit(EXIT_VIOLATIONS)


def _print_terminal_report(result: CheckResult) -> None:
    """Print the violations, one block per condition kind."""
    console.print(
        Panel(
            f"[bold]Image:[/bold] {escape(result.image_reference)}\n"
            f"[bold]Violations:[/bold] [red]{len(result.violations)}[/red]",
            title="Structure Check",
        )
    )

    table = Table(show_header=True)
    table.add_column("Condition", style="bold")
    table.add_column("Subject")
    table.add_column("Message")
    for kind, violations in result.by_condition().items():
        for v in violations:
            table.add_row(kind, escape(v.subject), escape(v.message))
    console.print(table)
