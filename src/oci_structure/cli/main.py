"""Main CLI entry point for oci-structure."""

import typer

from oci_structure.cli import check, conditions
from oci_structure.cli.utils import console

app = typer.Typer(
    name="oci-structure",
    help="Check the structure of OCI container images.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register subcommands
app.command(name="check")(check.check_cmd)
app.command(name="conditions")(conditions.conditions_cmd)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output"),
    structured_logs: bool = typer.Option(
        False, "--structured-logs", help="Timestamped log lines with key=value context"
    ),
) -> None:
    """
    oci-structure: assert what an image contains without running it.

    - [bold]check[/bold]: Check env values, files, directory modes and blocked permissions
    - [bold]conditions[/bold]: Validate a conditions file
    """
    from oci_structure.utils.logging import configure_logging

    if verbose:
        level = "DEBUG"
    elif quiet:
        level = "ERROR"
    else:
        level = "WARNING"
    configure_logging(level=level, structured=structured_logs)


@app.command()
def version() -> None:
    """Show the oci-structure version."""
    from oci_structure import __version__

    console.print(f"oci-structure version {__version__}")


if __name__ == "__main__":
    app()
