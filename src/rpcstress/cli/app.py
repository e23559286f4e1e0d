"""Main Typer application, entry point for the ``rpcstress`` CLI."""

from __future__ import annotations

import typer

from rpcstress import __version__
from rpcstress.cli.init_cmd import init_cmd
from rpcstress.cli.run import run_cmd

app = typer.Typer(
    name="rpcstress",
    help="Concurrent load generator for JSON-RPC endpoints.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a load test against a JSON-RPC endpoint.")(run_cmd)
app.command("init", help="Scaffold a new TOML configuration file.")(init_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"rpcstress {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """rpcstress: stress-test JSON-RPC endpoints from many concurrent workers."""
