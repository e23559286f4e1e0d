"""``rpcstress init``: scaffold a TOML configuration file."""

from __future__ import annotations

from pathlib import Path
from string import Template

import typer
from rich.console import Console

from rpcstress._internal.config import DEFAULT_HTTP_TIMEOUT, DEFAULT_URL

console = Console(stderr=True)

_CONFIG_TEMPLATE = Template("""\
# rpcstress configuration: $name
#
# Run with:
#     rpcstress run --config $filename
#
# Values in this file take precedence over command-line flags.

url = "$url"

# Delay between consecutive requests of one worker, in milliseconds.
timeout_ms = 10

# Run duration in seconds, 0 runs until interrupted.
duration = 30

# Per-request HTTP timeout in seconds.
http_timeout = $http_timeout

[[methods]]
method = "getHealth"
workers = 2

[[methods]]
method = "getLatestBlock"
workers = 1
params = [{ commitment = "finalized", encoding = "json", transactionDetails = "full", maxSupportedTransactionVersion = 0, rewards = false }]
""")


def init_cmd(
    name: str = typer.Argument(
        "rpcstress",
        help="Name for the configuration (used as the filename).",
    ),
) -> None:
    """Scaffold a new configuration file in the current directory."""
    safe_name = "".join(c if c.isalnum() or c in "_-" else "_" for c in name).lower()
    if not safe_name:
        safe_name = "rpcstress"

    filename = f"{safe_name}.toml"
    target = Path.cwd() / filename
    if target.exists():
        console.print(f"[red]File already exists:[/red] {filename}")
        raise typer.Exit(code=1)

    content = _CONFIG_TEMPLATE.substitute(
        name=name,
        filename=filename,
        url=DEFAULT_URL,
        http_timeout=DEFAULT_HTTP_TIMEOUT,
    )
    target.write_text(content)
    console.print(f"[green]Created configuration:[/green] {filename}")
