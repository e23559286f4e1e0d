"""``rpcstress run``: execute a load test against a JSON-RPC endpoint."""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from rpcstress._internal.config import (
    DEFAULT_DURATION,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_METHOD,
    DEFAULT_PACING_MS,
    DEFAULT_URL,
    DEFAULT_WORKERS,
    RunSettings,
    resolve_settings,
)
from rpcstress._internal.errors import ConfigError, DiagnosticError, RpcStressError
from rpcstress.cli.report import build_ping_table, print_report
from rpcstress.diagnostics.ping import extract_host, run_ping
from rpcstress.engine.runner import run_load_test

console = Console(stderr=True)


def _describe_settings(settings: RunSettings) -> str:
    """Render resolved settings as panel text."""
    duration = "until interrupted" if settings.duration == 0 else f"{settings.duration}s"
    lines = [
        f"[bold]URL:[/bold]          {settings.url}",
        f"[bold]Pacing:[/bold]       {settings.pacing_ms}ms",
        f"[bold]Duration:[/bold]     {duration}",
        f"[bold]HTTP timeout:[/bold] {settings.http_timeout:g}s",
    ]
    if settings.config_path:
        lines.append(f"[bold]Config:[/bold]       {settings.config_path}")
    for entry in settings.methods:
        params = f" params={list(entry.params)}" if entry.params else ""
        lines.append(f"[bold]Method:[/bold]       {entry.method} x{entry.workers}{params}")
    return "\n".join(lines)


def _run_ping_diagnostic(url: str) -> None:
    """Ping the target host and print the results. Never raises."""
    host = extract_host(url)
    if host is None:
        console.print(f"[yellow]Cannot extract a host from {url}, skipping ping.[/yellow]")
        return

    try:
        with console.status(f"Pinging {host}..."):
            result = run_ping(host)
    except DiagnosticError as exc:
        console.print(f"[yellow]Ping failed:[/yellow] {exc}")
        return

    console.print(build_ping_table(result))


def run_cmd(
    workers: int = typer.Option(
        DEFAULT_WORKERS,
        "--workers",
        "-w",
        help="Number of concurrent workers.",
        min=1,
    ),
    method: str = typer.Option(
        DEFAULT_METHOD,
        "--method",
        "-m",
        help="JSON-RPC method to call (getLatestBlock runs getSlot then getBlock).",
    ),
    timeout_ms: int = typer.Option(
        DEFAULT_PACING_MS,
        "--timeout-ms",
        "-t",
        help="Delay between requests of one worker, in milliseconds.",
        min=0,
    ),
    url: str = typer.Option(
        DEFAULT_URL,
        "--url",
        "-u",
        help="JSON-RPC endpoint URL.",
    ),
    duration: int = typer.Option(
        DEFAULT_DURATION,
        "--duration",
        "-d",
        help="Test duration in seconds (0 runs until interrupted).",
        min=0,
    ),
    http_timeout: float = typer.Option(
        DEFAULT_HTTP_TIMEOUT,
        "--http-timeout",
        help="Per-request HTTP timeout in seconds.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-v",
        help="Log every response (DEBUG logging).",
    ),
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Write log records to stderr as JSON lines.",
    ),
    ping: bool = typer.Option(
        False,
        "--ping",
        "-p",
        help="Ping the target host before the test.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file; its values override flags.",
        dir_okay=False,
    ),
    min_success_rate: float | None = typer.Option(
        None,
        "--min-success-rate",
        help="Exit non-zero if the success rate (percent) is below this value.",
        min=0.0,
        max=100.0,
    ),
) -> None:
    """Execute a load test and print the final report."""
    try:
        settings = resolve_settings(
            url=url,
            method=method,
            workers=workers,
            pacing_ms=timeout_ms,
            duration=duration,
            http_timeout=http_timeout,
            debug=debug,
            ping=ping,
            config_path=config,
        )
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        Panel(
            _describe_settings(settings),
            title="rpcstress",
            border_style="cyan",
        )
    )

    if settings.ping:
        _run_ping_diagnostic(settings.url)

    log_level = logging.DEBUG if settings.debug else logging.INFO

    # A spinner would interleave with per-response or JSON log lines
    status = (
        contextlib.nullcontext()
        if settings.debug or log_json
        else console.status(f"Running {settings.total_workers} workers...")
    )
    try:
        with status:
            result = run_load_test(settings, log_level=log_level, json_logs=log_json)
    except RpcStressError as exc:
        console.print(f"[red]Load test failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    print_report(console, result)

    if min_success_rate is not None and result.report.success_rate < min_success_rate:
        console.print(
            f"[red]FAIL:[/red] Success rate {result.report.success_rate:.2f}% "
            f"is below threshold {min_success_rate:.2f}%"
        )
        raise typer.Exit(code=1)

    console.print("[green]Load test completed.[/green]")
