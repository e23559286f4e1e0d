"""Rich rendering of the final report and ping diagnostics."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.table import Table

if TYPE_CHECKING:
    from rich.console import Console

    from rpcstress.diagnostics.ping import PingResult
    from rpcstress.metrics.models import RunResult


def build_summary_table(result: RunResult) -> Table:
    """Build the main results table.

    Args:
        result: Completed run result.

    Returns:
        Formatted Rich Table.
    """
    report = result.report
    table = Table(
        title="Test Complete",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Duration", f"{result.duration_seconds:.1f}s")
    table.add_row("Workers", str(result.worker_count))
    table.add_row("Total Requests", str(report.total))
    table.add_row("Successful", str(report.successful))
    table.add_row("Success Rate", f"{report.success_rate:.2f}%")
    table.add_row("Requests/sec", f"{result.requests_per_second:.1f}")
    table.add_row("Timeouts", str(report.timeouts))
    table.add_row("Decode Errors", str(report.decode_errors))
    table.add_row("Network Errors", str(report.network_errors))
    table.add_row("RPC Errors", str(report.rpc_errors))
    table.add_row("HTTP Errors", str(sum(report.http_errors.values())))
    table.add_row("Avg Latency", f"{report.latency_avg:.2f}ms")
    table.add_row("Min Latency", f"{report.latency_min:.2f}ms")
    table.add_row("Max Latency", f"{report.latency_max:.2f}ms")
    table.add_row("p50 Latency", f"{report.latency_p50:.2f}ms")
    table.add_row("p90 Latency", f"{report.latency_p90:.2f}ms")
    table.add_row("p99 Latency", f"{report.latency_p99:.2f}ms")
    return table


def build_http_error_table(result: RunResult) -> Table | None:
    """Build the per-status breakdown table, or None if there were no HTTP errors."""
    if not result.report.http_errors:
        return None

    table = Table(
        title="HTTP Errors",
        show_header=True,
        header_style="bold red",
        expand=True,
    )
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for key, count in result.report.http_errors.items():
        table.add_row(key, str(count))
    return table


def print_report(console: Console, result: RunResult) -> None:
    """Print the summary and, when present, the HTTP error breakdown.

    Args:
        console: Console to print to.
        result: Completed run result.
    """
    console.print(build_summary_table(result))
    http_table = build_http_error_table(result)
    if http_table is not None:
        console.print()
        console.print(http_table)


def build_ping_table(ping: PingResult) -> Table:
    """Build a table summarising a ping run."""
    table = Table(
        title=f"Ping {ping.host}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Sent", str(ping.sent))
    table.add_row("Received", str(ping.received))
    table.add_row("Lost", str(ping.lost))
    if ping.latencies:
        table.add_row("Min", f"{ping.min:.2f}ms")
        table.add_row("Avg", f"{ping.avg:.2f}ms")
        table.add_row("Max", f"{ping.max:.2f}ms")
    return table
