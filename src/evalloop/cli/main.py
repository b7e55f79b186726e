"""
Rich CLI interface for evalloop.

Runs the evaluation/feedback loop and renders each pass as tables.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from evalloop import __version__
from evalloop.backends.base import BackendError
from evalloop.core.cancellation import CancellationToken
from evalloop.core.config import get_settings
from evalloop.core.loop import FeedbackLoop, LoopOutcome, PassOutcome
from evalloop.core.models import GateDecision
from evalloop.core.suite_loader import (
    EvaluationSuiteSpec,
    SuiteLoadError,
    load_demo_suite,
    load_suite,
)
from evalloop.utils.logging import setup_logging

EXIT_DEPLOY = 0
EXIT_BLOCK = 1
EXIT_BACKEND_FAILURE = 2
EXIT_CANCELLED = 130

app = typer.Typer(
    name="evalloop",
    help="Evaluate LLM responses, feed failures back into the prompt, and gate the result",
    no_args_is_help=True,
)
console = Console()


def _load(suite_path: Optional[Path]) -> EvaluationSuiteSpec:
    path = suite_path or get_settings().evaluation.suite_path
    try:
        return load_suite(path) if path else load_demo_suite()
    except SuiteLoadError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(EXIT_BACKEND_FAILURE)


def _results_table(outcome: PassOutcome) -> Table:
    title = f"Pass {outcome.pass_number}"
    if outcome.cancelled:
        title += " (cancelled)"

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Case", style="cyan", no_wrap=True)
    table.add_column("Risk")
    table.add_column("Relevance", justify="right")
    table.add_column("Safety", justify="right")
    table.add_column("Result")
    table.add_column("Notes", style="dim")

    for result in outcome.results:
        status = "[green]PASS[/green]" if result.passed else "[red]FAIL[/red]"
        table.add_row(
            result.case.id,
            result.case.risk_level.value,
            f"{result.relevance_score:.2f}",
            f"{result.safety_score:.2f}",
            status,
            " ".join(result.notes),
        )
    return table


def _telemetry_table(outcome: PassOutcome) -> Table:
    snapshot = outcome.snapshot
    table = Table(title="Telemetry", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Spans", str(snapshot.total_spans))
    table.add_row("Avg latency", f"{snapshot.average_latency_ms:.1f} ms")
    table.add_row("p95 latency", f"{snapshot.p95_latency_ms:.1f} ms")
    table.add_row("Avg model latency", f"{snapshot.average_model_latency_ms:.1f} ms")
    table.add_row("Avg tokens", f"{snapshot.average_tokens:.1f}")
    return table


def _print_pass(outcome: PassOutcome) -> None:
    console.print(_results_table(outcome))
    console.print(_telemetry_table(outcome))

    report = outcome.report
    color = "green" if report.decision == GateDecision.DEPLOY else "red"
    gate_lines = [
        f"Pass rate: {report.pass_rate:.0%} ({report.passed_cases}/{report.total_cases})",
        f"Average safety: {report.average_safety:.2f}",
        f"p95 latency: {report.p95_latency_ms:.1f} ms",
    ]
    gate_lines.extend(f"[dim]- {check}[/dim]" for check in report.failed_checks)
    console.print(Panel(
        "\n".join(gate_lines),
        title=f"[bold {color}]Gate: {report.decision.value}[/bold {color}]",
    ))

    console.print(Panel(Text(outcome.policy_after), title="[bold cyan]System prompt after pass[/bold cyan]"))


def _print_summary(outcome: LoopOutcome) -> None:
    table = Table(title="Before / after", show_header=True, header_style="bold magenta")
    table.add_column("Pass", justify="right")
    table.add_column("Passed", justify="right")
    table.add_column("p95", justify="right")
    table.add_column("Constraints added", justify="right")
    table.add_column("Decision")

    for p in outcome.passes:
        decision = "CANCELLED" if p.cancelled else p.report.decision.value
        table.add_row(
            str(p.pass_number),
            f"{p.passed_cases}/{len(p.results)}",
            f"{p.snapshot.p95_latency_ms:.0f} ms",
            str(len(p.constraints_added)),
            decision,
        )
    console.print(table)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold cyan]evalloop[/bold cyan] v{__version__}")


@app.command()
def cases(
    suite_path: Optional[Path] = typer.Option(None, "--suite", "-s", help="Suite YAML file"),
):
    """List the cases in a suite."""
    suite = _load(suite_path)

    table = Table(title=suite.name, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Risk")
    table.add_column("Prompt")
    table.add_column("Expected", style="green")
    table.add_column("Forbidden", style="red")

    for case in suite.cases:
        table.add_row(
            case.id,
            case.risk_level.value,
            case.prompt,
            ", ".join(case.expected_keywords),
            ", ".join(case.forbidden_keywords),
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(suite.cases)} cases, {len(suite.fixtures)} fixtures[/dim]")


@app.command()
def run(
    suite_path: Optional[Path] = typer.Option(None, "--suite", "-s", help="Suite YAML file"),
    passes: Optional[int] = typer.Option(None, "--passes", "-n", min=1, help="Number of passes"),
    deadline: Optional[float] = typer.Option(
        None, "--deadline", help="Cancel the run after this many seconds"
    ),
    no_latency: bool = typer.Option(False, "--no-latency", help="Skip simulated backend latency"),
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Log level"),
):
    """Run the evaluation/feedback loop and exit with the gate decision."""
    setup_logging(level=log_level)
    settings = get_settings()

    suite = _load(suite_path)
    passes = passes or settings.evaluation.passes
    loop = FeedbackLoop.from_suite(
        suite,
        settings,
        simulate_latency=False if no_latency else None,
    )
    policy = suite.build_policy()

    console.print(Panel(Text(policy.compose()), title=f"[bold cyan]{suite.name}[/bold cyan]: initial system prompt"))

    async def _run() -> LoopOutcome:
        token = CancellationToken.with_timeout(deadline) if deadline is not None else CancellationToken.none()
        return await loop.run(policy, passes=passes, cancel_token=token)

    try:
        outcome = asyncio.run(_run())
    except BackendError as e:
        console.print(f"[red]Backend failure ({e.backend or 'unknown'}): {e}[/red]")
        raise typer.Exit(EXIT_BACKEND_FAILURE)

    for pass_outcome in outcome.passes:
        _print_pass(pass_outcome)
    _print_summary(outcome)

    if outcome.cancelled:
        console.print(f"[yellow]Cancelled: {outcome.cancel_reason}[/yellow]")
        raise typer.Exit(EXIT_CANCELLED)

    if outcome.decision == GateDecision.DEPLOY:
        console.print("[bold green]DEPLOY[/bold green]")
        raise typer.Exit(EXIT_DEPLOY)

    console.print("[bold red]BLOCK[/bold red]")
    raise typer.Exit(EXIT_BLOCK)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
