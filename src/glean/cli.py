"""CLI interface for glean."""

import asyncio
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from glean.config import GleanConfig, load_config, merge_cli_overrides
from glean.errors import ConfigError, GleanError, save_report
from glean.generation import ClaudeCliGenerator, TextGenerator
from glean.models import SummaryLength, SummaryStyle
from glean.notion import NotionFetcher
from glean.pipeline import ContentPipeline, PageAnalysis
from glean.selection import RECENCY_FILENAME, HistoryAwareSelector, JsonRecencyStore
from glean.store import JsonHistoryStore
from glean.summarizer import RunOutcome, RunStatus, SummarizationOrchestrator
from glean.trace import LoggingTracer

app = typer.Typer(
    name="glean",
    help="Pick one piece of your Notion notes and summarize it.",
)

console = Console()
_stderr_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from glean import __version__

        console.print(f"glean {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """glean - smart single-unit summaries of Notion pages."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=_stderr_console, rich_tracebacks=True)],
            force=True,
        )


def _load(config_path: Path | None, **overrides: object) -> GleanConfig:
    try:
        config = merge_cli_overrides(load_config(config_path), **overrides)
    except ConfigError as exc:
        _stderr_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc
    if not config.notion.is_configured:
        _stderr_console.print(
            "[red]Error:[/red] No Notion token. Set NOTION_TOKEN or \\[notion].token in .glean.toml."
        )
        raise typer.Exit(1)
    return config


def _build_fetcher(config: GleanConfig) -> NotionFetcher:
    return NotionFetcher(config.notion, config.retry)


def _build_generator(config: GleanConfig) -> TextGenerator:
    return ClaudeCliGenerator(timeout=config.generation.timeout)


async def _run_summary(config: GleanConfig, page_ids: list[str], user: str) -> RunOutcome:
    output_dir = config.output.path
    tracer = LoggingTracer()
    async with _build_fetcher(config) as fetcher:
        pipeline = ContentPipeline(fetcher, config, tracer)
        selector = HistoryAwareSelector(
            JsonRecencyStore(output_dir / RECENCY_FILENAME, config.selection.recent_window_hours),
            config.selection,
            tracer,
        )
        orchestrator = SummarizationOrchestrator(
            pipeline,
            _build_generator(config),
            JsonHistoryStore(output_dir),
            selector=selector,
            config=config,
            tracer=tracer,
        )
        return await orchestrator.run(page_ids, user, config.summary)


async def _run_analysis(config: GleanConfig, page_id: str) -> PageAnalysis:
    async with _build_fetcher(config) as fetcher:
        pipeline = ContentPipeline(fetcher, config, LoggingTracer())
        return await pipeline.analyze_page(page_id, datetime.now(UTC))


def _print_outcome(outcome: RunOutcome) -> None:
    result = outcome.result
    if result is None:
        return
    unit = result.source_content[0]
    label = "Repeat perspective" if result.is_repetition else "Summary"
    console.print(
        f"\n[bold]{label}:[/bold] {escape(unit.title)} [dim]({unit.kind}, {result.model})[/dim]\n"
    )
    console.print(result.summary, markup=False)
    if result.key_insights:
        console.print("\n[bold]Key insights[/bold]")
        for insight in result.key_insights:
            console.print(f"  - {insight}", markup=False)
    if result.action_items:
        console.print("\n[bold]Action items[/bold]")
        for item in result.action_items:
            due = f" (due {item.due_date})" if item.due_date else ""
            console.print(f"  [{item.priority}] {item.text}{due}", markup=False)
    console.print(
        f"\n[dim]Priority: {result.priority} | {result.word_count} words | "
        f"{result.reading_time} min read | tags: {', '.join(result.tags)}[/dim]"
    )


@app.command(name="summarize")
def summarize_cmd(
    page_ids: Annotated[list[str], typer.Argument(help="Notion page ids to draw from.")],
    user: Annotated[
        str,
        typer.Option("--user", "-u", help="User whose history drives selection."),
    ] = "default",
    style: Annotated[
        Optional[SummaryStyle],
        typer.Option("--style", "-s", help="Summary style."),
    ] = None,
    length: Annotated[
        Optional[SummaryLength],
        typer.Option("--length", "-l", help="Summary length."),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("--model", help="Override the primary Claude model."),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Directory for history and run reports."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .glean.toml file."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON."),
    ] = False,
) -> None:
    """Select one unit of content from the pages and summarize it."""
    config = _load(
        config_path,
        style=style,
        length=length,
        model=model,
        output_directory=str(output) if output else None,
    )

    outcome = asyncio.run(_run_summary(config, page_ids, user))

    report_path = save_report(outcome.report, config.output.path)
    logging.getLogger(__name__).debug("Run report written to %s", report_path)

    if outcome.status == RunStatus.FAILED:
        _stderr_console.print(f"[red]Run failed:[/red] {escape(outcome.reason)}")
        _stderr_console.print(outcome.report.summary_text(), markup=False)
        raise typer.Exit(1)
    if outcome.status == RunStatus.NOTHING_TO_SUMMARIZE:
        console.print(f"[yellow]Nothing to summarize[/yellow] ({outcome.reason}).")
        return

    if as_json and outcome.result is not None:
        typer.echo(outcome.result.model_dump_json(indent=2))
        return
    _print_outcome(outcome)


@app.command(name="analyze")
def analyze_cmd(
    page_id: Annotated[str, typer.Argument(help="Notion page id.")],
    top: Annotated[int, typer.Option("--top", "-n", help="Candidates to show.")] = 10,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .glean.toml file."),
    ] = None,
) -> None:
    """Show how a page is classified and which candidates it yields."""
    config = _load(config_path)
    try:
        analysis = asyncio.run(_run_analysis(config, page_id))
    except GleanError as exc:
        _stderr_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc

    profile = analysis.profile
    console.print(f"[bold]{escape(analysis.page.title)}[/bold]")
    console.print(
        f"Pattern: {profile.primary_pattern} | Style: {profile.organization_style} | "
        f"Density: {profile.density} | Complexity: {profile.complexity}"
    )
    console.print(f"Blocks: {profile.total_blocks} | Consistency: {profile.consistency_score:.2f}")
    console.print(f"Strategies: {', '.join(s.value for s in analysis.strategies)}")

    table = Table(title="Candidates")
    table.add_column("Score", justify="right")
    table.add_column("Kind")
    table.add_column("Title")
    table.add_column("Words", justify="right")
    ranked = sorted(analysis.candidates, key=lambda c: c.total_score, reverse=True)
    for candidate in ranked[:top]:
        unit = candidate.unit
        table.add_row(
            f"{candidate.total_score:.1f}", str(unit.kind), escape(unit.title), str(unit.word_count)
        )
    console.print(table)


@app.command(name="history")
def history_cmd(
    user: Annotated[str, typer.Option("--user", "-u", help="User id.")] = "default",
    limit: Annotated[int, typer.Option("--limit", "-n", help="Summaries to show.")] = 10,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Directory holding history."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .glean.toml file."),
    ] = None,
) -> None:
    """List a user's most recent summaries."""
    try:
        config = merge_cli_overrides(
            load_config(config_path), output_directory=str(output) if output else None
        )
    except ConfigError as exc:
        _stderr_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc

    store = JsonHistoryStore(config.output.path)
    summaries = asyncio.run(store.get_recent_summaries(user, limit))
    if not summaries:
        console.print(f"No summaries for {user}.")
        return

    table = Table(title=f"History for {user}")
    table.add_column("Created")
    table.add_column("Source")
    table.add_column("Kind")
    table.add_column("Priority")
    table.add_column("Repeat")
    for summary in summaries:
        unit = summary.source_content[0] if summary.source_content else None
        table.add_row(
            summary.created_at.strftime("%Y-%m-%d %H:%M"),
            escape(unit.title) if unit else "-",
            str(unit.kind) if unit else "-",
            str(summary.priority),
            "yes" if summary.is_repetition else "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
