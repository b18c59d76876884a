"""repolens CLI - GitHub repository activity analyzer.

Usage:
    repolens analyze <github-url> [options]
    repolens analyze https://github.com/pallets/flask --time-range month
    repolens serve --port 8420 --open
"""

from __future__ import annotations

import json

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .analyzer import (
    DEFAULT_TIME_RANGE,
    TIME_RANGES,
    AnalysisContext,
    AnalysisResult,
    InvalidRepositoryURL,
    analyze_repository,
    parse_github_url,
)
from .config import DEFAULT_HOST, DEFAULT_PORT, GITHUB_TOKEN_VARS
from .github import DEFAULT_RETRY_AFTER, RateLimitError, UpstreamError
from .log_setup import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
def cli():
    """repolens - GitHub repository activity analyzer.

    Summarizes who worked on what, which branches are alive, and how the
    team ships, for any public GitHub repository.
    """
    pass


@cli.command()
@click.argument("url")
@click.option(
    "--time-range", "-t",
    type=click.Choice(list(TIME_RANGES)),
    default=DEFAULT_TIME_RANGE,
    show_default=True,
    help="Window to analyze",
)
@click.option("--json-only", is_flag=True, help="Output raw JSON to stdout (for piping)")
@click.option("--no-details", is_flag=True, help="Skip per-commit file stats and tooling probes")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def analyze(url: str, time_range: str, json_only: bool, no_details: bool, verbose: bool):
    """Analyze recent activity of a GitHub repository.

    URL can be any GitHub repository URL, with or without scheme or .git.

    Examples:

        repolens analyze https://github.com/pallets/flask

        repolens analyze github.com/psf/requests -t month

        repolens analyze git@github.com:octo/demo.git --json-only
    """
    setup_logging(verbose)
    try:
        owner, repo = parse_github_url(url)
    except InvalidRepositoryURL as e:
        raise click.ClickException(str(e))

    context = AnalysisContext()
    out = Console(quiet=True) if json_only else console

    if not json_only:
        console.print()
        console.print(Panel.fit(
            f"[bold cyan]repolens v{__version__}[/] - {owner}/{repo}",
            border_style="cyan",
        ))
        if not context.settings.github_token:
            console.print(
                f"[yellow]No {' or '.join(GITHUB_TOKEN_VARS)} set; "
                "unauthenticated requests are limited to 60/hour[/]"
            )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=out,
        transient=True,
    ) as progress:
        progress.add_task(f"Fetching {owner}/{repo} ({TIME_RANGES[time_range].label})...", total=None)
        try:
            result = analyze_repository(
                owner, repo, time_range, context,
                include_details=not no_details,
                use_cache=False,
            )
        except RateLimitError as e:
            wait = e.retry_after or DEFAULT_RETRY_AFTER
            raise click.ClickException(f"{e.message} (retry in {wait}s)")
        except UpstreamError as e:
            raise click.ClickException(f"GitHub returned {e.status}: {e.message}")
        except httpx.HTTPError as e:
            raise click.ClickException(f"Cannot reach GitHub: {e}")

    if json_only:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return
    _print_result(result)


@cli.command()
@click.option("--host", default=DEFAULT_HOST, show_default=True, help="Interface to bind")
@click.option("--port", "-p", default=DEFAULT_PORT, show_default=True, type=int, help="Port to serve on")
@click.option("--open", "open_browser", is_flag=True, help="Open the dashboard in a browser")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def serve(host: str, port: int, open_browser: bool, verbose: bool):
    """Serve the dashboard and POST /api/analyze."""
    from .serve import start_server

    setup_logging(verbose)
    console.print(Panel.fit(
        f"[bold cyan]repolens v{__version__}[/]\n"
        f"Dashboard: http://{host}:{port}/\n"
        f"API:       POST http://{host}:{port}/api/analyze",
        border_style="cyan",
    ))
    console.print("[dim]Press Ctrl+C to stop[/]")
    try:
        start_server(AnalysisContext(), host=host, port=port, open_browser=open_browser)
    except OSError as e:
        raise click.ClickException(f"Cannot bind {host}:{port}: {e}")


@cli.command()
def version():
    """Show version information."""
    console.print(f"repolens v{__version__}")
    console.print("GitHub repository activity analyzer")


def _print_result(result: AnalysisResult) -> None:
    """Print a compact summary of one analysis."""
    table = Table(title=f"{result.full_name} - {result.time_range_label}", show_header=False, border_style="dim")
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Primary branch", result.primary_branch)
    table.add_row("Commits", f"{result.total_commits:,}")
    table.add_row("Contributors", str(len(result.contributors)))
    table.add_row(
        "Branches",
        f"{len(result.branches)} active / {len(result.stale_branches)} stale "
        f"({result.all_branches_count} total)",
    )
    table.add_row("Merged PRs", f"{result.merged_prs_in_range} in range / {result.merged_prs_total} recent")
    table.add_row("Strategy", result.branching.strategy)
    table.add_row("Workflow", result.branching.workflow)
    if result.keywords:
        table.add_row("Keywords", ", ".join(k["word"] for k in result.keywords[:6]))
    if result.tooling and result.tooling.cicd:
        table.add_row("CI/CD", ", ".join(t["name"] for t in result.tooling.cicd))
    console.print(table)

    if result.contributors:
        people = Table(title="Top contributors", border_style="dim")
        people.add_column("Name", style="bold")
        people.add_column("Commits", justify="right")
        people.add_column("Merges", justify="right")
        people.add_column("+/-", justify="right")
        for c in result.contributors[:10]:
            people.add_row(c.name, str(c.commits), str(c.merges), f"+{c.additions}/-{c.deletions}")
        console.print(people)

    console.print()
    console.print(Panel(result.activity_summary, title="Activity", border_style="green"))
    if result.executive_summary:
        console.print(Panel(result.executive_summary, title="Executive summary", border_style="magenta"))

    if result.warnings:
        console.print()
        console.print("[bold yellow]Warnings:[/]")
        for w in result.warnings:
            console.print(f"  [yellow]{w.branch} (page {w.page}): {w.message}[/]")


if __name__ == "__main__":
    cli()
