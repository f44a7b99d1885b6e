"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .models import ChangeCategory, FailureKind, UpstreamState

if TYPE_CHECKING:
    from .config import ArmadaConfig
    from .models import BatchSummary, CommandResult, RepositoryOutcome, StatusReport


CATEGORY_LABELS: dict[ChangeCategory, tuple[str, str]] = {
    ChangeCategory.MODIFIED: ("Modified:", "yellow"),
    ChangeCategory.ADDED: ("Added:", "green"),
    ChangeCategory.DELETED: ("Deleted:", "red"),
    ChangeCategory.RENAMED: ("Renamed:", "blue"),
    ChangeCategory.COPIED: ("Copied:", "cyan"),
    ChangeCategory.UNMERGED: ("Updated but unmerged:", "red"),
    ChangeCategory.UNTRACKED: ("Untracked:", "bright_black"),
    ChangeCategory.CHANGED: ("Changed:", "default"),
}

BATCH_TITLES = {
    "status": "Repository Status:",
    "sync": "Syncing repositories...",
    "pull": "Pulling repositories...",
    "run": "Running command in repositories:",
}

BATCH_DONE = {
    "sync": "Sync complete!",
    "pull": "Pull complete!",
    "run": "Command execution complete!",
}


def upstream_lines(report: StatusReport) -> list[str]:
    """Markup lines describing how the branch relates to its upstream.

    Ahead and behind are reported independently, so a diverged branch gets
    both lines. An unknown relation yields no line.
    """
    if report.upstream == UpstreamState.NO_UPSTREAM:
        return ["[yellow]![/] No upstream branch set"]
    if report.upstream == UpstreamState.NO_REMOTE:
        return ["[yellow]![/] No remote configured"]
    if report.upstream == UpstreamState.IN_SYNC:
        return ["[green]=[/] In sync with remote"]
    if report.upstream == UpstreamState.UNKNOWN:
        return []

    lines = []
    if report.ahead_count > 0:
        lines.append(f"[green]↑[/] {report.ahead_count} commit(s) ahead of remote")
    if report.behind_count > 0:
        lines.append(f"[red]↓[/] {report.behind_count} commit(s) behind remote")
    return lines


def _indented(text: str, indent: str = "    ") -> list[str]:
    return [f"{indent}{line}" for line in text.rstrip("\n").splitlines()]


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def _print_json(self, data: dict) -> None:
        self.console.out(json.dumps(data, indent=2, default=str), highlight=False)

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def print_batch(self, summary: BatchSummary):
        """Print every outcome in target order, then the summary."""
        if self.use_json:
            self._print_json(summary.to_dict())
            return

        if not summary.outcomes:
            self.console.print(f"[dim]No repositories selected: {summary.notice}.[/]")
            self._print_warnings(summary)
            return

        title = BATCH_TITLES.get(summary.operation, f"{summary.operation.title()}:")
        if summary.command:
            title = f"{title} [yellow]{escape(summary.command)}[/]"
        self.console.print(f"[bold green]{title}[/]")

        for outcome in summary.outcomes:
            self.print_outcome(outcome)

        done = BATCH_DONE.get(summary.operation)
        if done:
            self.console.print(f"\n[bold green]{done}[/]")
        self._print_summary(summary)

    def _print_summary(self, summary: BatchSummary):
        parts = [f"[bold]Total:[/] {summary.attempted}"]
        parts.append(f"[green]✓ Succeeded:[/] {summary.succeeded}")
        if summary.failed > 0:
            parts.append(f"[red]✗ Failed:[/] {summary.failed}")
        if summary.warnings:
            parts.append(f"[yellow]⚠ Warnings:[/] {len(summary.warnings)}")
        self.console.print("\n" + " | ".join(parts))
        self._print_warnings(summary)

    def _print_warnings(self, summary: BatchSummary):
        for warning in summary.warnings:
            self.console.print(f"  [yellow]⚠ {escape(warning)}[/]")

    # -------------------------------------------------------------------------
    # Single outcome
    # -------------------------------------------------------------------------

    def print_outcome(self, outcome: RepositoryOutcome):
        """Print one repository section."""
        if self.use_json:
            self._print_json(outcome.to_dict())
            return

        self.console.print(f"\n[bold yellow]{escape(outcome.name)}[/] ({escape(outcome.path)})")

        if outcome.failure == FailureKind.PATH_MISSING:
            self.console.print("  [bold red]ERROR:[/] Repository path does not exist")
            return

        for note in outcome.notes:
            if note.startswith("Local changes"):
                self.console.print(f"  [bold yellow]WARNING:[/] {escape(note)}")
            else:
                self.console.print(f"  [dim]{escape(note)}[/]")

        if outcome.status is not None:
            self._print_status(outcome.status)

        for step in outcome.steps:
            mark = "[green]✓[/]" if step.success else "[red]✗[/]"
            self.console.print(f"  {mark} {step.step}")
            style = "dim" if step.success else "red"
            for line in _indented(step.output):
                self.console.print(f"[{style}]{escape(line)}[/]")

        if outcome.command is not None:
            self._print_command(outcome.command)

        if outcome.failure in (
            FailureKind.STATUS_QUERY,
            FailureKind.EXIT_CODE,
            FailureKind.SPAWN_ERROR,
            FailureKind.EXCEPTION,
        ):
            self.console.print(f"  [bold red]ERROR:[/] {escape(outcome.error)}")
        elif outcome.operation == "run" and outcome.success:
            self.console.print("  [bold green]SUCCESS:[/] Command executed successfully")

    def _print_status(self, report: StatusReport):
        branch = escape(report.branch) if report.branch else "[dim](detached or unknown)[/]"
        self.console.print(f"  Current branch: [cyan]{branch}[/]")

        if not report.changes:
            self.console.print("  Status: [green]Clean[/]")
        else:
            self.console.print("  Status: [yellow]Changes detected[/]")
            for change in report.changes:
                label, color = CATEGORY_LABELS[change.category]
                self.console.print(f"    [{color}]{label}[/] {escape(change.path)}")

        for line in upstream_lines(report):
            self.console.print(f"  {line}")

    def _print_command(self, result: CommandResult):
        """Show non-empty streams; stderr in red under its own heading."""
        if result.stdout.strip():
            self.console.print("  Output:")
            for line in _indented(result.stdout):
                self.console.print(escape(line))
        if result.stderr.strip():
            self.console.print("  [red]Errors:[/]")
            for line in _indented(result.stderr):
                self.console.print(f"[red]{escape(line)}[/]")

    # -------------------------------------------------------------------------
    # Config listing
    # -------------------------------------------------------------------------

    def print_config(self, config: ArmadaConfig):
        """Print configured repositories and groups."""
        if self.use_json:
            output = config.to_dict()
            output["repositories"] = [
                {**repo.to_dict(), "exists": repo.expanded_path.exists()}
                for repo in config.repositories
            ]
            output.setdefault("groups", [])
            self._print_json(output)
            return

        table = Table(title="Configured Repositories")
        table.add_column("", justify="center")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Path")
        table.add_column("Remote")
        table.add_column("Branch")
        table.add_column("Groups")

        for repo in config.repositories:
            exists = repo.expanded_path.exists()
            table.add_row(
                "[green]✓[/]" if exists else "[red]✗[/]",
                escape(repo.name),
                escape(repo.path),
                escape(repo.remote or ""),
                escape(repo.branch or ""),
                escape(", ".join(repo.groups or ())),
            )
        self.console.print(table)

        if config.groups:
            self.console.print("\n[bold green]Configured Groups:[/]")
            for group in config.groups:
                self.console.print(
                    f"  [yellow]{escape(group.name)}[/] - {len(group.repositories)} repositories"
                )
                self.console.print(f"    Repos: {escape(', '.join(group.repositories))}")
