"""
git-armada: Command a declared fleet of Git repositories.

Repositories and groups are declared in a YAML config. Every command resolves
the requested names (repositories and/or groups) into an ordered target list
and runs status, sync, pull or an arbitrary shell command on each target,
isolating failures per repository.
"""

from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .config import (
    CONFIG_ENV_VAR,
    ArmadaConfig,
    ConfigError,
    ConfigStore,
    resolve_config_path,
)
from .formatters import OutputFormatter
from .models import (
    BatchSummary,
    ChangeCategory,
    ChangeEntry,
    CommandResult,
    FailureKind,
    GroupDescriptor,
    RepositoryDescriptor,
    RepositoryOutcome,
    StatusReport,
    StepResult,
    UpstreamState,
)

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "Automatic commit from git-armada"
NOTHING_TO_DO = "nothing to do"

# Exact match on the trimmed two-character porcelain code.
STATUS_CODE_CATEGORIES: dict[str, ChangeCategory] = {
    "M": ChangeCategory.MODIFIED,
    "A": ChangeCategory.ADDED,
    "D": ChangeCategory.DELETED,
    "R": ChangeCategory.RENAMED,
    "C": ChangeCategory.COPIED,
    "U": ChangeCategory.UNMERGED,
    "??": ChangeCategory.UNTRACKED,
}


# =============================================================================
# Target Resolution
# =============================================================================


@dataclass
class ResolvedTargets:
    """Ordered, de-duplicated targets plus the warnings raised while resolving."""

    targets: list[RepositoryDescriptor] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.targets]


def resolve_targets(
    repositories: Sequence[RepositoryDescriptor],
    groups: Sequence[GroupDescriptor],
    names: Sequence[str],
) -> ResolvedTargets:
    """Turn requested repository/group names into an ordered target list.

    An empty name list selects every repository in declaration order. A name
    matching a group expands to the group's members; otherwise it is taken as a
    repository name. Unknown names are skipped with a warning and a repository
    reachable several times keeps the position of its first mention.
    """
    resolved = ResolvedTargets()

    def warn(message: str) -> None:
        logger.warning(message)
        resolved.warnings.append(message)

    by_name: dict[str, RepositoryDescriptor] = {}
    for repo in repositories:
        if repo.name in by_name:
            warn(f"Duplicate repository name '{repo.name}' ignored")
            continue
        by_name[repo.name] = repo

    if not names:
        resolved.targets = list(by_name.values())
        return resolved

    selected: dict[str, RepositoryDescriptor] = {}
    for name in names:
        matching_groups = [g for g in groups if g.name == name]
        if matching_groups:
            for group in matching_groups:
                for member in group.repositories:
                    repo = by_name.get(member)
                    if repo is None:
                        warn(f"Repository '{member}' in group '{name}' not found")
                        continue
                    selected.setdefault(member, repo)
        else:
            repo = by_name.get(name)
            if repo is None:
                warn(f"Repository or group '{name}' not found")
                continue
            selected.setdefault(name, repo)

    if not selected:
        warn("No valid repositories found for the specified names")

    resolved.targets = list(selected.values())
    return resolved


# =============================================================================
# Output Parsing
# =============================================================================


def classify_status_code(code: str) -> ChangeCategory:
    """Map a porcelain status code to its category."""
    return STATUS_CODE_CATEGORIES.get(code.strip(), ChangeCategory.CHANGED)


def parse_porcelain(output: str) -> list[ChangeEntry]:
    """Parse ``git status --porcelain`` output.

    Each non-empty line is ``XY PATH``: two status characters, a space, then
    the path. Renames keep git's ``old -> new`` form as the path.
    """
    entries = []
    for line in output.splitlines():
        if not line.strip():
            continue
        code = line[:2].strip()
        entries.append(ChangeEntry(code=code, category=classify_status_code(code), path=line[3:]))
    return entries


def parse_ahead_behind(output: str) -> tuple[int, int] | None:
    """Parse ``rev-list --count --left-right @{upstream}...HEAD`` output.

    Returns (behind, ahead), or None when the output is not a tab-separated
    pair of counts.
    """
    parts = output.strip().split("\t")
    if len(parts) != 2 or not all(p.strip().isdecimal() for p in parts):
        return None
    return int(parts[0]), int(parts[1])


def upstream_state(ahead: int, behind: int) -> UpstreamState:
    if ahead > 0 and behind > 0:
        return UpstreamState.DIVERGED
    if ahead > 0:
        return UpstreamState.AHEAD
    if behind > 0:
        return UpstreamState.BEHIND
    return UpstreamState.IN_SYNC


# =============================================================================
# Git Operations (Low-level)
# =============================================================================


class GitOperations:
    """Low-level Git operations for a single working tree.

    Failures of the git binary, including failing to spawn it, come back as
    data (a non-zero return code) and never raise.
    """

    def __init__(self, repo_path: Path):
        self.repo_path = repo_path

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        """Run a git command in the repository."""
        logger.debug("git %s (in %s)", " ".join(args), self.repo_path)
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as e:
            return subprocess.CompletedProcess(["git", *args], 127, "", str(e))

    def _step(self, *args: str) -> tuple[bool, str]:
        """Run a mutating command; return success and its combined output."""
        result = self._run(*args)
        output = "\n".join(
            text.strip() for text in (result.stdout or "", result.stderr or "") if text and text.strip()
        )
        return result.returncode == 0, output

    def get_current_branch(self) -> str:
        """Get current branch name, empty when detached or unknown."""
        result = self._run("branch", "--show-current")
        if result.returncode == 0:
            return (result.stdout or "").strip()
        return ""

    def get_status_porcelain(self) -> tuple[bool, str]:
        """Get raw porcelain status; on failure the second item is the error."""
        result = self._run("status", "--porcelain")
        if result.returncode != 0:
            return False, (result.stderr or "").strip()
        return True, result.stdout or ""

    def get_ahead_behind(self) -> tuple[bool, str]:
        """Get raw ``behind<TAB>ahead`` counts versus upstream."""
        result = self._run("rev-list", "--count", "--left-right", "@{upstream}...HEAD")
        if result.returncode != 0:
            return False, (result.stderr or "").strip()
        return True, result.stdout or ""

    def has_remotes(self) -> bool:
        """Check if any remotes are configured."""
        result = self._run("remote")
        return result.returncode == 0 and bool((result.stdout or "").strip())

    def stage_all(self) -> tuple[bool, str]:
        return self._step("add", "-A")

    def commit(self, message: str) -> tuple[bool, str]:
        return self._step("commit", "-m", message)

    def pull(self, remote: str, branch: str) -> tuple[bool, str]:
        return self._step("pull", remote, branch)

    def push(self, remote: str, branch: str) -> tuple[bool, str]:
        return self._step("push", remote, branch)

    def init(self) -> tuple[bool, str]:
        return self._step("init")

    def add_remote(self, name: str, url: str) -> tuple[bool, str]:
        return self._step("remote", "add", name, url)


# =============================================================================
# Repository
# =============================================================================


class GitRepository:
    """High-level interface for a single declared repository."""

    def __init__(self, descriptor: RepositoryDescriptor):
        self.descriptor = descriptor
        self.name = descriptor.name
        self.path = descriptor.expanded_path
        self.ops = GitOperations(self.path)

    def _outcome(self, operation: str) -> RepositoryOutcome:
        return RepositoryOutcome(name=self.name, path=self.descriptor.path, operation=operation)

    def _missing(self, outcome: RepositoryOutcome) -> bool:
        if self.path.exists():
            return False
        outcome.fail(FailureKind.PATH_MISSING, "Repository path does not exist")
        return True

    @staticmethod
    def _record(outcome: RepositoryOutcome, step: str, result: tuple[bool, str]) -> StepResult:
        success, output = result
        step_result = StepResult(step=step, success=success, output=output)
        outcome.steps.append(step_result)
        return step_result

    @staticmethod
    def _finish_steps(outcome: RepositoryOutcome) -> RepositoryOutcome:
        failed = [s.step for s in outcome.steps if not s.success]
        if failed:
            outcome.fail(FailureKind.STEP_FAILED, f"Failed steps: {', '.join(failed)}")
        return outcome

    def inspect(self) -> RepositoryOutcome:
        """Read branch, working tree changes and upstream relation."""
        outcome = self._outcome("status")
        if self._missing(outcome):
            return outcome

        report = StatusReport(branch=self.ops.get_current_branch())
        outcome.status = report

        ok, output = self.ops.get_status_porcelain()
        if not ok:
            return outcome.fail(
                FailureKind.STATUS_QUERY,
                f"Failed to get repository status: {output}" if output else "Failed to get repository status",
            )
        report.changes = parse_porcelain(output)

        ok, output = self.ops.get_ahead_behind()
        if ok:
            counts = parse_ahead_behind(output)
            if counts is None:
                report.upstream = UpstreamState.UNKNOWN
            else:
                report.behind_count, report.ahead_count = counts
                report.upstream = upstream_state(report.ahead_count, report.behind_count)
        elif self.ops.has_remotes():
            report.upstream = UpstreamState.NO_UPSTREAM
        else:
            report.upstream = UpstreamState.NO_REMOTE

        return outcome

    def sync(self, auto_commit: bool = True, message: str = DEFAULT_COMMIT_MESSAGE) -> RepositoryOutcome:
        """Commit local changes, pull, then push what was committed.

        A dirty tree is staged and committed with ``message`` before pulling
        unless ``auto_commit`` is off. Pull always runs. Push runs only when
        this sync committed local changes, whether or not the pull succeeded.
        """
        outcome = self._outcome("sync")
        if self._missing(outcome):
            return outcome

        ok, output = self.ops.get_status_porcelain()
        if not ok:
            return outcome.fail(
                FailureKind.STATUS_QUERY,
                f"Failed to get repository status: {output}" if output else "Failed to get repository status",
            )

        remote = self.descriptor.effective_remote
        branch = self.descriptor.effective_branch
        committed = False

        if output.strip():
            if auto_commit:
                outcome.notes.append("Local changes detected")
                self._record(outcome, "stage", self.ops.stage_all())
                self._record(outcome, "commit", self.ops.commit(message))
                committed = True
            else:
                outcome.notes.append("Local changes detected, auto-commit disabled")

        self._record(outcome, "pull", self.ops.pull(remote, branch))
        if committed:
            self._record(outcome, "push", self.ops.push(remote, branch))

        return self._finish_steps(outcome)

    def pull(self) -> RepositoryOutcome:
        """Pull the configured remote and branch."""
        outcome = self._outcome("pull")
        if self._missing(outcome):
            return outcome
        self._record(
            outcome,
            "pull",
            self.ops.pull(self.descriptor.effective_remote, self.descriptor.effective_branch),
        )
        return self._finish_steps(outcome)

    def run_command(self, command: str, shell: str = "sh") -> RepositoryOutcome:
        """Run an arbitrary shell command in the working tree."""
        outcome = self._outcome("run")
        if self._missing(outcome):
            return outcome

        result = CommandResult(command=command)
        outcome.command = result
        logger.debug("%s -c %r (in %s)", shell, command, self.path)
        try:
            proc = subprocess.run(
                [shell, "-c", command],
                cwd=self.path,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as e:
            return outcome.fail(FailureKind.SPAWN_ERROR, f"Failed to execute command: {e}")

        result.exit_code = proc.returncode
        result.stdout = proc.stdout or ""
        result.stderr = proc.stderr or ""
        if proc.returncode != 0:
            outcome.fail(FailureKind.EXIT_CODE, f"Command failed with code {proc.returncode}")
        return outcome

    def initialize(self, remote_url: str | None = None) -> RepositoryOutcome:
        """Create the directory, ``git init`` it and add ``origin`` if given."""
        outcome = self._outcome("init")

        if not self.path.exists():
            try:
                self.path.mkdir(parents=True)
            except OSError as e:
                self._record(outcome, "mkdir", (False, f"Failed to create repository directory: {e}"))
                return self._finish_steps(outcome)
            outcome.notes.append(f"Created repository directory at {self.path}")

        if not (self.path / ".git").exists():
            if not self._record(outcome, "init", self.ops.init()).success:
                return self._finish_steps(outcome)

        if remote_url:
            self._record(outcome, "remote", self.ops.add_remote("origin", remote_url))

        return self._finish_steps(outcome)


# =============================================================================
# Fleet Manager
# =============================================================================


class FleetManager:
    """Run operations over the repositories declared in a config."""

    def __init__(self, config: ArmadaConfig, max_workers: int = 1):
        self.config = config
        self.max_workers = max_workers

    def resolve(self, names: Sequence[str] | None = None) -> ResolvedTargets:
        return resolve_targets(self.config.repositories, self.config.groups, names or [])

    def _run_one(
        self,
        target: RepositoryDescriptor,
        operation: Callable[[GitRepository], RepositoryOutcome],
        operation_name: str,
    ) -> RepositoryOutcome:
        try:
            return operation(GitRepository(target))
        except Exception as e:
            logger.debug("%s failed on %s", operation_name, target.name, exc_info=True)
            return RepositoryOutcome(
                name=target.name, path=target.path, operation=operation_name
            ).fail(FailureKind.EXCEPTION, str(e) or type(e).__name__)

    def run_batch(
        self,
        targets: Sequence[RepositoryDescriptor],
        operation: Callable[[GitRepository], RepositoryOutcome],
        operation_name: str,
        warnings: list[str] | None = None,
    ) -> BatchSummary:
        """Run ``operation`` on every target; outcomes keep target order.

        With ``max_workers`` above one the targets run on a thread pool, but
        the outcome list is still assembled in target order.
        """
        summary = BatchSummary(operation=operation_name, warnings=list(warnings or []))
        if not targets:
            summary.notice = NOTHING_TO_DO
            return summary

        if self.max_workers <= 1 or len(targets) <= 1:
            summary.outcomes = [self._run_one(t, operation, operation_name) for t in targets]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self._run_one, t, operation, operation_name) for t in targets
                ]
                summary.outcomes = [future.result() for future in futures]

        logger.debug(
            "%s: %d succeeded, %d failed", operation_name, summary.succeeded, summary.failed
        )
        return summary

    def _resolve_and_run(
        self,
        names: Sequence[str] | None,
        operation: Callable[[GitRepository], RepositoryOutcome],
        operation_name: str,
    ) -> BatchSummary:
        resolved = self.resolve(names)
        return self.run_batch(resolved.targets, operation, operation_name, resolved.warnings)

    def status_all(self, names: Sequence[str] | None = None) -> BatchSummary:
        return self._resolve_and_run(names, lambda repo: repo.inspect(), "status")

    def sync_all(
        self,
        names: Sequence[str] | None = None,
        auto_commit: bool = True,
        message: str = DEFAULT_COMMIT_MESSAGE,
    ) -> BatchSummary:
        return self._resolve_and_run(
            names, lambda repo: repo.sync(auto_commit=auto_commit, message=message), "sync"
        )

    def pull_all(self, names: Sequence[str] | None = None) -> BatchSummary:
        return self._resolve_and_run(names, lambda repo: repo.pull(), "pull")

    def run_all(self, command: str, names: Sequence[str] | None = None) -> BatchSummary:
        summary = self._resolve_and_run(names, lambda repo: repo.run_command(command), "run")
        summary.command = command
        return summary


# =============================================================================
# CLI Application
# =============================================================================


app = typer.Typer(
    name="git-armada",
    help="Command a declared fleet of Git repositories.",
    no_args_is_help=True,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"git-armada {__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_time=False, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        envvar=CONFIG_ENV_VAR,
        help="Config file (default: ~/.config/git-armada/config.yml)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every git invocation",
    ),
):
    """git-armada: Command a declared fleet of Git repositories."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = resolve_config_path(config)


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(force_terminal=not json_output)
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


def load_config_or_exit(ctx: typer.Context, console: Console) -> tuple[ConfigStore, ArmadaConfig]:
    """Load the config; a config error ends the invocation before any work."""
    store = ConfigStore(ctx.obj["config_path"])
    try:
        return store, store.load()
    except ConfigError as e:
        console.print(f"[red]Error with config: {escape(str(e))}[/]")
        raise typer.Exit(1)


def run_fleet_command(
    ctx: typer.Context,
    json_output: bool,
    workers: int,
    description: str,
    action: Callable[[FleetManager], BatchSummary],
) -> None:
    """Shared body of the batch commands."""
    console, formatter = get_console_and_formatter(json_output)
    _, config = load_config_or_exit(ctx, console)
    fleet = FleetManager(config, max_workers=workers)

    if not json_output:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(description, total=None)
            summary = action(fleet)
    else:
        summary = action(fleet)

    formatter.print_batch(summary)
    if summary.failed:
        raise typer.Exit(1)


NAMES_HELP = "Repositories or groups (default: all)"


@app.command(name="list")
def list_repos(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
):
    """List configured repositories and groups."""
    console, formatter = get_console_and_formatter(json_output)
    _, config = load_config_or_exit(ctx, console)
    formatter.print_config(config)


@app.command()
def status(
    ctx: typer.Context,
    names: list[str] = typer.Argument(None, help=NAMES_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    workers: int = typer.Option(
        1,
        "--workers",
        "-w",
        min=1,
        help="Repositories to process concurrently",
    ),
):
    """Show branch, changes and upstream state of repositories."""
    run_fleet_command(
        ctx,
        json_output,
        workers,
        "Checking repositories...",
        lambda fleet: fleet.status_all(names),
    )


@app.command()
def sync(
    ctx: typer.Context,
    names: list[str] = typer.Argument(None, help=NAMES_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    workers: int = typer.Option(
        1,
        "--workers",
        "-w",
        min=1,
        help="Repositories to process concurrently",
    ),
    no_commit: bool = typer.Option(
        False,
        "--no-commit",
        help="Do not auto-commit local changes (dirty repositories are only pulled)",
    ),
    message: str = typer.Option(
        DEFAULT_COMMIT_MESSAGE,
        "--message",
        "-m",
        help="Message for the automatic commit",
    ),
):
    """Sync repositories: commit local changes, pull, then push them."""
    run_fleet_command(
        ctx,
        json_output,
        workers,
        "Syncing repositories...",
        lambda fleet: fleet.sync_all(names, auto_commit=not no_commit, message=message),
    )


@app.command()
def pull(
    ctx: typer.Context,
    names: list[str] = typer.Argument(None, help=NAMES_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    workers: int = typer.Option(
        1,
        "--workers",
        "-w",
        min=1,
        help="Repositories to process concurrently",
    ),
):
    """Pull repositories from their configured remote and branch."""
    run_fleet_command(
        ctx,
        json_output,
        workers,
        "Pulling repositories...",
        lambda fleet: fleet.pull_all(names),
    )


@app.command()
def run(
    ctx: typer.Context,
    command: str = typer.Argument(..., help="Shell command to run"),
    names: list[str] = typer.Argument(None, help=NAMES_HELP),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    workers: int = typer.Option(
        1,
        "--workers",
        "-w",
        min=1,
        help="Repositories to process concurrently",
    ),
):
    """Run a shell command in every selected repository."""
    run_fleet_command(
        ctx,
        json_output,
        workers,
        f"Running {escape(command)}...",
        lambda fleet: fleet.run_all(command, names),
    )


@app.command()
def init(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Repository name"),
    path: str = typer.Argument(..., help="Working tree location (~ allowed)"),
    remote: str = typer.Option(
        None,
        "--remote",
        "-r",
        help="Remote URL, added as 'origin'",
    ),
    branch: str = typer.Option(
        None,
        "--branch",
        "-b",
        help="Default branch (default: main)",
    ),
    group: list[str] = typer.Option(
        None,
        "--group",
        "-g",
        help="Group to add the repository to (repeatable)",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Initialize a repository and add it to the config."""
    console, formatter = get_console_and_formatter(json_output)
    store, config = load_config_or_exit(ctx, console)

    if config.get_repository(name) is not None:
        console.print(f"[bold red]ERROR:[/] Repository '{escape(name)}' already exists in config")
        raise typer.Exit(1)

    descriptor = RepositoryDescriptor(
        name=name,
        path=path,
        remote="origin" if remote else None,
        branch=branch,
        groups=tuple(group) if group else None,
    )
    outcome = GitRepository(descriptor).initialize(remote_url=remote)
    if not outcome.success or not json_output:
        formatter.print_outcome(outcome)
    if not outcome.success:
        raise typer.Exit(1)

    try:
        config.add_repository(descriptor, list(group or []))
        store.save(config)
    except ConfigError as e:
        console.print(f"[red]Error with config: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if json_output:
        output = {"outcome": outcome.to_dict(), "added": descriptor.to_dict()}
        console.out(json.dumps(output, indent=2), highlight=False)
    else:
        console.print(f"[bold green]SUCCESS:[/] Added repository '{escape(name)}' to config")
