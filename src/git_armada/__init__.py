"""git-armada: Command a declared fleet of Git repositories."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .config import ArmadaConfig, ConfigError, ConfigStore, default_config, resolve_config_path
from .core import (
    DEFAULT_COMMIT_MESSAGE,
    FleetManager,
    GitOperations,
    GitRepository,
    ResolvedTargets,
    app,
    parse_ahead_behind,
    parse_porcelain,
    resolve_targets,
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
    WorkingTreeStatus,
)

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Config
    "ArmadaConfig",
    "ConfigError",
    "ConfigStore",
    "default_config",
    "resolve_config_path",
    # Models
    "BatchSummary",
    "ChangeCategory",
    "ChangeEntry",
    "CommandResult",
    "FailureKind",
    "GroupDescriptor",
    "RepositoryDescriptor",
    "RepositoryOutcome",
    "StatusReport",
    "StepResult",
    "UpstreamState",
    "WorkingTreeStatus",
    # Operations
    "DEFAULT_COMMIT_MESSAGE",
    "FleetManager",
    "GitOperations",
    "GitRepository",
    "ResolvedTargets",
    # Functions
    "parse_ahead_behind",
    "parse_porcelain",
    "resolve_targets",
    # Formatters
    "OutputFormatter",
]
