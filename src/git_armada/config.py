"""YAML configuration store for declared repositories and groups."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .models import GroupDescriptor, RepositoryDescriptor

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GIT_ARMADA_CONFIG"
DEFAULT_CONFIG_PATH = Path("~") / ".config" / "git-armada" / "config.yml"


class ConfigError(Exception):
    """Configuration could not be read, parsed or validated."""


@dataclass
class ArmadaConfig:
    """Declared repositories and groups, in declaration order."""

    repositories: list[RepositoryDescriptor] = field(default_factory=list)
    groups: list[GroupDescriptor] = field(default_factory=list)

    def get_repository(self, name: str) -> RepositoryDescriptor | None:
        for repo in self.repositories:
            if repo.name == name:
                return repo
        return None

    def add_repository(
        self, repo: RepositoryDescriptor, groups: list[str] | None = None
    ) -> None:
        """Append a repository and register it in the named groups.

        Groups that do not exist yet are created at the end of the list.
        """
        if self.get_repository(repo.name) is not None:
            raise ConfigError(f"Repository '{repo.name}' already exists in config")
        self.repositories.append(repo)

        for group_name in groups or []:
            for i, group in enumerate(self.groups):
                if group.name == group_name:
                    if repo.name not in group.repositories:
                        self.groups[i] = GroupDescriptor(
                            name=group.name,
                            repositories=(*group.repositories, repo.name),
                        )
                    break
            else:
                self.groups.append(GroupDescriptor(name=group_name, repositories=(repo.name,)))

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"repositories": [r.to_dict() for r in self.repositories]}
        if self.groups:
            data["groups"] = [g.to_dict() for g in self.groups]
        return data


def default_config() -> ArmadaConfig:
    """Bootstrap content written when no config file exists."""
    return ArmadaConfig(
        repositories=[
            RepositoryDescriptor(
                name="example-repo",
                path="~/repos/example",
                remote="origin",
                branch="main",
                groups=("default",),
            )
        ],
        groups=[GroupDescriptor(name="default", repositories=("example-repo",))],
    )


def resolve_config_path(explicit: Path | str | None = None) -> Path:
    """Resolve the config file location.

    Priority order:
    1. Explicit path (``--config``)
    2. $GIT_ARMADA_CONFIG environment variable
    3. ~/.config/git-armada/config.yml (XDG-style default)
    """
    if explicit:
        return Path(os.path.expanduser(str(explicit)))

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(os.path.expanduser(env_path))

    return Path(os.path.expanduser(str(DEFAULT_CONFIG_PATH)))


# =============================================================================
# Parsing
# =============================================================================


def _require_str(entry: dict, key: str, where: str, optional: bool = False) -> str | None:
    value = entry.get(key)
    if value is None:
        if optional:
            return None
        raise ConfigError(f"{where}: missing required field '{key}'")
    if not isinstance(value, str):
        raise ConfigError(f"{where}: field '{key}' must be a string")
    return value


def _require_str_list(entry: dict, key: str, where: str, optional: bool = False) -> tuple[str, ...] | None:
    value = entry.get(key)
    if value is None:
        if optional:
            return None
        raise ConfigError(f"{where}: missing required field '{key}'")
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{where}: field '{key}' must be a list of strings")
    return tuple(value)


def parse_config(data: Any) -> ArmadaConfig:
    """Build an ArmadaConfig from already-parsed YAML data."""
    if not isinstance(data, dict):
        raise ConfigError("Config must be a mapping with a 'repositories' list")

    raw_repos = data.get("repositories")
    if not isinstance(raw_repos, list):
        raise ConfigError("Config field 'repositories' must be a list")

    repositories: list[RepositoryDescriptor] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw_repos):
        where = f"repositories[{index}]"
        if not isinstance(entry, dict):
            raise ConfigError(f"{where}: must be a mapping")
        name = _require_str(entry, "name", where)
        if name in seen:
            raise ConfigError(f"{where}: duplicate repository name '{name}'")
        seen.add(name)
        repositories.append(
            RepositoryDescriptor(
                name=name,
                path=_require_str(entry, "path", where),
                remote=_require_str(entry, "remote", where, optional=True),
                branch=_require_str(entry, "branch", where, optional=True),
                groups=_require_str_list(entry, "groups", where, optional=True),
            )
        )

    raw_groups = data.get("groups")
    if raw_groups is None:
        raw_groups = []
    if not isinstance(raw_groups, list):
        raise ConfigError("Config field 'groups' must be a list")

    groups: list[GroupDescriptor] = []
    for index, entry in enumerate(raw_groups):
        where = f"groups[{index}]"
        if not isinstance(entry, dict):
            raise ConfigError(f"{where}: must be a mapping")
        groups.append(
            GroupDescriptor(
                name=_require_str(entry, "name", where),
                repositories=_require_str_list(entry, "repositories", where),
            )
        )

    return ArmadaConfig(repositories=repositories, groups=groups)


# =============================================================================
# Store
# =============================================================================


class ConfigStore:
    """Load and persist the config file at an explicit path."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> ArmadaConfig:
        """Load the config, writing the bootstrap config if none exists.

        A file that exists but cannot be read or parsed raises ConfigError and
        is left untouched.
        """
        if not self.path.exists():
            config = default_config()
            self.save(config)
            logger.warning(
                "Config file not found, created default config at %s. "
                "Please edit this file to add your repositories.",
                self.path,
            )
            return config

        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config {self.path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing config {self.path}: {e}") from e

        config = parse_config(data)
        logger.debug(
            "Loaded %d repositories and %d groups from %s",
            len(config.repositories),
            len(config.groups),
            self.path,
        )
        return config

    def save(self, config: ArmadaConfig) -> None:
        """Write the config as YAML, preserving declaration order."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Cannot write config {self.path}: {e}") from e
