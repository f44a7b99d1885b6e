"""Tests for resolving repository and group names into targets."""

import logging

from git_armada.core import resolve_targets
from git_armada.models import GroupDescriptor, RepositoryDescriptor


def _repos(*names):
    return [RepositoryDescriptor(name=n, path=f"~/src/{n}") for n in names]


REPOS = _repos("api", "web", "docs", "infra")
GROUPS = [
    GroupDescriptor(name="backend", repositories=("api", "infra")),
    GroupDescriptor(name="frontend", repositories=("web", "api")),
    GroupDescriptor(name="stale", repositories=("api", "ghost")),
]


class TestResolveAll:
    """Tests for an empty name list."""

    def test_empty_names_returns_all_in_declaration_order(self):
        """No filter means every repository, in config order."""
        resolved = resolve_targets(REPOS, GROUPS, [])
        assert resolved.names == ["api", "web", "docs", "infra"]
        assert resolved.warnings == []

    def test_empty_names_with_no_repositories(self):
        """An empty config resolves to nothing without warnings."""
        resolved = resolve_targets([], [], [])
        assert resolved.targets == []
        assert resolved.warnings == []


class TestResolveNames:
    """Tests for direct names and group expansion."""

    def test_direct_names_keep_request_order(self):
        """Repository names are returned in the order requested."""
        resolved = resolve_targets(REPOS, GROUPS, ["docs", "api"])
        assert resolved.names == ["docs", "api"]

    def test_group_expands_in_declared_order(self):
        """A group name expands to its members in group order."""
        resolved = resolve_targets(REPOS, GROUPS, ["frontend"])
        assert resolved.names == ["web", "api"]

    def test_group_takes_precedence_over_repository_name(self):
        """A name matching a group is expanded even if a repo shares it."""
        repos = _repos("tools", "api")
        groups = [GroupDescriptor(name="tools", repositories=("api",))]
        resolved = resolve_targets(repos, groups, ["tools"])
        assert resolved.names == ["api"]

    def test_overlapping_groups_deduplicated_at_first_mention(self):
        """A repository reachable twice appears once, where first seen."""
        resolved = resolve_targets(REPOS, GROUPS, ["backend", "frontend", "api"])
        assert resolved.names == ["api", "infra", "web"]

    def test_direct_then_group_keeps_direct_position(self):
        """First occurrence wins regardless of how it was reached."""
        resolved = resolve_targets(REPOS, GROUPS, ["web", "backend"])
        assert resolved.names == ["web", "api", "infra"]

    def test_resolution_is_deterministic(self):
        """Resolving twice yields identical ordered output."""
        names = ["frontend", "docs", "backend"]
        first = resolve_targets(REPOS, GROUPS, names)
        second = resolve_targets(REPOS, GROUPS, names)
        assert first.names == second.names
        assert first.warnings == second.warnings


class TestResolveWarnings:
    """Tests for unknown names and soft errors."""

    def test_unknown_names_only_returns_empty_with_warning(self, caplog):
        """Unknown names give an empty list and a warning, never an error."""
        with caplog.at_level(logging.WARNING, logger="git_armada.core"):
            resolved = resolve_targets(REPOS, GROUPS, ["nope", "nada"])

        assert resolved.targets == []
        assert "Repository or group 'nope' not found" in resolved.warnings
        assert resolved.warnings[-1] == "No valid repositories found for the specified names"
        assert "No valid repositories found" in caplog.text

    def test_unknown_name_skipped_others_resolved(self):
        """One unknown name does not stop the rest."""
        resolved = resolve_targets(REPOS, GROUPS, ["nope", "web"])
        assert resolved.names == ["web"]
        assert resolved.warnings == ["Repository or group 'nope' not found"]

    def test_missing_group_member_warns_and_skips(self):
        """A group member absent from the config is skipped with a warning."""
        resolved = resolve_targets(REPOS, GROUPS, ["stale"])
        assert resolved.names == ["api"]
        assert resolved.warnings == ["Repository 'ghost' in group 'stale' not found"]

    def test_duplicate_repository_names_first_wins(self):
        """Colliding names keep the first descriptor."""
        repos = [
            RepositoryDescriptor(name="api", path="/first"),
            RepositoryDescriptor(name="api", path="/second"),
        ]
        resolved = resolve_targets(repos, [], [])
        assert [t.path for t in resolved.targets] == ["/first"]
        assert resolved.warnings == ["Duplicate repository name 'api' ignored"]

    def test_empty_group_resolves_to_nothing(self):
        """An existing group without members is not treated as a repo name."""
        groups = [GroupDescriptor(name="api", repositories=())]
        resolved = resolve_targets(REPOS, groups, ["api"])
        assert resolved.targets == []
        assert "No valid repositories found for the specified names" in resolved.warnings
