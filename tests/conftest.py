"""Shared fixtures for the update bot test suite."""

import json
import logging

import pytest

from updatebot.config.models import Configuration, HostRule
from updatebot.config.settings import get_settings
from updatebot.forge.base import Forge, PendingUpdate, PullRequest, Repository, UpdateSource
from updatebot.logging.audit import get_audit_logger

RENOVATE_ENV_VARS = (
    "RENOVATE_ENDPOINT",
    "RENOVATE_GITHUB_TOKEN",
    "RENOVATE_CONFIG_FILE",
    "RENOVATE_HTTP_TIMEOUT",
    "RENOVATE_LOG_LEVEL",
    "RENOVATE_AUDIT_LOG_FILE",
)


class FakeForge(Forge):
    """In-memory forge recording the PRs it was asked to open."""

    def __init__(self, repos=None, onboarded=(), failures=None):
        self.repos = list(repos or [])
        self.onboarded = set(onboarded)
        self.failures = dict(failures or {})  # full_name -> exception raised by is_onboarded
        self.created: list[PullRequest] = []
        self.discover_calls = 0
        self.closed = False

    async def discover_repositories(self) -> list[Repository]:
        self.discover_calls += 1
        return list(self.repos)

    async def is_onboarded(self, repo: Repository) -> bool:
        if repo.full_name in self.failures:
            raise self.failures[repo.full_name]
        return repo.full_name in self.onboarded

    async def create_onboarding_pr(self, repo: Repository, config_file_name: str) -> PullRequest:
        return self._open(repo, f"Configure Renovate ({config_file_name})")

    async def create_update_pr(self, repo: Repository, update: PendingUpdate) -> PullRequest:
        return self._open(repo, update.title)

    def _open(self, repo: Repository, title: str) -> PullRequest:
        pr = PullRequest(
            repository=repo.full_name,
            number=len(self.created) + 1,
            title=title,
            url=f"https://forgejo.example.com/{repo.full_name}/pulls/{len(self.created) + 1}",
        )
        self.created.append(pr)
        return pr

    async def close(self) -> None:
        self.closed = True


class FakeUpdateSource(UpdateSource):
    def __init__(self, updates=None):
        self.updates = dict(updates or {})  # full_name -> list[PendingUpdate]

    async def pending_updates(self, repo: Repository) -> list[PendingUpdate]:
        return list(self.updates.get(repo.full_name, []))


def make_updates(count: int, prefix: str = "dep") -> list[PendingUpdate]:
    """Build `count` distinct pending updates."""
    return [
        PendingUpdate(
            dependency=f"{prefix}-{i}",
            current_version="1.0.0",
            new_version="1.1.0",
            branch_name=f"renovate/{prefix}-{i}-1.x",
        )
        for i in range(count)
    ]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep RENOVATE_* variables from the host out of the tests."""
    for name in RENOVATE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def restore_audit_logger():
    """Undo setup_logging() so later tests log through pytest's capture."""
    yield
    logger = get_audit_logger()
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(RENOVATE_ENDPOINT="https://forgejo.example.com/api/v1")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()
        return get_settings()

    yield _override

    get_settings.cache_clear()


@pytest.fixture
def sample_config() -> Configuration:
    """Configuration equivalent to the deployment's static bot config."""
    return Configuration(
        endpoint="https://forgejo.example.com/api/v1",
        platform="forgejo",
        autodiscover=True,
        onboarding=True,
        pr_hourly_limit=2,
        pr_concurrent_limit=10,
        host_rules=(
            HostRule(match_host="github.com", token="ghp-test-token"),
            HostRule(match_host="api.github.com", token="ghp-test-token"),
        ),
    )


@pytest.fixture
def config_json_file(tmp_path):
    """Write a JSON bot config file and return its path."""
    def _write(data) -> str:
        path = tmp_path / "config.json"
        text = data if isinstance(data, str) else json.dumps(data)
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write
