"""Abstract interfaces for the forge and for update detection."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Repository:
    full_name: str  # "owner/name"
    archived: bool = False


@dataclass(frozen=True)
class PendingUpdate:
    dependency: str
    current_version: str
    new_version: str
    branch_name: str = ""

    @property
    def title(self) -> str:
        return f"Update {self.dependency} to {self.new_version}"


@dataclass
class PullRequest:
    repository: str
    number: int
    title: str
    url: str = ""


class Forge(ABC):
    """Base class for forge platform implementations."""

    @abstractmethod
    async def discover_repositories(self) -> list[Repository]:
        """All repositories the bot's account can access."""
        ...

    @abstractmethod
    async def is_onboarded(self, repo: Repository) -> bool:
        """Whether the repository already carries a bot config file."""
        ...

    @abstractmethod
    async def create_onboarding_pr(self, repo: Repository, config_file_name: str) -> PullRequest:
        ...

    @abstractmethod
    async def create_update_pr(self, repo: Repository, update: PendingUpdate) -> PullRequest:
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if the forge holds connections."""
        pass


class UpdateSource(ABC):
    """Supplies the dependency updates detected for a repository."""

    @abstractmethod
    async def pending_updates(self, repo: Repository) -> list[PendingUpdate]:
        ...
