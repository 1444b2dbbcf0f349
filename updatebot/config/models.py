"""Configuration value objects.

A Configuration is built once at process start by the loader and then
passed explicitly to everything that needs it. Both types are frozen.
"""

from dataclasses import dataclass, field
from urllib.parse import urlsplit

from updatebot.errors import ConfigError

DEFAULT_PLATFORM = "forgejo"
DEFAULT_PR_HOURLY_LIMIT = 2
DEFAULT_PR_CONCURRENT_LIMIT = 10
DEFAULT_ONBOARDING_CONFIG_FILE = "renovate.json"


def host_of(url_or_host: str) -> str:
    """Lowercased hostname of a URL or a bare host[:port][/path] string."""
    if "://" in url_or_host:
        return (urlsplit(url_or_host).hostname or "").lower()
    return url_or_host.split("/", 1)[0].rsplit(":", 1)[0].lower()


@dataclass(frozen=True)
class HostRule:
    match_host: str
    token: str = field(default="", repr=False)

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    @property
    def is_url(self) -> bool:
        return "://" in self.match_host

    def specificity(self, url_or_host: str) -> tuple[int, int] | None:
        """Rank how well this rule matches, or None when it does not.

        Parent-domain matches rank below exact host matches, which rank
        below URL prefix matches. Longer patterns win within a rank.
        """
        pattern = self.match_host.lower()
        if self.is_url:
            if "://" in url_or_host and url_or_host.lower().startswith(pattern):
                return (3, len(pattern))
            return None

        pattern = pattern.lstrip(".")
        host = host_of(url_or_host)
        if not host:
            return None
        if host == pattern:
            return (2, len(pattern))
        if host.endswith("." + pattern):
            return (1, len(pattern))
        return None

    def matches(self, url_or_host: str) -> bool:
        return self.specificity(url_or_host) is not None


@dataclass(frozen=True)
class Configuration:
    endpoint: str
    platform: str = DEFAULT_PLATFORM
    autodiscover: bool = True
    onboarding: bool = True
    pr_hourly_limit: int = DEFAULT_PR_HOURLY_LIMIT  # 0 = unlimited
    pr_concurrent_limit: int = DEFAULT_PR_CONCURRENT_LIMIT  # 0 = unlimited
    host_rules: tuple[HostRule, ...] = ()
    repositories: tuple[str, ...] = ()  # used when autodiscover is off
    autodiscover_filter: tuple[str, ...] = ()  # glob patterns on owner/name
    onboarding_config_file_name: str = DEFAULT_ONBOARDING_CONFIG_FILE
    dry_run: bool = False

    def __post_init__(self):
        if not self.endpoint or not self.endpoint.strip():
            raise ConfigError("endpoint is required (set RENOVATE_ENDPOINT)")
        if not self.platform:
            raise ConfigError("platform must not be empty")
        for name in ("pr_hourly_limit", "pr_concurrent_limit"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"{name} must be a non-negative integer, got {value!r}")

    def find_host_rule(self, url_or_host: str) -> HostRule | None:
        """Most specific matching host rule; the last one wins on ties."""
        best: HostRule | None = None
        best_rank: tuple[int, int] | None = None
        for rule in self.host_rules:
            rank = rule.specificity(url_or_host)
            if rank is None:
                continue
            if best_rank is None or rank >= best_rank:
                best, best_rank = rule, rank
        return best

    @property
    def api_host(self) -> str:
        return host_of(self.endpoint)
