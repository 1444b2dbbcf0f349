"""Run coordinator: discover repositories and open PRs under the rate limits.

Pipeline per repository:
  not onboarded + onboarding on  -> onboarding PR
  not onboarded + onboarding off -> skipped
  onboarded                      -> one update PR per pending update

Every PR goes through the RateLimiter. Deferred PRs are reported, not
retried within the run. A failing repository is logged and the run moves on.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from fnmatch import fnmatchcase

from updatebot.config.models import Configuration
from updatebot.errors import AuthError, ForgeError, RateLimitExceeded
from updatebot.forge.base import Forge, PullRequest, Repository, UpdateSource
from updatebot.limits.ratelimit import RateLimiter, apply_rate_limits
from updatebot.logging.audit import get_audit_logger, run_context


@dataclass
class RunReport:
    run_id: str
    repositories: list[str] = field(default_factory=list)
    created: list[PullRequest] = field(default_factory=list)
    planned: list[dict] = field(default_factory=list)
    deferred: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    def summary(self) -> dict:
        return {
            "repositories": len(self.repositories),
            "created": len(self.created),
            "planned": len(self.planned),
            "deferred": len(self.deferred),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }


class RunCoordinator:
    """Drives one bot run from an explicit Configuration."""

    def __init__(
        self,
        config: Configuration,
        forge: Forge,
        updates: UpdateSource,
        limiter: RateLimiter | None = None,
    ):
        self._config = config
        self._forge = forge
        self._updates = updates
        self._limiter = limiter or apply_rate_limits(config)

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    async def run(self) -> RunReport:
        logger = get_audit_logger()

        with run_context() as scope:
            report = RunReport(run_id=scope.run_id)
            logger.info(
                "Run started",
                extra={"audit_data": {
                    "platform": self._config.platform,
                    "endpoint": self._config.endpoint,
                    "autodiscover": self._config.autodiscover,
                    "dry_run": self._config.dry_run,
                }},
            )

            repos = await self._repositories()
            report.repositories = [r.full_name for r in repos]

            for repo in repos:
                try:
                    await self._process(repo, report)
                except (ForgeError, AuthError) as e:
                    logger.error(
                        "Repository failed",
                        extra={"audit_data": {
                            "repository": repo.full_name,
                            "error": str(e),
                            "error_type": type(e).__name__,
                        }},
                    )
                    report.failed.append({
                        "repository": repo.full_name,
                        "error": str(e),
                    })

            logger.info(
                "Run finished",
                extra={"audit_data": {**report.summary(), "latency_ms": scope.elapsed_ms}},
            )
            return report

    async def _repositories(self) -> list[Repository]:
        config = self._config
        if not config.autodiscover:
            if not config.repositories:
                get_audit_logger().warning("Autodiscover is off and no repositories are configured")
            return [Repository(full_name=name) for name in config.repositories]

        discovered = await self._forge.discover_repositories()
        repos = []
        for repo in discovered:
            if repo.archived:
                continue
            if config.autodiscover_filter and not any(
                fnmatchcase(repo.full_name, pattern) for pattern in config.autodiscover_filter
            ):
                continue
            repos.append(repo)
        return repos

    async def _process(self, repo: Repository, report: RunReport) -> None:
        if not await self._forge.is_onboarded(repo):
            if not self._config.onboarding:
                get_audit_logger().info(
                    "Repository skipped",
                    extra={"audit_data": {"repository": repo.full_name, "reason": "not onboarded"}},
                )
                report.skipped.append({"repository": repo.full_name, "reason": "not onboarded"})
                return

            file_name = self._config.onboarding_config_file_name
            await self._open_pr(
                repo,
                "Configure Renovate",
                lambda: self._forge.create_onboarding_pr(repo, file_name),
                report,
            )
            return

        for update in await self._updates.pending_updates(repo):
            await self._open_pr(
                repo,
                update.title,
                lambda update=update: self._forge.create_update_pr(repo, update),
                report,
            )

    async def _open_pr(
        self,
        repo: Repository,
        title: str,
        create: Callable[[], Awaitable[PullRequest]],
        report: RunReport,
    ) -> None:
        logger = get_audit_logger()

        if self._config.dry_run:
            logger.info(
                "Pull request planned",
                extra={"audit_data": {"repository": repo.full_name, "title": title}},
            )
            report.planned.append({"repository": repo.full_name, "title": title})
            return

        try:
            async with self._limiter.slot() as admission:
                pr = await create()
        except RateLimitExceeded as e:
            logger.warning(
                "Pull request deferred",
                extra={"audit_data": {
                    "repository": repo.full_name,
                    "title": title,
                    "reason": e.admission.reason,
                    "retry_after": e.admission.reset_seconds,
                }},
            )
            report.deferred.append({
                "repository": repo.full_name,
                "title": title,
                "reason": e.admission.reason,
            })
            return

        logger.info(
            "Pull request created",
            extra={"audit_data": {
                "repository": repo.full_name,
                "title": pr.title,
                "number": pr.number,
                "url": pr.url,
                "hourly_remaining": admission.hourly_remaining,
            }},
        )
        report.created.append(pr)
