"""Update bot entry point: wire settings, config, forge and coordinator for one run.

Loads the Configuration once, then hands it explicitly to the HTTP client,
the forge and the RunCoordinator. The forge implementation for the
configured platform must have been registered with register_forge().
"""

from updatebot.config.loader import load_configuration
from updatebot.config.settings import Settings, get_settings
from updatebot.coordinator.run import RunCoordinator, RunReport
from updatebot.forge.base import UpdateSource
from updatebot.forge.registry import close_all_forges, get_forge
from updatebot.hosts.client import HostHttpClient
from updatebot.logging.audit import get_audit_logger, setup_logging

VERSION = "0.1.0"


async def run_once(updates: UpdateSource, settings: Settings | None = None) -> RunReport:
    """Execute a single bot run and return its report."""
    settings = settings or get_settings()
    setup_logging(settings)
    logger = get_audit_logger()

    config = load_configuration(settings)
    http = HostHttpClient(config, timeout=settings.http_timeout)
    try:
        forge = get_forge(config, http)
        coordinator = RunCoordinator(config, forge, updates)
        report = await coordinator.run()
    finally:
        await close_all_forges()
        await http.close()

    logger.info("Update bot stopped", extra={"audit_data": {"version": VERSION}})
    return report
