"""Forge registry: platform name -> factory, with one instance per platform.

Factories receive the run's HostHttpClient as their transport. Its
credentials come from host rules only, so a forge that makes credentialed
calls needs a host rule with a token for Configuration.api_host (the
endpoint's host), added through the JSON config file's hostRules. Without
one, load_configuration() logs a warning and forge calls raise AuthError.
"""

from collections.abc import Callable

from updatebot.config.models import Configuration
from updatebot.errors import ConfigError
from updatebot.forge.base import Forge
from updatebot.hosts.client import HostHttpClient

ForgeFactory = Callable[[Configuration, HostHttpClient], Forge]

_factories: dict[str, ForgeFactory] = {}
_forges: dict[str, Forge] = {}


def register_forge(name: str, factory: ForgeFactory) -> None:
    """Make a forge implementation available under a platform name."""
    _factories[name.lower()] = factory


def get_forge(config: Configuration, http: HostHttpClient) -> Forge:
    """Get or create the forge for config.platform."""
    name = config.platform.lower()
    if name in _forges:
        return _forges[name]

    factory = _factories.get(name)
    if factory is None:
        raise ConfigError(f"Unknown platform: {config.platform}")

    _forges[name] = factory(config, http)
    return _forges[name]


async def close_all_forges() -> None:
    """Gracefully shut down all forge connections."""
    for forge in _forges.values():
        await forge.close()
    _forges.clear()
