"""Build the process Configuration from declarations, a JSON file and env.

Precedence, lowest first:
1. BUILTIN_DECLARATIONS (the deployment's static bot config)
2. optional JSON config file (camelCase keys, same names as the bot uses)
3. RENOVATE_ENDPOINT

This is the only place that reads the environment. Everything downstream
gets the resulting Configuration passed in explicitly.
"""

import json
from urllib.parse import urlsplit

from updatebot.config.models import Configuration, HostRule
from updatebot.config.settings import Settings, get_settings
from updatebot.errors import ConfigError
from updatebot.logging.audit import get_audit_logger

# Host rules reference the GitHub token by name; it is filled in at load time.
GITHUB_TOKEN_REF = "RENOVATE_GITHUB_TOKEN"

BUILTIN_DECLARATIONS: dict = {
    "platform": "forgejo",
    "autodiscover": True,
    "onboarding": True,
    "prHourlyLimit": 2,
    "prConcurrentLimit": 10,
    "hostRules": [
        {"matchHost": "github.com", "tokenEnv": GITHUB_TOKEN_REF},
        {"matchHost": "api.github.com", "tokenEnv": GITHUB_TOKEN_REF},
    ],
}

_KNOWN_KEYS = {
    "platform",
    "endpoint",
    "autodiscover",
    "autodiscoverFilter",
    "onboarding",
    "onboardingConfigFileName",
    "prHourlyLimit",
    "prConcurrentLimit",
    "repositories",
    "dryRun",
    "hostRules",
}


def load_configuration(settings: Settings | None = None, path: str | None = None) -> Configuration:
    """Load the Configuration, raising ConfigError if a required value is missing.

    Args:
        settings: Settings to read env-sourced values from (defaults to get_settings()).
        path: JSON config file; overrides settings.config_file when given.
    """
    settings = settings or get_settings()
    logger = get_audit_logger()

    declarations = dict(BUILTIN_DECLARATIONS)
    host_rule_entries = list(BUILTIN_DECLARATIONS["hostRules"])

    config_path = path or settings.config_file
    if config_path:
        file_data = _read_config_file(config_path)
        unknown = sorted(set(file_data) - _KNOWN_KEYS)
        if unknown:
            logger.warning(
                "Ignoring unknown config keys",
                extra={"audit_data": {"config_file": config_path, "keys": unknown}},
            )
        for key in _KNOWN_KEYS - {"hostRules"}:
            if key in file_data:
                declarations[key] = file_data[key]
        host_rule_entries.extend(_as_list(file_data.get("hostRules", []), "hostRules"))

    if settings.endpoint.strip():
        declarations["endpoint"] = settings.endpoint.strip()

    endpoint = _require_endpoint(declarations.get("endpoint"))
    host_rules = _build_host_rules(host_rule_entries, settings)

    config = Configuration(
        endpoint=endpoint,
        platform=_as_str(declarations["platform"], "platform"),
        autodiscover=_as_bool(declarations["autodiscover"], "autodiscover"),
        onboarding=_as_bool(declarations["onboarding"], "onboarding"),
        pr_hourly_limit=_as_limit(declarations["prHourlyLimit"], "prHourlyLimit"),
        pr_concurrent_limit=_as_limit(declarations["prConcurrentLimit"], "prConcurrentLimit"),
        host_rules=host_rules,
        repositories=tuple(
            _as_str(r, "repositories") for r in _as_list(declarations.get("repositories", []), "repositories")
        ),
        autodiscover_filter=tuple(
            _as_str(p, "autodiscoverFilter")
            for p in _as_list(declarations.get("autodiscoverFilter", []), "autodiscoverFilter")
        ),
        onboarding_config_file_name=_as_str(
            declarations.get("onboardingConfigFileName", "renovate.json"), "onboardingConfigFileName"
        ),
        dry_run=_as_bool(declarations.get("dryRun", False), "dryRun"),
    )

    logger.info(
        "Configuration loaded",
        extra={"audit_data": {
            "platform": config.platform,
            "endpoint": config.endpoint,
            "autodiscover": config.autodiscover,
            "onboarding": config.onboarding,
            "pr_hourly_limit": config.pr_hourly_limit,
            "pr_concurrent_limit": config.pr_concurrent_limit,
            "host_rules": [r.match_host for r in config.host_rules],
            "host_rules_without_token": [r.match_host for r in config.host_rules if not r.has_token],
        }},
    )

    forge_rule = config.find_host_rule(config.endpoint)
    if forge_rule is None or not forge_rule.has_token:
        # Credentialed forge calls will raise AuthError until a rule is added
        logger.warning(
            "No host rule token for the forge endpoint",
            extra={"audit_data": {"api_host": config.api_host}},
        )
    return config


def _read_config_file(path: str) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _require_endpoint(value) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError("endpoint is required (set RENOVATE_ENDPOINT)")
    if not isinstance(value, str):
        raise ConfigError(f"endpoint must be a string, got {type(value).__name__}")

    endpoint = value.strip()
    parts = urlsplit(endpoint)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ConfigError(f"endpoint must be an http(s) URL, got {endpoint!r}")
    return endpoint


def _build_host_rules(entries: list, settings: Settings) -> tuple[HostRule, ...]:
    """Turn raw entries into HostRules; a repeated matchHost overrides earlier ones."""
    env_tokens = {GITHUB_TOKEN_REF: settings.github_token}
    rules: dict[str, HostRule] = {}

    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigError(f"hostRules entries must be objects, got {entry!r}")
        match_host = entry.get("matchHost")
        if not isinstance(match_host, str) or not match_host.strip():
            raise ConfigError("hostRules entry is missing matchHost")

        if "tokenEnv" in entry:
            token = env_tokens.get(entry["tokenEnv"], "")
        else:
            token = entry.get("token") or ""
        if not isinstance(token, str):
            raise ConfigError(f"hostRules token for {match_host} must be a string")

        key = match_host.strip().lower()
        if key in rules:
            get_audit_logger().warning(
                "Duplicate host rule overridden",
                extra={"audit_data": {"match_host": match_host}},
            )
            del rules[key]
        rules[key] = HostRule(match_host=match_host.strip(), token=token)

    return tuple(rules.values())


def _as_list(value, name: str) -> list:
    if not isinstance(value, list):
        raise ConfigError(f"{name} must be a list")
    return value


def _as_str(value, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{name} must be a non-empty string")
    return value


def _as_bool(value, name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{name} must be true or false")
    return value


def _as_limit(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{name} must be a non-negative integer")
    return value
