"""
Configuration Loader (``policy_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``policy_config.schema`` dataclasses.  The single public entry point for
runtime config is ``policy_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel domain
for ``GovernanceRules`` and ``IdentityDirectory`` only.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown sections and keys are rejected rather than ignored, so a typo
  never silently falls back to a default.

Failure modes
-------------
* Missing file, malformed YAML, wrong types or unknown keys
  -> ``ConfigurationError`` naming the file and the offending key.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from policy_config.schema import (
    DatabaseSettings,
    EngineConfig,
    GovernanceSettings,
    IdentityEntry,
    LoggingSettings,
)
from policy_kernel.domain.identity import IdentityDirectory
from policy_kernel.exceptions import ConfigurationError

_TOP_LEVEL_KEYS = frozenset({"name", "database", "logging", "governance", "identities"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: missing file, invalid YAML, or a non-mapping
            document.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(str(path), "file not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def load_config(path: Path) -> EngineConfig:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path), source=str(path))


def parse_config(data: dict[str, Any], source: str = "<memory>") -> EngineConfig:
    """Parse a configuration mapping into an ``EngineConfig``."""
    unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigurationError(source, f"unknown keys: {', '.join(unknown)}")

    return EngineConfig(
        name=str(data.get("name", "default")),
        database=_parse_database(_section(data, "database", source), source),
        logging=_parse_logging(_section(data, "logging", source), source),
        governance=_parse_governance(_section(data, "governance", source), source),
        identities=_parse_identities(data.get("identities") or [], source),
        source=source,
    )


def build_identity_directory(config: EngineConfig) -> IdentityDirectory:
    """The address -> display name directory for the configured identities."""
    return IdentityDirectory({entry.address: entry.name for entry in config.identities})


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], key: str, source: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(source, f"'{key}' must be a mapping")
    return value


def _parse_database(data: dict[str, Any], source: str) -> DatabaseSettings:
    _reject_unknown(data, {"url", "echo"}, "database", source)
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=_typed(data, "url", str, defaults.url, source),
        echo=_typed(data, "echo", bool, defaults.echo, source),
    )


def _parse_logging(data: dict[str, Any], source: str) -> LoggingSettings:
    _reject_unknown(data, {"level"}, "logging", source)
    level = _typed(data, "level", str, LoggingSettings().level, source).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(source, f"logging.level: unknown level '{level}'")
    return LoggingSettings(level=level)


def _parse_governance(data: dict[str, Any], source: str) -> GovernanceSettings:
    _reject_unknown(
        data,
        {
            "allow_ungoverned",
            "restrict_submission_to_roster",
            "default_change_approvals_required",
            "address_prefix",
        },
        "governance",
        source,
    )
    defaults = GovernanceSettings()
    required = _typed(
        data, "default_change_approvals_required", int,
        defaults.default_change_approvals_required, source,
    )
    if required < 1:
        raise ConfigurationError(
            source, "governance.default_change_approvals_required must be at least 1",
        )
    prefix = _typed(data, "address_prefix", str, defaults.address_prefix, source)
    if not prefix:
        raise ConfigurationError(source, "governance.address_prefix must not be empty")

    return GovernanceSettings(
        allow_ungoverned=_typed(
            data, "allow_ungoverned", bool, defaults.allow_ungoverned, source,
        ),
        restrict_submission_to_roster=_typed(
            data, "restrict_submission_to_roster", bool,
            defaults.restrict_submission_to_roster, source,
        ),
        default_change_approvals_required=required,
        address_prefix=prefix,
    )


def _parse_identities(data: Any, source: str) -> tuple[IdentityEntry, ...]:
    if not isinstance(data, list):
        raise ConfigurationError(source, "'identities' must be a list")

    entries: list[IdentityEntry] = []
    seen: set[str] = set()
    for i, item in enumerate(data):
        if not isinstance(item, dict) or not item.get("address") or not item.get("name"):
            raise ConfigurationError(
                source, f"identities[{i}] needs a non-empty 'address' and 'name'",
            )
        address = str(item["address"])
        if address.lower() in seen:
            raise ConfigurationError(source, f"identities[{i}]: duplicate address {address}")
        seen.add(address.lower())
        entries.append(IdentityEntry(address=address, name=str(item["name"])))
    return tuple(entries)


def _reject_unknown(data: dict[str, Any], allowed: set[str], section: str, source: str) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(source, f"unknown keys in '{section}': {', '.join(unknown)}")


def _typed(data: dict[str, Any], key: str, kind: type, default: Any, source: str) -> Any:
    if key not in data or data[key] is None:
        return default
    value = data[key]
    # bool is an int subclass; keep the two apart.
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigurationError(source, f"'{key}' must be of type {kind.__name__}")
    return value
