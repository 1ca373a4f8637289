"""
policy_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``, plus the helpers that turn a loaded
    ``EngineConfig`` into the objects the services take (identity
    directory, governance rules, logging and database setup).

Architecture position:
    Configuration -- sits above ``policy_kernel``.  The kernel MUST NEVER
    import from ``policy_config``; callers pass the pieces they need into
    the services.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Resolution order: explicit ``path`` argument, then the
      ``POLICY_ENGINE_CONFIG`` environment variable, then the packaged
      ``sets/default.yaml``.

Failure modes:
    - ``ConfigurationError`` -- missing file, invalid YAML, unknown keys or
      wrongly typed values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a ``config_loaded``
    log entry naming the source file and the governance knobs in force.
"""

from __future__ import annotations

import os
from pathlib import Path

from policy_config.loader import build_identity_directory, load_config, parse_config
from policy_config.schema import (
    DatabaseSettings,
    EngineConfig,
    GovernanceSettings,
    IdentityEntry,
    LoggingSettings,
)
from policy_kernel.logging_config import configure_logging, get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "POLICY_ENGINE_CONFIG"

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(path: str | Path | None = None) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Explicit configuration file.  Defaults to the file named by
            ``POLICY_ENGINE_CONFIG``, then the packaged default set.

    Returns:
        EngineConfig -- frozen, validated configuration.

    Raises:
        ConfigurationError: If the file is missing or invalid.
    """
    resolved = _resolve_path(path)
    config = load_config(resolved)

    _logger.info(
        "config_loaded",
        extra={
            "config_name": config.name,
            "source": str(resolved),
            "allow_ungoverned": config.governance.allow_ungoverned,
            "restrict_submission_to_roster": config.governance.restrict_submission_to_roster,
            "identity_count": len(config.identities),
        },
    )
    return config


def apply_logging(config: EngineConfig) -> None:
    """Configure the policy_kernel logger hierarchy from ``config``."""
    configure_logging(level=config.logging.level)


def init_database(config: EngineConfig, *, create: bool = True):
    """Initialize the engine from ``config.database``; optionally create tables."""
    from policy_kernel.db import create_tables, init_engine_from_url

    engine = init_engine_from_url(config.database.url, echo=config.database.echo)
    if create:
        create_tables()
    return engine


def _resolve_path(path: str | Path | None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "DatabaseSettings",
    "EngineConfig",
    "GovernanceSettings",
    "IdentityEntry",
    "LoggingSettings",
    "apply_logging",
    "build_identity_directory",
    "get_active_config",
    "init_database",
    "parse_config",
]
