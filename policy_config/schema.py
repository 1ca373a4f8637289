"""
Engine configuration schema.

Frozen dataclasses describing one configuration set: where the policy
store lives, how loud the logs are, the governance knobs and the known
identities.  YAML files are parsed into these types by the loader.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from policy_kernel.domain.governance import GovernanceRules
from policy_kernel.domain.identity import DEFAULT_ADDRESS_PREFIX


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///:memory:"
    echo: bool = False


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class GovernanceSettings:
    """Change-governance knobs.

    ``allow_ungoverned`` keeps the legacy behaviour where a policy without a
    change roster may be changed by anyone; turn it off to refuse such
    changes outright.
    """

    allow_ungoverned: bool = True
    restrict_submission_to_roster: bool = False
    default_change_approvals_required: int = 1
    address_prefix: str = DEFAULT_ADDRESS_PREFIX

    def rules(self) -> GovernanceRules:
        return GovernanceRules(
            allow_ungoverned=self.allow_ungoverned,
            restrict_submission_to_roster=self.restrict_submission_to_roster,
            address_prefix=self.address_prefix,
        )


@dataclass(frozen=True)
class IdentityEntry:
    """A known wallet address and its display name."""

    address: str
    name: str


@dataclass(frozen=True)
class EngineConfig:
    """A complete, validated configuration set."""

    name: str = "default"
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    governance: GovernanceSettings = field(default_factory=GovernanceSettings)
    identities: tuple[IdentityEntry, ...] = ()
    source: str | None = None
