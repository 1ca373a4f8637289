"""
Identity domain types (``policy_kernel.domain.identity``).

Responsibility
--------------
One resolved identity type for every governance comparison.  Rosters
(``approvers``, ``change_approvers_list``) may hold display names, wallet
addresses, or a mix; callers may know an actor by address, by name, or by
both.  ``resolve_identity`` combines what the caller supplied with what the
``IdentityResolver`` knows, once, and the engines compare ``Identity``
values against roster entries through ``Identity.matches``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Caveats
-------
Whether a roster entry is an address is decided by a prefix heuristic
(``0x`` by default).  It is a stopgap for name/address disambiguation and
NOT an authentication mechanism; identities are never verified here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol

DEFAULT_ADDRESS_PREFIX = "0x"
ANONYMOUS = "anonymous"


def looks_like_address(value: str, prefix: str = DEFAULT_ADDRESS_PREFIX) -> bool:
    """True if ``value`` is shaped like a wallet address."""
    return value.lower().startswith(prefix.lower())


@dataclass(frozen=True)
class Identity:
    """An actor as known to governance: address, display name, or both."""

    address: str | None = None
    name: str | None = None

    @property
    def label(self) -> str:
        """Preferred string for recording the actor (name over address)."""
        return self.name or self.address or ANONYMOUS

    @property
    def is_address_only(self) -> bool:
        return self.name is None and self.address is not None

    @property
    def is_anonymous(self) -> bool:
        return self.name is None and self.address is None

    def matches(self, entry: str) -> bool:
        """True if a roster entry refers to this identity.

        Names compare exactly; addresses compare case-insensitively.
        """
        if self.name is not None and entry == self.name:
            return True
        if self.address is not None and entry.lower() == self.address.lower():
            return True
        return False

    def is_same_actor(self, other: Identity) -> bool:
        """True if both identities share a name or an address."""
        if self.name is not None and self.name == other.name:
            return True
        return (
            self.address is not None
            and other.address is not None
            and self.address.lower() == other.address.lower()
        )

    def find_in(self, roster: Iterable[str]) -> str | None:
        """Return the first roster entry referring to this identity."""
        for entry in roster:
            if self.matches(entry):
                return entry
        return None


class IdentityResolver(Protocol):
    """Pluggable address -> display name lookup."""

    def display_name(self, address: str) -> str | None:
        """Return the display name for an address, or None if unknown."""
        ...


class IdentityDirectory:
    """In-memory ``IdentityResolver`` backed by an address -> name mapping.

    Addresses are matched case-insensitively.
    """

    def __init__(self, names_by_address: Mapping[str, str] | None = None):
        self._names: dict[str, str] = {}
        self._addresses: dict[str, str] = {}
        for address, name in (names_by_address or {}).items():
            self.register(address, name)

    def register(self, address: str, name: str) -> None:
        self._names[address.lower()] = name
        self._addresses[name] = address

    def display_name(self, address: str) -> str | None:
        return self._names.get(address.lower())

    def address_for(self, name: str) -> str | None:
        return self._addresses.get(name)

    def __len__(self) -> int:
        return len(self._names)


def resolve_identity(
    resolver: IdentityResolver | None,
    address: str | None = None,
    name: str | None = None,
    address_prefix: str = DEFAULT_ADDRESS_PREFIX,
) -> Identity:
    """Build the single ``Identity`` used for governance comparisons.

    A caller-supplied ``name`` that is shaped like an address is treated as
    the address.  When the resolver knows the address, its display name
    wins over a caller-supplied one.
    """
    if name in ("", ANONYMOUS):
        name = None
    if address == "":
        address = None
    if name is not None and looks_like_address(name, address_prefix):
        address = address or name
        name = None

    if address is not None and resolver is not None:
        resolved = resolver.display_name(address)
        if resolved is not None:
            name = resolved

    return Identity(address=address, name=name)


def roster_is_name_only(
    roster: Iterable[str],
    address_prefix: str = DEFAULT_ADDRESS_PREFIX,
) -> bool:
    """True if the roster is non-empty and holds no address-shaped entry."""
    entries = list(roster)
    return bool(entries) and not any(
        looks_like_address(e, address_prefix) for e in entries
    )
