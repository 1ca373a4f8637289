"""
Tests for identity resolution and roster matching.
"""

import pytest

from policy_kernel.domain.identity import (
    Identity,
    IdentityDirectory,
    looks_like_address,
    resolve_identity,
    roster_is_name_only,
)

MEIR_ADDRESS = "0xc333b115a72a3519b48E9B4f9D1bBD4a34C248b1"


@pytest.fixture
def resolver() -> IdentityDirectory:
    return IdentityDirectory({MEIR_ADDRESS: "Meir"})


class TestResolveIdentity:

    def test_address_resolves_to_display_name(self, resolver):
        identity = resolve_identity(resolver, address=MEIR_ADDRESS.lower())

        assert identity == Identity(address=MEIR_ADDRESS.lower(), name="Meir")

    def test_unknown_address_stays_address_only(self, resolver):
        identity = resolve_identity(resolver, address="0xdead")

        assert identity.is_address_only
        assert identity.label == "0xdead"

    def test_address_shaped_name_is_treated_as_address(self, resolver):
        identity = resolve_identity(resolver, name=MEIR_ADDRESS)

        assert identity.address == MEIR_ADDRESS
        assert identity.name == "Meir"

    def test_resolver_name_wins_over_supplied_name(self, resolver):
        identity = resolve_identity(resolver, address=MEIR_ADDRESS, name="M.")

        assert identity.name == "Meir"

    @pytest.mark.parametrize("name", ["", "anonymous", None])
    def test_blank_or_anonymous_is_anonymous(self, resolver, name):
        assert resolve_identity(resolver, address=None, name=name).is_anonymous

    def test_no_resolver(self):
        identity = resolve_identity(None, address="0xabc", name=None)

        assert identity.is_address_only

    def test_custom_address_prefix(self):
        identity = resolve_identity(None, name="acct:42", address_prefix="acct:")

        assert identity.address == "acct:42"


class TestMatching:

    def test_names_compare_exactly(self):
        assert Identity(name="Meir").matches("Meir")
        assert not Identity(name="Meir").matches("meir")

    def test_addresses_compare_case_insensitively(self):
        assert Identity(address=MEIR_ADDRESS.lower()).matches(MEIR_ADDRESS)

    def test_find_in_returns_roster_spelling(self):
        identity = Identity(address=MEIR_ADDRESS.lower(), name="Meir")

        assert identity.find_in(["Ishai", MEIR_ADDRESS]) == MEIR_ADDRESS
        assert identity.find_in(["Ishai"]) is None

    def test_label_prefers_name(self):
        assert Identity(address="0xabc", name="Meir").label == "Meir"
        assert Identity().label == "anonymous"


class TestRosterShape:

    def test_name_only_roster(self):
        assert roster_is_name_only(["Meir", "Ishai"])
        assert not roster_is_name_only(["Meir", "0xabc"])
        assert not roster_is_name_only([])

    def test_looks_like_address_ignores_case(self):
        assert looks_like_address("0XABC")
        assert not looks_like_address("Meir")


class TestIdentityDirectory:

    def test_lookup_is_case_insensitive(self, resolver):
        assert resolver.display_name(MEIR_ADDRESS.upper().replace("0X", "0x")) == "Meir"

    def test_reverse_lookup(self, resolver):
        assert resolver.address_for("Meir") == MEIR_ADDRESS
        assert resolver.address_for("Nobody") is None

    def test_register(self):
        directory = IdentityDirectory()
        directory.register("0xabc", "Omer")

        assert directory.display_name("0xABC") == "Omer"
        assert len(directory) == 1
