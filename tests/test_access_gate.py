"""Tests for the access gate — proves admin checks and whitelist idempotence."""

import pytest

from crowdsale.access.gate import AccessGate
from crowdsale.errors import InvalidAddress, Unauthorized


@pytest.fixture
def gate() -> AccessGate:
    return AccessGate("owner")


class TestAdministrator:
    def test_admin_passes(self, gate: AccessGate) -> None:
        gate.require_admin("owner")

    def test_other_caller_rejected(self, gate: AccessGate) -> None:
        with pytest.raises(Unauthorized):
            gate.require_admin("mallory")

    def test_blank_admin_rejected(self) -> None:
        with pytest.raises(ValueError):
            AccessGate("")


class TestWhitelist:
    def test_add_single(self, gate: AccessGate) -> None:
        assert gate.add_to_whitelist("owner", "alice") == ["alice"]
        assert gate.is_whitelisted("alice")

    def test_add_many(self, gate: AccessGate) -> None:
        gate.add_to_whitelist("owner", ["alice", "bob"])
        assert gate.whitelist() == ["alice", "bob"]

    def test_repeated_address_in_one_call(self, gate: AccessGate) -> None:
        assert gate.add_to_whitelist("owner", ["alice", "alice"]) == ["alice"]

    def test_add_is_idempotent(self, gate: AccessGate) -> None:
        gate.add_to_whitelist("owner", "alice")
        assert gate.add_to_whitelist("owner", "alice") == []
        assert gate.whitelist() == ["alice"]

    def test_remove(self, gate: AccessGate) -> None:
        gate.add_to_whitelist("owner", ["alice", "bob"])
        assert gate.remove_from_whitelist("owner", "alice") == ["alice"]
        assert not gate.is_whitelisted("alice")
        assert gate.is_whitelisted("bob")

    def test_remove_absent_is_noop(self, gate: AccessGate) -> None:
        assert gate.remove_from_whitelist("owner", "carol") == []

    def test_non_admin_cannot_add(self, gate: AccessGate) -> None:
        with pytest.raises(Unauthorized):
            gate.add_to_whitelist("alice", "alice")
        assert not gate.is_whitelisted("alice")

    def test_non_admin_cannot_remove(self, gate: AccessGate) -> None:
        gate.add_to_whitelist("owner", "alice")
        with pytest.raises(Unauthorized):
            gate.remove_from_whitelist("bob", "alice")
        assert gate.is_whitelisted("alice")

    def test_blank_address_rejected_atomically(self, gate: AccessGate) -> None:
        with pytest.raises(InvalidAddress):
            gate.add_to_whitelist("owner", ["alice", " "])
        assert gate.whitelist() == []
