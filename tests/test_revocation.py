"""Tests for revocation and the revoked pool — proves forfeiture bookkeeping."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from crowdsale.access.gate import AccessGate
from crowdsale.errors import (
    InsufficientPool,
    InvalidAddress,
    InvalidAmount,
    NoSchedule,
    NotRevocable,
    ScheduleRevoked,
    Unauthorized,
)
from crowdsale.models.sale import Forfeiture, SaleConfig, ScheduleState
from crowdsale.sale.allocation import AdministrativeAllocator
from crowdsale.token.ledger import InMemoryTokenLedger
from crowdsale.vesting.ledger import VestingLedger
from crowdsale.vesting.release import ReleaseEngine
from crowdsale.vesting.revocation import RevocationManager, RevokedPool


START = datetime(2026, 11, 2, tzinfo=timezone.utc)
END = datetime(2026, 11, 30, tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime(2026, 12, 1, tzinfo=timezone.utc)


class _Revocations:
    def __init__(self, revocable: bool = True) -> None:
        self.config = SaleConfig(
            start_time=START,
            end_time=END,
            rate=Decimal("1000"),
            min_initial_allocation=Decimal("333000"),
            max_initial_allocation=Decimal("13500000"),
            sale_supply_cap=Decimal("165000000"),
            admin="owner",
            revocable=revocable,
        )
        gate = AccessGate("owner")
        self.ledger = VestingLedger(self.config)
        self.pool = RevokedPool()
        self.token = InMemoryTokenLedger(owner="crowdsale")
        self.allocator = AdministrativeAllocator(
            self.config, gate, self.ledger, self.pool, self.token,
        )
        self.engine = ReleaseEngine(self.config, self.ledger, self.token)
        self.manager = RevocationManager(self.config, gate, self.ledger, self.pool, self.token)
        self.allocator.mint_and_vest("owner", "carol", Decimal("600000"), Decimal("60000"), _now())


@pytest.fixture
def rv() -> _Revocations:
    return _Revocations()


class TestRevokeVesting:
    def test_revoke_moves_unclaimed_to_pool(self, rv: _Revocations) -> None:
        forfeiture = rv.manager.revoke_vesting("owner", "carol", _now())
        assert forfeiture.amount == Decimal("660000")
        assert rv.pool.revoked_amount == Decimal("660000")
        schedule = rv.ledger.get("carol")
        assert schedule.state == ScheduleState.REVOKED
        assert schedule.initial_balance == Decimal("0")
        assert schedule.bonus_balance == Decimal("0")
        assert schedule.revoked_utc == _now()

    def test_claimed_amounts_untouched(self, rv: _Revocations) -> None:
        rv.engine.release("carol", _now() + timedelta(days=50))
        claimed = rv.ledger.get("carol").initial_amount_claimed
        assert claimed == Decimal("200000")
        forfeiture = rv.manager.revoke_vesting("owner", "carol", _now() + timedelta(days=50))
        assert forfeiture.principal == Decimal("400000")
        assert forfeiture.bonus == Decimal("60000")
        assert rv.ledger.get("carol").initial_amount_claimed == claimed
        assert rv.token.balance_of("carol") == claimed

    def test_revoke_twice_rejected(self, rv: _Revocations) -> None:
        rv.manager.revoke_vesting("owner", "carol", _now())
        with pytest.raises(ScheduleRevoked):
            rv.manager.revoke_vesting("owner", "carol", _now())
        assert rv.pool.revoked_amount == Decimal("660000")

    def test_missing_schedule(self, rv: _Revocations) -> None:
        with pytest.raises(NoSchedule):
            rv.manager.revoke_vesting("owner", "nobody", _now())

    def test_non_revocable(self) -> None:
        rv = _Revocations(revocable=False)
        with pytest.raises(NotRevocable):
            rv.manager.revoke_vesting("owner", "carol", _now())
        assert rv.ledger.get("carol").state == ScheduleState.ACTIVE

    def test_non_admin_rejected(self, rv: _Revocations) -> None:
        with pytest.raises(Unauthorized):
            rv.manager.revoke_vesting("carol", "carol", _now())


class TestTransferRevokedTokens:
    def test_transfer_decrements_pool(self, rv: _Revocations) -> None:
        rv.manager.revoke_vesting("owner", "carol", _now())
        transfer = rv.manager.transfer_revoked_tokens(
            "owner", "treasury", Decimal("60000"), _now(),
        )
        assert transfer.amount == Decimal("60000")
        assert rv.pool.revoked_amount == Decimal("600000")
        assert rv.token.balance_of("treasury") == Decimal("60000")

    def test_exact_pool_allowed(self, rv: _Revocations) -> None:
        rv.manager.revoke_vesting("owner", "carol", _now())
        rv.manager.transfer_revoked_tokens("owner", "treasury", Decimal("660000"), _now())
        assert rv.pool.revoked_amount == Decimal("0")

    def test_over_pool_rejected(self, rv: _Revocations) -> None:
        rv.manager.revoke_vesting("owner", "carol", _now())
        with pytest.raises(InsufficientPool):
            rv.manager.transfer_revoked_tokens(
                "owner", "treasury", Decimal("660000.000000000000000001"), _now(),
            )
        assert rv.pool.revoked_amount == Decimal("660000")
        assert rv.token.balance_of("treasury") == Decimal("0")

    def test_non_positive_rejected(self, rv: _Revocations) -> None:
        rv.manager.revoke_vesting("owner", "carol", _now())
        with pytest.raises(InvalidAmount):
            rv.manager.transfer_revoked_tokens("owner", "treasury", Decimal("0"), _now())

    def test_blank_recipient_rejected(self, rv: _Revocations) -> None:
        rv.manager.revoke_vesting("owner", "carol", _now())
        with pytest.raises(InvalidAddress):
            rv.manager.transfer_revoked_tokens("owner", "", Decimal("1"), _now())

    def test_non_admin_rejected(self, rv: _Revocations) -> None:
        rv.manager.revoke_vesting("owner", "carol", _now())
        with pytest.raises(Unauthorized):
            rv.manager.transfer_revoked_tokens("carol", "carol", Decimal("1"), _now())


class TestRevokedPool:
    def test_state_tracks_totals(self) -> None:
        pool = RevokedPool()
        pool.credit(Forfeiture("a", Decimal("100"), Decimal("10"), "revocation"))
        pool.credit(Forfeiture("b", Decimal("50"), Decimal("0"), "correction"))
        pool.debit("treasury", Decimal("60"))
        state = pool.get_state()
        assert state.revoked_amount == Decimal("100")
        assert state.total_forfeited == Decimal("160")
        assert state.total_transferred == Decimal("60")
        assert state.revoked_amount == state.total_forfeited - state.total_transferred

    def test_negative_forfeiture_rejected(self) -> None:
        pool = RevokedPool()
        with pytest.raises(ValueError):
            pool.credit(Forfeiture("a", Decimal("-1"), Decimal("0"), "correction"))

    def test_serialization_preserves_history(self) -> None:
        pool = RevokedPool()
        pool.credit(Forfeiture("a", Decimal("100"), Decimal("10"), "revocation", _now()))
        pool.debit("treasury", Decimal("60"), _now())
        restored = RevokedPool.from_dict(pool.to_dict())
        assert restored.get_state() == pool.get_state()
