"""Tests for the administrative allocator — proves grant bounds and corrections."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from crowdsale.access.gate import AccessGate
from crowdsale.errors import (
    AllocationOutOfBounds,
    InvalidAddress,
    NoSchedule,
    ScheduleExists,
    ScheduleRevoked,
    SupplyExceeded,
    Unauthorized,
)
from crowdsale.models.sale import SaleConfig, ScheduleOrigin
from crowdsale.sale.allocation import AdministrativeAllocator
from crowdsale.token.ledger import InMemoryTokenLedger
from crowdsale.vesting.ledger import VestingLedger
from crowdsale.vesting.revocation import RevocationManager, RevokedPool


START = datetime(2026, 11, 2, tzinfo=timezone.utc)
END = datetime(2026, 11, 30, tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime(2026, 12, 1, 12, 0, 0, tzinfo=timezone.utc)


class _Grants:
    def __init__(self, sale_supply_cap: str = "165000000", revocable: bool = True) -> None:
        cap = Decimal(sale_supply_cap)
        self.config = SaleConfig(
            start_time=START,
            end_time=END,
            rate=Decimal("1000"),
            min_initial_allocation=Decimal("333000"),
            max_initial_allocation=min(Decimal("13500000"), cap),
            sale_supply_cap=cap,
            admin="owner",
            revocable=revocable,
        )
        self.gate = AccessGate("owner")
        self.ledger = VestingLedger(self.config)
        self.pool = RevokedPool()
        self.token = InMemoryTokenLedger(owner="crowdsale")
        self.allocator = AdministrativeAllocator(
            self.config, self.gate, self.ledger, self.pool, self.token,
        )
        self.revocations = RevocationManager(
            self.config, self.gate, self.ledger, self.pool, self.token,
        )


@pytest.fixture
def grants() -> _Grants:
    return _Grants()


class TestMintAndVest:
    def test_grant_creates_schedule(self, grants: _Grants) -> None:
        schedule = grants.allocator.mint_and_vest(
            "owner", "carol", Decimal("500000"), Decimal("100000"), _now(),
        )
        assert schedule.origin == ScheduleOrigin.ALLOCATION
        assert schedule.initial_balance == Decimal("500000")
        assert schedule.bonus_balance == Decimal("100000")
        assert grants.token.balance_of("crowdsale") == Decimal("600000")
        assert grants.ledger.tokens_allocated == Decimal("600000")

    def test_bypasses_whitelist_and_sale_window(self, grants: _Grants) -> None:
        assert not grants.gate.is_whitelisted("carol")
        grants.allocator.mint_and_vest("owner", "carol", Decimal("333000"), Decimal("0"), _now())
        assert grants.ledger.has_schedule("carol")

    def test_below_minimum_rejected(self, grants: _Grants) -> None:
        with pytest.raises(AllocationOutOfBounds):
            grants.allocator.mint_and_vest(
                "owner", "carol", Decimal("332999"), Decimal("0"), _now(),
            )
        assert grants.token.total_supply == Decimal("0")

    def test_above_maximum_rejected(self, grants: _Grants) -> None:
        with pytest.raises(AllocationOutOfBounds):
            grants.allocator.mint_and_vest(
                "owner", "carol", Decimal("13500001"), Decimal("0"), _now(),
            )

    def test_bounds_inclusive(self, grants: _Grants) -> None:
        grants.allocator.mint_and_vest("owner", "carol", Decimal("333000"), Decimal("0"), _now())
        grants.allocator.mint_and_vest("owner", "dave", Decimal("13500000"), Decimal("0"), _now())
        assert len(grants.ledger.schedules()) == 2

    def test_negative_bonus_rejected(self, grants: _Grants) -> None:
        with pytest.raises(AllocationOutOfBounds):
            grants.allocator.mint_and_vest(
                "owner", "carol", Decimal("500000"), Decimal("-1"), _now(),
            )

    def test_over_cap_rejected(self) -> None:
        grants = _Grants(sale_supply_cap="1000000")
        grants.allocator.mint_and_vest("owner", "carol", Decimal("800000"), Decimal("0"), _now())
        with pytest.raises(SupplyExceeded):
            grants.allocator.mint_and_vest(
                "owner", "dave", Decimal("400000"), Decimal("0"), _now(),
            )
        assert grants.ledger.tokens_allocated == Decimal("800000")
        assert not grants.ledger.has_schedule("dave")

    def test_existing_schedule_rejected(self, grants: _Grants) -> None:
        grants.allocator.mint_and_vest("owner", "carol", Decimal("500000"), Decimal("0"), _now())
        with pytest.raises(ScheduleExists):
            grants.allocator.mint_and_vest(
                "owner", "carol", Decimal("500000"), Decimal("0"), _now(),
            )

    def test_replaces_revoked_schedule(self, grants: _Grants) -> None:
        first = grants.allocator.mint_and_vest(
            "owner", "carol", Decimal("500000"), Decimal("0"), _now(),
        )
        grants.revocations.revoke_vesting("owner", "carol", _now())
        later = _now() + timedelta(days=1)
        second = grants.allocator.mint_and_vest(
            "owner", "carol", Decimal("400000"), Decimal("0"), later,
        )
        assert grants.ledger.get("carol") is second
        assert grants.ledger.history("carol") == [first]
        assert grants.ledger.tokens_allocated == Decimal("900000")

    def test_non_admin_rejected(self, grants: _Grants) -> None:
        with pytest.raises(Unauthorized):
            grants.allocator.mint_and_vest(
                "carol", "carol", Decimal("500000"), Decimal("0"), _now(),
            )

    def test_blank_beneficiary_rejected(self, grants: _Grants) -> None:
        with pytest.raises(InvalidAddress):
            grants.allocator.mint_and_vest("owner", "", Decimal("500000"), Decimal("0"), _now())


class TestUpdateVestingSchedule:
    def test_correction_feeds_pool(self, grants: _Grants) -> None:
        grants.allocator.mint_and_vest(
            "owner", "carol", Decimal("500000"), Decimal("100000"), _now(),
        )
        forfeiture = grants.allocator.update_vesting_schedule(
            "owner", "carol", Decimal("400000"), Decimal("50000"), _now(),
        )
        assert forfeiture.amount == Decimal("150000")
        assert forfeiture.reason == "correction"
        assert grants.pool.revoked_amount == Decimal("150000")
        schedule = grants.ledger.get("carol")
        assert schedule.initial_balance == Decimal("400000")
        assert schedule.bonus_balance == Decimal("50000")
        assert schedule.check_invariants() == []

    def test_correction_after_partial_claim(self, grants: _Grants) -> None:
        schedule = grants.allocator.mint_and_vest(
            "owner", "carol", Decimal("500000"), Decimal("0"), _now(),
        )
        schedule.initial_amount_claimed = Decimal("100000")
        schedule.initial_balance = Decimal("400000")
        grants.allocator.update_vesting_schedule(
            "owner", "carol", Decimal("300000"), Decimal("0"), _now(),
        )
        assert schedule.initial_amount == Decimal("400000")
        assert schedule.initial_amount_claimed == Decimal("100000")
        assert grants.pool.revoked_amount == Decimal("100000")
        assert schedule.check_invariants() == []

    def test_upward_correction_rejected(self, grants: _Grants) -> None:
        grants.allocator.mint_and_vest(
            "owner", "carol", Decimal("500000"), Decimal("100000"), _now(),
        )
        with pytest.raises(AllocationOutOfBounds):
            grants.allocator.update_vesting_schedule(
                "owner", "carol", Decimal("600000"), Decimal("50000"), _now(),
            )
        schedule = grants.ledger.get("carol")
        assert schedule.initial_balance == Decimal("500000")
        assert schedule.bonus_balance == Decimal("100000")
        assert grants.pool.revoked_amount == Decimal("0")

    def test_missing_schedule(self, grants: _Grants) -> None:
        with pytest.raises(NoSchedule):
            grants.allocator.update_vesting_schedule(
                "owner", "nobody", Decimal("1"), Decimal("0"), _now(),
            )

    def test_revoked_schedule(self, grants: _Grants) -> None:
        grants.allocator.mint_and_vest("owner", "carol", Decimal("500000"), Decimal("0"), _now())
        grants.revocations.revoke_vesting("owner", "carol", _now())
        with pytest.raises(ScheduleRevoked):
            grants.allocator.update_vesting_schedule(
                "owner", "carol", Decimal("1"), Decimal("0"), _now(),
            )

    def test_non_admin_rejected(self, grants: _Grants) -> None:
        grants.allocator.mint_and_vest("owner", "carol", Decimal("500000"), Decimal("0"), _now())
        with pytest.raises(Unauthorized):
            grants.allocator.update_vesting_schedule(
                "carol", "carol", Decimal("1"), Decimal("0"), _now(),
            )
