"""Vesting ledger — the arena of per-beneficiary schedules.

Schedules are keyed by beneficiary address. At most one ACTIVE schedule
exists per address. Records are never deleted: when an administrative
allocation replaces a revoked schedule, the revoked record moves to the
per-address history so claimed totals stay auditable.

The ledger also owns the supply counter (cumulative principal + bonus
minted by the purchase and allocation paths) and enforces the sale
supply cap against it.

The ledger is a pure state container. It performs no token movements;
callers validate, move tokens, and only then commit via add().
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from crowdsale.errors import NoSchedule, ScheduleRevoked, SupplyExceeded
from crowdsale.models.sale import (
    SaleConfig,
    ScheduleOrigin,
    VestingSchedule,
)


class VestingLedger:
    """In-memory ledger of vesting schedules and the supply counter.

    Usage:
        ledger = VestingLedger(config)
        schedule = ledger.build_schedule("alice", principal, bonus, now)
        ledger.check_capacity(principal + bonus)
        ledger.add(schedule)
    """

    def __init__(self, config: SaleConfig) -> None:
        self._config = config
        self._schedules: Dict[str, VestingSchedule] = {}
        self._history: Dict[str, List[VestingSchedule]] = {}
        self._tokens_allocated = Decimal("0")

    @property
    def tokens_allocated(self) -> Decimal:
        return self._tokens_allocated

    @property
    def remaining_supply(self) -> Decimal:
        return self._config.sale_supply_cap - self._tokens_allocated

    def get(self, beneficiary: str) -> Optional[VestingSchedule]:
        return self._schedules.get(beneficiary)

    def has_schedule(self, beneficiary: str) -> bool:
        return beneficiary in self._schedules

    def require(self, beneficiary: str) -> VestingSchedule:
        """Lookup with a NoSchedule error on a missing address."""
        schedule = self._schedules.get(beneficiary)
        if schedule is None:
            raise NoSchedule(f"No vesting schedule for {beneficiary}")
        return schedule

    def require_active(self, beneficiary: str) -> VestingSchedule:
        schedule = self.require(beneficiary)
        if schedule.revoked:
            raise ScheduleRevoked(f"Vesting schedule for {beneficiary} is revoked")
        return schedule

    def schedules(self) -> List[VestingSchedule]:
        return list(self._schedules.values())

    def history(self, beneficiary: str) -> List[VestingSchedule]:
        """Revoked schedules that were later replaced (oldest first)."""
        return list(self._history.get(beneficiary, []))

    def check_capacity(self, amount: Decimal) -> None:
        """Raise SupplyExceeded if amount does not fit under the cap."""
        if self._tokens_allocated + amount > self._config.sale_supply_cap:
            raise SupplyExceeded(
                f"Allocating {amount} would bring the total to "
                f"{self._tokens_allocated + amount}, above the sale supply "
                f"cap of {self._config.sale_supply_cap}"
            )

    def build_schedule(
        self,
        beneficiary: str,
        initial_amount: Decimal,
        initial_bonus: Decimal,
        now: datetime,
        origin: ScheduleOrigin = ScheduleOrigin.PURCHASE,
    ) -> VestingSchedule:
        """Create (but do not store) a fresh schedule starting at now."""
        cfg = self._config
        return VestingSchedule(
            beneficiary=beneficiary,
            start_timestamp=now,
            end_timestamp=now + cfg.vesting_duration,
            lock_period=cfg.lock_period,
            bonus_vesting_duration=cfg.bonus_vesting_duration,
            release_interval=cfg.release_interval,
            initial_amount=initial_amount,
            initial_balance=initial_amount,
            initial_bonus=initial_bonus,
            bonus_balance=initial_bonus,
            revocable=cfg.revocable,
            origin=origin,
        )

    def add(self, schedule: VestingSchedule) -> None:
        """Commit a new schedule and count its tokens against the cap.

        A revoked predecessor is archived; an active one is never replaced.
        """
        existing = self._schedules.get(schedule.beneficiary)
        if existing is not None:
            if not existing.revoked:
                raise ValueError(
                    f"Active schedule already exists for {schedule.beneficiary}"
                )
            self._history.setdefault(schedule.beneficiary, []).append(existing)
        self.check_capacity(schedule.initial_amount + schedule.initial_bonus)
        self._schedules[schedule.beneficiary] = schedule
        self._tokens_allocated += schedule.initial_amount + schedule.initial_bonus

    def check_invariants(self) -> List[str]:
        """Balance invariant violations across all schedules."""
        errors: List[str] = []
        for schedule in self._schedules.values():
            errors.extend(schedule.check_invariants())
        if self._tokens_allocated > self._config.sale_supply_cap:
            errors.append("tokens_allocated exceeds sale_supply_cap")
        return errors

    def restore(
        self,
        schedules: Iterable[VestingSchedule],
        history: Dict[str, List[VestingSchedule]],
        tokens_allocated: Decimal,
    ) -> None:
        """Reload ledger contents from persisted state."""
        self._schedules = {s.beneficiary: s for s in schedules}
        self._history = {k: list(v) for k, v in history.items()}
        self._tokens_allocated = tokens_allocated
