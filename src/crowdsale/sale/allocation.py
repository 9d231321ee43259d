"""Administrative allocator — owner-driven grants and corrections.

mint_and_vest creates a schedule outside the purchase path: no whitelist
check, no sale window, no payment leg. The grant must sit inside the
per-address [min, max] band and fit under the sale supply cap.

update_vesting_schedule is a one-time correction for over-granted,
unclaimed tokens. The remaining balances are lowered to the new values
and the difference goes to the revoked pool:

    Δprincipal = initial_balance - new_initial_amount
    Δbonus     = bonus_balance   - new_initial_bonus
    revoked_amount += Δprincipal + Δbonus

Upward corrections are rejected: the extra tokens were never minted.
initial_amount / initial_bonus are rewritten as claimed + new balance so
the balance invariant keeps holding.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from crowdsale.access.gate import AccessGate
from crowdsale.errors import AllocationOutOfBounds, InvalidAddress, ScheduleExists
from crowdsale.models.sale import (
    ZERO,
    Forfeiture,
    SaleConfig,
    ScheduleOrigin,
    VestingSchedule,
)
from crowdsale.token.ledger import TokenLedger
from crowdsale.vesting.ledger import VestingLedger
from crowdsale.vesting.revocation import RevokedPool


class AdministrativeAllocator:
    """Owner-only schedule creation and correction."""

    def __init__(
        self,
        config: SaleConfig,
        gate: AccessGate,
        ledger: VestingLedger,
        pool: RevokedPool,
        token: TokenLedger,
    ) -> None:
        self._config = config
        self._gate = gate
        self._ledger = ledger
        self._pool = pool
        self._token = token

    def mint_and_vest(
        self,
        caller: str,
        beneficiary: str,
        initial_amount: Decimal,
        initial_bonus: Decimal,
        now: datetime,
    ) -> VestingSchedule:
        """Mint a grant into custody and vest it for beneficiary.

        Raises:
            Unauthorized: caller is not the administrator.
            AllocationOutOfBounds: amount outside [min, max] or negative bonus.
            ScheduleExists: beneficiary already has an active schedule.
            SupplyExceeded: the grant would exceed the sale supply cap.
            TokenLedgerError: mint failed (no state changes).
        """
        self._gate.require_admin(caller)
        if not beneficiary:
            raise InvalidAddress("Beneficiary address must not be blank")
        cfg = self._config
        if not (initial_amount.is_finite() and initial_bonus.is_finite()):
            raise AllocationOutOfBounds("Grant amounts must be finite")
        if not (cfg.min_initial_allocation <= initial_amount <= cfg.max_initial_allocation):
            raise AllocationOutOfBounds(
                f"Initial amount {initial_amount} outside "
                f"[{cfg.min_initial_allocation}, {cfg.max_initial_allocation}]"
            )
        if initial_bonus < ZERO:
            raise AllocationOutOfBounds(f"Bonus must not be negative, got {initial_bonus}")
        existing = self._ledger.get(beneficiary)
        if existing is not None and not existing.revoked:
            raise ScheduleExists(f"{beneficiary} already has a vesting schedule")
        self._ledger.check_capacity(initial_amount + initial_bonus)

        schedule = self._ledger.build_schedule(
            beneficiary, initial_amount, initial_bonus, now,
            origin=ScheduleOrigin.ALLOCATION,
        )
        self._token.mint(cfg.sale_address, initial_amount + initial_bonus, sender=cfg.sale_address)
        self._ledger.add(schedule)
        return schedule

    def update_vesting_schedule(
        self,
        caller: str,
        beneficiary: str,
        new_initial_amount: Decimal,
        new_initial_bonus: Decimal,
        now: datetime,
    ) -> Forfeiture:
        """Lower an existing schedule's remaining balances.

        Returns the Forfeiture credited to the revoked pool.

        Raises:
            Unauthorized: caller is not the administrator.
            NoSchedule: beneficiary has no schedule.
            ScheduleRevoked: schedule is revoked.
            AllocationOutOfBounds: a new value is negative or above the
                current remaining balance.
        """
        self._gate.require_admin(caller)
        schedule = self._ledger.require_active(beneficiary)
        if not (new_initial_amount.is_finite() and new_initial_bonus.is_finite()):
            raise AllocationOutOfBounds("Corrected amounts must be finite")
        if new_initial_amount < ZERO or new_initial_bonus < ZERO:
            raise AllocationOutOfBounds("Corrected amounts must not be negative")

        delta_principal = schedule.initial_balance - new_initial_amount
        delta_bonus = schedule.bonus_balance - new_initial_bonus
        if delta_principal < ZERO or delta_bonus < ZERO:
            raise AllocationOutOfBounds(
                f"Corrections may only lower balances: principal "
                f"{schedule.initial_balance} → {new_initial_amount}, bonus "
                f"{schedule.bonus_balance} → {new_initial_bonus}"
            )

        forfeiture = Forfeiture(
            beneficiary=beneficiary,
            principal=delta_principal,
            bonus=delta_bonus,
            reason="correction",
            recorded_utc=now,
        )
        schedule.initial_balance = new_initial_amount
        schedule.initial_amount = schedule.initial_amount_claimed + new_initial_amount
        schedule.bonus_balance = new_initial_bonus
        schedule.initial_bonus = schedule.bonus_claimed + new_initial_bonus
        self._pool.credit(forfeiture)
        return forfeiture
