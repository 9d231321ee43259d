"""Release engine — linear unlock arithmetic and the claim path.

Principal unlocks linearly from start_timestamp to end_timestamp, gated
by the lock period:

    now < start + lock        → 0
    now >= end                → initial_amount
    otherwise                 → initial_amount × elapsed / duration

When a release_interval is configured, elapsed time is snapped down to
whole intervals (monthly steps instead of a continuous curve).

Bonus vests after the principal. Its window opens at end_timestamp and
runs for bonus_vesting_duration with the same linear shape. Bonus is
only claimable once the whole principal has been claimed, counting the
principal claimed in the same call, so one release can pay out the last
principal slice and the first bonus slice together.

All unlock functions are pure in (schedule, now). Amounts are rounded
down to the token quantum so the sum of releases never exceeds the grant.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Tuple

from crowdsale.errors import NothingToRelease
from crowdsale.models.sale import (
    ZERO,
    ReleaseResult,
    SaleConfig,
    VestingSchedule,
    prorate,
    quantize_tokens,
)
from crowdsale.token.ledger import TokenLedger
from crowdsale.vesting.ledger import VestingLedger


_MICROSECOND = timedelta(microseconds=1)


def _linear(
    amount: Decimal,
    window_start: datetime,
    window: timedelta,
    now: datetime,
    interval: Optional[timedelta],
    precision: Decimal,
) -> Decimal:
    if now <= window_start:
        return ZERO
    if window <= timedelta(0) or now >= window_start + window:
        return amount
    elapsed = now - window_start
    if interval is not None:
        elapsed = (elapsed // interval) * interval
    unlocked = prorate(amount, elapsed // _MICROSECOND, window // _MICROSECOND)
    return quantize_tokens(unlocked, precision)


def unlocked_principal(
    schedule: VestingSchedule, now: datetime, precision: Decimal,
) -> Decimal:
    """Total principal unlocked at ``now`` (claimed or not)."""
    if now < schedule.start_timestamp + schedule.lock_period:
        return ZERO
    if now >= schedule.end_timestamp:
        return schedule.initial_amount
    return _linear(
        schedule.initial_amount,
        schedule.start_timestamp,
        schedule.end_timestamp - schedule.start_timestamp,
        now,
        schedule.release_interval,
        precision,
    )


def unlocked_bonus(
    schedule: VestingSchedule, now: datetime, precision: Decimal,
) -> Decimal:
    """Total bonus unlocked at ``now`` (claimed or not)."""
    if now < schedule.start_timestamp + schedule.lock_period:
        return ZERO
    if now < schedule.bonus_start_timestamp:
        return ZERO
    if schedule.bonus_vesting_duration <= timedelta(0):
        return schedule.initial_bonus
    return _linear(
        schedule.initial_bonus,
        schedule.bonus_start_timestamp,
        schedule.bonus_vesting_duration,
        now,
        schedule.release_interval,
        precision,
    )


def releasable(
    schedule: VestingSchedule, now: datetime, precision: Decimal,
) -> Tuple[Decimal, Decimal]:
    """Return (principal, bonus) claimable right now.

    A revoked schedule has nothing releasable.
    """
    if schedule.revoked:
        return ZERO, ZERO

    principal = unlocked_principal(schedule, now, precision) - schedule.initial_amount_claimed
    principal = min(max(principal, ZERO), schedule.initial_balance)

    bonus = ZERO
    if schedule.initial_balance - principal == ZERO:
        bonus = unlocked_bonus(schedule, now, precision) - schedule.bonus_claimed
        bonus = min(max(bonus, ZERO), schedule.bonus_balance)
    return principal, bonus


class ReleaseEngine:
    """Pays unlocked tokens out of custody to beneficiaries.

    release() may be triggered by anyone, but tokens always go to the
    named beneficiary; there is no way to redirect them.
    """

    def __init__(
        self,
        config: SaleConfig,
        ledger: VestingLedger,
        token: TokenLedger,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._token = token

    def releasable(self, beneficiary: str, now: datetime) -> Tuple[Decimal, Decimal]:
        schedule = self._ledger.require(beneficiary)
        return releasable(schedule, now, self._config.token_precision)

    def release(self, beneficiary: str, now: datetime) -> ReleaseResult:
        """Transfer everything currently claimable to the beneficiary.

        Raises:
            NoSchedule: beneficiary has no schedule.
            ScheduleRevoked: the schedule was revoked.
            NothingToRelease: nothing new has unlocked since the last claim.
            TokenLedgerError: custody transfer failed (no state changes).
        """
        schedule = self._ledger.require_active(beneficiary)
        principal, bonus = releasable(schedule, now, self._config.token_precision)
        if principal == ZERO and bonus == ZERO:
            raise NothingToRelease(
                f"Nothing to release for {beneficiary} at {now.isoformat()}"
            )

        self._token.transfer(beneficiary, principal + bonus, sender=self._config.sale_address)

        schedule.initial_amount_claimed += principal
        schedule.initial_balance -= principal
        schedule.bonus_claimed += bonus
        schedule.bonus_balance -= bonus
        return ReleaseResult(
            beneficiary=beneficiary,
            principal_released=principal,
            bonus_released=bonus,
            released_utc=now,
        )
