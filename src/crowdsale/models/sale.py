"""Sale models — configuration, vesting schedules, and the revoked pool.

All token and value quantities use Decimal for exact arithmetic. No floats
in finance. Times are timezone-aware UTC datetimes.

Invariants enforced by these models:
- start_time < end_time, and allocation bounds are ordered
- initial_balance + initial_amount_claimed == initial_amount until revoked
- bonus_balance + bonus_claimed == initial_bonus until revoked
- A revoked schedule has zero balances and never leaves REVOKED
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Any, Dict, List, Optional, Tuple


ZERO = Decimal("0")

# Enough digits for a 10^12 token supply at 18 decimal places.
_TOKEN_MATH_PRECISION = 60


def quantize_tokens(amount: Decimal, precision: Decimal) -> Decimal:
    """Round a computed token amount down to the ledger's quantum.

    Rounding down means a computed entitlement can never exceed what the
    exact arithmetic grants. Working precision grows with the amount so an
    oversized value still quantizes and fails later on the supply cap.
    """
    if not amount.is_finite():
        raise ValueError(f"Token amount must be finite, got {amount}")
    digits = amount.adjusted() - precision.adjusted() + 2
    with localcontext() as ctx:
        ctx.prec = max(_TOKEN_MATH_PRECISION, digits)
        return amount.quantize(precision, rounding=ROUND_DOWN)


def prorate(amount: Decimal, numerator: int, denominator: int) -> Decimal:
    """amount × numerator / denominator at full working precision."""
    with localcontext() as ctx:
        ctx.prec = _TOKEN_MATH_PRECISION
        return amount * Decimal(numerator) / Decimal(denominator)


# (day_threshold, percent): the first threshold the elapsed day count is
# below selects the percent; past the last threshold the bonus is zero.
DEFAULT_BONUS_TIERS: Tuple[Tuple[int, int], ...] = (
    (2, 30),
    (4, 20),
    (6, 10),
    (8, 5),
)


class ScheduleState(str, enum.Enum):
    """Lifecycle state of a vesting schedule.

    State machine:
        ACTIVE → REVOKED
    """
    ACTIVE = "active"
    REVOKED = "revoked"


class ScheduleOrigin(str, enum.Enum):
    """Which path created the schedule."""
    PURCHASE = "purchase"
    ALLOCATION = "allocation"


SCHEDULE_TRANSITIONS: Dict[ScheduleState, frozenset] = {
    ScheduleState.ACTIVE: frozenset({ScheduleState.REVOKED}),
    ScheduleState.REVOKED: frozenset(),
}


@dataclass(frozen=True)
class SaleConfig:
    """Immutable sale parameters.

    The rate here is the opening rate; the live rate is owned by the
    RateController and may drift within its bounds.
    """
    start_time: datetime
    end_time: datetime
    rate: Decimal
    min_initial_allocation: Decimal
    max_initial_allocation: Decimal
    sale_supply_cap: Decimal
    admin: str
    sale_address: str = "crowdsale"
    wallet_address: str = "wallet"
    team_address: str = "team_distribution"
    team_allocation: Decimal = Decimal("135000000")
    vesting_duration: timedelta = timedelta(days=150)
    bonus_vesting_duration: timedelta = timedelta(days=60)
    lock_period: timedelta = timedelta(0)
    release_interval: Optional[timedelta] = None
    revocable: bool = True
    bonus_tiers: Tuple[Tuple[int, int], ...] = DEFAULT_BONUS_TIERS
    token_precision: Decimal = Decimal("0.000000000000000001")

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValueError("Invalid sale config: " + "; ".join(errors))

    def validate(self) -> List[str]:
        """Return a list of violated config invariants. Empty = valid."""
        errors: List[str] = []
        amounts = {
            "rate": self.rate,
            "min_initial_allocation": self.min_initial_allocation,
            "max_initial_allocation": self.max_initial_allocation,
            "sale_supply_cap": self.sale_supply_cap,
            "team_allocation": self.team_allocation,
            "token_precision": self.token_precision,
        }
        non_finite = [name for name, value in amounts.items() if not value.is_finite()]
        if non_finite:
            return [f"{name} must be finite" for name in non_finite]
        if self.start_time.tzinfo is None or self.end_time.tzinfo is None:
            errors.append("start_time and end_time must be timezone-aware")
        elif self.start_time >= self.end_time:
            errors.append(
                f"start_time ({self.start_time.isoformat()}) must be before "
                f"end_time ({self.end_time.isoformat()})"
            )
        if self.rate <= ZERO:
            errors.append(f"rate must be positive, got {self.rate}")
        if self.min_initial_allocation <= ZERO:
            errors.append("min_initial_allocation must be positive")
        if self.min_initial_allocation > self.max_initial_allocation:
            errors.append("min_initial_allocation exceeds max_initial_allocation")
        if self.max_initial_allocation > self.sale_supply_cap:
            errors.append("max_initial_allocation exceeds sale_supply_cap")
        if self.team_allocation < ZERO:
            errors.append("team_allocation must not be negative")
        if not self.admin:
            errors.append("admin must be set")
        if self.vesting_duration <= timedelta(0):
            errors.append("vesting_duration must be positive")
        if self.bonus_vesting_duration < timedelta(0):
            errors.append("bonus_vesting_duration must not be negative")
        if self.lock_period < timedelta(0):
            errors.append("lock_period must not be negative")
        if self.release_interval is not None and self.release_interval <= timedelta(0):
            errors.append("release_interval must be positive when set")
        if self.token_precision <= ZERO:
            errors.append("token_precision must be positive")

        previous_day, previous_pct = 0, 100
        for day, pct in self.bonus_tiers:
            if day <= previous_day:
                errors.append("bonus tier day thresholds must be strictly increasing")
                break
            if pct < 0 or pct > previous_pct:
                errors.append("bonus tier percentages must be non-increasing and >= 0")
                break
            previous_day, previous_pct = day, pct
        return errors


@dataclass
class VestingSchedule:
    """Per-beneficiary vesting record.

    Mutable: balances move on release, correction, and revocation.
    The record is never deleted; revocation zeroes balances but the
    claimed totals stay truthful for audit.
    """
    beneficiary: str
    start_timestamp: datetime
    end_timestamp: datetime
    lock_period: timedelta
    bonus_vesting_duration: timedelta
    initial_amount: Decimal
    initial_bonus: Decimal
    initial_amount_claimed: Decimal = ZERO
    initial_balance: Decimal = ZERO
    bonus_claimed: Decimal = ZERO
    bonus_balance: Decimal = ZERO
    release_interval: Optional[timedelta] = None
    revocable: bool = True
    state: ScheduleState = ScheduleState.ACTIVE
    origin: ScheduleOrigin = ScheduleOrigin.PURCHASE
    revoked_utc: Optional[datetime] = None

    @property
    def revoked(self) -> bool:
        return self.state == ScheduleState.REVOKED

    @property
    def bonus_start_timestamp(self) -> datetime:
        """Bonus vesting opens when the principal window closes."""
        return self.end_timestamp

    @property
    def bonus_end_timestamp(self) -> datetime:
        return self.end_timestamp + self.bonus_vesting_duration

    @property
    def total_claimed(self) -> Decimal:
        return self.initial_amount_claimed + self.bonus_claimed

    @property
    def total_balance(self) -> Decimal:
        return self.initial_balance + self.bonus_balance

    def transition_to(self, new_state: ScheduleState) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = SCHEDULE_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ValueError(
                f"Invalid schedule transition: {self.state.value} → {new_state.value}"
            )
        self.state = new_state

    def check_invariants(self) -> List[str]:
        """Return balance invariant violations. Empty = consistent."""
        errors: List[str] = []
        if self.revoked:
            if self.initial_balance != ZERO or self.bonus_balance != ZERO:
                errors.append(f"{self.beneficiary}: revoked schedule holds a balance")
            return errors
        if self.initial_balance + self.initial_amount_claimed != self.initial_amount:
            errors.append(f"{self.beneficiary}: principal balance mismatch")
        if self.bonus_balance + self.bonus_claimed != self.initial_bonus:
            errors.append(f"{self.beneficiary}: bonus balance mismatch")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the schedule for persistence."""
        return {
            "beneficiary": self.beneficiary,
            "start_timestamp": self.start_timestamp.isoformat(),
            "end_timestamp": self.end_timestamp.isoformat(),
            "lock_period": self.lock_period.total_seconds(),
            "bonus_vesting_duration": self.bonus_vesting_duration.total_seconds(),
            "release_interval": (
                self.release_interval.total_seconds()
                if self.release_interval is not None
                else None
            ),
            "initial_amount": str(self.initial_amount),
            "initial_amount_claimed": str(self.initial_amount_claimed),
            "initial_balance": str(self.initial_balance),
            "initial_bonus": str(self.initial_bonus),
            "bonus_claimed": str(self.bonus_claimed),
            "bonus_balance": str(self.bonus_balance),
            "revocable": self.revocable,
            "state": self.state.value,
            "origin": self.origin.value,
            "revoked_utc": self.revoked_utc.isoformat() if self.revoked_utc else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VestingSchedule":
        """Reconstruct a schedule from persisted data."""
        interval = data.get("release_interval")
        revoked_utc = data.get("revoked_utc")
        return cls(
            beneficiary=data["beneficiary"],
            start_timestamp=datetime.fromisoformat(data["start_timestamp"]),
            end_timestamp=datetime.fromisoformat(data["end_timestamp"]),
            lock_period=timedelta(seconds=data["lock_period"]),
            bonus_vesting_duration=timedelta(seconds=data["bonus_vesting_duration"]),
            release_interval=timedelta(seconds=interval) if interval is not None else None,
            initial_amount=Decimal(data["initial_amount"]),
            initial_amount_claimed=Decimal(data["initial_amount_claimed"]),
            initial_balance=Decimal(data["initial_balance"]),
            initial_bonus=Decimal(data["initial_bonus"]),
            bonus_claimed=Decimal(data["bonus_claimed"]),
            bonus_balance=Decimal(data["bonus_balance"]),
            revocable=data["revocable"],
            state=ScheduleState(data["state"]),
            origin=ScheduleOrigin(data["origin"]),
            revoked_utc=datetime.fromisoformat(revoked_utc) if revoked_utc else None,
        )


@dataclass(frozen=True)
class ReleaseResult:
    """Outcome of a successful release call."""
    beneficiary: str
    principal_released: Decimal
    bonus_released: Decimal
    released_utc: datetime

    @property
    def total(self) -> Decimal:
        return self.principal_released + self.bonus_released


@dataclass(frozen=True)
class Forfeiture:
    """Value moved from a beneficiary into the revoked pool.

    reason is "revocation" or "correction".
    """
    beneficiary: str
    principal: Decimal
    bonus: Decimal
    reason: str
    recorded_utc: Optional[datetime] = None

    @property
    def amount(self) -> Decimal:
        return self.principal + self.bonus


@dataclass(frozen=True)
class PoolTransfer:
    """An administrative withdrawal from the revoked pool."""
    recipient: str
    amount: Decimal
    transferred_utc: Optional[datetime] = None


@dataclass
class RevokedPoolState:
    """Observable state of the revoked pool.

    revoked_amount == total_forfeited - total_transferred at all times.
    """
    revoked_amount: Decimal = ZERO
    total_forfeited: Decimal = ZERO
    total_transferred: Decimal = ZERO
    forfeitures: List[Forfeiture] = field(default_factory=list)
    transfers: List[PoolTransfer] = field(default_factory=list)
