"""Rate controller — bounded updates to the value→token conversion rate.

A single update may move the rate by at most RATE_STEP_BOUND in either
direction (inclusive). This caps how far one administrative action can
shift the price during a live sale.
"""

from __future__ import annotations

from decimal import Decimal

from crowdsale.access.gate import AccessGate
from crowdsale.errors import RateOutOfBounds


RATE_STEP_BOUND = Decimal("0.10")


class RateController:
    """Owns the live conversion rate."""

    def __init__(self, gate: AccessGate, initial_rate: Decimal) -> None:
        if initial_rate <= Decimal("0"):
            raise ValueError(f"Rate must be positive, got {initial_rate}")
        self._gate = gate
        self._rate = initial_rate

    @property
    def rate(self) -> Decimal:
        return self._rate

    def bounds(self) -> tuple[Decimal, Decimal]:
        """Inclusive (lower, upper) range for the next update."""
        return (
            self._rate * (Decimal("1") - RATE_STEP_BOUND),
            self._rate * (Decimal("1") + RATE_STEP_BOUND),
        )

    def update_rate(self, caller: str, new_rate: Decimal) -> Decimal:
        """Set a new rate within ±10% of the current one.

        Returns the previous rate.

        Raises:
            Unauthorized: caller is not the administrator.
            RateOutOfBounds: new_rate is outside the allowed band.
        """
        self._gate.require_admin(caller)
        if not new_rate.is_finite():
            raise RateOutOfBounds(f"Rate must be finite, got {new_rate}")
        lower, upper = self.bounds()
        if new_rate <= Decimal("0") or not (lower <= new_rate <= upper):
            raise RateOutOfBounds(
                f"Rate {new_rate} outside allowed range [{lower}, {upper}]"
            )
        previous = self._rate
        self._rate = new_rate
        return previous

    def restore(self, rate: Decimal) -> None:
        """Reload the live rate from persisted state."""
        self._rate = rate
