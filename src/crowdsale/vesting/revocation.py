"""Revocation and the revoked pool.

Revocation forfeits a beneficiary's *unclaimed* remainder into a shared
pool. Already-claimed tokens are untouched; they belong to the
beneficiary. Schedule corrections feed the same pool.

The pool is a single aggregate counter. It grows only by forfeiture or
correction and shrinks only by an explicit administrative transfer out.
A transfer larger than the pool fails with no side effects, so the pool
can never go negative and can never release more than was forfeited.

Key properties:
- Revocation is irreversible (ACTIVE → REVOKED is terminal).
- revoked_amount == total_forfeited - total_transferred.
- Tokens stay in the engine's custody until transferred out.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from crowdsale.access.gate import AccessGate
from crowdsale.errors import (
    InsufficientPool,
    InvalidAddress,
    InvalidAmount,
    NotRevocable,
)
from crowdsale.models.sale import (
    ZERO,
    Forfeiture,
    PoolTransfer,
    RevokedPoolState,
    SaleConfig,
    ScheduleState,
)
from crowdsale.token.ledger import TokenLedger
from crowdsale.vesting.ledger import VestingLedger


class RevokedPool:
    """Tracks forfeited tokens awaiting redistribution.

    Usage:
        pool = RevokedPool()
        pool.credit(Forfeiture("alice", principal, bonus, "revocation"))
        pool.check_withdrawal(amount)
        pool.debit("treasury", amount, now)
    """

    def __init__(self) -> None:
        self._state = RevokedPoolState()

    @property
    def revoked_amount(self) -> Decimal:
        return self._state.revoked_amount

    def get_state(self) -> RevokedPoolState:
        """Return the current observable pool state.

        Callers should treat the returned object as read-only.
        """
        return self._state

    def credit(self, forfeiture: Forfeiture) -> None:
        """Add forfeited value to the pool."""
        if forfeiture.amount < ZERO:
            raise ValueError(f"Forfeiture must not be negative, got {forfeiture.amount}")
        self._state.forfeitures.append(forfeiture)
        self._state.revoked_amount += forfeiture.amount
        self._state.total_forfeited += forfeiture.amount

    def check_withdrawal(self, amount: Decimal) -> None:
        if not amount.is_finite() or amount <= ZERO:
            raise InvalidAmount(f"Transfer amount must be positive, got {amount}")
        if amount > self._state.revoked_amount:
            raise InsufficientPool(
                f"Transfer of {amount} exceeds revoked pool balance "
                f"{self._state.revoked_amount}"
            )

    def debit(
        self, recipient: str, amount: Decimal, now: Optional[datetime] = None,
    ) -> PoolTransfer:
        """Remove value from the pool. Validates first."""
        self.check_withdrawal(amount)
        transfer = PoolTransfer(recipient=recipient, amount=amount, transferred_utc=now)
        self._state.transfers.append(transfer)
        self._state.revoked_amount -= amount
        self._state.total_transferred += amount
        return transfer

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize pool state for persistence."""
        return {
            "revoked_amount": str(self._state.revoked_amount),
            "total_forfeited": str(self._state.total_forfeited),
            "total_transferred": str(self._state.total_transferred),
            "forfeitures": [
                {
                    "beneficiary": f.beneficiary,
                    "principal": str(f.principal),
                    "bonus": str(f.bonus),
                    "reason": f.reason,
                    "recorded_utc": f.recorded_utc.isoformat() if f.recorded_utc else None,
                }
                for f in self._state.forfeitures
            ],
            "transfers": [
                {
                    "recipient": t.recipient,
                    "amount": str(t.amount),
                    "transferred_utc": (
                        t.transferred_utc.isoformat() if t.transferred_utc else None
                    ),
                }
                for t in self._state.transfers
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RevokedPool":
        """Reconstruct a pool from persisted data."""
        pool = cls()
        pool._state.revoked_amount = Decimal(data["revoked_amount"])
        pool._state.total_forfeited = Decimal(data["total_forfeited"])
        pool._state.total_transferred = Decimal(data["total_transferred"])
        pool._state.forfeitures = [
            Forfeiture(
                beneficiary=f["beneficiary"],
                principal=Decimal(f["principal"]),
                bonus=Decimal(f["bonus"]),
                reason=f["reason"],
                recorded_utc=(
                    datetime.fromisoformat(f["recorded_utc"]) if f["recorded_utc"] else None
                ),
            )
            for f in data.get("forfeitures", [])
        ]
        pool._state.transfers = [
            PoolTransfer(
                recipient=t["recipient"],
                amount=Decimal(t["amount"]),
                transferred_utc=(
                    datetime.fromisoformat(t["transferred_utc"])
                    if t["transferred_utc"]
                    else None
                ),
            )
            for t in data.get("transfers", [])
        ]
        return pool


class RevocationManager:
    """Administrative forfeiture and pool withdrawal."""

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

    def revoke_vesting(
        self, caller: str, beneficiary: str, now: datetime,
    ) -> Forfeiture:
        """Forfeit the unclaimed remainder of a schedule into the pool.

        Raises:
            Unauthorized: caller is not the administrator.
            NoSchedule: beneficiary has no schedule.
            ScheduleRevoked: schedule is already revoked.
            NotRevocable: schedule was created non-revocable.
        """
        self._gate.require_admin(caller)
        schedule = self._ledger.require_active(beneficiary)
        if not schedule.revocable:
            raise NotRevocable(f"Vesting schedule for {beneficiary} is not revocable")

        forfeiture = Forfeiture(
            beneficiary=beneficiary,
            principal=schedule.initial_balance,
            bonus=schedule.bonus_balance,
            reason="revocation",
            recorded_utc=now,
        )
        schedule.transition_to(ScheduleState.REVOKED)
        schedule.initial_balance = ZERO
        schedule.bonus_balance = ZERO
        schedule.revoked_utc = now
        self._pool.credit(forfeiture)
        return forfeiture

    def transfer_revoked_tokens(
        self, caller: str, to: str, amount: Decimal, now: datetime,
    ) -> PoolTransfer:
        """Move tokens out of the revoked pool to ``to``.

        Raises:
            Unauthorized: caller is not the administrator.
            InvalidAmount: amount is not positive.
            InsufficientPool: amount exceeds the pool balance.
            TokenLedgerError: custody transfer failed (no state changes).
        """
        self._gate.require_admin(caller)
        if not to:
            raise InvalidAddress("Recipient address must not be blank")
        self._pool.check_withdrawal(amount)
        self._token.transfer(to, amount, sender=self._config.sale_address)
        return self._pool.debit(to, amount, now)

    def forfeitures(self) -> List[Forfeiture]:
        return list(self._pool.get_state().forfeitures)
