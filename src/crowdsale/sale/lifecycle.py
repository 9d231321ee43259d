"""Sale lifecycle — finalization and token ownership hand-off.

finalize() is the terminal, one-time event that closes the sale and mints
the fixed team allocation to the team-distribution recipient. It is only
callable once the sale window has closed.

update_token_owner() hands mint authority on the token ledger to another
identity. It is a maintenance/migration path, not part of vesting: after
it, any engine operation that needs to mint fails at the token ledger
and leaves engine state unchanged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from crowdsale.access.gate import AccessGate
from crowdsale.errors import AlreadyFinalized, InvalidAddress, SaleNotEnded
from crowdsale.models.sale import SaleConfig
from crowdsale.pricing.bonus import has_ended
from crowdsale.token.ledger import TokenLedger


class SaleLifecycle:
    """Terminal sale transitions."""

    def __init__(
        self,
        config: SaleConfig,
        gate: AccessGate,
        token: TokenLedger,
    ) -> None:
        self._config = config
        self._gate = gate
        self._token = token
        self._finalized = False
        self._finalized_utc: Optional[datetime] = None

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def finalized_utc(self) -> Optional[datetime]:
        return self._finalized_utc

    def finalize(self, caller: str, now: datetime) -> None:
        """Close the sale and mint the team allocation.

        Raises:
            Unauthorized: caller is not the administrator.
            AlreadyFinalized: finalize already ran.
            SaleNotEnded: now is before end_time.
            TokenLedgerError: the team mint failed (no state changes).
        """
        self._gate.require_admin(caller)
        if self._finalized:
            raise AlreadyFinalized("Sale already finalized")
        if not has_ended(self._config, now):
            raise SaleNotEnded(
                f"Sale ends at {self._config.end_time.isoformat()}; "
                f"now is {now.isoformat()}"
            )
        self._token.mint(
            self._config.team_address,
            self._config.team_allocation,
            sender=self._config.sale_address,
        )
        self._finalized = True
        self._finalized_utc = now

    def update_token_owner(self, caller: str, new_owner: str) -> str:
        """Transfer token mint authority to new_owner. Returns the old owner."""
        self._gate.require_admin(caller)
        if not new_owner:
            raise InvalidAddress("New token owner must not be blank")
        previous = self._token.owner
        self._token.transfer_ownership(new_owner, sender=self._config.sale_address)
        return previous

    def restore(self, finalized: bool, finalized_utc: Optional[datetime]) -> None:
        """Reload finalization state from persisted data."""
        self._finalized = finalized
        self._finalized_utc = finalized_utc
