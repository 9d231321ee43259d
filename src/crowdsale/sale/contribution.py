"""Contribution processor — the public purchase path.

A purchase converts value into a vesting grant:

    principal = value_sent × rate
    bonus     = principal × bonus_percent(now) / 100

Preconditions (checked in this order, before anything moves):
1. Sale is open at now.
2. Beneficiary is whitelisted.
3. Value is positive.
4. Beneficiary has never bought or been allocated before.
5. principal + bonus fits under the sale supply cap.

Tokens are minted into the engine's own custody, not to the buyer, and
released over time. The purchase value is forwarded to the funds wallet.
The schedule is committed only after both collaborator calls succeed.
Minted tokens cannot be unminted: if forwarding fails after the mint,
they stay in custody unallocated and the service reports them as
custody_surplus.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from crowdsale.access.gate import AccessGate
from crowdsale.errors import AlreadyContributed, InvalidAmount, NotWhitelisted
from crowdsale.models.sale import (
    ZERO,
    SaleConfig,
    ScheduleOrigin,
    VestingSchedule,
    quantize_tokens,
)
from crowdsale.pricing.bonus import bonus_percent
from crowdsale.pricing.rate import RateController
from crowdsale.token.ledger import FundsWallet, TokenLedger
from crowdsale.vesting.ledger import VestingLedger


class ContributionProcessor:
    """Validates and records purchases."""

    def __init__(
        self,
        config: SaleConfig,
        gate: AccessGate,
        rates: RateController,
        ledger: VestingLedger,
        token: TokenLedger,
        wallet: FundsWallet,
    ) -> None:
        self._config = config
        self._gate = gate
        self._rates = rates
        self._ledger = ledger
        self._token = token
        self._wallet = wallet

    def quote(self, value_sent: Decimal, now: datetime) -> tuple[Decimal, Decimal]:
        """Return (principal, bonus) a purchase at now would receive."""
        pct = bonus_percent(self._config, now)
        if not value_sent.is_finite():
            raise InvalidAmount(f"Purchase value must be finite, got {value_sent}")
        principal = quantize_tokens(value_sent * self._rates.rate, self._config.token_precision)
        bonus = quantize_tokens(principal * pct / Decimal(100), self._config.token_precision)
        return principal, bonus

    def buy_tokens(
        self,
        caller: str,
        beneficiary: str,
        value_sent: Decimal,
        now: datetime,
    ) -> VestingSchedule:
        """Process a purchase and create the beneficiary's schedule.

        Raises:
            SaleNotOpen: outside the sale window.
            NotWhitelisted: beneficiary is not whitelisted.
            InvalidAmount: value_sent is not positive.
            AlreadyContributed: beneficiary already has a schedule.
            SupplyExceeded: the grant would exceed the sale supply cap.
            TokenLedgerError: mint or forwarding failed (no state changes).
        """
        principal, bonus = self.quote(value_sent, now)
        if not self._gate.is_whitelisted(beneficiary):
            raise NotWhitelisted(f"{beneficiary} is not whitelisted")
        if value_sent <= ZERO or principal <= ZERO:
            raise InvalidAmount(f"Purchase value must be positive, got {value_sent}")
        if self._ledger.has_schedule(beneficiary):
            raise AlreadyContributed(f"{beneficiary} has already contributed")
        self._ledger.check_capacity(principal + bonus)

        schedule = self._ledger.build_schedule(
            beneficiary, principal, bonus, now, origin=ScheduleOrigin.PURCHASE,
        )
        self._token.mint(self._config.sale_address, principal + bonus, sender=self._config.sale_address)
        self._wallet.deposit(caller, value_sent)
        self._ledger.add(schedule)
        return schedule
