"""Token ledger and funds wallet contracts.

The sale engine never stores token balances itself. Balances, transfers
and minting live in an external fungible-token ledger; purchase value is
forwarded to an external funds wallet. Both are pluggable backends behind
the Protocols below.

The in-memory implementations are the reference backends used by the
CLI and the test-suite. They enforce the same failure rules a real
ledger does:
- mint and transfer_ownership fail unless sender is the current owner
- transfer fails when the sender's balance is insufficient
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Protocol, runtime_checkable

from crowdsale.errors import TokenLedgerError


@runtime_checkable
class TokenLedger(Protocol):
    """Abstract contract for the fungible-token ledger."""

    @property
    def owner(self) -> str:
        """Identity holding mint authority."""
        ...

    def mint(self, to: str, amount: Decimal, sender: str) -> None:
        """Create amount new tokens credited to ``to``."""
        ...

    def transfer(self, to: str, amount: Decimal, sender: str) -> None:
        """Move amount from sender's balance to ``to``."""
        ...

    def balance_of(self, address: str) -> Decimal:
        ...

    def transfer_ownership(self, new_owner: str, sender: str) -> None:
        """Hand mint authority to new_owner."""
        ...


@runtime_checkable
class FundsWallet(Protocol):
    """Receiving wallet for purchase value."""

    @property
    def balance(self) -> Decimal:
        ...

    def deposit(self, sender: str, amount: Decimal) -> None:
        ...


class InMemoryTokenLedger:
    """Reference token ledger held in memory.

    Usage:
        token = InMemoryTokenLedger(owner="crowdsale")
        token.mint("crowdsale", Decimal("1300"), sender="crowdsale")
        token.transfer("alice", Decimal("260"), sender="crowdsale")
    """

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._balances: Dict[str, Decimal] = {}
        self._total_supply = Decimal("0")

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def total_supply(self) -> Decimal:
        return self._total_supply

    def mint(self, to: str, amount: Decimal, sender: str) -> None:
        if sender != self._owner:
            raise TokenLedgerError(
                f"Mint refused: {sender} does not hold mint authority "
                f"(owner is {self._owner})"
            )
        if amount < Decimal("0"):
            raise TokenLedgerError(f"Mint amount must not be negative, got {amount}")
        self._balances[to] = self.balance_of(to) + amount
        self._total_supply += amount

    def transfer(self, to: str, amount: Decimal, sender: str) -> None:
        if amount < Decimal("0"):
            raise TokenLedgerError(f"Transfer amount must not be negative, got {amount}")
        available = self.balance_of(sender)
        if amount > available:
            raise TokenLedgerError(
                f"Transfer refused: {sender} holds {available}, needs {amount}"
            )
        self._balances[sender] = available - amount
        self._balances[to] = self.balance_of(to) + amount

    def balance_of(self, address: str) -> Decimal:
        return self._balances.get(address, Decimal("0"))

    def transfer_ownership(self, new_owner: str, sender: str) -> None:
        if sender != self._owner:
            raise TokenLedgerError(
                f"Ownership transfer refused: {sender} is not the owner"
            )
        if not new_owner:
            raise TokenLedgerError("New owner must not be blank")
        self._owner = new_owner

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self._owner,
            "total_supply": str(self._total_supply),
            "balances": {k: str(v) for k, v in self._balances.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryTokenLedger":
        ledger = cls(owner=data["owner"])
        ledger._total_supply = Decimal(data["total_supply"])
        ledger._balances = {k: Decimal(v) for k, v in data["balances"].items()}
        return ledger


class InMemoryWallet:
    """Reference funds wallet that tallies deposits per sender."""

    def __init__(self, address: str) -> None:
        self.address = address
        self._balance = Decimal("0")
        self._deposits: Dict[str, Decimal] = {}

    @property
    def balance(self) -> Decimal:
        return self._balance

    def deposited_by(self, sender: str) -> Decimal:
        return self._deposits.get(sender, Decimal("0"))

    def deposit(self, sender: str, amount: Decimal) -> None:
        if amount <= Decimal("0"):
            raise TokenLedgerError(f"Deposit must be positive, got {amount}")
        self._balance += amount
        self._deposits[sender] = self.deposited_by(sender) + amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "balance": str(self._balance),
            "deposits": {k: str(v) for k, v in self._deposits.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryWallet":
        wallet = cls(address=data["address"])
        wallet._balance = Decimal(data["balance"])
        wallet._deposits = {k: Decimal(v) for k, v in data["deposits"].items()}
        return wallet
