"""External collaborator contracts — token ledger and funds wallet."""

from crowdsale.token.ledger import (
    FundsWallet,
    InMemoryTokenLedger,
    InMemoryWallet,
    TokenLedger,
)

__all__ = [
    "FundsWallet",
    "InMemoryTokenLedger",
    "InMemoryWallet",
    "TokenLedger",
]
