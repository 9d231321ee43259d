"""Vesting subsystem — schedule ledger, release engine, revoked pool."""

from crowdsale.vesting.ledger import VestingLedger
from crowdsale.vesting.release import (
    ReleaseEngine,
    releasable,
    unlocked_bonus,
    unlocked_principal,
)
from crowdsale.vesting.revocation import RevocationManager, RevokedPool

__all__ = [
    "ReleaseEngine",
    "RevocationManager",
    "RevokedPool",
    "VestingLedger",
    "releasable",
    "unlocked_bonus",
    "unlocked_principal",
]
