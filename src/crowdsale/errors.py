"""Error taxonomy for the crowdsale engine.

Every failure is synchronous and local. Core components raise one of
these; the service layer converts them into a failed ServiceResult that
carries the stable ``code``. A raised error always means the operation
committed nothing.
"""

from __future__ import annotations


class SaleError(Exception):
    """Base class for all crowdsale failures."""

    code = "sale_error"


class Unauthorized(SaleError):
    """Caller is not allowed to perform the operation."""

    code = "unauthorized"


class NotWhitelisted(Unauthorized):
    """Beneficiary is not on the purchase whitelist."""

    code = "not_whitelisted"


class SaleNotOpen(SaleError):
    code = "sale_not_open"


class SaleNotEnded(SaleError):
    code = "sale_not_ended"


class AlreadyFinalized(SaleError):
    code = "already_finalized"


class RateOutOfBounds(SaleError):
    code = "rate_out_of_bounds"


class AllocationOutOfBounds(SaleError):
    code = "allocation_out_of_bounds"


class SupplyExceeded(SaleError):
    code = "supply_exceeded"


class ScheduleExists(SaleError):
    code = "schedule_exists"


class NoSchedule(SaleError):
    code = "no_schedule"


class ScheduleRevoked(SaleError):
    code = "schedule_revoked"


class AlreadyContributed(SaleError):
    code = "already_contributed"


class NotRevocable(SaleError):
    code = "not_revocable"


class NothingToRelease(SaleError):
    code = "nothing_to_release"


class InsufficientPool(SaleError):
    code = "insufficient_pool"


class InvalidAmount(SaleError):
    code = "invalid_amount"


class InvalidAddress(SaleError):
    code = "invalid_address"


class TokenLedgerError(SaleError):
    """Raised by the token ledger collaborator (mint/transfer refused)."""

    code = "token_ledger_error"


class AnchorError(SaleError):
    """Raised when the audit log digest could not be anchored on chain."""

    code = "anchor_error"
