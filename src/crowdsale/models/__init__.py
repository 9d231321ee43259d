"""Core data models for the crowdsale engine."""

from crowdsale.models.sale import (
    DEFAULT_BONUS_TIERS,
    Forfeiture,
    PoolTransfer,
    ReleaseResult,
    RevokedPoolState,
    SaleConfig,
    ScheduleOrigin,
    ScheduleState,
    VestingSchedule,
)

__all__ = [
    "DEFAULT_BONUS_TIERS",
    "Forfeiture",
    "PoolTransfer",
    "ReleaseResult",
    "RevokedPoolState",
    "SaleConfig",
    "ScheduleOrigin",
    "ScheduleState",
    "VestingSchedule",
]
