"""Bonus tier resolver — maps elapsed sale time to a bonus percentage.

Pure function of (config, now). Elapsed time is counted in whole days
since the sale opened:

    d = floor((now - start_time) / 1 day)

    0 <= d < 2  → 30%
    2 <= d < 4  → 20%
    4 <= d < 6  → 10%
    6 <= d < 8  →  5%
    d >= 8      →  0%

The table comes from SaleConfig.bonus_tiers. Outside [start_time, end_time)
the sale is not open and no tier exists.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from crowdsale.errors import SaleNotOpen
from crowdsale.models.sale import SaleConfig


ONE_DAY = timedelta(days=1)


def is_open(config: SaleConfig, now: datetime) -> bool:
    return config.start_time <= now < config.end_time


def has_ended(config: SaleConfig, now: datetime) -> bool:
    return now >= config.end_time


def elapsed_days(config: SaleConfig, now: datetime) -> int:
    """Whole days since the sale opened."""
    return (now - config.start_time) // ONE_DAY


def bonus_percent(config: SaleConfig, now: datetime) -> int:
    """Return the bonus percentage for a purchase at ``now``.

    Raises:
        SaleNotOpen: now is before start_time or at/after end_time.
    """
    if not is_open(config, now):
        raise SaleNotOpen(
            f"Sale is open from {config.start_time.isoformat()} "
            f"until {config.end_time.isoformat()}; now is {now.isoformat()}"
        )
    days = elapsed_days(config, now)
    for threshold, pct in config.bonus_tiers:
        if days < threshold:
            return pct
    return 0
