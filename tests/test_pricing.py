"""Tests for pricing — proves rate bounds and the bonus tier table."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from crowdsale.access.gate import AccessGate
from crowdsale.errors import RateOutOfBounds, SaleNotOpen, Unauthorized
from crowdsale.models.sale import SaleConfig
from crowdsale.pricing.bonus import bonus_percent, elapsed_days, has_ended, is_open
from crowdsale.pricing.rate import RateController


START = datetime(2026, 11, 2, tzinfo=timezone.utc)
END = datetime(2026, 11, 30, tzinfo=timezone.utc)


def _config() -> SaleConfig:
    return SaleConfig(
        start_time=START,
        end_time=END,
        rate=Decimal("1000"),
        min_initial_allocation=Decimal("333000"),
        max_initial_allocation=Decimal("13500000"),
        sale_supply_cap=Decimal("165000000"),
        admin="owner",
    )


@pytest.fixture
def rates() -> RateController:
    return RateController(AccessGate("owner"), Decimal("1000"))


class TestRateController:
    def test_upper_bound_inclusive(self, rates: RateController) -> None:
        previous = rates.update_rate("owner", Decimal("1100"))
        assert previous == Decimal("1000")
        assert rates.rate == Decimal("1100")

    def test_lower_bound_inclusive(self, rates: RateController) -> None:
        rates.update_rate("owner", Decimal("900"))
        assert rates.rate == Decimal("900")

    def test_above_bound_rejected(self, rates: RateController) -> None:
        with pytest.raises(RateOutOfBounds):
            rates.update_rate("owner", Decimal("1100.01"))
        assert rates.rate == Decimal("1000")

    def test_below_bound_rejected(self, rates: RateController) -> None:
        with pytest.raises(RateOutOfBounds):
            rates.update_rate("owner", Decimal("899.99"))

    def test_bounds_move_with_rate(self, rates: RateController) -> None:
        rates.update_rate("owner", Decimal("1100"))
        rates.update_rate("owner", Decimal("1210"))
        assert rates.rate == Decimal("1210")

    def test_non_positive_rejected(self, rates: RateController) -> None:
        with pytest.raises(RateOutOfBounds):
            rates.update_rate("owner", Decimal("0"))

    def test_non_admin_rejected(self, rates: RateController) -> None:
        with pytest.raises(Unauthorized):
            rates.update_rate("alice", Decimal("1050"))


class TestBonusTiers:
    @pytest.mark.parametrize(
        "offset, expected",
        [
            (timedelta(0), 30),
            (timedelta(days=1, hours=23), 30),
            (timedelta(days=2), 20),
            (timedelta(days=3), 20),
            (timedelta(days=4), 10),
            (timedelta(days=6), 5),
            (timedelta(days=7, hours=23, minutes=59), 5),
            (timedelta(days=8), 0),
            (timedelta(days=27), 0),
        ],
    )
    def test_tier_table(self, offset: timedelta, expected: int) -> None:
        assert bonus_percent(_config(), START + offset) == expected

    def test_before_start_not_open(self) -> None:
        with pytest.raises(SaleNotOpen):
            bonus_percent(_config(), START - timedelta(seconds=1))

    def test_at_end_not_open(self) -> None:
        with pytest.raises(SaleNotOpen):
            bonus_percent(_config(), END)

    def test_window_helpers(self) -> None:
        cfg = _config()
        assert is_open(cfg, START)
        assert not is_open(cfg, END)
        assert has_ended(cfg, END)
        assert not has_ended(cfg, END - timedelta(seconds=1))
        assert elapsed_days(cfg, START + timedelta(days=3, hours=5)) == 3
