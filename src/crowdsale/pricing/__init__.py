"""Pricing — conversion rate control and time-tiered purchase bonus."""

from crowdsale.pricing.bonus import bonus_percent
from crowdsale.pricing.rate import RateController

__all__ = ["RateController", "bonus_percent"]
