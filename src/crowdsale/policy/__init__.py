"""Sale policy — parameter loading and environment overrides."""

from crowdsale.policy.resolver import SalePolicy

__all__ = ["SalePolicy"]
