"""Sale paths — purchases, administrative grants, and finalization."""

from crowdsale.sale.allocation import AdministrativeAllocator
from crowdsale.sale.contribution import ContributionProcessor
from crowdsale.sale.lifecycle import SaleLifecycle

__all__ = [
    "AdministrativeAllocator",
    "ContributionProcessor",
    "SaleLifecycle",
]
