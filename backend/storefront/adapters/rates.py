from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from storefront.config import Settings, settings as default_settings


@dataclass(frozen=True)
class ShippingTaxRates:
    tax_rate: Decimal
    free_shipping_threshold: int  # minor units; strictly above ships free
    flat_shipping_fee: int


class RateProvider(Protocol):
    def get_rates(self) -> ShippingTaxRates:
        ...


class SettingsRateProvider:
    """Flat tax rate and shipping policy taken from configuration."""

    def __init__(self, settings: Settings = None):
        self.settings = settings or default_settings

    def get_rates(self) -> ShippingTaxRates:
        return ShippingTaxRates(
            tax_rate=Decimal(str(self.settings.TAX_RATE)),
            free_shipping_threshold=self.settings.FREE_SHIPPING_THRESHOLD_CENTS,
            flat_shipping_fee=self.settings.FLAT_SHIPPING_CENTS,
        )
