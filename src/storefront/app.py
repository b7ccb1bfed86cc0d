"""
Composition root wiring one storage backend, catalog, cart, section mapper
and checkout together.
"""

import logging
from typing import Optional

from storefront.cart import CartStore
from storefront.catalog import CatalogCache, CatalogRefresher, RawFetcher
from storefront.checkout import (
    CheckoutGateway,
    CheckoutService,
    ShopifyCheckoutGateway,
    StripeCheckoutGateway,
)
from storefront.config import Settings
from storefront.models import Product
from storefront.normalizers import get_normalizer
from storefront.notifications import LoggingNotifier, Notifier
from storefront.payments import StripeClient
from storefront.sections import MappingStore, SectionMapper, apply_section_cap
from storefront.shopify import ShopifyAdminClient, ShopifyStorefrontClient
from storefront.storage import KeyValueStorage, create_storage
from storefront.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


def build_fetcher(settings: Settings, source: str) -> RawFetcher:
    """Return the raw-record fetcher for a catalog source shape."""
    if source == "shopify_graphql":
        return ShopifyStorefrontClient.from_settings(settings).fetch_products
    if source == "shopify_rest":
        return ShopifyAdminClient.from_settings(settings).fetch_products
    if source == "supabase":
        return SupabaseClient.from_settings(settings).fetch_products
    raise ValueError(f"Unknown catalog source: {source!r}")


def build_gateway(settings: Settings, name: str) -> CheckoutGateway:
    if name == "shopify":
        return ShopifyCheckoutGateway(ShopifyStorefrontClient.from_settings(settings))
    if name == "stripe":
        orders = SupabaseClient.from_settings(settings) if settings.supabase_url else None
        return StripeCheckoutGateway(
            StripeClient.from_settings(settings), currency=settings.currency, orders=orders
        )
    raise ValueError(f"Unknown checkout gateway: {name!r}")


class Storefront:
    """Owns every piece of storefront state; nothing lives at module level."""

    def __init__(
        self,
        storage: KeyValueStorage,
        catalog: CatalogCache,
        notifier: Optional[Notifier] = None,
        gateway: Optional[CheckoutGateway] = None,
        refresh_seconds: Optional[int] = None,
    ):
        self.storage = storage
        self.notifier = notifier or LoggingNotifier()
        self.catalog = catalog
        self.cart = CartStore(storage, notifier=self.notifier)
        self.mappings = MappingStore(storage)
        self.sections = SectionMapper(catalog, self.mappings)
        self.checkout = CheckoutService(self.cart, gateway, self.notifier) if gateway else None
        self.refresher = CatalogRefresher(catalog, refresh_seconds) if refresh_seconds else None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gateway: Optional[str] = "shopify",
        notifier: Optional[Notifier] = None,
    ) -> "Storefront":
        source = settings.catalog_source
        catalog = CatalogCache(build_fetcher(settings, source), get_normalizer(source))
        return cls(
            storage=create_storage(settings),
            catalog=catalog,
            notifier=notifier,
            gateway=build_gateway(settings, gateway) if gateway else None,
            refresh_seconds=settings.catalog_refresh_seconds,
        )

    def start(self) -> None:
        """Load the catalog and begin periodic refreshes."""
        if self.refresher is not None:
            self.refresher.start(refresh_now=True)
        else:
            self.catalog.refresh()
        logger.info(
            f"Storefront started with {len(self.catalog.get())} products and "
            f"{self.cart.item_count} items in cart"
        )

    def stop(self) -> None:
        if self.refresher is not None:
            self.refresher.stop()

    def __enter__(self) -> "Storefront":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def section(self, section_id: str) -> list[Product]:
        """Products to render for a section, truncated to its cap."""
        return apply_section_cap(section_id, self.sections.get_products_for_section(section_id))
