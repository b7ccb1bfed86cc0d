"""
Salt & Soul storefront core.

Catalog normalization and caching, a persisted shopping cart, variant
resolution, collection-to-section mapping and checkout orchestration over
Shopify, Stripe and Supabase.
"""

from storefront.app import Storefront
from storefront.cart import CartStore
from storefront.catalog import CatalogCache, CatalogRefresher
from storefront.checkout import CheckoutService
from storefront.exceptions import (
    CheckoutError,
    ConfigurationError,
    CorruptStateError,
    NormalizationError,
    PlatformAPIError,
    ShopifyAPIError,
    StorageError,
    StorefrontError,
    StripeAPIError,
    SupabaseAPIError,
    ValidationError,
)
from storefront.models import CartItem, Product, Variant
from storefront.normalizers import get_normalizer
from storefront.sections import MappingStore, SectionMapper
from storefront.variants import resolve_variant

__all__ = [
    "Storefront",
    "CartStore",
    "CatalogCache",
    "CatalogRefresher",
    "CheckoutService",
    "MappingStore",
    "SectionMapper",
    "get_normalizer",
    "resolve_variant",
    "Product",
    "Variant",
    "CartItem",
    "StorefrontError",
    "ValidationError",
    "NormalizationError",
    "CorruptStateError",
    "StorageError",
    "PlatformAPIError",
    "ShopifyAPIError",
    "StripeAPIError",
    "SupabaseAPIError",
    "CheckoutError",
    "ConfigurationError",
]

__version__ = "1.0.0"
