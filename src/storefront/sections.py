"""
Collection-to-section mapping: decides which products appear in each named
region of the home page.
"""

import logging
import re
from typing import Iterable, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from storefront.exceptions import ValidationError
from storefront.models import (
    CollectionMapping,
    Product,
    ShopifyCollection,
    SortBy,
    WebsiteSection,
)
from storefront.storage import (
    MAPPINGS_STORAGE_KEY,
    KeyValueStorage,
    discard_corrupt,
    dump_json,
    load_json,
)

logger = logging.getLogger(__name__)

DEFAULT_SECTIONS: tuple[WebsiteSection, ...] = (
    WebsiteSection(
        id="hero",
        name="hero",
        display_name="Hero Section",
        description="Main featured products on homepage",
        max_products=4,
        type="hero",
    ),
    WebsiteSection(
        id="featured",
        name="featured",
        display_name="Featured Products",
        description="Featured products section",
        max_products=8,
        type="featured",
    ),
    WebsiteSection(
        id="new-arrivals",
        name="new-arrivals",
        display_name="New Arrivals",
        description="Latest products",
        max_products=12,
        type="new-arrivals",
    ),
    WebsiteSection(
        id="bestsellers",
        name="bestsellers",
        display_name="Best Sellers",
        description="Top selling products",
        max_products=8,
        type="bestsellers",
    ),
    WebsiteSection(
        id="women-collection",
        name="women-collection",
        display_name="Women's Collection",
        description="Women's athletic wear",
        type="collection",
    ),
    WebsiteSection(
        id="men-collection",
        name="men-collection",
        display_name="Men's Collection",
        description="Men's athletic wear",
        type="collection",
    ),
)

SECTIONS_BY_ID = {section.id: section for section in DEFAULT_SECTIONS}

FALLBACK_SIZE = 4
DEFAULT_LIST_SIZE = 8

# Audience words match name or category; garment types match category only
WOMEN_KEYWORDS = ("women",)
WOMEN_CATEGORIES = ("sport bra", "tights", "leggings")
MEN_KEYWORDS = ("men",)
MEN_CATEGORIES = ("shorts",)


def get_section(section_id: str) -> Optional[WebsiteSection]:
    return SECTIONS_BY_ID.get(section_id)


def apply_section_cap(section_id: str, products: list[Product]) -> list[Product]:
    """Truncate a section's products to its ``max_products`` cap, if any."""
    section = get_section(section_id)
    if section is None or section.max_products is None:
        return list(products)
    return list(products[:section.max_products])


def default_mappings(sections: Iterable[WebsiteSection] = DEFAULT_SECTIONS) -> list[CollectionMapping]:
    return [
        CollectionMapping(id=f"mapping-{section.id}", section_id=section.id)
        for section in sections
    ]


class MappingStore:
    """Section mappings persisted under a fixed storage key."""

    def __init__(self, storage: KeyValueStorage, storage_key: str = MAPPINGS_STORAGE_KEY):
        self.storage = storage
        self.storage_key = storage_key
        self.mappings: list[CollectionMapping] = self.load()

    def load(self) -> list[CollectionMapping]:
        """Load persisted mappings; absent or corrupt records yield the defaults."""
        data = load_json(self.storage, self.storage_key)
        if data is None:
            return default_mappings()
        try:
            if not isinstance(data, list):
                raise TypeError(f"expected a list of mappings, got {type(data).__name__}")
            return [CollectionMapping.model_validate(entry) for entry in data]
        except (PydanticValidationError, TypeError) as e:
            discard_corrupt(self.storage, self.storage_key, e)
            return default_mappings()

    def save(self) -> None:
        dump_json(
            self.storage,
            self.storage_key,
            [m.model_dump(mode="json", by_alias=True) for m in self.mappings],
        )
        logger.info(f"Saved {len(self.mappings)} collection mappings")

    def get(self, section_id: str) -> Optional[CollectionMapping]:
        """The active mapping for a section; highest priority wins, then stored order."""
        candidates = [m for m in self.mappings if m.section_id == section_id and m.is_active]
        if not candidates:
            return None
        return max(candidates, key=lambda m: m.priority)

    def update(self, section_id: str, **changes) -> CollectionMapping:
        """
        Apply field changes to a section's mapping, creating it if needed, and save.

        Raises:
            ValidationError: If the changed mapping does not validate
        """
        index = next(
            (i for i, m in enumerate(self.mappings) if m.section_id == section_id), None
        )
        current = (
            self.mappings[index] if index is not None
            else CollectionMapping(id=f"mapping-{section_id}", section_id=section_id)
        )
        try:
            updated = CollectionMapping.model_validate({**current.model_dump(), **changes})
        except PydanticValidationError as e:
            raise ValidationError(
                message=f"Invalid mapping update for {section_id}: {e.error_count()} errors",
                field_name=", ".join(sorted(changes)),
                expected="CollectionMapping fields",
                actual=changes,
            ) from e

        if index is None:
            self.mappings.append(updated)
        else:
            self.mappings[index] = updated
        self.save()
        return updated

    def assign_products(self, section_id: str, product_ids: list[str]) -> CollectionMapping:
        """
        Replace a section's manual product list.

        Raises:
            ValidationError: If the selection exceeds the section's cap
        """
        section = get_section(section_id)
        if section and section.max_products is not None and len(product_ids) > section.max_products:
            raise ValidationError(
                message=f"{section.display_name} holds at most {section.max_products} products",
                field_name="product_ids",
                expected=f"at most {section.max_products} ids",
                actual=len(product_ids),
            )
        return self.update(section_id, product_ids=list(product_ids))

    def load_from_collection(self, section_id: str, collection: ShopifyCollection) -> CollectionMapping:
        """Seed a section from a platform collection's products."""
        return self.update(
            section_id,
            shopify_collection_id=collection.id,
            product_ids=list(collection.product_ids),
        )


class ProductSource(Protocol):
    def get(self) -> list[Product]: ...


class SectionMapper:
    """Resolves a section id to an ordered list of catalog products."""

    def __init__(self, catalog: ProductSource, mappings: MappingStore):
        self.catalog = catalog
        self.mappings = mappings

    def get_products_for_section(self, section_id: str) -> list[Product]:
        products = self.catalog.get()
        mapping = self.mappings.get(section_id)
        if mapping is None or not mapping.product_ids:
            return self._fallback(section_id, products)

        by_id = {p.id: p for p in products}
        resolved = [by_id[pid] for pid in mapping.product_ids if pid in by_id]
        dropped = len(mapping.product_ids) - len(resolved)
        if dropped:
            logger.debug(
                f"Section {section_id}: {dropped} mapped products no longer in catalog",
                extra={"section_id": section_id},
            )
        return sort_products(resolved, mapping.settings.sort_by, products)

    def _fallback(self, section_id: str, products: list[Product]) -> list[Product]:
        if not products:
            return []

        if section_id in ("hero", "featured"):
            featured = [p for p in products if p.featured]
            return (featured or products)[:FALLBACK_SIZE]

        if section_id in ("new-arrivals", "bestsellers"):
            section = get_section(section_id)
            limit = section.max_products if section and section.max_products else DEFAULT_LIST_SIZE
            return products[:limit]

        if section_id == "women-collection":
            matches = [p for p in products if _matches_keywords(p, WOMEN_KEYWORDS, WOMEN_CATEGORIES)]
            return matches or products[:FALLBACK_SIZE]

        if section_id == "men-collection":
            matches = [p for p in products if _matches_keywords(p, MEN_KEYWORDS, MEN_CATEGORIES)]
            return matches or products[:FALLBACK_SIZE]

        return products[:DEFAULT_LIST_SIZE]


def _contains_word(text: str, words: tuple[str, ...]) -> bool:
    # Leading word boundary only: "men" must not match inside "women"
    return any(re.search(rf"\b{re.escape(word)}", text) for word in words)


def _matches_keywords(product: Product, keywords: tuple[str, ...], categories: tuple[str, ...]) -> bool:
    category = product.category.lower()
    return (
        _contains_word(f"{category} {product.name.lower()}", keywords)
        or _contains_word(category, categories)
    )


def sort_products(
    products: list[Product],
    sort_by: SortBy,
    catalog_order: Optional[list[Product]] = None,
) -> list[Product]:
    """
    Order a section's products.

    ``created`` has no timestamp to go on, so catalog position stands in for
    recency: later in the catalog sorts first.
    """
    sort_by = SortBy(sort_by)
    if sort_by is SortBy.PRICE_ASC:
        return sorted(products, key=lambda p: p.price)
    if sort_by is SortBy.PRICE_DESC:
        return sorted(products, key=lambda p: p.price, reverse=True)
    if sort_by is SortBy.NAME:
        return sorted(products, key=lambda p: p.name.casefold())
    if sort_by is SortBy.CREATED:
        if catalog_order is None:
            return list(reversed(products))
        position = {p.id: i for i, p in enumerate(catalog_order)}
        return sorted(products, key=lambda p: position.get(p.id, -1), reverse=True)
    return list(products)
