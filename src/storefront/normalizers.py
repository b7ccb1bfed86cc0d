"""
Normalizers converting raw catalog records into the storefront Product model.

One normalizer per source shape (Shopify REST, Shopify GraphQL, Supabase
rows); all converge on ``Product`` so call sites never branch on shape.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from storefront.exceptions import (
    ErrorContext,
    NormalizationError,
    ValidationError,
)
from storefront.logging_config import get_correlation_id, log_execution_time
from storefront.models import (
    DEFAULT_COLOR,
    DEFAULT_SIZE,
    PLACEHOLDER_IMAGE,
    Product,
    SelectedOption,
    Variant,
)

logger = logging.getLogger(__name__)

SIZE_OPTION_MARKERS = ("size",)
COLOR_OPTION_MARKERS = ("color", "colour")
FEATURED_TAG = "featured"


@dataclass
class NormalizationResult:
    """Result of a batch normalization."""
    successful: list[Product] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    warnings: list[dict] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total_count(self) -> int:
        return self.success_count + self.failure_count

    def to_dict(self) -> dict:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_count": self.total_count,
            "failed_product_ids": [f.get("product_id") for f in self.failed],
            "warning_count": len(self.warnings),
        }


class RecordValidator:
    """Validates raw catalog records before normalization."""

    def __init__(self, required_fields: Iterable[str] = ("id",)):
        self.required_fields = tuple(required_fields)
        self.validation_errors: list[ValidationError] = []

    def validate(self, raw_record: Any) -> bool:
        """
        Validate raw record structure.

        Args:
            raw_record: Raw record dictionary

        Returns:
            True if valid, False otherwise
        """
        self.validation_errors.clear()

        if not isinstance(raw_record, dict):
            self.validation_errors.append(
                ValidationError(
                    message="Raw product record is not an object",
                    field_name="<record>",
                    expected="object",
                    actual=type(raw_record).__name__,
                )
            )
            return False

        for field_name in self.required_fields:
            value = raw_record.get(field_name)
            if value is None or value == "":
                self.validation_errors.append(
                    ValidationError(
                        message=f"Missing required field: {field_name}",
                        field_name=field_name,
                        expected="non-empty value",
                        actual=value,
                    )
                )

        return len(self.validation_errors) == 0


class ProductNormalizer:
    """
    Base normalizer holding the coercion rules shared by every source.

    Subclasses implement ``_build`` for their raw shape.
    """

    source = "unknown"
    required_fields: tuple[str, ...] = ("id",)

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or get_correlation_id()
        self.validator = RecordValidator(self.required_fields)
        self.result = NormalizationResult()

    @log_execution_time(logger)
    def normalize_batch(self, raw_records: list[dict]) -> NormalizationResult:
        """
        Normalize a batch of raw records.

        Records that fail validation or mapping are collected in ``failed``;
        a single bad record never aborts the batch.
        """
        self.result = NormalizationResult()

        logger.info(
            f"Normalizing {len(raw_records)} {self.source} records",
            extra={"metrics": {"input_count": len(raw_records)}},
        )

        for idx, raw_record in enumerate(raw_records):
            try:
                product = self.normalize(raw_record)
                if product:
                    self.result.successful.append(product)
                else:
                    self.result.failed.append({
                        "product_id": self._extract_record_id(raw_record),
                        "error": [e.to_dict() for e in self.validator.validation_errors],
                        "index": idx,
                    })
            except NormalizationError as e:
                self.result.failed.append({
                    "product_id": e.context.product_id,
                    "error": e.to_dict(),
                    "index": idx,
                })
                logger.warning(e.message)

        logger.info(
            f"{self.source} normalization complete",
            extra={
                "metrics": {
                    "success_count": self.result.success_count,
                    "failure_count": self.result.failure_count,
                }
            },
        )

        return self.result

    def normalize(self, raw_record: dict) -> Optional[Product]:
        """
        Normalize a single raw record.

        Returns:
            Product or None if validation fails

        Raises:
            NormalizationError: If the record is valid but cannot be mapped
        """
        if not self.validator.validate(raw_record):
            for error in self.validator.validation_errors:
                logger.warning(f"Validation failed: {error.message}")
            return None

        record_id = self._extract_record_id(raw_record)
        context = ErrorContext(
            correlation_id=self.correlation_id,
            product_id=record_id,
        )

        try:
            product = self._build(raw_record)
        except Exception as e:
            raise NormalizationError(
                message=f"Failed to normalize {self.source} product {record_id}: {e}",
                product_id=record_id,
                source=self.source,
                context=context,
                original_exception=e,
            )

        quality_issues = self._check_data_quality(product)
        if quality_issues:
            self.result.warnings.append({
                "product_id": product.id,
                "issues": quality_issues,
            })

        return product

    def _build(self, raw_record: dict) -> Product:
        raise NotImplementedError

    def _check_data_quality(self, product: Product) -> list[str]:
        """Check for data quality issues and return warnings."""
        issues = []

        if product.price == 0:
            issues.append("Product has zero price")
        if not product.image or product.image == PLACEHOLDER_IMAGE:
            issues.append("No image found for product")
        if not product.variants:
            issues.append("No variants found, product is its own variant")
        elif not any(v.available_for_sale for v in product.variants):
            issues.append("No variant is available for sale")

        return issues

    def _extract_record_id(self, raw_record: Any) -> str:
        """Safely extract the record ID."""
        if isinstance(raw_record, dict) and raw_record.get("id") is not None:
            return self._short_id(raw_record["id"])
        return "unknown"

    # Shared coercion rules

    def _parse_price_amount(self, amount: Any) -> float:
        """Parse price amount from string, number or ``{amount}`` object."""
        if amount is None or isinstance(amount, bool):
            return 0.0
        if isinstance(amount, dict):
            return self._parse_price_amount(amount.get("amount"))
        if isinstance(amount, (int, float)):
            return max(0.0, float(amount))
        if isinstance(amount, str):
            if amount.strip().startswith("-"):
                return 0.0
            cleaned = re.sub(r'[^\d.]', '', amount)
            try:
                return max(0.0, float(cleaned)) if cleaned else 0.0
            except ValueError:
                return 0.0
        return 0.0

    def _parse_optional_price(self, amount: Any) -> Optional[float]:
        if amount is None or amount == "":
            return None
        if isinstance(amount, dict) and amount.get("amount") in (None, ""):
            return None
        return self._parse_price_amount(amount)

    def _parse_quantity(self, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return None

    def _short_id(self, raw_id: Any) -> str:
        """Reduce a Shopify GID to its trailing numeric id."""
        text = str(raw_id)
        if text.startswith("gid://"):
            return text.rstrip("/").split("/")[-1]
        return text

    def _normalize_image_url(self, url: Optional[str]) -> str:
        """Ensure image URL has a protocol; fall back to the placeholder."""
        if not url:
            return PLACEHOLDER_IMAGE
        if url.startswith("//"):
            return f"https:{url}"
        return url

    def _parse_tags(self, tags: Any) -> list[str]:
        if not tags:
            return []
        if isinstance(tags, str):
            tags = tags.split(",")
        return [str(t).strip() for t in tags if str(t).strip()]

    def _is_featured(self, tags: list[str], flag: Any = None) -> bool:
        if flag is True:
            return True
        return any(t.lower() == FEATURED_TAG for t in tags)

    def _parse_datetime(self, value: Any) -> Optional[datetime]:
        if not value:
            return None
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None

    def _option_values(self, variants: list[Variant], markers: tuple[str, ...]) -> list[str]:
        """Deduplicated option values (first-seen order) whose name matches."""
        values: list[str] = []
        for variant in variants:
            for option in variant.selected_options:
                name = option.name.lower()
                if any(marker in name for marker in markers) and option.value not in values:
                    values.append(option.value)
        return values

    def _dedupe(self, values: Optional[Iterable[Any]], default: str) -> list[str]:
        seen: list[str] = []
        for value in values or []:
            text = str(value).strip()
            if text and text not in seen:
                seen.append(text)
        return seen or [default]

    def _sizes_and_colors(self, variants: list[Variant]) -> tuple[list[str], list[str]]:
        sizes = self._option_values(variants, SIZE_OPTION_MARKERS)
        colors = self._option_values(variants, COLOR_OPTION_MARKERS)
        return self._dedupe(sizes, DEFAULT_SIZE), self._dedupe(colors, DEFAULT_COLOR)

    def _stock_quantity(self, variants: list[Variant]) -> Optional[int]:
        counts = [v.quantity_available for v in variants if v.quantity_available is not None]
        return sum(counts) if counts else None


class ShopifyRESTNormalizer(ProductNormalizer):
    """Normalizes Shopify Admin REST / Buy SDK product payloads."""

    source = "shopify_rest"

    def _build(self, raw: dict) -> Product:
        option_names = [
            opt.get("name", "") for opt in sorted(
                raw.get("options") or [], key=lambda o: o.get("position", 0)
            )
        ]
        variants = [self._parse_variant(v, option_names) for v in raw.get("variants") or []]
        sizes, colors = self._sizes_and_colors(variants)
        tags = self._parse_tags(raw.get("tags"))
        first = variants[0] if variants else None

        image = (raw.get("image") or {}).get("src")
        if not image and raw.get("images"):
            image = raw["images"][0].get("src")

        return Product(
            id=self._short_id(raw["id"]),
            shopify_id=str(raw.get("admin_graphql_api_id") or raw["id"]),
            handle=raw.get("handle"),
            name=raw.get("title") or "Untitled Product",
            description=self._strip_html(raw.get("body_html") or raw.get("description") or ""),
            price=first.price if first else self._parse_price_amount(raw.get("price")),
            original_price=first.compare_at_price if first else None,
            image=self._normalize_image_url(image),
            category=raw.get("product_type") or raw.get("productType") or "Uncategorized",
            sizes=sizes,
            colors=colors,
            in_stock=any(v.available_for_sale for v in variants) if variants else bool(raw.get("available", True)),
            featured=self._is_featured(tags),
            stock_quantity=self._stock_quantity(variants),
            tags=tags,
            variants=variants,
            created_at=self._parse_datetime(raw.get("created_at")),
        )

    def _parse_variant(self, raw: dict, option_names: list[str]) -> Variant:
        selected = raw.get("selectedOptions") or raw.get("selected_options")
        if selected:
            options = [SelectedOption(name=o["name"], value=str(o["value"])) for o in selected]
        else:
            options = []
            for position, name in enumerate(option_names, start=1):
                value = raw.get(f"option{position}")
                if name and value is not None:
                    options.append(SelectedOption(name=name, value=str(value)))

        quantity = self._parse_quantity(raw.get("inventory_quantity"))
        available = raw.get("available", raw.get("availableForSale"))
        if available is None:
            available = quantity is None or quantity > 0

        return Variant(
            id=str(raw["id"]),
            title=raw.get("title") or "",
            price=self._parse_price_amount(raw.get("price")),
            compare_at_price=self._parse_optional_price(
                raw.get("compare_at_price", raw.get("compareAtPrice"))
            ),
            available_for_sale=bool(available),
            selected_options=options,
            quantity_available=quantity,
        )

    def _strip_html(self, html: str) -> str:
        return re.sub(r"<[^>]+>", "", html).strip()


class ShopifyGraphQLNormalizer(ProductNormalizer):
    """Normalizes Shopify Storefront and Admin GraphQL product nodes."""

    source = "shopify_graphql"

    def _build(self, raw: dict) -> Product:
        variants = [self._parse_variant(node) for node in self._edges(raw.get("variants"))]
        sizes, colors = self._sizes_and_colors(variants)
        tags = self._parse_tags(raw.get("tags"))

        price_range = (raw.get("priceRange") or {}).get("minVariantPrice")
        compare_range = (raw.get("compareAtPriceRange") or {}).get("minVariantPrice")
        if price_range is not None:
            price = self._parse_price_amount(price_range)
        else:
            price = variants[0].price if variants else 0.0
        if compare_range is not None:
            original_price = self._parse_optional_price(compare_range) or None
        else:
            original_price = variants[0].compare_at_price if variants else None

        if variants:
            in_stock = any(v.available_for_sale for v in variants)
        else:
            in_stock = bool(raw.get("availableForSale", True))

        return Product(
            id=self._short_id(raw["id"]),
            shopify_id=str(raw["id"]),
            handle=raw.get("handle"),
            name=raw.get("title") or "Untitled Product",
            description=raw.get("description") or "",
            price=price,
            original_price=original_price,
            image=self._normalize_image_url(self._first_image(raw)),
            category=raw.get("productType") or "Uncategorized",
            sizes=sizes,
            colors=colors,
            in_stock=in_stock,
            featured=self._is_featured(tags),
            stock_quantity=self._stock_quantity(variants),
            tags=tags,
            variants=variants,
            created_at=self._parse_datetime(raw.get("createdAt")),
        )

    def _edges(self, connection: Any) -> list[dict]:
        if not connection:
            return []
        if isinstance(connection, list):
            return connection
        if "edges" in connection:
            return [edge.get("node", {}) for edge in connection.get("edges") or []]
        return connection.get("nodes") or []

    def _first_image(self, raw: dict) -> Optional[str]:
        featured = raw.get("featuredImage") or {}
        if featured.get("url"):
            return featured["url"]
        for node in self._edges(raw.get("images")):
            url = node.get("url") or node.get("originalSrc") or node.get("src")
            if url:
                return url
        return None

    def _parse_variant(self, node: dict) -> Variant:
        quantity = node.get("quantityAvailable")
        if quantity is None:
            quantity = node.get("inventoryQuantity")

        return Variant(
            id=str(node["id"]),
            title=node.get("title") or "",
            price=self._parse_price_amount(node.get("price")),
            compare_at_price=self._parse_optional_price(node.get("compareAtPrice")),
            available_for_sale=bool(node.get("availableForSale", False)),
            selected_options=[
                SelectedOption(name=o["name"], value=str(o["value"]))
                for o in node.get("selectedOptions") or []
            ],
            quantity_available=self._parse_quantity(quantity),
        )


class SupabaseRowNormalizer(ProductNormalizer):
    """Normalizes rows of the Supabase ``products`` table."""

    source = "supabase"

    def _build(self, raw: dict) -> Product:
        stock = raw.get("stock_quantity", raw.get("inventory_count"))
        tags = self._parse_tags(raw.get("tags"))

        return Product(
            id=str(raw["id"]),
            handle=raw.get("handle"),
            name=raw.get("name") or "Untitled Product",
            description=raw.get("description") or "",
            price=self._parse_price_amount(raw.get("price")),
            original_price=self._parse_optional_price(raw.get("original_price")),
            image=self._normalize_image_url(raw.get("image") or raw.get("image_url")),
            category=raw.get("category") or "Uncategorized",
            sizes=self._dedupe(raw.get("sizes"), DEFAULT_SIZE),
            colors=self._dedupe(raw.get("colors"), DEFAULT_COLOR),
            in_stock=bool(raw.get("in_stock", True)),
            featured=self._is_featured(tags, raw.get("featured")),
            stock_quantity=self._parse_quantity(stock),
            tags=tags,
            created_at=self._parse_datetime(raw.get("created_at")),
        )


NORMALIZERS: dict[str, type[ProductNormalizer]] = {
    ShopifyRESTNormalizer.source: ShopifyRESTNormalizer,
    ShopifyGraphQLNormalizer.source: ShopifyGraphQLNormalizer,
    SupabaseRowNormalizer.source: SupabaseRowNormalizer,
}


def get_normalizer(source: str, correlation_id: Optional[str] = None) -> ProductNormalizer:
    """Return the normalizer registered for a raw source shape."""
    try:
        return NORMALIZERS[source](correlation_id=correlation_id)
    except KeyError:
        raise ValueError(
            f"Unknown catalog source {source!r}; expected one of {sorted(NORMALIZERS)}"
        )
