"""
Cart store: ordered cart lines persisted to durable storage after every
mutation.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from storefront.exceptions import ValidationError
from storefront.models import CartItem, CheckoutLineItem, Product
from storefront.notifications import LoggingNotifier, Notification, Notifier
from storefront.storage import (
    CART_STORAGE_KEY,
    KeyValueStorage,
    discard_corrupt,
    dump_json,
    load_json,
)
from storefront.variants import resolve_variant

logger = logging.getLogger(__name__)

_MISSING = object()


def _check_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(
            message="Quantity must be a whole number",
            field_name="quantity",
            expected="integer",
            actual=quantity,
        )


@dataclass
class CartReconciliation:
    """Cart lines whose product has left the catalog or gone out of stock."""
    missing: list[int] = field(default_factory=list)
    unavailable: list[int] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.missing and not self.unavailable


class CartStore:
    """
    Shopping cart backed by a key-value store.

    Lines are addressed by position; indices shift after every removal, so
    callers must re-read ``items`` before addressing a line again.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        notifier: Optional[Notifier] = None,
        storage_key: str = CART_STORAGE_KEY,
    ):
        self.storage = storage
        self.notifier = notifier or LoggingNotifier()
        self.storage_key = storage_key
        self._items: list[CartItem] = self._load()

    def _load(self) -> list[CartItem]:
        data = load_json(self.storage, self.storage_key, default=_MISSING)
        if data is _MISSING:
            return []
        try:
            if not isinstance(data, list):
                raise TypeError(f"expected a list of cart lines, got {type(data).__name__}")
            items = [CartItem.model_validate(entry) for entry in data]
        except (PydanticValidationError, TypeError) as e:
            discard_corrupt(self.storage, self.storage_key, e)
            return []
        logger.debug(f"Restored cart with {len(items)} lines")
        return items

    def _persist(self) -> None:
        dump_json(
            self.storage,
            self.storage_key,
            [item.model_dump(mode="json", by_alias=True) for item in self._items],
        )

    def _notify(self, title: str, description: str) -> None:
        self.notifier.notify(Notification(title=title, description=description))

    @property
    def items(self) -> tuple[CartItem, ...]:
        return tuple(self._items)

    @property
    def total(self) -> float:
        return sum(item.product.price * item.quantity for item in self._items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def find_line(self, product_id: str, size: str, color: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.line_key == (product_id, size, color):
                return index
        return None

    def add_item(self, product: Product, size: str, color: str, quantity: int = 1) -> None:
        """
        Add a product selection, merging into an identical line if present.

        Raises:
            ValidationError: If quantity is not a positive integer
        """
        _check_quantity(quantity)
        if quantity <= 0:
            raise ValidationError(
                message="Quantity must be a positive whole number",
                field_name="quantity",
                expected="positive integer",
                actual=quantity,
            )

        variant_id = resolve_variant(product, size, color)
        logger.info(
            f"Adding {quantity} x {product.name} ({size}/{color}) to cart",
            extra={"product_id": product.id},
        )

        index = self.find_line(product.id, size, color)
        if index is not None:
            existing = self._items[index]
            self._items[index] = existing.model_copy(
                update={"quantity": existing.quantity + quantity}
            )
            self._notify("Updated cart", f"{product.name} quantity updated")
        else:
            self._items.append(
                CartItem(
                    product=product.model_copy(deep=True),
                    quantity=quantity,
                    size=size,
                    color=color,
                    variant_id=variant_id,
                )
            )
            self._notify("Added to cart", f"{product.name} added to your cart")

        self._persist()

    def remove_item(self, index: int) -> None:
        """Remove the line at ``index``."""
        self._check_index(index)
        del self._items[index]
        self._notify("Removed from cart", "Item removed from your cart")
        self._persist()

    def update_quantity(self, index: int, quantity: int) -> None:
        """
        Set a line's quantity; zero or negative removes the line.

        Raises:
            ValidationError: If quantity is not a whole number
        """
        _check_quantity(quantity)
        if quantity <= 0:
            self.remove_item(index)
            return
        self._check_index(index)
        self._items[index] = self._items[index].model_copy(update={"quantity": quantity})
        self._persist()

    def clear_cart(self) -> None:
        """Empty the cart and delete the persisted record."""
        self._items = []
        self.storage.remove(self.storage_key)
        self._notify("Cart cleared", "All items removed from cart")

    def to_line_items(self) -> list[CheckoutLineItem]:
        return [
            CheckoutLineItem(
                product_id=item.product.id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                size=item.size,
                color=item.color,
                unit_price=item.product.price,
            )
            for item in self._items
        ]

    def reconcile(self, products: Iterable[Product]) -> CartReconciliation:
        """
        Compare cart lines against a catalog snapshot.

        Lines keep the product copy taken when they were added; this only
        reports which ones no longer match the catalog.
        """
        catalog = {p.id: p for p in products}
        report = CartReconciliation()
        for index, item in enumerate(self._items):
            current = catalog.get(item.product.id)
            if current is None:
                report.missing.append(index)
            elif not current.in_stock:
                report.unavailable.append(index)
        if not report.is_clean:
            logger.info(
                f"Cart reconciliation: {len(report.missing)} missing, "
                f"{len(report.unavailable)} unavailable"
            )
        return report

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._items):
            raise IndexError(f"Cart has no line at index {index}")
