"""
Data models for the storefront core.
These models represent the normalized structures shared by the catalog,
cart, section mapper and checkout.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

DEFAULT_SIZE = "One Size"
DEFAULT_COLOR = "Default"
PLACEHOLDER_IMAGE = "/placeholder.svg"


class SelectedOption(BaseModel):
    """A single (option name, option value) pair on a variant, e.g. Size=M."""
    name: str
    value: str


class Variant(BaseModel):
    """A purchasable configuration of a product."""
    id: str
    title: str = ""
    price: float = Field(0.0, ge=0)
    compare_at_price: Optional[float] = Field(None, alias="compareAtPrice")
    available_for_sale: bool = Field(True, alias="availableForSale")
    selected_options: list[SelectedOption] = Field(
        default_factory=list, alias="selectedOptions"
    )
    quantity_available: Optional[int] = Field(None, alias="quantityAvailable")

    class Config:
        populate_by_name = True
        frozen = True


class Product(BaseModel):
    """
    Normalized product - the single shape every catalog source converges on.

    Products are read-only snapshots; the catalog replaces them wholesale.
    """
    id: str
    name: str
    description: str = ""
    image: str = PLACEHOLDER_IMAGE
    category: str = ""
    price: float = Field(0.0, ge=0)
    original_price: Optional[float] = Field(None, alias="originalPrice")
    sizes: list[str] = Field(default_factory=lambda: [DEFAULT_SIZE])
    colors: list[str] = Field(default_factory=lambda: [DEFAULT_COLOR])
    in_stock: bool = Field(True, alias="inStock")
    featured: bool = False
    stock_quantity: Optional[int] = Field(None, ge=0, alias="stockQuantity")
    handle: Optional[str] = None
    shopify_id: Optional[str] = Field(None, alias="shopifyId")
    tags: list[str] = Field(default_factory=list)
    variants: list[Variant] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def on_sale(self) -> bool:
        return self.original_price is not None and self.original_price > self.price

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CartItem(BaseModel):
    """One cart line, keyed by (product id, size, color)."""
    product: Product
    quantity: int = Field(..., gt=0)
    size: str
    color: str
    variant_id: Optional[str] = Field(None, alias="variantId")

    class Config:
        populate_by_name = True

    @property
    def line_key(self) -> tuple[str, str, str]:
        return (self.product.id, self.size, self.color)

    @property
    def line_total(self) -> float:
        return self.product.price * self.quantity


class SortBy(str, Enum):
    """Sort orders available to a section mapping."""
    MANUAL = "manual"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    NAME = "name"
    CREATED = "created"


class SectionSettings(BaseModel):
    """Display settings of a section mapping."""
    show_title: bool = Field(True, alias="showTitle")
    show_description: bool = Field(True, alias="showDescription")
    layout: str = "grid"
    products_per_row: int = Field(4, alias="productsPerRow")
    sort_by: SortBy = Field(SortBy.MANUAL, alias="sortBy")

    class Config:
        populate_by_name = True


class WebsiteSection(BaseModel):
    """A named display region of the storefront home page."""
    id: str
    name: str
    display_name: str = Field(..., alias="displayName")
    description: str = ""
    max_products: Optional[int] = Field(None, alias="maxProducts")
    type: str

    class Config:
        populate_by_name = True
        frozen = True


class CollectionMapping(BaseModel):
    """Persisted assignment of products (or a source collection) to a section."""
    id: str
    section_id: str = Field(..., alias="sectionId")
    shopify_collection_id: Optional[str] = Field(None, alias="shopifyCollectionId")
    product_ids: list[str] = Field(default_factory=list, alias="productIds")
    settings: SectionSettings = Field(default_factory=SectionSettings)
    is_active: bool = Field(True, alias="isActive")
    priority: int = 1

    class Config:
        populate_by_name = True


class ShopifyCollection(BaseModel):
    """A platform collection used to seed a section mapping."""
    id: str
    handle: str = ""
    title: str = ""
    description: str = ""
    product_ids: list[str] = Field(default_factory=list, alias="productIds")

    class Config:
        populate_by_name = True


class CustomerInfo(BaseModel):
    """Shipping and contact details collected at checkout."""
    email: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    address: str
    city: str
    state: str
    zip_code: str = Field(..., alias="zipCode")
    country: str = "US"
    shipping_method: str = Field("standard", alias="shippingMethod")

    class Config:
        populate_by_name = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class CheckoutLineItem(BaseModel):
    """Cart line passed through to a checkout gateway."""
    product_id: str = Field(..., alias="productId")
    variant_id: Optional[str] = Field(None, alias="variantId")
    quantity: int = Field(..., gt=0)
    size: str
    color: str
    unit_price: float = Field(0.0, ge=0, alias="unitPrice")

    class Config:
        populate_by_name = True


class OrderSummary(BaseModel):
    """Totals shown on the checkout page."""
    subtotal: float
    shipping: float
    tax: float
    total: float


class CheckoutResult(BaseModel):
    """Success/failure signal returned by a checkout attempt."""
    success: bool
    checkout_id: Optional[str] = Field(None, alias="checkoutId")
    checkout_url: Optional[str] = Field(None, alias="checkoutUrl")
    client_secret: Optional[str] = Field(None, alias="clientSecret")
    payment_intent_id: Optional[str] = Field(None, alias="paymentIntentId")
    summary: Optional[OrderSummary] = None
    error: Optional[str] = None
    retryable: bool = False

    class Config:
        populate_by_name = True

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
