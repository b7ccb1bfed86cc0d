"""Pytest fixtures and configuration."""

import os

import pytest

os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from storefront.models import Product, SelectedOption, Variant  # noqa: E402
from storefront.notifications import RecordingNotifier  # noqa: E402
from storefront.storage import MemoryStorage  # noqa: E402


@pytest.fixture
def sample_rest_product():
    """Return a Shopify Admin REST product payload."""
    return {
        "id": 7001,
        "admin_graphql_api_id": "gid://shopify/Product/7001",
        "title": "Flow Leggings",
        "handle": "flow-leggings",
        "body_html": "<p>High-rise <strong>leggings</strong></p>",
        "product_type": "Leggings",
        "tags": "women, featured",
        "created_at": "2024-03-01T10:00:00Z",
        "options": [
            {"name": "Size", "position": 1},
            {"name": "Color", "position": 2},
        ],
        "variants": [
            {
                "id": 1,
                "title": "S / Black",
                "price": "68.00",
                "compare_at_price": "80.00",
                "option1": "S",
                "option2": "Black",
                "inventory_quantity": 3,
            },
            {
                "id": 2,
                "title": "M / Black",
                "price": "68.00",
                "compare_at_price": None,
                "option1": "M",
                "option2": "Black",
                "inventory_quantity": 0,
            },
            {
                "id": 3,
                "title": "M / Sage",
                "price": "70.00",
                "option1": "M",
                "option2": "Sage",
                "inventory_quantity": 5,
            },
        ],
        "image": {"src": "//cdn.shopify.com/flow.jpg"},
    }


@pytest.fixture
def sample_graphql_product():
    """Return a Shopify Storefront GraphQL product node."""
    return {
        "id": "gid://shopify/Product/8001",
        "title": "Core Sports Bra",
        "handle": "core-sports-bra",
        "description": "Medium support",
        "productType": "Sport Bra",
        "tags": ["women"],
        "createdAt": "2024-04-02T08:30:00Z",
        "availableForSale": True,
        "priceRange": {"minVariantPrice": {"amount": "45.0", "currencyCode": "USD"}},
        "compareAtPriceRange": {"minVariantPrice": {"amount": "0.0", "currencyCode": "USD"}},
        "images": {
            "edges": [
                {"node": {"id": "img-1", "url": "https://cdn.shopify.com/bra.jpg", "altText": None}},
            ]
        },
        "variants": {
            "edges": [
                {
                    "node": {
                        "id": "gid://shopify/ProductVariant/81",
                        "title": "XS / Navy",
                        "price": {"amount": "45.0", "currencyCode": "USD"},
                        "compareAtPrice": None,
                        "selectedOptions": [
                            {"name": "Size", "value": "XS"},
                            {"name": "Color", "value": "Navy"},
                        ],
                        "availableForSale": False,
                        "quantityAvailable": 0,
                    }
                },
                {
                    "node": {
                        "id": "gid://shopify/ProductVariant/82",
                        "title": "S / Navy",
                        "price": {"amount": "45.0", "currencyCode": "USD"},
                        "compareAtPrice": None,
                        "selectedOptions": [
                            {"name": "Size", "value": "S"},
                            {"name": "Color", "value": "Navy"},
                        ],
                        "availableForSale": True,
                        "quantityAvailable": 7,
                    }
                },
            ]
        },
    }


@pytest.fixture
def sample_supabase_row():
    """Return a row from the Supabase products table."""
    return {
        "id": "b6c7e1f2-0000-4000-8000-000000000001",
        "name": "Trail Shorts",
        "description": "Lightweight running shorts",
        "price": 42.5,
        "original_price": None,
        "image_url": "https://images.example.com/shorts.jpg",
        "category": "Shorts",
        "sizes": ["S", "M", "M", " "],
        "colors": [],
        "in_stock": True,
        "featured": False,
        "stock_quantity": 12,
        "tags": None,
        "created_at": "2024-05-10T12:00:00+00:00",
    }


def make_product(product_id="p1", name="Test Product", price=10.0, **overrides) -> Product:
    """Build a normalized product with sensible defaults."""
    fields = {
        "id": product_id,
        "name": name,
        "price": price,
        "category": "Tops",
        "sizes": ["S", "M"],
        "colors": ["Black"],
    }
    fields.update(overrides)
    return Product(**fields)


def make_variant(variant_id, size=None, color=None, available=True) -> Variant:
    options = []
    if size is not None:
        options.append(SelectedOption(name="Size", value=size))
    if color is not None:
        options.append(SelectedOption(name="Color", value=color))
    return Variant(id=variant_id, selected_options=options, available_for_sale=available)


@pytest.fixture
def product():
    """Return a product with two sized variants."""
    return make_product(
        variants=[
            make_variant("v-s-black", size="S", color="Black"),
            make_variant("v-m-black", size="M", color="Black"),
        ],
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def notifier():
    return RecordingNotifier()
