"""
Shopify Admin (REST) and Storefront (GraphQL) clients.
"""

import logging
from typing import Any, Optional

import requests

from storefront.config import Settings
from storefront.exceptions import ShopifyAPIError, ValidationError
from storefront.models import CheckoutLineItem, CustomerInfo, Product, ShopifyCollection
from storefront.platform import PlatformClient, platform_retry
from storefront.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PAGE_LIMIT = 250
VENDOR = "Salt & Soul"

PRODUCTS_QUERY = """
query getProducts($first: Int!) {
  products(first: $first) {
    edges {
      node {
        id
        title
        description
        handle
        priceRange {
          minVariantPrice { amount currencyCode }
        }
        compareAtPriceRange {
          minVariantPrice { amount currencyCode }
        }
        images(first: 5) {
          edges { node { id url altText } }
        }
        variants(first: 50) {
          edges {
            node {
              id
              title
              price { amount currencyCode }
              compareAtPrice { amount currencyCode }
              selectedOptions { name value }
              availableForSale
              quantityAvailable
            }
          }
        }
        tags
        productType
        availableForSale
        createdAt
      }
    }
  }
}
"""

CHECKOUT_CREATE_MUTATION = """
mutation checkoutCreate($input: CheckoutCreateInput!) {
  checkoutCreate(input: $input) {
    checkout {
      id
      webUrl
      subtotalPrice { amount currencyCode }
      totalTax { amount currencyCode }
      totalPrice { amount currencyCode }
    }
    checkoutUserErrors { field message }
  }
}
"""


def to_gid(object_type: str, object_id: str) -> str:
    """Build a Shopify global id unless ``object_id`` already is one."""
    if str(object_id).startswith("gid://"):
        return str(object_id)
    return f"gid://shopify/{object_type}/{object_id}"


def product_payload(product: Product) -> dict:
    """Admin REST body for creating a product from the storefront model."""
    tags = list(product.tags)
    if product.featured and "featured" not in tags:
        tags.append("featured")
    payload = {
        "title": product.name,
        "body_html": product.description,
        "product_type": product.category,
        "vendor": VENDOR,
        "tags": ", ".join(tags),
        "variants": [{
            "price": f"{product.price:.2f}",
            "compare_at_price": f"{product.original_price:.2f}" if product.original_price else None,
            "inventory_management": "shopify",
            "inventory_quantity": product.stock_quantity or 0,
        }],
    }
    if product.image and product.image.startswith("http"):
        payload["images"] = [{"src": product.image}]
    return {"product": payload}


class ShopifyAdminClient(PlatformClient):
    """Admin REST API client used by the admin functions and catalog refresh."""

    error_class = ShopifyAPIError

    def __init__(self, store_domain: str, access_token: str, api_version: str = "2024-01",
                 session: Optional[requests.Session] = None):
        domain = store_domain.replace("https://", "").rstrip("/")
        super().__init__(
            base_url=f"https://{domain}/admin/api/{api_version}",
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": access_token,
            },
            session=session,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShopifyAdminClient":
        return cls(
            store_domain=settings.require("shopify_store_domain"),
            access_token=settings.require("shopify_admin_token"),
            api_version=settings.shopify_api_version,
        )

    @retry_with_backoff(config=platform_retry)
    def fetch_products(self) -> list[dict]:
        response = self._request("GET", "products.json", "fetch_products", params={"limit": PAGE_LIMIT})
        return self._json(response, "fetch_products").get("products", [])

    @retry_with_backoff(config=platform_retry)
    def fetch_collections(self) -> list[ShopifyCollection]:
        collections = []
        for kind in ("custom_collections", "smart_collections"):
            response = self._request("GET", f"{kind}.json", "fetch_collections", params={"limit": PAGE_LIMIT})
            for raw in self._json(response, "fetch_collections").get(kind, []):
                collections.append(ShopifyCollection(
                    id=str(raw["id"]),
                    handle=raw.get("handle") or "",
                    title=raw.get("title") or "",
                    description=raw.get("body_html") or "",
                ))
        return collections

    @retry_with_backoff(config=platform_retry)
    def fetch_collection_product_ids(self, collection_id: str) -> list[str]:
        response = self._request(
            "GET",
            f"collections/{collection_id}/products.json",
            "fetch_collection_products",
            params={"limit": PAGE_LIMIT},
        )
        return [str(p["id"]) for p in self._json(response, "fetch_collection_products").get("products", [])]

    def fetch_collection(self, collection: ShopifyCollection) -> ShopifyCollection:
        """Return ``collection`` with its product ids filled in."""
        return collection.model_copy(
            update={"product_ids": self.fetch_collection_product_ids(collection.id)}
        )

    def create_product(self, product: Product) -> dict:
        response = self._request("POST", "products.json", "create_product", json=product_payload(product))
        return self._json(response, "create_product").get("product", {})

    def create_product_raw(self, body: dict) -> dict:
        response = self._request("POST", "products.json", "create_product", json=body)
        return self._json(response, "create_product")

    def update_product(self, product_id: str, fields: dict) -> dict:
        body = {"product": {"id": product_id, **fields}}
        response = self._request("PUT", f"products/{product_id}.json", "update_product", json=body)
        return self._json(response, "update_product").get("product", {})

    def delete_product(self, product_id: str) -> None:
        self._request("DELETE", f"products/{product_id}.json", "delete_product")
        logger.info(f"Deleted product {product_id}", extra={"product_id": product_id})

    @retry_with_backoff(config=platform_retry)
    def fetch_orders(self) -> list[dict]:
        response = self._request(
            "GET", "orders.json", "fetch_orders", params={"status": "any", "limit": PAGE_LIMIT}
        )
        return self._json(response, "fetch_orders").get("orders", [])

    @retry_with_backoff(config=platform_retry)
    def fetch_customers(self) -> list[dict]:
        response = self._request("GET", "customers.json", "fetch_customers", params={"limit": PAGE_LIMIT})
        return self._json(response, "fetch_customers").get("customers", [])

    def set_inventory(self, inventory_item_id: str, location_id: str, quantity: int) -> dict:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValidationError(
                message="Inventory quantity must be a non-negative whole number",
                field_name="quantity",
                expected="integer >= 0",
                actual=quantity,
            )
        body = {
            "inventory_item_id": inventory_item_id,
            "location_id": location_id,
            "available": quantity,
        }
        response = self._request("POST", "inventory_levels/set.json", "set_inventory", json=body)
        return self._json(response, "set_inventory").get("inventory_level", {})


class ShopifyStorefrontClient(PlatformClient):
    """Storefront GraphQL client: public catalog and checkout creation."""

    error_class = ShopifyAPIError

    def __init__(self, store_domain: str, storefront_token: str, api_version: str = "2024-01",
                 session: Optional[requests.Session] = None):
        domain = store_domain.replace("https://", "").rstrip("/")
        super().__init__(
            base_url=f"https://{domain}/api/{api_version}",
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Storefront-Access-Token": storefront_token,
            },
            session=session,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShopifyStorefrontClient":
        return cls(
            store_domain=settings.require("shopify_store_domain"),
            storefront_token=settings.require("shopify_storefront_token"),
            api_version=settings.shopify_api_version,
        )

    def graphql(self, query: str, variables: Optional[dict] = None, operation: str = "graphql") -> dict:
        """POST a GraphQL document and return its ``data`` member."""
        response = self._request(
            "POST",
            "graphql.json",
            operation,
            json={"query": query, "variables": variables or {}},
        )
        payload = self._json(response, operation)
        if payload.get("errors"):
            raise ShopifyAPIError(
                message=f"{operation} GraphQL errors: {payload['errors']}",
                operation=operation,
                status_code=response.status_code,
                retryable=False,
            )
        return payload.get("data") or {}

    @retry_with_backoff(config=platform_retry)
    def fetch_products(self, first: int = PAGE_LIMIT) -> list[dict]:
        data = self.graphql(PRODUCTS_QUERY, {"first": first}, operation="fetch_products")
        return [edge["node"] for edge in data.get("products", {}).get("edges", [])]

    def create_checkout(self, line_items: list[CheckoutLineItem], customer: CustomerInfo) -> dict:
        """
        Create a hosted checkout for the cart.

        Returns a dict with ``checkout_id``, ``checkout_url`` and the raw
        ``checkout`` payload.
        """
        checkout_input = {
            "email": customer.email,
            "lineItems": [
                {
                    "variantId": to_gid("ProductVariant", item.variant_id or item.product_id),
                    "quantity": item.quantity,
                    "customAttributes": [
                        {"key": "Size", "value": item.size},
                        {"key": "Color", "value": item.color},
                    ],
                }
                for item in line_items
            ],
            "shippingAddress": {
                "firstName": customer.first_name,
                "lastName": customer.last_name,
                "address1": customer.address,
                "city": customer.city,
                "province": customer.state,
                "zip": customer.zip_code,
                "country": customer.country,
            },
        }

        data = self.graphql(
            CHECKOUT_CREATE_MUTATION, {"input": checkout_input}, operation="create_checkout"
        )
        result = data.get("checkoutCreate") or {}
        user_errors = result.get("checkoutUserErrors") or []
        if user_errors:
            raise ShopifyAPIError(
                message=f"Checkout rejected: {user_errors[0].get('message')}",
                operation="create_checkout",
                retryable=False,
            )

        checkout: dict[str, Any] = result.get("checkout") or {}
        if not checkout.get("webUrl"):
            raise ShopifyAPIError(
                message="Checkout created without a web URL",
                operation="create_checkout",
                retryable=True,
            )
        return {
            "checkout_id": str(checkout.get("id", "")).split("/")[-1].split("?")[0],
            "checkout_url": checkout["webUrl"],
            "checkout": checkout,
        }
