"""
Supabase (PostgREST) client for the products, orders and order_items tables.
"""

import logging
from typing import Optional

import requests

from storefront.config import Settings
from storefront.exceptions import SupabaseAPIError
from storefront.models import CheckoutLineItem, CustomerInfo
from storefront.platform import PlatformClient, platform_retry
from storefront.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class SupabaseClient(PlatformClient):
    error_class = SupabaseAPIError

    def __init__(self, url: str, anon_key: str, session: Optional[requests.Session] = None):
        super().__init__(
            base_url=f"{url.rstrip('/')}/rest/v1",
            headers={
                "apikey": anon_key,
                "Authorization": f"Bearer {anon_key}",
                "Content-Type": "application/json",
            },
            session=session,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseClient":
        return cls(
            url=settings.require("supabase_url"),
            anon_key=settings.require("supabase_anon_key"),
        )

    @retry_with_backoff(config=platform_retry)
    def fetch_products(self) -> list[dict]:
        response = self._request(
            "GET",
            "products",
            "fetch_products",
            params={"select": "*", "order": "created_at.desc"},
        )
        return self._json(response, "fetch_products")

    @staticmethod
    def _created_row(created) -> dict:
        """The inserted row from a ``return=representation`` response."""
        row = created[0] if isinstance(created, list) and created else created
        if not isinstance(row, dict) or row.get("id") is None:
            raise SupabaseAPIError(
                message="create_order returned no order row with an id",
                operation="create_order",
                retryable=False,
            )
        return row

    def create_order(
        self,
        customer: CustomerInfo,
        items: list[CheckoutLineItem],
        total: float,
        payment_intent_id: Optional[str] = None,
    ) -> dict:
        """Insert an order row and its line rows; returns the order row."""
        order_row = {
            "customer_email": customer.email,
            "customer_name": customer.full_name,
            "customer_address": customer.address,
            "customer_city": customer.city,
            "customer_state": customer.state,
            "customer_zip": customer.zip_code,
            "total": round(total, 2),
            "status": "pending",
            "payment_intent_id": payment_intent_id,
        }
        response = self._request(
            "POST",
            "orders",
            "create_order",
            json=order_row,
            headers={"Prefer": "return=representation"},
        )
        order = self._created_row(self._json(response, "create_order"))

        line_rows = [
            {
                "order_id": order["id"],
                "product_id": item.product_id,
                "quantity": item.quantity,
                "price": item.unit_price,
                "size": item.size,
                "color": item.color,
            }
            for item in items
        ]
        if line_rows:
            self._request("POST", "order_items", "create_order_items", json=line_rows)

        logger.info(f"Recorded order {order['id']} with {len(line_rows)} lines")
        return order
