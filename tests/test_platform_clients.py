"""Tests for the Shopify, Stripe and Supabase clients."""

from unittest.mock import Mock, patch

import pytest
import requests

from conftest import make_product
from storefront.config import Settings
from storefront.exceptions import (
    ConfigurationError,
    ShopifyAPIError,
    StripeAPIError,
    SupabaseAPIError,
    ValidationError,
)
from storefront.models import CheckoutLineItem, CustomerInfo, ShopifyCollection
from storefront.payments import StripeClient, to_minor_units
from storefront.shopify import (
    ShopifyAdminClient,
    ShopifyStorefrontClient,
    product_payload,
    to_gid,
)
from storefront.supabase_client import SupabaseClient


def response(status=200, payload=None, text=""):
    resp = Mock()
    resp.status_code = status
    resp.json.return_value = payload if payload is not None else {}
    resp.content = b"x" if payload is not None else b""
    resp.text = text
    return resp


@pytest.fixture
def session():
    s = Mock()
    s.headers = {}
    return s


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("storefront.retry.time.sleep") as sleep:
        yield sleep


@pytest.fixture
def customer():
    return CustomerInfo(
        email="ada@example.com",
        first_name="Ada",
        last_name="Lovelace",
        address="12 Analytical Way",
        city="Portland",
        state="OR",
        zip_code="97201",
    )


class TestShopifyAdminClient:
    """Tests for ShopifyAdminClient."""

    def test_base_url_and_headers(self, session):
        client = ShopifyAdminClient("https://shop.myshopify.com/", "tok", "2024-01", session=session)

        assert client.base_url == "https://shop.myshopify.com/admin/api/2024-01"
        assert session.headers["X-Shopify-Access-Token"] == "tok"

    def test_fetch_products(self, session, sample_rest_product):
        session.request.return_value = response(payload={"products": [sample_rest_product]})
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        assert client.fetch_products() == [sample_rest_product]
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "https://shop.myshopify.com/admin/api/2024-01/products.json"
        assert session.request.call_args.kwargs["params"] == {"limit": 250}

    def test_fetch_products_retries_server_errors(self, session, no_sleep):
        session.request.side_effect = [
            response(status=503, text="unavailable"),
            response(payload={"products": []}),
        ]
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        assert client.fetch_products() == []
        assert session.request.call_count == 2
        no_sleep.assert_called_once()

    def test_client_errors_are_not_retried(self, session):
        session.request.return_value = response(status=401, text="Unauthorized")
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        with pytest.raises(ShopifyAPIError) as exc_info:
            client.fetch_products()

        assert exc_info.value.status_code == 401
        assert exc_info.value.retryable is False
        assert session.request.call_count == 1

    def test_connection_errors_exhaust_retries(self, session):
        session.request.side_effect = requests.ConnectionError("reset")
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        with pytest.raises(ShopifyAPIError) as exc_info:
            client.fetch_products()

        assert exc_info.value.retryable is True
        assert session.request.call_count == 3

    def test_fetch_collections(self, session):
        session.request.side_effect = [
            response(payload={"custom_collections": [{"id": 1, "handle": "summer", "title": "Summer"}]}),
            response(payload={"smart_collections": [{"id": 2, "title": "Sale", "body_html": "<p>Deals</p>"}]}),
        ]
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        collections = client.fetch_collections()

        assert [c.id for c in collections] == ["1", "2"]
        assert collections[0].handle == "summer"

    def test_fetch_collection_fills_product_ids(self, session):
        session.request.return_value = response(payload={"products": [{"id": 11}, {"id": 12}]})
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        filled = client.fetch_collection(ShopifyCollection(id="5", title="Summer"))

        assert filled.product_ids == ["11", "12"]
        assert session.request.call_args.args[1].endswith("collections/5/products.json")

    def test_create_product(self, session):
        session.request.return_value = response(payload={"product": {"id": 99}})
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        created = client.create_product(make_product(price=12.5, featured=True))

        assert created == {"id": 99}
        body = session.request.call_args.kwargs["json"]["product"]
        assert body["variants"][0]["price"] == "12.50"
        assert body["tags"] == "featured"

    def test_update_and_delete_product(self, session):
        session.request.side_effect = [
            response(payload={"product": {"id": 5, "title": "New"}}),
            response(),
        ]
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        assert client.update_product("5", {"title": "New"}) == {"id": 5, "title": "New"}
        client.delete_product("5")

        first, second = session.request.call_args_list
        assert first.kwargs["json"] == {"product": {"id": "5", "title": "New"}}
        assert second.args == ("DELETE", "https://shop.myshopify.com/admin/api/2024-01/products/5.json")

    def test_fetch_orders_and_customers(self, session):
        session.request.side_effect = [
            response(payload={"orders": [{"id": 1}]}),
            response(payload={"customers": [{"id": 2}]}),
        ]
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        assert client.fetch_orders() == [{"id": 1}]
        assert client.fetch_customers() == [{"id": 2}]

    def test_set_inventory(self, session):
        session.request.return_value = response(payload={"inventory_level": {"available": 4}})
        client = ShopifyAdminClient("shop.myshopify.com", "tok", session=session)

        assert client.set_inventory("inv-1", "loc-1", 4) == {"available": 4}
        for bad in (-1, 2.5, "3"):
            with pytest.raises(ValidationError):
                client.set_inventory("inv-1", "loc-1", bad)
        assert session.request.call_count == 1

    def test_from_settings_requires_token(self):
        with pytest.raises(ConfigurationError):
            ShopifyAdminClient.from_settings(Settings(shopify_store_domain="shop.myshopify.com"))


class TestShopifyStorefrontClient:
    """Tests for ShopifyStorefrontClient."""

    def test_fetch_products_returns_nodes(self, session, sample_graphql_product):
        session.request.return_value = response(
            payload={"data": {"products": {"edges": [{"node": sample_graphql_product}]}}}
        )
        client = ShopifyStorefrontClient("shop.myshopify.com", "public", session=session)

        assert client.fetch_products() == [sample_graphql_product]
        assert session.headers["X-Shopify-Storefront-Access-Token"] == "public"
        assert session.request.call_args.args[1] == "https://shop.myshopify.com/api/2024-01/graphql.json"

    def test_graphql_errors_raise(self, session):
        session.request.return_value = response(payload={"errors": [{"message": "bad query"}]})
        client = ShopifyStorefrontClient("shop.myshopify.com", "public", session=session)

        with pytest.raises(ShopifyAPIError, match="bad query"):
            client.fetch_products()
        assert session.request.call_count == 1

    def test_create_checkout(self, session, customer):
        session.request.return_value = response(payload={
            "data": {
                "checkoutCreate": {
                    "checkout": {
                        "id": "gid://shopify/Checkout/abc123?key=xyz",
                        "webUrl": "https://shop.myshopify.com/checkouts/abc123",
                    },
                    "checkoutUserErrors": [],
                }
            }
        })
        client = ShopifyStorefrontClient("shop.myshopify.com", "public", session=session)
        lines = [
            CheckoutLineItem(product_id="7", variant_id="42", quantity=2, size="M", color="Black"),
            CheckoutLineItem(product_id="8", quantity=1, size="S", color="Sage"),
        ]

        created = client.create_checkout(lines, customer)

        assert created["checkout_id"] == "abc123"
        assert created["checkout_url"] == "https://shop.myshopify.com/checkouts/abc123"
        sent = session.request.call_args.kwargs["json"]["variables"]["input"]
        assert [item["variantId"] for item in sent["lineItems"]] == [
            "gid://shopify/ProductVariant/42",
            "gid://shopify/ProductVariant/8",
        ]
        assert sent["lineItems"][0]["customAttributes"] == [
            {"key": "Size", "value": "M"},
            {"key": "Color", "value": "Black"},
        ]
        assert sent["shippingAddress"]["province"] == "OR"

    def test_create_checkout_user_errors(self, session, customer):
        session.request.return_value = response(payload={
            "data": {
                "checkoutCreate": {
                    "checkout": None,
                    "checkoutUserErrors": [{"field": ["lineItems"], "message": "Variant is sold out"}],
                }
            }
        })
        client = ShopifyStorefrontClient("shop.myshopify.com", "public", session=session)

        with pytest.raises(ShopifyAPIError, match="sold out") as exc_info:
            client.create_checkout([], customer)
        assert exc_info.value.retryable is False


class TestShopifyHelpers:

    def test_to_gid(self):
        assert to_gid("ProductVariant", "42") == "gid://shopify/ProductVariant/42"
        assert to_gid("ProductVariant", "gid://shopify/ProductVariant/42") == "gid://shopify/ProductVariant/42"

    def test_product_payload(self):
        payload = product_payload(
            make_product(price=20, original_price=25, image="https://cdn.example.com/a.jpg", stock_quantity=3)
        )["product"]

        assert payload["vendor"] == "Salt & Soul"
        assert payload["variants"][0]["compare_at_price"] == "25.00"
        assert payload["variants"][0]["inventory_quantity"] == 3
        assert payload["images"] == [{"src": "https://cdn.example.com/a.jpg"}]

    def test_product_payload_skips_placeholder_image(self):
        assert "images" not in product_payload(make_product())["product"]


class TestStripeClient:
    """Tests for StripeClient."""

    def test_create_payment_intent(self, session):
        session.request.return_value = response(payload={"id": "pi_1", "client_secret": "pi_1_secret"})
        client = StripeClient("sk_test", session=session)

        intent = client.create_payment_intent(4599, "usd", metadata={"email": "a@b.c"})

        assert intent == {"client_secret": "pi_1_secret", "id": "pi_1"}
        assert session.auth == ("sk_test", "")
        method, url = session.request.call_args.args
        assert (method, url) == ("POST", "https://api.stripe.com/v1/payment_intents")
        form = session.request.call_args.kwargs["data"]
        assert form["amount"] == 4599
        assert form["automatic_payment_methods[enabled]"] == "true"
        assert form["metadata[email]"] == "a@b.c"

    @pytest.mark.parametrize("amount", [0, -100, 10.5, True])
    def test_invalid_amount(self, session, amount):
        with pytest.raises(ValidationError):
            StripeClient("sk_test", session=session).create_payment_intent(amount)
        session.request.assert_not_called()

    def test_stripe_errors_are_not_retried(self, session):
        session.request.return_value = response(status=500, text="oops")

        with pytest.raises(StripeAPIError):
            StripeClient("sk_test", session=session).create_payment_intent(100)
        assert session.request.call_count == 1

    @pytest.mark.parametrize("amount,cents", [(45.99, 4599), (0.125, 13), (10, 1000)])
    def test_to_minor_units(self, amount, cents):
        assert to_minor_units(amount) == cents


class TestSupabaseClient:
    """Tests for SupabaseClient."""

    def test_fetch_products(self, session, sample_supabase_row):
        session.request.return_value = response(payload=[sample_supabase_row])
        client = SupabaseClient("https://proj.supabase.co/", "anon", session=session)

        assert client.fetch_products() == [sample_supabase_row]
        assert session.headers["apikey"] == "anon"
        assert session.request.call_args.args[1] == "https://proj.supabase.co/rest/v1/products"
        assert session.request.call_args.kwargs["params"]["order"] == "created_at.desc"

    def test_create_order(self, session, customer):
        session.request.side_effect = [response(payload=[{"id": 77}]), response()]
        client = SupabaseClient("https://proj.supabase.co", "anon", session=session)
        lines = [CheckoutLineItem(product_id="p", quantity=2, size="M", color="Black", unit_price=30.0)]

        order = client.create_order(customer, lines, 60.0, "pi_1")

        assert order == {"id": 77}
        order_call, items_call = session.request.call_args_list
        assert order_call.kwargs["json"]["customer_name"] == "Ada Lovelace"
        assert order_call.kwargs["json"]["payment_intent_id"] == "pi_1"
        assert order_call.kwargs["headers"] == {"Prefer": "return=representation"}
        assert items_call.kwargs["json"] == [
            {"order_id": 77, "product_id": "p", "quantity": 2, "price": 30.0, "size": "M", "color": "Black"}
        ]

    @pytest.mark.parametrize("payload", [[], [{"status": "pending"}], None])
    def test_create_order_without_row(self, session, customer, payload):
        """Test an insert that returns no order id fails without writing line rows."""
        session.request.return_value = response(payload=payload)
        client = SupabaseClient("https://proj.supabase.co", "anon", session=session)
        lines = [CheckoutLineItem(product_id="p", quantity=1, size="M", color="Black", unit_price=30.0)]

        with pytest.raises(SupabaseAPIError, match="no order row") as excinfo:
            client.create_order(customer, lines, 30.0)

        assert excinfo.value.retryable is False
        assert session.request.call_count == 1

    def test_invalid_json(self, session):
        bad = response(payload={})
        bad.json.side_effect = ValueError("Expecting value")
        session.request.return_value = bad

        with pytest.raises(SupabaseAPIError, match="invalid JSON"):
            SupabaseClient("https://proj.supabase.co", "anon", session=session).fetch_products()
        assert session.request.call_count == 1
