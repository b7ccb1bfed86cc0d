"""
Checkout orchestration: validate the shopper's details, hand cart lines to
a payment/checkout gateway, and report success or failure.
"""

import logging
from typing import Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from storefront.cart import CartStore
from storefront.exceptions import StorefrontError, ValidationError
from storefront.logging_config import log_execution_time
from storefront.models import (
    CheckoutLineItem,
    CheckoutResult,
    CustomerInfo,
    OrderSummary,
)
from storefront.notifications import DESTRUCTIVE, LoggingNotifier, Notification, Notifier
from storefront.payments import StripeClient, to_minor_units
from storefront.shopify import ShopifyStorefrontClient
from storefront.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("email", "first_name", "last_name", "address", "city", "state", "zip_code")
SHIPPING_COSTS = {"standard": 0.0, "express": 15.0, "overnight": 25.0}
TAX_RATE = 0.08


def validate_customer(customer_data: dict) -> CustomerInfo:
    """
    Check the checkout form before any network call.

    Accepts snake_case or camelCase keys.

    Raises:
        ValidationError: Naming every missing or invalid field
    """
    info = {k: (v.strip() if isinstance(v, str) else v) for k, v in customer_data.items()}
    aliases = {"first_name": "firstName", "last_name": "lastName", "zip_code": "zipCode"}

    missing = [
        name for name in REQUIRED_FIELDS
        if not info.get(name) and not info.get(aliases.get(name, name))
    ]
    if missing:
        raise ValidationError(
            message="Please fill in all required shipping information.",
            field_name=",".join(missing),
            expected="non-empty value",
            actual=None,
        )

    try:
        customer = CustomerInfo.model_validate(info)
    except PydanticValidationError as e:
        raise ValidationError(
            message="Please check your shipping information.",
            field_name=",".join(str(err["loc"][0]) for err in e.errors()),
            expected="valid value",
            actual=None,
        )

    if "@" not in customer.email:
        raise ValidationError(
            message="Please enter a valid email address.",
            field_name="email",
            expected="email address",
            actual=customer.email,
        )
    if customer.shipping_method not in SHIPPING_COSTS:
        raise ValidationError(
            message="Please choose a shipping method.",
            field_name="shipping_method",
            expected=" | ".join(SHIPPING_COSTS),
            actual=customer.shipping_method,
        )
    return customer


def order_summary(subtotal: float, shipping_method: str = "standard") -> OrderSummary:
    shipping = SHIPPING_COSTS.get(shipping_method, 0.0)
    tax = round(subtotal * TAX_RATE, 2)
    return OrderSummary(
        subtotal=round(subtotal, 2),
        shipping=shipping,
        tax=tax,
        total=round(subtotal + shipping + tax, 2),
    )


class CheckoutGateway(Protocol):
    name: str

    def create(self, line_items: list[CheckoutLineItem], customer: CustomerInfo,
               summary: OrderSummary) -> CheckoutResult: ...


class ShopifyCheckoutGateway:
    """Hosted Shopify checkout: the result carries a redirect URL."""

    name = "shopify"

    def __init__(self, client: ShopifyStorefrontClient):
        self.client = client

    def create(self, line_items, customer, summary) -> CheckoutResult:
        created = self.client.create_checkout(line_items, customer)
        return CheckoutResult(
            success=True,
            checkout_id=created["checkout_id"],
            checkout_url=created["checkout_url"],
            summary=summary,
        )


class StripeCheckoutGateway:
    """Stripe payment intent for the order total, optionally recorded in Supabase."""

    name = "stripe"

    def __init__(self, client: StripeClient, currency: str = "usd",
                 orders: Optional[SupabaseClient] = None):
        self.client = client
        self.currency = currency
        self.orders = orders

    def create(self, line_items, customer, summary) -> CheckoutResult:
        intent = self.client.create_payment_intent(
            to_minor_units(summary.total),
            self.currency,
            metadata={"email": customer.email, "lines": len(line_items)},
        )
        if self.orders is not None:
            # Intent already created; order-record failures are logged, not surfaced
            try:
                self.orders.create_order(customer, line_items, summary.total, intent["id"])
            except StorefrontError as e:
                logger.error(
                    f"Order record for payment intent {intent['id']} failed: {e.message}",
                    extra={"error": e.to_dict()},
                )
        return CheckoutResult(
            success=True,
            client_secret=intent["client_secret"],
            payment_intent_id=intent["id"],
            summary=summary,
        )


class CheckoutService:
    """Runs a checkout for the cart through one gateway."""

    def __init__(self, cart: CartStore, gateway: CheckoutGateway,
                 notifier: Optional[Notifier] = None):
        self.cart = cart
        self.gateway = gateway
        self.notifier = notifier or cart.notifier or LoggingNotifier()

    def _fail(self, title: str, description: str) -> None:
        self.notifier.notify(Notification(title=title, description=description, variant=DESTRUCTIVE))

    def summary(self, shipping_method: str = "standard") -> OrderSummary:
        return order_summary(self.cart.total, shipping_method)

    @log_execution_time(logger)
    def checkout(self, customer_data: dict) -> CheckoutResult:
        """
        Validate and submit the cart.

        Raises:
            ValidationError: For an empty cart or invalid customer details,
                before any gateway call

        Gateway failures are reported as an unsuccessful, retryable result.
        """
        if len(self.cart) == 0:
            self._fail("Empty cart", "Add some items to continue with checkout")
            raise ValidationError(
                message="Cart is empty",
                field_name="items",
                expected="at least one line",
                actual=0,
            )

        try:
            customer = validate_customer(customer_data)
        except ValidationError as e:
            self._fail("Missing Information", e.message)
            raise

        summary = self.summary(customer.shipping_method)
        line_items = self.cart.to_line_items()

        try:
            result = self.gateway.create(line_items, customer, summary)
        except StorefrontError as e:
            logger.error(
                f"{self.gateway.name} checkout failed: {e.message}",
                extra={"error": e.to_dict()},
            )
            self._fail("Checkout Error", "Unable to proceed to checkout. Please try again.")
            return CheckoutResult(
                success=False,
                summary=summary,
                error=e.message,
                retryable=e.retryable,
            )

        logger.info(
            f"{self.gateway.name} checkout created for {len(line_items)} lines",
            extra={"metrics": {"total": summary.total}},
        )
        return result

    def complete(self) -> None:
        """Clear the cart once the platform has confirmed payment."""
        self.cart.clear_cart()
