"""
Stripe payment intent client.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import requests

from storefront.config import Settings
from storefront.exceptions import StripeAPIError, ValidationError
from storefront.platform import PlatformClient

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"


def to_minor_units(amount: float) -> int:
    """Convert a dollar amount to whole cents, rounding half up."""
    return int(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100)


class StripeClient(PlatformClient):
    error_class = StripeAPIError

    def __init__(self, secret_key: str, session: Optional[requests.Session] = None):
        super().__init__(base_url=STRIPE_API_BASE, session=session)
        self.session.auth = (secret_key, "")

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeClient":
        return cls(secret_key=settings.require("stripe_secret_key"))

    def create_payment_intent(self, amount_cents: int, currency: str = "usd",
                              metadata: Optional[dict] = None) -> dict:
        """
        Create a PaymentIntent with automatic payment methods enabled.

        Not retried: a repeated POST could create a second intent.

        Returns:
            dict with ``client_secret`` and ``id``

        Raises:
            ValidationError: If the amount is not a positive integer
            StripeAPIError: If Stripe rejects the request
        """
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError(
                message="Invalid amount",
                field_name="amount",
                expected="positive integer (minor units)",
                actual=amount_cents,
            )

        form = {
            "amount": amount_cents,
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = value

        response = self._request("POST", "payment_intents", "create_payment_intent", data=form)
        intent = self._json(response, "create_payment_intent")
        logger.info(f"Created payment intent {intent.get('id')} for {amount_cents} {currency}")
        return {"client_secret": intent.get("client_secret"), "id": intent.get("id")}
