"""
Serverless function handlers (Lambda / Netlify signature) proxying the
storefront's calls to Shopify and Stripe.

Each handler takes ``(event, context)`` and returns
``{"statusCode", "headers", "body"}`` with a JSON body.
"""

import base64
import functools
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Optional

from storefront.config import Settings
from storefront.exceptions import ConfigurationError, StorefrontError, ValidationError
from storefront.logging_config import configure_logging, set_correlation_id
from storefront.normalizers import ShopifyRESTNormalizer
from storefront.payments import StripeClient
from storefront.shopify import ShopifyAdminClient

settings = Settings.from_env()
logger = configure_logging(level=settings.log_level, service_name="storefront-functions")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Content-Type": "application/json",
}

WEBHOOK_TOPICS = (
    "orders/create",
    "orders/updated",
    "orders/fulfilled",
    "products/create",
    "products/update",
)


class ClientFactory:
    """Lazily builds platform clients from settings (reset between tests)."""

    _shopify_admin: Optional[ShopifyAdminClient] = None
    _stripe: Optional[StripeClient] = None

    @classmethod
    def shopify_admin(cls) -> ShopifyAdminClient:
        if cls._shopify_admin is None:
            cls._shopify_admin = ShopifyAdminClient.from_settings(settings)
        return cls._shopify_admin

    @classmethod
    def stripe(cls) -> StripeClient:
        if cls._stripe is None:
            cls._stripe = StripeClient.from_settings(settings)
        return cls._stripe

    @classmethod
    def reset(cls):
        cls._shopify_admin = None
        cls._stripe = None


def build_response(status_code: int, body: Any, start_time: float) -> dict:
    """Build a function response with timing metadata."""
    duration_ms = (time.perf_counter() - start_time) * 1000

    if isinstance(body, dict):
        body = {**body, "durationMs": round(duration_ms, 2)}

    logger.info(
        "Function invocation complete",
        extra={"status_code": status_code, "duration_ms": round(duration_ms, 2)},
    )

    return {
        "statusCode": status_code,
        "headers": dict(CORS_HEADERS),
        "body": json.dumps(body, default=str),
    }


def _parse_body(event: dict) -> dict:
    raw = event.get("body") or "{}"
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(
            message=f"Request body is not valid JSON: {e}",
            field_name="body",
            expected="JSON object",
            actual=raw[:100],
        )
    if not isinstance(body, dict):
        raise ValidationError(
            message="Request body must be a JSON object",
            field_name="body",
            expected="JSON object",
            actual=type(body).__name__,
        )
    return body


def _header(event: dict, name: str) -> Optional[str]:
    headers = event.get("headers") or {}
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def function_handler(allowed_methods: tuple[str, ...]):
    """
    Wrap a handler with correlation ids, CORS preflight, method checks and
    uniform error responses.
    """

    def decorator(func: Callable[[dict, float], dict]):
        @functools.wraps(func)
        def wrapper(event: dict, context: Any = None) -> dict:
            start_time = time.perf_counter()
            correlation_id = set_correlation_id(_header(event, "x-correlation-id"))
            method = (event.get("httpMethod") or "GET").upper()

            logger.info(
                f"{func.__name__} invoked with {method}",
                extra={"aws_request_id": getattr(context, "aws_request_id", None) if context else None},
            )

            if method == "OPTIONS":
                return {"statusCode": 200, "headers": dict(CORS_HEADERS), "body": ""}
            if method not in allowed_methods:
                return build_response(405, {"error": "Method not allowed"}, start_time)

            try:
                return func(event, start_time)
            except ValidationError as e:
                return build_response(400, {"error": e.message, "correlationId": correlation_id}, start_time)
            except ConfigurationError as e:
                logger.error(f"Configuration error: {e.message}", extra={"error": e.to_dict()})
                return build_response(500, {"error": e.message, "correlationId": correlation_id}, start_time)
            except StorefrontError as e:
                logger.error(f"{func.__name__} failed: {e.message}", extra={"error": e.to_dict()})
                status = getattr(e, "status_code", None)
                if not e.retryable and status and 400 <= status < 500:
                    code = status
                else:
                    code = 502 if e.retryable else 400
                return build_response(
                    code,
                    {"error": e.message, "details": e.to_dict(), "correlationId": correlation_id},
                    start_time,
                )
            except Exception as e:
                logger.error(f"Unexpected error: {e}", exc_info=True)
                return build_response(
                    500,
                    {"error": "Internal server error", "details": str(e), "correlationId": correlation_id},
                    start_time,
                )

        return wrapper
    return decorator


@function_handler(("GET", "POST", "PUT", "DELETE"))
def products_handler(event: dict, start_time: float) -> dict:
    """
    GET lists the normalized catalog; POST creates, PUT updates and DELETE
    removes a product in the Shopify admin.
    """
    client = ClientFactory.shopify_admin()
    method = (event.get("httpMethod") or "GET").upper()

    if method == "GET":
        result = ShopifyRESTNormalizer().normalize_batch(client.fetch_products())
        return build_response(
            200,
            {
                "products": [p.to_dict() for p in result.successful],
                "normalization": result.to_dict(),
            },
            start_time,
        )

    if method == "POST":
        created = client.create_product_raw(_parse_body(event))
        return build_response(201, created, start_time)

    if method == "PUT":
        body = _parse_body(event)
        product = body.get("product") or {}
        product_id = product.get("id") or body.get("id")
        if not product_id:
            raise ValidationError(
                message="Missing product id",
                field_name="product.id",
                expected="product id",
                actual=None,
            )
        fields = {k: v for k, v in product.items() if k != "id"}
        updated = client.update_product(str(product_id), fields)
        return build_response(200, {"product": updated}, start_time)

    product_id = (event.get("queryStringParameters") or {}).get("id")
    if not product_id:
        raise ValidationError(
            message="Missing id parameter",
            field_name="id",
            expected="product id",
            actual=None,
        )
    client.delete_product(product_id)
    return build_response(200, {"success": True}, start_time)


@function_handler(("GET",))
def collections_handler(event: dict, start_time: float) -> dict:
    """List custom and smart collections."""
    collections = ClientFactory.shopify_admin().fetch_collections()
    return build_response(
        200,
        {"collections": [c.model_dump(mode="json", by_alias=True) for c in collections]},
        start_time,
    )


@function_handler(("POST",))
def payment_intent_handler(event: dict, start_time: float) -> dict:
    """Create a Stripe payment intent; ``amount`` is in minor units."""
    body = _parse_body(event)
    amount = body.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise ValidationError(
            message="Invalid amount",
            field_name="amount",
            expected="positive number",
            actual=amount,
        )

    intent = ClientFactory.stripe().create_payment_intent(
        int(round(amount)), body.get("currency") or settings.currency
    )
    return build_response(
        200,
        {"clientSecret": intent["client_secret"], "id": intent["id"]},
        start_time,
    )


def verify_webhook_signature(body: str, signature: Optional[str], secret: str) -> bool:
    """Compare Shopify's base64 HMAC-SHA256 header with one computed from the raw body."""
    if not signature:
        return False
    digest = hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, signature)


@function_handler(("POST",))
def webhook_handler(event: dict, start_time: float) -> dict:
    """Receive Shopify webhooks, verifying the signature when a secret is configured."""
    raw_body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        raw_body = base64.b64decode(raw_body).decode("utf-8")

    secret = settings.shopify_webhook_secret
    signature = _header(event, "x-shopify-hmac-sha256")
    if secret and not verify_webhook_signature(raw_body, signature, secret):
        logger.warning("Rejected webhook with invalid signature")
        return build_response(401, {"error": "Unauthorized"}, start_time)

    topic = _header(event, "x-shopify-topic")
    shop_domain = _header(event, "x-shopify-shop-domain")
    data = _parse_body({"body": raw_body})

    logger.info(f"Received webhook: {topic} from {shop_domain}")

    if topic in WEBHOOK_TOPICS:
        logger.info(
            f"Webhook {topic} for resource {data.get('id')}",
            extra={"product_id": data.get("id") if topic.startswith("products/") else None},
        )
    else:
        logger.warning(f"Unhandled webhook topic: {topic}")

    return build_response(200, {"received": True, "topic": topic}, start_time)
