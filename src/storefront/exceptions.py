"""
Error taxonomy for the storefront.

Every failure raised by the core carries a category, a severity, a
``retryable`` flag consulted by the retry decorator, and an ``ErrorContext``
that is attached to the structured log record.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    VALIDATION = "validation"
    NORMALIZATION = "normalization"
    NETWORK = "network"
    STORAGE = "storage"
    CORRUPT_STATE = "corrupt_state"
    CHECKOUT = "checkout"
    CONFIGURATION = "configuration"


@dataclass
class ErrorContext:
    """Where an error happened: ids, keys and the offending value."""

    correlation_id: Optional[str] = None
    product_id: Optional[str] = None
    field_name: Optional[str] = None
    expected_type: Optional[str] = None
    actual_value: Optional[Any] = None
    storage_key: Optional[str] = None
    service: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    additional_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Flatten into a log-friendly dict; ``additional_data`` is merged in."""
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "additional_data"}
        if self.actual_value is not None:
            data["actual_value"] = str(self.actual_value)
        data.update(self.additional_data)
        return data


def _context(context: Optional[ErrorContext], extra: Optional[dict] = None, **attrs) -> ErrorContext:
    ctx = context or ErrorContext()
    for name, value in attrs.items():
        setattr(ctx, name, value)
    if extra:
        ctx.additional_data.update({k: v for k, v in extra.items() if v is not None})
    return ctx


class StorefrontError(Exception):
    """
    Base class for storefront failures.

    Subclasses set ``severity``, ``category`` and ``retryable`` defaults as
    class attributes; a constructor argument overrides the default.
    """

    severity = ErrorSeverity.MEDIUM
    category = ErrorCategory.NORMALIZATION
    retryable = False

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: Optional[ErrorSeverity] = None,
        category: Optional[ErrorCategory] = None,
        retryable: Optional[bool] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        if severity is not None:
            self.severity = severity
        if category is not None:
            self.category = category
        if retryable is not None:
            self.retryable = retryable
        self.original_exception = original_exception

    def to_dict(self) -> dict:
        original = self.original_exception
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "original_exception": None if original is None else str(original),
        }


class ValidationError(StorefrontError):
    """A caller passed a value the operation cannot accept."""

    severity = ErrorSeverity.LOW
    category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        field_name: str,
        expected: str,
        actual: Any,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(
            message,
            context=_context(context, field_name=field_name, expected_type=expected, actual_value=actual),
        )
        self.field_name = field_name
        self.expected = expected
        self.actual = actual


class NormalizationError(StorefrontError):
    """A raw catalog record could not be turned into a Product."""

    def __init__(
        self,
        message: str,
        product_id: str,
        source: Optional[str] = None,
        field_name: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=_context(context, {"source": source}, product_id=product_id, field_name=field_name),
            original_exception=original_exception,
        )
        self.source = source


class CorruptStateError(StorefrontError):
    """A persisted value under ``storage_key`` did not parse."""

    severity = ErrorSeverity.LOW
    category = ErrorCategory.CORRUPT_STATE

    def __init__(
        self,
        message: str,
        storage_key: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=_context(context, storage_key=storage_key),
            original_exception=original_exception,
        )
        self.storage_key = storage_key


class StorageError(StorefrontError):
    severity = ErrorSeverity.HIGH
    category = ErrorCategory.STORAGE
    retryable = True

    def __init__(
        self,
        message: str,
        storage_key: str,
        operation: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=_context(context, {"operation": operation}, storage_key=storage_key),
            original_exception=original_exception,
        )
        self.storage_key = storage_key
        self.operation = operation


class PlatformAPIError(StorefrontError):
    """
    An outbound call to a commerce platform failed.

    ``retryable`` defaults to True; clients pass False for 4xx responses.
    """

    service_name = "platform"
    severity = ErrorSeverity.HIGH
    category = ErrorCategory.NETWORK
    retryable = True

    def __init__(
        self,
        message: str,
        operation: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=_context(
                context,
                {"operation": operation, "status_code": status_code},
                service=self.service_name,
            ),
            retryable=retryable,
            original_exception=original_exception,
        )
        self.operation = operation
        self.status_code = status_code


class ShopifyAPIError(PlatformAPIError):
    service_name = "shopify"


class StripeAPIError(PlatformAPIError):
    service_name = "stripe"


class SupabaseAPIError(PlatformAPIError):
    service_name = "supabase"


class CheckoutError(StorefrontError):
    severity = ErrorSeverity.HIGH
    category = ErrorCategory.CHECKOUT
    retryable = True

    def __init__(
        self,
        message: str,
        gateway: str,
        retryable: bool = True,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            context=_context(context, {"gateway": gateway}),
            retryable=retryable,
            original_exception=original_exception,
        )
        self.gateway = gateway


class ConfigurationError(StorefrontError):
    """A required setting is missing or malformed."""

    severity = ErrorSeverity.CRITICAL
    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, config_key: str, context: Optional[ErrorContext] = None):
        super().__init__(message, context=_context(context, {"config_key": config_key}))
        self.config_key = config_key


def is_retryable(exc: Exception) -> bool:
    """Storefront errors carry their own flag; anything else is assumed transient."""
    if isinstance(exc, StorefrontError):
        return exc.retryable
    return True
