"""
Shared HTTP plumbing for the Shopify, Stripe and Supabase clients.
"""

import logging
from typing import Any, Optional

import requests

from storefront.exceptions import PlatformAPIError
from storefront.retry import RetryConfig

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15
RETRYABLE_STATUS = {429, 500, 502, 503, 504}

platform_retry = RetryConfig(max_attempts=3, base_delay=0.5, max_delay=8.0)


class PlatformClient:
    """Base client: one requests session plus uniform error mapping."""

    error_class: type[PlatformAPIError] = PlatformAPIError

    def __init__(self, base_url: str, headers: Optional[dict] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        if headers:
            self.session.headers.update(headers)

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, operation: str, **kwargs) -> requests.Response:
        """
        Perform an HTTP request and map failures to the client's error class.

        Connection errors, 429 and 5xx are retryable; other 4xx are not.
        """
        kwargs.setdefault("timeout", REQUEST_TIMEOUT)
        url = self._url(path)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise self.error_class(
                message=f"{operation} request failed: {e}",
                operation=operation,
                retryable=True,
                original_exception=e,
            )

        if response.status_code >= 400:
            raise self.error_class(
                message=f"{operation} returned HTTP {response.status_code}: {response.text[:300]}",
                operation=operation,
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS,
            )

        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    def _json(self, response: requests.Response, operation: str) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise self.error_class(
                message=f"{operation} returned invalid JSON: {e}",
                operation=operation,
                status_code=response.status_code,
                retryable=False,
                original_exception=e,
            )
