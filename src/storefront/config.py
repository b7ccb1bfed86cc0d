"""
Runtime configuration read from the environment (and a local .env file).
"""

import os
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

from storefront.exceptions import ConfigurationError

DEFAULT_API_VERSION = "2024-01"
DEFAULT_REFRESH_SECONDS = 30


@dataclass(frozen=True)
class Settings:
    """Storefront settings. Secrets are optional until a client needs them."""
    shopify_store_domain: Optional[str] = None
    shopify_storefront_token: Optional[str] = None
    shopify_admin_token: Optional[str] = None
    shopify_api_version: str = DEFAULT_API_VERSION
    shopify_webhook_secret: Optional[str] = None
    stripe_secret_key: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    catalog_source: str = "shopify_graphql"
    catalog_refresh_seconds: int = DEFAULT_REFRESH_SECONDS
    storage_backend: str = "file"
    storage_path: str = ".storefront-storage.json"
    storage_bucket: Optional[str] = None
    storage_prefix: str = "storefront/"
    aws_region: str = "us-east-1"
    aws_endpoint_url: Optional[str] = None
    currency: str = "usd"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[dict] = None, dotenv: bool = True) -> "Settings":
        """Build settings from environment variables named after each field."""
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        values = {}
        for f in fields(cls):
            raw = env.get(f.name.upper())
            if raw is None or raw == "":
                continue
            values[f.name] = raw

        # Legacy variable names from the Netlify deployment
        values.setdefault(
            "shopify_store_domain",
            env.get("SHOPIFY_STORE_URL") or env.get("VITE_SHOPIFY_STORE_DOMAIN"),
        )

        if "catalog_refresh_seconds" in values:
            try:
                values["catalog_refresh_seconds"] = int(values["catalog_refresh_seconds"])
            except ValueError:
                raise ConfigurationError(
                    message=f"CATALOG_REFRESH_SECONDS must be an integer, got {values['catalog_refresh_seconds']!r}",
                    config_key="CATALOG_REFRESH_SECONDS",
                )

        return cls(**values)

    def require(self, name: str) -> str:
        """Return a setting or raise ConfigurationError when it is missing."""
        value = getattr(self, name)
        if not value:
            raise ConfigurationError(
                message=f"Missing required setting {name.upper()}",
                config_key=name.upper(),
            )
        return value
