"""Typed credential sets stored per (org, integration)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class OAuthCredentials(BaseModel):
    """Client id/secret plus the long-lived refresh token."""
    client_id: str
    client_secret: str
    refresh_token: str

    @field_validator("client_id", "client_secret", "refresh_token")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


class AmazonAdsCredentials(OAuthCredentials):
    """Amazon Advertising API credentials (settings key ``amazon_ads``)."""
    profile_id: str = Field(description="Advertising profile sent as the API scope")

    @field_validator("profile_id", mode="before")
    @classmethod
    def _profile_as_str(cls, value: Any) -> str:
        return str(value)


class SpApiCredentials(OAuthCredentials):
    """Selling Partner API credentials (settings key ``amazon``)."""
    marketplace_id: str = Field(default="A1F83G8C2ARO7P", description="Marketplace, UK by default")


class ShopifyCredentials(BaseModel):
    """Shopify Admin API credentials (settings key ``shopify``)."""
    store_domain: str
    access_token: str
    webhook_secret: str = ""


INTEGRATIONS: dict[str, type[BaseModel]] = {
    "amazon_ads": AmazonAdsCredentials,
    "amazon": SpApiCredentials,
    "shopify": ShopifyCredentials,
}

# Fields masked by `credentials show`
SECRET_FIELDS = {"client_secret", "refresh_token", "access_token", "webhook_secret"}
