"""Configuration management for commerce-ingest.

Loads the database URL and encryption key from .env and the upstream API
endpoints and pacing from endpoints.yaml.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from dotenv import load_dotenv


class IntegrationEndpoint(BaseModel):
    """Base URL and token URL for one upstream API."""
    api_endpoint: str
    token_url: str


class ShopifyEndpoint(BaseModel):
    api_version: str = "2024-10"


class Endpoints(BaseModel):
    """Upstream API endpoints per integration."""
    amazon_ads: IntegrationEndpoint = IntegrationEndpoint(
        api_endpoint="https://advertising-api-eu.amazon.com",
        token_url="https://api.amazon.co.uk/auth/o2/token",
    )
    sp_api: IntegrationEndpoint = IntegrationEndpoint(
        api_endpoint="https://sellingpartnerapi-eu.amazon.com",
        token_url="https://api.amazon.com/auth/o2/token",
    )
    shopify: ShopifyEndpoint = ShopifyEndpoint()


class Pacing(BaseModel):
    """Delays and poll bounds that keep runs inside upstream rate limits."""
    ads_delay_ms: int = Field(default=5000, description="Delay between Amazon Ads report dates")
    sales_traffic_delay_ms: int = Field(default=65000, description="Delay between Sales & Traffic report dates")
    orders_delay_ms: int = Field(default=2000, description="Delay between per-order item fetches")
    orders_page_delay_ms: int = Field(default=500, description="Delay between order list pages")
    ads_poll_interval: float = 5.0
    ads_max_polls: int = 30
    sp_poll_interval: float = 10.0
    sp_max_polls: int = 20
    inventory_poll_interval: float = 15.0
    inventory_max_polls: int = 12
    rate_limit_sleep: float = Field(default=10.0, description="Sleep after a 429 while polling")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""
    database_url: str = Field(default="sqlite:///commerce_ingest.db", description="SQLAlchemy database URL")
    encryption_key: str = Field(default="", description="Hex-encoded AES-256 key for credential blobs")


class Config(BaseModel):
    """Full application configuration."""
    settings: Settings
    endpoints: Endpoints = Endpoints()
    pacing: Pacing = Pacing()


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (where config/ lives)."""
    current = Path(__file__).resolve().parent
    for parent in [current, *current.parents]:
        if (parent / "config" / "endpoints.yaml").exists():
            return parent
    # Fallback: cwd
    return Path.cwd()


def _load_endpoints_file(path: Path) -> tuple[Endpoints, Pacing]:
    """Load endpoints and pacing from a YAML file. Missing sections keep defaults."""
    if not path.exists():
        return Endpoints(), Pacing()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    endpoints = Endpoints(**(data.get("endpoints") or {}))
    pacing = Pacing(**(data.get("pacing") or {}))
    return endpoints, pacing


def _env(*keys: str, default: str = "") -> str:
    """Try multiple env var names, return the first one found."""
    for key in keys:
        val = os.environ.get(key, "")
        if val:
            return val.strip().strip('"')
    return default


def _load_settings() -> Settings:
    """Load settings from environment variables."""
    return Settings(
        database_url=_env("COMMERCE_INGEST_DATABASE_URL", "DATABASE_URL", default="sqlite:///commerce_ingest.db"),
        encryption_key=_env("COMMERCE_INGEST_ENCRYPTION_KEY", "CONFIG_ENCRYPTION_KEY"),
    )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Load and cache the full application configuration."""
    project_root = _find_project_root()

    # .env.local wins over .env when both exist
    for name in (".env.local", ".env"):
        env_path = project_root / name
        if env_path.exists():
            load_dotenv(env_path)

    settings = _load_settings()
    endpoints_path = Path(_env("COMMERCE_INGEST_ENDPOINTS", default=str(project_root / "config" / "endpoints.yaml")))
    endpoints, pacing = _load_endpoints_file(endpoints_path)

    return Config(settings=settings, endpoints=endpoints, pacing=pacing)
