"""Shared fixtures for the commerce-ingest test suite."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from commerce_ingest.config import Config, Pacing, Settings
from commerce_ingest.db.session import init_db, make_engine, make_session_factory
from commerce_ingest.models.credentials import (
    AmazonAdsCredentials,
    ShopifyCredentials,
    SpApiCredentials,
)

TEST_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


@pytest.fixture
def fake_settings() -> Settings:
    return Settings(database_url="sqlite://", encryption_key=TEST_KEY)


@pytest.fixture
def fake_pacing() -> Pacing:
    """Pacing with no waits so nothing in a test sleeps for real."""
    return Pacing(
        ads_delay_ms=0,
        sales_traffic_delay_ms=0,
        orders_delay_ms=0,
        orders_page_delay_ms=0,
        ads_poll_interval=0.0,
        sp_poll_interval=0.0,
        inventory_poll_interval=0.0,
        rate_limit_sleep=0.0,
    )


@pytest.fixture
def fake_config(fake_settings, fake_pacing) -> Config:
    return Config(settings=fake_settings, pacing=fake_pacing)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    """Session on a fresh in-memory database; init_db seeds organization 1."""
    s = make_session_factory(engine)()
    yield s
    s.close()


@pytest.fixture
def ads_credentials() -> AmazonAdsCredentials:
    return AmazonAdsCredentials(
        client_id="test-client-id",
        client_secret="test-client-secret",
        refresh_token="test-refresh-token",
        profile_id="111111",
    )


@pytest.fixture
def sp_credentials() -> SpApiCredentials:
    return SpApiCredentials(
        client_id="sp-client-id",
        client_secret="sp-client-secret",
        refresh_token="sp-refresh-token",
    )


@pytest.fixture
def shopify_credentials() -> ShopifyCredentials:
    return ShopifyCredentials(store_domain="test-store.myshopify.com", access_token="shpat_test_token_1234")


@pytest.fixture
def mock_client():
    """MagicMock standing in for an API client."""
    client = MagicMock()
    client.get = MagicMock()
    client.post = MagicMock()
    client.graphql = MagicMock()
    client.close = MagicMock()
    return client


@pytest.fixture
def no_sleep():
    """Records requested sleeps instead of sleeping."""
    return MagicMock()
