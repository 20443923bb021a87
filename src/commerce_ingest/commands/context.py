"""Sessions and API clients for CLI commands.

Everything here runs before a job's main loop, so any failure is a setup
failure: missing credentials, a bad encryption key or a rejected token.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from commerce_ingest.auth import TokenProvider
from commerce_ingest.client import AdsApiClient, ShopifyClient, SpApiClient
from commerce_ingest.config import Config, get_config
from commerce_ingest.credentials import CredentialStore
from commerce_ingest.db.session import make_engine, make_session_factory
from commerce_ingest.models.credentials import (
    AmazonAdsCredentials,
    ShopifyCredentials,
    SpApiCredentials,
)
from commerce_ingest.retry import RetryPolicy

logger = logging.getLogger(__name__)


def open_session(config: Config | None = None) -> Session:
    config = config or get_config()
    engine = make_engine(config.settings.database_url)
    return make_session_factory(engine)()


def credential_store(session: Session, config: Config | None = None) -> CredentialStore:
    config = config or get_config()
    return CredentialStore(session, config.settings.encryption_key)


def ads_client(session: Session, org_id: int, verbose: bool = False, check_token: bool = True) -> AdsApiClient:
    """Amazon Ads client for the org. With check_token, a token is fetched up front."""
    config = get_config()
    credentials: AmazonAdsCredentials = credential_store(session, config).get(org_id, "amazon_ads")
    auth = TokenProvider(credentials, config.endpoints.amazon_ads.token_url)
    if check_token:
        try:
            auth.get_access_token()
        except Exception:
            auth.close()
            raise
        logger.info("Amazon Ads token acquired for org %d", org_id)
    return AdsApiClient(config.endpoints.amazon_ads.api_endpoint, auth, credentials, verbose=verbose)


def sp_client(
    session: Session,
    org_id: int,
    verbose: bool = False,
    rate_limit_policy: RetryPolicy | None = None,
    check_token: bool = True,
) -> tuple[SpApiClient, SpApiCredentials]:
    """SP-API client for the org plus its credentials (for the marketplace id)."""
    config = get_config()
    credentials: SpApiCredentials = credential_store(session, config).get(org_id, "amazon")
    auth = TokenProvider(credentials, config.endpoints.sp_api.token_url)
    if check_token:
        try:
            auth.get_access_token()
        except Exception:
            auth.close()
            raise
        logger.info("SP-API token acquired for org %d", org_id)
    client = SpApiClient(
        config.endpoints.sp_api.api_endpoint,
        auth,
        rate_limit_policy=rate_limit_policy,
        verbose=verbose,
    )
    return client, credentials


def shopify_client(session: Session, org_id: int, verbose: bool = False) -> ShopifyClient:
    config = get_config()
    credentials: ShopifyCredentials = credential_store(session, config).get(org_id, "shopify")
    return ShopifyClient(credentials, config.endpoints.shopify.api_version, verbose=verbose)
