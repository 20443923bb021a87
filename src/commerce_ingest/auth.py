"""Refresh-token grant for Amazon Ads and SP-API (Login with Amazon).

A ``TokenProvider`` belongs to exactly one (org, integration) pair and keeps
that pair's access token in memory until shortly before it expires.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

import httpx

from commerce_ingest.exceptions import AuthError
from commerce_ingest.models.auth import TokenResponse, TokenStatus
from commerce_ingest.models.credentials import OAuthCredentials


# Subtracted from expires_in when the token is stored
EXPIRY_BUFFER = timedelta(seconds=60)


def _error_detail(response: httpx.Response) -> str:
    try:
        return response.json().get("error_description", response.text)
    except ValueError:
        return response.text


class TokenProvider:
    def __init__(
        self,
        credentials: OAuthCredentials,
        token_url: str,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._credentials = credentials
        self._token_url = token_url
        self._clock = clock
        self._access_token: str | None = None
        self._token_expiry: datetime | None = None
        self._http = httpx.Client(timeout=30.0)

    def get_access_token(self, force_refresh: bool = False) -> str:
        """Return the cached token, or fetch a new one when it is missing,
        expired, or ``force_refresh`` is set (used after a 401)."""
        if force_refresh or not self._has_live_token():
            self._exchange_refresh_token()
        return self._access_token  # type: ignore[return-value]

    def get_status(self) -> TokenStatus:
        if not self._access_token:
            return TokenStatus(has_token=False, is_expired=True)

        expires_at = self._token_expiry
        remaining = (expires_at - self._clock()).total_seconds() if expires_at else 0
        return TokenStatus(
            has_token=True,
            is_expired=remaining <= 0,
            expires_at=expires_at,
            seconds_remaining=int(remaining) if remaining > 0 else None,
        )

    def _has_live_token(self) -> bool:
        if self._access_token is None or self._token_expiry is None:
            return False
        return self._clock() < self._token_expiry

    def _exchange_refresh_token(self) -> None:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": self._credentials.refresh_token,
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret,
        }
        try:
            response = self._http.post(self._token_url, data=form)
        except httpx.HTTPError as e:
            raise AuthError(f"Token refresh failed: {e}") from e

        if response.status_code // 100 != 2:
            raise AuthError(
                f"Token refresh failed (HTTP {response.status_code}): {_error_detail(response)}",
                status=response.status_code,
                body=response.text,
            )

        token = TokenResponse(**response.json())
        self._access_token = token.access_token
        self._token_expiry = self._clock() + timedelta(seconds=token.expires_in) - EXPIRY_BUFFER

    def close(self) -> None:
        self._http.close()
