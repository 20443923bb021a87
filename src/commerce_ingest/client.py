"""HTTP clients for Amazon Ads, Amazon SP-API and Shopify.

Handles header injection, retry on network and server errors, and token
refresh on 401. A 429 raises RateLimitedError unless the client carries a
rate-limit RetryPolicy, in which case the whole request is retried under it.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import httpx

from commerce_ingest.auth import TokenProvider
from commerce_ingest.exceptions import ApiError, RateLimitedError
from commerce_ingest.models.credentials import AmazonAdsCredentials, ShopifyCredentials
from commerce_ingest.retry import RetryPolicy

logger = logging.getLogger(__name__)


# Versioned content types for the Ads reporting API
CONTENT_TYPES = {
    "reports_request": "application/vnd.createasyncreportrequest.v3+json",
}


class ApiClient:
    """One base URL, one httpx client, and the shared retry rules."""

    def __init__(
        self,
        base_url: str,
        auth: TokenProvider | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        rate_limit_policy: RetryPolicy | None = None,
        verbose: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._rate_limit_policy = rate_limit_policy
        self._verbose = verbose
        self._sleep = sleep
        self._http = httpx.Client(timeout=60.0)

    def request(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | list | None = None,
        content_type: str | None = None,
        accept: str | None = None,
        extra_headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send ``method`` to ``base_url + path`` and return the 2xx response.

        Raises RateLimitedError on 429 (after the rate-limit policy, if any,
        gives up) and ApiError for every other failure.
        """
        def attempt_all() -> httpx.Response:
            return self._send(method, path, body, content_type, accept, extra_headers, params)

        if self._rate_limit_policy is None:
            return attempt_all()
        return self._rate_limit_policy.call(attempt_all, sleep=self._sleep, description=f"{method} {path}")

    def _send(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | list | None,
        content_type: str | None,
        accept: str | None,
        extra_headers: dict[str, str] | None,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        url = self._base_url + path

        for attempt in range(1, self._max_retries + 1):
            last = attempt == self._max_retries
            if self._verbose:
                logger.info(f"{method} {url} (attempt {attempt}/{self._max_retries})")
                if body:
                    logger.info(f"Body: {body}")

            try:
                response = self._http.request(
                    method=method,
                    url=url,
                    headers=self._headers(content_type, accept, extra_headers),
                    json=body,
                    params=params,
                )
            except httpx.HTTPError as e:
                if last:
                    raise ApiError(f"Request failed after {self._max_retries} attempts: {e}") from e
                self._pause(attempt, f"HTTP error: {e}")
                continue

            status = response.status_code
            if self._verbose:
                logger.info(f"-> {status}")

            if status == 429:
                raise RateLimitedError(f"Rate limited (HTTP 429): {method} {path}", status=429, body=response.text)
            if status == 401 and self._auth is not None and not last:
                logger.warning("401 from API, forcing token refresh")
                self._auth.get_access_token(force_refresh=True)
                continue
            if status >= 500 and not last:
                self._pause(attempt, f"Server error ({status})")
                continue
            if status >= 400:
                raise ApiError(
                    f"API error (HTTP {status}): {_error_detail(response)}",
                    status=status,
                    body=response.text,
                )
            return response

        raise ApiError(f"Request to {url} failed after {self._max_retries} attempts")

    def _pause(self, attempt: int, reason: str) -> None:
        wait = self._retry_delay * 2 ** (attempt - 1)
        logger.warning(f"{reason}. Retrying in {wait:.1f}s")
        self._sleep(wait)

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", path, **kwargs)

    def _auth_headers(self) -> dict[str, str]:
        return {}

    def _headers(
        self,
        content_type: str | None,
        accept: str | None,
        extra_headers: dict[str, str] | None,
    ) -> dict[str, str]:
        headers = {**self._auth_headers(), "Content-Type": content_type or "application/json"}
        if accept:
            headers["Accept"] = accept
        headers.update(extra_headers or {})
        return headers

    def close(self) -> None:
        self._http.close()
        if self._auth is not None:
            self._auth.close()


class AdsApiClient(ApiClient):
    """Amazon Advertising API client scoped to one advertising profile."""

    def __init__(self, base_url: str, auth: TokenProvider, credentials: AmazonAdsCredentials, **kwargs: Any) -> None:
        super().__init__(base_url, auth, **kwargs)
        self._credentials = credentials

    def _auth_headers(self) -> dict[str, str]:
        token = self._auth.get_access_token()  # type: ignore[union-attr]
        return {
            "Authorization": f"Bearer {token}",
            "Amazon-Advertising-API-ClientId": self._credentials.client_id,
            "Amazon-Advertising-API-Scope": self._credentials.profile_id,
        }


class SpApiClient(ApiClient):
    """Selling Partner API client. Every call is retried on 429 with capped exponential backoff."""

    def __init__(
        self,
        base_url: str,
        auth: TokenProvider,
        rate_limit_policy: RetryPolicy | None = None,
        **kwargs: Any,
    ) -> None:
        policy = rate_limit_policy or RetryPolicy.capped_exponential(base=2.0, cap=120.0, max_attempts=6)
        super().__init__(base_url, auth, rate_limit_policy=policy, **kwargs)

    def _auth_headers(self) -> dict[str, str]:
        return {"x-amz-access-token": self._auth.get_access_token()}  # type: ignore[union-attr]


class ShopifyClient(ApiClient):
    """Shopify Admin GraphQL client for one store."""

    def __init__(self, credentials: ShopifyCredentials, api_version: str = "2024-10", **kwargs: Any) -> None:
        super().__init__(f"https://{credentials.store_domain}/admin/api/{api_version}", **kwargs)
        self._credentials = credentials

    def _auth_headers(self) -> dict[str, str]:
        return {"X-Shopify-Access-Token": self._credentials.access_token}

    def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a GraphQL query and return its ``data`` object.

        Raises:
            ApiError: If the response carries GraphQL errors.
        """
        body: dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = variables
        payload = self.post("/graphql.json", body=body).json()
        if payload.get("errors"):
            message = payload["errors"][0].get("message", "unknown error")
            raise ApiError(f"Shopify GraphQL error: {message}", body=str(payload["errors"]))
        return payload.get("data") or {}


def _error_detail(response: httpx.Response) -> str:
    try:
        error_json = response.json()
    except ValueError:
        return response.text
    if isinstance(error_json, dict):
        errors = error_json.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return errors[0].get("message", response.text)
        return error_json.get("message", error_json.get("details", response.text))
    return response.text
