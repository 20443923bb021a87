"""Pagination helpers for token-paged list endpoints."""

from __future__ import annotations

import time
from typing import Any, Callable


def paginate(
    fetch_fn: Callable[[dict[str, Any]], dict[str, Any]],
    params: dict[str, Any],
    results_key: str,
    token_key: str = "nextToken",
    request_token_key: str | None = None,
    delay: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> list[dict[str, Any]]:
    """Collect every page of a ``{items[], nextToken}`` style endpoint.

    Args:
        fetch_fn: Takes the request params and returns the page payload.
        params: The initial request params. Not mutated.
        results_key: Key in the payload holding the page's items (e.g. "Orders").
        token_key: Key in the payload holding the next page token.
        request_token_key: Param name to send the token back under. Defaults to token_key.
        delay: Seconds to wait before fetching each page after the first.
        sleep: Injected for tests.

    Returns:
        All results concatenated across pages.
    """
    all_results: list[dict[str, Any]] = []
    request_params = dict(params)

    while True:
        page = fetch_fn(dict(request_params))
        all_results.extend(page.get(results_key) or [])

        next_token = page.get(token_key)
        if not next_token:
            break
        request_params[request_token_key or token_key] = next_token
        if delay:
            sleep(delay)

    return all_results
