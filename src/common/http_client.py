"""GET helpers for registry lookups.

Responses come back as ``(status, headers, body)`` tuples. Status 0 means
no attempt reached the server. Successful and client-error responses are
kept in memory for ``Constants.HTTP_CACHE_TTL_SEC``.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

Response = Tuple[int, Dict[str, str], str]

# url + sorted headers -> (response, time stored)
_http_cache: Dict[str, Tuple[Response, float]] = {}


def _cache_key(url: str, headers: Optional[Dict[str, str]]) -> str:
    return f"{url}|{sorted(headers.items()) if headers else ''}"


def _cached(key: str) -> Optional[Response]:
    entry = _http_cache.get(key)
    if entry is None:
        return None
    response, stored_at = entry
    if time.time() - stored_at >= Constants.HTTP_CACHE_TTL_SEC:
        del _http_cache[key]
        return None
    return response


def clear_cache() -> None:
    """Drop every cached response."""
    _http_cache.clear()


def _backoff(attempt: int) -> None:
    if attempt + 1 < Constants.HTTP_RETRY_MAX:
        time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** attempt))


def _trace(message: str, target: str, **fields: Any) -> None:
    if is_debug_enabled(logger):
        logger.debug(
            message,
            extra=extra_context(component="http_client", action="GET", target=target, **fields)
        )


def robust_get(url: str, *, headers: Optional[Dict[str, str]] = None) -> Response:
    """GET ``url``, retrying transport failures and 5xx responses with backoff.

    The last 5xx response is returned once retries run out.
    """
    key = _cache_key(url, headers)
    target = safe_url(url)
    hit = _cached(key)
    if hit is not None:
        _trace("HTTP cache hit", target, event="cache_hit")
        return hit

    failure = ""
    server_error: Optional[Response] = None
    for attempt in range(1, Constants.HTTP_RETRY_MAX + 1):
        _trace("HTTP request", target, event="http_request", attempt=attempt)
        with Timer() as t:
            try:
                response = requests.get(url, timeout=Constants.REQUEST_TIMEOUT, headers=headers)
            except requests.RequestException as exc:
                failure = "timeout" if isinstance(exc, requests.Timeout) else str(exc)
                _trace("HTTP request failed", target, event="http_exception", outcome=failure, attempt=attempt)
                _backoff(attempt - 1)
                continue

        result = (response.status_code, dict(response.headers), response.text)
        if response.status_code >= 500:
            server_error = result
            failure = f"HTTP {response.status_code}"
            _backoff(attempt - 1)
            continue

        _http_cache[key] = (result, time.time())
        _trace(
            "HTTP response",
            target,
            event="http_response",
            outcome="success",
            status_code=response.status_code,
            duration_ms=t.duration_ms(),
        )
        return result

    if server_error is not None:
        return server_error
    return 0, {}, f"Request failed after {Constants.HTTP_RETRY_MAX} attempts: {failure}"


def get_json(url: str, *, headers: Optional[Dict[str, str]] = None) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """Like ``robust_get`` but with the body decoded.

    The payload is None unless the status is 200 and the body is valid JSON.
    """
    status_code, response_headers, text = robust_get(url, headers=headers)
    if status_code != 200 or not text:
        return status_code, response_headers, None
    try:
        return status_code, response_headers, json.loads(text)
    except json.JSONDecodeError:
        _trace("JSON decode error", safe_url(url), event="parse", outcome="json_decode_error", status_code=status_code)
        return status_code, response_headers, None
