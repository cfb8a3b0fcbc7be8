"""
Shared request loop for the Jira and GitHub clients.

Retry policy:
- 429: wait for Retry-After seconds, then retry.
- 5xx and network failures: exponential backoff (base, 2x base, 4x base...).
- Any other non-2xx: raise immediately.
At most MAX_ATTEMPTS requests are made; only the final failure is raised.
"""

import asyncio
import logging
from typing import Any

import httpx

from jira_sync.errors import ApiError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0
BACKOFF_MULTIPLIER = 2
DEFAULT_RETRY_AFTER = 1.0
REQUEST_TIMEOUT = 30.0


def _retry_after(response: httpx.Response) -> float:
    """Seconds to wait before retrying a rate-limited request."""
    raw = response.headers.get("Retry-After")
    if raw is None:
        return DEFAULT_RETRY_AFTER
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return DEFAULT_RETRY_AFTER


def _backoff(attempt: int, base_delay: float) -> float:
    return base_delay * BACKOFF_MULTIPLIER ** (attempt - 1)


async def request_with_retry(
    method: str,
    url: str,
    *,
    endpoint: str,
    error_cls: type[ApiError],
    auth: httpx.Auth | None = None,
    headers: dict[str, str] | None = None,
    json: Any = None,
    params: dict[str, Any] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    retry_base_delay: float = RETRY_BASE_DELAY,
) -> httpx.Response:
    """
    Send a request, retrying transient failures.

    Args:
        method: HTTP method.
        url: Absolute URL.
        endpoint: Path used in logs and error messages.
        error_cls: ApiError subclass raised on final failure.
        transport: Optional httpx transport (tests use httpx.MockTransport).
        retry_base_delay: First backoff delay in seconds for 5xx/network retries.

    Returns:
        The successful (2xx) response.

    Raises:
        ApiError subclass carrying status code, endpoint and response body.
    """
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=transport) as client:
                response = await client.request(
                    method,
                    url,
                    auth=auth,
                    headers=headers,
                    json=json,
                    params=params,
                )
        except httpx.RequestError as e:
            if attempt >= MAX_ATTEMPTS:
                raise error_cls(0, endpoint, f"Network error: {e}") from e
            delay = _backoff(attempt, retry_base_delay)
            logger.warning(
                f"Network error on {method} {endpoint}: {e}; "
                f"retrying in {delay:.1f}s (attempt {attempt}/{MAX_ATTEMPTS})"
            )
            await asyncio.sleep(delay)
            continue

        if response.is_success:
            return response

        status = response.status_code
        if status == 429:
            delay = _retry_after(response)
            reason = "Rate limited"
        elif status >= 500:
            delay = _backoff(attempt, retry_base_delay)
            reason = f"Server error {status}"
        else:
            raise error_cls(status, endpoint, response.text)

        if attempt >= MAX_ATTEMPTS:
            raise error_cls(status, endpoint, response.text)

        logger.warning(
            f"{reason} on {method} {endpoint}; "
            f"retrying in {delay:.1f}s (attempt {attempt}/{MAX_ATTEMPTS})"
        )
        await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises
    raise error_cls(0, endpoint, "Retries exhausted")
