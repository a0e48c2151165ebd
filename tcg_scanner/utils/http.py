"""Shared aiohttp request helper for provider clients."""

import asyncio
from typing import Any, Dict, Optional, Type

import aiohttp

from ..core.constants import BACKOFF_S, RETRYABLE_STATUSES
from .config import settings
from .error_handler import (
    MalformedResponseError,
    ProviderExhaustedError,
    ProviderRateLimitedError,
    TransientProviderError,
)
from .log import get_logger
from .retry import retry

logger = get_logger(__name__)


async def _request_json(
    method: str,
    url: str,
    *,
    provider: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    timeout_s: Optional[float] = None,
    not_found_ok: bool = False,
    error_cls: Type[TransientProviderError] = TransientProviderError,
) -> Optional[Any]:
    timeout = aiohttp.ClientTimeout(total=timeout_s or settings.HTTP_TIMEOUT_S)
    if params:
        params = {k: v for k, v in params.items() if v is not None}

    try:
        async with aiohttp.ClientSession(headers=headers, timeout=timeout) as session:
            async with session.request(method, url, params=params, json=json_body) as response:
                status = response.status
                if status == 429:
                    raise ProviderRateLimitedError(
                        f"{provider} rate limit exceeded", provider=provider, status=status
                    )
                if status == 402:
                    raise ProviderExhaustedError(
                        f"{provider} credits exhausted", provider=provider, status=status
                    )
                if status == 404 and not_found_ok:
                    return None
                if status >= 400:
                    body = await response.text()
                    raise error_cls(
                        f"{provider} request failed: {status}",
                        provider=provider,
                        status=status,
                        details={"body": body[:500], "retryable": status in RETRYABLE_STATUSES},
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise MalformedResponseError(
                        f"{provider} returned a non-JSON body", provider=provider, status=status
                    ) from e
    except asyncio.TimeoutError as e:
        raise error_cls(f"{provider} request timed out", provider=provider) from e
    except aiohttp.ClientError as e:
        raise error_cls(f"{provider} connection failed: {e}", provider=provider) from e


def _worth_retrying(error: Exception) -> bool:
    status = getattr(error, "status", None)
    return status is None or status in RETRYABLE_STATUSES


fetch_json = retry(
    max_attempts=len(BACKOFF_S),
    base_delay=BACKOFF_S[0],
    max_delay=BACKOFF_S[-1],
    exceptions=TransientProviderError,
    logger=logger,
    should_retry=_worth_retrying,
)(_request_json)
