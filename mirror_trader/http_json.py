from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from .errors import ExhaustedRetries, NetworkError
from .retry import RetryConfig, retry_with_backoff

_USER_AGENT = "mirror-trader/1.0"


def is_retryable_status(status: int) -> bool:
    """5xx and rate limits are worth another try; other statuses are not."""
    return status >= 500 or status == 429


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, NetworkError) and exc.retryable


class AsyncJsonClient:
    """Keep-alive JSON client for one host, with retry on transient failures."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        retry: RetryConfig = RetryConfig(),
        user_agent: str = _USER_AGENT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = float(timeout_seconds)
        self.retry = retry
        self._headers = {
            "Accept": "application/json",
            "User-Agent": user_agent,
        }
        self._session: Optional[aiohttp.ClientSession] = None

    def _connect(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )
        return self._session

    async def _get_once(self, url: str, params: Optional[Dict[str, Any]]) -> Any:
        session = self._connect()
        try:
            async with session.get(url, params=params) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise NetworkError(
                        f"http_error status={resp.status} url={url} body={body[:400]}",
                        retryable=is_retryable_status(resp.status),
                        status=resp.status,
                        url=url,
                    )
                return await resp.json(content_type=None)
        except NetworkError:
            raise
        except (aiohttp.ContentTypeError, ValueError) as exc:
            raise NetworkError(
                f"invalid_json url={url}: {exc}", retryable=False, url=url
            ) from exc
        except aiohttp.ClientResponseError as exc:
            raise NetworkError(
                f"http_error status={exc.status} url={url}: {exc.message}",
                retryable=is_retryable_status(exc.status),
                status=exc.status,
                url=url,
            ) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            # No response at all.
            raise NetworkError(
                f"no_response url={url}: {exc!r}", retryable=True, url=url
            ) from exc

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            return await retry_with_backoff(
                lambda: self._get_once(url, params),
                self.retry,
                name=f"GET {path}",
                retry_on=is_retryable,
            )
        except NetworkError as exc:
            if exc.retryable:
                raise ExhaustedRetries(self.retry.max_attempts, exc) from exc
            raise

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
