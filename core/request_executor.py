"""
Request Executor

Shared async HTTP layer for every price source. It handles:
- One aiohttp session per executor (created by `async with`)
- A per-attempt timeout (expiry aborts that attempt only)
- Retries with exponential backoff for idempotent requests
- Response caching for successful GET requests
- Error normalization into RequestResult / typed exceptions

Retry Policy:
    - Transient: connection errors, timeouts, HTTP 429, HTTP 5xx
    - Permanent: every other 4xx (400/422 map to ValidationError, the rest to HTTPError)
    - Delay before attempt n+1: retry_delay * 2^n seconds (non-blocking)
    - Only idempotent requests are retried. GET is idempotent by default, other
      methods must opt in with idempotent=True.

Usage:
    async with RequestExecutor("http://localhost:3001", source="oracle") as executor:
        result = await executor.request("/health")
        if result.success:
            print(result.data)
"""

import aiohttp
import asyncio
import json
import time
from typing import Any, Dict, Optional

from core.config import settings
from core.errors import (
    HTTPError,
    NetworkError,
    PriceServiceError,
    RequestTimeoutError,
    UpstreamDataError,
    ValidationError,
)
from core.logging import get_logger, log_api_request, log_api_response
from core.schemas import ApiError, RequestResult
from storage.ttl_cache import CacheStore, TTLCache


class RequestExecutor:
    """
    Async HTTP executor with retry and caching.

    Attributes:
        base_url: Base URL every endpoint is appended to
        source: Source name used in log lines
        headers: Headers sent with every request
        timeout: Per-attempt timeout in seconds
        max_retries: Extra attempts after the first one
        retry_delay: Base backoff delay in seconds
        cache: CacheStore for successful GET responses
        throw_on_error: Raise typed errors instead of returning failure results
        session: aiohttp ClientSession (None outside `async with`)

    Example:
        >>> async with RequestExecutor("https://api.dexscreener.com/latest") as ex:
        ...     result = await ex.request("/dex/tokens/0x...")
        ...     print(result.cached, result.status)
    """

    def __init__(
        self,
        base_url: str,
        source: str = "http",
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 15.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        cache: Optional[CacheStore] = None,
        cache_ttl: float = 30.0,
        throw_on_error: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.source = source
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.cache = cache if cache is not None else TTLCache(
            ttl=cache_ttl,
            maxsize=settings.cache_max_entries
        )
        self.throw_on_error = throw_on_error
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug(f"RequestExecutor session created ({self.source})")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug(f"RequestExecutor session closed ({self.source})")

    # ============================================
    # Cache Helpers
    # ============================================

    @staticmethod
    def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not params:
            return {}
        return {key: value for key, value in params.items() if value is not None}

    @staticmethod
    def cache_key(endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
        """
        Build the cache key for a GET request.

        The endpoint is normalized to a leading slash and parameters are sorted,
        so the same request always maps to the same key.

        Example:
            >>> RequestExecutor.cache_key("price", {"token": "0xabc", "chainId": 56})
            '/price:{"chainId": 56, "token": "0xabc"}'
        """
        normalized = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        return f"{normalized}:{json.dumps(params or {}, sort_keys=True, default=str)}"

    def clear_cache(self) -> None:
        self.cache.clear()
        self.logger.debug(f"Request cache cleared ({self.source})")

    def cache_statistics(self) -> Dict[str, Any]:
        return self.cache.statistics()

    # ============================================
    # Request Handler with Retry Logic
    # ============================================

    def fail(self, error: PriceServiceError) -> RequestResult:
        """Raise the error or wrap it in a failure result, depending on throw_on_error."""
        if self.throw_on_error:
            raise error
        return RequestResult(
            success=False,
            error=ApiError(kind=error.kind, message=error.message),
            status=error.status or 0,
        )

    async def request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        json_body: Any = None,
        idempotent: Optional[bool] = None,
    ) -> RequestResult:
        """
        Execute one HTTP request.

        Args:
            endpoint: Path relative to base_url (e.g., "/price")
            params: Query parameters (None values are dropped)
            method: HTTP method
            json_body: JSON body for POST requests
            idempotent: Override retry eligibility (defaults to method == "GET")

        Returns:
            RequestResult with the decoded JSON body on success

        Raises:
            RuntimeError: If called outside `async with`
            PriceServiceError: Typed failure when throw_on_error is set
        """
        if not self.session:
            raise RuntimeError("Executor session not initialized. Use 'async with' statement.")

        method = method.upper()
        params = self._clean_params(params)
        if idempotent is None:
            idempotent = method == "GET"

        cacheable = method == "GET"
        key = self.cache_key(endpoint, params)
        if cacheable:
            cached = self.cache.get(key)
            if cached is not None:
                self.logger.debug(f"Cache hit: {self.source} {key}")
                return RequestResult(success=True, data=cached, status=200, cached=True)

        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        url = f"{self.base_url}{path}"
        attempts = self.max_retries + 1 if idempotent else 1
        last_error: PriceServiceError = NetworkError(f"No attempt made for {path}")

        for attempt in range(attempts):
            log_api_request(self.source, method, path, params)
            started = time.monotonic()

            try:
                async with self.session.request(
                    method,
                    url,
                    params=params or None,
                    json=json_body,
                    headers=self.headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    log_api_response(self.source, path, resp.status, time.monotonic() - started)

                    # Success
                    if 200 <= resp.status < 300:
                        try:
                            data = await resp.json(content_type=None)
                        except ValueError as e:
                            return self.fail(UpstreamDataError(
                                f"Invalid JSON from {self.source} {path}: {e}", status=resp.status
                            ))
                        if cacheable:
                            self.cache.set(key, data)
                        return RequestResult(success=True, data=data, status=resp.status)

                    text = await resp.text()

                    # Transient errors - retry with backoff
                    if resp.status == 429 or resp.status >= 500:
                        last_error = NetworkError(f"HTTP {resp.status}: {text}", status=resp.status)
                        self.logger.warning(
                            f"HTTP {resp.status} on {self.source} {path} "
                            f"(attempt {attempt + 1}/{attempts})"
                        )

                    # Permanent errors - fail immediately
                    else:
                        error_cls = ValidationError if resp.status in (400, 422) else HTTPError
                        self.logger.error(f"HTTP {resp.status} on {self.source} {path}: {text}")
                        return self.fail(error_cls(f"HTTP {resp.status}: {text}", status=resp.status))

            except asyncio.TimeoutError:
                last_error = RequestTimeoutError(f"Request timeout after {self.timeout}s")
                self.logger.warning(
                    f"Timeout on {self.source} {path} (attempt {attempt + 1}/{attempts})"
                )

            except aiohttp.ClientError as e:
                last_error = NetworkError(f"Request failed: {e}")
                self.logger.warning(
                    f"Request failed on {self.source} {path}: {e} (attempt {attempt + 1}/{attempts})"
                )

            if attempt < attempts - 1:
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        self.logger.error(f"{self.source} {path} failed after {attempts} attempt(s): {last_error.message}")
        return self.fail(last_error)
