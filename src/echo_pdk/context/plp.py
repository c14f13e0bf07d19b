"""Context resolver for a remote PLP server.

Two endpoints are used:

- ``GET  {server}/api/v1/context-store/{assetId}`` for ``plp://`` references
- ``POST {server}/api/v1/prompts/{promptId}/context/_resolve`` for named
  references, with body ``{"contextNames": [...]}``. One request covers
  every named reference in a batch.

Transient failures (timeouts, connection errors, 429 and 5xx responses) are
retried with exponential backoff via tenacity. Requests can be rate limited
with aiolimiter. Resolution never raises: failures come back as
``ContextResolveResult`` values.

Usage:
    from echo_pdk.config import ContextStoreConfig
    from echo_pdk.context.plp import PlpContextResolver

    resolver = PlpContextResolver(
        ContextStoreConfig(server_url="https://plp.example.com", auth="token")
    )
    result = await resolver.resolve("plp://brand-logo")
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import quote

import aiohttp
from aiolimiter import AsyncLimiter
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from echo_pdk.config import ContextStoreConfig
from echo_pdk.context.resolver import (
    ContextFailure,
    ContextResolveResult,
    ResolvedContent,
    extract_asset_id,
    is_plp_reference,
    validate_context_path,
)
from echo_pdk.exceptions import EchoValidationError
from echo_pdk.logging import get_logger

__all__ = [
    "PlpContextResolver",
    "create_plp_resolver",
    "RETRY_BASE_DELAY",
]

logger = get_logger(__name__)


class _RetryableContextError(Exception):
    """Internal exception to signal a retryable request failure."""

    pass


class _ContextRequestError(Exception):
    """Internal exception for a definitive (non-retryable) request failure."""

    def __init__(self, failure: ContextFailure, message: str) -> None:
        self.failure = failure
        super().__init__(message)


# =============================================================================
# Constants
# =============================================================================

#: Base delay for exponential backoff retry in seconds
RETRY_BASE_DELAY: float = 0.5

#: Maximum delay between retries in seconds
RETRY_MAX_DELAY: float = 4.0

ASSET_ENDPOINT = "/api/v1/context-store/{asset_id}"
PROMPT_CONTEXT_ENDPOINT = "/api/v1/prompts/{prompt_id}/context/_resolve"


def _content_from_payload(payload: Mapping[str, Any]) -> ResolvedContent:
    return ResolvedContent(
        mime_type=str(payload.get("mimeType") or "application/octet-stream"),
        text=payload.get("text") or None,
        data_url=payload.get("dataUrl") or None,
    )


class PlpContextResolver:
    """ContextResolver backed by the PLP HTTP API.

    Attributes:
        config: Server, credentials, timeout and retry settings.
    """

    def __init__(
        self,
        config: ContextStoreConfig,
        *,
        rate_limiter: AsyncLimiter | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ) -> None:
        """Initialize the resolver.

        Args:
            config: Context store settings.
            rate_limiter: Optional limiter shared with other clients. When
                omitted and ``config.rate_limit`` is set, one is created.
            retry_base_delay: Base backoff delay in seconds.
        """
        self.config = config
        if rate_limiter is None and config.rate_limit is not None:
            rate_limiter = AsyncLimiter(config.rate_limit, config.rate_period)
        self._rate_limiter = rate_limiter
        self._retry_base_delay = retry_base_delay

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.auth}",
            "Accept": "application/json",
        }

    async def resolve(self, path: str) -> ContextResolveResult:
        """Resolve a single path. Same result as ``resolve_batch([path])[path]``."""
        return (await self.resolve_batch([path]))[path]

    async def resolve_batch(
        self, paths: Iterable[str]
    ) -> dict[str, ContextResolveResult]:
        """Resolve paths with one request for named references.

        ``plp://`` references are fetched concurrently, one GET each; named
        references share a single POST.
        """
        results: dict[str, ContextResolveResult] = {}
        asset_refs: list[str] = []
        names: list[str] = []
        for path in dict.fromkeys(paths):
            try:
                validate_context_path(path)
            except EchoValidationError as e:
                results[path] = ContextResolveResult.failed(
                    path, ContextFailure.INVALID_PATH, e.message
                )
                continue
            (asset_refs if is_plp_reference(path) else names).append(path)

        if asset_refs:
            fetched = await asyncio.gather(
                *(self._resolve_asset(path) for path in asset_refs)
            )
            results.update(zip(asset_refs, fetched, strict=True))
        if names:
            results.update(await self._resolve_names(names))
        return results

    async def _resolve_asset(self, path: str) -> ContextResolveResult:
        asset_id = extract_asset_id(path)
        url = self.config.server_url + ASSET_ENDPOINT.format(
            asset_id=quote(asset_id, safe="")
        )
        try:
            payload = await self._request_json("GET", url)
        except _ContextRequestError as e:
            return ContextResolveResult.failed(path, e.failure, str(e))
        except _RetryableContextError as e:
            return ContextResolveResult.failed(path, ContextFailure.UNAVAILABLE, str(e))
        if not isinstance(payload, Mapping):
            return ContextResolveResult.failed(
                path, ContextFailure.UNAVAILABLE, "Malformed asset response"
            )
        return ContextResolveResult.ok(path, _content_from_payload(payload))

    async def _resolve_names(self, names: list[str]) -> dict[str, ContextResolveResult]:
        def fail_all(failure: ContextFailure, message: str) -> dict[str, Any]:
            return {
                name: ContextResolveResult.failed(name, failure, message)
                for name in names
            }

        prompt_id = self.config.prompt_id
        if not prompt_id:
            return {
                name: ContextResolveResult.failed(
                    name,
                    ContextFailure.UNAVAILABLE,
                    f'Context name "{name}" requires a prompt_id to resolve. '
                    "Use the plp:// prefix for direct asset references.",
                )
                for name in names
            }

        url = self.config.server_url + PROMPT_CONTEXT_ENDPOINT.format(
            prompt_id=quote(str(prompt_id), safe="")
        )
        try:
            payload = await self._request_json("POST", url, {"contextNames": names})
        except _ContextRequestError as e:
            return fail_all(e.failure, str(e))
        except _RetryableContextError as e:
            return fail_all(ContextFailure.UNAVAILABLE, str(e))
        if not isinstance(payload, Mapping):
            return fail_all(ContextFailure.UNAVAILABLE, "Malformed context response")

        results: dict[str, ContextResolveResult] = {}
        for name in names:
            entry = payload.get(name)
            if isinstance(entry, Mapping):
                results[name] = ContextResolveResult.ok(
                    name, _content_from_payload(entry)
                )
            else:
                results[name] = ContextResolveResult.failed(
                    name, ContextFailure.NOT_FOUND, f"Context not found: {name}"
                )
        return results

    async def _request_json(
        self, method: str, url: str, body: dict[str, Any] | None = None
    ) -> Any:
        """Send a request with retry and return the decoded JSON body.

        Raises:
            _ContextRequestError: For 4xx responses that retrying cannot fix.
            _RetryableContextError: When every attempt failed transiently.
        """

        async def _make_request() -> Any:
            try:
                timeout = aiohttp.ClientTimeout(total=self.config.timeout)
                async with (
                    aiohttp.ClientSession(timeout=timeout) as session,
                    session.request(
                        method, url, json=body, headers=self._headers
                    ) as resp,
                ):
                    if resp.status == 200:
                        try:
                            return await resp.json()
                        except (ValueError, aiohttp.ContentTypeError) as e:
                            raise _RetryableContextError(
                                f"Malformed JSON response: {e}"
                            ) from e
                    if resp.status == 404:
                        raise _ContextRequestError(
                            ContextFailure.NOT_FOUND, f"Not found: {url}"
                        )
                    if resp.status in (401, 403):
                        raise _ContextRequestError(
                            ContextFailure.UNAUTHORIZED,
                            f"Unauthorized (HTTP {resp.status})",
                        )
                    resp_text = await resp.text()
                    error_msg = f"HTTP {resp.status}: {resp_text}"
                    if resp.status == 429 or resp.status >= 500:
                        raise _RetryableContextError(error_msg)
                    raise _ContextRequestError(ContextFailure.UNAVAILABLE, error_msg)
            except TimeoutError:
                raise _RetryableContextError("Request timed out") from None
            except aiohttp.ClientError as e:
                raise _RetryableContextError(f"Client error: {e}") from e

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(
                multiplier=self._retry_base_delay,
                min=self._retry_base_delay,
                max=RETRY_MAX_DELAY,
            ),
            retry=retry_if_exception_type(_RetryableContextError),
            reraise=True,
        ):
            with attempt:
                attempt_num = attempt.retry_state.attempt_number
                try:
                    if self._rate_limiter is not None:
                        async with self._rate_limiter:
                            return await _make_request()
                    return await _make_request()
                except _RetryableContextError as e:
                    logger.warning(
                        "context_request_failed",
                        method=method,
                        url=url,
                        attempt=attempt_num,
                        error=str(e),
                    )
                    raise
        raise _RetryableContextError("No request attempts were made")


def create_plp_resolver(
    config: ContextStoreConfig,
    rate_limit: int | None = None,
    rate_period: float | None = None,
) -> PlpContextResolver:
    """Create a PLP resolver, optionally overriding the configured rate limit.

    Args:
        config: Context store settings.
        rate_limit: Maximum requests per rate_period. Overrides
            ``config.rate_limit`` when given.
        rate_period: Rate limiting window in seconds. Defaults to
            ``config.rate_period``.
    """
    limiter = None
    if rate_limit is not None:
        limiter = AsyncLimiter(rate_limit, rate_period or config.rate_period)
    return PlpContextResolver(config, rate_limiter=limiter)
