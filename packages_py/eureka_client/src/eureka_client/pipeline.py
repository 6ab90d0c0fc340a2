"""
Request pipeline for registry calls.

Every call resolves a base URL through the cluster resolver, passes the
request options through the middleware, then executes the HTTP call with
httpx. Transport failures, resolution failures and 5xx responses are
retried with linear backoff; each retry re-resolves the server.
"""
import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

import httpx

from .exceptions import MiddlewareError, ResolutionError, TransportError
from .resolvers import ClusterResolver
from .types import EurekaResponse, RequestMiddleware, RequestOptions, default_middleware

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Retry configuration"""

    max_retries: int = 3
    """Retries after the first attempt. Default: 3"""

    base_delay_seconds: float = 0.5
    """Delay unit; the n-th retry waits n times this. Default: 0.5"""


EventType = Literal["attempt:start", "attempt:fail", "retry:wait", "retry:abort"]


@dataclass
class RequestEvent:
    """Event emitted by the pipeline"""

    type: EventType
    attempt: int
    data: Dict[str, Any] = field(default_factory=dict)


RequestEventListener = Callable[[RequestEvent], None]


def calculate_backoff_delay(attempt_number: int, policy: RetryPolicy) -> float:
    """
    Linear backoff: ``base_delay * attempt_number``.

    Args:
        attempt_number: The attempt about to be made (1 for the first retry)
        policy: Retry policy
    """
    return policy.base_delay_seconds * attempt_number


def is_retryable_status(status: int) -> bool:
    return 500 <= status < 600


def join_url(base_url: str, path: str) -> str:
    if not path:
        return base_url
    return base_url.rstrip("/") + "/" + path.lstrip("/")


class RequestPipeline:
    """
    Resolve, transform, execute, retry.

    Example:
        pipeline = RequestPipeline(StaticClusterResolver(settings))
        response = await pipeline.eureka_request("MYAPP", method="POST", json=body)
    """

    def __init__(
        self,
        resolver: ClusterResolver,
        policy: Optional[RetryPolicy] = None,
        middleware: Optional[RequestMiddleware] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self._resolver = resolver
        self._policy = policy or RetryPolicy()
        self._middleware = middleware or default_middleware
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._listeners: List[RequestEventListener] = []
        self._closed = False

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def resolver(self) -> ClusterResolver:
        return self._resolver

    def on(self, listener: RequestEventListener) -> Callable[[], None]:
        """
        Add an event listener.

        Returns:
            Function to remove the listener
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def off(self, listener: RequestEventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: RequestEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Request event listener failed for {event.type}")

    async def eureka_request(
        self,
        path: str = "",
        method: str = "GET",
        *,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        retry_attempt: int = 0,
        abort_retry: Optional[Callable[[], bool]] = None,
    ) -> EurekaResponse:
        """
        Make a registry call with retries.

        Args:
            path: Path relative to the resolved base URL
            method: HTTP method
            json: JSON body
            headers: Extra request headers
            retry_attempt: Attempt number to start from
            abort_retry: Checked before each retry; a true result stops retrying

        Returns:
            The first non-5xx response, or the last 5xx response once
            retries are exhausted

        Raises:
            TransportError / ResolutionError: when the last attempt failed that way
            MiddlewareError: middleware returned something other than a dict
        """
        attempt = retry_attempt
        while True:
            self._emit(RequestEvent(type="attempt:start", attempt=attempt, data={"path": path}))
            response: Optional[EurekaResponse] = None
            error: Optional[Exception] = None
            try:
                response = await self._attempt(path, method, json, headers, attempt)
            except (TransportError, ResolutionError) as e:
                logger.error(f"Problem making eureka request: {e}")
                error = e

            if response is not None and not is_retryable_status(response.status):
                return response

            self._emit(RequestEvent(
                type="attempt:fail",
                attempt=attempt,
                data={"error": str(error) if error else None, "status": response.status if response else None},
            ))

            if attempt >= self._policy.max_retries or self._closed or (abort_retry and abort_retry()):
                if attempt < self._policy.max_retries:
                    self._emit(RequestEvent(type="retry:abort", attempt=attempt))
                if response is not None:
                    return response
                raise error

            delay = calculate_backoff_delay(attempt + 1, self._policy)
            failed_at = response.url if response is not None else path
            logger.warning(
                f"Eureka request failed to endpoint {failed_at}, next server retry in {delay}s"
            )
            self._emit(RequestEvent(type="retry:wait", attempt=attempt, data={"delay_seconds": delay}))
            await asyncio.sleep(delay)
            attempt += 1

    async def _attempt(
        self,
        path: str,
        method: str,
        json: Any,
        headers: Optional[Dict[str, str]],
        retry_attempt: int,
    ) -> EurekaResponse:
        base_url = await self._resolver.resolve_eureka_url(retry_attempt)
        options = await self._apply_middleware({
            "method": method,
            "base_url": base_url,
            "path": path,
            "headers": dict(headers or {}),
            "json": json,
        })

        url = join_url(options.get("base_url") or base_url, options.get("path", ""))
        start = time.monotonic()
        try:
            response = await self._client.request(
                options.get("method", method),
                url,
                headers=options.get("headers"),
                json=options.get("json"),
            )
        except httpx.RequestError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        logger.debug(f"{method} {url} -> {response.status_code} in {time.monotonic() - start:.3f}s")

        return EurekaResponse(
            status=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            url=url,
        )

    async def _apply_middleware(self, options: RequestOptions) -> RequestOptions:
        result = self._middleware(options)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, dict):
            raise MiddlewareError(
                f"requestMiddleware did not return an object (got {type(result).__name__})"
            )
        return result

    async def close(self) -> None:
        """Stop retrying and close the HTTP client if this pipeline created it."""
        self._closed = True
        if self._owns_client:
            await self._client.aclose()
