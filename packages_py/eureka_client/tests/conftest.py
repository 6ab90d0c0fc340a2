"""
Shared fixtures for eureka_client tests.
"""
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

from eureka_client.config import ConfigBuilder, deep_merge


BASE_CONFIG: Dict[str, Any] = {
    "instance": {
        "app": "jqservice",
        "hostName": "localhost",
        "ipAddr": "127.0.0.1",
        "port": 8080,
        "vipAddress": "jq.test.com",
        "dataCenterInfo": {"name": "MyOwn"},
    },
    "eureka": {
        "host": "eureka.test",
        "port": 8761,
        "maxRetries": 0,
        "requestRetryDelay": 0,
        "heartbeatInterval": 30,
        "registryFetchInterval": 30,
        "registrationWarningDelay": 30,
    },
}

BASE_URL = "http://eureka.test:8761/eureka/v2/apps/"

FakeReply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeEurekaServer:
    """httpx.MockTransport handler with per-route reply queues."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._routes: Dict[tuple, List[FakeReply]] = {}

    def reply(self, method: str, path: str, *replies: FakeReply) -> None:
        """Queue replies for a route; the last one repeats."""
        self._routes[(method, path)] = list(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, text="no route")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply) and not isinstance(reply, httpx.Response):
            return reply(request)
        # Fresh copy so a repeated reply is never re-sent
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, method: Optional[str] = None) -> List[httpx.Request]:
        return [r for r in self.requests if method is None or r.method == method]


@pytest.fixture
def make_config():
    """Build a validated config from the base test config plus overrides."""
    def _make(eureka: Optional[Dict[str, Any]] = None, instance: Optional[Dict[str, Any]] = None):
        overrides = deep_merge(BASE_CONFIG, {"eureka": eureka or {}, "instance": instance or {}})
        return ConfigBuilder().with_overrides(overrides).build()
    return _make


@pytest.fixture
def make_instance():
    """Build a wire-format instance record."""
    def _make(
        host: str = "host-a",
        port: Any = 8080,
        status: str = "UP",
        vip: str = "vip.test.com",
        app: str = "APP",
        action: Optional[str] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        record = {
            "hostName": host,
            "ipAddr": "10.0.0.1",
            "port": port,
            "status": status,
            "vipAddress": vip,
            "app": app,
            **extra,
        }
        if action:
            record["actionType"] = action
        return record
    return _make


@pytest.fixture
def fake_server():
    return FakeEurekaServer()
