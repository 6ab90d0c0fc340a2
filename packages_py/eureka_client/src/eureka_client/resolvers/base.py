"""
Cluster resolver interface
"""
from abc import ABC, abstractmethod
from typing import List

from ..config import EurekaSettings


class ClusterResolver(ABC):
    """Produces the registry base URL to use for a given retry attempt."""

    @abstractmethod
    async def resolve_eureka_url(self, retry_attempt: int = 0) -> str:
        """
        Return the base URL for this attempt.

        A positive ``retry_attempt`` advances the ring by one position first;
        the new position sticks for later calls.
        """

    async def start(self) -> None:
        """Begin any background work (no-op by default)."""

    async def close(self) -> None:
        """Stop background work (no-op by default)."""


def rotate(ring: List[str]) -> None:
    """Move the head of the ring to the tail, in place."""
    if len(ring) > 1:
        ring.append(ring.pop(0))


def build_server_url(settings: EurekaSettings, host: str) -> str:
    return f"{settings.protocol}://{host}:{settings.port}{settings.service_path}"
