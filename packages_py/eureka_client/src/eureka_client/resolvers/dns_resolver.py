"""
Registry server resolution through DNS TXT records.

Naming convention: ``txt.{region}.{host}`` lists the per-zone DNS names, and
``txt.{zoneName}`` lists the registry hostnames of that zone.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional

import dns.asyncresolver
import dns.exception

from ..config import EurekaSettings
from ..exceptions import ConfigurationError, ResolutionError
from .base import ClusterResolver, build_server_url, rotate

logger = logging.getLogger(__name__)

TxtLookup = Callable[[str], Awaitable[List[str]]]


async def resolve_txt(name: str) -> List[str]:
    """
    Resolve a TXT record to its values.

    Values are flattened across records and character-strings and split on
    whitespace.
    """
    try:
        answer = await dns.asyncresolver.resolve(name, "TXT")
    except dns.exception.DNSException as e:
        raise ResolutionError(f"TXT lookup failed for {name}: {e}") from e
    values: List[str] = []
    for rdata in answer:
        for chunk in rdata.strings:
            values.extend(chunk.decode("utf-8", errors="replace").split())
    return values


class DnsClusterResolver(ClusterResolver):
    """
    Zone-aware registry resolution via two-level TXT lookups.

    The resolved host list is cached and refreshed in the background every
    ``cluster_refresh_interval`` seconds once ``start()`` is called. A failed
    refresh keeps the previous list.
    """

    def __init__(
        self,
        settings: EurekaSettings,
        instance_zone: Optional[str] = None,
        lookup: Optional[TxtLookup] = None,
    ):
        if not settings.ec2_region:
            raise ConfigurationError(
                "EC2 region was undefined. "
                "eureka.ec2Region must be set to resolve Eureka using DNS records."
            )
        self.settings = settings
        self.instance_zone = instance_zone
        self.server_list: Optional[List[str]] = None
        self._lookup = lookup or resolve_txt
        self._refresh_task: Optional[asyncio.Task] = None

    async def resolve_eureka_url(self, retry_attempt: int = 0) -> str:
        server_list = await self.get_current_cluster()
        if retry_attempt > 0:
            rotate(server_list)
        return build_server_url(self.settings, server_list[0])

    async def get_current_cluster(self) -> List[str]:
        if self.server_list is None:
            await self.refresh_current_cluster()
        return self.server_list

    async def refresh_current_cluster(self) -> None:
        hosts = await self.resolve_cluster_hosts()
        # Same set in a different order keeps the current rotation
        if self.server_list is None or set(self.server_list) != set(hosts):
            self.server_list = hosts
            logger.info(f"Eureka cluster located, hosts will be used in the following order: {hosts}")
        else:
            logger.debug("Eureka cluster hosts unchanged, maintaining current server list.")

    async def resolve_cluster_hosts(self) -> List[str]:
        """
        Resolve every zone's registry hosts.

        Hosts of the instance's own zone come first when zone affinity is on;
        each group is shuffled. Any failed zone lookup fails the whole call.
        """
        region = self.settings.ec2_region
        dns_host = f"txt.{region}.{self.settings.host}"
        try:
            zone_records = await self._lookup(dns_host)
        except ResolutionError as e:
            raise ResolutionError(
                f"Error resolving eureka cluster for region [{region}] using DNS: [{e}]"
            ) from e

        results = await asyncio.gather(
            *(self.resolve_zone_hosts(f"txt.{zone}") for zone in zone_records)
        )

        my_zone_hosts: List[str] = []
        other_hosts: List[str] = []
        for zone, hosts in zip(zone_records, results):
            if self.settings.prefer_same_zone and self.instance_zone and zone.startswith(self.instance_zone):
                my_zone_hosts.extend(hosts)
            else:
                other_hosts.extend(hosts)
        random.shuffle(my_zone_hosts)
        random.shuffle(other_hosts)

        combined = my_zone_hosts + other_hosts
        if not combined:
            raise ResolutionError(f"Unable to locate any Eureka hosts in any zone via DNS @ {dns_host}")
        return combined

    async def resolve_zone_hosts(self, zone_record: str) -> List[str]:
        try:
            hosts = await self._lookup(zone_record)
        except ResolutionError as e:
            logger.warning(f"Failed to resolve cluster zone {zone_record}: {e}")
            raise ResolutionError(f"Error resolving cluster zone {zone_record}: [{e}]") from e
        logger.debug(f"Found Eureka Servers @ {zone_record}: {hosts}")
        return [host for host in hosts if host]

    async def start(self) -> None:
        interval = self.settings.cluster_refresh_interval
        if interval and self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop(interval))

    async def close(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _refresh_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_current_cluster()
            except ResolutionError as e:
                logger.warning(f"Eureka cluster refresh failed, keeping previous hosts: {e}")
            except Exception:
                logger.exception("Unexpected error refreshing eureka cluster, keeping previous hosts")
