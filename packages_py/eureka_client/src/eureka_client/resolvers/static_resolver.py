"""
Registry server resolution from static configuration
"""
import logging
from typing import List, Optional

from ..config import EurekaSettings
from ..exceptions import ConfigurationError
from .base import ClusterResolver, build_server_url, rotate

logger = logging.getLogger(__name__)


class StaticClusterResolver(ClusterResolver):
    """
    Resolves registry servers from ``serviceUrls`` (zone -> URL list) or a
    single ``host``/``port``.

    Zones are visited in the order configured for the region (or the single
    ``default`` zone). With zone affinity, the URLs of the instance's own zone
    go to the front of the ring.
    """

    def __init__(self, settings: EurekaSettings, instance_zone: Optional[str] = None):
        self.settings = settings
        self.instance_zone = instance_zone
        self.service_urls = self.build_service_urls()

    async def resolve_eureka_url(self, retry_attempt: int = 0) -> str:
        if retry_attempt > 0:
            rotate(self.service_urls)
        return self.service_urls[0]

    def get_availability_zones(self) -> List[str]:
        region = self.settings.ec2_region
        zones = self.settings.availability_zones or {}
        if region and zones.get(region):
            return list(zones[region])
        return ["default"]

    def build_service_urls(self) -> List[str]:
        urls: List[str] = []
        service_urls = self.settings.service_urls or {}
        for zone in self.get_availability_zones():
            zone_urls = service_urls.get(zone)
            if not zone_urls:
                continue
            if self.settings.prefer_same_zone and self.instance_zone and self.instance_zone == zone:
                urls[:0] = zone_urls
            else:
                urls.extend(zone_urls)
        if not urls:
            if not self.settings.host:
                raise ConfigurationError(
                    "No serviceUrls matched the configured zones and eureka.host is not set"
                )
            urls.append(build_server_url(self.settings, self.settings.host))
        logger.debug(f"Static registry servers, in order: {urls}")
        return urls
