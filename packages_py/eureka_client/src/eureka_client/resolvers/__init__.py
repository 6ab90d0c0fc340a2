"""
Registry server resolvers: static configuration and DNS TXT lookups.
"""
from typing import Optional

from ..config import EurekaSettings
from .base import ClusterResolver, build_server_url, rotate
from .dns_resolver import DnsClusterResolver, TxtLookup, resolve_txt
from .static_resolver import StaticClusterResolver


def create_cluster_resolver(
    settings: EurekaSettings,
    instance_zone: Optional[str] = None,
) -> ClusterResolver:
    """DNS resolution when ``use_dns`` is set, static configuration otherwise."""
    if settings.use_dns:
        return DnsClusterResolver(settings, instance_zone=instance_zone)
    return StaticClusterResolver(settings, instance_zone=instance_zone)


__all__ = [
    "ClusterResolver",
    "DnsClusterResolver",
    "StaticClusterResolver",
    "TxtLookup",
    "build_server_url",
    "create_cluster_resolver",
    "resolve_txt",
    "rotate",
]
