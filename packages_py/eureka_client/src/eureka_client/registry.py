"""
Local registry cache.

Two indices over cached instances: by upper-cased application name and by
each comma-split VIP address. A full snapshot always builds a new cache;
incremental changes are applied in place by ``DeltaReconciler``.
"""
import logging
from typing import Any, Dict, List, Optional

from .exceptions import ParseError
from .types import Instance

logger = logging.getLogger(__name__)


def as_list(value: Any) -> List[Any]:
    """The wire format encodes a single element as a bare object."""
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def normalize_applications(application: Any) -> List[Dict[str, Any]]:
    """
    Normalize ``applications.application`` to a list of apps, each with an
    ``instance`` list. The input is not mutated.
    """
    apps = []
    for app in as_list(application):
        if not isinstance(app, dict):
            raise ParseError(f"Malformed application entry: {app!r}")
        instances = as_list(app.get("instance"))
        for instance in instances:
            if not isinstance(instance, dict):
                raise ParseError(f"Malformed instance entry in app {app.get('name')}: {instance!r}")
        apps.append({**app, "instance": instances})
    return apps


def find_index(instances: Optional[List[Instance]], candidate: Instance) -> int:
    """Position of the entry matching ``candidate`` by (hostName, port), or -1."""
    for index, instance in enumerate(instances or []):
        if instance.matches(candidate):
            return index
    return -1


class RegistryCache:
    """Instances indexed by app name and VIP address."""

    def __init__(self) -> None:
        self.app: Dict[str, List[Instance]] = {}
        self.vip: Dict[str, List[Instance]] = {}

    def insert(self, instance: Instance, app_key: Optional[str] = None) -> None:
        """Add to every VIP slot and the app slot unless already present there."""
        for vip_address in instance.vip_addresses:
            slot = self.vip.setdefault(vip_address, [])
            if find_index(slot, instance) < 0:
                slot.append(instance)
        key = app_key or instance.app_key
        if key:
            slot = self.app.setdefault(key, [])
            if find_index(slot, instance) < 0:
                slot.append(instance)

    def get_instances_by_app_id(self, app_id: str) -> List[Instance]:
        return list(self.app.get(app_id.upper(), []))

    def get_instances_by_vip_address(self, vip_address: str) -> List[Instance]:
        return list(self.vip.get(vip_address, []))

    def __len__(self) -> int:
        return sum(len(instances) for instances in self.app.values())

    def __repr__(self) -> str:
        return f"RegistryCache(apps={sorted(self.app)}, vips={sorted(self.vip)})"


def transform_registry(snapshot: Any, filter_up_instances: bool = True) -> RegistryCache:
    """
    Build a new cache from a full registry snapshot.

    Args:
        snapshot: Decoded ``{"applications": {"application": ...}}`` payload
        filter_up_instances: Keep only UP instances when true

    Returns:
        A fresh RegistryCache; the caller swaps it in as a whole
    """
    if not isinstance(snapshot, dict) or not isinstance(snapshot.get("applications"), dict):
        raise ParseError("Registry snapshot has no applications object")

    cache = RegistryCache()
    for app in normalize_applications(snapshot["applications"].get("application")):
        name = app.get("name")
        if not name:
            raise ParseError("Registry application entry has no name")
        app_key = str(name).upper()
        cache.app.setdefault(app_key, [])
        for data in app["instance"]:
            instance = Instance.from_dict(data, app_name=name)
            if filter_up_instances and not instance.is_up:
                continue
            cache.insert(instance, app_key=app_key)
    logger.debug(f"Transformed registry snapshot: {len(cache.app)} apps, {len(cache.vip)} vips")
    return cache
