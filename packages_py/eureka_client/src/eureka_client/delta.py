"""
Incremental registry reconciliation
"""
import logging
from typing import Any, Optional

from .registry import RegistryCache, find_index, normalize_applications
from .types import ActionType, Instance

logger = logging.getLogger(__name__)


class DeltaReconciler:
    """
    Applies ADDED / MODIFIED / DELETED deltas to a RegistryCache in place.

    The UP filter gates ADDED only. A MODIFIED delta replaces a matching
    entry whatever its new status; it falls back to ADDED semantics (and so
    to the filter) only where no match exists. A MODIFIED delta that changes
    the VIP address leaves the old VIP slot untouched.
    """

    def __init__(self, filter_up_instances: bool = True):
        self.filter_up_instances = filter_up_instances

    def validate_instance(self, instance: Instance) -> bool:
        """True if filtering is disabled or the instance is UP."""
        return not self.filter_up_instances or instance.is_up

    def handle_delta(self, cache: RegistryCache, delta_batch: Any) -> None:
        """
        Apply a delta batch (``applications.application`` of a delta fetch).

        Args:
            cache: Cache to mutate
            delta_batch: One app object or a list of them
        """
        for app in normalize_applications(delta_batch):
            for data in app["instance"]:
                instance = Instance.from_dict(data, app_name=app.get("name"))
                if instance.action_type is ActionType.ADDED:
                    self.add_instance(cache, instance)
                elif instance.action_type is ActionType.MODIFIED:
                    self.modify_instance(cache, instance)
                elif instance.action_type is ActionType.DELETED:
                    self.delete_instance(cache, instance)
                else:
                    logger.warning(
                        f"Unknown delta action {data.get('actionType')!r} for "
                        f"{instance.host_name}:{instance.port}, skipping"
                    )

    def add_instance(self, cache: RegistryCache, instance: Instance) -> None:
        if not self.validate_instance(instance):
            return
        cache.insert(instance)

    def modify_instance(self, cache: RegistryCache, instance: Instance) -> None:
        for vip_address in instance.vip_addresses:
            if not self._replace(cache.vip.get(vip_address), instance):
                self.add_instance(cache, instance)
        if not self._replace(cache.app.get(instance.app_key or ""), instance):
            self.add_instance(cache, instance)

    def delete_instance(self, cache: RegistryCache, instance: Instance) -> None:
        for vip_address in instance.vip_addresses:
            self._remove(cache.vip.get(vip_address), instance)
        self._remove(cache.app.get(instance.app_key or ""), instance)

    @staticmethod
    def _replace(slot: Optional[list], instance: Instance) -> bool:
        index = find_index(slot, instance)
        if index < 0:
            return False
        slot[index] = instance
        return True

    @staticmethod
    def _remove(slot: Optional[list], instance: Instance) -> None:
        index = find_index(slot, instance)
        if index >= 0:
            del slot[index]
