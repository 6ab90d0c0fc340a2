"""
Type definitions for eureka_client
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .exceptions import ParseError


class InstanceStatus(str, Enum):
    """Instance status as reported by the registry"""
    UP = "UP"
    DOWN = "DOWN"
    STARTING = "STARTING"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "InstanceStatus":
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


class ActionType(str, Enum):
    """Delta action carried by an instance in an incremental fetch"""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class LeaseState(str, Enum):
    """Lifecycle state of the local lease"""
    UNREGISTERED = "unregistered"
    REGISTERING = "registering"
    REGISTERED = "registered"
    DEREGISTERING = "deregistering"
    STOPPED = "stopped"


def parse_port(value: Any) -> Optional[int]:
    """
    Normalize a port value.

    Accepts an int, a numeric string, or the wire wrapper
    ``{"$": 8080, "@enabled": "true"}``.
    """
    if isinstance(value, dict):
        value = value.get("$")
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Instance:
    """One registered process, as cached from the registry"""

    host_name: Optional[str]
    ip_address: Optional[str]
    port: Optional[int]
    status: InstanceStatus
    vip_address: Optional[str]
    app: Optional[str]
    action_type: Optional[ActionType] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    """The full wire record, including fields not modelled here"""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], app_name: Optional[str] = None) -> "Instance":
        action = data.get("actionType")
        try:
            action_type = ActionType(action) if action else None
        except ValueError:
            action_type = None
        return cls(
            host_name=data.get("hostName"),
            ip_address=data.get("ipAddr"),
            port=parse_port(data.get("port")),
            status=InstanceStatus.parse(data.get("status")),
            vip_address=data.get("vipAddress"),
            app=data.get("app") or app_name,
            action_type=action_type,
            raw=data,
        )

    @property
    def vip_addresses(self) -> List[str]:
        """Comma-split VIP address tokens"""
        if not isinstance(self.vip_address, str):
            return []
        return [vip.strip() for vip in self.vip_address.split(",") if vip.strip()]

    @property
    def app_key(self) -> Optional[str]:
        return self.app.upper() if self.app else None

    @property
    def is_up(self) -> bool:
        return self.status is InstanceStatus.UP

    def matches(self, other: "Instance") -> bool:
        """Identity is (hostName, port); every other field is ignored."""
        return self.host_name == other.host_name and self.port == other.port


@dataclass
class EurekaResponse:
    """Response from a registry call"""

    status: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except (TypeError, ValueError) as error:
            raise ParseError(f"Malformed registry response from {self.url}: {error}") from error


RequestOptions = Dict[str, Any]

# Receives the assembled request options and returns them (possibly modified).
# May be a plain function or a coroutine function.
RequestMiddleware = Callable[[RequestOptions], Union[RequestOptions, Awaitable[RequestOptions]]]


def default_middleware(options: RequestOptions) -> RequestOptions:
    return options
