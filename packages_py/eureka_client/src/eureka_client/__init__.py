"""
Client-side service discovery for Eureka registries: registration, lease
renewal and a locally queryable registry cache.
"""
from .config import (
    ConfigBuilder,
    EurekaClientConfig,
    EurekaSettings,
    InstanceConfig,
    deep_merge,
    load_config,
)
from .delta import DeltaReconciler
from .events import EventBus, LifecycleEvent, LifecycleListener
from .exceptions import (
    ConfigurationError,
    EurekaError,
    LifecycleError,
    MiddlewareError,
    ParseError,
    ProtocolError,
    ResolutionError,
    TransportError,
)
from .factory import create_eureka_client
from .lease import LeaseManager
from .metadata import AwsMetadataClient
from .pipeline import (
    RequestEvent,
    RequestPipeline,
    RetryPolicy,
    calculate_backoff_delay,
    is_retryable_status,
)
from .registry import RegistryCache, as_list, normalize_applications, transform_registry
from .resolvers import (
    ClusterResolver,
    DnsClusterResolver,
    StaticClusterResolver,
    create_cluster_resolver,
)
from .types import (
    ActionType,
    EurekaResponse,
    Instance,
    InstanceStatus,
    LeaseState,
    RequestMiddleware,
    RequestOptions,
)


__all__ = [
    # Config
    "ConfigBuilder",
    "EurekaClientConfig",
    "EurekaSettings",
    "InstanceConfig",
    "deep_merge",
    "load_config",
    # Errors
    "ConfigurationError",
    "EurekaError",
    "LifecycleError",
    "MiddlewareError",
    "ParseError",
    "ProtocolError",
    "ResolutionError",
    "TransportError",
    # Types
    "ActionType",
    "EurekaResponse",
    "Instance",
    "InstanceStatus",
    "LeaseState",
    "RequestMiddleware",
    "RequestOptions",
    # Registry
    "DeltaReconciler",
    "RegistryCache",
    "as_list",
    "normalize_applications",
    "transform_registry",
    # Resolvers
    "ClusterResolver",
    "DnsClusterResolver",
    "StaticClusterResolver",
    "create_cluster_resolver",
    # Pipeline
    "RequestEvent",
    "RequestPipeline",
    "RetryPolicy",
    "calculate_backoff_delay",
    "is_retryable_status",
    # Lifecycle
    "AwsMetadataClient",
    "EventBus",
    "LeaseManager",
    "LifecycleEvent",
    "LifecycleListener",
    "create_eureka_client",
]


__version__ = "1.0.0"
