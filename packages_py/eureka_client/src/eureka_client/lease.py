"""
Lease management: registration, heartbeats, registry fetches and shutdown.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from .config import EurekaClientConfig
from .delta import DeltaReconciler
from .events import EventBus, LifecycleEvent, LifecycleListener
from .exceptions import EurekaError, LifecycleError, ParseError, ProtocolError
from .metadata import AwsMetadataClient
from .pipeline import RequestPipeline, RetryPolicy
from .registry import RegistryCache, transform_registry
from .resolvers import ClusterResolver, DnsClusterResolver, create_cluster_resolver
from .types import Instance, LeaseState, RequestMiddleware

_module_logger = logging.getLogger(__name__)

HOST_PLACEHOLDER = "__HOST__"


class LeaseManager:
    """
    Registers this instance, keeps the lease alive and mirrors the registry.

    States move UNREGISTERED -> REGISTERING -> REGISTERED -> DEREGISTERING ->
    STOPPED. ``start()`` twice is a no-op, ``start()`` after ``stop()`` raises
    LifecycleError, and ``stop()`` twice is a no-op.

    Example:
        manager = LeaseManager(load_config(overrides={...}))
        manager.on(print, LifecycleEvent.REGISTERED)
        await manager.start()
        instances = manager.get_instances_by_vip_address("jq.test.com")
        await manager.stop()
    """

    def __init__(
        self,
        config: EurekaClientConfig,
        *,
        resolver: Optional[ClusterResolver] = None,
        pipeline: Optional[RequestPipeline] = None,
        middleware: Optional[RequestMiddleware] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        metadata_client: Optional[AwsMetadataClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.logger = logger or _module_logger
        self.logger.debug("initializing eureka client")

        settings = config.eureka
        self.instance: Dict[str, Any] = config.instance.to_descriptor()

        if pipeline is not None:
            self.resolver = pipeline.resolver
            self.pipeline = pipeline
        else:
            self.resolver = resolver or create_cluster_resolver(
                settings, instance_zone=config.instance.availability_zone
            )
            self.pipeline = RequestPipeline(
                self.resolver,
                policy=RetryPolicy(
                    max_retries=settings.max_retries,
                    base_delay_seconds=settings.request_retry_delay,
                ),
                middleware=middleware,
                http_client=http_client,
                timeout=settings.request_timeout,
            )
        self._owns_pipeline = pipeline is None

        if metadata_client is None and self.amazon_data_center:
            metadata_client = AwsMetadataClient(ecs=settings.ecs_metadata)
        self.metadata_client = metadata_client

        self.cache = RegistryCache()
        self.reconciler = DeltaReconciler(settings.filter_up_instances)
        self.events = EventBus()
        self.has_full_registry = False

        self._state = LeaseState.UNREGISTERED
        self._started = False
        self._stop_event = asyncio.Event()
        self._timers: List[asyncio.Task] = []

    @property
    def state(self) -> LeaseState:
        return self._state

    @property
    def instance_id(self) -> Optional[str]:
        """instanceId if set, the AWS instance-id in Amazon data centers, else hostName."""
        if self.instance.get("instanceId"):
            return self.instance["instanceId"]
        if self.amazon_data_center:
            metadata = self.instance["dataCenterInfo"].get("metadata") or {}
            return metadata.get("instance-id")
        return self.instance.get("hostName")

    @property
    def amazon_data_center(self) -> bool:
        name = (self.instance.get("dataCenterInfo") or {}).get("name")
        return bool(name) and str(name).lower() == "amazon"

    @property
    def app(self) -> str:
        return self.instance["app"]

    def on(self, listener: LifecycleListener, *events: LifecycleEvent) -> Callable[[], None]:
        """Subscribe to lifecycle events. Returns an unsubscribe function."""
        return self.events.on(listener, *events)

    def _stopping(self) -> bool:
        return self._stop_event.is_set()

    async def start(self) -> None:
        """
        Fetch cloud metadata (Amazon only), register, then start heartbeats and
        registry fetches. With ``wait_for_registry`` this returns only once the
        instance's own VIP address shows up in a fetched registry.
        """
        if self._state is LeaseState.STOPPED:
            raise LifecycleError("Cannot start a stopped eureka client")
        if self._started:
            self.logger.warning("Eureka client already started, ignoring start()")
            return
        self._started = True

        settings = self.config.eureka
        try:
            if self.metadata_client is not None and settings.fetch_metadata:
                await self.add_instance_metadata()
            await self.resolver.start()
            if settings.register_with_eureka:
                await self.register()
                self._schedule(settings.heartbeat_interval, self.renew, "eureka-heartbeat")
            if settings.fetch_registry:
                self._schedule(settings.registry_fetch_interval, self._fetch_tick, "eureka-registry-fetch")
                if settings.wait_for_registry:
                    await self._wait_for_registry()
                else:
                    await self.fetch_registry()
        except Exception as e:
            self.logger.warning(f"Error starting the Eureka Client: {e}")
            if not self._timers:
                # Nothing scheduled, so a later start() registers again
                self._started = False
            raise
        finally:
            self.events.emit(LifecycleEvent.STARTED)

    async def stop(self) -> None:
        """Cancel timers, then deregister if a lease is held."""
        if self._state is LeaseState.STOPPED:
            return
        self._stop_event.set()
        await self._drain_timers()
        await self.resolver.close()
        try:
            if self._state is LeaseState.REGISTERED and self.config.eureka.register_with_eureka:
                await self.deregister()
        finally:
            self._state = LeaseState.STOPPED
            if self._owns_pipeline:
                await self.pipeline.close()

    async def register(self) -> None:
        """POST the instance descriptor. Raises on anything but 204."""
        if self._state in (LeaseState.DEREGISTERING, LeaseState.STOPPED):
            raise LifecycleError(f"Cannot register while {self._state.value}")
        self._state = LeaseState.REGISTERING
        self.instance["status"] = "UP"

        slow_warning = asyncio.get_running_loop().call_later(
            self.config.eureka.registration_warning_delay,
            self.logger.warning,
            "It looks like it's taking a while to register with Eureka. This usually "
            "means there is an issue connecting to the host specified.",
        )
        try:
            response = await self.pipeline.eureka_request(
                self.app, "POST", json={"instance": self.instance}
            )
        except EurekaError as e:
            self._state = LeaseState.UNREGISTERED
            self.logger.warning(f"Error registering with eureka client: {e}")
            raise
        finally:
            slow_warning.cancel()

        if response.status != 204:
            self._state = LeaseState.UNREGISTERED
            raise ProtocolError(
                f"eureka registration FAILED: status: {response.status} body: {response.text}",
                status=response.status,
                body=response.text,
            )
        self._state = LeaseState.REGISTERED
        self.logger.info(f"registered with eureka: {self.app}/{self.instance_id}")
        self.events.emit(LifecycleEvent.REGISTERED)

    async def deregister(self) -> None:
        """DELETE the lease. Raises on anything but 200."""
        previous = self._state
        self._state = LeaseState.DEREGISTERING
        try:
            response = await self.pipeline.eureka_request(f"{self.app}/{self.instance_id}", "DELETE")
        except EurekaError as e:
            self._state = previous
            self.logger.warning(f"Error deregistering with eureka: {e}")
            raise

        if response.status != 200:
            self._state = previous
            raise ProtocolError(
                f"eureka deregistration FAILED: status: {response.status} body: {response.text}",
                status=response.status,
                body=response.text,
            )
        self._state = LeaseState.UNREGISTERED
        self.logger.info(f"de-registered with eureka: {self.app}/{self.instance_id}")
        self.events.emit(LifecycleEvent.DEREGISTERED)

    async def renew(self) -> None:
        """
        Heartbeat. A 404 means the server expired the lease and triggers
        re-registration; any other failure is logged and left to the next tick.
        """
        try:
            response = await self.pipeline.eureka_request(
                f"{self.app}/{self.instance_id}", "PUT", abort_retry=self._stopping
            )
        except EurekaError as e:
            self.logger.warning(f"eureka heartbeat FAILED, will retry. {e}")
            return

        if response.status == 200:
            self.logger.debug("eureka heartbeat success")
            self.events.emit(LifecycleEvent.HEARTBEAT)
        elif response.status == 404:
            if self._stopping():
                return
            self.logger.warning("eureka heartbeat FAILED, Re-registering app")
            self._state = LeaseState.UNREGISTERED
            try:
                await self.register()
            except EurekaError as e:
                self.logger.warning(f"eureka re-registration FAILED, will retry. {e}")
        else:
            self.logger.warning(
                f"eureka heartbeat FAILED, will retry. status: {response.status} body: {response.text}"
            )

    async def fetch_registry(self) -> None:
        """Full fetch until the first success, then deltas if enabled."""
        if self.config.eureka.should_use_delta and self.has_full_registry:
            await self.fetch_delta()
        else:
            await self.fetch_full_registry()

    async def fetch_full_registry(self) -> None:
        response = await self.pipeline.eureka_request(
            "", "GET", headers={"Accept": "application/json"}, abort_retry=self._stopping
        )
        if response.status != 200:
            raise ProtocolError(
                "Unable to retrieve full registry from Eureka server",
                status=response.status,
                body=response.text,
            )
        self.transform_registry(response.json())
        self.has_full_registry = True
        self.logger.debug("retrieved full registry successfully")
        self.events.emit(LifecycleEvent.REGISTRY_UPDATED)

    async def fetch_delta(self) -> None:
        response = await self.pipeline.eureka_request(
            "delta", "GET", headers={"Accept": "application/json"}, abort_retry=self._stopping
        )
        if response.status != 200:
            raise ProtocolError(
                "Unable to retrieve delta registry from Eureka server",
                status=response.status,
                body=response.text,
            )
        payload = response.json()
        if not isinstance(payload, dict) or not isinstance(payload.get("applications"), dict):
            raise ParseError("Delta response has no applications object")
        self.reconciler.handle_delta(self.cache, payload["applications"].get("application"))
        self.logger.debug("retrieved delta from eureka successfully")
        self.events.emit(LifecycleEvent.REGISTRY_UPDATED)

    def transform_registry(self, snapshot: Any) -> None:
        """Replace the cache wholesale with one built from ``snapshot``."""
        self.cache = transform_registry(snapshot, self.config.eureka.filter_up_instances)

    def get_instances_by_app_id(self, app_id: str) -> List[Instance]:
        if not app_id:
            raise ValueError("Unable to query instances with no appId")
        instances = self.cache.get_instances_by_app_id(app_id)
        if not instances:
            self.logger.warning(f"Unable to retrieve instances for appId: {app_id}")
        return instances

    def get_instances_by_vip_address(self, vip_address: str) -> List[Instance]:
        if not vip_address:
            raise ValueError("Unable to query instances with no vipAddress")
        instances = self.cache.get_instances_by_vip_address(vip_address)
        if not instances:
            self.logger.warning(f"Unable to retrieve instances for vipAddress: {vip_address}")
        return instances

    async def add_instance_metadata(self) -> None:
        """
        Fill hostName/ipAddr and dataCenterInfo.metadata from cloud metadata.

        Local or public addresses are used per ``use_local_metadata``;
        ``prefer_ip_address`` registers the IP as hostName. ``__HOST__`` in
        statusPageUrl, healthCheckUrl and homePageUrl is replaced with the host.
        """
        settings = self.config.eureka
        result = await self.metadata_client.fetch_metadata()

        data_center_info = self.instance.setdefault("dataCenterInfo", {})
        data_center_info["metadata"] = {**(data_center_info.get("metadata") or {}), **result}

        use_local = settings.use_local_metadata
        ip_address = result.get("local-ipv4" if use_local else "public-ipv4")
        host_name = result.get("local-hostname" if use_local else "public-hostname")
        if settings.prefer_ip_address:
            host_name = ip_address
        if host_name:
            self.instance["hostName"] = host_name
        if ip_address:
            self.instance["ipAddr"] = ip_address

        if host_name:
            for key in ("statusPageUrl", "healthCheckUrl", "homePageUrl"):
                if self.instance.get(key):
                    self.instance[key] = self.instance[key].replace(HOST_PLACEHOLDER, host_name)

        zone = result.get("availability-zone")
        if zone and isinstance(self.resolver, DnsClusterResolver):
            self.resolver.instance_zone = zone

    async def _fetch_tick(self) -> None:
        try:
            await self.fetch_registry()
        except EurekaError as e:
            self.logger.warning(f"Error fetching registries: {e}")

    async def _wait_for_registry(self) -> None:
        vip_address = self.instance.get("vipAddress")
        while not self._stopping():
            try:
                await self.fetch_registry()
            except EurekaError as e:
                self.logger.warning(f"Error fetching registry while waiting for {vip_address}: {e}")
            if self.cache.get_instances_by_vip_address(vip_address):
                return
            await asyncio.sleep(self.config.eureka.registry_wait_interval)

    def _schedule(self, interval: float, tick: Callable[[], Awaitable[None]], name: str) -> None:
        self._timers.append(asyncio.create_task(self._run_periodic(interval, tick, name), name=name))

    async def _run_periodic(self, interval: float, tick: Callable[[], Awaitable[None]], name: str) -> None:
        # A tick in flight finishes; the loop ends at the next wait.
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                try:
                    await tick()
                except Exception:
                    self.logger.exception(f"Timer {name} tick failed, will run again next interval")

    async def _drain_timers(self) -> None:
        timers, self._timers = self._timers, []
        results = await asyncio.gather(*timers, return_exceptions=True)
        for timer, result in zip(timers, results):
            if isinstance(result, BaseException):
                self.logger.error(f"Timer {timer.get_name()} ended with error: {result!r}")
