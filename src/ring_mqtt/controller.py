"""Publish/subscribe lifecycle controller.

The controller owns the location, device and command-route registries and
drives the bridge lifecycle:

- first MQTT connect: discover every location once, then publish
- MQTT reconnect: reset the republish counter and republish known devices
- hub locations publish only once their websocket is connected; after a
  disconnect outlasting the grace period their non-camera devices go offline
- one republish loop re-sends discovery and state every
  ``republish_interval`` seconds while the counter lasts
- Home Assistant ``online`` status restarts the republish cycle
- a token watchdog repairs a blanked refresh token
- the retained ``<ring_topic>/bridge/status`` topic reports bridge availability
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.config import BridgeConfig
from ring_mqtt.devices import AVAILABLE, BaseWrapper, Camera, DeviceContext, DeviceMapper, MappingVerdict
from ring_mqtt.media import MediaMTXSupervisor, StreamSource
from ring_mqtt.mqtt import MQTTClient, MQTTConnectionState
from ring_mqtt.ring import RingClientError, RingLocation, RingLocationModeDevice
from ring_mqtt.session import RingSession
from ring_mqtt.utils import Unsubscribe, spawn


@dataclass
class LocationState:
    """Controller bookkeeping for one Ring location.

    Attributes:
        location: The vendor location.
        subscribed: Websocket connection changes are being watched.
        connected: The hub websocket is connected.
    """

    location: RingLocation
    subscribed: bool = False
    connected: bool = False
    unsubscribers: list[Unsubscribe] = field(default_factory=list)

    @property
    def location_id(self) -> str:
        return self.location.location_id

    @property
    def ready(self) -> bool:
        """Devices of this location may be published."""
        return not self.location.has_hubs or self.connected


def build_device_context(config: BridgeConfig, publisher: Any, register_command: Any = None) -> DeviceContext:
    """Build the shared wrapper context from the bridge configuration."""
    credentials = ''
    if config.livestream_user and config.livestream_pass:
        credentials = f'{config.livestream_user}:{config.livestream_pass.get_secret_value()}@'
    return DeviceContext(
        publisher=publisher,
        register_command=register_command,
        ring_topic=config.ring_topic,
        discovery_prefix=config.discovery_prefix,
        settle_delay=config.settle_delay,
        enable_panic=config.enable_panic,
        disarm_code=config.disarm_code.get_secret_value() if config.disarm_code else None,
        stream_base_url=f'rtsp://{credentials}localhost:{config.rtsp_port}',
    )


class BridgeController:
    """Connects Ring locations and devices to MQTT.

    Attributes:
        locations: Location state by location id.
        devices: Wrappers by device id, created at most once each.
        command_routes: Command topic to (wrapper, topic suffix).
        republish_count: Remaining republish cycles.
        discovery_count: Number of discovery passes run.
    """

    def __init__(
        self,
        config: BridgeConfig,
        session: RingSession,
        mqtt: MQTTClient,
        media: MediaMTXSupervisor | None = None,
    ) -> None:
        self._config = config
        self._session = session
        self._mqtt = mqtt
        self._media = media
        self.ctx = build_device_context(config, mqtt, self.register_command)
        self.mapper = DeviceMapper(self.ctx)

        self.locations: dict[str, LocationState] = {}
        self.devices: dict[str, BaseWrapper] = {}
        self.command_routes: dict[str, tuple[BaseWrapper, str]] = {}

        self.mqtt_connected = False
        self.republish_count = config.republish_count
        self.discovery_count = 0
        self._discovered = False
        self._connection_lock = asyncio.Lock()
        self._republish_task: asyncio.Task[None] | None = None
        self._watchdog_task: asyncio.Task[None] | None = None
        self._unsubscribers: list[Unsubscribe] = []
        self._stopping = False

    # ==========================================================================
    # Startup
    # ==========================================================================

    async def start(self) -> None:
        """Hook MQTT events and start the token watchdog."""
        self._mqtt.set_message_handler(self.on_message)
        self._unsubscribers.append(self._mqtt.subscribe_connection_state(self.on_mqtt_state))
        await self._mqtt.subscribe(self._config.hass_topic)
        self._watchdog_task = asyncio.create_task(self._token_watchdog())

    def on_mqtt_state(self, state: MQTTConnectionState) -> None:
        """React to MQTT connection changes; repeated states are ignored."""
        connected = state == MQTTConnectionState.CONNECTED
        if connected == self.mqtt_connected:
            return
        self.mqtt_connected = connected
        if connected and not self._stopping:
            spawn(self.handle_mqtt_connection())

    async def handle_mqtt_connection(self) -> None:
        """Discover on the first connect, republish on every later one."""
        async with self._connection_lock:
            await self._mqtt.publish(self._config.bridge_status_topic, 'online', retain=True)
            if self._discovered:
                logger.info('MQTT connection re-established, republishing Ring locations...')
                self.republish_count = self._config.republish_count
            else:
                if self._session.client is None:
                    logger.warning('MQTT connected but the Ring API is not available, skipping discovery')
                    return
                logger.info('MQTT connection established, processing Ring locations...')
                await self.discover()
            await self.publish_locations()

    # ==========================================================================
    # Discovery
    # ==========================================================================

    async def discover(self) -> None:
        """Discover every location and map its devices (runs once)."""
        client = self._session.client
        if client is None or self._discovered:
            return
        self._discovered = True
        self.discovery_count += 1

        await asyncio.sleep(self._config.settle_delay)
        try:
            locations = await client.get_locations()
        except RingClientError as e:
            logger.error(f'Failed to retrieve Ring locations: {e}')
            self._discovered = False
            return
        logger.info('This account has access to the following locations:')
        for location in locations:
            logger.info(f'    {location.name} ({location.location_id})')
        logger.info('Starting device discovery...')

        for location in locations:
            try:
                await self.process_location(location)
            except Exception as e:
                logger.error(f'Failed to process location {location.name}: {e}')

        cameras = [w for w in self.devices.values() if isinstance(w, Camera)]
        if cameras and self._media is not None and not self._media.started:
            await self._media.start([StreamSource(c.device_id, c.device_topic) for c in cameras])

    async def process_location(self, location: RingLocation) -> None:
        """Register a location and wrap its new devices."""
        if location.location_id not in self.locations:
            self.locations[location.location_id] = LocationState(location)

        hub_devices: list[Any] = list(await location.get_devices())
        rest_devices: list[Any] = []
        events: list[dict[str, Any]] = []
        if self._config.enable_cameras:
            rest_devices = [*location.cameras, *location.chimes, *location.intercoms]
            client = self._session.client
            if location.cameras and client is not None:
                events = await client.get_camera_events(location.cameras)

        all_devices = hub_devices + rest_devices
        if self._config.enable_modes and await location.supports_location_mode_switching():
            all_devices.append(RingLocationModeDevice(location))

        unsupported: list[str] = []
        for device in all_devices:
            existing = self.devices.get(device.device_id)
            if existing is not None:
                logger.debug(f'  Existing device: {existing.name} ({existing.device_id})')
                continue
            result = self.mapper.map(device, hub_devices, events)
            if result is MappingVerdict.UNSUPPORTED:
                unsupported.append(device.device_type)
            elif isinstance(result, BaseWrapper):
                self.devices[result.device_id] = result
                logger.info(f'  New device: {result.name} ({result.device_id}) [{result.kind.value}]')

        for device_type in unsupported:
            logger.warning(f'  Unsupported device: {device_type}')

    def location_devices(self, location_id: str) -> list[BaseWrapper]:
        return [w for w in self.devices.values() if w.location_id == location_id]

    # ==========================================================================
    # Publishing
    # ==========================================================================

    async def publish_locations(self) -> None:
        """Watch hub websockets and make sure the republish loop is running."""
        for state in self.locations.values():
            if not self.location_devices(state.location_id):
                continue
            if state.location.has_hubs and not state.subscribed:
                self.subscribe_location_websocket(state)
        self._ensure_republish_loop()

    def _ensure_republish_loop(self) -> None:
        if self._republish_task is not None and not self._republish_task.done():
            return
        self._republish_task = asyncio.create_task(self._republish_loop())

    async def _republish_loop(self) -> None:
        while self.republish_count > 0 and self.mqtt_connected and not self._stopping:
            for state in list(self.locations.values()):
                if state.ready:
                    await self.publish_location(state)
            await asyncio.sleep(self._config.republish_interval)
            self.republish_count -= 1

    async def publish_location(self, state: LocationState) -> None:
        """Publish every device of a location concurrently."""
        wrappers = self.location_devices(state.location_id)
        results = await asyncio.gather(*(self._publish_device(w) for w in wrappers), return_exceptions=True)
        for wrapper, result in zip(wrappers, results):
            if isinstance(result, Exception):
                logger.error(f'Failed to publish {wrapper.name}: {result}')

    async def _publish_device(self, wrapper: BaseWrapper) -> None:
        if wrapper.core.initialized:
            await wrapper.publish()
        else:
            await wrapper.initialize()

    # ==========================================================================
    # Hub websockets
    # ==========================================================================

    def subscribe_location_websocket(self, state: LocationState) -> None:
        state.subscribed = True

        def on_connected(connected: bool) -> Any:
            return self.on_location_connected(state, connected)

        state.unsubscribers.append(state.location.subscribe_connected(on_connected))
        if state.location.is_connected and not state.connected:
            # the republish loop started by publish_locations does the first publish
            state.connected = True
            logger.info(f'Websocket for location id {state.location_id} is connected')

    async def on_location_connected(self, state: LocationState, connected: bool) -> None:
        """Publish on connect; take devices offline after a lasting disconnect."""
        if connected:
            if state.connected:
                return
            state.connected = True
            logger.info(f'Websocket for location id {state.location_id} is connected')
            await self.publish_location(state)
            self._ensure_republish_loop()
            return

        await asyncio.sleep(self._config.websocket_grace_period)
        if state.location.is_connected:
            return
        state.connected = False
        logger.warning(f'Websocket for location id {state.location_id} is disconnected')
        await self.handle_location_disconnect(state)

    async def handle_location_disconnect(self, state: LocationState) -> None:
        for wrapper in self.location_devices(state.location_id):
            if not isinstance(wrapper, Camera):
                await wrapper.go_offline()

    # ==========================================================================
    # Inbound messages
    # ==========================================================================

    async def register_command(self, topic: str, wrapper: BaseWrapper) -> None:
        """Route ``topic`` to ``wrapper`` and subscribe to it."""
        suffix = topic.rsplit('/', 1)[-1]
        self.command_routes[topic] = (wrapper, suffix)
        await self._mqtt.subscribe(topic)

    async def on_message(self, topic: str, payload: str) -> None:
        """Dispatch an inbound MQTT message."""
        if topic == self._config.hass_topic:
            logger.debug(f'Home Assistant state topic {topic} received message: {payload}')
            if payload == 'online':
                await self.handle_home_assistant_restart()
            return

        route = self.command_routes.get(topic)
        if route is None:
            logger.debug(f'Received message for unknown topic {topic}')
            return
        wrapper, suffix = route
        logger.debug(f'{wrapper.name}: command {suffix} = {payload}')
        await wrapper.process_command(suffix, payload)

    async def handle_home_assistant_restart(self) -> None:
        if self.republish_count > 0:
            logger.info('Home Assistant restart detected during existing republish cycle')
            self.republish_count = self._config.republish_count
            return
        logger.info(
            f'Home Assistant restart detected, resending device config/state in {self._config.ha_restart_delay:g} seconds'
        )
        await asyncio.sleep(self._config.ha_restart_delay)
        self.republish_count = self._config.republish_count
        await self.publish_locations()

    # ==========================================================================
    # Token watchdog
    # ==========================================================================

    async def _token_watchdog(self) -> None:
        while True:
            await asyncio.sleep(self._config.token_check_interval)
            try:
                self._session.check_refresh_token()
            except Exception as e:
                logger.error(f'Refresh token check failed: {e}')

    # ==========================================================================
    # Shutdown
    # ==========================================================================

    async def shutdown(self) -> None:
        """Stop mediamtx, take online devices offline and stop timers."""
        self._stopping = True
        for task in (self._watchdog_task, self._republish_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._watchdog_task = None
        self._republish_task = None

        if self._media is not None:
            await self._media.stop()

        if self.devices:
            logger.info('Setting all devices offline...')
        for wrapper in self.devices.values():
            try:
                await wrapper.shutdown(offline=wrapper.availability_state == AVAILABLE)
            except Exception as e:
                logger.error(f'Failed to shut down {wrapper.name}: {e}')

        if self.mqtt_connected:
            await self._mqtt.publish(self._config.bridge_status_topic, 'offline', retain=True)

        for state in self.locations.values():
            for unsubscribe in state.unsubscribers:
                unsubscribe()
            state.unsubscribers.clear()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
