"""Shared device wrapper machinery.

Every Ring device published to MQTT is wrapped by a :class:`BaseWrapper`
subclass (one per :class:`DeviceKind`). A wrapper declares its
:class:`Entity` objects and maps vendor data onto entity states; everything
else (topic layout, Home Assistant discovery, availability, the attribute
document and the publish-on-change cache) lives in a composed
:class:`DeviceCore`.

Topic layout for a device ``<id>`` at location ``<loc>``::

    <ring_topic>/<loc>/<alarm|camera|lighting>/<component>/<id>/<key>_state
    <ring_topic>/<loc>/<alarm|camera|lighting>/<component>/<id>/<key>_command
    <ring_topic>/<loc>/<alarm|camera|lighting>/<component>/<id>/attributes
    <ring_topic>/<loc>/<alarm|camera|lighting>/<component>/<id>/status
    <discovery_prefix>/<component>/<loc>/<id>[_<key>]/config
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Protocol

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.mqtt import DeviceDiscoveryInfo
from ring_mqtt.ring import RingClientError, RingRestDevice
from ring_mqtt.utils import Unsubscribe, spawn


AVAILABLE = 'online'
NOT_AVAILABLE = 'offline'


class DeviceKind(str, Enum):
    """Supported device wrapper variants."""

    CAMERA = 'camera'
    CHIME = 'chime'
    INTERCOM = 'intercom'
    SECURITY_PANEL = 'security_panel'
    BINARY_SENSOR = 'binary_sensor'
    FLOOD_FREEZE_SENSOR = 'flood_freeze_sensor'
    SMOKE_ALARM = 'smoke_alarm'
    CO_ALARM = 'co_alarm'
    SMOKE_CO_LISTENER = 'smoke_co_listener'
    TEMPERATURE_SENSOR = 'temperature_sensor'
    THERMOSTAT = 'thermostat'
    BEAM = 'beam'
    BEAM_OUTDOOR_PLUG = 'beam_outdoor_plug'
    SWITCH = 'switch'
    MULTI_LEVEL_SWITCH = 'multi_level_switch'
    FAN = 'fan'
    VALVE = 'valve'
    BASE_STATION = 'base_station'
    RANGE_EXTENDER = 'range_extender'
    BRIDGE = 'bridge'
    KEYPAD = 'keypad'
    PANIC_BUTTON = 'panic_button'
    SIREN = 'siren'
    LOCK = 'lock'
    MODES_PANEL = 'modes_panel'


class MappingVerdict(str, Enum):
    """Mapper results other than a wrapper."""

    IGNORE = 'ignore'
    UNSUPPORTED = 'not-supported'


class InvalidCommand(ValueError):
    """Raised by command handlers for payloads rejected before any vendor call."""

    pass


class Publisher(Protocol):
    """The MQTT operations a wrapper needs."""

    async def publish(
        self,
        topic: str,
        payload: str | dict[str, Any],
        retain: bool = False,
        qos: int | None = None,
    ) -> bool: ...


CommandRegistrar = Callable[[str, 'BaseWrapper'], Awaitable[None]]


@dataclass
class DeviceContext:
    """Settings and collaborators shared by every wrapper.

    Attributes:
        publisher: MQTT publisher.
        register_command: Routes a command topic to a wrapper.
        ring_topic: Root of the state/command topics.
        discovery_prefix: Home Assistant discovery prefix.
        settle_delay: Seconds between discovery and the first state publish.
        enable_panic: Expose panic switches on the security panel.
        disarm_code: Code required for disarming, if any.
        stream_base_url: Base URL of the RTSP server for camera streams.
    """

    publisher: Publisher
    register_command: CommandRegistrar | None = None
    ring_topic: str = 'ring'
    discovery_prefix: str = 'homeassistant'
    settle_delay: float = 2.0
    enable_panic: bool = False
    disarm_code: str | None = None
    stream_base_url: str = 'rtsp://localhost:8554'


@dataclass
class DeviceInfo:
    """A vendor device plus the relations the mapper resolved for it.

    Attributes:
        device: The vendor device.
        child_devices: Devices whose parent is this device.
        parent_device: This device's parent, when it has one.
        security_panel: The location's security panel (alarm sensors).
        bypass_capable_devices: Sensors the panel can bypass.
        events: Recent event history (cameras).
    """

    device: Any
    child_devices: list[Any] = field(default_factory=list)
    parent_device: Any | None = None
    security_panel: Any | None = None
    bypass_capable_devices: list[Any] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class Entity:
    """One MQTT-addressable feature of a device.

    Attributes:
        key: Entity key, used in topic names and unique ids.
        component: Home Assistant component (binary_sensor, lock, ...).
        name: Entity name suffix; empty for the device's main entity.
        device_class: Optional Home Assistant device class.
        has_state: Whether the entity has a ``<key>_state`` topic.
        has_command: Whether the entity has a ``<key>_command`` topic.
        extra: Component-specific discovery keys.
        command_suffixes: Additional command sub-topics (``brightness``...).
    """

    key: str
    component: str
    name: str = ''
    device_class: str | None = None
    has_state: bool = True
    has_command: bool = False
    extra: dict[str, Any] = field(default_factory=dict)
    command_suffixes: tuple[str, ...] = ()


def on_off(value: bool) -> str:
    return 'ON' if value else 'OFF'


def encode_payload(value: Any) -> str:
    """Render a state value as an MQTT payload string."""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return 'ON' if value else 'OFF'
    return str(value)


class PulseTimer:
    """A single cancellable delayed callback.

    ``start`` always cancels the pending callback before scheduling a new one,
    so at most one callback is pending at any time.
    """

    def __init__(self) -> None:
        self._handle: asyncio.TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self, delay: float, callback: Callable[[], Any]) -> None:
        """Run ``callback`` after ``delay`` seconds, replacing any pending one."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback: Callable[[], Any]) -> None:
        self._handle = None
        try:
            result = callback()
            if asyncio.iscoroutine(result):
                spawn(result)
        except Exception as e:
            logger.error(f'Pulse timer callback failed: {e}')


class DeviceCore:
    """Topics, discovery, availability and state cache for one wrapper."""

    def __init__(self, wrapper: BaseWrapper) -> None:
        self.wrapper = wrapper
        self.ctx = wrapper.ctx
        self.availability: str | None = None
        self.initialized = False
        self.shutdown = False
        self._cache: dict[str, str] = {}
        self._unsubscribers: list[Unsubscribe] = []
        self._init_lock = asyncio.Lock()

    # Topics

    @property
    def root_topic(self) -> str:
        return f'{self.ctx.ring_topic}/{self.wrapper.location_id}/{self.wrapper.category}'

    def base_topic(self, component: str) -> str:
        return f'{self.root_topic}/{component}/{self.wrapper.device_id}'

    def topic(self, entity: Entity, suffix: str) -> str:
        return f'{self.base_topic(entity.component)}/{entity.key}_{suffix}'

    @property
    def primary_entity(self) -> Entity:
        return next(iter(self.wrapper.entities.values()))

    @property
    def availability_topic(self) -> str:
        return f'{self.base_topic(self.primary_entity.component)}/status'

    @property
    def attributes_topic(self) -> str:
        return f'{self.base_topic(self.primary_entity.component)}/attributes'

    def config_topic(self, entity: Entity) -> str:
        object_id = self.wrapper.device_id
        if entity is not self.primary_entity:
            object_id = f'{object_id}_{entity.key}'
        return f'{self.ctx.discovery_prefix}/{entity.component}/{self.wrapper.location_id}/{object_id}/config'

    def command_topics(self) -> list[str]:
        topics: list[str] = []
        for entity in self.wrapper.entities.values():
            if entity.has_command:
                topics.append(self.topic(entity, 'command'))
            topics.extend(self.topic(entity, f'{suffix}_command') for suffix in entity.command_suffixes)
        return topics

    # Discovery

    def device_discovery_info(self) -> DeviceDiscoveryInfo:
        parent = self.wrapper.info.parent_device
        return DeviceDiscoveryInfo(
            identifiers=[self.wrapper.device_id],
            name=self.wrapper.name,
            model=self.wrapper.model,
            sw_version=self.wrapper.firmware,
            via_device=str(parent.id) if parent is not None else None,
        )

    def discovery_payload(self, entity: Entity) -> dict[str, Any]:
        """Build the Home Assistant discovery payload for an entity."""
        name = f'{self.wrapper.name} {entity.name}' if entity.name else self.wrapper.name
        unique_id = self.wrapper.device_id
        if entity is not self.primary_entity:
            unique_id = f'{unique_id}_{entity.key}'
        payload: dict[str, Any] = {
            'name': name,
            'unique_id': unique_id,
            'availability_topic': self.availability_topic,
            'payload_available': AVAILABLE,
            'payload_not_available': NOT_AVAILABLE,
            'json_attributes_topic': self.attributes_topic,
            'device': self.device_discovery_info().to_dict(),
        }
        if entity.has_state:
            payload['state_topic'] = self.topic(entity, 'state')
        if entity.device_class:
            payload['device_class'] = entity.device_class
        if entity.has_command:
            payload['command_topic'] = self.topic(entity, 'command')
        payload.update(entity.extra)
        return payload

    # Lifecycle

    async def initialize(self) -> None:
        """Register command topics, subscribe to vendor data, then publish."""
        if not self.wrapper.entities:
            logger.warning(f'{self.wrapper.name}: no entities to publish')
            return
        if self._init_lock.locked():
            # already initializing, that call publishes
            return
        async with self._init_lock:
            if not self.initialized:
                if self.ctx.register_command is not None:
                    for topic in self.command_topics():
                        await self.ctx.register_command(topic, self.wrapper)
                self._unsubscribers.extend(self.wrapper.subscribe_vendor())
                self.initialized = True
            await self.publish()

    async def publish(self) -> None:
        """Publish discovery, availability and the full state."""
        if self.shutdown or not self.wrapper.entities:
            return
        for entity in self.wrapper.entities.values():
            await self.ctx.publisher.publish(
                self.config_topic(entity),
                self.discovery_payload(entity),
                retain=True,
            )
        await self.publish_availability(force=True)
        await asyncio.sleep(self.ctx.settle_delay)
        await self.wrapper.publish_state(True)

    async def publish_availability(self, force: bool = False) -> None:
        state = AVAILABLE if self.wrapper.available else NOT_AVAILABLE
        if force or state != self.availability:
            self.availability = state
            await self.ctx.publisher.publish(self.availability_topic, state, retain=True)

    async def publish_state(self, values: dict[str, Any], forced: bool) -> int:
        """Publish changed (or, when forced, all) state values and attributes.

        Only values the broker accepted are cached, so failed publishes
        are retried on the next call.

        Args:
            values: State topic to value.
            forced: Publish regardless of the cache.

        Returns:
            Number of messages published.
        """
        published = 0
        for topic, value in values.items():
            if value is None:
                continue
            payload = encode_payload(value)
            if forced or self._cache.get(topic) != payload:
                if await self.ctx.publisher.publish(topic, payload, retain=True):
                    self._cache[topic] = payload
                    published += 1
                else:
                    self._cache.pop(topic, None)

        attributes = encode_payload(self.wrapper.attributes())
        if forced or self._cache.get(self.attributes_topic) != attributes:
            if await self.ctx.publisher.publish(self.attributes_topic, attributes, retain=False):
                self._cache[self.attributes_topic] = attributes
                published += 1
            else:
                self._cache.pop(self.attributes_topic, None)
        return published

    async def go_offline(self) -> None:
        self.availability = NOT_AVAILABLE
        await self.ctx.publisher.publish(self.availability_topic, NOT_AVAILABLE, retain=True)

    def on_vendor_data(self, _data: Any = None) -> None:
        """Schedule a change-only state publish after a vendor data update."""
        if self.shutdown or not self.initialized:
            return
        spawn(self._publish_update())

    async def _publish_update(self) -> None:
        try:
            await self.publish_availability()
            if self.availability == AVAILABLE:
                await self.wrapper.publish_state(False)
        except Exception as e:
            logger.error(f'Failed to publish state for {self.wrapper.device_id}: {e}')

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()


class BaseWrapper(ABC):
    """Interface shared by every device wrapper.

    Subclasses declare entities in ``__init__`` with :meth:`add_entity`,
    implement :meth:`state_values` and, when they accept commands,
    :meth:`handle_command`.

    Attributes:
        info: The mapped vendor device and its relations.
        ctx: Shared settings and collaborators.
        entities: Entities by key; the first one is the primary entity.
    """

    kind: ClassVar[DeviceKind]
    category: ClassVar[str] = 'alarm'
    model: ClassVar[str] = ''

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        self.info = info
        self.device = info.device
        self.ctx = ctx
        self.entities: dict[str, Entity] = {}
        self.core = DeviceCore(self)

    def __repr__(self) -> str:
        return f'{type(self).__name__}(device_id={self.device_id!r})'

    @property
    def device_id(self) -> str:
        return self.device.device_id

    @property
    def location_id(self) -> str:
        return self.device.location_id

    @property
    def name(self) -> str:
        return self.device.name

    @property
    def firmware(self) -> str:
        data = self.device.data
        return str(data.get('firmwareVersion') or data.get('firmware_version') or '')

    @property
    def data(self) -> dict[str, Any]:
        return self.device.data

    @property
    def available(self) -> bool:
        """Vendor-reported availability; hub devices are online while connected."""
        return True

    @property
    def availability_state(self) -> str | None:
        return self.core.availability

    def add_entity(self, entity: Entity) -> Entity:
        self.entities[entity.key] = entity
        return entity

    def state_topic(self, key: str, suffix: str = 'state') -> str:
        return self.core.topic(self.entities[key], suffix)

    # Contract

    async def initialize(self) -> None:
        await self.core.initialize()

    async def publish(self) -> None:
        await self.core.publish()

    async def publish_state(self, forced: bool = False) -> int:
        """Publish entity states, only changed values unless ``forced``."""
        return await self.core.publish_state(self.state_values(), forced)

    async def go_offline(self) -> None:
        await self.core.go_offline()

    async def process_command(self, suffix: str, payload: str) -> None:
        """Handle an inbound command; never raises.

        Args:
            suffix: Last topic level, e.g. ``lock_command``.
            payload: Decoded message payload.
        """
        try:
            await self.handle_command(suffix, payload.strip())
        except InvalidCommand as e:
            logger.warning(f'{self.name}: rejected command {suffix}: {e}')
        except RingClientError as e:
            logger.error(f'{self.name}: command {suffix} failed: {e}')
        except Exception as e:
            logger.error(f'{self.name}: unexpected error handling {suffix}: {e}')

    async def handle_command(self, suffix: str, payload: str) -> None:
        raise InvalidCommand(f'unknown command topic {suffix}')

    @abstractmethod
    def state_values(self) -> dict[str, Any]:
        """Current state as state topic to value."""

    def subscribe_vendor(self) -> list[Unsubscribe]:
        """Hook vendor updates; returns unsubscribe functions."""
        return [self.device.subscribe(self.core.on_vendor_data)]

    def attributes(self) -> dict[str, Any]:
        """Attribute document published on the attributes topic."""
        attributes = common_attributes(self.device)
        attributes.update(self.extra_attributes())
        return attributes

    def extra_attributes(self) -> dict[str, Any]:
        return {}

    def cancel_timers(self) -> None:
        """Cancel pending pulse timers."""

    async def shutdown(self, offline: bool = True) -> None:
        """Stop publishing for good and stop listening for vendor updates.

        Args:
            offline: Also publish offline availability.
        """
        self.core.shutdown = True
        self.cancel_timers()
        self.core.close()
        if offline:
            await self.go_offline()


def common_attributes(device: Any) -> dict[str, Any]:
    """Battery, tamper and communication status of a vendor device."""
    data: dict[str, Any] = device.data
    attributes: dict[str, Any] = {}
    if isinstance(device, RingRestDevice):
        if device.battery_level is not None:
            attributes['battery_level'] = device.battery_level
        if data.get('firmware_version'):
            attributes['firmware_status'] = data['firmware_version']
        return attributes

    if data.get('batteryLevel') is not None:
        attributes['battery_level'] = data['batteryLevel']
    if data.get('batteryStatus'):
        attributes['battery_status'] = data['batteryStatus']
    if data.get('tamperStatus'):
        attributes['tamper_status'] = 'tamper' if data['tamperStatus'] == 'tamper' else 'ok'
    if data.get('commStatus'):
        attributes['comm_status'] = data['commStatus']
    if data.get('acStatus'):
        attributes['ac_status'] = data['acStatus']
    return attributes


def parse_int(payload: str, low: int, high: int) -> int:
    """Parse an integer payload within ``[low, high]``.

    Raises:
        InvalidCommand: If the payload is not a number or is out of range.
    """
    try:
        value = float(payload)
    except ValueError as e:
        raise InvalidCommand(f'{payload!r} is not a number') from e
    if value != value or not low <= value <= high:
        raise InvalidCommand(f'{payload!r} is outside {low}-{high}')
    return int(round(value))


def parse_float(payload: str, low: float, high: float) -> float:
    """Parse a numeric payload within ``[low, high]``.

    Raises:
        InvalidCommand: If the payload is not a number or is out of range.
    """
    try:
        value = float(payload)
    except ValueError as e:
        raise InvalidCommand(f'{payload!r} is not a number') from e
    if value != value or not low <= value <= high:
        raise InvalidCommand(f'{payload!r} is outside {low}-{high}')
    return value


def parse_choice(payload: str, choices: tuple[str, ...]) -> str:
    """Match a payload case-insensitively against ``choices``.

    Raises:
        InvalidCommand: If the payload is not one of the choices.
    """
    for choice in choices:
        if payload.lower() == choice.lower():
            return choice
    raise InvalidCommand(f'{payload!r} is not one of {", ".join(choices)}')


def parse_on_off(payload: str) -> bool:
    """Parse an ON/OFF payload.

    Raises:
        InvalidCommand: If the payload is neither ON nor OFF.
    """
    return parse_choice(payload, ('ON', 'OFF')) == 'ON'
