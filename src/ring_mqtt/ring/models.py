"""Live handles on Ring locations and devices.

Hub-connected devices (alarm, lighting, z-wave) are reached through a
:class:`HubConnection` (the location's push websocket, provided by the
caller). Cameras, chimes and intercoms are plain REST devices whose data is
refreshed by polling in :class:`~ring_mqtt.ring.client.RingApiClient`.

Every handle exposes the same subscribe pattern: ``subscribe(callback)``
returns an unsubscribe function.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.ring.errors import RingClientError
from ring_mqtt.utils import CallbackList, Unsubscribe


if TYPE_CHECKING:
    from ring_mqtt.ring.client import RingApiClient


APP_API_BASE = 'https://app.ring.com/api/v1/'
CLIENT_API_BASE = 'https://api.ring.com/clients_api/'
DEVICE_API_BASE = 'https://api.ring.com/devices/v1/'
COMMANDS_API_BASE = 'https://api.ring.com/commands/v1/'
GROUPS_API_BASE = 'https://api.ring.com/groups/v1/'


class RingDeviceType(str, Enum):
    """Hub device type tags as reported by the Ring API."""

    SECURITY_PANEL = 'security-panel'
    CONTACT_SENSOR = 'sensor.contact'
    RETROFIT_ZONE = 'sensor.zone'
    TILT_SENSOR = 'sensor.tilt'
    GLASSBREAK_SENSOR = 'sensor.glassbreak'
    MOTION_SENSOR = 'sensor.motion'
    GENERIC_SENSOR = 'sensor'
    FLOOD_FREEZE_SENSOR = 'sensor.flood-freeze'
    SMOKE_ALARM = 'alarm.smoke'
    CO_ALARM = 'alarm.co'
    SMOKE_CO_LISTENER = 'listener.smoke-co'
    TEMPERATURE_SENSOR = 'sensor.temperature'
    BEAMS_MOTION_SENSOR = 'motion-sensor.beams'
    BEAMS_MULTI_LEVEL_SWITCH = 'switch.multilevel.beams'
    BEAMS_TRANSFORMER_SWITCH = 'switch.transformer.beams'
    BEAMS_LIGHT_GROUP_SWITCH = 'group.light-group.beams'
    BEAMS_DEVICE = 'device.beams'
    BEAMS_SWITCH = 'switch.beams'
    SWITCH = 'switch'
    MULTI_LEVEL_SWITCH = 'switch.multilevel'
    THERMOSTAT = 'temperature-control.thermostat'
    THERMOSTAT_OPERATING_STATUS = 'thermostat-operating-status'
    WATER_VALVE = 'valve.water'
    BASE_STATION = 'hub.redsky'
    BASE_STATION_PRO = 'hub.kili'
    RANGE_EXTENDER = 'range-extender.zwave'
    RINGNET_ADAPTER = 'adapter.ringnet'
    KEYPAD = 'security-keypad'
    PANIC_BUTTON = 'security-remote'
    LOCATION_MODE = 'location.mode'
    SIREN = 'siren'
    SIREN_OUTDOOR_STROBE = 'siren.outdoor-strobe'
    ACCESS_CODE = 'access-code'
    ACCESS_CODE_VAULT = 'access-code.vault'
    SIDEWALK_ADAPTER = 'adapter.sidewalk'
    SHADOW_ADAPTER = 'adapter.shadow'
    ZIGBEE_ADAPTER = 'adapter.zigbee'
    ZWAVE_ADAPTER = 'adapter.zwave'
    LOCK = 'lock'


class HubConnection(Protocol):
    """Push connection to a location's alarm/lighting hubs.

    The websocket transport itself lives outside this package; the bridge
    only needs connectivity, the device list, data updates and a way to send
    ``DeviceInfoSet`` messages.
    """

    @property
    def connected(self) -> bool: ...

    def subscribe_connected(self, callback: Callable[[bool], Any]) -> Unsubscribe: ...

    async def get_devices(self) -> list[dict[str, Any]]: ...

    def subscribe_device_data(self, callback: Callable[[dict[str, Any]], Any]) -> Unsubscribe: ...

    async def send_message(self, message: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class RingDevice:
    """A hub-connected device (alarm sensor, panel, switch, lighting).

    Attributes:
        data: Latest data payload pushed by the hub.
        location: Owning location.
    """

    def __init__(self, data: dict[str, Any], location: RingLocation | None = None) -> None:
        self.data: dict[str, Any] = dict(data)
        self.location = location
        self._data_callbacks: CallbackList[dict[str, Any]] = CallbackList('device data')

    def __repr__(self) -> str:
        return f'{type(self).__name__}(id={self.id!r}, type={self.device_type!r})'

    @property
    def id(self) -> str:
        return str(self.data.get('zid', ''))

    @property
    def device_id(self) -> str:
        """Identifier used in MQTT topics."""
        return self.id

    @property
    def device_type(self) -> str:
        return str(self.data.get('deviceType', ''))

    @property
    def name(self) -> str:
        return str(self.data.get('name') or self.device_type)

    @property
    def location_id(self) -> str:
        if self.data.get('location_id'):
            return str(self.data['location_id'])
        return self.location.location_id if self.location else ''

    @property
    def category_id(self) -> int | None:
        return self.data.get('categoryId')

    @property
    def tags(self) -> list[str]:
        return list(self.data.get('tags') or [])

    @property
    def parent_id(self) -> str | None:
        return self.data.get('parentZid')

    def subscribe(self, callback: Callable[[dict[str, Any]], Any]) -> Unsubscribe:
        """Subscribe to data updates for this device."""
        return self._data_callbacks.add(callback)

    def update_data(self, changes: dict[str, Any]) -> None:
        """Merge a data update and notify subscribers."""
        self.data.update(changes)
        self._data_callbacks.notify(self.data)

    async def send_command(self, command_type: str, data: dict[str, Any] | None = None) -> None:
        """Send a ``v1`` command through the location's hub connection.

        Raises:
            RingClientError: If the location has no hub connection.
        """
        await self._send_info_set({'command': {'v1': [{'commandType': command_type, 'data': data or {}}]}})

    async def set_info(self, body: dict[str, Any]) -> None:
        """Set device info fields (``device.v1`` and friends) through the hub.

        Raises:
            RingClientError: If the location has no hub connection.
        """
        await self._send_info_set(body)

    async def _send_info_set(self, body: dict[str, Any]) -> None:
        hub = self.location.hub if self.location else None
        if hub is None:
            raise RingClientError(f'No hub connection for device {self.id}')
        await hub.send_message({
            'msg': 'DeviceInfoSet',
            'datatype': 'DeviceInfoSetType',
            'body': [{'zid': self.id, **body}],
        })


class RingLocationModeDevice(RingDevice):
    """Pseudo device representing a location's mode (disarmed/home/away)."""

    def __init__(self, location: RingLocation) -> None:
        super().__init__(
            {
                'zid': f'{location.location_id}_mode',
                'deviceType': RingDeviceType.LOCATION_MODE.value,
                'name': f'{location.name} Mode',
                'location_id': location.location_id,
            },
            location,
        )


class RingRestDevice:
    """Base for cameras, chimes and intercoms, which are reached over REST.

    Attributes:
        data: Latest device data from the ``ring_devices`` listing.
        location: Owning location.
    """

    def __init__(self, data: dict[str, Any], location: RingLocation | None, api: RingApiClient) -> None:
        self.data: dict[str, Any] = dict(data)
        self.location = location
        self.api = api
        self._data_callbacks: CallbackList[dict[str, Any]] = CallbackList('device data')
        self._event_callbacks: dict[str, CallbackList[dict[str, Any]]] = {}

    def __repr__(self) -> str:
        return f'{type(self).__name__}(id={self.id!r}, kind={self.device_type!r})'

    @property
    def id(self) -> int:
        return int(self.data['id'])

    @property
    def device_id(self) -> str:
        return str(self.data.get('device_id') or self.data['id'])

    @property
    def device_type(self) -> str:
        return str(self.data.get('kind', ''))

    @property
    def name(self) -> str:
        return str(self.data.get('description') or self.device_id)

    @property
    def location_id(self) -> str:
        return str(self.data.get('location_id', ''))

    @property
    def parent_id(self) -> str | None:
        return None

    @property
    def firmware_version(self) -> str:
        return str(self.data.get('firmware_version') or '')

    @property
    def battery_level(self) -> int | None:
        value = self.data.get('battery_life')
        if value is None or value == '':
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @property
    def is_offline(self) -> bool:
        alerts = self.data.get('alerts') or {}
        return alerts.get('connection') == 'offline'

    def subscribe(self, callback: Callable[[dict[str, Any]], Any]) -> Unsubscribe:
        """Subscribe to data refreshes."""
        return self._data_callbacks.add(callback)

    def subscribe_event(self, kind: str, callback: Callable[[dict[str, Any]], Any]) -> Unsubscribe:
        """Subscribe to realtime events (``motion``, ``ding``, ``unlocked``)."""
        return self._event_callbacks.setdefault(kind, CallbackList(f'{kind} event')).add(callback)

    def update_data(self, data: dict[str, Any]) -> None:
        """Replace device data and notify subscribers."""
        self.data.update(data)
        self._data_callbacks.notify(self.data)

    def emit_event(self, kind: str, event: dict[str, Any]) -> None:
        """Deliver a realtime event to subscribers."""
        callbacks = self._event_callbacks.get(kind)
        if callbacks:
            callbacks.notify(event)


class RingCamera(RingRestDevice):
    """A doorbell or security camera."""

    def __init__(
        self,
        data: dict[str, Any],
        location: RingLocation | None,
        api: RingApiClient,
        is_doorbot: bool = False,
    ) -> None:
        super().__init__(data, location, api)
        self.is_doorbot = is_doorbot

    @property
    def has_light(self) -> bool:
        return self.data.get('led_status') is not None

    @property
    def has_siren(self) -> bool:
        return self.data.get('siren_status') is not None

    @property
    def light_on(self) -> bool:
        return self.data.get('led_status') == 'on'

    @property
    def siren_on(self) -> bool:
        status = self.data.get('siren_status') or {}
        return int(status.get('seconds_remaining') or 0) > 0

    async def set_light(self, on: bool) -> None:
        """Switch the floodlight/spotlight."""
        state = 'on' if on else 'off'
        await self.api.rest.request('PUT', f'{CLIENT_API_BASE}doorbots/{self.id}/floodlight_light_{state}')
        self.update_data({'led_status': state})

    async def set_siren(self, on: bool) -> None:
        """Start or stop the siren."""
        state = 'on' if on else 'off'
        await self.api.rest.request('PUT', f'{CLIENT_API_BASE}doorbots/{self.id}/siren_{state}')
        self.update_data({'siren_status': {'seconds_remaining': 30 if on else 0}})


class RingChime(RingRestDevice):
    """A Ring chime."""

    @property
    def volume(self) -> int:
        settings = self.data.get('settings') or {}
        return int(settings.get('volume') or 0)

    async def set_volume(self, volume: int) -> None:
        """Set chime volume (0-11)."""
        await self.api.rest.request(
            'PUT',
            f'{CLIENT_API_BASE}chimes/{self.id}',
            json={'chime': {'settings': {'volume': volume}}},
        )
        settings = dict(self.data.get('settings') or {})
        settings['volume'] = volume
        self.update_data({'settings': settings})

    async def play_sound(self, kind: str = 'ding') -> None:
        """Play the ``ding`` or ``motion`` sound."""
        await self.api.rest.request('POST', f'{CLIENT_API_BASE}chimes/{self.id}/play_sound', json={'kind': kind})


class RingIntercom(RingRestDevice):
    """A Ring Intercom."""

    async def unlock(self) -> None:
        """Unlock the building door."""
        await self.api.rest.request(
            'PUT',
            f'{COMMANDS_API_BASE}devices/{self.id}/device_rpc',
            json={
                'command_name': 'device_rpc',
                'request': {
                    'jsonrpc': '2.0',
                    'method': 'unlock_door',
                    'params': {'door_id': 0, 'user_id': 0},
                },
            },
        )


class RingLocation:
    """A Ring location with its devices.

    Attributes:
        data: Location data from the locations listing.
        cameras: Cameras at this location.
        chimes: Chimes at this location.
        intercoms: Intercoms at this location.
        hub: Push connection for hub devices, if any.
    """

    def __init__(
        self,
        data: dict[str, Any],
        api: RingApiClient,
        *,
        cameras: list[RingCamera] | None = None,
        chimes: list[RingChime] | None = None,
        intercoms: list[RingIntercom] | None = None,
        has_hubs: bool = False,
        hub: HubConnection | None = None,
        mode_polling_seconds: int | None = None,
    ) -> None:
        self.data = data
        self.api = api
        self.cameras = cameras or []
        self.chimes = chimes or []
        self.intercoms = intercoms or []
        self.hub = hub
        self._has_hubs = has_hubs
        self._mode_polling_seconds = mode_polling_seconds
        self._devices: dict[str, RingDevice] = {}
        self._hub_unsub: Unsubscribe | None = None
        self._mode_callbacks: CallbackList[str] = CallbackList('location mode')
        self._mode_task: asyncio.Task[None] | None = None
        self._last_mode: str | None = None

        if has_hubs and hub is None:
            logger.warning(f'Location {self.name} has hub devices but no hub connection, alarm devices are unavailable')

    def __repr__(self) -> str:
        return f'RingLocation(id={self.location_id!r}, name={self.name!r})'

    @property
    def location_id(self) -> str:
        return str(self.data['location_id'])

    @property
    def name(self) -> str:
        return str(self.data.get('name') or self.location_id)

    @property
    def has_hubs(self) -> bool:
        """True when hub devices exist and can be reached."""
        return self._has_hubs and self.hub is not None

    @property
    def has_alarm_base_station(self) -> bool:
        return self._has_hubs

    @property
    def is_connected(self) -> bool:
        return bool(self.hub and self.hub.connected)

    def subscribe_connected(self, callback: Callable[[bool], Any]) -> Unsubscribe:
        """Subscribe to hub connection changes.

        Locations without a hub never report a change.
        """
        if self.hub is None:
            return lambda: None
        return self.hub.subscribe_connected(callback)

    async def get_devices(self) -> list[RingDevice]:
        """Return the hub devices of this location.

        Device handles are created once and reused on later calls.
        """
        if self.hub is None:
            return []
        for raw in await self.hub.get_devices():
            zid = str(raw.get('zid', ''))
            if not zid:
                continue
            device = self._devices.get(zid)
            if device is None:
                self._devices[zid] = RingDevice(raw, self)
            else:
                device.data.update(raw)
        if self._hub_unsub is None:
            self._hub_unsub = self.hub.subscribe_device_data(self._on_hub_data)
        return list(self._devices.values())

    def _on_hub_data(self, update: dict[str, Any]) -> None:
        device = self._devices.get(str(update.get('zid', '')))
        if device is not None:
            device.update_data(update)

    async def request(self, method: str, url: str, json: dict[str, Any] | None = None) -> Any:
        """Issue an authenticated REST request on behalf of this location."""
        return await self.api.rest.request(method, url, json=json)

    async def set_light_group(self, group_id: str, on: bool, duration_seconds: int = 60) -> None:
        """Switch a Beams light group on or off."""
        await self.request(
            'POST',
            f'{GROUPS_API_BASE}locations/{self.location_id}/groups/{group_id}/devices',
            json={'lights_on': {'duration_seconds': duration_seconds, 'enabled': on}},
        )

    async def get_location_mode(self) -> dict[str, Any]:
        """Return the location mode document (``mode``, ``lastUpdateTimeMS``)."""
        result = await self.request('GET', f'{APP_API_BASE}mode/location/{self.location_id}')
        return result if isinstance(result, dict) else {}

    async def set_location_mode(self, mode: str) -> dict[str, Any]:
        """Set the location mode (``disarmed``, ``home`` or ``away``)."""
        result = await self.request('POST', f'{APP_API_BASE}mode/location/{self.location_id}', json={'mode': mode})
        self._set_mode(mode)
        return result if isinstance(result, dict) else {}

    async def supports_location_mode_switching(self) -> bool:
        """Locations without an alarm that have used modes support switching."""
        if self.has_alarm_base_station:
            return False
        try:
            mode = await self.get_location_mode()
        except RingClientError as e:
            logger.debug(f'Location {self.name} mode query failed: {e}')
            return False
        return bool(mode.get('lastUpdateTimeMS'))

    def subscribe_location_mode(self, callback: Callable[[str], Any]) -> Unsubscribe:
        """Subscribe to location mode changes; starts polling on first use."""
        unsubscribe = self._mode_callbacks.add(callback)
        if self._mode_polling_seconds and self._mode_task is None:
            self._mode_task = asyncio.create_task(self._poll_location_mode(self._mode_polling_seconds))
        return unsubscribe

    def _set_mode(self, mode: str) -> None:
        if mode and mode != self._last_mode:
            self._last_mode = mode
            self._mode_callbacks.notify(mode)

    async def _poll_location_mode(self, interval: int) -> None:
        while True:
            try:
                mode = await self.get_location_mode()
                self._set_mode(str(mode.get('mode') or ''))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f'Location mode poll for {self.name} failed: {e}')
            await asyncio.sleep(interval)

    async def close(self) -> None:
        """Stop polling and disconnect the hub connection."""
        if self._mode_task:
            self._mode_task.cancel()
            try:
                await self._mode_task
            except asyncio.CancelledError:
                pass
            self._mode_task = None
        if self._hub_unsub:
            self._hub_unsub()
            self._hub_unsub = None
        if self.hub is not None:
            await self.hub.close()
