"""Maps vendor devices onto device wrappers.

Cameras, chimes and intercoms are recognised by their vendor class; every
other device is looked up by its device-type string in :data:`DEVICE_TABLE`.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.devices.base import BaseWrapper, DeviceContext, DeviceInfo, MappingVerdict
from ring_mqtt.devices.camera import Camera, Chime, Intercom
from ring_mqtt.devices.environment import (
    CoAlarm,
    FloodFreezeSensor,
    SmokeAlarm,
    SmokeCoListener,
    TemperatureSensor,
    Thermostat,
)
from ring_mqtt.devices.lighting import Beam, BeamOutdoorPlug
from ring_mqtt.devices.lock import Lock
from ring_mqtt.devices.security import (
    BYPASS_CAPABLE_TYPES,
    BaseStation,
    BinarySensor,
    Bridge,
    Keypad,
    ModesPanel,
    PanicButton,
    RangeExtender,
    SecurityPanel,
    Siren,
)
from ring_mqtt.devices.switches import Fan, MultiLevelSwitch, Switch, Valve
from ring_mqtt.ring import RingCamera, RingChime, RingDeviceType, RingIntercom


MapResult = BaseWrapper | MappingVerdict

FAN_CATEGORY_ID = 17
HIDDEN_TAG = 'hidden'

T = RingDeviceType

DEVICE_TABLE: dict[str, type[BaseWrapper] | MappingVerdict] = {
    T.SECURITY_PANEL.value: SecurityPanel,
    T.CONTACT_SENSOR.value: BinarySensor,
    T.RETROFIT_ZONE.value: BinarySensor,
    T.TILT_SENSOR.value: BinarySensor,
    T.GLASSBREAK_SENSOR.value: BinarySensor,
    T.MOTION_SENSOR.value: BinarySensor,
    T.GENERIC_SENSOR.value: BinarySensor,
    T.FLOOD_FREEZE_SENSOR.value: FloodFreezeSensor,
    T.SMOKE_ALARM.value: SmokeAlarm,
    T.CO_ALARM.value: CoAlarm,
    T.SMOKE_CO_LISTENER.value: SmokeCoListener,
    T.TEMPERATURE_SENSOR.value: TemperatureSensor,
    T.BEAMS_MOTION_SENSOR.value: Beam,
    T.BEAMS_MULTI_LEVEL_SWITCH.value: Beam,
    T.BEAMS_TRANSFORMER_SWITCH.value: Beam,
    T.BEAMS_LIGHT_GROUP_SWITCH.value: Beam,
    T.BEAMS_DEVICE.value: BeamOutdoorPlug,
    T.SWITCH.value: Switch,
    T.MULTI_LEVEL_SWITCH.value: MultiLevelSwitch,
    T.THERMOSTAT.value: Thermostat,
    T.WATER_VALVE.value: Valve,
    T.BASE_STATION.value: BaseStation,
    T.BASE_STATION_PRO.value: BaseStation,
    T.RANGE_EXTENDER.value: RangeExtender,
    T.RINGNET_ADAPTER.value: Bridge,
    T.KEYPAD.value: Keypad,
    T.PANIC_BUTTON.value: PanicButton,
    T.LOCATION_MODE.value: ModesPanel,
    T.SIREN.value: Siren,
    T.SIREN_OUTDOOR_STROBE.value: Siren,
    T.BEAMS_SWITCH.value: MappingVerdict.IGNORE,
    T.ACCESS_CODE.value: MappingVerdict.IGNORE,
    T.ACCESS_CODE_VAULT.value: MappingVerdict.IGNORE,
    T.SIDEWALK_ADAPTER.value: MappingVerdict.IGNORE,
    T.SHADOW_ADAPTER.value: MappingVerdict.IGNORE,
    T.ZIGBEE_ADAPTER.value: MappingVerdict.IGNORE,
    T.ZWAVE_ADAPTER.value: MappingVerdict.IGNORE,
    T.THERMOSTAT_OPERATING_STATUS.value: MappingVerdict.IGNORE,
}


def is_lock_type(device_type: str) -> bool:
    return device_type == T.LOCK.value or device_type.startswith(f'{T.LOCK.value}.')


class DeviceMapper:
    """Builds the wrapper for a vendor device, or says why there is none.

    Attributes:
        ctx: Shared context handed to every wrapper.
    """

    def __init__(self, ctx: DeviceContext) -> None:
        self.ctx = ctx

    def map(
        self,
        device: Any,
        all_devices: list[Any] | None = None,
        events: list[dict[str, Any]] | None = None,
    ) -> MapResult:
        """Map a vendor device.

        Args:
            device: Vendor device (hub device or REST camera/chime/intercom).
            all_devices: Every hub device at the device's location.
            events: Recent event history for the location's cameras.

        Returns:
            The wrapper, ``MappingVerdict.IGNORE`` or
            ``MappingVerdict.UNSUPPORTED``. Never raises.
        """
        try:
            return self._map(device, all_devices or [], events or [])
        except Exception as e:
            logger.error(f'Failed to map device {getattr(device, "name", device)!r}: {e}')
            return MappingVerdict.UNSUPPORTED

    def _map(self, device: Any, all_devices: list[Any], events: list[dict[str, Any]]) -> MapResult:
        if isinstance(device, RingCamera):
            camera_events = [e for e in events if str(e.get('source_id')) == str(device.id)]
            return Camera(DeviceInfo(device=device, events=camera_events), self.ctx)
        if isinstance(device, RingChime):
            return Chime(DeviceInfo(device=device), self.ctx)
        if isinstance(device, RingIntercom):
            return Intercom(DeviceInfo(device=device), self.ctx)

        device_type = device.device_type
        factory = self._resolve(device, device_type)
        if isinstance(factory, MappingVerdict):
            return factory

        info = self._build_info(device, all_devices)
        if device_type == T.TEMPERATURE_SENSOR.value and info.parent_device is not None:
            if info.parent_device.device_type == T.THERMOSTAT.value:
                return MappingVerdict.IGNORE

        if factory is BinarySensor:
            info.security_panel = _find(all_devices, lambda d: d.device_type == T.SECURITY_PANEL.value)
        elif factory is SecurityPanel:
            info.bypass_capable_devices = [d for d in all_devices if d.device_type in BYPASS_CAPABLE_TYPES]

        return factory(info, self.ctx)

    def _resolve(self, device: Any, device_type: str) -> type[BaseWrapper] | MappingVerdict:
        if device_type == T.RINGNET_ADAPTER.value and HIDDEN_TAG in (device.tags or []):
            return MappingVerdict.IGNORE
        if device_type == T.MULTI_LEVEL_SWITCH.value and device.category_id == FAN_CATEGORY_ID:
            return Fan

        factory = DEVICE_TABLE.get(device_type)
        if factory is not None:
            return factory
        if is_lock_type(device_type):
            return Lock
        logger.debug(f'Unsupported device type {device_type!r} ({device.name})')
        return MappingVerdict.UNSUPPORTED

    @staticmethod
    def _build_info(device: Any, all_devices: list[Any]) -> DeviceInfo:
        children = [d for d in all_devices if d.parent_id and d.parent_id == device.id]
        parent = None
        if device.parent_id:
            parent = _find(all_devices, lambda d: d.id == device.parent_id)
        return DeviceInfo(device=device, child_devices=children, parent_device=parent)


def _find(devices: list[Any], predicate: Callable[[Any], bool]) -> Any | None:
    return next((d for d in devices if predicate(d)), None)
