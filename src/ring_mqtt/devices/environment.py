"""Environmental sensors and the thermostat."""

from __future__ import annotations

from typing import Any

from ring_mqtt.devices.base import (
    BaseWrapper,
    DeviceContext,
    DeviceInfo,
    DeviceKind,
    Entity,
    on_off,
    parse_choice,
    parse_float,
)
from ring_mqtt.mqtt import HADeviceClass
from ring_mqtt.ring import RingDeviceType
from ring_mqtt.utils import Unsubscribe


def _faulted(data: dict[str, Any], key: str) -> bool:
    section = data.get(key) or {}
    return bool(section.get('faulted')) if isinstance(section, dict) else False


def _alarm_active(data: dict[str, Any], key: str | None = None) -> bool:
    section = data if key is None else (data.get(key) or {})
    return isinstance(section, dict) and section.get('alarmStatus') == 'active'


class FloodFreezeSensor(BaseWrapper):
    kind = DeviceKind.FLOOD_FREEZE_SENSOR
    model = 'Flood & Freeze Sensor'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity('flood', 'binary_sensor', name='Flood', device_class=HADeviceClass.MOISTURE.value))
        self.add_entity(Entity('freeze', 'binary_sensor', name='Freeze', device_class=HADeviceClass.COLD.value))

    def state_values(self) -> dict[str, Any]:
        return {
            self.state_topic('flood'): on_off(_faulted(self.data, 'flood')),
            self.state_topic('freeze'): on_off(_faulted(self.data, 'freeze')),
        }


class SmokeAlarm(BaseWrapper):
    kind = DeviceKind.SMOKE_ALARM
    model = 'Smoke Alarm'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity('smoke', 'binary_sensor', device_class=HADeviceClass.SMOKE.value))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('smoke'): on_off(_alarm_active(self.data))}


class CoAlarm(BaseWrapper):
    kind = DeviceKind.CO_ALARM
    model = 'CO Alarm'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity('co', 'binary_sensor', device_class=HADeviceClass.CARBON_MONOXIDE.value))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('co'): on_off(_alarm_active(self.data))}


class SmokeCoListener(BaseWrapper):
    kind = DeviceKind.SMOKE_CO_LISTENER
    model = 'Smoke & CO Listener'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity('smoke', 'binary_sensor', name='Smoke', device_class=HADeviceClass.SMOKE.value))
        self.add_entity(Entity('co', 'binary_sensor', name='CO', device_class=HADeviceClass.CARBON_MONOXIDE.value))

    def state_values(self) -> dict[str, Any]:
        return {
            self.state_topic('smoke'): on_off(_alarm_active(self.data, 'smoke')),
            self.state_topic('co'): on_off(_alarm_active(self.data, 'co')),
        }


class TemperatureSensor(BaseWrapper):
    kind = DeviceKind.TEMPERATURE_SENSOR
    model = 'Temperature Sensor'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity(
            'temperature',
            'sensor',
            device_class=HADeviceClass.TEMPERATURE.value,
            extra={'unit_of_measurement': '°C', 'state_class': 'measurement'},
        ))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('temperature'): self.data.get('celsius')}


THERMOSTAT_MODES = ('off', 'heat', 'cool', 'auto')
MIN_SETPOINT = 10.0
MAX_SETPOINT = 37.0


class Thermostat(BaseWrapper):
    """Climate entity; current temperature comes from the child temperature sensor."""

    kind = DeviceKind.THERMOSTAT
    model = 'Thermostat'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.temperature_sensor = next(
            (
                child for child in info.child_devices
                if child.device_type == RingDeviceType.TEMPERATURE_SENSOR.value
            ),
            None,
        )
        entity = self.add_entity(Entity('thermostat', 'climate', has_state=False, command_suffixes=('mode', 'temperature')))
        entity.extra.update({
            'mode_state_topic': self.state_topic('thermostat', 'mode_state'),
            'mode_command_topic': self.state_topic('thermostat', 'mode_command'),
            'temperature_state_topic': self.state_topic('thermostat', 'temperature_state'),
            'temperature_command_topic': self.state_topic('thermostat', 'temperature_command'),
            'current_temperature_topic': self.state_topic('thermostat', 'current_temperature_state'),
            'modes': list(THERMOSTAT_MODES),
            'min_temp': MIN_SETPOINT,
            'max_temp': MAX_SETPOINT,
            'temp_step': 0.5,
            'temperature_unit': 'C',
        })

    def subscribe_vendor(self) -> list[Unsubscribe]:
        unsubscribers = super().subscribe_vendor()
        if self.temperature_sensor is not None:
            unsubscribers.append(self.temperature_sensor.subscribe(self.core.on_vendor_data))
        return unsubscribers

    def state_values(self) -> dict[str, Any]:
        mode = self.data.get('mode')
        values: dict[str, Any] = {
            self.state_topic('thermostat', 'mode_state'): mode if mode in THERMOSTAT_MODES else None,
            self.state_topic('thermostat', 'temperature_state'): self.data.get('setPoint'),
        }
        if self.temperature_sensor is not None:
            values[self.state_topic('thermostat', 'current_temperature_state')] = self.temperature_sensor.data.get('celsius')
        return values

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix == 'thermostat_mode_command':
            mode = parse_choice(payload, THERMOSTAT_MODES)
            await self.device.set_info({'device': {'v1': {'mode': mode}}})
        elif suffix == 'thermostat_temperature_command':
            setpoint = parse_float(payload, MIN_SETPOINT, MAX_SETPOINT)
            await self.device.set_info({'device': {'v1': {'setPoint': setpoint}}})
        else:
            await super().handle_command(suffix, payload)
