"""Alarm system wrappers: sensors, panel, keypad, sirens and hub devices."""

from __future__ import annotations

import json
from typing import Any

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.devices.base import (
    BaseWrapper,
    DeviceContext,
    DeviceInfo,
    DeviceKind,
    Entity,
    InvalidCommand,
    on_off,
    parse_choice,
    parse_int,
    parse_on_off,
)
from ring_mqtt.mqtt import HADeviceClass
from ring_mqtt.ring import RingDeviceType
from ring_mqtt.utils import Unsubscribe


BYPASS_CAPABLE_TYPES = frozenset({
    RingDeviceType.CONTACT_SENSOR.value,
    RingDeviceType.RETROFIT_ZONE.value,
    RingDeviceType.MOTION_SENSOR.value,
    RingDeviceType.TILT_SENSOR.value,
    RingDeviceType.GLASSBREAK_SENSOR.value,
})

# device type -> (entity key, device class, model)
_SENSOR_TYPES: dict[str, tuple[str, str, str]] = {
    RingDeviceType.CONTACT_SENSOR.value: ('contact', HADeviceClass.DOOR.value, 'Contact Sensor'),
    RingDeviceType.RETROFIT_ZONE.value: ('zone', HADeviceClass.SAFETY.value, 'Retrofit Zone'),
    RingDeviceType.TILT_SENSOR.value: ('tilt', HADeviceClass.GARAGE_DOOR.value, 'Tilt Sensor'),
    RingDeviceType.GLASSBREAK_SENSOR.value: ('glassbreak', HADeviceClass.SAFETY.value, 'Glassbreak Sensor'),
    RingDeviceType.MOTION_SENSOR.value: ('motion', HADeviceClass.MOTION.value, 'Motion Sensor'),
    RingDeviceType.GENERIC_SENSOR.value: ('sensor', HADeviceClass.SAFETY.value, 'Generic Sensor'),
}

PANEL_MODES = {'none': 'disarmed', 'some': 'armed_home', 'all': 'armed_away'}
PANEL_COMMANDS = {'DISARM': 'none', 'ARM_HOME': 'some', 'ARM_AWAY': 'all'}
POLICE_ALARM_STATES = frozenset({'burglar-alarm', 'user-verified-burglar-alarm', 'burglar-accelerated-alarm'})
FIRE_ALARM_STATES = frozenset({
    'fire-alarm',
    'co-alarm',
    'user-verified-co-or-fire-alarm',
    'fire-accelerated-alarm',
})


class BinarySensor(BaseWrapper):
    """Contact, zone, tilt, glassbreak, motion and generic alarm sensors."""

    kind = DeviceKind.BINARY_SENSOR

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        key, device_class, model = _SENSOR_TYPES.get(
            self.device.device_type,
            _SENSOR_TYPES[RingDeviceType.GENERIC_SENSOR.value],
        )
        if key == 'contact' and self.data.get('subCategoryId') == 2:
            device_class = HADeviceClass.WINDOW.value
        self.sensor_key = key
        self.model = model
        self.add_entity(Entity(key, 'binary_sensor', device_class=device_class))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic(self.sensor_key): on_off(bool(self.data.get('faulted')))}

    def extra_attributes(self) -> dict[str, Any]:
        if self.info.security_panel is None:
            return {}
        return {
            'bypass_capable': self.device.device_type in BYPASS_CAPABLE_TYPES,
            'bypassed': bool(self.data.get('bypassed')),
        }


class SecurityPanel(BaseWrapper):
    """Alarm control panel with siren, auto-bypass and optional panic switches.

    The ``bypass`` switch is held in memory: when it is ON, arming bypasses
    every faulted bypass-capable sensor.
    """

    kind = DeviceKind.SECURITY_PANEL
    model = 'Alarm Control Panel'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.auto_bypass = False

        panel_extra: dict[str, Any] = {'supported_features': ['arm_home', 'arm_away']}
        if ctx.disarm_code:
            panel_extra['code'] = 'REMOTE_CODE_TEXT'
            panel_extra['code_arm_required'] = False
            panel_extra['command_template'] = '{"action": "{{ action }}", "code": "{{ code }}"}'
        self.add_entity(Entity('alarm', 'alarm_control_panel', has_command=True, extra=panel_extra))
        self.add_entity(Entity('siren', 'switch', name='Siren', has_command=True, extra={'icon': 'mdi:alarm-light'}))
        self.add_entity(Entity('bypass', 'switch', name='Arming Bypass Mode', has_command=True, extra={'icon': 'mdi:transit-skip'}))
        if ctx.enable_panic:
            self.add_entity(Entity('police', 'switch', name='Panic - Police', has_command=True, extra={'icon': 'mdi:police-badge'}))
            self.add_entity(Entity('fire', 'switch', name='Panic - Fire', has_command=True, extra={'icon': 'mdi:fire'}))

    @property
    def alarm_state(self) -> str:
        alarm_info = self.data.get('alarmInfo') or {}
        alarm_state = alarm_info.get('state') if isinstance(alarm_info, dict) else None
        if alarm_state == 'entry-delay':
            return 'pending'
        if alarm_state:
            return 'triggered'
        if self.data.get('transitionDelayEndTimestamp'):
            return 'arming'
        return PANEL_MODES.get(str(self.data.get('mode')), 'disarmed')

    def state_values(self) -> dict[str, Any]:
        alarm_info = self.data.get('alarmInfo') or {}
        alarm_state = alarm_info.get('state') if isinstance(alarm_info, dict) else None
        siren = self.data.get('siren') or {}
        values: dict[str, Any] = {
            self.state_topic('alarm'): self.alarm_state,
            self.state_topic('siren'): on_off(siren.get('state') == 'on'),
            self.state_topic('bypass'): on_off(self.auto_bypass),
        }
        if 'police' in self.entities:
            values[self.state_topic('police')] = on_off(alarm_state in POLICE_ALARM_STATES)
            values[self.state_topic('fire')] = on_off(alarm_state in FIRE_ALARM_STATES)
        return values

    def extra_attributes(self) -> dict[str, Any]:
        alarm_info = self.data.get('alarmInfo') or {}
        attributes: dict[str, Any] = {}
        if isinstance(alarm_info, dict) and alarm_info.get('state'):
            attributes['alarm_state'] = alarm_info['state']
            if alarm_info.get('faultedDevices'):
                attributes['faulted_devices'] = alarm_info['faultedDevices']
        return attributes

    def bypass_device_ids(self) -> list[str]:
        """Faulted bypass-capable sensors, when auto-bypass is enabled."""
        if not self.auto_bypass:
            return []
        return [d.id for d in self.info.bypass_capable_devices if d.data.get('faulted')]

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix == 'alarm_command':
            await self.set_alarm_mode(payload)
        elif suffix == 'siren_command':
            command = 'siren-test.start' if parse_on_off(payload) else 'siren-test.stop'
            await self.device.send_command(command)
        elif suffix == 'bypass_command':
            self.auto_bypass = parse_on_off(payload)
            await self.publish_state(False)
        elif suffix in ('police_command', 'fire_command') and suffix[:-len('_command')] in self.entities:
            await self.set_panic(suffix[:-len('_command')], parse_on_off(payload))
        else:
            await super().handle_command(suffix, payload)

    async def set_alarm_mode(self, payload: str) -> None:
        action, code = payload, None
        if payload.startswith('{'):
            try:
                message = json.loads(payload)
            except ValueError as e:
                raise InvalidCommand(f'malformed alarm command {payload!r}') from e
            action, code = str(message.get('action', '')), message.get('code')

        action = parse_choice(action, tuple(PANEL_COMMANDS))
        if action == 'DISARM' and self.ctx.disarm_code and str(code or '') != self.ctx.disarm_code:
            raise InvalidCommand('disarm code does not match')

        mode = PANEL_COMMANDS[action]
        bypass = self.bypass_device_ids() if mode != 'none' else []
        if bypass:
            logger.info(f'{self.name}: bypassing {len(bypass)} faulted sensor(s) while arming')
        await self.device.send_command('security-panel.switch-mode', {'mode': mode, 'bypass': bypass})

    async def set_panic(self, kind: str, on: bool) -> None:
        if on:
            command = 'security-panel.trigger-burglar-alarm' if kind == 'police' else 'security-panel.trigger-fire-alarm'
            logger.warning(f'{self.name}: triggering {kind} panic alarm')
            await self.device.send_command(command)
        else:
            await self.device.send_command('security-panel.switch-mode', {'mode': 'none', 'bypass': []})


class _VolumeDevice(BaseWrapper):
    """Hub device exposing a 0-100 volume number."""

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity(
            'volume',
            'number',
            name='Volume',
            has_command=True,
            extra={'min': 0, 'max': 100, 'icon': 'mdi:volume-high'},
        ))

    def state_values(self) -> dict[str, Any]:
        volume = self.data.get('volume')
        if volume is None:
            return {}
        return {self.state_topic('volume'): round(float(volume) * 100)}

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix != 'volume_command':
            await super().handle_command(suffix, payload)
            return
        volume = parse_int(payload, 0, 100)
        await self.device.set_info({'device': {'v1': {'volume': volume / 100}}})


class BaseStation(_VolumeDevice):
    kind = DeviceKind.BASE_STATION
    model = 'Alarm Base Station'


class Keypad(_VolumeDevice):
    kind = DeviceKind.KEYPAD
    model = 'Security Keypad'


class PanicButton(BaseWrapper):
    kind = DeviceKind.PANIC_BUTTON
    model = 'Panic Button'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity(
            'battery',
            'sensor',
            name='Battery',
            device_class=HADeviceClass.BATTERY.value,
            extra={'unit_of_measurement': '%', 'state_class': 'measurement'},
        ))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('battery'): self.data.get('batteryLevel')}


class Siren(BaseWrapper):
    kind = DeviceKind.SIREN
    model = 'Siren'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        if self.device.device_type == RingDeviceType.SIREN_OUTDOOR_STROBE.value:
            self.model = 'Outdoor Siren'
        self.add_entity(Entity('siren', 'switch', has_command=True, extra={'icon': 'mdi:alarm-light'}))

    def state_values(self) -> dict[str, Any]:
        siren = self.data.get('siren') or {}
        return {self.state_topic('siren'): on_off(siren.get('state') == 'on')}

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix != 'siren_command':
            await super().handle_command(suffix, payload)
            return
        await self.device.send_command('siren-test.start' if parse_on_off(payload) else 'siren-test.stop')


class RangeExtender(BaseWrapper):
    kind = DeviceKind.RANGE_EXTENDER
    model = 'Z-Wave Range Extender'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity('acpower', 'binary_sensor', device_class=HADeviceClass.POWER.value))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('acpower'): on_off(self.data.get('acStatus') == 'ok')}


class Bridge(BaseWrapper):
    kind = DeviceKind.BRIDGE
    model = 'Ring Bridge'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity('status', 'binary_sensor', device_class=HADeviceClass.CONNECTIVITY.value))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('status'): on_off(self.data.get('commStatus', 'ok') == 'ok')}


LOCATION_MODES = {'disarmed': 'disarmed', 'home': 'armed_home', 'away': 'armed_away'}
MODE_COMMANDS = {'DISARM': 'disarmed', 'ARM_HOME': 'home', 'ARM_AWAY': 'away'}


class ModesPanel(BaseWrapper):
    """Location modes (disarmed/home/away) for locations without an alarm."""

    kind = DeviceKind.MODES_PANEL
    model = 'Mode Control Panel'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.mode: str | None = None
        self.add_entity(Entity(
            'mode',
            'alarm_control_panel',
            has_command=True,
            extra={'supported_features': ['arm_home', 'arm_away']},
        ))

    def subscribe_vendor(self) -> list[Unsubscribe]:
        location = self.device.location
        if location is None:
            return []
        return [location.subscribe_location_mode(self._on_mode)]

    def _on_mode(self, mode: str) -> None:
        self.mode = mode
        self.core.on_vendor_data()

    def state_values(self) -> dict[str, Any]:
        if self.mode is None:
            return {}
        return {self.state_topic('mode'): LOCATION_MODES.get(self.mode, 'disarmed')}

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix != 'mode_command':
            await super().handle_command(suffix, payload)
            return
        mode = MODE_COMMANDS[parse_choice(payload, tuple(MODE_COMMANDS))]
        await self.device.location.set_location_mode(mode)
