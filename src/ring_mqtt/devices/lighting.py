"""Ring Smart Lighting (Beams) wrappers."""

from __future__ import annotations

from typing import Any

from ring_mqtt.devices.base import (
    BaseWrapper,
    DeviceContext,
    DeviceInfo,
    DeviceKind,
    Entity,
    on_off,
    parse_int,
    parse_on_off,
)
from ring_mqtt.mqtt import HADeviceClass
from ring_mqtt.ring import RingDeviceType
from ring_mqtt.utils import Unsubscribe


class Beam(BaseWrapper):
    """Beams motion sensors, lights, transformers and light groups.

    Transformers have no motion sensor and motion-only sensors have no light;
    multi-level lights add a 0-100 brightness.
    """

    kind = DeviceKind.BEAM
    category = 'lighting'

    LIGHT_DURATION: int | None = None

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        device_type = self.device.device_type
        self.is_light_group = device_type == RingDeviceType.BEAMS_LIGHT_GROUP_SWITCH.value
        self.group_id = self.data.get('groupId') if self.is_light_group else None
        self.has_motion = device_type != RingDeviceType.BEAMS_TRANSFORMER_SWITCH.value
        self.has_light = device_type != RingDeviceType.BEAMS_MOTION_SENSOR.value
        self.has_brightness = device_type == RingDeviceType.BEAMS_MULTI_LEVEL_SWITCH.value
        self.model = {
            RingDeviceType.BEAMS_MOTION_SENSOR.value: 'Beams Motion Sensor',
            RingDeviceType.BEAMS_MULTI_LEVEL_SWITCH.value: 'Beams Multi-Level Light',
            RingDeviceType.BEAMS_TRANSFORMER_SWITCH.value: 'Beams Transformer',
            RingDeviceType.BEAMS_LIGHT_GROUP_SWITCH.value: 'Beams Light Group',
        }.get(device_type, 'Beams Light')

        if self.has_motion:
            self.add_entity(Entity('motion', 'binary_sensor', name='Motion', device_class=HADeviceClass.MOTION.value))
        if self.has_light:
            light = self.add_entity(Entity(
                'light',
                'light',
                name='Light',
                has_command=True,
                command_suffixes=('brightness',) if self.has_brightness else (),
            ))
            if self.has_brightness:
                light.extra.update({
                    'brightness_scale': 100,
                    'brightness_state_topic': self.state_topic('light', 'brightness_state'),
                    'brightness_command_topic': self.state_topic('light', 'brightness_command'),
                })

    def state_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if self.has_motion:
            values[self.state_topic('motion')] = on_off(self.data.get('motionStatus') == 'faulted')
        if self.has_light:
            values[self.state_topic('light')] = on_off(bool(self.data.get('on')))
        if self.has_brightness:
            level = self.data.get('level')
            values[self.state_topic('light', 'brightness_state')] = (
                round(100 * float(level)) if isinstance(level, (int, float)) else 0
            )
        return values

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix == 'light_command' and self.has_light:
            await self.set_light(parse_on_off(payload))
        elif suffix == 'light_brightness_command' and self.has_brightness:
            level = parse_int(payload, 0, 100)
            await self.device.set_info({'device': {'v1': {'level': level / 100}}})
        else:
            await super().handle_command(suffix, payload)

    async def set_light(self, on: bool) -> None:
        if self.is_light_group and self.group_id:
            await self.device.location.set_light_group(self.group_id, on, self.LIGHT_DURATION or 60)
            return
        data: dict[str, Any] = {'lightMode': 'on'} if on else {'lightMode': 'default'}
        if on and self.LIGHT_DURATION:
            data['duration'] = self.LIGHT_DURATION
        await self.device.send_command('light-mode.set', data)


class BeamOutdoorPlug(BaseWrapper):
    """Beams outdoor plug: one switch per child outlet."""

    kind = DeviceKind.BEAM_OUTDOOR_PLUG
    category = 'lighting'
    model = 'Outdoor Smart Plug'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.outlets: dict[str, Any] = {}
        children = sorted(info.child_devices, key=lambda child: child.id)
        for index, child in enumerate(children, start=1):
            key = f'outlet{index}'
            self.outlets[key] = child
            self.add_entity(Entity(key, 'switch', name=f'Outlet {index}', has_command=True, extra={'icon': 'mdi:power-socket-us'}))

    def subscribe_vendor(self) -> list[Unsubscribe]:
        unsubscribers = super().subscribe_vendor()
        unsubscribers.extend(child.subscribe(self.core.on_vendor_data) for child in self.outlets.values())
        return unsubscribers

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic(key): on_off(bool(child.data.get('on'))) for key, child in self.outlets.items()}

    async def handle_command(self, suffix: str, payload: str) -> None:
        key = suffix[:-len('_command')] if suffix.endswith('_command') else suffix
        outlet = self.outlets.get(key)
        if outlet is None:
            await super().handle_command(suffix, payload)
            return
        await outlet.set_info({'device': {'v1': {'on': parse_on_off(payload)}}})
