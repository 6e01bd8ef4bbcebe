"""Z-Wave switches, dimmers, fans and water valves."""

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
    parse_int,
    parse_on_off,
)


def _level_percent(data: dict[str, Any]) -> int:
    level = data.get('level')
    if not isinstance(level, (int, float)):
        return 0
    return round(100 * float(level))


class Switch(BaseWrapper):
    kind = DeviceKind.SWITCH
    model = 'Smart Switch'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity('switch', 'switch', has_command=True))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('switch'): on_off(bool(self.data.get('on')))}

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix != 'switch_command':
            await super().handle_command(suffix, payload)
            return
        await self.device.set_info({'device': {'v1': {'on': parse_on_off(payload)}}})


class MultiLevelSwitch(BaseWrapper):
    """Dimmer exposed as a light with 0-100 brightness."""

    kind = DeviceKind.MULTI_LEVEL_SWITCH
    model = 'Dimming Light'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        light = self.add_entity(Entity('light', 'light', has_command=True, command_suffixes=('brightness',)))
        light.extra.update({
            'brightness_scale': 100,
            'brightness_state_topic': self.state_topic('light', 'brightness_state'),
            'brightness_command_topic': self.state_topic('light', 'brightness_command'),
        })

    def state_values(self) -> dict[str, Any]:
        return {
            self.state_topic('light'): on_off(bool(self.data.get('on'))),
            self.state_topic('light', 'brightness_state'): _level_percent(self.data),
        }

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix == 'light_command':
            await self.device.set_info({'device': {'v1': {'on': parse_on_off(payload)}}})
        elif suffix == 'light_brightness_command':
            level = parse_int(payload, 0, 100)
            await self.device.set_info({'device': {'v1': {'level': level / 100}}})
        else:
            await super().handle_command(suffix, payload)


FAN_PRESETS = {'low': 0.33, 'medium': 0.67, 'high': 1.0}


class Fan(BaseWrapper):
    """Fan controller (a multi-level switch in the fan category)."""

    kind = DeviceKind.FAN
    model = 'Fan Control'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        fan = self.add_entity(Entity('fan', 'fan', has_command=True, command_suffixes=('percent', 'preset')))
        fan.extra.update({
            'percentage_state_topic': self.state_topic('fan', 'percent_state'),
            'percentage_command_topic': self.state_topic('fan', 'percent_command'),
            'preset_mode_state_topic': self.state_topic('fan', 'preset_state'),
            'preset_mode_command_topic': self.state_topic('fan', 'preset_command'),
            'preset_modes': list(FAN_PRESETS),
            'speed_range_min': 1,
            'speed_range_max': 100,
        })

    @property
    def preset(self) -> str | None:
        level = self.data.get('level')
        if not isinstance(level, (int, float)) or level <= 0:
            return None
        # Nearest preset to the current level
        return min(FAN_PRESETS, key=lambda name: abs(FAN_PRESETS[name] - float(level)))

    def state_values(self) -> dict[str, Any]:
        return {
            self.state_topic('fan'): on_off(bool(self.data.get('on'))),
            self.state_topic('fan', 'percent_state'): _level_percent(self.data),
            self.state_topic('fan', 'preset_state'): self.preset,
        }

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix == 'fan_command':
            await self.device.set_info({'device': {'v1': {'on': parse_on_off(payload)}}})
        elif suffix == 'fan_percent_command':
            percent = parse_int(payload, 0, 100)
            if percent == 0:
                await self.device.set_info({'device': {'v1': {'on': False}}})
            else:
                await self.device.set_info({'device': {'v1': {'on': True, 'level': percent / 100}}})
        elif suffix == 'fan_preset_command':
            preset = parse_choice(payload, tuple(FAN_PRESETS))
            await self.device.set_info({'device': {'v1': {'on': True, 'level': FAN_PRESETS[preset]}}})
        else:
            await super().handle_command(suffix, payload)


class Valve(BaseWrapper):
    """Water valve; reports open/closed, accepts OPEN and CLOSE."""

    kind = DeviceKind.VALVE
    model = 'Water Valve'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity(
            'valve',
            'valve',
            has_command=True,
            extra={'state_open': 'open', 'state_closed': 'closed', 'payload_open': 'OPEN', 'payload_close': 'CLOSE'},
        ))

    def state_values(self) -> dict[str, Any]:
        state = self.data.get('valveState')
        return {self.state_topic('valve'): state if state in ('open', 'closed') else None}

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix != 'valve_command':
            await super().handle_command(suffix, payload)
            return
        action = parse_choice(payload, ('OPEN', 'CLOSE'))
        await self.device.send_command('valve.open' if action == 'OPEN' else 'valve.close')
