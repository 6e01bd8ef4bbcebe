"""Wrappers for REST-polled devices: cameras, chimes and intercoms.

Motion and ding events arrive as realtime events on the vendor device; the
corresponding binary sensors switch ON and fall back to OFF when their
:class:`PulseTimer` fires.
"""

from __future__ import annotations

import time
from typing import Any

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.devices.base import (
    BaseWrapper,
    DeviceContext,
    DeviceInfo,
    DeviceKind,
    Entity,
    PulseTimer,
    on_off,
    parse_choice,
    parse_int,
    parse_on_off,
)
from ring_mqtt.mqtt import HADeviceClass
from ring_mqtt.utils import Unsubscribe


class _PolledWrapper(BaseWrapper):
    """Base for REST devices; availability follows the vendor connection status."""

    category = 'camera'

    @property
    def available(self) -> bool:
        return not self.device.is_offline


def _last_event_time(events: list[dict[str, Any]], kind: str) -> str | None:
    for event in events:
        if event.get('kind') == kind:
            return event.get('created_at')
    return None


class Camera(_PolledWrapper):
    """Security camera or doorbell.

    Entities: ``motion`` always, ``ding`` for doorbells, ``light`` and
    ``siren`` when the hardware has them. Availability follows the
    vendor-reported connection status.
    """

    kind = DeviceKind.CAMERA
    model = 'Camera'

    MOTION_TIMEOUT = 180.0
    DING_TIMEOUT = 180.0

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.is_doorbell = bool(getattr(self.device, 'is_doorbot', False))
        if self.is_doorbell:
            self.model = 'Doorbell'
        self.motion = False
        self.ding = False
        self.last_motion = _last_event_time(info.events, 'motion')
        self.last_ding = _last_event_time(info.events, 'ding')
        self.motion_timer = PulseTimer()
        self.ding_timer = PulseTimer()

        self.add_entity(Entity('motion', 'binary_sensor', name='Motion', device_class=HADeviceClass.MOTION.value))
        if self.is_doorbell:
            self.add_entity(Entity(
                'ding',
                'binary_sensor',
                name='Ding',
                device_class=HADeviceClass.OCCUPANCY.value,
                extra={'icon': 'mdi:doorbell-video'},
            ))
        if self.device.has_light:
            self.add_entity(Entity('light', 'light', name='Light', has_command=True))
        if self.device.has_siren:
            self.add_entity(Entity('siren', 'switch', name='Siren', has_command=True, extra={'icon': 'mdi:alarm-light'}))

    @property
    def device_topic(self) -> str:
        return f'{self.core.root_topic}/{self.device_id}'

    @property
    def stream_source(self) -> str:
        return f'{self.ctx.stream_base_url}/{self.device_id}_live'

    @property
    def event_stream_source(self) -> str:
        return f'{self.ctx.stream_base_url}/{self.device_id}_event'

    def subscribe_vendor(self) -> list[Unsubscribe]:
        unsubscribers = super().subscribe_vendor()
        unsubscribers.append(self.device.subscribe_event('motion', self._on_motion))
        if self.is_doorbell:
            unsubscribers.append(self.device.subscribe_event('ding', self._on_ding))
        return unsubscribers

    def state_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {self.state_topic('motion'): on_off(self.motion)}
        if 'ding' in self.entities:
            values[self.state_topic('ding')] = on_off(self.ding)
        if 'light' in self.entities:
            values[self.state_topic('light')] = on_off(self.device.light_on)
        if 'siren' in self.entities:
            values[self.state_topic('siren')] = on_off(self.device.siren_on)
        return values

    def extra_attributes(self) -> dict[str, Any]:
        attributes: dict[str, Any] = {
            'stream_source': self.stream_source,
            'event_stream_source': self.event_stream_source,
        }
        if self.last_motion:
            attributes['last_motion'] = self.last_motion
        if self.last_ding:
            attributes['last_ding'] = self.last_ding
        return attributes

    async def _on_motion(self, event: dict[str, Any]) -> None:
        logger.debug(f'{self.name}: motion event')
        self.motion = True
        self.last_motion = event.get('created_at') or _now()
        self.motion_timer.start(self.MOTION_TIMEOUT, self._clear_motion)
        await self.publish_state(False)

    async def _clear_motion(self) -> None:
        self.motion = False
        await self.publish_state(False)

    async def _on_ding(self, event: dict[str, Any]) -> None:
        logger.debug(f'{self.name}: ding event')
        self.ding = True
        self.last_ding = event.get('created_at') or _now()
        self.ding_timer.start(self.DING_TIMEOUT, self._clear_ding)
        await self.publish_state(False)

    async def _clear_ding(self) -> None:
        self.ding = False
        await self.publish_state(False)

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix == 'light_command' and 'light' in self.entities:
            await self.device.set_light(parse_on_off(payload))
        elif suffix == 'siren_command' and 'siren' in self.entities:
            await self.device.set_siren(parse_on_off(payload))
        else:
            await super().handle_command(suffix, payload)

    def cancel_timers(self) -> None:
        self.motion_timer.cancel()
        self.ding_timer.cancel()


CHIME_MAX_VOLUME = 11


class Chime(_PolledWrapper):
    kind = DeviceKind.CHIME
    model = 'Chime'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity(
            'volume',
            'number',
            name='Volume',
            has_command=True,
            extra={'min': 0, 'max': CHIME_MAX_VOLUME, 'icon': 'mdi:volume-high'},
        ))
        self.add_entity(Entity(
            'play_ding',
            'button',
            name='Play Ding',
            has_state=False,
            has_command=True,
            extra={'payload_press': 'PLAY', 'icon': 'mdi:bell-ring'},
        ))

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('volume'): self.device.volume}

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix == 'volume_command':
            await self.device.set_volume(parse_int(payload, 0, CHIME_MAX_VOLUME))
        elif suffix == 'play_ding_command':
            await self.device.play_sound('ding')
        else:
            await super().handle_command(suffix, payload)


class Intercom(_PolledWrapper):
    """Ring Intercom: a transient lock plus a ding sensor.

    The door lock reports UNLOCKED for ``UNLOCK_TIMEOUT`` seconds after an
    unlock, then LOCKED again.
    """

    kind = DeviceKind.INTERCOM
    model = 'Intercom'

    UNLOCK_TIMEOUT = 5.0
    DING_TIMEOUT = 15.0

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.lock_state = 'LOCKED'
        self.ding = False
        self.lock_timer = PulseTimer()
        self.ding_timer = PulseTimer()
        self.add_entity(Entity('lock', 'lock', has_command=True))
        self.add_entity(Entity('ding', 'binary_sensor', name='Ding', extra={'icon': 'mdi:doorbell'}))

    def subscribe_vendor(self) -> list[Unsubscribe]:
        unsubscribers = super().subscribe_vendor()
        unsubscribers.append(self.device.subscribe_event('unlocked', self._on_unlocked))
        unsubscribers.append(self.device.subscribe_event('ding', self._on_ding))
        return unsubscribers

    def state_values(self) -> dict[str, Any]:
        return {
            self.state_topic('lock'): self.lock_state,
            self.state_topic('ding'): on_off(self.ding),
        }

    async def set_unlocked(self) -> None:
        self.lock_state = 'UNLOCKED'
        self.lock_timer.start(self.UNLOCK_TIMEOUT, self._relock)
        await self.publish_state(False)

    async def _relock(self) -> None:
        self.lock_state = 'LOCKED'
        await self.publish_state(False)

    async def _on_unlocked(self, _event: dict[str, Any]) -> None:
        await self.set_unlocked()

    async def _on_ding(self, _event: dict[str, Any]) -> None:
        self.ding = True
        self.ding_timer.start(self.DING_TIMEOUT, self._clear_ding)
        await self.publish_state(False)

    async def _clear_ding(self) -> None:
        self.ding = False
        await self.publish_state(False)

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix != 'lock_command':
            await super().handle_command(suffix, payload)
            return
        action = parse_choice(payload, ('LOCK', 'UNLOCK'))
        if action == 'UNLOCK':
            logger.debug(f'{self.name}: sending unlock command')
            await self.device.unlock()
            await self.set_unlocked()
        elif self.lock_state == 'UNLOCKED':
            self.lock_timer.cancel()
            self.lock_state = 'LOCKED'
            await self.publish_state(False)
        else:
            logger.debug(f'{self.name}: lock command received but door is already locked')

    def cancel_timers(self) -> None:
        self.lock_timer.cancel()
        self.ding_timer.cancel()


def _now() -> str:
    return time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime())
