"""Z-Wave lock wrapper."""

from __future__ import annotations

from typing import Any

from ring_mqtt.devices.base import (
    BaseWrapper,
    DeviceContext,
    DeviceInfo,
    DeviceKind,
    Entity,
    parse_choice,
)


LOCK_STATES = {'locked': 'LOCKED', 'unlocked': 'UNLOCKED', 'jammed': 'JAMMED'}


class Lock(BaseWrapper):
    kind = DeviceKind.LOCK
    model = 'Smart Lock'

    def __init__(self, info: DeviceInfo, ctx: DeviceContext) -> None:
        super().__init__(info, ctx)
        self.add_entity(Entity('lock', 'lock', has_command=True))

    @property
    def lock_state(self) -> str | None:
        return LOCK_STATES.get(str(self.data.get('locked', '')).lower())

    def state_values(self) -> dict[str, Any]:
        return {self.state_topic('lock'): self.lock_state}

    async def handle_command(self, suffix: str, payload: str) -> None:
        if suffix != 'lock_command':
            await super().handle_command(suffix, payload)
            return
        action = parse_choice(payload, ('LOCK', 'UNLOCK'))
        await self.device.send_command('lock.lock' if action == 'LOCK' else 'lock.unlock')
