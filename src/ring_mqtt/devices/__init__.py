"""Device wrappers that publish Ring devices to MQTT.

Each supported vendor device is wrapped by one :class:`BaseWrapper`
subclass, chosen by :class:`DeviceMapper`:

- Alarm: security panel, contact/motion/tilt/glassbreak sensors, keypads,
  sirens, base stations, range extenders, bridges and location modes
- Environment: flood/freeze, smoke, CO, temperature and thermostats
- Lighting: Beams lights, motion sensors, groups and outdoor plugs
- Z-Wave: switches, dimmers, fans, valves and locks
- Cameras, chimes and intercoms

Example:
    >>> mapper = DeviceMapper(DeviceContext(publisher=mqtt_client))
    >>> wrapper = mapper.map(device, all_devices)
    >>> if isinstance(wrapper, BaseWrapper):
    ...     await wrapper.initialize()
"""

from ring_mqtt.devices.base import (
    AVAILABLE,
    NOT_AVAILABLE,
    BaseWrapper,
    DeviceContext,
    DeviceCore,
    DeviceInfo,
    DeviceKind,
    Entity,
    InvalidCommand,
    MappingVerdict,
    PulseTimer,
)
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
from ring_mqtt.devices.mapper import DEVICE_TABLE, DeviceMapper
from ring_mqtt.devices.security import (
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


__all__ = [
    'AVAILABLE',
    'DEVICE_TABLE',
    'NOT_AVAILABLE',
    'BaseStation',
    'BaseWrapper',
    'Beam',
    'BeamOutdoorPlug',
    'BinarySensor',
    'Bridge',
    'Camera',
    'Chime',
    'CoAlarm',
    'DeviceContext',
    'DeviceCore',
    'DeviceInfo',
    'DeviceKind',
    'DeviceMapper',
    'Entity',
    'Fan',
    'FloodFreezeSensor',
    'Intercom',
    'InvalidCommand',
    'Keypad',
    'Lock',
    'MappingVerdict',
    'ModesPanel',
    'MultiLevelSwitch',
    'PanicButton',
    'PulseTimer',
    'RangeExtender',
    'SecurityPanel',
    'Siren',
    'SmokeAlarm',
    'SmokeCoListener',
    'Switch',
    'TemperatureSensor',
    'Thermostat',
    'Valve',
]
