"""Ring to MQTT bridge with Home Assistant discovery.

This package connects to the Ring cloud API and publishes Ring devices
(cameras, chimes, intercoms, alarm sensors, locks, switches, lighting and
thermostats) to an MQTT broker using Home Assistant discovery. It includes:

- Configuration management with Pydantic validation
- Async Ring API client with refresh token rotation
- Device wrappers and a device mapper for every supported device type
- A lifecycle controller for discovery, republishing and command routing
- A supervisor for the mediamtx RTSP server used for camera streams

Example:
    >>> from ring_mqtt import BridgeConfig, RingMqttApp
    >>>
    >>> config = BridgeConfig.from_file('config.json')
    >>> await RingMqttApp(config).run()
"""

from ring_mqtt.app import RingMqttApp
from ring_mqtt.config import BridgeConfig, MQTTConfig
from ring_mqtt.controller import BridgeController
from ring_mqtt.media import MediaMTXSupervisor
from ring_mqtt.mqtt import MQTTClient
from ring_mqtt.session import RingSession
from ring_mqtt.state import StateStore


__version__ = '0.1.0'

__all__ = [
    'BridgeConfig',
    'BridgeController',
    'MQTTClient',
    'MQTTConfig',
    'MediaMTXSupervisor',
    'RingMqttApp',
    'RingSession',
    'StateStore',
]
