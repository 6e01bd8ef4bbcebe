"""MQTT client for Home Assistant integration.

This module provides the broker connection used by the bridge: a supervised
aiomqtt connection that reconnects on failure, replays subscriptions after
every connect, dispatches inbound messages to a handler and reports
connection state changes to subscribers. It also holds the small Home
Assistant discovery helpers shared by the device wrappers.

Example:
    >>> client = MQTTClient(MQTTConfig(host='localhost'))
    >>> client.subscribe_connection_state(on_state)
    >>> client.set_message_handler(on_message)
    >>> await client.start()
    >>> await client.publish('ring/test', 'ON', retain=True)
    >>> await client.stop()
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiomqtt  # type: ignore[import-untyped]
from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.config import MQTTConfig
from ring_mqtt.utils import CallbackList, Unsubscribe, spawn


class MQTTConnectionState(str, Enum):
    """MQTT connection states."""

    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    RECONNECTING = 'reconnecting'


class HADeviceClass(str, Enum):
    """Home Assistant device classes used by the Ring entities."""

    # Binary sensor classes
    MOTION = 'motion'
    OCCUPANCY = 'occupancy'
    DOOR = 'door'
    WINDOW = 'window'
    GARAGE_DOOR = 'garage_door'
    MOISTURE = 'moisture'
    COLD = 'cold'
    SMOKE = 'smoke'
    CARBON_MONOXIDE = 'carbon_monoxide'
    SAFETY = 'safety'
    PLUG = 'plug'
    POWER = 'power'
    CONNECTIVITY = 'connectivity'
    PROBLEM = 'problem'

    # Sensor classes
    TEMPERATURE = 'temperature'
    BATTERY = 'battery'


@dataclass
class MQTTMessage:
    """MQTT message to be published.

    Attributes:
        topic: The MQTT topic to publish to.
        payload: The message payload (will be JSON-encoded if dict).
        retain: Whether to retain the message.
        qos: Quality of Service level.
    """

    topic: str
    payload: str | dict[str, Any]
    retain: bool = False
    qos: int = 1

    def encoded_payload(self) -> bytes:
        """Get the encoded payload bytes.

        Returns:
            UTF-8 encoded payload, JSON-encoded if dict.
        """
        if isinstance(self.payload, dict):
            return json.dumps(self.payload).encode('utf-8')
        return str(self.payload).encode('utf-8')


@dataclass
class DeviceDiscoveryInfo:
    """Home Assistant device discovery information.

    Attributes:
        identifiers: Unique identifiers for the device.
        name: Display name.
        manufacturer: Device manufacturer.
        model: Device model.
        sw_version: Software/firmware version.
        via_device: Parent device identifier.
    """

    identifiers: list[str]
    name: str
    manufacturer: str = 'Ring'
    model: str = ''
    sw_version: str = ''
    via_device: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to Home Assistant device info dict.

        Returns:
            Dictionary formatted for HA discovery.
        """
        info: dict[str, Any] = {
            'identifiers': self.identifiers,
            'name': self.name,
            'manufacturer': self.manufacturer,
        }
        if self.model:
            info['model'] = self.model
        if self.sw_version:
            info['sw_version'] = self.sw_version
        if self.via_device:
            info['via_device'] = self.via_device
        return info


# Type alias for connection state callbacks
MQTTConnectionCallback = Callable[[MQTTConnectionState], Any]
MessageHandler = Callable[[str, str], 'Awaitable[None] | None']


class MQTTClient:
    """Supervised connection to the MQTT broker.

    The connection runs in a background task: on every successful connect
    subscriptions are replayed and CONNECTED is reported; when the broker
    connection drops DISCONNECTED is reported and a new connection is tried
    after ``reconnect_interval`` seconds.

    Attributes:
        config: MQTT configuration.
        state: Current connection state.
    """

    def __init__(self, config: MQTTConfig, will: MQTTMessage | None = None) -> None:
        """Initialize the MQTT client.

        Args:
            config: MQTT configuration.
            will: Optional last-will message registered with the broker.
        """
        self._config = config
        self._will = will
        self._state = MQTTConnectionState.DISCONNECTED
        self._mqtt_client: Any = None  # aiomqtt.Client while connected
        self._run_task: asyncio.Task[None] | None = None
        self._connection_callbacks: CallbackList[MQTTConnectionState] = CallbackList('connection state')
        self._subscriptions: set[str] = set()
        self._message_handler: MessageHandler | None = None
        self._running = False

    @property
    def state(self) -> MQTTConnectionState:
        """Get the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to MQTT broker."""
        return self._state == MQTTConnectionState.CONNECTED

    @property
    def config(self) -> MQTTConfig:
        """Get the MQTT configuration."""
        return self._config

    def subscribe_connection_state(self, callback: MQTTConnectionCallback) -> Unsubscribe:
        """Subscribe to connection state changes.

        Args:
            callback: Function called when connection state changes.

        Returns:
            Unsubscribe function.
        """
        return self._connection_callbacks.add(callback)

    def _notify_connection_state(self, state: MQTTConnectionState) -> None:
        """Notify subscribers of connection state change.

        Args:
            state: New connection state.
        """
        self._state = state
        self._connection_callbacks.notify(state)

    def set_message_handler(self, handler: MessageHandler) -> None:
        """Set the handler called with ``(topic, payload)`` for inbound messages."""
        self._message_handler = handler

    async def start(self) -> None:
        """Start the connection supervisor."""
        if self._running:
            logger.warning('MQTT client already running')
            return
        self._running = True
        self._run_task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Disconnect from the broker and stop reconnecting."""
        if not self._running:
            return
        self._running = False

        if self._run_task:
            self._run_task.cancel()
            try:
                await self._run_task
            except asyncio.CancelledError:
                pass
            self._run_task = None

        self._mqtt_client = None
        self._notify_connection_state(MQTTConnectionState.DISCONNECTED)
        logger.info('MQTT client stopped')

    def _build_client(self) -> Any:
        password = (
            self._config.password.get_secret_value()
            if self._config.password
            else None
        )
        kwargs: dict[str, Any] = {
            'hostname': self._config.host,
            'port': self._config.port,
            'username': self._config.username,
            'password': password,
            'identifier': self._config.client_id,
            'keepalive': self._config.keepalive,
        }
        if self._config.ssl:
            kwargs['tls_params'] = aiomqtt.TLSParameters()
        if self._will is not None:
            kwargs['will'] = aiomqtt.Will(
                topic=self._will.topic,
                payload=self._will.encoded_payload(),
                qos=self._will.qos,
                retain=self._will.retain,
            )
        return aiomqtt.Client(**kwargs)

    async def _run(self) -> None:
        """Background task holding the broker connection."""
        first_attempt = True
        while self._running:
            self._notify_connection_state(
                MQTTConnectionState.CONNECTING if first_attempt else MQTTConnectionState.RECONNECTING
            )
            first_attempt = False
            try:
                async with self._build_client() as client:
                    self._mqtt_client = client
                    logger.info(f'Connected to MQTT broker at {self._config.host}:{self._config.port}')
                    for topic in sorted(self._subscriptions):
                        await client.subscribe(topic, qos=self._config.qos)
                    self._notify_connection_state(MQTTConnectionState.CONNECTED)
                    async for message in client.messages:
                        self._dispatch(message.topic.value, message.payload)
            except aiomqtt.MqttError as e:
                logger.warning(f'MQTT connection error: {e}')
            finally:
                self._mqtt_client = None

            if not self._running:
                break
            self._notify_connection_state(MQTTConnectionState.DISCONNECTED)
            logger.info(f'Reconnecting to MQTT broker in {self._config.reconnect_interval}s')
            await asyncio.sleep(self._config.reconnect_interval)

    def _dispatch(self, topic: str, payload: Any) -> None:
        if self._message_handler is None:
            return
        if isinstance(payload, (bytes, bytearray)):
            text = payload.decode('utf-8', errors='replace')
        else:
            text = '' if payload is None else str(payload)
        try:
            result = self._message_handler(topic, text)
            if asyncio.iscoroutine(result):
                spawn(result)
        except Exception as e:
            logger.error(f'Error handling MQTT message on {topic}: {e}')

    async def subscribe(self, topic: str) -> None:
        """Subscribe to a topic now and after every reconnect."""
        if topic in self._subscriptions:
            return
        self._subscriptions.add(topic)
        if self._mqtt_client is not None:
            try:
                await self._mqtt_client.subscribe(topic, qos=self._config.qos)
                logger.debug(f'Subscribed to {topic}')
            except aiomqtt.MqttError as e:
                logger.warning(f'Failed to subscribe to {topic}: {e}')

    async def publish(
        self,
        topic: str,
        payload: str | dict[str, Any],
        retain: bool = False,
        qos: int | None = None,
    ) -> bool:
        """Publish a message.

        Returns:
            True if the message was handed to the broker.
        """
        return await self.publish_message(MQTTMessage(
            topic=topic,
            payload=payload,
            retain=retain,
            qos=self._config.qos if qos is None else qos,
        ))

    async def publish_message(self, message: MQTTMessage) -> bool:
        """Publish a single MQTT message.

        Args:
            message: The message to publish.

        Returns:
            True if the message was handed to the broker.
        """
        if not self._mqtt_client:
            logger.debug(f'Cannot publish to {message.topic}: not connected')
            return False

        try:
            await self._mqtt_client.publish(
                topic=message.topic,
                payload=message.encoded_payload(),
                qos=message.qos,
                retain=message.retain,
            )
            logger.debug(f'Published to {message.topic}')
            return True
        except aiomqtt.MqttError as e:
            logger.error(f'Failed to publish to {message.topic}: {e}')
            return False
