"""Application composition root.

Wires the state store, Ring session, MQTT client, mediamtx supervisor and
lifecycle controller together and runs them until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import signal

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.config import BridgeConfig
from ring_mqtt.controller import BridgeController
from ring_mqtt.media import MediaMTXSupervisor
from ring_mqtt.mqtt import MQTTClient, MQTTMessage
from ring_mqtt.session import RingSession
from ring_mqtt.state import StateStore


class RingMqttApp:
    """The running bridge.

    Attributes:
        config: Bridge configuration.
        state: Persistent state (refresh token, system id).
        session: Ring API session.
        mqtt: MQTT broker connection.
        media: mediamtx supervisor (None when cameras are disabled).
        controller: Lifecycle controller.
    """

    def __init__(
        self,
        config: BridgeConfig,
        state: StateStore | None = None,
        session: RingSession | None = None,
        mqtt: MQTTClient | None = None,
        media: MediaMTXSupervisor | None = None,
    ) -> None:
        self.config = config
        self.state = state or StateStore(config.state_path)
        self.session = session or RingSession(config, self.state)
        self.mqtt = mqtt or MQTTClient(
            config.mqtt,
            will=MQTTMessage(topic=config.bridge_status_topic, payload='offline', retain=True),
        )
        if media is None and config.enable_cameras:
            media = MediaMTXSupervisor(config)
        self.media = media
        self.controller = BridgeController(config, self.session, self.mqtt, self.media)
        self._stop_event = asyncio.Event()

    def request_stop(self) -> None:
        self._stop_event.set()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                logger.debug(f'Signal handler for {sig.name} not supported on this platform')

    async def connect_ring(self, generated_token: str | None = None) -> bool:
        """Connect to the Ring API, retrying until connected or stopped.

        Returns:
            True once connected, False if a stop was requested first.
        """
        token = generated_token
        while not self._stop_event.is_set():
            if await self.session.init(token) is not None:
                return True
            token = None
            logger.warning(f'Retrying Ring API connection in {self.config.token_check_interval:g} seconds')
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.token_check_interval)
            except asyncio.TimeoutError:
                pass
        return False

    async def run(self, generated_token: str | None = None) -> int:
        """Run the bridge until a stop is requested.

        Args:
            generated_token: Refresh token to use (and persist) instead of
                the saved one.

        Returns:
            Process exit code.
        """
        self.state.load()
        if generated_token:
            self.state.set_token(generated_token)
        if not self.state.refresh_token:
            logger.error(f'No refresh token in {self.state.path}, run "ring-mqtt auth" to generate one')
            return 1

        self.install_signal_handlers()
        try:
            if not await self.connect_ring(generated_token):
                return 0
            await self.controller.start()
            await self.mqtt.start()
            await self._stop_event.wait()
            logger.info('Shutdown requested')
        finally:
            await self.shutdown()
        return 0

    async def shutdown(self) -> None:
        """Offline availability, stop mediamtx, close MQTT and the Ring client."""
        try:
            await self.controller.shutdown()
        except Exception as e:
            logger.error(f'Error during controller shutdown: {e}')
        await self.mqtt.stop()
        await self.session.close()
        logger.info('Ring MQTT bridge stopped')
