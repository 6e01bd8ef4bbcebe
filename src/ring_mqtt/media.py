"""Supervisor for the mediamtx RTSP server used for camera live streams.

Each camera gets two on-demand paths, ``<device_id>_live`` and
``<device_id>_event``. When a client reads a path, mediamtx runs the stream
helper script, which publishes the camera stream back into that path.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.config import BridgeConfig
from ring_mqtt.utils import write_file_atomic


RESTART_DELAY = 5.0
STOP_TIMEOUT = 5.0
_TIMESTAMP = re.compile(r'\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} ')


@dataclass
class StreamSource:
    """A camera served by mediamtx.

    Attributes:
        device_id: Camera device id, used in the path names.
        device_topic: MQTT topic root of the camera, passed to the script.
    """

    device_id: str
    device_topic: str


def build_mediamtx_config(config: BridgeConfig, cameras: list[StreamSource]) -> dict[str, Any]:
    """Build the mediamtx configuration document.

    Args:
        config: Bridge configuration (livestream credentials, RTSP port,
            stream script).
        cameras: Cameras to create paths for.

    Returns:
        Configuration as a dict, ready to dump as YAML.
    """
    users: list[dict[str, Any]] = [
        {'user': 'any', 'ips': ['127.0.0.1'], 'permissions': [{'action': 'publish'}]},
    ]
    if config.livestream_user and config.livestream_pass:
        users.append({
            'user': config.livestream_user,
            'pass': config.livestream_pass.get_secret_value(),
            'ips': [],
            'permissions': [{'action': 'read'}],
        })

    document: dict[str, Any] = {
        'logLevel': 'info',
        'logDestinations': ['stdout'],
        'readTimeout': '10s',
        'writeTimeout': '10s',
        'writeQueueSize': 2048,
        'api': False,
        'pprof': False,
        'playback': False,
        'rtmp': False,
        'hls': False,
        'webrtc': False,
        'srt': False,
        'authInternalUsers': users,
        'rtsp': True,
        'protocols': ['tcp'],
        'rtspAddress': f':{config.rtsp_port}',
        'pathDefaults': {
            'maxReaders': 50,
            'record': False,
            'overridePublisher': True,
            'rtspTransport': 'tcp',
            'runOnDemandStartTimeout': '10s',
            'runOnDemandCloseAfter': '1s',
            'runOnDemandRestart': True,
        },
    }

    script = config.stream_script.resolve()
    paths: dict[str, Any] = {}
    for camera in cameras:
        for kind in ('live', 'event'):
            path = f'{camera.device_id}_{kind}'
            url = f'rtsp://127.0.0.1:{config.rtsp_port}/{path}'
            paths[path] = {
                'runOnDemand': f'"{script}" {camera.device_id} {kind} {camera.device_topic} {url}',
            }
    document['paths'] = paths
    return document


def retag_line(line: str) -> str:
    """Replace mediamtx timestamps with a ``[MediaMTX]`` tag."""
    return _TIMESTAMP.sub('[MediaMTX] ', line)


class MediaMTXSupervisor:
    """Runs mediamtx and restarts it whenever it exits.

    The configuration file is rewritten atomically before every start. An
    unexpected exit is followed by a force kill and a restart after
    ``RESTART_DELAY`` seconds, with no retry limit.

    Attributes:
        started: True once :meth:`start` has been called.
    """

    def __init__(self, config: BridgeConfig) -> None:
        self._config = config
        self._cameras: list[StreamSource] = []
        self._process: asyncio.subprocess.Process | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = False
        self.started = False

    @property
    def config_path(self) -> Path:
        return self._config.mediamtx_config_path

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def write_config(self) -> bool:
        """Write the mediamtx configuration file.

        Returns:
            True on success; failures are logged.
        """
        document = build_mediamtx_config(self._config, self._cameras)
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            write_file_atomic(self.config_path, yaml.safe_dump(document, sort_keys=False, width=4096))
        except OSError as e:
            logger.error(f'Failed to write mediamtx configuration file {self.config_path}: {e}')
            return False
        logger.debug(f'Successfully wrote mediamtx configuration file: {self.config_path}')
        return True

    async def start(self, cameras: list[StreamSource]) -> None:
        """Start supervising mediamtx for ``cameras``."""
        if self.started:
            return
        self.started = True
        self._stopping = False
        self._cameras = list(cameras)
        logger.info(f'Starting mediamtx for {len(self._cameras)} camera(s)')
        self._task = asyncio.create_task(self._supervise())

    async def _supervise(self) -> None:
        while not self._stopping:
            self.write_config()
            try:
                self._process = await asyncio.create_subprocess_exec(
                    self._config.mediamtx_binary,
                    str(self.config_path),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                logger.error(f'Failed to start mediamtx: {e}')
            else:
                logger.debug('The mediamtx process was started successfully')
                await asyncio.gather(
                    self._relay(self._process.stdout),
                    self._relay(self._process.stderr),
                    self._process.wait(),
                )
                await self._kill()

            if self._stopping:
                break
            logger.warning(f'The mediamtx process exited unexpectedly, will restart in {RESTART_DELAY:g} seconds...')
            await asyncio.sleep(RESTART_DELAY)

    async def _relay(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode('utf-8', errors='replace').rstrip()
            if line:
                logger.debug(retag_line(line))

    async def _kill(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
            await process.wait()
        except ProcessLookupError:
            pass

    async def stop(self) -> None:
        """Stop mediamtx and the supervisor."""
        self._stopping = True
        process = self._process
        if process is not None and process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=STOP_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning('mediamtx did not exit, killing it')
                await self._kill()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._process = None
