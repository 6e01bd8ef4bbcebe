"""Tests for the mediamtx configuration and supervisor."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from pydantic import SecretStr

import ring_mqtt.media
from ring_mqtt.config import BridgeConfig
from ring_mqtt.media import MediaMTXSupervisor, StreamSource, build_mediamtx_config, retag_line


# ============================================================================
# Test Fixtures and Helpers
# ============================================================================


class FakeProcess:
    """Stand-in for an asyncio subprocess."""

    def __init__(self, lines: list[bytes] | None = None, exit_code: int | None = None) -> None:
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        for line in lines or []:
            self.stdout.feed_data(line)
        self.returncode: int | None = None
        self.terminated = False
        self._exited = asyncio.Event()
        if exit_code is not None:
            self._exit(exit_code)

    def _exit(self, code: int) -> None:
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self._exit(0)

    def kill(self) -> None:
        self._exit(-9)


CAMERAS = [
    StreamSource('aabbccddeeff', 'ring/loc1/camera/aabbccddeeff'),
    StreamSource('112233445566', 'ring/loc1/camera/112233445566'),
]


async def wait_for(predicate: object, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():  # type: ignore[operator]
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError('condition not met in time')
        await asyncio.sleep(0.005)


# ============================================================================
# Configuration Tests
# ============================================================================


class TestBuildConfig:
    """Tests for build_mediamtx_config."""

    def test_paths(self) -> None:
        """Test each camera gets a live and an event path."""
        document = build_mediamtx_config(BridgeConfig(), CAMERAS)

        assert list(document['paths']) == [
            'aabbccddeeff_live',
            'aabbccddeeff_event',
            '112233445566_live',
            '112233445566_event',
        ]
        command = document['paths']['aabbccddeeff_event']['runOnDemand']
        assert 'start-stream.sh" aabbccddeeff event ring/loc1/camera/aabbccddeeff' in command
        assert command.endswith('rtsp://127.0.0.1:8554/aabbccddeeff_event')

    def test_rtsp_port(self) -> None:
        """Test the configured RTSP port is used."""
        document = build_mediamtx_config(BridgeConfig(rtsp_port=9554), CAMERAS[:1])

        assert document['rtspAddress'] == ':9554'
        assert document['paths']['aabbccddeeff_live']['runOnDemand'].endswith(':9554/aabbccddeeff_live')

    def test_publish_only_without_credentials(self) -> None:
        """Test only local publishing is allowed without livestream credentials."""
        document = build_mediamtx_config(BridgeConfig(), [])

        assert document['authInternalUsers'] == [
            {'user': 'any', 'ips': ['127.0.0.1'], 'permissions': [{'action': 'publish'}]},
        ]
        assert document['paths'] == {}

    def test_livestream_credentials(self) -> None:
        """Test livestream credentials add a read user."""
        config = BridgeConfig(livestream_user='viewer', livestream_pass=SecretStr('s3cret'))

        document = build_mediamtx_config(config, [])

        reader = document['authInternalUsers'][1]
        assert reader['user'] == 'viewer'
        assert reader['pass'] == 's3cret'
        assert reader['permissions'] == [{'action': 'read'}]

    def test_user_without_password(self) -> None:
        """Test a user without a password is not added."""
        document = build_mediamtx_config(BridgeConfig(livestream_user='viewer'), [])

        assert len(document['authInternalUsers']) == 1


class TestRetagLine:
    """Tests for retag_line."""

    def test_timestamp_replaced(self) -> None:
        """Test the mediamtx timestamp becomes a tag."""
        line = '2024/05/01 12:30:45 INF [RTSP] listener opened on :8554'

        assert retag_line(line) == '[MediaMTX] INF [RTSP] listener opened on :8554'

    def test_no_timestamp(self) -> None:
        """Test lines without a timestamp are unchanged."""
        assert retag_line('plain output') == 'plain output'


# ============================================================================
# Supervisor Tests
# ============================================================================


class TestWriteConfig:
    """Tests for MediaMTXSupervisor.write_config."""

    def test_written_as_yaml(self, tmp_path: Path) -> None:
        """Test the file is valid YAML matching the built document."""
        config = BridgeConfig(data_dir=tmp_path)
        supervisor = MediaMTXSupervisor(config)
        supervisor._cameras = list(CAMERAS)

        assert supervisor.write_config() is True

        loaded = yaml.safe_load((tmp_path / 'mediamtx.yaml').read_text(encoding='utf-8'))
        assert loaded == build_mediamtx_config(config, CAMERAS)

    def test_write_failure(self, tmp_path: Path) -> None:
        """Test write failures are reported as False."""
        blocker = tmp_path / 'blocker'
        blocker.write_text('', encoding='utf-8')
        supervisor = MediaMTXSupervisor(BridgeConfig(mediamtx_config=blocker / 'mediamtx.yaml'))

        assert supervisor.write_config() is False


class TestSupervisor:
    """Tests for the mediamtx process supervisor."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, tmp_path: Path) -> None:
        """Test mediamtx is launched with the config file and stopped cleanly."""
        process = FakeProcess([b'2024/05/01 12:30:45 INF ready\n'])
        supervisor = MediaMTXSupervisor(BridgeConfig(data_dir=tmp_path, mediamtx_binary='/usr/bin/mediamtx'))

        with patch('ring_mqtt.media.asyncio.create_subprocess_exec', AsyncMock(return_value=process)) as spawn:
            await supervisor.start(CAMERAS)
            await wait_for(lambda: spawn.await_count == 1)
            assert supervisor.running is True
            await supervisor.stop()

        assert spawn.await_args.args == ('/usr/bin/mediamtx', str(tmp_path / 'mediamtx.yaml'))
        assert process.terminated is True
        assert supervisor.running is False
        assert (tmp_path / 'mediamtx.yaml').exists()

    @pytest.mark.asyncio
    async def test_restart_after_exit(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test an unexpected exit is followed by a restart."""
        monkeypatch.setattr(ring_mqtt.media, 'RESTART_DELAY', 0)
        processes = [FakeProcess(exit_code=1), FakeProcess()]
        supervisor = MediaMTXSupervisor(BridgeConfig(data_dir=tmp_path))

        with patch('ring_mqtt.media.asyncio.create_subprocess_exec', AsyncMock(side_effect=processes)) as spawn:
            await supervisor.start(CAMERAS)
            await wait_for(lambda: spawn.await_count == 2)
            await supervisor.stop()

        assert processes[1].terminated is True

    @pytest.mark.asyncio
    async def test_restart_after_launch_failure(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing binary is retried."""
        monkeypatch.setattr(ring_mqtt.media, 'RESTART_DELAY', 0)
        process = FakeProcess()
        supervisor = MediaMTXSupervisor(BridgeConfig(data_dir=tmp_path))
        spawn = AsyncMock(side_effect=[FileNotFoundError('mediamtx'), process])

        with patch('ring_mqtt.media.asyncio.create_subprocess_exec', spawn):
            await supervisor.start(CAMERAS)
            await wait_for(lambda: spawn.await_count == 2)
            await supervisor.stop()

        assert process.terminated is True

    @pytest.mark.asyncio
    async def test_start_once(self, tmp_path: Path) -> None:
        """Test a second start is ignored."""
        supervisor = MediaMTXSupervisor(BridgeConfig(data_dir=tmp_path))

        with patch('ring_mqtt.media.asyncio.create_subprocess_exec', AsyncMock(return_value=FakeProcess())) as spawn:
            await supervisor.start(CAMERAS)
            await supervisor.start(CAMERAS)
            await wait_for(lambda: spawn.await_count == 1)
            await asyncio.sleep(0.01)
            await supervisor.stop()

        assert spawn.await_count == 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self) -> None:
        """Test stop before start is a no-op."""
        supervisor = MediaMTXSupervisor(BridgeConfig())

        await supervisor.stop()

        assert supervisor.running is False
