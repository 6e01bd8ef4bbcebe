"""Tests for the command line entry point and application root."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ring_mqtt.__main__ import build_parser, load_config, main, run_auth
from ring_mqtt.app import RingMqttApp
from ring_mqtt.config import BridgeConfig
from ring_mqtt.ring import RingAuthenticationError, RingTwoFactorRequired


# ============================================================================
# Test Fixtures and Helpers
# ============================================================================


def create_app(tmp_path: Path, token: str | None = 'saved-token') -> RingMqttApp:
    """Create an app with mocked session, MQTT and controller."""
    config = BridgeConfig(data_dir=tmp_path, enable_cameras=False, token_check_interval=0.01)
    if token:
        (tmp_path / 'ring-state.json').write_text(json.dumps({'ring_token': token, 'systemId': 'abc'}), encoding='utf-8')

    session = MagicMock()
    session.init = AsyncMock(return_value=MagicMock())
    session.close = AsyncMock()
    mqtt = MagicMock()
    mqtt.start = AsyncMock()
    mqtt.stop = AsyncMock()

    app = RingMqttApp(config, session=session, mqtt=mqtt)
    app.controller = MagicMock()
    app.controller.start = AsyncMock()
    app.controller.shutdown = AsyncMock()
    app.install_signal_handlers = MagicMock()  # type: ignore[method-assign]
    return app


# ============================================================================
# Argument Parsing Tests
# ============================================================================


class TestBuildParser:
    """Tests for build_parser."""

    def test_run_with_token(self) -> None:
        """Test the run subcommand accepts a token."""
        args = build_parser().parse_args(['-c', 'config.json', '--debug', 'run', '-t', 'tok'])

        assert args.command == 'run'
        assert args.token == 'tok'
        assert args.config == 'config.json'
        assert args.debug is True

    def test_no_subcommand(self) -> None:
        """Test the command defaults to None (run)."""
        args = build_parser().parse_args([])

        assert args.command is None
        assert args.config is None

    def test_auth_requires_email(self) -> None:
        """Test the auth subcommand requires an email."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(['auth'])

        args = build_parser().parse_args(['auth', '-e', 'me@example.com'])
        assert args.email == 'me@example.com'


class TestLoadConfig:
    """Tests for load_config."""

    def test_from_file(self, tmp_path: Path) -> None:
        """Test a config path loads the JSON file."""
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'ring_topic': 'myring'}), encoding='utf-8')

        assert load_config(str(path)).ring_topic == 'myring'

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the environment is used without a config path."""
        monkeypatch.setenv('RINGMQTT_RING_TOPIC', 'envring')

        assert load_config(None).ring_topic == 'envring'


class TestMain:
    """Tests for main."""

    def test_missing_config(self, tmp_path: Path) -> None:
        """Test a missing config file exits with code 2."""
        with patch('ring_mqtt.__main__.configure_logging'):
            assert main(['-c', str(tmp_path / 'missing.json')]) == 2

    def test_invalid_config(self, tmp_path: Path) -> None:
        """Test an invalid config file exits with code 2."""
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'republish_count': 0}), encoding='utf-8')

        with patch('ring_mqtt.__main__.configure_logging'):
            assert main(['-c', str(path)]) == 2

    def test_run_dispatch(self, tmp_path: Path) -> None:
        """Test the run command starts the app with the given token."""
        path = tmp_path / 'config.json'
        path.write_text('{}', encoding='utf-8')

        with (
            patch('ring_mqtt.__main__.configure_logging'),
            patch('ring_mqtt.__main__.RingMqttApp') as mock_app,
        ):
            mock_app.return_value.run = AsyncMock(return_value=0)
            assert main(['-c', str(path), 'run', '-t', 'tok']) == 0

        mock_app.return_value.run.assert_awaited_once_with(generated_token='tok')


# ============================================================================
# Token Generation Tests
# ============================================================================


class TestRunAuth:
    """Tests for run_auth."""

    @pytest.mark.asyncio
    async def test_token_saved(self, tmp_path: Path) -> None:
        """Test a generated token is written to the state file."""
        config = BridgeConfig(data_dir=tmp_path)

        with (
            patch('ring_mqtt.__main__.getpass.getpass', return_value='pw'),
            patch('ring_mqtt.__main__.fetch_refresh_token', AsyncMock(return_value='new-token')),
        ):
            assert await run_auth(config, 'me@example.com') == 0

        saved = json.loads((tmp_path / 'ring-state.json').read_text(encoding='utf-8'))
        assert saved['ring_token'] == 'new-token'

    @pytest.mark.asyncio
    async def test_two_factor_prompt(self, tmp_path: Path) -> None:
        """Test the two-factor code is prompted for and sent."""
        config = BridgeConfig(data_dir=tmp_path)
        fetch = AsyncMock(side_effect=[RingTwoFactorRequired('sms code sent to +1xx'), 'new-token'])

        with (
            patch('ring_mqtt.__main__.getpass.getpass', return_value='pw'),
            patch('builtins.input', return_value=' 123456 ') as mock_input,
            patch('ring_mqtt.__main__.fetch_refresh_token', fetch),
        ):
            assert await run_auth(config, 'me@example.com') == 0

        mock_input.assert_called_once_with('sms code sent to +1xx: ')
        assert fetch.await_args.args[3] == '123456'

    @pytest.mark.asyncio
    async def test_rejected(self, tmp_path: Path) -> None:
        """Test rejected credentials exit with code 1."""
        config = BridgeConfig(data_dir=tmp_path)

        with (
            patch('ring_mqtt.__main__.getpass.getpass', return_value='bad'),
            patch('ring_mqtt.__main__.fetch_refresh_token', AsyncMock(side_effect=RingAuthenticationError('no'))),
        ):
            assert await run_auth(config, 'me@example.com') == 1

        assert not (tmp_path / 'ring-state.json').exists()


# ============================================================================
# Application Tests
# ============================================================================


class TestRingMqttApp:
    """Tests for RingMqttApp."""

    def test_media_only_with_cameras(self, tmp_path: Path) -> None:
        """Test the mediamtx supervisor is created only when cameras are enabled."""
        with_cameras = RingMqttApp(BridgeConfig(data_dir=tmp_path), session=MagicMock(), mqtt=MagicMock())
        without = RingMqttApp(
            BridgeConfig(data_dir=tmp_path, enable_cameras=False), session=MagicMock(), mqtt=MagicMock(),
        )

        assert with_cameras.media is not None
        assert without.media is None

    def test_mqtt_will_marks_bridge_offline(self, tmp_path: Path) -> None:
        """Test the default MQTT client carries a retained offline last will."""
        with patch('ring_mqtt.app.MQTTClient') as mock_client:
            RingMqttApp(BridgeConfig(data_dir=tmp_path), session=MagicMock())

        will = mock_client.call_args.kwargs['will']
        assert will.topic == 'ring/bridge/status'
        assert will.payload == 'offline'
        assert will.retain is True

    @pytest.mark.asyncio
    async def test_run_without_token(self, tmp_path: Path) -> None:
        """Test the bridge refuses to start without a refresh token."""
        app = create_app(tmp_path, token=None)

        assert await app.run() == 1

        app.session.init.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_and_stop(self, tmp_path: Path) -> None:
        """Test the bridge starts its parts and shuts down on request."""
        app = create_app(tmp_path)
        asyncio.get_running_loop().call_later(0.05, app.request_stop)

        assert await app.run() == 0

        app.session.init.assert_awaited_once_with(None)
        app.controller.start.assert_awaited_once()
        app.mqtt.start.assert_awaited_once()
        app.controller.shutdown.assert_awaited_once()
        app.mqtt.stop.assert_awaited_once()
        app.session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_generated_token_saved(self, tmp_path: Path) -> None:
        """Test a token given on the command line is saved and used."""
        app = create_app(tmp_path, token=None)
        app.request_stop()

        await app.run(generated_token='cli-token')

        assert app.state.refresh_token == 'cli-token'
        saved = json.loads((tmp_path / 'ring-state.json').read_text(encoding='utf-8'))
        assert saved['ring_token'] == 'cli-token'

    @pytest.mark.asyncio
    async def test_connect_retries(self, tmp_path: Path) -> None:
        """Test failed connections are retried without the generated token."""
        app = create_app(tmp_path)
        app.session.init = AsyncMock(side_effect=[None, None, MagicMock()])

        assert await app.connect_ring('cli-token') is True

        assert [c.args[0] for c in app.session.init.await_args_list] == ['cli-token', None, None]

    @pytest.mark.asyncio
    async def test_connect_stopped(self, tmp_path: Path) -> None:
        """Test a stop request ends the retry loop."""
        app = create_app(tmp_path)
        app.session.init = AsyncMock(return_value=None)
        asyncio.get_running_loop().call_later(0.05, app.request_stop)

        assert await app.connect_ring() is False

    @pytest.mark.asyncio
    async def test_shutdown_survives_controller_error(self, tmp_path: Path) -> None:
        """Test MQTT and the session are closed even if the controller fails."""
        app = create_app(tmp_path)
        app.controller.shutdown.side_effect = RuntimeError('boom')

        await app.shutdown()

        app.mqtt.stop.assert_awaited_once()
        app.session.close.assert_awaited_once()
