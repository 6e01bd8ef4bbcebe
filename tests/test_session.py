"""Tests for Ring API session management."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from ring_mqtt.config import BridgeConfig
from ring_mqtt.ring import RefreshTokenUpdate, RingAuthOptions, RingClientError
from ring_mqtt.session import RingSession
from ring_mqtt.state import StateStore


# ============================================================================
# Test Fixtures and Helpers
# ============================================================================


def create_state(tmp_path: Path, token: str = 'saved-token') -> StateStore:
    """Create a loaded state store holding ``token``."""
    path = tmp_path / 'ring-state.json'
    path.write_text(json.dumps({'ring_token': token, 'systemId': 'abcdef0123456789'}), encoding='utf-8')
    state = StateStore(path)
    state.load()
    return state


def create_client(fail: bool = False) -> MagicMock:
    """Create a mock RingApiClient."""
    client = MagicMock()
    client.get_profile = AsyncMock(side_effect=RingClientError('rejected') if fail else None)
    client.close = AsyncMock()
    client.rest = MagicMock()
    client.rest.refresh_token = 'live-token'
    return client


def create_session(
    tmp_path: Path,
    client: MagicMock | None = None,
    **config: object,
) -> tuple[RingSession, MagicMock, StateStore]:
    """Create a session whose factory returns ``client``."""
    client = client or create_client()
    factory = MagicMock(return_value=client)
    state = create_state(tmp_path)
    session = RingSession(BridgeConfig(settle_delay=0, **config), state, client_factory=factory)
    return session, factory, state


# ============================================================================
# Auth Option Tests
# ============================================================================


class TestBuildAuthOptions:
    """Tests for RingSession.build_auth_options."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Test options for a standard install with cameras enabled."""
        session, _, _ = create_session(tmp_path)
        session.refresh_token = 'tok'

        options = session.build_auth_options()

        assert isinstance(options, RingAuthOptions)
        assert options.refresh_token == 'tok'
        assert options.system_id == 'abcdef0123456789'
        assert options.control_center_display_name == 'ring-mqtt-56789'
        assert options.camera_status_polling_seconds == 20
        assert options.location_mode_polling_seconds is None
        assert options.location_ids is None

    def test_addon_modes_and_locations(self, tmp_path: Path) -> None:
        """Test add-on naming, mode polling and location filter."""
        session, _, _ = create_session(
            tmp_path,
            run_mode='addon',
            enable_cameras=False,
            enable_modes=True,
            location_ids=['loc1'],
        )

        options = session.build_auth_options()

        assert options.control_center_display_name == 'ring-mqtt-addon-56789'
        assert options.camera_status_polling_seconds is None
        assert options.location_mode_polling_seconds == 20
        assert options.location_ids == ['loc1']


# ============================================================================
# Connection Tests
# ============================================================================


class TestInit:
    """Tests for RingSession.init."""

    @pytest.mark.asyncio
    async def test_saved_token(self, tmp_path: Path) -> None:
        """Test the saved token opens the session."""
        session, factory, _ = create_session(tmp_path)

        client = await session.init()

        assert client is factory.return_value
        assert session.available is True
        assert factory.call_args.args[0].refresh_token == 'saved-token'
        client.subscribe_refresh_token_updated.assert_called_once()

    @pytest.mark.asyncio
    async def test_generated_token(self, tmp_path: Path) -> None:
        """Test a generated token takes precedence over the saved one."""
        session, factory, _ = create_session(tmp_path)

        await session.init('generated-token')

        assert session.refresh_token == 'generated-token'
        assert factory.call_args.args[0].refresh_token == 'generated-token'

    @pytest.mark.asyncio
    async def test_failure(self, tmp_path: Path) -> None:
        """Test a failed profile request closes the client and returns None."""
        failing = create_client(fail=True)
        session, _, _ = create_session(tmp_path, client=failing)

        assert await session.init() is None

        assert session.client is None
        assert session.available is False
        failing.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_existing_client_reestablished(self, tmp_path: Path) -> None:
        """Test a second init reuses the client."""
        session, factory, _ = create_session(tmp_path)
        client = await session.init()

        again = await session.init()

        assert again is client
        assert factory.call_count == 1
        assert client.get_profile.await_count == 2
        client.rest.clear_auth_cache.assert_called_once()


class TestReestablish:
    """Tests for RingSession.reestablish."""

    @pytest.mark.asyncio
    async def test_without_client(self, tmp_path: Path) -> None:
        """Test nothing happens before a client exists."""
        session, _, _ = create_session(tmp_path)

        assert await session.reestablish() is None

    @pytest.mark.asyncio
    async def test_token_reinjected(self, tmp_path: Path) -> None:
        """Test the known-good token is reinjected before retrying."""
        session, _, _ = create_session(tmp_path)
        client = await session.init()
        client.rest.refresh_token = None

        assert await session.reestablish() is client

        assert client.rest.refresh_token == 'saved-token'
        client.rest.clear_auth_cache.assert_called_once()

    @pytest.mark.asyncio
    async def test_failure_marks_unavailable(self, tmp_path: Path) -> None:
        """Test a failed retry keeps the client but marks it unavailable."""
        session, _, _ = create_session(tmp_path)
        client = await session.init()
        client.get_profile.side_effect = RingClientError('outage')

        assert await session.reestablish() is None

        assert session.client is client
        assert session.available is False


class TestCheckRefreshToken:
    """Tests for RingSession.check_refresh_token."""

    @pytest.mark.asyncio
    async def test_token_present(self, tmp_path: Path) -> None:
        """Test a live token is left alone."""
        session, _, _ = create_session(tmp_path)
        client = await session.init()

        assert session.check_refresh_token() is False

        client.rest.clear_auth_cache.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_token_reinjected(self, tmp_path: Path) -> None:
        """Test a blanked token is replaced with the known-good one."""
        session, _, _ = create_session(tmp_path)
        client = await session.init()
        client.rest.refresh_token = ''

        assert session.check_refresh_token() is True

        assert client.rest.refresh_token == 'saved-token'
        client.rest.clear_auth_cache.assert_called_once()

    def test_no_client(self, tmp_path: Path) -> None:
        """Test the check is skipped without a client."""
        session, _, _ = create_session(tmp_path)

        assert session.check_refresh_token() is False


class TestRefreshTokenUpdates:
    """Tests for refresh token rotation handling."""

    @pytest.mark.asyncio
    async def test_rotation_saved(self, tmp_path: Path) -> None:
        """Test a rotation updates the session and the state file."""
        session, _, state = create_session(tmp_path)
        client = await session.init()
        callback = client.subscribe_refresh_token_updated.call_args.args[0]

        callback(RefreshTokenUpdate('rotated', 'saved-token'))

        assert session.refresh_token == 'rotated'
        assert state.refresh_token == 'rotated'
        saved = json.loads((tmp_path / 'ring-state.json').read_text(encoding='utf-8'))
        assert saved['ring_token'] == 'rotated'

    @pytest.mark.asyncio
    async def test_first_exchange_ignored(self, tmp_path: Path) -> None:
        """Test an update without an old token is ignored."""
        session, _, state = create_session(tmp_path)
        client = await session.init()
        callback = client.subscribe_refresh_token_updated.call_args.args[0]

        callback(RefreshTokenUpdate('rotated', None))

        assert session.refresh_token == 'saved-token'
        assert state.refresh_token == 'saved-token'


class TestClose:
    """Tests for RingSession.close."""

    @pytest.mark.asyncio
    async def test_close(self, tmp_path: Path) -> None:
        """Test the client is closed and dropped."""
        session, _, _ = create_session(tmp_path)
        client = await session.init()

        await session.close()

        client.close.assert_awaited_once()
        assert session.client is None
        assert session.available is False

    @pytest.mark.asyncio
    async def test_close_error_logged(self, tmp_path: Path) -> None:
        """Test close errors do not escape."""
        session, _, _ = create_session(tmp_path)
        client = await session.init()
        client.close.side_effect = RuntimeError('boom')

        await session.close()

        assert session.client is None
