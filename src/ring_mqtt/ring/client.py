"""Async client for the Ring cloud REST API.

This module provides an httpx-based REST client handling OAuth refresh-token
exchange, session registration and refresh-token rotation, and a higher
level :class:`RingApiClient` that enumerates locations and devices and polls
camera status and active dings.

Example:
    >>> options = RingAuthOptions(refresh_token=token, system_id=system_id)
    >>> client = RingApiClient(options)
    >>> profile = await client.get_profile()
    >>> locations = await client.get_locations()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger  # type: ignore[import-untyped]
from pydantic import BaseModel, Field

from ring_mqtt.ring.errors import (
    RingAuthenticationError,
    RingClientError,
    RingConnectionError,
    RingTwoFactorRequired,
)
from ring_mqtt.ring.models import (
    CLIENT_API_BASE,
    DEVICE_API_BASE,
    HubConnection,
    RingCamera,
    RingChime,
    RingIntercom,
    RingLocation,
    RingRestDevice,
)
from ring_mqtt.utils import CallbackList, Unsubscribe


OAUTH_URL = 'https://oauth.ring.com/oauth/token'
HISTORY_URL = 'https://api.ring.com/evm/v2/history/devices'
OAUTH_CLIENT_ID = 'ring_official_android'
USER_AGENT = 'android:com.ringapp'
API_VERSION = 11


@dataclass
class RefreshTokenUpdate:
    """A refresh token rotation.

    Attributes:
        new_refresh_token: Token issued by Ring.
        old_refresh_token: Token it replaces, ``None`` on the first exchange.
    """

    new_refresh_token: str
    old_refresh_token: str | None


class RingAuthOptions(BaseModel):
    """Options used to open a Ring API session.

    Serialised with ``model_dump(by_alias=True, exclude_none=True)`` this is
    the ``{refreshToken, systemId, controlCenterDisplayName, ...}`` document
    the Ring API session is built from.
    """

    refresh_token: str = Field(alias='refreshToken')
    system_id: str = Field(alias='systemId')
    control_center_display_name: str = Field(default='ring-mqtt', alias='controlCenterDisplayName')
    camera_status_polling_seconds: int | None = Field(default=None, alias='cameraStatusPollingSeconds')
    location_mode_polling_seconds: int | None = Field(default=None, alias='locationModePollingSeconds')
    location_ids: list[str] | None = Field(default=None, alias='locationIds')

    model_config = {'extra': 'forbid', 'populate_by_name': True}


class RingRestClient:
    """Authenticated REST transport for the Ring API.

    Attributes:
        refresh_token: The live refresh token. Ring can blank it during
            service outages; the session watchdog reinjects it.
        system_id: Hardware id registered with the session.
    """

    def __init__(
        self,
        refresh_token: str | None,
        system_id: str,
        control_center_display_name: str = 'ring-mqtt',
        timeout: float = 20.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.refresh_token = refresh_token
        self.system_id = system_id
        self.control_center_display_name = control_center_display_name
        self._timeout = timeout
        self._client = http_client
        self._access_token: str | None = None
        self._session_created = False
        self._auth_lock = asyncio.Lock()
        self._token_callbacks: CallbackList[RefreshTokenUpdate] = CallbackList('refresh token')

    def subscribe_refresh_token(self, callback: Callable[[RefreshTokenUpdate], Any]) -> Unsubscribe:
        """Subscribe to refresh token rotations."""
        return self._token_callbacks.add(callback)

    def clear_auth_cache(self) -> None:
        """Forget the access token and session so the next call re-authenticates."""
        self._access_token = None
        self._session_created = False

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers={'User-Agent': USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _ensure_auth(self) -> str:
        async with self._auth_lock:
            if self._access_token is None:
                await self._refresh_access_token()
            if not self._session_created:
                await self._create_session()
            assert self._access_token is not None
            return self._access_token

    async def _refresh_access_token(self) -> None:
        if not self.refresh_token:
            raise RingAuthenticationError('No refresh token available')

        data = await oauth_request(
            self._http(),
            {'grant_type': 'refresh_token', 'refresh_token': self.refresh_token},
            self.system_id,
        )
        self._access_token = data['access_token']
        new_token = data.get('refresh_token')
        if new_token and new_token != self.refresh_token:
            old_token = self.refresh_token
            self.refresh_token = new_token
            self._token_callbacks.notify(RefreshTokenUpdate(new_token, old_token))

    async def _create_session(self) -> None:
        await self._send(
            'POST',
            f'{CLIENT_API_BASE}session',
            json={
                'device': {
                    'hardware_id': self.system_id,
                    'metadata': {
                        'api_version': API_VERSION,
                        'device_model': self.control_center_display_name,
                    },
                    'os': 'android',
                },
            },
        )
        self._session_created = True
        logger.debug('Registered Ring API session')

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated API request.

        A 401 response clears the auth cache and retries once.

        Args:
            method: HTTP method.
            url: Absolute endpoint URL.
            params: Query parameters.
            json: JSON body.

        Returns:
            Decoded JSON response, or None for an empty body.

        Raises:
            RingClientError: If the request fails.
        """
        await self._ensure_auth()
        try:
            return await self._send(method, url, params=params, json=json)
        except RingAuthenticationError as e:
            if e.status_code != 401:
                raise
            logger.debug('Access token rejected, re-authenticating')
            self.clear_auth_cache()
            await self._ensure_auth()
            return await self._send(method, url, params=params, json=json)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        headers = {'hardware_id': self.system_id}
        if self._access_token:
            headers['Authorization'] = f'Bearer {self._access_token}'

        try:
            response = await self._http().request(method, url, params=params, json=json, headers=headers)
        except httpx.ConnectError as e:
            raise RingConnectionError(f'Connection failed: {e}', original_error=e) from e
        except httpx.TimeoutException as e:
            raise RingConnectionError(f'Request timed out: {e}', original_error=e) from e
        except httpx.HTTPError as e:
            raise RingConnectionError(f'Request failed: {e}', original_error=e) from e

        if response.status_code == 401:
            raise RingAuthenticationError('Authentication failed - access token rejected', status_code=401)

        if response.status_code == 403:
            raise RingAuthenticationError('Access forbidden', status_code=403)

        if response.status_code >= 400:
            raise RingClientError(
                f'API request {method} {url} failed: {response.text}',
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text


async def oauth_request(
    client: httpx.AsyncClient,
    grant: dict[str, str],
    system_id: str,
    two_factor_code: str | None = None,
) -> dict[str, Any]:
    """Exchange a grant at the Ring OAuth endpoint.

    Args:
        client: HTTP client to use.
        grant: ``grant_type`` plus the grant's own fields.
        system_id: Hardware id sent with the request.
        two_factor_code: Optional 2FA code for password grants.

    Returns:
        The token response (``access_token``, ``refresh_token``, ...).

    Raises:
        RingTwoFactorRequired: If Ring asks for a two-factor code.
        RingAuthenticationError: If the grant is rejected.
        RingConnectionError: If Ring cannot be reached.
    """
    headers = {'hardware_id': system_id, '2fa-support': 'true', '2fa-code': two_factor_code or ''}
    body = {'client_id': OAUTH_CLIENT_ID, 'scope': 'client', **grant}
    try:
        response = await client.post(OAUTH_URL, json=body, headers=headers)
    except httpx.HTTPError as e:
        raise RingConnectionError(f'OAuth request failed: {e}', original_error=e) from e

    if response.status_code == 412:
        try:
            details = response.json()
        except ValueError:
            details = {}
        prompt = details.get('tsv_state') or ''
        if details.get('phone'):
            prompt = f'{prompt} code sent to {details["phone"]}'.strip()
        raise RingTwoFactorRequired(prompt)

    if response.status_code >= 400:
        raise RingAuthenticationError(
            f'Failed to authenticate with Ring: {response.text}',
            status_code=response.status_code,
        )

    data = response.json()
    if 'access_token' not in data:
        raise RingAuthenticationError('OAuth response did not include an access token')
    return data


async def fetch_refresh_token(
    email: str,
    password: str,
    system_id: str,
    two_factor_code: str | None = None,
) -> str:
    """Obtain a refresh token with account credentials.

    Raises:
        RingTwoFactorRequired: If a two-factor code must be supplied.
        RingAuthenticationError: If the credentials are rejected.
    """
    async with httpx.AsyncClient(timeout=httpx.Timeout(20.0), headers={'User-Agent': USER_AGENT}) as client:
        data = await oauth_request(
            client,
            {'grant_type': 'password', 'username': email, 'password': password},
            system_id,
            two_factor_code,
        )
    return str(data['refresh_token'])


HubFactory = Callable[[dict[str, Any], RingRestClient], 'HubConnection | None']


class RingApiClient:
    """High level Ring API: profile, locations, devices and polling.

    Attributes:
        options: Options the session was opened with.
    """

    DING_POLL_INTERVAL = 5.0

    def __init__(
        self,
        options: RingAuthOptions,
        hub_factory: HubFactory | None = None,
        rest: RingRestClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            options: Session options.
            hub_factory: Builds the push connection for a location with hubs.
            rest: Pre-built REST transport (mainly for tests).
        """
        self.options = options
        self._hub_factory = hub_factory
        self._rest = rest or RingRestClient(
            options.refresh_token,
            options.system_id,
            options.control_center_display_name,
        )
        self._locations: list[RingLocation] | None = None
        self._rest_devices: dict[int, RingRestDevice] = {}
        self._seen_dings: set[str] = set()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def rest(self) -> RingRestClient:
        return self._rest

    def subscribe_refresh_token_updated(self, callback: Callable[[RefreshTokenUpdate], Any]) -> Unsubscribe:
        """Subscribe to refresh token rotations."""
        return self._rest.subscribe_refresh_token(callback)

    async def get_profile(self) -> dict[str, Any]:
        """Fetch the account profile (also validates the session)."""
        result = await self._rest.request('GET', f'{CLIENT_API_BASE}profile')
        return (result or {}).get('profile', result or {})

    async def fetch_ring_devices(self) -> dict[str, list[dict[str, Any]]]:
        """Fetch the ``ring_devices`` listing."""
        result = await self._rest.request('GET', f'{CLIENT_API_BASE}ring_devices')
        return result or {}

    async def fetch_locations(self) -> list[dict[str, Any]]:
        result = await self._rest.request('GET', f'{DEVICE_API_BASE}locations')
        return list((result or {}).get('user_locations') or [])

    async def get_locations(self) -> list[RingLocation]:
        """Return the account's locations, building them on first call."""
        if self._locations is not None:
            return self._locations

        raw_locations = await self.fetch_locations()
        ring_devices = await self.fetch_ring_devices()
        if self.options.location_ids:
            raw_locations = [loc for loc in raw_locations if loc.get('location_id') in self.options.location_ids]

        locations: list[RingLocation] = []
        for raw in raw_locations:
            location_id = raw.get('location_id')

            def at_location(key: str, location_id: Any = location_id) -> list[dict[str, Any]]:
                return [d for d in ring_devices.get(key) or [] if d.get('location_id') == location_id]

            has_hubs = bool(at_location('base_stations') or at_location('beams_bridges'))
            hub = self._hub_factory(raw, self._rest) if has_hubs and self._hub_factory else None
            location = RingLocation(
                raw,
                self,
                has_hubs=has_hubs,
                hub=hub,
                mode_polling_seconds=self.options.location_mode_polling_seconds,
            )
            location.cameras = [
                RingCamera(d, location, self, is_doorbot=True)
                for d in at_location('doorbots') + at_location('authorized_doorbots')
            ] + [RingCamera(d, location, self) for d in at_location('stickup_cams')]
            location.chimes = [RingChime(d, location, self) for d in at_location('chimes')]
            location.intercoms = [
                RingIntercom(d, location, self)
                for d in at_location('other')
                if str(d.get('kind', '')).startswith('intercom')
            ]
            for device in [*location.cameras, *location.chimes, *location.intercoms]:
                self._rest_devices[device.id] = device
            locations.append(location)

        self._locations = locations
        if self._rest_devices and self.options.camera_status_polling_seconds:
            self._tasks.append(asyncio.create_task(self._poll_device_status(self.options.camera_status_polling_seconds)))
            self._tasks.append(asyncio.create_task(self._poll_active_dings()))
        return locations

    async def get_camera_events(self, cameras: list[RingCamera], limit: int = 100) -> list[dict[str, Any]]:
        """Fetch recent event history for cameras.

        Failures are logged and yield an empty list.
        """
        if not cameras:
            return []
        try:
            result = await self._rest.request(
                'GET',
                HISTORY_URL,
                params={
                    'source_ids': ','.join(str(camera.id) for camera in cameras),
                    'capabilities': 'offline_event',
                    'limit': limit,
                },
            )
        except RingClientError as e:
            logger.debug(f'Failed to retrieve camera event history from Ring API: {e}')
            return []
        items = (result or {}).get('items') if isinstance(result, dict) else None
        return items if isinstance(items, list) else []

    async def _poll_device_status(self, interval: int) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                listing = await self.fetch_ring_devices()
            except RingClientError as e:
                logger.warning(f'Camera status poll failed: {e}')
                continue
            for group in listing.values():
                for data in group or []:
                    device = self._rest_devices.get(data.get('id'))
                    if device is not None:
                        device.update_data(data)

    async def _poll_active_dings(self) -> None:
        while True:
            await asyncio.sleep(self.DING_POLL_INTERVAL)
            try:
                dings = await self._rest.request('GET', f'{CLIENT_API_BASE}dings/active')
            except RingClientError as e:
                logger.debug(f'Active ding poll failed: {e}')
                continue
            self.dispatch_dings(dings or [])

    def dispatch_dings(self, dings: list[dict[str, Any]]) -> None:
        """Deliver new active dings to their devices as events.

        ``dings`` is the full active list; ids that dropped out of it are
        forgotten.
        """
        seen = self._seen_dings
        self._seen_dings = set()
        for ding in dings:
            ding_id = str(ding.get('id_str') or ding.get('id'))
            is_new = ding_id not in seen and ding_id not in self._seen_dings
            self._seen_dings.add(ding_id)
            if not is_new:
                continue
            device = self._rest_devices.get(ding.get('doorbot_id'))
            if device is None:
                continue
            kind = ding.get('kind')
            if kind == 'intercom_unlock':
                kind = 'unlocked'
            if kind in ('motion', 'ding', 'unlocked'):
                device.emit_event(kind, ding)

    async def close(self) -> None:
        """Stop polling, close hub connections and the HTTP client."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        for location in self._locations or []:
            await location.close()
        await self._rest.close()
