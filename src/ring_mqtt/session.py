"""Ring API session management.

Owns the authenticated :class:`RingApiClient`, opens it from the saved or a
freshly generated refresh token, re-establishes it after outages and keeps
the state file in step with refresh token rotations.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from loguru import logger  # type: ignore[import-untyped]

from ring_mqtt.config import BridgeConfig
from ring_mqtt.ring import (
    RefreshTokenUpdate,
    RingApiClient,
    RingAuthOptions,
    RingClientError,
)
from ring_mqtt.state import StateStore


ClientFactory = Callable[[RingAuthOptions], RingApiClient]


class RingSession:
    """Authenticated session to the Ring API.

    Attributes:
        client: The live API client, or None before a successful init.
        refresh_token: Last known-good refresh token.
    """

    def __init__(
        self,
        config: BridgeConfig,
        state: StateStore,
        client_factory: ClientFactory = RingApiClient,
    ) -> None:
        self._config = config
        self._state = state
        self._client_factory = client_factory
        self.client: RingApiClient | None = None
        self.refresh_token: str | None = None
        self.available = False

    def build_auth_options(self) -> RingAuthOptions:
        """Build session options from the state and configuration."""
        system_id = self._state.system_id
        prefix = 'ring-mqtt-addon' if self._config.run_mode == 'addon' else 'ring-mqtt'
        options: dict[str, object] = {
            'refresh_token': self.refresh_token or '',
            'system_id': system_id,
            'control_center_display_name': f'{prefix}-{system_id[-5:]}',
        }
        if self._config.enable_cameras:
            options['camera_status_polling_seconds'] = self._config.camera_polling_seconds
        if self._config.enable_modes:
            options['location_mode_polling_seconds'] = self._config.location_mode_polling_seconds
        if self._config.location_ids:
            options['location_ids'] = list(self._config.location_ids)
        return RingAuthOptions(**options)

    async def init(self, generated_token: str | None = None) -> RingApiClient | None:
        """Open the session, or re-establish it if a client already exists.

        Args:
            generated_token: Token from the auth flow; the saved token is
                used when omitted.

        Returns:
            The connected client, or None when the connection failed.
        """
        self.refresh_token = generated_token or self._state.refresh_token or None

        if self.client is not None:
            return await self.reestablish()

        source = 'generated' if generated_token else 'saved'
        logger.info(f'Attempting connection to Ring API using {source} refresh token...')
        client = self._client_factory(self.build_auth_options())
        try:
            await asyncio.sleep(self._config.settle_delay)
            await client.get_profile()
        except RingClientError as e:
            logger.warning(f'Failed to establish connection to Ring API: {e}')
            self.available = False
            await client.close()
            return None

        self.client = client
        self.available = True
        client.subscribe_refresh_token_updated(self._on_refresh_token_updated)
        logger.info('Successfully established connection to Ring API')
        return client

    async def reestablish(self) -> RingApiClient | None:
        """Reinject the known-good token into the existing client and retry."""
        if self.client is None:
            return None
        logger.info('Attempting to re-establish connection to Ring API using refresh token')
        self._reinject_token()
        try:
            await asyncio.sleep(self._config.settle_delay)
            await self.client.get_profile()
        except RingClientError as e:
            logger.warning(f'Failed to re-establish connection to Ring API: {e}')
            self.available = False
            return None
        self.available = True
        logger.info('Successfully re-established connection to Ring API')
        return self.client

    def check_refresh_token(self) -> bool:
        """Repair a blanked live refresh token.

        Returns:
            True when the token had gone empty and was reinjected.
        """
        if self.client is None or self.client.rest.refresh_token:
            return False
        logger.warning('Possible Ring service outage detected, forcing use of refresh token from latest state')
        self._reinject_token()
        return True

    def _reinject_token(self) -> None:
        assert self.client is not None
        self.client.rest.refresh_token = self.refresh_token
        self.client.rest.clear_auth_cache()

    def _on_refresh_token_updated(self, update: RefreshTokenUpdate) -> None:
        if not update.old_refresh_token:
            return
        logger.debug('Received updated refresh token')
        self.refresh_token = update.new_refresh_token
        self._state.update_token(update.new_refresh_token, update.old_refresh_token)

    async def close(self) -> None:
        """Close the API client."""
        if self.client is not None:
            try:
                await self.client.close()
            except Exception as e:
                logger.debug(f'Error while closing Ring API client: {e}')
            self.client = None
        self.available = False
