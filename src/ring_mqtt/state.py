"""Persistent JSON state: refresh token, system id and device list.

The state file is a small JSON document::

    {"ring_token": "...", "systemId": "...", "devices": {}}

It is rewritten atomically whenever the vendor rotates the refresh token.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from pathlib import Path
from typing import Any

from loguru import logger  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, ValidationError

from ring_mqtt.utils import write_file_atomic


class StateData(BaseModel):
    """Contents of the state file."""

    ring_token: str = ''
    systemId: str = ''
    devices: dict[str, Any] | list[Any] = Field(default_factory=dict)

    model_config = {'extra': 'allow'}


def generate_system_id() -> str:
    """Return a new hardware id: sha256 hex digest of 32 random bytes."""
    return hashlib.sha256(secrets.token_bytes(32)).hexdigest()


class StateStore:
    """Loads and persists the bridge state file.

    Attributes:
        path: Location of the JSON state file.
        data: The current state.
        valid: True once a state file was read successfully.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.data = StateData()
        self.valid = False

    @property
    def refresh_token(self) -> str:
        return self.data.ring_token

    @property
    def system_id(self) -> str:
        return self.data.systemId

    def load(self) -> StateData:
        """Read the state file, generating a system id when none is stored.

        A missing or unreadable file leaves an empty state; the error is logged
        and startup continues so a token can still be supplied another way.

        Returns:
            The loaded state.
        """
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding='utf-8'))
                self.data = StateData.model_validate(raw)
                self.valid = True
                logger.debug(f'Loaded state file {self.path}')
            except (OSError, ValueError, ValidationError) as e:
                logger.error(f'Saved state file {self.path} exists but could not be parsed: {e}')
        else:
            logger.warning(f'State file {self.path} not found, a new one will be created')

        if not self.data.systemId:
            self.data.systemId = generate_system_id()
            logger.debug('Generated new system id')
            if self.valid:
                self.save()
        return self.data

    def save(self) -> None:
        """Write the state file atomically.

        Raises:
            OSError: If the file cannot be written.
        """
        write_file_atomic(self.path, json.dumps(self.data.model_dump(), indent=2))
        logger.debug(f'Saved state file {self.path}')

    def set_token(self, token: str) -> None:
        """Store an initial refresh token and persist it."""
        self.data.ring_token = token
        self.save()
        logger.info('Saved refresh token to state file')

    def update_token(self, new_token: str, old_token: str | None) -> bool:
        """Persist a rotated refresh token.

        Only rotations are saved: a notification without a previous token is
        the session's initial token and is ignored.

        Args:
            new_token: The refresh token issued by the vendor.
            old_token: The token it replaces.

        Returns:
            True when the state file was rewritten.
        """
        if not old_token or not new_token:
            return False
        self.data.ring_token = new_token
        try:
            self.save()
        except OSError as e:
            logger.error(f'Failed to save updated refresh token: {e}')
            return False
        logger.info('Refresh token updated and saved to state file')
        return True
