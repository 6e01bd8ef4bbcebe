"""Ring cloud API client and device handles."""

from ring_mqtt.ring.client import (
    RefreshTokenUpdate,
    RingApiClient,
    RingAuthOptions,
    RingRestClient,
    fetch_refresh_token,
)
from ring_mqtt.ring.errors import (
    RingAuthenticationError,
    RingClientError,
    RingConnectionError,
    RingTwoFactorRequired,
)
from ring_mqtt.ring.models import (
    HubConnection,
    RingCamera,
    RingChime,
    RingDevice,
    RingDeviceType,
    RingIntercom,
    RingLocation,
    RingLocationModeDevice,
    RingRestDevice,
)


__all__ = [
    'HubConnection',
    'RefreshTokenUpdate',
    'RingApiClient',
    'RingAuthOptions',
    'RingAuthenticationError',
    'RingCamera',
    'RingChime',
    'RingClientError',
    'RingConnectionError',
    'RingDevice',
    'RingDeviceType',
    'RingIntercom',
    'RingLocation',
    'RingLocationModeDevice',
    'RingRestClient',
    'RingTwoFactorRequired',
    'fetch_refresh_token',
]
