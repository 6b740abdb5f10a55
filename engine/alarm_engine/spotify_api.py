"""
Spotify Web API wrapper using spotipy
"""

import time
from typing import Callable, List, Optional, Tuple

import requests
from spotipy import Spotify, SpotifyException, SpotifyOAuth
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import SpotifyAuth
from .logging_utils import get_logger
from .models import CloudDevice, RemotePlaybackError

logger = get_logger(__name__)

SCOPES = "user-read-playback-state user-modify-playback-state"
_RETRYABLE = (SpotifyException, requests.ConnectionError, requests.Timeout)

# Alarms cannot wait long for a flaky API; the dispatcher falls back instead
remote_retry = retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
    retry=retry_if_exception_type(_RETRYABLE),
    reraise=True
)


class SpotifyApiWrapper:
    """Thin spotipy wrapper for the playback calls the alarm engine needs"""

    DEVICE_CACHE_TTL_S = 0.75
    REQUEST_TIMEOUT_S = 8.0

    def __init__(self, auth_config: SpotifyAuth, client: Optional[Spotify] = None):
        """
        Initialize API wrapper.

        Args:
            auth_config: Spotify credentials; the token cache is managed by spotipy
            client: Preconfigured client, mainly for tests
        """
        self.auth_config = auth_config
        self._spotify = client
        self._device_cache: Optional[Tuple[List[CloudDevice], float]] = None

    def _get_client(self) -> Spotify:
        """Get authenticated Spotify client"""
        if self._spotify is None:
            oauth = SpotifyOAuth(
                client_id=self.auth_config.client_id,
                client_secret=self.auth_config.client_secret,
                redirect_uri=self.auth_config.redirect_uri,
                scope=SCOPES,
                cache_path=self.auth_config.token_cache,
                open_browser=False
            )
            self._spotify = Spotify(auth_manager=oauth, requests_timeout=self.REQUEST_TIMEOUT_S)
        return self._spotify

    def invalidate_device_cache(self) -> None:
        self._device_cache = None

    @remote_retry
    def get_devices(self, force_refresh: bool = False) -> List[CloudDevice]:
        """
        Get list of available Spotify devices.

        Returns:
            List of CloudDevice objects
        """
        now = time.time()
        if not force_refresh and self._device_cache:
            cached_devices, cached_ts = self._device_cache
            if now - cached_ts <= self.DEVICE_CACHE_TTL_S:
                return cached_devices

        response = self._get_client().devices() or {}
        devices = [CloudDevice.from_spotify_dict(d) for d in response.get('devices', []) if d.get('id')]
        logger.debug(f"Spotify API returned {len(devices)} devices: {[d.name for d in devices]}")
        self._device_cache = (devices, time.time())
        return devices

    @remote_retry
    def put_play_track(self, device_id: str, track_uri: str) -> None:
        """
        Start playback of a single track on a specific device.

        Args:
            device_id: Target device ID
            track_uri: ``spotify:track:...`` URI
        """
        self._get_client().start_playback(device_id=device_id, uris=[track_uri])
        logger.info(f"Started playback on device {device_id} with {track_uri}")
        self.invalidate_device_cache()

    @remote_retry
    def put_volume(self, device_id: Optional[str], percent: int) -> None:
        self._get_client().volume(volume_percent=percent, device_id=device_id)
        logger.debug(f"Set volume to {percent}% for device {device_id}")

    @remote_retry
    def pause_playback(self, device_id: Optional[str] = None) -> None:
        self._get_client().pause_playback(device_id=device_id)
        logger.info(f"Paused playback on device {device_id or 'active'}")
        self.invalidate_device_cache()


class SpotifyRemotePlayback:
    """
    Remote playback collaborator for the dispatcher.

    Remembers the last device it started so ``set_volume`` and ``pause``
    address the same speaker. Errors surface as ``RemotePlaybackError``.
    """

    def __init__(self, api: SpotifyApiWrapper):
        self.api = api
        self.current_device_id: Optional[str] = None
        self._on_ready: List[Callable[[str], None]] = []

    def on_ready(self, callback: Callable[[str], None]) -> None:
        """Register a callback for when a local player device reports its id."""
        self._on_ready.append(callback)

    def device_ready(self, device_id: str) -> None:
        logger.info(f"Local player ready with device id {device_id}")
        for callback in self._on_ready:
            callback(device_id)

    def play_on_device(self, device_id: str, track_uri: str) -> None:
        try:
            self.api.put_play_track(device_id, track_uri)
        except _RETRYABLE as e:
            raise RemotePlaybackError(f"play on {device_id} failed: {e}") from e
        self.current_device_id = device_id

    def list_active_devices(self) -> List[CloudDevice]:
        try:
            return self.api.get_devices(force_refresh=True)
        except _RETRYABLE as e:
            raise RemotePlaybackError(f"device listing failed: {e}") from e

    def set_volume(self, volume: float, device_id: Optional[str] = None) -> None:
        """Set volume (0..1) on ``device_id``, defaulting to the last started device."""
        percent = int(round(max(0.0, min(1.0, volume)) * 100))
        try:
            self.api.put_volume(device_id or self.current_device_id, percent)
        except _RETRYABLE as e:
            raise RemotePlaybackError(f"volume change failed: {e}") from e

    def pause(self) -> None:
        try:
            self.api.pause_playback(self.current_device_id)
        except _RETRYABLE as e:
            raise RemotePlaybackError(f"pause failed: {e}") from e
