"""
Helpers for handing a track off to the Spotify app or web player when the
alarm falls back to the local tone.
"""

import asyncio
import webbrowser
from typing import Callable, Optional

from .logging_utils import get_logger

logger = get_logger(__name__)

__all__ = ("track_links", "open_track_deep_link")

WEB_TRACK_URL = "https://open.spotify.com/track/{track_id}"
APP_TRACK_URI = "spotify:track:{track_id}"


def track_links(track_uri: str) -> Optional[tuple]:
    """Return ``(app_uri, web_url)`` for a ``spotify:track:<id>`` URI, else None."""
    parts = (track_uri or "").split(":")
    if len(parts) < 3 or not parts[2]:
        return None
    track_id = parts[2]
    return APP_TRACK_URI.format(track_id=track_id), WEB_TRACK_URL.format(track_id=track_id)


def _open(opener: Callable[[str], object], url: str) -> None:
    try:
        opener(url)
    except Exception as exc:
        logger.warning("Could not open %s: %s", url, exc)


async def open_track_deep_link(track_uri: str, is_mobile: bool = False,
                               web_delay_s: float = 2.5,
                               opener: Callable[[str], object] = webbrowser.open) -> bool:
    """
    Open the track in the streaming app (mobile) or web player.

    On mobile the app URI scheme is tried first and the web URL follows after
    ``web_delay_s`` in case the app is not installed. Desktop goes straight to
    the web URL. Returns False when the URI carries no track id.
    """
    links = track_links(track_uri)
    if links is None:
        logger.debug("No track id in %r, skipping deep link", track_uri)
        return False
    app_uri, web_url = links

    if is_mobile:
        _open(opener, app_uri)
        await asyncio.sleep(web_delay_s)
    _open(opener, web_url)
    logger.info("Opened track link for %s", track_uri)
    return True
