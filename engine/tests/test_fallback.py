"""
Tests for track deep links
"""

import asyncio
from unittest.mock import Mock

from alarm_engine.fallback import open_track_deep_link, track_links


class TestTrackLinks:
    def test_track_uri(self):
        assert track_links("spotify:track:abc123") == (
            "spotify:track:abc123",
            "https://open.spotify.com/track/abc123",
        )

    def test_missing_id(self):
        assert track_links("") is None
        assert track_links("spotify:track:") is None
        assert track_links("not-a-uri") is None


class TestOpenTrackDeepLink:
    """Opening the streaming app or web player"""

    def test_desktop_opens_web_url_only(self):
        opener = Mock()

        opened = asyncio.run(open_track_deep_link("spotify:track:abc", opener=opener))

        assert opened is True
        opener.assert_called_once_with("https://open.spotify.com/track/abc")

    def test_mobile_tries_app_then_web(self):
        opener = Mock()

        asyncio.run(open_track_deep_link("spotify:track:abc", is_mobile=True,
                                         web_delay_s=0.01, opener=opener))

        assert [c.args[0] for c in opener.call_args_list] == [
            "spotify:track:abc",
            "https://open.spotify.com/track/abc",
        ]

    def test_no_track_id_opens_nothing(self):
        opener = Mock()
        assert asyncio.run(open_track_deep_link("spotify:track:", opener=opener)) is False
        opener.assert_not_called()

    def test_opener_errors_are_logged(self, caplog):
        opener = Mock(side_effect=OSError("no browser"))

        opened = asyncio.run(open_track_deep_link("spotify:track:abc", opener=opener))

        assert opened is True
        assert "Could not open" in caplog.text
