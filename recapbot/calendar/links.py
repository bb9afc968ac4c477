"""Meeting link detection for calendar events."""

from __future__ import annotations

import re

from recapbot.models.schemas import MeetingPlatform

ZOOM_LINK_RE = re.compile(r"https://[\w.-]*zoom\.us/(?:j|my)/[0-9a-zA-Z?=&]+", re.IGNORECASE)
TEAMS_LINK_RE = re.compile(r"https://teams\.microsoft\.com/[a-zA-Z0-9/?=._%-]+", re.IGNORECASE)


def extract_meeting_link(
    hangout_link: str | None = None,
    description: str | None = None,
    location: str | None = None,
) -> tuple[str | None, MeetingPlatform | None]:
    """Find the joinable meeting URL for a calendar event.

    A Google Meet hangout link wins; otherwise the description, then the
    location, is searched for a Zoom link and then a Teams link.

    Returns:
        (url, platform), or (None, None) when the event has no link
    """
    if hangout_link:
        return hangout_link, MeetingPlatform.MEET

    texts = [text for text in (description, location) if text]
    for pattern, platform in ((ZOOM_LINK_RE, MeetingPlatform.ZOOM), (TEAMS_LINK_RE, MeetingPlatform.TEAMS)):
        for text in texts:
            match = pattern.search(text)
            if match:
                return match.group(0), platform
    return None, None
