"""
Host environment utilities.

Provides the Do-Not-Track signal and the metadata captured once when a
recording session starts (user agent, page URL, referrer, viewport,
timezone, language).
"""

import os
import platform
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .schema import SessionMetadata


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


def get_user_agent() -> str:
    """
    Build a user agent string for the current process.

    Returns:
        String like "session-sdk/1.0.0 (Linux 6.1; Python 3.11.4)"
    """
    from . import __version__

    return (
        f"session-sdk/{__version__} "
        f"({platform.system()} {platform.release()}; Python {platform.python_version()})"
    )


def get_timezone() -> str:
    """
    Get the local timezone name.

    Returns:
        TZ environment variable if set, otherwise the platform's tz name
    """
    tz = os.environ.get('TZ')
    if tz:
        return tz
    return time.tzname[time.localtime().tm_isdst > 0]


def get_language() -> str:
    """
    Get the preferred language tag.

    Returns:
        Language tag like "en-US", from LC_ALL/LANG, "en-US" as fallback
    """
    for var in ('LC_ALL', 'LC_MESSAGES', 'LANG'):
        value = os.environ.get(var)
        if value and value not in ('C', 'POSIX'):
            # en_US.UTF-8 -> en-US
            return value.split('.')[0].replace('_', '-')
    return 'en-US'


def is_do_not_track() -> bool:
    """
    Check the process-level Do-Not-Track signal.

    Honors the DO_NOT_TRACK convention (DO_NOT_TRACK=1).

    Returns:
        True if the user opted out of tracking
    """
    value = os.environ.get('DO_NOT_TRACK', '')
    return value.strip().lower() in ('1', 'true', 'yes')


@dataclass
class HostEnvironment:
    """
    Description of the page hosting the SDK.

    Fields left at their defaults are read from the process. Set
    do_not_track explicitly to override the DO_NOT_TRACK variable.
    """
    url: str = ""
    referrer: str = ""
    viewport: Tuple[int, int] = (0, 0)
    user_agent: str = field(default_factory=get_user_agent)
    timezone: str = field(default_factory=get_timezone)
    language: str = field(default_factory=get_language)
    do_not_track: Optional[bool] = None

    def is_do_not_track(self) -> bool:
        """Read the privacy signal; called once per start_recording()."""
        if self.do_not_track is not None:
            return self.do_not_track
        return is_do_not_track()

    def capture_metadata(self, timestamp: float) -> SessionMetadata:
        """
        Snapshot session metadata.

        Args:
            timestamp: Session start time (epoch ms)

        Returns:
            Immutable SessionMetadata
        """
        return SessionMetadata(
            user_agent=self.user_agent,
            url=self.url,
            referrer=self.referrer,
            viewport=tuple(self.viewport),
            timestamp=timestamp,
            timezone=self.timezone,
            language=self.language
        )
