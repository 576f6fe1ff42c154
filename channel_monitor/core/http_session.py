"""Shared HTTP sessions for the channel feed and banner images."""

from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from channel_monitor import __version__

FEED_SESSION = "feed"
IMAGE_SESSION = "image"

# name -> (retries, Accept header). The feed never retries; the next scan does.
SESSION_POLICIES: dict[str, tuple[int, str]] = {
    FEED_SESSION: (0, "application/atom+xml,application/xml;q=0.9,*/*;q=0.8"),
    IMAGE_SESSION: (2, "image/avif,image/webp,image/*;q=0.9,*/*;q=0.8"),
}

USER_AGENT = f"channel-monitor/{__version__}"

_sessions: dict[str, requests.Session] = {}


def get_session(name: str = IMAGE_SESSION) -> requests.Session:
    """
    Get or create the cached session for ``name``.

    Retries and the Accept header come from SESSION_POLICIES; unknown names
    get the image policy.
    """
    if name in _sessions:
        return _sessions[name]

    retries, accept = SESSION_POLICIES.get(name, SESSION_POLICIES[IMAGE_SESSION])

    session = requests.Session()
    adapter = HTTPAdapter(
        max_retries=Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": USER_AGENT, "Accept": accept})

    _sessions[name] = session
    return session


def close_all_sessions() -> None:
    """Close all cached sessions."""
    for session in _sessions.values():
        session.close()
    _sessions.clear()


def get(url: str, session_name: str = IMAGE_SESSION, timeout: float = 30.0, **kwargs: Any) -> requests.Response:
    """GET ``url`` through the named session."""
    return get_session(session_name).get(url, timeout=timeout, **kwargs)
