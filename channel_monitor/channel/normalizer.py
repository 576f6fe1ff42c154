"""Channel URL normalization - canonicalizes user-entered channel references."""

import re

CHANNEL_PAGE_SUFFIXES = ("/videos", "/about", "/playlists", "/community", "/channels", "/featured")

CHANNEL_URL_MARKERS = ("youtube.com/@", "youtube.com/channel/", "youtube.com/c/", "youtube.com/user/")

_CHANNEL_ID_RE = re.compile(r"/channel/(UC[a-zA-Z0-9_-]+)")


def normalize_channel_url(url: str) -> str:
    """
    Normalize a YouTube channel reference to a canonical https URL.

    Supports @handle, /channel/UCxxx, /c/name and /user/name forms. A scheme
    is only added to @handles and bare youtube.com hosts; other text passes
    through the trimming rules as-is. Applying this function twice gives the
    same result as applying it once.

    Args:
        url: Free-form channel reference (e.g., "@Handle" or "youtube.com/@Handle/videos")

    Returns:
        Normalized channel URL
    """
    if not url or not url.strip():
        return url

    url = url.strip()
    lowered = url.lower()

    if not lowered.startswith(("http://", "https://")):
        if url.startswith("@"):
            url = f"https://www.youtube.com/{url}"
        elif lowered.startswith(("youtube.com", "www.youtube.com")):
            url = f"https://{url}"

    if url.lower().startswith("http://"):
        url = "https://" + url[len("http://") :]

    # Strip to a fixed point
    while True:
        stripped = _strip_page_suffix(url.rstrip("/"))
        if stripped == url:
            break
        url = stripped

    return url


def is_valid_channel_url(url: str) -> bool:
    """Check if the input normalizes to a supported YouTube channel URL."""
    if not url or not url.strip():
        return False

    normalized = normalize_channel_url(url).lower()
    return any(marker in normalized for marker in CHANNEL_URL_MARKERS)


def channel_videos_url(channel_url: str) -> str:
    """URL of the channel's uploads tab."""
    return normalize_channel_url(channel_url) + "/videos"


def extract_channel_id(channel_url: str) -> str | None:
    """Extract a UC... channel ID from a /channel/ URL."""
    match = _CHANNEL_ID_RE.search(channel_url or "")
    if match:
        return match.group(1)
    return None


def _strip_page_suffix(url: str) -> str:
    """Remove the first matching channel tab suffix (e.g. /videos)."""
    for suffix in CHANNEL_PAGE_SUFFIXES:
        if url.lower().endswith(suffix):
            return url[: -len(suffix)]
    return url
