"""Video status state machine and the pure UI mappings derived from it."""

from typing import NamedTuple

from channel_monitor.core.exceptions import InvalidStatusTransitionError

from .schemas import Video, VideoAction, VideoStatus

New = VideoStatus.NEW
Snoozed = VideoStatus.SNOOZED
Watched = VideoStatus.WATCHED
Downloaded = VideoStatus.DOWNLOADED
Ignored = VideoStatus.IGNORED

# (current status, action) -> next status. Downloaded is terminal.
TRANSITIONS: dict[tuple[VideoStatus, VideoAction], VideoStatus] = {
    (New, VideoAction.SNOOZE): Snoozed,
    (New, VideoAction.OPEN): Watched,
    (New, VideoAction.IGNORE): Ignored,
    (New, VideoAction.DOWNLOAD): Downloaded,
    (Snoozed, VideoAction.UNSNOOZE): New,
    (Snoozed, VideoAction.IGNORE): Ignored,
    (Snoozed, VideoAction.DOWNLOAD): Downloaded,
    (Watched, VideoAction.UNSNOOZE): New,
    (Watched, VideoAction.IGNORE): Ignored,
    (Watched, VideoAction.DOWNLOAD): Downloaded,
    (Ignored, VideoAction.WAKE): New,
    (Ignored, VideoAction.UNSNOOZE): New,
    (Ignored, VideoAction.DOWNLOAD): Downloaded,
}


def initial_status(in_download_history: bool) -> VideoStatus:
    """Status for a freshly discovered video."""
    return Downloaded if in_download_history else New


def next_status(status: VideoStatus, action: VideoAction) -> VideoStatus | None:
    """Return the status reached by ``action``, or None if it isn't allowed."""
    return TRANSITIONS.get((status, action))


def can_apply(status: VideoStatus, action: VideoAction) -> bool:
    return (status, action) in TRANSITIONS


def apply_action(video: Video, action: VideoAction) -> VideoStatus:
    """
    Apply ``action`` to ``video`` in place.

    Args:
        video: Video to update
        action: Action to apply

    Returns:
        The video's new status

    Raises:
        InvalidStatusTransitionError: If the action is not allowed from the
            video's current status. The video is left unchanged.
    """
    target = next_status(video.status, action)
    if target is None:
        raise InvalidStatusTransitionError(video.status, action)
    video.status = target
    return target


class ActionButton(NamedTuple):
    """A label and the action it triggers (None: handled outside the state machine)."""

    label: str
    action: VideoAction | None


class VideoActionLabels(NamedTuple):
    """Action affordances for one video row."""

    download: ActionButton
    snooze: ActionButton | None
    ignore: ActionButton | None


_DOWNLOAD = ActionButton("Download", VideoAction.DOWNLOAD)
_SNOOZE = ActionButton("Snooze", VideoAction.SNOOZE)
_UNSNOOZE = ActionButton("Unsnooze", VideoAction.UNSNOOZE)
_IGNORE = ActionButton("Ignore", VideoAction.IGNORE)
_WAKE = ActionButton("Wake", VideoAction.WAKE)

_ACTION_LABELS: dict[VideoStatus, VideoActionLabels] = {
    New: VideoActionLabels(_DOWNLOAD, _SNOOZE, _IGNORE),
    Snoozed: VideoActionLabels(_DOWNLOAD, _UNSNOOZE, _IGNORE),
    Watched: VideoActionLabels(_DOWNLOAD, _UNSNOOZE, _IGNORE),
    Ignored: VideoActionLabels(_DOWNLOAD, _UNSNOOZE, _WAKE),
    # "Play" is served by the external player
    Downloaded: VideoActionLabels(ActionButton("Play", None), None, None),
}


def available_actions(status: VideoStatus) -> VideoActionLabels:
    """Map a status to the buttons a list row should offer."""
    return _ACTION_LABELS[status]


def filter_videos(
    videos: list[Video],
    status_filter: VideoStatus | None = None,
    show_all: bool = False,
    search: str = "",
    max_shown: int = 0,
) -> list[Video]:
    """
    Select the videos a channel list view should display.

    Order is preserved (newest first). With no status filter, Ignored and
    Downloaded videos are hidden unless ``show_all`` is set.

    Args:
        videos: Channel videos, newest first
        status_filter: Only show this status
        show_all: Include Ignored and Downloaded when no status filter is set
        search: Case-insensitive substring matched against title or video ID
        max_shown: Maximum rows (0 = unlimited)

    Returns:
        Filtered list of videos
    """
    if status_filter is not None:
        selected = [v for v in videos if v.status == status_filter]
    elif not show_all:
        selected = [v for v in videos if v.status not in (Ignored, Downloaded)]
    else:
        selected = list(videos)

    needle = search.strip().casefold()
    if needle:
        selected = [
            v for v in selected if needle in v.title.casefold() or needle in v.video_id.casefold()
        ]

    if max_shown > 0:
        selected = selected[:max_shown]

    return selected
