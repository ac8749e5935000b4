"""Exceptions reported by playback control."""

from typing import Optional


class PlaybackError(Exception):
    """Base class for session-level playback failures.

    Session-level failures end the current load cycle and are reported
    exactly once through the delegate's ``on_failure``.

    Attributes:
        cause: The underlying transport exception, if any
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class AssetError(PlaybackError):
    """The asset could not be opened or decoded by the transport."""


class TransportError(PlaybackError):
    """The transport reported a fatal error during playback."""
