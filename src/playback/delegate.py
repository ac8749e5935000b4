"""Playback notifications delivered to the host application.

Every notification is optional: the base delegate ignores them all, and
hosts override only what they observe. Notifications fire on the
controller's owner thread.
"""

from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from playback.controller import PlaybackController


class PlaybackDelegate:
    """Base delegate with no-op notifications.

    Example:
        >>> class Printer(PlaybackDelegate):
        ...     def on_playback_ended(self, controller):
        ...         print("ended")
        >>> controller = PlaybackController(player, delegate=Printer())
    """

    def on_playback_started(self, controller: "PlaybackController") -> None:
        """Playback started after a successful seek to the segment start."""

    def on_loop(self, controller: "PlaybackController") -> None:
        """Playback restarted at the segment start after reaching its end."""

    def on_playback_ended(self, controller: "PlaybackController") -> None:
        """Playback reached the segment end in ``RepeatMode.ONCE``."""

    def on_failure(
        self, error: Exception, controller: "PlaybackController"
    ) -> None:
        """A session-level or frame-level failure occurred."""


class CallbackDelegate(PlaybackDelegate):
    """Delegate built from optional plain callables.

    Example:
        >>> delegate = CallbackDelegate(on_loop=lambda controller: print("loop"))
    """

    def __init__(
        self,
        on_started: Optional[Callable[["PlaybackController"], None]] = None,
        on_loop: Optional[Callable[["PlaybackController"], None]] = None,
        on_ended: Optional[Callable[["PlaybackController"], None]] = None,
        on_failure: Optional[Callable[[Exception, "PlaybackController"], None]] = None,
    ) -> None:
        self._on_started = on_started
        self._on_loop = on_loop
        self._on_ended = on_ended
        self._on_failure = on_failure

    def on_playback_started(self, controller: "PlaybackController") -> None:
        if self._on_started is not None:
            self._on_started(controller)

    def on_loop(self, controller: "PlaybackController") -> None:
        if self._on_loop is not None:
            self._on_loop(controller)

    def on_playback_ended(self, controller: "PlaybackController") -> None:
        if self._on_ended is not None:
            self._on_ended(controller)

    def on_failure(
        self, error: Exception, controller: "PlaybackController"
    ) -> None:
        if self._on_failure is not None:
            self._on_failure(error, controller)
