"""Per-load playback session state.

A session exists from ``load`` until ``unload`` and is only ever mutated by
the controller on its owner thread.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from compositor.types import TintSpec
from playback.errors import PlaybackError
from playback.types import (
    BoundaryToken,
    PlaybackItem,
    PlaybackStatus,
    RepeatMode,
    Subscription,
)

_TRANSITIONS: Dict[PlaybackStatus, FrozenSet[PlaybackStatus]] = {
    PlaybackStatus.LOADING: frozenset({PlaybackStatus.READY, PlaybackStatus.FAILED}),
    PlaybackStatus.READY: frozenset({PlaybackStatus.PLAYING, PlaybackStatus.FAILED}),
    # PLAYING -> READY happens when pausing at a fraction
    PlaybackStatus.PLAYING: frozenset(
        {
            PlaybackStatus.PLAYING,
            PlaybackStatus.READY,
            PlaybackStatus.ENDED,
            PlaybackStatus.FAILED,
        }
    ),
    PlaybackStatus.ENDED: frozenset({PlaybackStatus.FAILED}),
    PlaybackStatus.FAILED: frozenset(),
}


class SeekPurpose(str, Enum):
    """What the controller does once a seek resolves."""

    PLAY = "play"
    LOOP = "loop"
    PAUSE = "pause"


@dataclass
class PlaybackSession:
    """State of one load cycle."""

    source: str
    generation: int
    item: PlaybackItem
    repeat_mode: RepeatMode = RepeatMode.ONCE
    tint: Optional[TintSpec] = None
    auto_play: bool = False
    rate: float = 1.0
    status: PlaybackStatus = PlaybackStatus.LOADING
    start_time: float = 0.0
    end_time: Optional[float] = None
    duration: Optional[float] = None

    # Seek sequencing; at most one seek is outstanding
    is_seeking: bool = False
    seek_id: int = 0
    seek_target: float = 0.0
    seek_purpose: SeekPurpose = SeekPurpose.PLAY
    seek_retries: int = 0

    loop_count: int = 0
    error: Optional[PlaybackError] = None

    boundary: Optional[BoundaryToken] = None
    readiness_subscription: Optional[Subscription] = None
    error_subscription: Optional[Subscription] = None
    frames_failed: int = 0

    @property
    def transparent(self) -> bool:
        """Check if the session composites alpha."""
        return self.item.transparent

    def advance(self, status: PlaybackStatus) -> None:
        """Move to ``status``.

        Raises:
            RuntimeError: If the transition isn't part of the lifecycle
        """
        if status not in _TRANSITIONS[self.status]:
            raise RuntimeError(
                f"Invalid playback transition: {self.status.value} -> {status.value}"
            )
        self.status = status

    def cancel_boundary(self) -> None:
        """Unregister the boundary observer, if any."""
        if self.boundary is not None:
            self.boundary.cancel()
            self.boundary = None

    def cancel_subscriptions(self) -> None:
        """Cancel every transport subscription the session owns."""
        self.cancel_boundary()

        if self.readiness_subscription is not None:
            self.readiness_subscription.cancel()
            self.readiness_subscription = None

        if self.error_subscription is not None:
            self.error_subscription.cancel()
            self.error_subscription = None

        self.is_seeking = False
