"""Types and protocols for playback control.

This module defines the playback enums, the configuration model, the item
handed to transports and the transport protocol the controller drives.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from pydantic import BaseModel, Field

from compositor.pipeline import CompositionPipeline
from compositor.types import CompositorConfig


class PlaybackStatus(str, Enum):
    """Lifecycle of a load cycle."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    ENDED = "ended"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if the load cycle can't make further progress."""
        return self in (PlaybackStatus.ENDED, PlaybackStatus.FAILED)


class RepeatMode(str, Enum):
    """What happens when playback reaches the segment end."""

    ONCE = "once"
    LOOP = "loop"


class ItemStatus(str, Enum):
    """Readiness reported by a transport for a loaded item."""

    READY = "ready"
    FAILED = "failed"


class PlayerConfig(BaseModel):
    """Configuration for the playback controller."""

    repeat_mode: RepeatMode = Field(
        RepeatMode.ONCE, description="Default repeat mode for loads"
    )
    auto_play: bool = Field(
        False, description="Start playback as soon as the asset is ready"
    )
    rate: float = Field(1.0, gt=0.0, le=16.0, description="Default playback rate")
    max_seek_retries: Optional[int] = Field(
        None,
        ge=0,
        description="Retries before a failing seek is dropped (None: until success)",
    )
    report_frame_errors: bool = Field(
        True, description="Report frame-level composition errors to the delegate"
    )
    compositor: CompositorConfig = Field(
        default_factory=CompositorConfig, description="Composition settings"
    )


class Subscription:
    """Cancellable handle for a transport observer.

    Cancelling is idempotent; the cancel hook runs at most once.

    Example:
        >>> subscription = transport.add_boundary_observer(4.0, on_boundary)
        >>> subscription.cancel()
    """

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None) -> None:
        """Initialize subscription.

        Args:
            on_cancel: Called once when the subscription is cancelled
        """
        self._on_cancel = on_cancel
        self._cancelled = False
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Cancel the subscription."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            on_cancel, self._on_cancel = self._on_cancel, None

        if on_cancel is not None:
            on_cancel()

    @property
    def cancelled(self) -> bool:
        """Check if the subscription was cancelled."""
        return self._cancelled


@dataclass
class PlaybackItem:
    """An asset handed to a transport.

    Attributes:
        source: Asset path or URI
        pipeline: Composition pipeline for transparent items, None for
            plain playback
        wait_for_composition_on_seek: Complete seeks only after the first
            post-seek frame went through the pipeline
    """

    source: str
    pipeline: Optional[CompositionPipeline] = None
    wait_for_composition_on_seek: bool = False

    @property
    def transparent(self) -> bool:
        """Check if frames are composited with alpha."""
        return self.pipeline is not None


@dataclass
class BoundaryToken:
    """The single live "notify at time T" registration of a session."""

    token_id: int
    time: float
    subscription: Subscription

    def cancel(self) -> None:
        """Unregister the boundary observer."""
        self.subscription.cancel()


ReadinessCallback = Callable[[ItemStatus, Optional[BaseException]], None]
ErrorCallback = Callable[[BaseException], None]
SeekCompletion = Callable[[bool], None]
BoundaryCallback = Callable[[], None]


class PlayerTransportProtocol(Protocol):
    """Protocol for media transports driven by the playback controller.

    Callbacks may be invoked from any thread; the controller marshals them
    onto its owner thread.
    """

    def replace_current_item(self, item: Optional[PlaybackItem]) -> None:
        """Make ``item`` the current item, or detach when None."""
        ...

    def observe_readiness(
        self, item: PlaybackItem, callback: ReadinessCallback
    ) -> Subscription:
        """Be told once when ``item`` becomes ready or fails to load."""
        ...

    def observe_errors(self, callback: ErrorCallback) -> Subscription:
        """Be told about fatal transport errors."""
        ...

    def seek(self, position: float, completion: SeekCompletion) -> None:
        """Seek exactly to ``position`` seconds.

        ``completion`` receives False when the seek didn't take effect.
        """
        ...

    def play(self, rate: float = 1.0) -> None:
        """Start or resume playback at ``rate``."""
        ...

    def pause(self) -> None:
        """Pause playback."""
        ...

    def add_boundary_observer(
        self, time: float, callback: BoundaryCallback
    ) -> Subscription:
        """Be told each time playback crosses ``time`` seconds."""
        ...

    @property
    def duration(self) -> Optional[float]:
        """Get the current item's duration in seconds, if known."""
        ...

    @property
    def rate(self) -> float:
        """Get the current playback rate (0.0 when paused)."""
        ...

    def close(self) -> None:
        """Release the transport and its native resources."""
        ...
