"""Playback control state machine for stacked-alpha video.

This module sequences asset readiness, seeking, playback start, segment
boundary detection, looping and failure reporting on top of a media
transport.

The controller lives on one owner thread: the thread running the asyncio
event loop it was created on. Transport callbacks arrive from arbitrary
threads and are marshaled onto that loop with ``call_soon_threadsafe``
before they touch session state. Each marshaled event is stamped with the
load generation it belongs to, so events for a superseded or unloaded
session are dropped.
"""

import asyncio
import itertools
import logging
import threading
from typing import Any, Callable, Optional

from compositor.errors import CompositionError
from compositor.pipeline import CompositionPipeline, FrameErrorHandler
from compositor.types import CompositorConfig, FrameRequest, TintSpec
from playback.delegate import PlaybackDelegate
from playback.errors import AssetError, PlaybackError, TransportError
from playback.session import PlaybackSession, SeekPurpose
from playback.types import (
    BoundaryToken,
    ItemStatus,
    PlaybackItem,
    PlaybackStatus,
    PlayerConfig,
    PlayerTransportProtocol,
    RepeatMode,
)

logger = logging.getLogger(__name__)

_ACTIVE = (PlaybackStatus.LOADING, PlaybackStatus.READY, PlaybackStatus.PLAYING)


class PlaybackController:
    """Drive a media transport through load, seek, play, loop and end.

    Seeks are exclusive: a ``play`` or ``pause_at_fraction`` request made
    while a seek is outstanding is dropped (the method returns False) and
    the caller retries once the seek resolved. Seeks the transport reports
    as unsuccessful are retried with the same target and never reported
    to the delegate.

    Example:
        >>> controller = PlaybackController(player, delegate=MyDelegate())
        >>> controller.load("bat.mp4", transparent=True, repeat_mode=RepeatMode.LOOP)
        >>> # ... once ready
        >>> controller.play()
    """

    def __init__(
        self,
        transport: PlayerTransportProtocol,
        config: Optional[PlayerConfig] = None,
        delegate: Optional[PlaybackDelegate] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """Initialize controller.

        Must be called on the owner thread.

        Args:
            transport: Media transport to drive
            config: Controller configuration
            delegate: Receiver of playback notifications
            loop: Owner event loop (default: the running loop)
        """
        self.transport = transport
        self.config = config or PlayerConfig()
        self.delegate = delegate or PlaybackDelegate()

        self._loop = loop or asyncio.get_running_loop()
        self._owner_thread = threading.get_ident()
        self._session: Optional[PlaybackSession] = None
        self._generation = 0
        self._boundary_ids = itertools.count(1)
        self._closed = False

    # -- public API ---------------------------------------------------------

    def load(
        self,
        source: str,
        transparent: bool = False,
        repeat_mode: Optional[RepeatMode] = None,
        tint: Optional[TintSpec] = None,
        auto_play: Optional[bool] = None,
    ) -> None:
        """Load an asset and wait for the transport to report readiness.

        Loading the asset that is already loading, ready or playing is a
        no-op. Any other load tears down the previous session first.

        Args:
            source: Asset path or URI
            transparent: Composite the stacked alpha mask into the frames
            repeat_mode: Behaviour at the segment end (default from config)
            tint: Recolor the mask luminance (transparent loads only)
            auto_play: Play the whole asset once ready (default from config)

        Raises:
            pydantic.ValidationError: If the tint is invalid
        """
        self._check_owner()

        session = self._session
        if session is not None and session.source == source and session.status in _ACTIVE:
            logger.debug(f"Already loaded {source} ({session.status.value}), ignoring")
            return

        compositor_config = self.config.compositor
        if transparent and tint is not None:
            compositor_config = CompositorConfig.model_validate(
                {**compositor_config.model_dump(), "tint": tint}
            )

        if session is not None:
            session.cancel_subscriptions()

        self._generation += 1
        generation = self._generation

        pipeline = None
        if transparent:
            pipeline = CompositionPipeline(
                compositor_config,
                error_handler=(
                    self._frame_error_handler(generation)
                    if self.config.report_frame_errors
                    else None
                ),
            )
        elif tint is not None:
            logger.warning(f"Tint ignored for non-transparent load of {source}")

        item = PlaybackItem(
            source=source,
            pipeline=pipeline,
            wait_for_composition_on_seek=transparent,
        )
        session = PlaybackSession(
            source=source,
            generation=generation,
            item=item,
            repeat_mode=repeat_mode or self.config.repeat_mode,
            tint=pipeline.tint if pipeline is not None else None,
            auto_play=self.config.auto_play if auto_play is None else auto_play,
            rate=self.config.rate,
        )
        self._session = session

        logger.info(
            f"Loading {source} (transparent={transparent}, "
            f"repeat={session.repeat_mode.value}, generation={generation})"
        )

        # Subscribe before handing the item over so no notification is missed
        session.readiness_subscription = self.transport.observe_readiness(
            item, self._marshal(self._on_readiness, generation)
        )
        session.error_subscription = self.transport.observe_errors(
            self._marshal(self._on_transport_error, generation)
        )
        self.transport.replace_current_item(item)

    def play(
        self,
        start_time: float = 0.0,
        end_time: Optional[float] = None,
        rate: Optional[float] = None,
    ) -> bool:
        """Play the segment ``[start_time, end_time]``.

        Args:
            start_time: Segment start in seconds
            end_time: Segment end in seconds (default: asset duration)
            rate: Playback rate (default: the session's rate)

        Returns:
            True if the start sequence began, False if the request was
            dropped (no ready session, or a seek is outstanding)

        Raises:
            ValueError: If the segment or rate is invalid, including a start
                at or past the asset end
        """
        self._check_owner()

        if start_time < 0.0:
            raise ValueError(f"start_time must be >= 0, got {start_time}")
        if end_time is not None and end_time <= start_time:
            raise ValueError(f"end_time {end_time} must be after start_time {start_time}")
        if rate is not None and rate <= 0.0:
            raise ValueError(f"rate must be > 0, got {rate}")

        session = self._session
        if session is None:
            logger.warning("play() without a loaded asset, dropping request")
            return False

        if session.is_seeking:
            logger.warning("play() while a seek is outstanding, dropping request")
            return False

        if session.status != PlaybackStatus.READY:
            logger.warning(f"play() in {session.status.value} state, dropping request")
            return False

        resolved_end = end_time if end_time is not None else session.duration
        if resolved_end is not None and resolved_end <= start_time:
            raise ValueError(
                f"start_time {start_time} must be before the segment end {resolved_end}"
            )

        session.start_time = start_time
        session.end_time = resolved_end
        if rate is not None:
            session.rate = rate

        logger.info(
            f"Starting {session.source} from {start_time:.3f}s "
            f"to {_format_time(session.end_time)} at {session.rate}x"
        )
        session.seek_retries = 0
        self._seek(session, start_time, SeekPurpose.PLAY)
        return True

    def pause_at_fraction(self, fraction: float) -> bool:
        """Seek to ``fraction`` of the asset duration and pause there.

        Args:
            fraction: Position as a fraction of the duration (0.0 - 1.0)

        Returns:
            True if the seek was issued, False if the request was dropped

        Raises:
            ValueError: If fraction is outside 0.0 - 1.0
        """
        self._check_owner()

        if not 0.0 <= fraction <= 1.0:
            raise ValueError(f"fraction must be 0-1, got {fraction}")

        session = self._session
        if session is None:
            logger.warning("pause_at_fraction() without a loaded asset, dropping request")
            return False

        if session.is_seeking:
            logger.warning("pause_at_fraction() while a seek is outstanding, dropping request")
            return False

        if session.status not in (PlaybackStatus.READY, PlaybackStatus.PLAYING):
            logger.warning(
                f"pause_at_fraction() in {session.status.value} state, dropping request"
            )
            return False

        if session.duration is None:
            logger.warning(f"Duration of {session.source} unknown, can't pause at fraction")
            return False

        session.seek_retries = 0
        self._seek(session, session.duration * fraction, SeekPurpose.PAUSE)
        return True

    def unload(self) -> None:
        """Tear down the session and detach the transport's item.

        Valid from any state and idempotent. Transport callbacks that fire
        afterwards are ignored.
        """
        if self._closed:
            return
        self._check_owner()

        session = self._session
        if session is None:
            return

        session.cancel_subscriptions()
        self._session = None
        self._generation += 1
        self.transport.replace_current_item(None)

        logger.info(f"Unloaded {session.source}")

    def close(self) -> None:
        """Unload and refuse further use of the controller."""
        if self._closed:
            return
        self.unload()
        self._closed = True
        logger.debug("Playback controller closed")

    def __enter__(self) -> "PlaybackController":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- state --------------------------------------------------------------

    @property
    def status(self) -> PlaybackStatus:
        """Get the status of the current load cycle."""
        if self._session is None:
            return PlaybackStatus.UNLOADED
        return self._session.status

    @property
    def session(self) -> Optional[PlaybackSession]:
        """Get the current session (read it, don't mutate it)."""
        return self._session

    @property
    def source(self) -> Optional[str]:
        """Get the loaded asset."""
        return self._session.source if self._session is not None else None

    @property
    def is_playing(self) -> bool:
        """Check if the transport is playing the current session."""
        return self.status == PlaybackStatus.PLAYING and self.transport.rate != 0.0

    @property
    def is_closed(self) -> bool:
        """Check if the controller was closed."""
        return self._closed

    # -- marshaling ---------------------------------------------------------

    def _marshal(
        self, handler: Callable[..., None], generation: int, *bound: Any
    ) -> Callable[..., None]:
        """Wrap a session handler as a thread-safe transport callback.

        The returned callable may be invoked from any thread. It schedules
        ``handler(session, *bound, *args)`` on the owner loop, where it only
        runs if the session of ``generation`` is still current.
        """

        def post(*args: Any) -> None:
            try:
                self._loop.call_soon_threadsafe(
                    self._deliver, handler, generation, bound + args
                )
            except RuntimeError:
                logger.debug(f"Owner loop closed, dropping {handler.__name__}")

        return post

    def _deliver(
        self, handler: Callable[..., None], generation: int, args: tuple
    ) -> None:
        """Run a marshaled handler on the owner thread if still current."""
        session = self._session
        if self._closed or session is None or session.generation != generation:
            logger.debug(f"Dropping stale {handler.__name__} (generation {generation})")
            return

        handler(session, *args)

    def _frame_error_handler(self, generation: int) -> FrameErrorHandler:
        """Build the pipeline's frame error handler for one load cycle."""
        return self._marshal(self._on_frame_error, generation)

    # -- seeking ------------------------------------------------------------

    def _seek(self, session: PlaybackSession, target: float, purpose: SeekPurpose) -> None:
        """Issue an exact seek; only one may be outstanding."""
        session.is_seeking = True
        session.seek_id += 1
        session.seek_target = target
        session.seek_purpose = purpose

        logger.debug(f"Seeking to {target:.3f}s for {purpose.value} (seek {session.seek_id})")
        self.transport.seek(
            target, self._marshal(self._on_seek_complete, session.generation, session.seek_id)
        )

    def _on_seek_complete(self, session: PlaybackSession, seek_id: int, success: bool) -> None:
        """Handle a seek completion on the owner thread."""
        if seek_id != session.seek_id or not session.is_seeking:
            logger.debug(f"Dropping completion of superseded seek {seek_id}")
            return

        if session.status.is_terminal:
            session.is_seeking = False
            return

        if not success:
            session.seek_retries += 1
            max_retries = self.config.max_seek_retries
            if max_retries is not None and session.seek_retries > max_retries:
                # Seek failures are never surfaced; the request is dropped
                session.is_seeking = False
                logger.error(
                    f"Seek to {session.seek_target:.3f}s failed "
                    f"{session.seek_retries} times, dropping {session.seek_purpose.value} request"
                )
                return

            logger.warning(
                f"Seek to {session.seek_target:.3f}s failed, retrying "
                f"(attempt {session.seek_retries + 1})"
            )
            self._seek(session, session.seek_target, session.seek_purpose)
            return

        session.is_seeking = False
        session.seek_retries = 0

        if session.seek_purpose == SeekPurpose.PLAY:
            self._start_playback(session)
        elif session.seek_purpose == SeekPurpose.LOOP:
            self._restart_loop(session)
        else:
            self._pause(session)

    def _start_playback(self, session: PlaybackSession) -> None:
        """Register the segment boundary, start the transport, notify."""
        self._register_boundary(session)
        self.transport.play(session.rate)
        session.advance(PlaybackStatus.PLAYING)

        logger.info(f"Playback started: {session.source}")
        self._notify("on_playback_started")

    def _restart_loop(self, session: PlaybackSession) -> None:
        """Resume at the segment start after a loop seek."""
        if session.status != PlaybackStatus.PLAYING:
            return

        self.transport.play(session.rate)
        session.advance(PlaybackStatus.PLAYING)
        session.loop_count += 1

        logger.debug(f"Looped {session.source} ({session.loop_count} loops)")
        self._notify("on_loop")

    def _pause(self, session: PlaybackSession) -> None:
        """Pause after a pause-at-fraction seek."""
        self.transport.pause()
        if session.status == PlaybackStatus.PLAYING:
            session.advance(PlaybackStatus.READY)

        logger.info(f"Paused {session.source} at {session.seek_target:.3f}s")

    # -- boundary -----------------------------------------------------------

    def _register_boundary(self, session: PlaybackSession) -> None:
        """Replace the session's boundary observer with one at its end time."""
        session.cancel_boundary()

        if session.end_time is None:
            logger.warning(f"No end time for {session.source}, segment end won't be detected")
            return

        token_id = next(self._boundary_ids)
        subscription = self.transport.add_boundary_observer(
            session.end_time,
            self._marshal(self._on_boundary, session.generation, token_id),
        )
        session.boundary = BoundaryToken(
            token_id=token_id, time=session.end_time, subscription=subscription
        )

    def _on_boundary(self, session: PlaybackSession, token_id: int) -> None:
        """Handle the segment end on the owner thread."""
        if session.boundary is None or session.boundary.token_id != token_id:
            logger.debug(f"Dropping notification of replaced boundary {token_id}")
            return

        if session.status != PlaybackStatus.PLAYING or session.is_seeking:
            logger.debug(f"Ignoring boundary in {session.status.value} state")
            return

        if session.repeat_mode == RepeatMode.LOOP:
            session.seek_retries = 0
            self._seek(session, session.start_time, SeekPurpose.LOOP)
            return

        self.transport.pause()
        session.cancel_boundary()
        session.advance(PlaybackStatus.ENDED)

        logger.info(f"Playback ended: {session.source}")
        self._notify("on_playback_ended")

    # -- readiness and failures ---------------------------------------------

    def _on_readiness(
        self,
        session: PlaybackSession,
        status: ItemStatus,
        error: Optional[BaseException] = None,
    ) -> None:
        """Handle the one-shot readiness notification on the owner thread."""
        if session.status != PlaybackStatus.LOADING:
            logger.debug(f"Ignoring readiness in {session.status.value} state")
            return

        if session.readiness_subscription is not None:
            session.readiness_subscription.cancel()
            session.readiness_subscription = None

        if status == ItemStatus.FAILED:
            if not isinstance(error, AssetError):
                error = AssetError(f"Failed to load {session.source}: {error}", cause=error)
            self._fail(session, error)
            return

        session.duration = self.transport.duration
        session.advance(PlaybackStatus.READY)
        logger.info(f"Ready: {session.source} (duration {_format_time(session.duration)})")

        if session.auto_play:
            self.play()

    def _on_transport_error(self, session: PlaybackSession, error: BaseException) -> None:
        """Handle a fatal transport error on the owner thread."""
        if not isinstance(error, PlaybackError):
            error = TransportError(f"Transport error: {error}", cause=error)
        self._fail(session, error)

    def _on_frame_error(
        self, session: PlaybackSession, error: CompositionError, request: FrameRequest
    ) -> None:
        """Surface a frame-level composition failure; playback continues."""
        if session.status == PlaybackStatus.FAILED:
            return

        session.frames_failed += 1
        self._notify("on_failure", error)

    def _fail(self, session: PlaybackSession, error: PlaybackError) -> None:
        """Move the session to FAILED and report the error once."""
        if session.status == PlaybackStatus.FAILED:
            logger.debug(f"Already failed, ignoring: {error}")
            return

        session.cancel_boundary()
        session.is_seeking = False
        session.error = error
        session.advance(PlaybackStatus.FAILED)

        logger.error(f"Playback failed for {session.source}: {error}")
        self._notify("on_failure", error)

    # -- helpers ------------------------------------------------------------

    def _notify(self, name: str, *args: Any) -> None:
        """Call a delegate notification, logging delegate errors."""
        try:
            getattr(self.delegate, name)(*args, self)
        except Exception as e:
            logger.error(f"Error in delegate {name}: {e}")

    def _check_owner(self) -> None:
        """Reject calls after close or from a foreign thread.

        Raises:
            RuntimeError: If closed or not on the owner thread
        """
        if self._closed:
            raise RuntimeError("Playback controller is closed")
        if threading.get_ident() != self._owner_thread:
            raise RuntimeError("Playback controller used outside its owner thread")


def _format_time(value: Optional[float]) -> str:
    """Format an optional time in seconds for logs."""
    return "unknown" if value is None else f"{value:.3f}s"
