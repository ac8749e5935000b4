"""Media transports for the playback controller.

This module provides a real OpenCV-based transport that decodes on a worker
thread and a mock transport for testing the controller without media files.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Tuple

import cv2
import numpy as np

from compositor.types import FrameRequest
from playback.errors import AssetError, TransportError
from playback.types import (
    BoundaryCallback,
    ErrorCallback,
    ItemStatus,
    PlaybackItem,
    ReadinessCallback,
    SeekCompletion,
    Subscription,
)
from video.types import Frame, FrameMetadata, FrameSinkProtocol, PixelFormat

logger = logging.getLogger(__name__)

FrameFactory = Callable[[int], Frame]


class _Observers:
    """Thread-safe registry of transport observers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = 0
        self._readiness: Dict[int, Tuple[PlaybackItem, ReadinessCallback]] = {}
        self._errors: Dict[int, ErrorCallback] = {}
        self._boundaries: Dict[int, Tuple[float, BoundaryCallback]] = {}

    def _next_id(self) -> int:
        self._ids += 1
        return self._ids

    def add_readiness(self, item: PlaybackItem, callback: ReadinessCallback) -> Subscription:
        with self._lock:
            key = self._next_id()
            self._readiness[key] = (item, callback)
        return Subscription(lambda: self._remove(self._readiness, key))

    def add_error(self, callback: ErrorCallback) -> Subscription:
        with self._lock:
            key = self._next_id()
            self._errors[key] = callback
        return Subscription(lambda: self._remove(self._errors, key))

    def add_boundary(self, time_sec: float, callback: BoundaryCallback) -> Subscription:
        with self._lock:
            key = self._next_id()
            self._boundaries[key] = (time_sec, callback)
        return Subscription(lambda: self._remove(self._boundaries, key))

    def _remove(self, registry: dict, key: int) -> None:
        with self._lock:
            registry.pop(key, None)

    def take_readiness(self, item: PlaybackItem) -> List[ReadinessCallback]:
        """Remove and return the one-shot readiness observers of ``item``."""
        with self._lock:
            keys = [key for key, (observed, _) in self._readiness.items() if observed is item]
            return [self._readiness.pop(key)[1] for key in keys]

    def errors(self) -> List[ErrorCallback]:
        with self._lock:
            return list(self._errors.values())

    def crossed(self, previous: float, position: float) -> List[BoundaryCallback]:
        """Get boundary observers whose time lies in ``(previous, position]``."""
        with self._lock:
            return [
                callback
                for time_sec, callback in self._boundaries.values()
                if previous < time_sec <= position
            ]

    @property
    def boundary_times(self) -> List[float]:
        with self._lock:
            return [time_sec for time_sec, _ in self._boundaries.values()]


class MockPlayer:
    """Mock transport for testing without media files.

    Nothing happens on its own: tests fire readiness, seek completions,
    boundaries and errors explicitly, or advance a simulated timeline with
    ``step``, which renders frames from ``frame_factory`` through the
    current item's pipeline and fires crossed boundaries. Driver methods may
    be called from any thread.

    Example:
        >>> player = MockPlayer(duration=4.0)
        >>> controller.load("clip.mp4")
        >>> player.fire_ready()
        >>> controller.play()
        >>> player.complete_seek()
    """

    def __init__(
        self,
        duration: Optional[float] = None,
        fps: float = 30.0,
        sink: Optional[FrameSinkProtocol] = None,
        frame_factory: Optional[FrameFactory] = None,
        auto_complete_seeks: bool = False,
    ) -> None:
        """Initialize mock player.

        Args:
            duration: Duration reported for loaded items
            fps: Frame rate of the simulated timeline
            sink: Receiver of frames rendered by ``step``
            frame_factory: Builds the source frame for a frame index
            auto_complete_seeks: Complete seeks successfully right away
        """
        self.fps = fps
        self.sink = sink
        self.frame_factory = frame_factory
        self.auto_complete_seeks = auto_complete_seeks

        self._duration = duration
        self._observers = _Observers()
        self._lock = threading.RLock()
        self._item: Optional[PlaybackItem] = None
        self._rate = 0.0
        self._frame_index = 0

        # Call history for assertions
        self.items: List[Optional[PlaybackItem]] = []
        self.seek_requests: List[float] = []
        self.pending_seeks: Deque[Tuple[float, SeekCompletion]] = deque()
        self.readiness_callbacks: List[ReadinessCallback] = []
        self.boundary_callbacks: List[BoundaryCallback] = []
        self.play_calls: List[float] = []
        self.pause_calls = 0
        self.frames_rendered = 0

    # -- transport protocol -------------------------------------------------

    def replace_current_item(self, item: Optional[PlaybackItem]) -> None:
        """Make ``item`` current and rewind."""
        with self._lock:
            self._item = item
            self._rate = 0.0
            self._frame_index = 0
            self.pending_seeks.clear()
            self.items.append(item)

    def observe_readiness(
        self, item: PlaybackItem, callback: ReadinessCallback
    ) -> Subscription:
        """Register a one-shot readiness observer for ``item``."""
        self.readiness_callbacks.append(callback)
        return self._observers.add_readiness(item, callback)

    def observe_errors(self, callback: ErrorCallback) -> Subscription:
        """Register a fatal error observer."""
        return self._observers.add_error(callback)

    def seek(self, position: float, completion: SeekCompletion) -> None:
        """Record a seek; complete it now when auto-completing."""
        with self._lock:
            self.seek_requests.append(position)
            if not self.auto_complete_seeks:
                self.pending_seeks.append((position, completion))
                return
            self._frame_index = int(round(position * self.fps))

        completion(True)

    def play(self, rate: float = 1.0) -> None:
        with self._lock:
            self._rate = rate
            self.play_calls.append(rate)

    def pause(self) -> None:
        with self._lock:
            self._rate = 0.0
            self.pause_calls += 1

    def add_boundary_observer(
        self, time: float, callback: BoundaryCallback
    ) -> Subscription:
        """Register a boundary observer at ``time`` seconds."""
        self.boundary_callbacks.append(callback)
        return self._observers.add_boundary(time, callback)

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    @property
    def rate(self) -> float:
        with self._lock:
            return self._rate

    @property
    def position(self) -> float:
        """Get the simulated playback position in seconds."""
        with self._lock:
            return self._frame_index / self.fps

    @property
    def current_item(self) -> Optional[PlaybackItem]:
        with self._lock:
            return self._item

    @property
    def boundary_times(self) -> List[float]:
        """Get times of the registered (not cancelled) boundary observers."""
        return self._observers.boundary_times

    def close(self) -> None:
        self.replace_current_item(None)

    # -- test drivers -------------------------------------------------------

    def fire_ready(self) -> None:
        """Report the current item as ready."""
        item = self.current_item
        if item is None:
            return
        for callback in self._observers.take_readiness(item):
            callback(ItemStatus.READY, None)

    def fire_failed(self, error: Optional[BaseException] = None) -> None:
        """Report the current item as failed to load."""
        item = self.current_item
        if item is None:
            return
        error = error or AssetError(f"Cannot open {item.source}")
        for callback in self._observers.take_readiness(item):
            callback(ItemStatus.FAILED, error)

    def complete_seek(self, success: bool = True) -> bool:
        """Complete the oldest pending seek.

        Returns:
            False if no seek was pending
        """
        with self._lock:
            if not self.pending_seeks:
                return False
            position, completion = self.pending_seeks.popleft()
            if success:
                self._frame_index = int(round(position * self.fps))

        completion(success)
        return True

    def reach_boundary(self) -> None:
        """Fire every registered boundary observer."""
        with self._lock:
            position = self._frame_index / self.fps
        for callback in self._observers.crossed(float("-inf"), float("inf")):
            callback()
        logger.debug(f"Mock boundary reached at {position:.3f}s")

    def emit_error(self, error: BaseException) -> None:
        """Report a fatal transport error."""
        for callback in self._observers.errors():
            callback(error)

    def step(self, frames: int = 1) -> int:
        """Advance the simulated timeline while playing.

        Each step renders one frame and fires boundaries crossed by it.
        Playback stops at the end of the duration.

        Returns:
            Number of frames actually advanced
        """
        advanced = 0
        for _ in range(frames):
            with self._lock:
                item = self._item
                if item is None or self._rate == 0.0:
                    break
                index = self._frame_index
                previous = index / self.fps
                self._frame_index = index + 1
                position = self._frame_index / self.fps
                at_end = self._duration is not None and position >= self._duration
                if at_end:
                    self._rate = 0.0

            self._render(item, index)
            advanced += 1

            for callback in self._observers.crossed(previous, position):
                callback()

            if at_end:
                break

        return advanced

    def _render(self, item: PlaybackItem, index: int) -> None:
        """Push one frame through the item's pipeline to the sink."""
        if self.frame_factory is None:
            return

        frame = self.frame_factory(index)
        if item.pipeline is not None:
            result = item.pipeline.process_frame(FrameRequest(source=frame))
            if not result.ok:
                return
            frame = result.frame

        self.frames_rendered += 1
        if self.sink is not None:
            self.sink.display_frame(frame)


class _Playback:
    """Decoder state of one item, owned by that item's worker thread.

    Each item gets its own state, boundary observers and stop event, so a
    worker that outlives its item can't touch the next item's timeline.
    """

    def __init__(self, item: PlaybackItem, fps: float) -> None:
        self.item = item
        self.stop = threading.Event()
        self.wake = threading.Condition()
        self.boundaries = _Observers()
        self.seeks: Deque[Tuple[float, SeekCompletion]] = deque()
        self.rate = 0.0
        self.at_end = False
        self.fps = fps
        self.duration: Optional[float] = None
        self.frame_index = 0


class OpenCVPlayer:
    """Transport decoding video files with OpenCV on a worker thread.

    Every item gets a worker that opens it, reports readiness, executes
    seeks, paces frames at ``fps * rate``, composites transparent items
    through their pipeline and hands frames to the sink. Boundary observers
    fire when playback crosses their time and, for times at or past the
    end, when the stream ends.

    Replacing the item only signals the old worker to stop; it releases its
    capture on its own. ``close`` waits for the workers.

    Example:
        >>> player = OpenCVPlayer(sink=ImageSequenceSink("out"))
        >>> controller = PlaybackController(player)
        >>> controller.load("bat.mp4", transparent=True, auto_play=True)
    """

    DEFAULT_FPS = 30.0

    def __init__(
        self,
        sink: Optional[FrameSinkProtocol] = None,
        capture_factory: Callable[[str], "cv2.VideoCapture"] = cv2.VideoCapture,
        pixel_format: PixelFormat = PixelFormat.BGR,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize OpenCV player.

        Args:
            sink: Receiver of presented frames
            capture_factory: Opens a capture for a source path
            pixel_format: Channel layout of decoded frames
            sleep: Sleep function used for frame pacing
        """
        self.sink = sink
        self.pixel_format = pixel_format
        self._capture_factory = capture_factory
        self._sleep = sleep

        self._observers = _Observers()
        self._lock = threading.Lock()
        self._playback: Optional[_Playback] = None
        self._workers: List[threading.Thread] = []

    # -- transport protocol -------------------------------------------------

    def replace_current_item(self, item: Optional[PlaybackItem]) -> None:
        """Stop the current worker and start one for ``item``.

        Doesn't wait for the old worker.
        """
        with self._lock:
            old, self._playback = self._playback, None
            self._workers = [t for t in self._workers if t.is_alive()]

            if item is not None:
                playback = _Playback(item, self.DEFAULT_FPS)
                worker = threading.Thread(
                    target=self._run,
                    args=(playback,),
                    name=f"opencv-player:{item.source}",
                    daemon=True,
                )
                self._playback = playback
                self._workers.append(worker)

        if old is not None:
            old.stop.set()
            with old.wake:
                old.wake.notify_all()
            logger.debug(f"Stopping worker for {old.item.source}")

        if item is not None:
            worker.start()
            logger.info(f"Opening {item.source}")

    def observe_readiness(
        self, item: PlaybackItem, callback: ReadinessCallback
    ) -> Subscription:
        return self._observers.add_readiness(item, callback)

    def observe_errors(self, callback: ErrorCallback) -> Subscription:
        return self._observers.add_error(callback)

    def seek(self, position: float, completion: SeekCompletion) -> None:
        """Queue an exact seek for the current item's worker."""
        playback = self._current()
        if playback is None:
            completion(False)
            return

        with playback.wake:
            playback.seeks.append((position, completion))
            playback.wake.notify_all()

    def play(self, rate: float = 1.0) -> None:
        playback = self._current()
        if playback is None:
            return
        with playback.wake:
            playback.rate = rate
            playback.wake.notify_all()

    def pause(self) -> None:
        playback = self._current()
        if playback is None:
            return
        with playback.wake:
            playback.rate = 0.0
            playback.wake.notify_all()

    def add_boundary_observer(
        self, time: float, callback: BoundaryCallback
    ) -> Subscription:
        """Register a boundary observer on the current item."""
        playback = self._current()
        if playback is None:
            logger.warning(f"No current item, boundary at {time:.3f}s not registered")
            return Subscription()
        return playback.boundaries.add_boundary(time, callback)

    @property
    def duration(self) -> Optional[float]:
        playback = self._current()
        if playback is None:
            return None
        with playback.wake:
            return playback.duration

    @property
    def rate(self) -> float:
        playback = self._current()
        if playback is None:
            return 0.0
        with playback.wake:
            return playback.rate

    @property
    def position(self) -> float:
        """Get the playback position in seconds."""
        playback = self._current()
        if playback is None:
            return 0.0
        with playback.wake:
            return playback.frame_index / playback.fps

    def close(self, timeout: float = 2.0) -> None:
        """Stop every worker and wait for them to release their captures."""
        self.replace_current_item(None)

        with self._lock:
            workers, self._workers = self._workers, []

        for worker in workers:
            if worker is threading.current_thread():
                continue
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning(f"Player worker {worker.name} didn't stop in time")

    def _current(self) -> Optional[_Playback]:
        with self._lock:
            return self._playback

    # -- worker -------------------------------------------------------------

    def _run(self, playback: _Playback) -> None:
        """Worker thread body: open, then serve seeks and frames."""
        item = playback.item
        try:
            capture = self._capture_factory(item.source)
        except Exception as e:
            logger.error(f"Failed to create capture for {item.source}: {e}")
            self._notify_readiness(
                item, ItemStatus.FAILED, AssetError(f"Failed to open video: {item.source}", cause=e)
            )
            return

        try:
            if not capture.isOpened():
                logger.error(f"Failed to open video: {item.source}")
                self._notify_readiness(
                    item, ItemStatus.FAILED, AssetError(f"Failed to open video: {item.source}")
                )
                return

            fps = capture.get(cv2.CAP_PROP_FPS)
            if not fps or fps <= 0:
                fps = self.DEFAULT_FPS
            frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT)

            with playback.wake:
                playback.fps = fps
                playback.duration = frame_count / fps if frame_count and frame_count > 0 else None

            if playback.stop.is_set():
                return

            logger.info(
                f"Opened {item.source}: {fps:.2f} fps, "
                f"{int(frame_count or 0)} frames"
            )
            self._notify_readiness(item, ItemStatus.READY, None)
            self._serve(playback, capture)

        except Exception as e:
            logger.error(f"Player worker for {item.source} failed: {e}")
            if not playback.stop.is_set():
                self._notify_errors(TransportError(f"Playback of {item.source} failed: {e}", cause=e))
        finally:
            capture.release()
            logger.debug(f"Released {item.source}")

    def _serve(self, playback: _Playback, capture) -> None:
        """Serve seeks and paced frames until stopped."""
        while True:
            with playback.wake:
                while (
                    not playback.stop.is_set()
                    and not playback.seeks
                    and (playback.rate == 0.0 or playback.at_end)
                ):
                    playback.wake.wait()
                if playback.stop.is_set():
                    return
                seek = playback.seeks.popleft() if playback.seeks else None
                rate = playback.rate
                fps = playback.fps

            if seek is not None:
                self._execute_seek(playback, capture, *seek)
                continue

            started = time.monotonic()
            if not self._advance(playback, capture):
                continue

            interval = 1.0 / (fps * rate)
            remaining = interval - (time.monotonic() - started)
            if remaining > 0:
                self._sleep(remaining)

    def _execute_seek(
        self, playback: _Playback, capture, position: float, completion: SeekCompletion
    ) -> None:
        """Seek the capture to the frame at ``position`` seconds."""
        item = playback.item
        index = max(0, int(round(position * playback.fps)))
        success = bool(capture.set(cv2.CAP_PROP_POS_FRAMES, index))

        if success:
            with playback.wake:
                playback.frame_index = index
                playback.at_end = False
            if item.wait_for_composition_on_seek:
                self._advance(playback, capture, fire_boundaries=False)
        else:
            logger.warning(f"Seek to {position:.3f}s failed for {item.source}")

        completion(success)

    def _advance(
        self, playback: _Playback, capture, fire_boundaries: bool = True
    ) -> bool:
        """Decode, present and account for one frame.

        Returns:
            False at end of stream
        """
        ok, data = capture.read()

        with playback.wake:
            previous = playback.frame_index / playback.fps
            if not ok or data is None:
                playback.at_end = True
                playback.rate = 0.0
            else:
                index = playback.frame_index
                playback.frame_index = index + 1
                position = playback.frame_index / playback.fps
                fps = playback.fps

        if not ok or data is None:
            logger.debug(f"End of stream for {playback.item.source} at {previous:.3f}s")
            if fire_boundaries:
                self._fire_boundaries(playback, previous, float("inf"))
            return False

        self._present(playback.item, data, index, fps)

        if fire_boundaries:
            self._fire_boundaries(playback, previous, position)
        return True

    def _fire_boundaries(self, playback: _Playback, previous: float, position: float) -> None:
        if playback.stop.is_set():
            return
        for callback in playback.boundaries.crossed(previous, position):
            callback()

    def _present(self, item: PlaybackItem, data: np.ndarray, index: int, fps: float) -> None:
        """Composite (for transparent items) and hand a frame to the sink."""
        height, width = data.shape[:2]
        frame = Frame(
            data=data,
            metadata=FrameMetadata(
                frame_number=index + 1,
                width=width,
                height=height,
                pixel_format=self.pixel_format,
                pts=index / fps,
                source=item.source,
            ),
        )

        if item.pipeline is not None:
            result = item.pipeline.process_frame(FrameRequest(source=frame))
            if not result.ok:
                return
            frame = result.frame

        if self.sink is not None:
            self.sink.display_frame(frame)

    def _notify_readiness(
        self, item: PlaybackItem, status: ItemStatus, error: Optional[BaseException]
    ) -> None:
        for callback in self._observers.take_readiness(item):
            callback(status, error)

    def _notify_errors(self, error: BaseException) -> None:
        for callback in self._observers.errors():
            callback(error)
