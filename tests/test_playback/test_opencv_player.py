"""Tests for the OpenCV transport with a fake capture."""

import asyncio
import threading

import cv2
import numpy as np
import pytest

from conftest import make_stacked_frame
from playback.controller import PlaybackController
from playback.errors import AssetError, TransportError
from playback.player import OpenCVPlayer
from playback.types import ItemStatus, PlaybackItem, PlaybackStatus, PlayerConfig, RepeatMode
from video.output import MockFrameSink
from video.types import PixelFormat


class FakeCapture:
    """Stands in for cv2.VideoCapture over an in-memory frame list."""

    def __init__(self, frames, fps=30.0, opened=True, seek_ok=True, read_error=None):
        self.frames = frames
        self.fps = fps
        self.opened = opened
        self.seek_ok = seek_ok
        self.read_error = read_error
        self.pos = 0
        self.seek_attempts = 0
        self.released = threading.Event()

    def isOpened(self):
        return self.opened

    def get(self, prop):
        if prop == cv2.CAP_PROP_FPS:
            return self.fps
        if prop == cv2.CAP_PROP_FRAME_COUNT:
            return float(len(self.frames))
        return 0.0

    def set(self, prop, value):
        self.seek_attempts += 1
        if prop != cv2.CAP_PROP_POS_FRAMES or not self.seek_ok:
            return False
        self.pos = int(value)
        return True

    def read(self):
        if self.read_error is not None:
            raise self.read_error
        if self.pos >= len(self.frames):
            return False, None
        frame = self.frames[self.pos].copy()
        self.pos += 1
        return True, frame

    def release(self):
        self.released.set()


def stacked_frames(count=10):
    return [
        make_stacked_frame(
            width=4, height=3, color=(10, 20, 30), luminance=90, pixel_format=PixelFormat.BGR
        ).data
        for _ in range(count)
    ]


async def wait_for(predicate, timeout=2.0):
    """Poll ``predicate`` while letting the loop run marshaled callbacks."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


def make_player(capture, sink=None):
    return OpenCVPlayer(sink=sink, capture_factory=lambda source: capture, sleep=lambda s: None)


class TestOpenCVPlayerTransport:
    """Test the transport on its own."""

    def test_reports_ready_and_duration(self):
        """Test readiness and duration from capture properties."""
        capture = FakeCapture(stacked_frames(15), fps=30.0)
        player = make_player(capture)
        item = PlaybackItem(source="clip.mp4")
        ready = threading.Event()
        statuses = []

        def on_ready(status, error):
            statuses.append(status)
            ready.set()

        player.observe_readiness(item, on_ready)
        player.replace_current_item(item)

        assert ready.wait(timeout=2.0)
        assert statuses == [ItemStatus.READY]
        assert player.duration == pytest.approx(0.5)

        player.close()
        assert capture.released.is_set()

    def test_open_failure(self):
        """Test unopenable sources report FAILED readiness."""
        capture = FakeCapture([], opened=False)
        player = make_player(capture)
        item = PlaybackItem(source="missing.mp4")
        ready = threading.Event()
        errors = []

        def on_ready(status, error):
            errors.append(error)
            ready.set()

        player.observe_readiness(item, on_ready)
        player.replace_current_item(item)

        assert ready.wait(timeout=2.0)
        assert isinstance(errors[0], AssetError)
        player.close()

    def test_seek_without_item_fails(self):
        """Test seeking with nothing loaded completes unsuccessfully."""
        player = make_player(FakeCapture([]))
        results = []

        player.seek(1.0, results.append)

        assert results == [False]

    def test_replacing_item_doesnt_wait_for_old_worker(self):
        """Test a slow previous item neither blocks nor leaks into the new one."""
        gate = threading.Event()
        slow = FakeCapture(stacked_frames(30))
        fast = FakeCapture(stacked_frames(15))

        def factory(source):
            if source == "slow.mp4":
                gate.wait(timeout=2.0)
                return slow
            return fast

        player = OpenCVPlayer(capture_factory=factory, sleep=lambda s: None)
        slow_item = PlaybackItem(source="slow.mp4")
        fast_item = PlaybackItem(source="fast.mp4")
        slow_statuses = []
        fast_ready = threading.Event()
        player.observe_readiness(slow_item, lambda status, error: slow_statuses.append(status))
        player.observe_readiness(fast_item, lambda status, error: fast_ready.set())

        player.replace_current_item(slow_item)
        player.replace_current_item(fast_item)

        assert fast_ready.wait(timeout=2.0)
        assert not gate.is_set()
        assert player.duration == pytest.approx(0.5)

        gate.set()
        assert slow.released.wait(timeout=2.0)
        assert slow_statuses == []
        assert player.duration == pytest.approx(0.5)

        player.close()
        assert fast.released.is_set()


class TestOpenCVPlayerPlayback:
    """Test the controller driving the OpenCV transport."""

    @pytest.mark.asyncio
    async def test_transparent_once(self, delegate):
        """Test every frame is composited and playback ends once."""
        capture = FakeCapture(stacked_frames(10))
        sink = MockFrameSink()
        player = make_player(capture, sink)
        controller = PlaybackController(player, delegate=delegate)

        controller.load("bat.mp4", transparent=True, auto_play=True)

        assert await wait_for(lambda: "ended" in delegate.events)
        assert delegate.events == ["started", "ended"]
        assert controller.status == PlaybackStatus.ENDED
        assert sink.frames_displayed == 10

        frame = sink.frames[-1]
        assert frame.shape == (3, 4, 4)
        assert frame.pixel_format == PixelFormat.RGBA
        assert np.all(frame.data[..., 0] == 10)
        assert np.all(frame.data[..., 3] == 90)

        controller.close()
        assert capture.released.wait(timeout=2.0)
        player.close()

    @pytest.mark.asyncio
    async def test_loop(self, delegate):
        """Test looping restarts from the segment start."""
        capture = FakeCapture(stacked_frames(5))
        player = make_player(capture, MockFrameSink(max_frames=5))
        config = PlayerConfig(repeat_mode=RepeatMode.LOOP)
        controller = PlaybackController(player, config=config, delegate=delegate)

        controller.load("bat.mp4", transparent=True, auto_play=True)

        assert await wait_for(lambda: delegate.events.count("looped") >= 2)
        assert delegate.events[:3] == ["started", "looped", "looped"]
        assert "ended" not in delegate.events

        controller.unload()
        assert capture.released.wait(timeout=2.0)
        player.close()

    @pytest.mark.asyncio
    async def test_open_failure(self, delegate):
        """Test a source that can't be opened fails the session."""
        player = make_player(FakeCapture([], opened=False))
        controller = PlaybackController(player, delegate=delegate)

        controller.load("missing.mp4")

        assert await wait_for(lambda: controller.status == PlaybackStatus.FAILED)
        assert delegate.events == ["failed"]
        assert isinstance(delegate.errors[0], AssetError)
        controller.close()

    @pytest.mark.asyncio
    async def test_capture_factory_error(self, delegate):
        """Test errors creating the capture fail the session."""

        def broken_factory(source):
            raise OSError("device busy")

        player = OpenCVPlayer(capture_factory=broken_factory, sleep=lambda s: None)
        controller = PlaybackController(player, delegate=delegate)

        controller.load("clip.mp4")

        assert await wait_for(lambda: controller.status == PlaybackStatus.FAILED)
        assert isinstance(delegate.errors[0].cause, OSError)
        controller.close()

    @pytest.mark.asyncio
    async def test_failing_seeks_dropped_quietly(self, delegate):
        """Test a capture that can't seek never fails the session."""
        capture = FakeCapture(stacked_frames(5), seek_ok=False)
        player = make_player(capture)
        config = PlayerConfig(max_seek_retries=2)
        controller = PlaybackController(player, config=config, delegate=delegate)

        controller.load("clip.mp4", auto_play=True)

        assert await wait_for(
            lambda: capture.seek_attempts == 3 and not controller.session.is_seeking
        )
        assert controller.status == PlaybackStatus.READY
        assert delegate.events == []
        controller.close()
        player.close()

    @pytest.mark.asyncio
    async def test_decode_error(self, delegate):
        """Test decoder errors surface as transport errors."""
        capture = FakeCapture(stacked_frames(5), read_error=RuntimeError("corrupt"))
        player = make_player(capture)
        controller = PlaybackController(player, delegate=delegate)

        controller.load("clip.mp4", transparent=True, auto_play=True)

        assert await wait_for(lambda: controller.status == PlaybackStatus.FAILED)
        assert delegate.events == ["failed"]
        assert isinstance(delegate.errors[0], TransportError)
        controller.close()
