"""Tests for session state, subscriptions and delegates."""

from unittest.mock import MagicMock

import pytest

from playback.delegate import CallbackDelegate, PlaybackDelegate
from playback.session import PlaybackSession
from playback.types import BoundaryToken, PlaybackItem, PlaybackStatus, Subscription


def make_session():
    return PlaybackSession(source="clip.mp4", generation=1, item=PlaybackItem(source="clip.mp4"))


class TestSubscription:
    """Test cancellable subscriptions."""

    def test_cancel_once(self):
        """Test the cancel hook runs exactly once."""
        hook = MagicMock()
        subscription = Subscription(hook)

        subscription.cancel()
        subscription.cancel()

        hook.assert_called_once_with()
        assert subscription.cancelled is True


class TestPlaybackSession:
    """Test session lifecycle."""

    def test_lifecycle(self):
        """Test the normal load, play, end path."""
        session = make_session()

        session.advance(PlaybackStatus.READY)
        session.advance(PlaybackStatus.PLAYING)
        session.advance(PlaybackStatus.PLAYING)
        session.advance(PlaybackStatus.ENDED)

        assert session.status == PlaybackStatus.ENDED

    @pytest.mark.parametrize(
        "path",
        [
            [PlaybackStatus.PLAYING],
            [PlaybackStatus.ENDED],
            [PlaybackStatus.FAILED, PlaybackStatus.READY],
            [PlaybackStatus.READY, PlaybackStatus.PLAYING, PlaybackStatus.ENDED, PlaybackStatus.PLAYING],
        ],
    )
    def test_invalid_transitions(self, path):
        """Test transitions outside the lifecycle are refused."""
        session = make_session()

        with pytest.raises(RuntimeError):
            for status in path:
                session.advance(status)

    def test_cancel_subscriptions(self):
        """Test teardown cancels every subscription and the seek."""
        session = make_session()
        hooks = [MagicMock() for _ in range(3)]
        session.boundary = BoundaryToken(token_id=1, time=4.0, subscription=Subscription(hooks[0]))
        session.readiness_subscription = Subscription(hooks[1])
        session.error_subscription = Subscription(hooks[2])
        session.is_seeking = True

        session.cancel_subscriptions()

        for hook in hooks:
            hook.assert_called_once_with()
        assert session.boundary is None
        assert session.is_seeking is False

    def test_transparent(self):
        """Test transparency follows the item's pipeline."""
        assert make_session().transparent is False


class TestDelegates:
    """Test delegate helpers."""

    def test_base_delegate_ignores_everything(self):
        """Test the base delegate accepts every notification."""
        delegate = PlaybackDelegate()
        controller = MagicMock()

        delegate.on_playback_started(controller)
        delegate.on_loop(controller)
        delegate.on_playback_ended(controller)
        delegate.on_failure(RuntimeError("x"), controller)

    def test_callback_delegate(self):
        """Test plain callables receive the notifications they registered for."""
        on_loop = MagicMock()
        on_failure = MagicMock()
        controller = MagicMock()
        error = RuntimeError("x")
        delegate = CallbackDelegate(on_loop=on_loop, on_failure=on_failure)

        delegate.on_playback_started(controller)
        delegate.on_loop(controller)
        delegate.on_failure(error, controller)

        on_loop.assert_called_once_with(controller)
        on_failure.assert_called_once_with(error, controller)
