"""Playback control for stacked-alpha video.

This package sequences loading, seeking, playback, looping and failure
reporting on top of a media transport, composing transparent assets through
the compositor package.

Example:
    >>> from playback import OpenCVPlayer, PlaybackController, RepeatMode
    >>> player = OpenCVPlayer(sink=sink)
    >>> controller = PlaybackController(player, delegate=delegate)
    >>> controller.load("bat.mp4", transparent=True, repeat_mode=RepeatMode.LOOP,
    ...                 auto_play=True)
"""

from playback.errors import (
    AssetError,
    PlaybackError,
    TransportError,
)
from playback.types import (
    BoundaryToken,
    ItemStatus,
    PlaybackItem,
    PlaybackStatus,
    PlayerConfig,
    PlayerTransportProtocol,
    RepeatMode,
    Subscription,
)
from playback.session import PlaybackSession
from playback.delegate import CallbackDelegate, PlaybackDelegate
from playback.player import MockPlayer, OpenCVPlayer
from playback.controller import PlaybackController
from playback.config import PlayerConfigLoader, load_player_config

__all__ = [
    # Errors
    "AssetError",
    "PlaybackError",
    "TransportError",
    # Types
    "BoundaryToken",
    "ItemStatus",
    "PlaybackItem",
    "PlaybackStatus",
    "PlayerConfig",
    "PlayerTransportProtocol",
    "RepeatMode",
    "Subscription",
    "PlaybackSession",
    # Delegates
    "CallbackDelegate",
    "PlaybackDelegate",
    # Transports
    "MockPlayer",
    "OpenCVPlayer",
    # Control
    "PlaybackController",
    # Configuration
    "PlayerConfigLoader",
    "load_player_config",
]
