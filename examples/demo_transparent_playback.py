#!/usr/bin/env python3
"""Demo script for stacked-alpha transparent playback.

This script plays a video whose frames stack a color image above a grayscale
alpha mask, composites every frame into RGBA and either writes the result as
a PNG sequence or keeps it in memory.

Usage:
    # Play a synthetic stacked clip (no media file needed)
    python demo_transparent_playback.py

    # Play a real asset and write transparent PNGs
    python demo_transparent_playback.py bat.mp4 --output frames/

    # Loop with a red tint for 10 seconds
    python demo_transparent_playback.py bat.mp4 --loop --tint 255,0,0 --duration 10
"""

import argparse
import asyncio
import logging
import sys
import tempfile
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from compositor import TintSpec
from playback import (
    CallbackDelegate,
    OpenCVPlayer,
    PlaybackController,
    PlaybackStatus,
    RepeatMode,
    load_player_config,
)
from video import ImageSequenceSink, MockFrameSink

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Stacked-alpha transparent playback demo"
    )

    parser.add_argument(
        "source",
        nargs="?",
        default=None,
        help="Stacked-alpha video file. If not specified, a synthetic clip is generated",
    )

    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Directory for RGBA PNG frames. If not specified, frames stay in memory",
    )

    parser.add_argument(
        "--loop",
        action="store_true",
        help="Loop the clip instead of playing it once",
    )

    parser.add_argument(
        "--tint",
        type=str,
        default=None,
        help="Recolor the mask with an R,G,B tint (e.g., 255,0,0)",
    )

    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Stop after this many seconds (0 to wait for the end)",
    )

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Player configuration YAML",
    )

    return parser.parse_args()


def tint_from_string(value: Optional[str]) -> Optional[TintSpec]:
    """Convert an R,G,B string to a tint."""
    if not value:
        return None
    red, green, blue = (int(part) for part in value.split(","))
    return TintSpec(color=(red, green, blue))


def write_synthetic_clip(path: Path, size: Tuple[int, int] = (320, 240), frames: int = 90) -> None:
    """Write a stacked clip: a moving colored disc above its own mask."""
    width, height = size
    writer = cv2.VideoWriter(
        str(path), cv2.VideoWriter_fourcc(*"mp4v"), 30.0, (width, height * 2)
    )
    if not writer.isOpened():
        raise RuntimeError(f"Cannot write synthetic clip to {path}")

    try:
        for i in range(frames):
            center = (int(width * (0.2 + 0.6 * i / frames)), height // 2)
            stacked = np.zeros((height * 2, width, 3), dtype=np.uint8)
            cv2.circle(stacked[:height], center, height // 4, (40, 120, 220), -1)
            cv2.circle(stacked[height:], center, height // 4, (255, 255, 255), -1)
            writer.write(stacked)
    finally:
        writer.release()


async def main():
    """Main demo function."""
    args = parse_args()

    config = load_player_config(args.config)
    repeat_mode = RepeatMode.LOOP if args.loop else config.repeat_mode
    tint = tint_from_string(args.tint)

    with tempfile.TemporaryDirectory() as workdir:
        source = args.source
        if source is None:
            source = str(Path(workdir) / "synthetic.mp4")
            write_synthetic_clip(Path(source))
            logger.info(f"Generated synthetic stacked clip: {source}")

        if args.output:
            sink = ImageSequenceSink(args.output)
            logger.info(f"Writing RGBA frames to {args.output}")
        else:
            sink = MockFrameSink(max_frames=1)

        logger.info("=== Stacked-Alpha Playback Demo ===")
        logger.info(f"Source: {source}")
        logger.info(f"Repeat: {repeat_mode.value}")
        if tint is not None:
            logger.info(f"Tint: {tint.color}")

        finished = asyncio.Event()

        def on_ended(controller):
            logger.info("Playback ended")
            finished.set()

        def on_failure(error, controller):
            logger.error(f"Playback failure: {error}")
            if controller.status.is_terminal:
                finished.set()

        delegate = CallbackDelegate(
            on_started=lambda controller: logger.info("Playback started"),
            on_loop=lambda controller: logger.info(
                f"Looped ({controller.session.loop_count})"
            ),
            on_ended=on_ended,
            on_failure=on_failure,
        )

        player = OpenCVPlayer(sink=sink)
        controller = PlaybackController(player, config=config, delegate=delegate)

        try:
            controller.load(
                source,
                transparent=True,
                repeat_mode=repeat_mode,
                tint=tint,
                auto_play=True,
            )

            timeout = args.duration if args.duration > 0 else None
            try:
                await asyncio.wait_for(finished.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.info(f"Stopped after {args.duration} seconds")

        except KeyboardInterrupt:
            logger.info("Interrupted by user")

        finally:
            session = controller.session
            controller.close()
            player.close()

            # Final stats
            if session is not None and session.item.pipeline is not None:
                stats = session.item.pipeline.get_stats()
                logger.info("=== Final Statistics ===")
                logger.info(f"Frames composited: {stats.frames_processed}")
                logger.info(f"Frames failed: {stats.frames_failed}")
                logger.info(
                    f"Latency: {stats.average_latency_ms:.2f}ms "
                    f"(min: {stats.min_latency_ms:.2f}ms, "
                    f"max: {stats.max_latency_ms:.2f}ms)"
                )

        status = session.status if session is not None else None
        logger.info("Demo complete!")
        return 1 if status == PlaybackStatus.FAILED else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
