import logging
from typing import Iterable, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..errors import FingerprintError, NoFramesDecodedError

logger = logging.getLogger("shorts_worker")

# (presentation time in seconds, decoded frame)
TimedFrame = Tuple[float, Optional[np.ndarray]]


def prepare_frame(frame: np.ndarray) -> np.ndarray:
    """Convert a decoded frame to grayscale and equalize its histogram"""
    if frame.ndim == 3:
        if frame.shape[2] == 4:
            gray = cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
        elif frame.shape[2] == 3:
            gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        else:
            gray = frame[:, :, 0]
    else:
        gray = frame

    if gray.dtype != np.uint8:
        gray = np.clip(gray, 0, 255).astype(np.uint8)

    return cv2.equalizeHist(gray)


def accumulate_frames(frames: Iterable[TimedFrame],
                      target_timestamps: Sequence[float]) -> Tuple[Optional[np.ndarray], int]:
    """
    Sum the frames that land on the sampled timestamps in one forward pass.

    Targets must be sorted ascending. A frame is credited when its timestamp
    reaches the next unconsumed target; the target pointer then advances by
    exactly one, so a late frame never covers more than one target. Reading
    stops once every target has been consumed or the stream ends.

    Returns the float64 per-pixel sum (None if nothing matched) and the
    number of frames added to it.
    """
    if not target_timestamps:
        return None, 0

    accumulator = None
    frame_count = 0
    target_index = 0

    for timestamp, frame in frames:
        if timestamp < target_timestamps[target_index]:
            continue

        if frame is not None and frame.size > 0:
            processed = prepare_frame(frame)
            if accumulator is None:
                accumulator = processed.astype(np.float64)
            elif processed.shape != accumulator.shape:
                raise FingerprintError(
                    f"Frame size changed mid-stream: {processed.shape} != {accumulator.shape}"
                )
            else:
                accumulator += processed
            frame_count += 1

        target_index += 1
        if target_index >= len(target_timestamps):
            break

    logger.debug(f"Accumulated {frame_count} frames for {len(target_timestamps)} targets")
    return accumulator, frame_count


def average_frames(frames: Iterable[TimedFrame], target_timestamps: Sequence[float]) -> np.ndarray:
    """Average of the sampled frames; raises NoFramesDecodedError if none matched"""
    accumulator, frame_count = accumulate_frames(frames, target_timestamps)
    if accumulator is None or frame_count == 0:
        raise NoFramesDecodedError()
    return accumulator / frame_count
