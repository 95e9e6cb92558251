import logging
from typing import Iterable

from ..errors import FingerprintError
from .frames import TimedFrame, average_frames
from .phash import compute_phash, fingerprint_hex
from .sampling import sample_timestamps, DEFAULT_SEGMENTS, DEFAULT_FRAMES_PER_SEGMENT

logger = logging.getLogger("shorts_worker")


def compute_fingerprint(frames: Iterable[TimedFrame],
                        duration_seconds: float,
                        segments: int = DEFAULT_SEGMENTS,
                        frames_per_segment: int = DEFAULT_FRAMES_PER_SEGMENT) -> int:
    """
    Video fingerprint from a decoded frame stream.

    Samples segments * frames_per_segment timestamps over the duration,
    averages the equalized grayscale frames found at those timestamps and
    hashes the average.

    Raises:
        NoFramesDecodedError: no frame matched a sampled timestamp
        FingerprintError: invalid duration or a failure inside the transform
    """
    try:
        targets = sample_timestamps(duration_seconds, segments, frames_per_segment)
    except ValueError as e:
        raise FingerprintError(str(e)) from e

    averaged = average_frames(frames, sorted(targets))

    try:
        fingerprint = compute_phash(averaged)
    except (ValueError, ArithmeticError) as e:
        raise FingerprintError(f"pHash computation failed: {e}") from e

    logger.debug(f"Fingerprint {fingerprint} ({fingerprint_hex(fingerprint)}) over {duration_seconds}s")
    return fingerprint
