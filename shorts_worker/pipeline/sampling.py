from typing import List

DEFAULT_SEGMENTS = 30
DEFAULT_FRAMES_PER_SEGMENT = 10


def sample_timestamps(duration_seconds: float,
                      segments: int = DEFAULT_SEGMENTS,
                      frames_per_segment: int = DEFAULT_FRAMES_PER_SEGMENT) -> List[float]:
    """
    Target timestamps (seconds, ascending) for fingerprint sampling.

    The duration is split into `segments` equal intervals and each interval
    contributes `frames_per_segment` evenly spaced offsets:

        (segment_index + i / frames_per_segment) * segment_duration

    Fingerprints are only comparable when every producer samples with this
    exact formula and ordering.
    """
    if duration_seconds is None or duration_seconds <= 0:
        raise ValueError(f"Duration must be positive, got {duration_seconds}")
    if segments < 1 or frames_per_segment < 1:
        raise ValueError(f"Invalid sampling configuration: segments={segments}, frames_per_segment={frames_per_segment}")

    segment_duration = float(duration_seconds) / segments

    timestamps = []
    for segment_index in range(segments):
        for i in range(frames_per_segment):
            offset = i / frames_per_segment
            timestamps.append((segment_index + offset) * segment_duration)

    return timestamps
