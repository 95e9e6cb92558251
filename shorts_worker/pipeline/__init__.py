"""
Fingerprinting pipeline: timestamp sampling, frame averaging, pHash.
"""

from .sampling import sample_timestamps
from .frames import accumulate_frames, average_frames, prepare_frame
from .phash import compute_phash, hamming_distance, is_similar, fingerprint_hex
from .fingerprint import compute_fingerprint

__all__ = [
    'sample_timestamps',
    'accumulate_frames',
    'average_frames',
    'prepare_frame',
    'compute_phash',
    'hamming_distance',
    'is_similar',
    'fingerprint_hex',
    'compute_fingerprint',
]
