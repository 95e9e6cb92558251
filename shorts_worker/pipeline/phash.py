"""
64-bit perceptual hash of an averaged grayscale frame, and the Hamming
distance used to compare two of them.

Fingerprints are stored as signed 64-bit integers (two's complement of the
unsigned bit pattern) so they fit a BIGINT column unchanged.
"""

import logging

import cv2
import imagehash
import numpy as np

logger = logging.getLogger("shorts_worker")

IMG_SIZE = 32
PHASH_SIZE = 8
HASH_BITS = PHASH_SIZE * PHASH_SIZE
DEFAULT_SIMILARITY_THRESHOLD = 8

_MASK64 = (1 << 64) - 1
_SIGN_BIT = 1 << 63


def to_signed64(value: int) -> int:
    """Reinterpret an unsigned 64-bit pattern as a signed integer"""
    value &= _MASK64
    if value >= _SIGN_BIT:
        return value - (1 << 64)
    return value


def to_unsigned64(value: int) -> int:
    return value & _MASK64


def compute_phash(averaged_frame: np.ndarray) -> int:
    """
    pHash of a single-channel frame.

    1. resize to 32x32
    2. convert to float32
    3. 2D DCT
    4. keep the top-left 8x8 low-frequency block
    5. mean of the 63 coefficients excluding the DC term
    6. bit i (row-major, DC is bit 0) set iff coefficient i > mean
    7. reinterpret as signed 64-bit
    """
    if averaged_frame is None or averaged_frame.size == 0:
        raise ValueError("Cannot hash an empty frame")
    if averaged_frame.ndim != 2:
        raise ValueError(f"Expected a single-channel frame, got shape {averaged_frame.shape}")

    resized = cv2.resize(averaged_frame, (IMG_SIZE, IMG_SIZE), interpolation=cv2.INTER_LINEAR)
    float_img = np.float32(resized)
    dct = cv2.dct(float_img)
    low_freq = dct[:PHASH_SIZE, :PHASH_SIZE].flatten()

    average = float(np.sum(low_freq[1:], dtype=np.float64)) / (HASH_BITS - 1)

    unsigned_hash = 0
    for i, coefficient in enumerate(low_freq):
        # strict comparison: a tie leaves the bit unset
        if float(coefficient) > average:
            unsigned_hash |= 1 << i

    signed_hash = to_signed64(unsigned_hash)
    logger.debug(f"pHash generated: 0x{unsigned_hash:016x} -> {signed_hash}")
    return signed_hash


def hamming_distance(hash1: int, hash2: int) -> int:
    """Number of differing bits between two 64-bit fingerprints (0-64)"""
    return bin((hash1 ^ hash2) & _MASK64).count("1")


def is_similar(hash1: int, hash2: int, threshold: int = DEFAULT_SIMILARITY_THRESHOLD) -> bool:
    return hamming_distance(hash1, hash2) <= threshold


def to_image_hash(fingerprint: int) -> imagehash.ImageHash:
    """8x8 ImageHash whose row-major cell i holds bit i of the fingerprint"""
    unsigned_hash = to_unsigned64(fingerprint)
    bits = np.array([(unsigned_hash >> i) & 1 for i in range(HASH_BITS)], dtype=bool)
    return imagehash.ImageHash(bits.reshape(PHASH_SIZE, PHASH_SIZE))


def from_image_hash(image_hash: imagehash.ImageHash) -> int:
    bits = np.asarray(image_hash.hash, dtype=bool).flatten()
    if bits.size != HASH_BITS:
        raise ValueError(f"Expected a {HASH_BITS}-bit hash, got {bits.size} bits")
    unsigned_hash = 0
    for i, bit in enumerate(bits):
        if bit:
            unsigned_hash |= 1 << i
    return to_signed64(unsigned_hash)


def fingerprint_hex(fingerprint: int) -> str:
    return str(to_image_hash(fingerprint))
