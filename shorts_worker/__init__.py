"""
Short-form video fingerprint worker.

Queues collected videos, samples their frames and derives a 64-bit
perceptual hash for near-duplicate detection.
"""

__version__ = "0.1.0"
