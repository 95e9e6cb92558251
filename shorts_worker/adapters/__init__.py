"""
Storage adapters for video records.

This module provides the abstract repository interface and its
implementations (in-memory, Postgres).
"""

from .base import VideoRepository
from .memory_adapter import InMemoryVideoRepository
from .postgres_adapter import PostgresVideoRepository

__all__ = [
    'VideoRepository',
    'InMemoryVideoRepository',
    'PostgresVideoRepository'
]
