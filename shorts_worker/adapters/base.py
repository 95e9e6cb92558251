"""
Abstract base class for video record storage.

Defines the interface every storage backend implements, so the worker
can run against Postgres in production and an in-memory store in
development and tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Dict, List

from ..models import Video


class VideoRepository(ABC):
    """Abstract base class for video storage adapters"""

    def connect(self) -> None:
        """Open connections; no-op for backends that need none"""

    def close(self) -> None:
        """Release connections; no-op for backends that need none"""

    @abstractmethod
    def get_video(self, video_id: int) -> Optional[Video]:
        """
        Get a video by primary key.

        Args:
            video_id: ID of the video

        Returns:
            Video if found, None otherwise
        """
        pass

    @abstractmethod
    def get_by_external_id(self, external_id: str) -> Optional[Video]:
        """
        Get a video by its catalog identifier.

        Args:
            external_id: identifier assigned by the external video catalog

        Returns:
            Video if found, None otherwise
        """
        pass

    def exists_by_external_id(self, external_id: str) -> bool:
        return self.get_by_external_id(external_id) is not None

    @abstractmethod
    def save_video(self, video: Video) -> Video:
        """
        Insert or update a video.

        Assigns `id` (and `collected_at` when missing) on insert.

        Returns:
            The stored video
        """
        pass

    @abstractmethod
    def find_failed_before(self, cutoff: datetime) -> List[Video]:
        """
        Get FAILED videos whose processed_at is older than the cutoff.

        Args:
            cutoff: only failures recorded strictly before this time
        """
        pass

    @abstractmethod
    def find_with_fingerprint(self) -> List[Video]:
        """Get every video that has a fingerprint"""
        pass

    @abstractmethod
    def find_similar(self, fingerprint: int, max_distance: int, exclude_video_id: Optional[int] = None) -> List[Video]:
        """
        Get videos whose fingerprint is within `max_distance` bits.

        Args:
            fingerprint: signed 64-bit fingerprint to compare with
            max_distance: maximum Hamming distance, inclusive
            exclude_video_id: video to leave out, usually the query video
        """
        pass

    @abstractmethod
    def count_by_status(self) -> Dict[str, int]:
        """
        Get video counts keyed by processing status.

        Returns:
            Dictionary with a count for every status
        """
        pass

    def ping(self) -> bool:
        """Health check"""
        return True
