"""
In-memory storage adapter.

Keeps copies of the records so callers never share mutable state with
the store; every change has to go through save_video().
"""

import itertools
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional, Dict, List

from .base import VideoRepository
from ..models import Video, ProcessingStatus
from ..pipeline.phash import hamming_distance

logger = logging.getLogger("shorts_worker")


class InMemoryVideoRepository(VideoRepository):
    """Thread-safe dictionary-backed implementation of the storage adapter"""

    def __init__(self):
        self._videos: Dict[int, Video] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def get_video(self, video_id: int) -> Optional[Video]:
        with self._lock:
            video = self._videos.get(video_id)
            return replace(video) if video else None

    def get_by_external_id(self, external_id: str) -> Optional[Video]:
        with self._lock:
            for video in self._videos.values():
                if video.external_id == external_id:
                    return replace(video)
            return None

    def save_video(self, video: Video) -> Video:
        with self._lock:
            if video.id is None:
                for stored in self._videos.values():
                    if stored.external_id == video.external_id:
                        raise ValueError(f"Duplicate external id: {video.external_id}")
                video.id = next(self._ids)
                if video.collected_at is None:
                    video.collected_at = datetime.now()
            self._videos[video.id] = replace(video)
            return video

    def find_failed_before(self, cutoff: datetime) -> List[Video]:
        with self._lock:
            return [
                replace(video) for video in self._videos.values()
                if video.processing_status == ProcessingStatus.FAILED
                and video.processed_at is not None
                and video.processed_at < cutoff
            ]

    def find_with_fingerprint(self) -> List[Video]:
        with self._lock:
            return [replace(v) for v in self._videos.values() if v.phash_fingerprint is not None]

    def find_similar(self, fingerprint: int, max_distance: int, exclude_video_id: Optional[int] = None) -> List[Video]:
        return [
            video for video in self.find_with_fingerprint()
            if video.id != exclude_video_id
            and hamming_distance(video.phash_fingerprint, fingerprint) <= max_distance
        ]

    def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ProcessingStatus}
        with self._lock:
            for video in self._videos.values():
                counts[video.processing_status.value] += 1
        return counts
