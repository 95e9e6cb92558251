"""
Domain models for the fingerprint worker.

Defines the video record with its processing lifecycle and the result
object returned for each processed task.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

MAX_PROCESSABLE_DURATION_SEC = 120


class ProcessingStatus(str, Enum):
    """Processing lifecycle of a video record"""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class Video:
    """Represents one ingested short video"""
    external_id: str
    id: Optional[int] = None
    title: Optional[str] = None
    channel_id: Optional[str] = None
    channel_title: Optional[str] = None
    duration_seconds: Optional[int] = None
    published_at: Optional[datetime] = None
    source_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    phash_fingerprint: Optional[int] = None
    collected_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def is_processable(self) -> bool:
        """Duration known and at most two minutes, external id present"""
        return (
            self.duration_seconds is not None
            and self.duration_seconds <= MAX_PROCESSABLE_DURATION_SEC
            and self.external_id is not None
            and bool(self.external_id.strip())
        )

    def start_processing(self) -> None:
        self.processing_status = ProcessingStatus.IN_PROGRESS
        self.error_message = None

    def complete_processing(self, phash_fingerprint: int) -> None:
        self.processing_status = ProcessingStatus.COMPLETED
        self.phash_fingerprint = phash_fingerprint
        self.processed_at = datetime.now()
        self.error_message = None

    def fail_processing(self, error_message: str) -> None:
        self.processing_status = ProcessingStatus.FAILED
        self.phash_fingerprint = None
        self.error_message = error_message
        self.processed_at = datetime.now()

    def reset_for_retry(self) -> None:
        """Put a record back to PENDING before it is re-enqueued"""
        self.processing_status = ProcessingStatus.PENDING
        self.phash_fingerprint = None
        self.error_message = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'external_id': self.external_id,
            'title': self.title,
            'channel_id': self.channel_id,
            'channel_title': self.channel_title,
            'duration_seconds': self.duration_seconds,
            'published_at': self.published_at.isoformat() if self.published_at else None,
            'source_url': self.source_url,
            'thumbnail_url': self.thumbnail_url,
            'processing_status': self.processing_status.value,
            'phash_fingerprint': self.phash_fingerprint,
            'collected_at': self.collected_at.isoformat() if self.collected_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
            'error_message': self.error_message,
        }


@dataclass
class ProcessingResult:
    """Represents the result of processing one task"""
    success: bool
    video_id: Optional[int] = None
    fingerprint: Optional[int] = None
    error: Optional[str] = None
    retryable: bool = True
    processing_time_sec: float = 0.0
