"""
In-memory bounded task queues.

Two queues are owned by a QueueManager created once per process:
the video processing queue (download + pHash generation) and a reserved
audio processing queue for future audio work. Producers never block:
offer() fails immediately when a queue is full.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Deque, Generic, List, Optional, Set, TypeVar, Dict, Any

from .errors import QueueClosedError
from .models import Video, MAX_PROCESSABLE_DURATION_SEC

logger = logging.getLogger("shorts_worker")

DEFAULT_MAX_RETRIES = 3


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


@dataclass
class VideoProcessingTask:
    """
    Work item for one video: fetch a low-resolution copy, sample frames,
    derive the pHash and store it on the video record.
    """
    video_id: Optional[int]
    external_id: str
    title: Optional[str]
    source_url: str
    duration_seconds: Optional[int]
    created_at: datetime = field(default_factory=datetime.now)
    retry_count: int = 0
    high_priority: bool = False

    def can_retry(self, max_retries: int = DEFAULT_MAX_RETRIES) -> bool:
        return self.retry_count < max_retries

    def next_attempt(self) -> 'VideoProcessingTask':
        """Copy of this task for the next retry"""
        return replace(self, retry_count=self.retry_count + 1)

    def is_valid(self) -> bool:
        return (
            self.video_id is not None
            and not _is_blank(self.external_id)
            and not _is_blank(self.source_url)
            and self.duration_seconds is not None
            and 0 < self.duration_seconds <= MAX_PROCESSABLE_DURATION_SEC
        )

    @classmethod
    def create(cls, video: Video, high_priority: bool = False) -> 'VideoProcessingTask':
        return cls(
            video_id=video.id,
            external_id=video.external_id,
            title=video.title,
            source_url=video.source_url,
            duration_seconds=video.duration_seconds,
            high_priority=high_priority,
        )


class AudioProcessingType(str, Enum):
    EXTRACT_AUDIO = "EXTRACT_AUDIO"
    GENERATE_FINGERPRINT = "GENERATE_FINGERPRINT"
    SPEECH_TO_TEXT = "SPEECH_TO_TEXT"
    SIMILARITY_ANALYSIS = "SIMILARITY_ANALYSIS"


@dataclass
class AudioProcessingTask:
    """Reserved work item for the audio queue; no consumer exists yet"""
    video_id: Optional[int]
    external_id: str
    title: Optional[str]
    source_url: str
    duration_seconds: Optional[int]
    processing_type: Optional[AudioProcessingType]
    created_at: datetime = field(default_factory=datetime.now)
    retry_count: int = 0

    def can_retry(self, max_retries: int = DEFAULT_MAX_RETRIES) -> bool:
        return self.retry_count < max_retries

    def next_attempt(self) -> 'AudioProcessingTask':
        return replace(self, retry_count=self.retry_count + 1)

    def is_valid(self) -> bool:
        return (
            self.video_id is not None
            and not _is_blank(self.external_id)
            and not _is_blank(self.source_url)
            and self.duration_seconds is not None
            and 0 < self.duration_seconds <= MAX_PROCESSABLE_DURATION_SEC
            and self.processing_type is not None
        )


@dataclass(frozen=True)
class QueueStatus:
    """Point-in-time snapshot of a queue, used for monitoring"""
    queue_type: str
    current_size: int
    capacity: int

    @property
    def usage_percentage(self) -> float:
        if not self.capacity:
            return 0.0
        return self.current_size / self.capacity * 100.0

    @property
    def is_full(self) -> bool:
        return self.current_size == self.capacity

    @property
    def is_empty(self) -> bool:
        return self.current_size == 0

    @property
    def remaining_capacity(self) -> int:
        return self.capacity - self.current_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            'queue_type': self.queue_type,
            'current_size': self.current_size,
            'capacity': self.capacity,
            'remaining_capacity': self.remaining_capacity,
            'usage_percentage': self.usage_percentage,
            'is_full': self.is_full,
            'is_empty': self.is_empty,
        }


T = TypeVar("T")


class TaskQueue(Generic[T]):
    """
    Bounded FIFO buffer guarded by a single condition variable.

    The size is always the length of the underlying deque, so it cannot
    drift from the real occupancy. Capacity is fixed at construction.
    """

    def __init__(self, queue_type: str, capacity: int):
        if capacity < 1:
            raise ValueError(f"Queue capacity must be positive, got {capacity}")
        self.queue_type = queue_type
        self._capacity = capacity
        self._items: Deque[T] = deque()
        self._not_empty = threading.Condition(threading.Lock())
        self._closed = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        with self._not_empty:
            return self._closed

    def offer(self, task: T, front: bool = False) -> bool:
        """
        Enqueue without blocking.

        Returns False when the queue is full or closed; any internal error
        is logged and reported as a failed offer.
        """
        try:
            with self._not_empty:
                if self._closed:
                    logger.warning(f"{self.queue_type} queue is closed, rejected task for video {_task_video_id(task)}")
                    return False
                if len(self._items) >= self._capacity:
                    logger.warning(f"{self.queue_type} queue is full ({self._capacity}), rejected task for video {_task_video_id(task)}")
                    return False
                if front:
                    self._items.appendleft(task)
                else:
                    self._items.append(task)
                size = len(self._items)
                self._not_empty.notify()
            logger.debug(f"Queued {self.queue_type} task for video {_task_video_id(task)}, size now {size}")
            return True
        except Exception as e:
            logger.error(f"Error adding task to {self.queue_type} queue: {e}", exc_info=True)
            return False

    def take(self) -> T:
        """
        Block until a task is available.

        Raises QueueClosedError once close() has been called, which
        callers treat as a shutdown signal.
        """
        with self._not_empty:
            while not self._items and not self._closed:
                self._not_empty.wait()
            if self._closed:
                raise QueueClosedError(f"{self.queue_type} queue closed")
            task = self._items.popleft()
            size = len(self._items)
        logger.debug(f"Took {self.queue_type} task for video {_task_video_id(task)}, {size} remaining")
        return task

    def poll(self) -> Optional[T]:
        """Non-blocking take; returns None when the queue is empty"""
        with self._not_empty:
            if not self._items:
                return None
            task = self._items.popleft()
            size = len(self._items)
        logger.debug(f"Polled {self.queue_type} task for video {_task_video_id(task)}, {size} remaining")
        return task

    def size(self) -> int:
        with self._not_empty:
            return len(self._items)

    def remaining_capacity(self) -> int:
        with self._not_empty:
            return self._capacity - len(self._items)

    def status(self) -> QueueStatus:
        with self._not_empty:
            return QueueStatus(self.queue_type, len(self._items), self._capacity)

    def drain(self) -> List[T]:
        """
        Remove and return every waiting task.

        Claims are not touched here; QueueManager.clear_all() releases the
        claims of whatever it drains.
        """
        with self._not_empty:
            drained = list(self._items)
            self._items.clear()
        return drained

    def close(self) -> None:
        """Reject further offers and wake every blocked take()"""
        with self._not_empty:
            self._closed = True
            self._not_empty.notify_all()


def _task_video_id(task) -> Any:
    return getattr(task, "video_id", None)


class QueueManager:
    """
    Pipeline context holding both task queues and the set of video ids
    that are queued or being processed.

    A video id stays claimed from the moment its task is accepted until
    the worker reaches a final outcome, retries included, so the same
    record is never handled by two workers at once.
    """

    def __init__(self, video_queue_capacity: int = 5000, audio_queue_capacity: int = 5000):
        self.video_queue: TaskQueue[VideoProcessingTask] = TaskQueue("VIDEO_PROCESSING", video_queue_capacity)
        self.audio_queue: TaskQueue[AudioProcessingTask] = TaskQueue("AUDIO_PROCESSING", audio_queue_capacity)
        self._claimed: Set[int] = set()
        self._claimed_lock = threading.Lock()

        logger.info(
            f"Queue manager initialized - video queue capacity: {video_queue_capacity}, "
            f"audio queue capacity: {audio_queue_capacity}"
        )

    def claim(self, video_id: int) -> bool:
        with self._claimed_lock:
            if video_id in self._claimed:
                return False
            self._claimed.add(video_id)
            return True

    def release(self, video_id: int) -> None:
        with self._claimed_lock:
            self._claimed.discard(video_id)

    def is_claimed(self, video_id: int) -> bool:
        with self._claimed_lock:
            return video_id in self._claimed

    def in_flight_count(self) -> int:
        with self._claimed_lock:
            return len(self._claimed)

    def submit_video_task(self, task: VideoProcessingTask) -> bool:
        """Claim the task's video id and offer the task; undo the claim on rejection"""
        if not self.claim(task.video_id):
            logger.warning(f"Video {task.video_id} is already queued or in progress")
            return False
        if not self.video_queue.offer(task, front=task.high_priority):
            self.release(task.video_id)
            return False
        return True

    def status(self) -> Dict[str, QueueStatus]:
        return {
            'video_queue': self.video_queue.status(),
            'audio_queue': self.audio_queue.status(),
        }

    def clear_all(self) -> int:
        """
        Drop every queued task and release its claim (development and tests).

        Videos a worker is processing right now stay claimed.

        Returns:
            Number of tasks dropped
        """
        dropped = self.video_queue.drain()
        dropped.extend(self.audio_queue.drain())
        with self._claimed_lock:
            for task in dropped:
                self._claimed.discard(task.video_id)
        logger.info(f"All queues cleared, {len(dropped)} tasks dropped")
        return len(dropped)

    def close(self) -> None:
        self.video_queue.close()
        self.audio_queue.close()
