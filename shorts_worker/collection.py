"""
Entry points used by the collector, the scheduler and the API layer to
feed the processing queue.

There is no synchronous failure channel back to callers: enqueue
operations answer with a boolean and every processing failure is
recorded on the video record.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable

from .adapters.base import VideoRepository
from .models import Video
from .task_queue import QueueManager, QueueStatus, VideoProcessingTask

logger = logging.getLogger("shorts_worker")


class VideoCollectionService:
    """Stores collected videos and queues them for fingerprinting"""

    def __init__(self, repository: VideoRepository, queues: QueueManager):
        self.repository = repository
        self.queues = queues

    def ingest(self, videos: Iterable[Video]) -> int:
        """
        Save candidate records not seen before and queue each for processing.

        Returns:
            Number of newly saved videos
        """
        saved_count = 0
        queued_count = 0

        for video in videos:
            if not self._save_if_new(video):
                continue
            saved_count += 1
            if self.enqueue_for_processing(video):
                queued_count += 1

        logger.info(f"Collection finished - saved: {saved_count}, queued: {queued_count}")
        return saved_count

    def _save_if_new(self, video: Video) -> bool:
        try:
            if self.repository.exists_by_external_id(video.external_id):
                logger.debug(f"Video already stored: {video.external_id}")
                return False
            self.repository.save_video(video)
            logger.debug(f"Saved new video: {video.external_id} - {video.title}")
            return True
        except Exception as e:
            logger.error(f"Failed to save video {video.external_id}: {e}", exc_info=True)
            return False

    def enqueue_for_processing(self, video: Video) -> bool:
        """Queue a video; False if it is not processable, already queued, or the queue is full"""
        return self._enqueue(video, high_priority=False)

    def enqueue_high_priority(self, video: Video) -> bool:
        """
        Queue a video ahead of everything waiting, for operator-triggered runs.

        On success the record is reset to PENDING.
        """
        if not video.is_processable():
            logger.warning(f"Video is not processable: {video.external_id}")
            return False
        if video.id is not None and self.queues.is_claimed(video.id):
            logger.warning(f"Video {video.external_id} is already queued or in progress")
            return False

        previous = (video.processing_status, video.phash_fingerprint, video.error_message)
        video.reset_for_retry()
        self.repository.save_video(video)

        queued = self._enqueue(video, high_priority=True)
        if queued:
            logger.info(f"Video {video.external_id} queued with high priority")
        else:
            video.processing_status, video.phash_fingerprint, video.error_message = previous
            self.repository.save_video(video)
        return queued

    def _enqueue(self, video: Video, high_priority: bool) -> bool:
        if not video.is_processable():
            logger.debug(f"Video is not processable: {video.external_id}")
            return False

        task = VideoProcessingTask.create(video, high_priority=high_priority)
        if not task.is_valid():
            logger.warning(f"Invalid processing task for video {video.external_id}")
            return False

        queued = self.queues.submit_video_task(task)
        if queued:
            logger.debug(f"Video queued for processing: {video.external_id}")
        else:
            logger.warning(f"Failed to queue video: {video.external_id}")
        return queued

    def retry_failed(self, failed_before: datetime) -> int:
        """
        Re-queue FAILED videos whose failure is older than `failed_before`.

        Each record is reset to PENDING and saved before it is offered.
        A record that cannot be queued stays PENDING and is not counted.

        Returns:
            Number of videos actually queued
        """
        failed_videos = self.repository.find_failed_before(failed_before)
        if not failed_videos:
            return 0

        retried = 0
        for video in failed_videos:
            if self.queues.is_claimed(video.id):
                logger.debug(f"Failed video already queued: {video.external_id}")
                continue
            try:
                video.reset_for_retry()
                self.repository.save_video(video)
                if self.enqueue_for_processing(video):
                    retried += 1
                    logger.debug(f"Failed video queued for retry: {video.external_id}")
            except Exception as e:
                logger.error(f"Failed to retry video {video.external_id}: {e}", exc_info=True)

        logger.info(f"Retried {retried} of {len(failed_videos)} failed videos")
        return retried

    def queue_status(self) -> Dict[str, QueueStatus]:
        return self.queues.status()

    def log_queue_status(self) -> None:
        for status in self.queue_status().values():
            logger.info(
                f"{status.queue_type} queue: {status.current_size}/{status.capacity} "
                f"({status.usage_percentage:.1f}%)"
            )
            if status.is_full:
                logger.warning(f"{status.queue_type} queue is full")
