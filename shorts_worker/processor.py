"""
Per-task video processing.

Drives one VideoProcessingTask through fetch, frame sampling and pHash
generation, and records the outcome on the video record.
"""

import time
import logging
from typing import Optional

from .models import ProcessingResult, Video
from .adapters.base import VideoRepository
from .config import WorkerConfig
from .errors import NoFramesDecodedError, VideoNotFoundError
from .pipeline.decode import FFmpegDecoder
from .pipeline.fingerprint import compute_fingerprint
from .pipeline.phash import fingerprint_hex
from .pipeline.util import get_work_dir, temporary_video_file
from .task_queue import VideoProcessingTask
from .logging_setup import log_exception

logger = logging.getLogger("shorts_worker")


class VideoProcessor:
    """Handles fingerprint generation for a single task"""

    def __init__(self, config: WorkerConfig, repository: VideoRepository,
                 decoder: Optional[FFmpegDecoder] = None, work_dir: Optional[str] = None):
        self.config = config
        self.repository = repository
        self.decoder = decoder or FFmpegDecoder(height=config.DOWNLOAD_HEIGHT)
        self.work_dir = work_dir or get_work_dir(config.DATA_DIR)

    def process_task(self, task: VideoProcessingTask) -> ProcessingResult:
        """
        Process a single task.

        The video is marked IN_PROGRESS, then COMPLETED with its fingerprint
        or FAILED with a diagnostic message. A task whose video no longer
        exists yields a non-retryable failure and touches nothing.

        Args:
            task: task taken from the video queue

        Returns:
            ProcessingResult describing the outcome
        """
        start_time = time.time()

        try:
            video = self._load_video(task.video_id)
        except VideoNotFoundError as e:
            error_msg = str(e)
            logger.error(f"Discarding task for {task.external_id}: {error_msg}")
            return ProcessingResult(
                success=False,
                video_id=task.video_id,
                error=error_msg,
                retryable=False,
                processing_time_sec=time.time() - start_time
            )

        logger.info(f"Processing video {task.external_id} - {task.title} (attempt {task.retry_count + 1})")

        video.start_processing()
        self.repository.save_video(video)

        try:
            fingerprint = self._generate_fingerprint(task)
            video.complete_processing(fingerprint)
            logger.info(f"Video {task.external_id} completed - pHash: {fingerprint} ({fingerprint_hex(fingerprint)})")
            return ProcessingResult(
                success=True,
                video_id=task.video_id,
                fingerprint=fingerprint,
                processing_time_sec=time.time() - start_time
            )

        except NoFramesDecodedError as e:
            error_msg = str(e)
            logger.error(f"Video {task.external_id} failed: {error_msg}")
            video.fail_processing(error_msg)
            return self._failure(task, error_msg, start_time)

        except Exception as e:
            error_msg = f"Processing error: {e}"
            log_exception(logger, f"Video {task.external_id} failed: {error_msg}")
            video.fail_processing(error_msg)
            return self._failure(task, error_msg, start_time)

        finally:
            self.repository.save_video(video)

    def _load_video(self, video_id: int) -> Video:
        video = self.repository.get_video(video_id)
        if video is None:
            raise VideoNotFoundError(video_id)
        return video

    def _generate_fingerprint(self, task: VideoProcessingTask) -> int:
        """Fetch the source into a temporary file and fingerprint its frames"""
        with temporary_video_file(self.work_dir, task.external_id) as video_path:
            self.decoder.fetch(task.source_url, video_path)
            with self.decoder.open_frames(video_path) as frames:
                return compute_fingerprint(
                    frames,
                    task.duration_seconds,
                    segments=self.config.PHASH_SEGMENTS,
                    frames_per_segment=self.config.PHASH_FRAMES_PER_SEGMENT
                )

    @staticmethod
    def _failure(task: VideoProcessingTask, error_msg: str, start_time: float) -> ProcessingResult:
        return ProcessingResult(
            success=False,
            video_id=task.video_id,
            error=error_msg,
            retryable=True,
            processing_time_sec=time.time() - start_time
        )
