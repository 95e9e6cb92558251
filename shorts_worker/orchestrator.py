"""
Worker pool orchestration.

One dispatcher thread blocks on the video queue and hands each task to a
fixed pool of worker threads. The dispatcher only takes a task once a
worker slot is free, so the bounded queue stays the single buffer and
backpressure reaches producers. Retries are re-offered without blocking.
"""

import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Optional, Dict, Any

from .config import WorkerConfig
from .errors import QueueClosedError
from .models import ProcessingResult
from .processor import VideoProcessor
from .task_queue import QueueManager, VideoProcessingTask
from .logging_setup import log_exception

logger = logging.getLogger("shorts_worker")

_SLOT_WAIT_SEC = 0.5


class WorkerPool:
    """Dispatcher plus N concurrent workers consuming the video queue"""

    def __init__(self, config: WorkerConfig, queues: QueueManager, processor: VideoProcessor):
        self.config = config
        self.queues = queues
        self.processor = processor
        self.repository = processor.repository
        self.pool_size = config.WORKER_POOL_SIZE
        self.max_retries = config.MAX_RETRIES

        self._executor: Optional[ThreadPoolExecutor] = None
        self._dispatcher: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._slots = threading.BoundedSemaphore(self.pool_size)
        self._stats_lock = threading.Lock()
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'tasks_processed': 0,
            'tasks_completed': 0,
            'tasks_failed': 0,
            'tasks_not_found': 0,
            'retries_enqueued': 0,
            'retries_dropped': 0,
            'retries_exhausted': 0,
            'total_processing_time': 0.0,
            'start_time': datetime.now()
        }

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and self._dispatcher.is_alive()

    def start(self) -> None:
        if self.running:
            logger.warning("Worker pool is already running")
            return

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(max_workers=self.pool_size, thread_name_prefix="fingerprint-worker")
        self._dispatcher = threading.Thread(target=self._dispatch_loop, name="fingerprint-dispatcher", daemon=True)
        self._dispatcher.start()
        logger.info(f"Worker pool started with {self.pool_size} workers")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Close the video queue, stop the dispatcher and wait for in-flight tasks.

        Tasks still queued are left untouched; shutdown never marks a
        video as failed.
        """
        self._stop_event.set()
        self.queues.video_queue.close()

        if self._dispatcher:
            self._dispatcher.join(timeout)
        if self._executor:
            self._executor.shutdown(wait=True)

        logger.info("Worker pool stopped")

    def _dispatch_loop(self) -> None:
        logger.info("Video processing dispatcher started")

        while not self._stop_event.is_set():
            if not self._slots.acquire(timeout=_SLOT_WAIT_SEC):
                continue

            try:
                task = self.queues.video_queue.take()
            except QueueClosedError:
                self._slots.release()
                logger.info("Video processing dispatcher interrupted")
                break
            except Exception as e:
                self._slots.release()
                log_exception(logger, f"Video processing dispatcher error: {e}")
                continue

            try:
                future = self._executor.submit(self.run_task, task)
                future.add_done_callback(lambda _: self._slots.release())
            except RuntimeError as e:
                # executor already shut down
                self._slots.release()
                self.queues.release(task.video_id)
                logger.warning(f"Could not hand task for video {task.video_id} to a worker: {e}")
                break

        logger.info("Video processing dispatcher stopped")

    def run_task(self, task: VideoProcessingTask) -> ProcessingResult:
        """
        Process one task and apply the retry policy.

        Never raises: a fault inside processing is logged and treated as a
        retryable failure.
        """
        start_time = time.time()
        try:
            result = self.processor.process_task(task)
        except Exception as e:
            error_msg = f"Unexpected error processing video {task.video_id}: {e}"
            log_exception(logger, error_msg)
            result = ProcessingResult(
                success=False,
                video_id=task.video_id,
                error=error_msg,
                retryable=True,
                processing_time_sec=time.time() - start_time
            )

        self._record(result)

        if result.success or not result.retryable:
            self.queues.release(task.video_id)
        else:
            try:
                self._handle_failure(task, result)
            except Exception as e:
                log_exception(logger, f"Retry handling failed for video {task.video_id}: {e}")
                self.queues.release(task.video_id)

        return result

    def _handle_failure(self, task: VideoProcessingTask, result: ProcessingResult) -> None:
        if not task.can_retry(self.max_retries):
            logger.error(
                f"Video {task.external_id} failed permanently after {task.retry_count + 1} attempts: {result.error}"
            )
            self._increment('retries_exhausted')
            self.queues.release(task.video_id)
            return

        # the record goes back to PENDING before the retry becomes visible to a worker
        video = self.repository.get_video(task.video_id)
        previous = None
        if video is not None:
            previous = (video.processing_status, video.phash_fingerprint, video.error_message)
            video.reset_for_retry()
            self.repository.save_video(video)

        retry_task = task.next_attempt()
        if self.queues.video_queue.offer(retry_task):
            self._increment('retries_enqueued')
            logger.info(f"Video {task.external_id} queued for retry ({retry_task.retry_count}/{self.max_retries})")
            return

        if video is not None:
            video.processing_status, video.phash_fingerprint, video.error_message = previous
            self.repository.save_video(video)
        self._increment('retries_dropped')
        self.queues.release(task.video_id)
        logger.warning(f"Retry for video {task.external_id} dropped: video queue unavailable")

    def _record(self, result: ProcessingResult) -> None:
        with self._stats_lock:
            self.stats['tasks_processed'] += 1
            self.stats['total_processing_time'] += result.processing_time_sec
            if result.success:
                self.stats['tasks_completed'] += 1
            elif not result.retryable:
                self.stats['tasks_not_found'] += 1
            else:
                self.stats['tasks_failed'] += 1

    def _increment(self, key: str) -> None:
        with self._stats_lock:
            self.stats[key] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get worker pool statistics"""
        with self._stats_lock:
            stats = dict(self.stats)

        uptime = (datetime.now() - stats.pop('start_time')).total_seconds()
        processed = stats['tasks_processed']
        stats.update({
            'pool_size': self.pool_size,
            'running': self.running,
            'average_processing_time': stats['total_processing_time'] / processed if processed > 0 else 0,
            'uptime_seconds': uptime,
            'success_rate': stats['tasks_completed'] / processed if processed > 0 else 0,
            'in_flight': self.queues.in_flight_count(),
        })
        return stats

    def reset_stats(self) -> None:
        with self._stats_lock:
            self.stats = self._empty_stats()
        logger.info("Worker pool statistics reset")
