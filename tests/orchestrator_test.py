import threading
import time

import pytest

from conftest import FakeDecoder, make_stream
from shorts_worker.collection import VideoCollectionService
from shorts_worker.errors import DecodeError
from shorts_worker.models import ProcessingStatus
from shorts_worker.orchestrator import WorkerPool
from shorts_worker.processor import VideoProcessor
from shorts_worker.task_queue import QueueManager, VideoProcessingTask


def wait_for(condition, timeout=10.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return False


@pytest.fixture
def failing_processor(config, repository, tmp_path):
    decoder = FakeDecoder(fetch_error=DecodeError("source unavailable"))
    return VideoProcessor(config, repository, decoder=decoder, work_dir=str(tmp_path))


def _claimed_task(queues, video, retry_count=0):
    """Submit a task the way producers do and hand it back as a worker would receive it"""
    assert queues.submit_video_task(VideoProcessingTask.create(video))
    task = queues.video_queue.poll()
    task.retry_count = retry_count
    return task


class TestRunTask:
    def test_success_releases_claim(self, config, queues, processor, make_video):
        pool = WorkerPool(config, queues, processor)
        video = make_video()
        task = _claimed_task(queues, video)

        result = pool.run_task(task)

        assert result.success
        assert not queues.is_claimed(video.id)
        assert pool.get_stats()['tasks_completed'] == 1

    def test_failure_is_requeued_with_incremented_count(self, config, queues, failing_processor, make_video):
        pool = WorkerPool(config, queues, failing_processor)
        video = make_video()
        task = _claimed_task(queues, video)

        pool.run_task(task)

        retry = queues.video_queue.poll()
        assert retry.video_id == video.id
        assert retry.retry_count == 1
        assert queues.is_claimed(video.id)
        assert pool.get_stats()['retries_enqueued'] == 1

    def test_requeued_video_is_pending_without_error(self, config, queues, failing_processor, repository, make_video):
        """A queued retry leaves the record PENDING with no stale error"""
        pool = WorkerPool(config, queues, failing_processor)
        video = make_video()

        pool.run_task(_claimed_task(queues, video))

        stored = repository.get_video(video.id)
        assert stored.processing_status == ProcessingStatus.PENDING
        assert stored.error_message is None
        assert stored.phash_fingerprint is None
        assert queues.video_queue.size() == 1

    def test_exhausted_retries_not_requeued(self, config, queues, failing_processor, repository, make_video):
        pool = WorkerPool(config, queues, failing_processor)
        video = make_video()
        task = _claimed_task(queues, video, retry_count=config.MAX_RETRIES)

        pool.run_task(task)

        assert queues.video_queue.size() == 0
        assert not queues.is_claimed(video.id)
        assert pool.get_stats()['retries_exhausted'] == 1
        assert repository.get_video(video.id).processing_status == ProcessingStatus.FAILED

    def test_retry_dropped_when_queue_full(self, config, repository, failing_processor, make_video):
        queues = QueueManager(1, 1)
        pool = WorkerPool(config, queues, failing_processor)
        first = make_video()
        task = _claimed_task(queues, first)
        assert queues.submit_video_task(VideoProcessingTask.create(make_video()))

        pool.run_task(task)

        stats = pool.get_stats()
        assert stats['retries_dropped'] == 1
        assert stats['retries_enqueued'] == 0
        assert not queues.is_claimed(first.id)
        assert queues.video_queue.size() == 1
        stored = repository.get_video(first.id)
        assert stored.processing_status == ProcessingStatus.FAILED
        assert "source unavailable" in stored.error_message

    def test_missing_video_not_retried(self, config, queues, processor, make_video):
        pool = WorkerPool(config, queues, processor)
        video = make_video(save=False)
        video.id = 404
        task = _claimed_task(queues, video)

        result = pool.run_task(task)

        assert not result.retryable
        assert queues.video_queue.size() == 0
        assert not queues.is_claimed(404)
        assert pool.get_stats()['tasks_not_found'] == 1

    def test_unexpected_exception_is_contained(self, config, queues, processor, make_video, monkeypatch):
        def explode(task):
            raise RuntimeError("worker bug")

        monkeypatch.setattr(processor, "process_task", explode)
        pool = WorkerPool(config, queues, processor)
        task = _claimed_task(queues, make_video())

        result = pool.run_task(task)

        assert not result.success
        assert result.retryable
        assert "worker bug" in result.error
        assert queues.video_queue.poll().retry_count == 1


class TestWorkerPoolLifecycle:
    def test_processes_queued_videos(self, config, queues, processor, repository, make_video):
        pool = WorkerPool(config, queues, processor)
        collection = VideoCollectionService(repository, queues)
        videos = [make_video() for _ in range(5)]

        pool.start()
        try:
            for video in videos:
                assert collection.enqueue_for_processing(video)
            assert wait_for(lambda: all(
                repository.get_video(v.id).processing_status == ProcessingStatus.COMPLETED for v in videos
            ))
        finally:
            pool.stop()

        assert not pool.running
        stats = pool.get_stats()
        assert stats['tasks_completed'] == 5
        assert stats['in_flight'] == 0

    def test_persistent_failure_ends_failed(self, config, queues, failing_processor, repository, make_video):
        config.MAX_RETRIES = 2
        pool = WorkerPool(config, queues, failing_processor)
        video = make_video()

        pool.start()
        try:
            assert queues.submit_video_task(VideoProcessingTask.create(video))
            assert wait_for(lambda: pool.get_stats()['retries_exhausted'] == 1)
        finally:
            pool.stop()

        stats = pool.get_stats()
        assert stats['tasks_processed'] == 3
        assert stats['retries_enqueued'] == 2
        stored = repository.get_video(video.id)
        assert stored.processing_status == ProcessingStatus.FAILED
        assert "source unavailable" in stored.error_message
        assert not queues.is_claimed(video.id)

    def test_stop_lets_in_flight_task_finish(self, config, queues, repository, make_video, tmp_path):
        """Shutdown waits for a running task instead of failing it"""
        started = threading.Event()
        release = threading.Event()

        def gated_stream(url):
            started.set()
            release.wait(10)
            return make_stream(10.0)

        processor = VideoProcessor(config, repository, decoder=FakeDecoder(frames_factory=gated_stream),
                                   work_dir=str(tmp_path))
        pool = WorkerPool(config, queues, processor)
        video = make_video()

        pool.start()
        assert queues.submit_video_task(VideoProcessingTask.create(video))
        assert started.wait(10)

        stopper = threading.Thread(target=pool.stop)
        stopper.start()
        assert wait_for(lambda: queues.video_queue.closed)
        assert repository.get_video(video.id).processing_status == ProcessingStatus.IN_PROGRESS
        release.set()
        stopper.join(10)

        assert not stopper.is_alive()
        assert repository.get_video(video.id).processing_status == ProcessingStatus.COMPLETED
        stats = pool.get_stats()
        assert stats['tasks_completed'] == 1
        assert stats['tasks_failed'] == 0
        assert stats['retries_dropped'] == 0

    def test_stop_idle_pool(self, config, queues, processor):
        pool = WorkerPool(config, queues, processor)
        pool.start()
        assert pool.running
        pool.stop(timeout=5)
        assert not pool.running
        assert queues.video_queue.closed

    def test_reset_stats(self, config, queues, processor, make_video):
        pool = WorkerPool(config, queues, processor)
        pool.run_task(_claimed_task(queues, make_video()))
        pool.reset_stats()
        assert pool.get_stats()['tasks_processed'] == 0
