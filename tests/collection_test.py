import logging
from datetime import datetime, timedelta

import pytest

from shorts_worker.collection import VideoCollectionService
from shorts_worker.models import ProcessingStatus, Video
from shorts_worker.task_queue import QueueManager, VideoProcessingTask


@pytest.fixture
def collection(repository, queues):
    return VideoCollectionService(repository, queues)


def _mark_failed(repository, video, minutes_ago):
    video.fail_processing("Processing error: boom")
    video.processed_at = datetime.now() - timedelta(minutes=minutes_ago)
    repository.save_video(video)


class TestIngest:
    def test_saves_new_and_queues_them(self, collection, repository, queues):
        videos = [
            Video(external_id="a1", title="A", duration_seconds=30, source_url="https://example.com/a1"),
            Video(external_id="b2", title="B", duration_seconds=45, source_url="https://example.com/b2"),
        ]
        assert collection.ingest(videos) == 2
        assert queues.video_queue.size() == 2
        assert repository.get_by_external_id("a1").id is not None

    def test_skips_known_external_ids(self, collection, queues, make_video):
        known = make_video(external_id="dup")
        again = Video(external_id="dup", duration_seconds=20, source_url="https://example.com/dup")
        assert collection.ingest([again]) == 0
        assert queues.video_queue.size() == 0
        assert known.id is not None

    def test_long_videos_saved_but_not_queued(self, collection, repository, queues):
        long_video = Video(external_id="long", duration_seconds=121, source_url="https://example.com/long")
        assert collection.ingest([long_video]) == 1
        assert repository.exists_by_external_id("long")
        assert queues.video_queue.size() == 0


class TestEnqueueForProcessing:
    def test_accepts_two_minute_video(self, collection, queues, make_video):
        assert collection.enqueue_for_processing(make_video(duration=120))
        assert queues.video_queue.size() == 1

    @pytest.mark.parametrize("duration", [121, None, 0])
    def test_rejects_unprocessable(self, collection, queues, make_video, duration):
        assert not collection.enqueue_for_processing(make_video(duration=duration))
        assert queues.video_queue.size() == 0

    def test_rejects_missing_source(self, collection, queues, make_video):
        assert not collection.enqueue_for_processing(make_video(source_url=" "))

    def test_rejects_duplicate(self, collection, queues, make_video):
        video = make_video()
        assert collection.enqueue_for_processing(video)
        assert not collection.enqueue_for_processing(video)
        assert queues.video_queue.size() == 1

    def test_rejects_when_full(self, repository, make_video):
        collection = VideoCollectionService(repository, QueueManager(1, 1))
        assert collection.enqueue_for_processing(make_video())
        assert not collection.enqueue_for_processing(make_video())


class TestEnqueueHighPriority:
    def test_resets_record_and_jumps_queue(self, collection, repository, queues, make_video):
        waiting = make_video()
        collection.enqueue_for_processing(waiting)
        done = make_video()
        done.complete_processing(42)
        repository.save_video(done)

        assert collection.enqueue_high_priority(done)

        stored = repository.get_video(done.id)
        assert stored.processing_status == ProcessingStatus.PENDING
        assert stored.phash_fingerprint is None
        head = queues.video_queue.poll()
        assert head.video_id == done.id
        assert head.high_priority

    def test_restores_record_when_queue_full(self, repository, make_video):
        collection = VideoCollectionService(repository, QueueManager(1, 1))
        collection.enqueue_for_processing(make_video())
        done = make_video()
        done.complete_processing(42)
        repository.save_video(done)

        assert not collection.enqueue_high_priority(done)

        stored = repository.get_video(done.id)
        assert stored.processing_status == ProcessingStatus.COMPLETED
        assert stored.phash_fingerprint == 42

    def test_rejects_claimed_video(self, collection, queues, make_video):
        video = make_video()
        collection.enqueue_for_processing(video)
        assert not collection.enqueue_high_priority(video)
        assert queues.video_queue.size() == 1


class TestRetryFailed:
    def test_only_old_failures_are_retried(self, collection, repository, queues, make_video):
        old_a, old_b, recent = make_video(), make_video(), make_video()
        _mark_failed(repository, old_a, minutes_ago=120)
        _mark_failed(repository, old_b, minutes_ago=90)
        _mark_failed(repository, recent, minutes_ago=10)

        retried = collection.retry_failed(datetime.now() - timedelta(hours=1))

        assert retried == 2
        assert queues.video_queue.size() == 2
        for video in (old_a, old_b):
            stored = repository.get_video(video.id)
            assert stored.processing_status == ProcessingStatus.PENDING
            assert stored.error_message is None
        assert repository.get_video(recent.id).processing_status == ProcessingStatus.FAILED

    def test_counts_only_queued_videos(self, repository, make_video):
        queues = QueueManager(1, 1)
        collection = VideoCollectionService(repository, queues)
        first, second = make_video(), make_video()
        _mark_failed(repository, first, minutes_ago=120)
        _mark_failed(repository, second, minutes_ago=120)

        assert collection.retry_failed(datetime.now() - timedelta(hours=1)) == 1
        assert queues.video_queue.size() == 1

    def test_skips_videos_already_queued(self, collection, repository, queues, make_video):
        video = make_video()
        _mark_failed(repository, video, minutes_ago=120)
        queues.submit_video_task(VideoProcessingTask.create(video))

        assert collection.retry_failed(datetime.now() - timedelta(hours=1)) == 0
        assert queues.video_queue.size() == 1

    def test_nothing_to_retry(self, collection):
        assert collection.retry_failed(datetime.now()) == 0


class TestQueueStatus:
    def test_reports_both_queues(self, collection, make_video):
        collection.enqueue_for_processing(make_video())
        status = collection.queue_status()
        assert status['video_queue'].current_size == 1
        assert status['audio_queue'].is_empty

    def test_log_queue_status(self, collection, caplog):
        with caplog.at_level(logging.INFO, logger="shorts_worker"):
            collection.log_queue_status()
        assert "VIDEO_PROCESSING queue: 0/100" in caplog.text
