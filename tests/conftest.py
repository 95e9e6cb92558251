from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

import numpy as np
import pytest

from shorts_worker.adapters.memory_adapter import InMemoryVideoRepository
from shorts_worker.config import WorkerConfig
from shorts_worker.errors import DecodeError
from shorts_worker.models import Video
from shorts_worker.processor import VideoProcessor
from shorts_worker.task_queue import QueueManager


def make_frame(seed: int, width: int = 64, height: int = 48) -> np.ndarray:
    """Deterministic BGR frame with some structure and some noise"""
    rng = np.random.default_rng(seed)
    x = np.linspace(0, 255, width)
    y = np.linspace(0, 255, height)
    gradient = (np.outer(y, np.ones(width)) * 0.5 + np.outer(np.ones(height), x) * 0.5)
    noise = rng.integers(0, 64, size=(height, width))
    gray = np.clip(gradient + noise, 0, 255).astype(np.uint8)
    return np.dstack([gray, np.roll(gray, seed % width, axis=1), 255 - gray])


def make_stream(duration: float, fps: float = 30.0, seed: int = 0):
    """(timestamp, frame) pairs covering `duration` seconds"""
    frame_count = int(duration * fps)
    return [(i / fps, make_frame(seed + i // 15)) for i in range(frame_count)]


class FakeDecoder:
    """Stands in for FFmpegDecoder: writes a placeholder file and replays prepared frames"""

    def __init__(self, frames_factory: Optional[Callable[[str], list]] = None, fetch_error: Optional[Exception] = None):
        self.frames_factory = frames_factory or (lambda url: make_stream(10.0))
        self.fetch_error = fetch_error
        self.fetched_paths: List[str] = []
        self._lock = threading.Lock()
        self._sources = {}

    def fetch(self, source_url: str, dest_path: str) -> str:
        with self._lock:
            self.fetched_paths.append(dest_path)
        if self.fetch_error is not None:
            raise self.fetch_error
        with open(dest_path, "wb") as handle:
            handle.write(b"\x00" * 16)
        with self._lock:
            self._sources[dest_path] = source_url
        return dest_path

    @contextmanager
    def open_frames(self, video_path: str) -> Iterator:
        if not os.path.exists(video_path):
            raise DecodeError(f"Unable to open media file: {video_path}")
        with self._lock:
            source_url = self._sources[video_path]
        yield iter(self.frames_factory(source_url))


@pytest.fixture
def config(tmp_path) -> WorkerConfig:
    cfg = WorkerConfig()
    cfg.DATA_DIR = str(tmp_path)
    cfg.VIDEO_QUEUE_CAPACITY = 100
    cfg.AUDIO_QUEUE_CAPACITY = 10
    cfg.WORKER_POOL_SIZE = 2
    cfg.PHASH_SEGMENTS = 5
    cfg.PHASH_FRAMES_PER_SEGMENT = 4
    return cfg


@pytest.fixture
def repository() -> InMemoryVideoRepository:
    return InMemoryVideoRepository()


@pytest.fixture
def queues(config) -> QueueManager:
    return QueueManager(config.VIDEO_QUEUE_CAPACITY, config.AUDIO_QUEUE_CAPACITY)


@pytest.fixture
def decoder() -> FakeDecoder:
    return FakeDecoder()


@pytest.fixture
def processor(config, repository, decoder, tmp_path) -> VideoProcessor:
    return VideoProcessor(config, repository, decoder=decoder, work_dir=str(tmp_path))


@pytest.fixture
def make_video(repository):
    counter = {"n": 0}

    def _make(duration: Optional[int] = 10, save: bool = True, **kwargs) -> Video:
        counter["n"] += 1
        video = Video(
            external_id=kwargs.pop("external_id", f"yt{counter['n']:04d}"),
            title=kwargs.pop("title", f"Short #{counter['n']}"),
            duration_seconds=duration,
            source_url=kwargs.pop("source_url", f"https://example.com/shorts/{counter['n']}"),
            **kwargs,
        )
        if save:
            repository.save_video(video)
        return video

    return _make
