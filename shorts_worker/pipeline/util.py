import os
import re
import time
import logging
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger("shorts_worker")

DEFAULT_DATA_DIR = "/app/data"


def get_data_dir() -> str:
    """Get data directory from environment"""
    return os.getenv("DATA_DIR", DEFAULT_DATA_DIR)


def get_work_dir(data_dir: str = None) -> str:
    """Get the scratch directory for downloaded videos"""
    work_dir = os.path.join(data_dir or get_data_dir(), "video-processing")
    os.makedirs(work_dir, exist_ok=True)
    return work_dir


def clean_filename(filename: str) -> str:
    """Clean filename for safe filesystem usage"""
    filename = re.sub(r'[<>:"/\\|?*\s]', '_', filename)
    filename = re.sub(r'_+', '_', filename)
    filename = filename.strip('_.')
    return filename or 'unnamed'


@contextmanager
def temporary_video_file(work_dir: str, external_id: str) -> Iterator[str]:
    """
    Yield a unique path for a downloaded video and delete whatever was
    written there when the block exits, including on errors.
    """
    file_name = f"video_{clean_filename(external_id)}_{time.time_ns()}.mp4"
    path = os.path.join(work_dir, file_name)
    try:
        yield path
    finally:
        try:
            if os.path.exists(path):
                os.remove(path)
                logger.debug(f"Removed temporary file {path}")
        except OSError as e:
            logger.warning(f"Failed to remove temporary file {path}: {e}")
