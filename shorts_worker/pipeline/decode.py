import os
import logging
from contextlib import contextmanager
from typing import Iterator

import cv2
import ffmpeg

from ..errors import DecodeError
from .frames import TimedFrame

logger = logging.getLogger("shorts_worker")


class FFmpegDecoder:
    """
    Media access for the worker: FFmpeg fetches a low-resolution copy of
    the source, OpenCV walks its decoded frames in presentation order.
    """

    def __init__(self, height: int = 240):
        self.height = height

    def fetch(self, source_url: str, dest_path: str) -> str:
        """Download/transcode the source to `dest_path` scaled to `height` lines, video only"""
        try:
            logger.debug(f"Fetching {source_url} -> {dest_path} at {self.height}p")
            (
                ffmpeg
                .input(source_url)
                .video
                .filter('scale', -2, self.height)
                .output(dest_path, vcodec='libx264', preset='veryfast', crf=28)
                .overwrite_output()
                .run(quiet=True)
            )
        except ffmpeg.Error as e:
            stderr = e.stderr.decode(errors='replace') if e.stderr else str(e)
            raise DecodeError(f"FFmpeg error fetching {source_url}: {stderr.strip()}") from e

        if not os.path.exists(dest_path) or os.path.getsize(dest_path) == 0:
            raise DecodeError(f"FFmpeg produced no output for {source_url}")
        return dest_path

    @contextmanager
    def open_frames(self, video_path: str) -> Iterator[Iterator[TimedFrame]]:
        """
        Yield an iterator of (timestamp_seconds, frame) pairs.

        Invalid frame-rate or frame-count metadata produces an empty stream.
        The capture is released when the block exits.
        """
        capture = cv2.VideoCapture(video_path)
        if not capture.isOpened():
            capture.release()
            raise DecodeError(f"Unable to open media file: {video_path}")

        try:
            fps = capture.get(cv2.CAP_PROP_FPS)
            total_frames = capture.get(cv2.CAP_PROP_FRAME_COUNT)
            if fps <= 0 or total_frames <= 0:
                logger.warning(f"Invalid video metadata for {video_path}: frames={total_frames}, fps={fps}")
                yield iter(())
            else:
                yield self._read_frames(capture)
        finally:
            capture.release()

    @staticmethod
    def _read_frames(capture) -> Iterator[TimedFrame]:
        while True:
            ok, frame = capture.read()
            if not ok or frame is None:
                break
            timestamp = capture.get(cv2.CAP_PROP_POS_MSEC) / 1000.0
            yield timestamp, frame
