"""
Exception types raised by the fingerprint worker.

Capacity problems (a full queue) are not exceptions: they are reported
through boolean return values. Everything here is either a per-task
failure contained inside the worker pool, or a shutdown signal.
"""


class WorkerError(Exception):
    """Base class for worker errors"""


class FingerprintError(WorkerError):
    """Fingerprint could not be derived from the decoded frames"""


class NoFramesDecodedError(FingerprintError):
    """The frame stream produced no frame matching a sampled timestamp"""

    def __init__(self, message: str = "no frames decoded"):
        super().__init__(message)


class DecodeError(FingerprintError):
    """The source could not be fetched or opened for decoding"""


class VideoNotFoundError(WorkerError):
    """A task references a video id that is not in storage"""

    def __init__(self, video_id):
        super().__init__(f"Video not found: {video_id}")
        self.video_id = video_id


class QueueClosedError(WorkerError):
    """Raised by a blocking take() once the queue has been closed"""
