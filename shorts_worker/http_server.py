import logging
from datetime import datetime, timedelta
from typing import Dict, Any, List, Optional
from threading import Thread

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .adapters.base import VideoRepository
from .collection import VideoCollectionService
from .orchestrator import WorkerPool
from .pipeline.phash import fingerprint_hex, DEFAULT_SIMILARITY_THRESHOLD
from .task_queue import QueueStatus

logger = logging.getLogger("shorts_worker")


class QueueStatusModel(BaseModel):
    queue_type: str
    current_size: int
    capacity: int
    remaining_capacity: int
    usage_percentage: float
    is_full: bool
    is_empty: bool

    @classmethod
    def from_status(cls, status: QueueStatus) -> 'QueueStatusModel':
        return cls(**status.to_dict())


class QueueStatusResponse(BaseModel):
    video_queue: QueueStatusModel
    audio_queue: QueueStatusModel


class VideoSummary(BaseModel):
    id: int
    external_id: str
    title: Optional[str] = None
    processing_status: str
    phash_fingerprint: Optional[int] = None
    phash_hex: Optional[str] = None


class SimilarVideosResponse(BaseModel):
    target: VideoSummary
    threshold: int
    count: int
    similar_videos: List[VideoSummary]


class EnqueueResponse(BaseModel):
    success: bool
    video_id: int
    message: str


class RetryResponse(BaseModel):
    success: bool
    retry_count: int
    failed_before: datetime


def _summary(video) -> VideoSummary:
    fingerprint = video.phash_fingerprint
    return VideoSummary(
        id=video.id,
        external_id=video.external_id,
        title=video.title,
        processing_status=video.processing_status.value,
        phash_fingerprint=fingerprint,
        phash_hex=fingerprint_hex(fingerprint) if fingerprint is not None else None,
    )


def create_app(repository: VideoRepository, collection: VideoCollectionService,
               pool: Optional[WorkerPool] = None, retry_after_minutes: int = 60,
               similarity_threshold: int = DEFAULT_SIMILARITY_THRESHOLD) -> FastAPI:
    """Build the health and introspection API"""
    app = FastAPI(title="Shorts Fingerprint Worker API")

    @app.get("/healthz")
    async def health_check():
        """Health check endpoint"""
        try:
            repository.ping()
            return {"ok": True, "status": "healthy"}
        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            raise HTTPException(status_code=503, detail=f"Storage connection failed: {str(e)}")

    @app.get("/queue/status", response_model=QueueStatusResponse)
    async def queue_status():
        status = collection.queue_status()
        return QueueStatusResponse(
            video_queue=QueueStatusModel.from_status(status['video_queue']),
            audio_queue=QueueStatusModel.from_status(status['audio_queue']),
        )

    @app.get("/stats")
    async def get_stats() -> Dict[str, Any]:
        """Get video counts and worker statistics"""
        try:
            counts = repository.count_by_status()
        except Exception as e:
            logger.error(f"Error getting stats: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Error fetching stats: {str(e)}")

        total = sum(counts.values())
        return {
            "videos": counts,
            "total": total,
            "completion_rate": counts.get("COMPLETED", 0) / total * 100 if total else 0.0,
            "workers": pool.get_stats() if pool else None,
        }

    @app.get("/videos/{video_id}/similar", response_model=SimilarVideosResponse)
    async def similar_videos(video_id: int, threshold: Optional[int] = None):
        if threshold is None:
            threshold = similarity_threshold
        if not 0 <= threshold <= 64:
            raise HTTPException(status_code=400, detail="threshold must be within [0, 64]")

        video = repository.get_video(video_id)
        if video is None:
            raise HTTPException(status_code=404, detail=f"Video not found: {video_id}")
        if video.phash_fingerprint is None:
            raise HTTPException(status_code=400, detail=f"Video {video_id} has no fingerprint yet")

        matches = repository.find_similar(video.phash_fingerprint, threshold, exclude_video_id=video.id)
        return SimilarVideosResponse(
            target=_summary(video),
            threshold=threshold,
            count=len(matches),
            similar_videos=[_summary(match) for match in matches],
        )

    @app.post("/videos/{video_id}/process", response_model=EnqueueResponse)
    async def process_video(video_id: int):
        video = repository.get_video(video_id)
        if video is None:
            raise HTTPException(status_code=404, detail=f"Video not found: {video_id}")

        if not collection.enqueue_high_priority(video):
            raise HTTPException(status_code=409, detail=f"Video {video_id} could not be queued")
        return EnqueueResponse(success=True, video_id=video_id, message="Video queued for processing")

    @app.post("/videos/retry-failed", response_model=RetryResponse)
    async def retry_failed():
        failed_before = datetime.now() - timedelta(minutes=retry_after_minutes)
        retried = collection.retry_failed(failed_before)
        return RetryResponse(success=True, retry_count=retried, failed_before=failed_before)

    return app


class HealthServer:
    """Runs the API with uvicorn on a daemon thread next to the worker pool"""

    def __init__(self, app: FastAPI, port: int = 8000):
        self.app = app
        self.port = port
        self.server: Optional[uvicorn.Server] = None
        self.server_thread: Optional[Thread] = None

    @property
    def running(self) -> bool:
        return self.server_thread is not None and self.server_thread.is_alive()

    def start(self):
        """Start the HTTP server in a background thread"""
        if self.running:
            return

        config = uvicorn.Config(
            self.app,
            host="0.0.0.0",
            port=self.port,
            log_level="warning",
            access_log=False
        )
        self.server = uvicorn.Server(config)

        def run_server():
            try:
                self.server.run()
            except Exception as e:
                logger.error(f"HTTP server error: {str(e)}")

        self.server_thread = Thread(target=run_server, name="health-server", daemon=True)
        self.server_thread.start()

        logger.info(f"Health server started on port {self.port}")

    def stop(self, timeout: float = 5.0):
        """Ask uvicorn to exit and wait for its thread"""
        if self.server is None:
            return
        self.server.should_exit = True
        if self.server_thread:
            self.server_thread.join(timeout)
        logger.info("Health server stopped")
