"""
Main worker service.

Builds the pipeline context once at process start (storage, queues,
processor, worker pool) and passes it explicitly to the components that
need it; there are no module-level singletons.
"""

import signal
import sys
import logging
import threading
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from .config import WorkerConfig
from .adapters.base import VideoRepository
from .adapters.memory_adapter import InMemoryVideoRepository
from .adapters.postgres_adapter import PostgresVideoRepository
from .collection import VideoCollectionService
from .orchestrator import WorkerPool
from .pipeline.decode import FFmpegDecoder
from .processor import VideoProcessor
from .task_queue import QueueManager
from .logging_setup import setup_logging, log_exception
from .http_server import HealthServer, create_app

logger = logging.getLogger("shorts_worker")


class WorkerService:
    """Owns the pipeline context for the lifetime of the process"""

    def __init__(self, config: Optional[WorkerConfig] = None,
                 repository: Optional[VideoRepository] = None,
                 decoder: Optional[FFmpegDecoder] = None):
        self.config = config or WorkerConfig.from_env()
        self.repository = repository
        self.decoder = decoder
        self.queues: Optional[QueueManager] = None
        self.processor: Optional[VideoProcessor] = None
        self.pool: Optional[WorkerPool] = None
        self.collection: Optional[VideoCollectionService] = None
        self.health_server: Optional[HealthServer] = None
        self.running = False
        self._shutdown = threading.Event()

    def initialize(self):
        """Initialize storage, queues and the worker pool based on configuration"""
        try:
            setup_logging(self.config.LOG_LEVEL, self.config.DATA_DIR)

            self.config.validate()

            if self.repository is None:
                self.repository = self._create_repository()
            self.repository.connect()

            self.queues = QueueManager(self.config.VIDEO_QUEUE_CAPACITY, self.config.AUDIO_QUEUE_CAPACITY)
            self.processor = VideoProcessor(self.config, self.repository, decoder=self.decoder)
            self.pool = WorkerPool(self.config, self.queues, self.processor)
            self.collection = VideoCollectionService(self.repository, self.queues)

            if self.config.ENABLE_HTTP_SERVER:
                app = create_app(self.repository, self.collection, self.pool,
                                 retry_after_minutes=self.config.RETRY_FAILED_AFTER_MINUTES,
                                 similarity_threshold=self.config.SIMILARITY_THRESHOLD)
                self.health_server = HealthServer(app, self.config.HTTP_PORT)

            logger.info(f"Worker service initialized with {self.config.STORAGE_TYPE} storage")

        except Exception as e:
            log_exception(logger, f"Failed to initialize worker service: {e}")
            raise

    def _create_repository(self) -> VideoRepository:
        """Create storage adapter based on configuration"""

        if self.config.STORAGE_TYPE == "postgres":
            config = self.config.STORAGE_CONFIG
            return PostgresVideoRepository(
                database_url=config["database_url"],
                pool_size=config.get("connection_pool_size", 5),
                timeout=config.get("connection_timeout", 10)
            )

        elif self.config.STORAGE_TYPE == "memory":
            return InMemoryVideoRepository()

        else:
            raise ValueError(f"Unsupported storage type: {self.config.STORAGE_TYPE}")

    def start(self):
        """Start the worker pool and, if enabled, the HTTP server"""
        if self.running:
            logger.warning("Worker service is already running")
            return

        self.running = True
        self.pool.start()
        if self.health_server:
            self.health_server.start()

        logger.info("Worker service started")

    def wait(self):
        """Block until a shutdown is requested"""
        self._shutdown.wait()

    def request_shutdown(self):
        self._shutdown.set()

    def retry_failed(self) -> int:
        """Re-queue videos that failed longer ago than the configured delay"""
        cutoff = datetime.now() - timedelta(minutes=self.config.RETRY_FAILED_AFTER_MINUTES)
        return self.collection.retry_failed(cutoff)

    def stop(self):
        """Stop the worker service"""
        self._shutdown.set()
        if not self.running:
            return

        self.running = False

        if self.health_server:
            self.health_server.stop()

        self.pool.stop()
        self.queues.close()

        if self.repository:
            self.repository.close()

        logger.info("Worker service stopped")

    def get_stats(self) -> Dict[str, Any]:
        """Get worker statistics"""
        stats = {
            'running': self.running,
            'config': {
                'storage_type': self.config.STORAGE_TYPE,
                'worker_pool_size': self.config.WORKER_POOL_SIZE,
                'phash_segments': self.config.PHASH_SEGMENTS,
                'phash_frames_per_segment': self.config.PHASH_FRAMES_PER_SEGMENT,
                'max_retries': self.config.MAX_RETRIES
            }
        }

        if self.queues:
            stats['queues'] = {name: status.to_dict() for name, status in self.queues.status().items()}
        if self.pool:
            stats['workers'] = self.pool.get_stats()

        return stats


def main():
    """Main entry point"""
    worker = WorkerService()

    def signal_handler(signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        worker.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        worker.initialize()
        worker.start()
        worker.wait()
    except Exception as e:
        log_exception(logger, f"Worker failed to start: {str(e)}")
        sys.exit(1)
    finally:
        worker.stop()


if __name__ == "__main__":
    main()
