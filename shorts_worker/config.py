"""
Runtime settings for the fingerprint worker, read from the environment
once at start-up and checked by validate() before anything is built.
"""

import os
from typing import Dict, Any
from dataclasses import dataclass, field


@dataclass
class WorkerConfig:
    """Configuration for the fingerprint worker"""

    # Queue settings
    VIDEO_QUEUE_CAPACITY: int = 5000
    AUDIO_QUEUE_CAPACITY: int = 5000

    # Worker pool settings
    WORKER_POOL_SIZE: int = 4
    MAX_RETRIES: int = 3
    RETRY_FAILED_AFTER_MINUTES: int = 60

    # Fingerprint settings
    PHASH_SEGMENTS: int = 30
    PHASH_FRAMES_PER_SEGMENT: int = 10
    SIMILARITY_THRESHOLD: int = 8
    DOWNLOAD_HEIGHT: int = 240

    # Storage settings
    STORAGE_TYPE: str = "memory"  # memory, postgres
    STORAGE_CONFIG: Dict[str, Any] = field(default_factory=dict)

    # Logging
    LOG_LEVEL: str = "INFO"

    # HTTP server
    ENABLE_HTTP_SERVER: bool = False
    HTTP_PORT: int = 8000

    # Data directory (logs and temporary downloads)
    DATA_DIR: str = "/app/data"

    @classmethod
    def from_env(cls) -> 'WorkerConfig':
        """Load configuration from environment variables"""
        config = cls()

        # Queue settings
        config.VIDEO_QUEUE_CAPACITY = int(os.getenv("VIDEO_QUEUE_CAPACITY", "5000"))
        config.AUDIO_QUEUE_CAPACITY = int(os.getenv("AUDIO_QUEUE_CAPACITY", "5000"))

        # Worker pool settings
        config.WORKER_POOL_SIZE = int(os.getenv("WORKER_POOL_SIZE", "4"))
        config.MAX_RETRIES = int(os.getenv("WORKER_MAX_RETRIES", "3"))
        config.RETRY_FAILED_AFTER_MINUTES = int(os.getenv("RETRY_FAILED_AFTER_MINUTES", "60"))

        # Fingerprint settings
        config.PHASH_SEGMENTS = int(os.getenv("PHASH_SEGMENTS", "30"))
        config.PHASH_FRAMES_PER_SEGMENT = int(os.getenv("PHASH_FRAMES_PER_SEGMENT", "10"))
        config.SIMILARITY_THRESHOLD = int(os.getenv("SIMILARITY_THRESHOLD", "8"))
        config.DOWNLOAD_HEIGHT = int(os.getenv("DOWNLOAD_HEIGHT", "240"))

        # Storage configuration
        config.STORAGE_TYPE = os.getenv("STORAGE_TYPE", "memory")
        config.STORAGE_CONFIG = cls._parse_storage_config()

        # Logging
        config.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # HTTP server
        config.ENABLE_HTTP_SERVER = os.getenv("WORKER_DEV_HTTP", "false").lower() == "true"
        config.HTTP_PORT = int(os.getenv("WORKER_HTTP_PORT", "8000"))

        # Data directory
        config.DATA_DIR = os.getenv("DATA_DIR", "/app/data")

        return config

    @classmethod
    def _parse_storage_config(cls) -> Dict[str, Any]:
        """Parse storage specific configuration"""
        storage_type = os.getenv("STORAGE_TYPE", "memory")

        if storage_type == "postgres":
            return {
                "database_url": os.getenv("DATABASE_URL"),
                "connection_pool_size": int(os.getenv("POSTGRES_POOL_SIZE", "5")),
                "connection_timeout": int(os.getenv("POSTGRES_TIMEOUT", "10"))
            }
        else:
            return {}

    def validate(self) -> None:
        """Validate configuration and raise errors for missing or invalid values"""
        problems = []

        if self.STORAGE_TYPE not in ("memory", "postgres"):
            problems.append(f"STORAGE_TYPE={self.STORAGE_TYPE}")

        if self.STORAGE_TYPE == "postgres" and not self.STORAGE_CONFIG.get("database_url"):
            problems.append("DATABASE_URL")

        for name in ("VIDEO_QUEUE_CAPACITY", "AUDIO_QUEUE_CAPACITY", "WORKER_POOL_SIZE",
                     "PHASH_SEGMENTS", "PHASH_FRAMES_PER_SEGMENT", "DOWNLOAD_HEIGHT"):
            if getattr(self, name) < 1:
                problems.append(f"{name} must be positive")

        if self.MAX_RETRIES < 0:
            problems.append("WORKER_MAX_RETRIES must not be negative")

        if not 0 <= self.SIMILARITY_THRESHOLD <= 64:
            problems.append("SIMILARITY_THRESHOLD must be within [0, 64]")

        if problems:
            raise ValueError(f"Invalid or missing configuration: {', '.join(problems)}")
