"""
Postgres implementation of the video storage adapter.

Fingerprints live in a BIGINT column as signed two's-complement values;
similarity search counts differing bits in SQL.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .base import VideoRepository
from ..models import Video, ProcessingStatus
from ..logging_setup import log_exception

logger = logging.getLogger("shorts_worker")

_COLUMNS = """
    id, external_id, title, channel_id, channel_title, duration_seconds,
    published_at, source_url, thumbnail_url, processing_status,
    phash_fingerprint, collected_at, processed_at, error_message
"""


class PostgresVideoRepository(VideoRepository):
    """Postgres implementation of storage adapter"""

    def __init__(self, database_url: str, pool_size: int = 5, timeout: int = 10):
        self.database_url = database_url
        self.pool_size = pool_size
        self.timeout = timeout
        self.pool = None

    def connect(self):
        """Initialize connection pool"""
        try:
            self.pool = ConnectionPool(
                self.database_url,
                min_size=1,
                max_size=self.pool_size,
                kwargs={
                    "connect_timeout": self.timeout,
                    "application_name": "shorts_worker"
                }
            )
            logger.info("Postgres storage connection pool initialized")
            self._bootstrap_schema()
        except Exception as e:
            log_exception(logger, f"Failed to connect to Postgres storage: {e}")
            raise

    def _bootstrap_schema(self):
        """Create the videos table and its indexes if missing"""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS videos (
                        id BIGSERIAL PRIMARY KEY,
                        external_id TEXT NOT NULL UNIQUE,
                        title VARCHAR(500),
                        channel_id TEXT,
                        channel_title TEXT,
                        duration_seconds INTEGER,
                        published_at TIMESTAMP,
                        source_url TEXT,
                        thumbnail_url TEXT,
                        processing_status TEXT NOT NULL DEFAULT 'PENDING',
                        phash_fingerprint BIGINT,
                        collected_at TIMESTAMP NOT NULL DEFAULT now(),
                        processed_at TIMESTAMP,
                        error_message TEXT
                    )
                """)
                cur.execute("""
                    CREATE INDEX IF NOT EXISTS videos_status_processed_idx
                    ON videos (processing_status, processed_at)
                """)
                conn.commit()
                logger.info("Postgres storage schema validated")

    @staticmethod
    def _row_to_video(row: Dict[str, Any]) -> Video:
        return Video(
            id=row['id'],
            external_id=row['external_id'],
            title=row['title'],
            channel_id=row['channel_id'],
            channel_title=row['channel_title'],
            duration_seconds=row['duration_seconds'],
            published_at=row['published_at'],
            source_url=row['source_url'],
            thumbnail_url=row['thumbnail_url'],
            processing_status=ProcessingStatus(row['processing_status']),
            phash_fingerprint=row['phash_fingerprint'],
            collected_at=row['collected_at'],
            processed_at=row['processed_at'],
            error_message=row['error_message'],
        )

    def _fetch_one(self, query: str, params: tuple) -> Optional[Video]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
                return self._row_to_video(row) if row else None

    def _fetch_all(self, query: str, params: tuple = ()) -> List[Video]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                return [self._row_to_video(row) for row in cur.fetchall()]

    def get_video(self, video_id: int) -> Optional[Video]:
        return self._fetch_one(f"SELECT {_COLUMNS} FROM videos WHERE id = %s", (video_id,))

    def get_by_external_id(self, external_id: str) -> Optional[Video]:
        return self._fetch_one(f"SELECT {_COLUMNS} FROM videos WHERE external_id = %s", (external_id,))

    def exists_by_external_id(self, external_id: str) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM videos WHERE external_id = %s", (external_id,))
                return cur.fetchone() is not None

    def save_video(self, video: Video) -> Video:
        """Insert a new video or update an existing one"""
        values = (
            video.external_id, video.title, video.channel_id, video.channel_title,
            video.duration_seconds, video.published_at, video.source_url, video.thumbnail_url,
            video.processing_status.value, video.phash_fingerprint,
            video.processed_at, video.error_message,
        )
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                if video.id is None:
                    cur.execute("""
                        INSERT INTO videos (
                            external_id, title, channel_id, channel_title, duration_seconds,
                            published_at, source_url, thumbnail_url, processing_status,
                            phash_fingerprint, processed_at, error_message, collected_at
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, COALESCE(%s, now()))
                        RETURNING id, collected_at
                    """, values + (video.collected_at,))
                    video.id, video.collected_at = cur.fetchone()
                else:
                    cur.execute("""
                        UPDATE videos SET
                            external_id = %s, title = %s, channel_id = %s, channel_title = %s,
                            duration_seconds = %s, published_at = %s, source_url = %s,
                            thumbnail_url = %s, processing_status = %s, phash_fingerprint = %s,
                            processed_at = %s, error_message = %s
                        WHERE id = %s
                    """, values + (video.id,))
                conn.commit()
        return video

    def find_failed_before(self, cutoff: datetime) -> List[Video]:
        return self._fetch_all(f"""
            SELECT {_COLUMNS} FROM videos
            WHERE processing_status = 'FAILED' AND processed_at < %s
            ORDER BY processed_at
        """, (cutoff,))

    def find_with_fingerprint(self) -> List[Video]:
        return self._fetch_all(f"SELECT {_COLUMNS} FROM videos WHERE phash_fingerprint IS NOT NULL")

    def find_similar(self, fingerprint: int, max_distance: int, exclude_video_id: Optional[int] = None) -> List[Video]:
        # bit_count needs Postgres 14+
        return self._fetch_all(f"""
            SELECT {_COLUMNS} FROM videos
            WHERE phash_fingerprint IS NOT NULL
              AND bit_count((phash_fingerprint # %s::bigint)::bit(64)) <= %s
              AND id IS DISTINCT FROM %s
        """, (fingerprint, max_distance, exclude_video_id))

    def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ProcessingStatus}
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT processing_status, COUNT(*) as count
                    FROM videos
                    GROUP BY processing_status
                """)
                for status, count in cur.fetchall():
                    counts[status] = count
        return counts

    def ping(self) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        return True

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.close()
            logger.info("Postgres storage connection pool closed")
