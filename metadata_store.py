"""Metadata store for compression records.

Records live in one SQLAlchemy table. Writes from the request path go
through MetadataRecorder, which queues them for a background consumer so
a failed write never reaches the caller.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional

from sqlalchemy import DateTime, Integer, String, Text, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from errors import StorageWriteError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class ArtifactRecord(Base):
    """One successful compression and the blob it produced."""

    __tablename__ = "compressions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Blob store reference
    storage_key: Mapped[str] = mapped_column(String(128), index=True)
    resource_kind: Mapped[str] = mapped_column(String(16))  # image, raw
    url: Mapped[str] = mapped_column(Text)
    download_url: Mapped[str] = mapped_column(Text)

    # Upload details
    filename: Mapped[str] = mapped_column(String(512))
    original_size: Mapped[int] = mapped_column(Integer)
    processed_size: Mapped[int] = mapped_column(Integer)
    compression_ratio: Mapped[str] = mapped_column(String(16))  # e.g. "42.10%"
    format: Mapped[str] = mapped_column(String(16))  # jpeg, png, pdf

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "originalSize": self.original_size,
            "processedSize": self.processed_size,
            "compressionRatio": self.compression_ratio,
            "format": self.format,
            "resourceKind": self.resource_kind,
            "storageKey": self.storage_key,
            "url": self.url,
            "downloadUrl": self.download_url,
            "timestamp": as_utc(self.timestamp).isoformat() if self.timestamp else None,
        }


class MetadataStore:
    """Async access to the compressions table."""

    def __init__(self, database_url: str) -> None:
        self.engine = create_async_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False} if "sqlite" in database_url else {},
        )
        self.async_session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def initialize(self) -> None:
        """Create tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def insert(self, record: ArtifactRecord) -> ArtifactRecord:
        """Persist one record.

        Raises:
            StorageWriteError: the database rejected the write
        """
        if record.timestamp is None:
            record.timestamp = utcnow()
        try:
            async with self.session() as db:
                db.add(record)
        except SQLAlchemyError as e:
            raise StorageWriteError(f"Failed to record {record.storage_key}: {e}") from e
        return record

    async def history(self, limit: int = 10) -> List[ArtifactRecord]:
        """Most recent records, newest first."""
        async with self.session() as db:
            result = await db.execute(
                select(ArtifactRecord).order_by(ArtifactRecord.timestamp.desc()).limit(limit)
            )
            return list(result.scalars().all())

    async def find_older_than(self, cutoff: datetime) -> List[ArtifactRecord]:
        async with self.session() as db:
            result = await db.execute(
                select(ArtifactRecord).where(ArtifactRecord.timestamp < cutoff)
            )
            return list(result.scalars().all())

    async def purge_older_than(self, cutoff: datetime) -> List[ArtifactRecord]:
        """Delete every record older than cutoff in one batch and return them."""
        async with self.session() as db:
            result = await db.execute(
                select(ArtifactRecord).where(ArtifactRecord.timestamp < cutoff)
            )
            records = list(result.scalars().all())
            if records:
                await db.execute(
                    delete(ArtifactRecord)
                    .where(ArtifactRecord.timestamp < cutoff)
                    .execution_options(synchronize_session=False)
                )
        return records

    async def health_check(self) -> bool:
        try:
            async with self.session() as db:
                await db.execute(select(1))
            return True
        except SQLAlchemyError:
            return False


class MetadataRecorder:
    """Best-effort writer for the request path.

    record() only enqueues; a single consumer task performs the insert and
    logs failures. Nothing here raises into the compression pipeline.
    """

    def __init__(self, store: MetadataStore, max_pending: int = 1000) -> None:
        self.store = store
        self._queue: "asyncio.Queue[ArtifactRecord]" = asyncio.Queue(maxsize=max_pending)
        self._worker: Optional[asyncio.Task] = None
        self.failed_writes = 0

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._consume(), name="metadata-recorder")

    def record(self, record: ArtifactRecord) -> bool:
        """Queue a record for writing. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(record)
            return True
        except asyncio.QueueFull:
            self.failed_writes += 1
            logger.error(f"DB Insert Error: queue full, dropped record for {record.storage_key}")
            return False

    async def flush(self) -> None:
        """Wait until every queued record has been attempted."""
        await self._queue.join()

    async def history(self, limit: int = 10) -> List[ArtifactRecord]:
        return await self.store.history(limit)

    async def stop(self) -> None:
        if self._worker is None:
            return
        if not self._worker.done():
            await self.flush()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def _consume(self) -> None:
        while True:
            record = await self._queue.get()
            try:
                await self.store.insert(record)
                logger.debug(f"Recorded metadata for {record.storage_key}")
            except StorageWriteError as e:
                self.failed_writes += 1
                logger.error(f"DB Insert Error: {e}")
            except Exception as e:
                self.failed_writes += 1
                logger.exception(f"Unexpected error recording {record.storage_key}: {e}")
            finally:
                self._queue.task_done()
