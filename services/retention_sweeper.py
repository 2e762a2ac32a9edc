#Periodic cleanup of expired artifacts and their metadata

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from compressors.compressor_config import OutputFormat
from metadata_store import MetadataStore, utcnow
from s3_handler import S3Handler

logger = logging.getLogger(__name__)


class SweepState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DELETING = "deleting"


@dataclass
class SweepReport:
    cutoff: datetime
    matched: int = 0
    blobs_deleted: int = 0
    blob_failures: int = 0
    records_deleted: int = 0


def resource_kind_for(output_format: str) -> str:
    return "raw" if output_format == OutputFormat.PDF_PASSTHROUGH.value else "image"


class RetentionSweeper:
    """
    Deletes artifacts older than the retention window

    Each sweep deletes the blobs of expired records first, then removes all
    expired records in one batch whether or not their blobs went away.
    """

    def __init__(self, store: MetadataStore, s3_handler: S3Handler,
                 retention: timedelta = timedelta(hours=24),
                 interval: timedelta = timedelta(hours=24),
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.s3_handler = s3_handler
        self.retention = retention
        self.interval = interval
        self.clock = clock
        self.state = SweepState.IDLE
        self.last_report: Optional[SweepReport] = None
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    async def sweep(self) -> Optional[SweepReport]:
        """Run one sweep. Returns None if a sweep was already in progress."""
        if self._lock.locked():
            logger.info("Cleanup already running, skipping this trigger")
            return None

        async with self._lock:
            report = SweepReport(cutoff=self.clock() - self.retention)
            try:
                self.state = SweepState.SCANNING
                expired = await self.store.find_older_than(report.cutoff)
                report.matched = len(expired)

                self.state = SweepState.DELETING
                for record in expired:
                    if not record.storage_key:
                        continue
                    kind = resource_kind_for(record.format)
                    if await self.s3_handler.delete_async(record.storage_key, kind):
                        report.blobs_deleted += 1
                    else:
                        report.blob_failures += 1
                        logger.warning(f"Could not delete: {record.storage_key}")

                deleted = await self.store.purge_older_than(report.cutoff)
                report.records_deleted = len(deleted)
                logger.info(
                    f"Cleanup completed: {report.records_deleted} records, "
                    f"{report.blobs_deleted} blobs deleted, {report.blob_failures} blob failures"
                )
            finally:
                self.state = SweepState.IDLE

            self.last_report = report
            return report

    async def run_forever(self) -> None:
        #Sweep now, then once per interval; errors never stop the loop
        while True:
            try:
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Cleanup error: {e}", exc_info=True)
            await asyncio.sleep(self.interval.total_seconds())

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="retention-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
