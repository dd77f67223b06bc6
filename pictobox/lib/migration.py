"""Offline reconciliation of image URLs that never made it into storage.

The runner walks every record with an image URL, leaves storage URLs alone and
moves everything else into the bucket. Records within a batch run
concurrently; batches run one after another. A failing record is reported and
never stops the rest of the run. There are no retries: failed records are
picked up again on the next run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pictobox.lib.transfer import UrlSource
from pictobox.lib.urls import UrlKind

if TYPE_CHECKING:
    from uuid import UUID

    from pictobox.db.services.record_store import ImageRecord, RecordStore
    from pictobox.lib.transfer import StorageTransferEngine
    from pictobox.lib.urls import UrlClassifier

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


class Outcome(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RecordOutcome:
    record_id: UUID
    outcome: Outcome
    detail: str | None = None


@dataclass
class MigrationBatchResult:
    outcomes: list[RecordOutcome] = field(default_factory=list)

    def _count(self, outcome: Outcome) -> int:
        return sum(1 for o in self.outcomes if o.outcome is outcome)

    @property
    def migrated_count(self) -> int:
        return self._count(Outcome.SUCCESS)

    @property
    def skipped_count(self) -> int:
        return self._count(Outcome.SKIPPED)

    @property
    def failed_count(self) -> int:
        return self._count(Outcome.FAILED)

    @property
    def failures(self) -> list[RecordOutcome]:
        return [o for o in self.outcomes if o.outcome is Outcome.FAILED]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed_count else 0

    def merge(self, other: MigrationBatchResult) -> MigrationBatchResult:
        return MigrationBatchResult(self.outcomes + other.outcomes)


class MigrationBatchRunner:
    """Move every non-storage image URL held by ``store`` into storage."""

    def __init__(
        self,
        store: RecordStore,
        engine: StorageTransferEngine,
        classifier: UrlClassifier,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._store = store
        self._engine = engine
        self._classifier = classifier
        self._batch_size = batch_size

    def partition(self, records: list[ImageRecord]) -> tuple[list[ImageRecord], list[ImageRecord]]:
        """Split records into ``(candidates, already_persisted)``."""
        candidates: list[ImageRecord] = []
        persisted: list[ImageRecord] = []
        for record in records:
            if self._classifier.classify(record.image_url) is UrlKind.STORAGE_PERSISTED:
                persisted.append(record)
            else:
                candidates.append(record)
        return candidates, persisted

    async def run(self, dry_run: bool = False) -> MigrationBatchResult:
        records = await self._store.list_image_records()
        candidates, persisted = self.partition(records)
        name = getattr(self._store, "name", "records")
        logger.info(
            "Migrating %s: %d candidate(s), %d already in storage",
            name,
            len(candidates),
            len(persisted),
        )

        result = MigrationBatchResult(
            [RecordOutcome(r.id, Outcome.SKIPPED, "already in storage") for r in persisted]
        )
        if dry_run:
            result.outcomes.extend(
                RecordOutcome(r.id, Outcome.SKIPPED, "dry run") for r in candidates
            )
            return result

        for start in range(0, len(candidates), self._batch_size):
            batch = candidates[start : start + self._batch_size]
            logger.info(
                "Processing %s batch %d (%d record(s))",
                name,
                start // self._batch_size + 1,
                len(batch),
            )
            result.outcomes.extend(await asyncio.gather(*(self._migrate(r) for r in batch)))

        logger.info(
            "Finished %s: %d migrated, %d skipped, %d failed",
            name,
            result.migrated_count,
            result.skipped_count,
            result.failed_count,
        )
        return result

    async def _migrate(self, record: ImageRecord) -> RecordOutcome:
        try:
            new_url = await self._engine.persist(UrlSource(record.image_url), record.owner_id)
        except Exception as exc:
            logger.warning("Record %s: transfer failed: %s", record.id, exc)
            return RecordOutcome(record.id, Outcome.FAILED, f"transfer failed: {exc}")

        try:
            await self._store.update_image_url(record.id, new_url)
        except Exception as exc:
            logger.warning("Record %s: update failed, removing %s", record.id, new_url, exc_info=True)
            cleanup = await self._engine.delete(new_url)
            if cleanup.degraded:
                logger.error("Record %s: compensating delete failed: %s", record.id, cleanup.warning)
            return RecordOutcome(record.id, Outcome.FAILED, f"update failed: {exc}")

        return RecordOutcome(record.id, Outcome.SUCCESS, new_url)
