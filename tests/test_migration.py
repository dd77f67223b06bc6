"""Tests for the offline image migration runner and its record stores."""

import asyncio
from uuid import uuid4

import httpx
import pytest

from pictobox.db.models import Category, CustomPictogram, Item
from pictobox.db.services.record_store import (
    ImageRecord,
    SQLAlchemyRecordStore,
    migration_record_stores,
)
from pictobox.lib.migration import MigrationBatchResult, MigrationBatchRunner, Outcome, RecordOutcome
from pictobox.lib.results import BestEffort

EPHEMERAL = "https://replicate.delivery/xezq/{n}/out-0.png"


class MemoryStore:
    """In-memory RecordStore."""

    name = "memory"

    def __init__(self, records, fail_update=()):
        self.records = {r.id: r for r in records}
        self.fail_update = set(fail_update)
        self.updates = []

    async def list_image_records(self):
        return list(self.records.values())

    async def get_record(self, record_id):
        return self.records.get(record_id)

    async def update_image_url(self, record_id, url):
        if record_id in self.fail_update:
            raise LookupError(f"record {record_id} not found")
        self.updates.append((record_id, url))
        record = self.records[record_id]
        self.records[record_id] = ImageRecord(record.id, record.owner_id, url, record.image_type)

    async def delete_record(self, record_id):
        return self.records.pop(record_id, None) is not None


class ConcurrencyProbeEngine:
    """Stand-in transfer engine that records how many persists overlap."""

    def __init__(self):
        self.in_flight = 0
        self.peak = 0
        self.deleted = []

    async def persist(self, source, owner_id):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.in_flight -= 1
        return f"https://proj.supabase.co/storage/v1/object/public/custom-pictograms/{owner_id}/x.png"

    async def delete(self, url):
        self.deleted.append(url)
        return BestEffort(True)


def _records(count, owner=None):
    owner = owner or uuid4()
    return [ImageRecord(uuid4(), owner, EPHEMERAL.format(n=n), "custom") for n in range(count)]


def _flaky_server(png_bytes, failing):
    def handler(request):
        if any(f"/{n}/" in request.url.path for n in failing):
            return httpx.Response(404)
        return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# MigrationBatchResult
# ---------------------------------------------------------------------------


class TestMigrationBatchResult:
    def test_counts_and_exit_code(self):
        result = MigrationBatchResult(
            [
                RecordOutcome(uuid4(), Outcome.SUCCESS, "url"),
                RecordOutcome(uuid4(), Outcome.SKIPPED),
                RecordOutcome(uuid4(), Outcome.FAILED, "boom"),
            ]
        )
        assert (result.migrated_count, result.skipped_count, result.failed_count) == (1, 1, 1)
        assert [f.detail for f in result.failures] == ["boom"]
        assert result.exit_code == 1

    def test_empty_result_exits_zero(self):
        assert MigrationBatchResult().exit_code == 0

    def test_merge(self):
        first = MigrationBatchResult([RecordOutcome(uuid4(), Outcome.SUCCESS)])
        second = MigrationBatchResult([RecordOutcome(uuid4(), Outcome.FAILED)])
        merged = first.merge(second)
        assert merged.migrated_count == 1
        assert merged.failed_count == 1
        assert len(first.outcomes) == 1


# ---------------------------------------------------------------------------
# MigrationBatchRunner
# ---------------------------------------------------------------------------


class TestMigrationBatchRunner:
    def test_rejects_zero_batch_size(self, engine, classifier):
        with pytest.raises(ValueError):
            MigrationBatchRunner(MemoryStore([]), engine, classifier, batch_size=0)

    @pytest.mark.asyncio
    async def test_seven_succeed_three_fail(self, make_engine, classifier, png_bytes, fake_storage):
        records = _records(10)
        store = MemoryStore(records)
        engine = make_engine(transport=_flaky_server(png_bytes, failing={2, 5, 8}))

        result = await MigrationBatchRunner(store, engine, classifier).run()

        assert result.migrated_count == 7
        assert result.skipped_count == 0
        assert result.failed_count == 3
        assert result.exit_code == 1
        failed_ids = {f.record_id for f in result.failures}
        assert failed_ids == {records[2].id, records[5].id, records[8].id}
        assert all(f.detail.startswith("transfer failed") for f in result.failures)
        assert len(fake_storage.uploads) == 7

        for record in records:
            url = store.records[record.id].image_url
            if record.id in failed_ids:
                assert url == record.image_url
            else:
                assert url.startswith(fake_storage.public_prefix)

    @pytest.mark.asyncio
    async def test_rerun_only_touches_remaining_records(self, make_engine, classifier, png_bytes, fake_storage):
        records = _records(4)
        store = MemoryStore(records)

        first = await MigrationBatchRunner(
            store, make_engine(transport=_flaky_server(png_bytes, failing={1})), classifier
        ).run()
        assert (first.migrated_count, first.failed_count) == (3, 1)

        second = await MigrationBatchRunner(
            store, make_engine(transport=_flaky_server(png_bytes, failing=set())), classifier
        ).run()
        assert (second.migrated_count, second.skipped_count, second.failed_count) == (1, 3, 0)
        assert second.exit_code == 0
        assert len(fake_storage.uploads) == 4

    @pytest.mark.asyncio
    async def test_persisted_records_are_skipped(self, engine, classifier, fake_storage, image_server):
        owner = uuid4()
        stored = ImageRecord(uuid4(), owner, fake_storage.public_url_for(f"{owner}/1_a.png"))
        store = MemoryStore([stored])

        result = await MigrationBatchRunner(store, engine, classifier).run()

        assert result.outcomes == [RecordOutcome(stored.id, Outcome.SKIPPED, "already in storage")]
        assert image_server.requests == []
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(self, engine, classifier, fake_storage, image_server):
        store = MemoryStore(_records(3))

        result = await MigrationBatchRunner(store, engine, classifier).run(dry_run=True)

        assert result.skipped_count == 3
        assert all(o.detail == "dry run" for o in result.outcomes)
        assert image_server.requests == []
        assert fake_storage.uploads == []
        assert store.updates == []

    @pytest.mark.asyncio
    async def test_batches_bound_concurrency(self, classifier):
        store = MemoryStore(_records(7))
        engine = ConcurrencyProbeEngine()

        result = await MigrationBatchRunner(store, engine, classifier, batch_size=3).run()

        assert result.migrated_count == 7
        assert engine.peak == 3

    @pytest.mark.asyncio
    async def test_batch_size_one_is_sequential(self, classifier):
        store = MemoryStore(_records(4))
        engine = ConcurrencyProbeEngine()

        await MigrationBatchRunner(store, engine, classifier, batch_size=1).run()

        assert engine.peak == 1

    @pytest.mark.asyncio
    async def test_update_failure_removes_new_object(self, engine, classifier, fake_storage):
        records = _records(2)
        store = MemoryStore(records, fail_update={records[0].id})

        result = await MigrationBatchRunner(store, engine, classifier).run()

        assert result.migrated_count == 1
        assert result.failed_count == 1
        assert result.failures[0].record_id == records[0].id
        assert result.failures[0].detail.startswith("update failed")
        assert len(fake_storage.uploads) == 2
        assert len(fake_storage.removed) == 1
        assert fake_storage.removed[0] not in fake_storage.objects

    @pytest.mark.asyncio
    async def test_inline_markup_is_a_candidate_that_fails(self, engine, classifier, image_server):
        record = ImageRecord(uuid4(), uuid4(), "<svg></svg>", "custom")
        result = await MigrationBatchRunner(MemoryStore([record]), engine, classifier).run()

        assert result.failed_count == 1
        assert image_server.requests == []


# ---------------------------------------------------------------------------
# SQLAlchemyRecordStore
# ---------------------------------------------------------------------------


async def _seed(session_maker, owner, storage_url):
    async with session_maker() as session:
        category = Category(user_id=owner, name="Shoes")
        session.add(category)
        await session.flush()
        rows = [
            CustomPictogram(user_id=owner, prompt="teapot", image_url=EPHEMERAL.format(n=1)),
            CustomPictogram(user_id=owner, prompt="kettle", image_url=storage_url),
            Item(user_id=owner, category_id=category.id, name="Sneaker", image_type="custom", image_url=EPHEMERAL.format(n=2)),
            Item(user_id=owner, category_id=category.id, name="Photo", image_type="uploaded", image_url=storage_url),
            Item(user_id=owner, category_id=category.id, name="Icon", image_type="default", image_url="<svg></svg>"),
            Item(user_id=owner, category_id=category.id, name="Bare", image_type="default", image_url=None),
        ]
        session.add_all(rows)
        await session.commit()
        return rows


class TestSQLAlchemyRecordStore:
    @pytest.mark.asyncio
    async def test_stores_cover_pictograms_and_image_items(self, session_maker, fake_storage):
        owner = uuid4()
        rows = await _seed(session_maker, owner, fake_storage.public_url_for(f"{owner}/1_a.png"))

        pictograms, items = migration_record_stores(session_maker)

        assert pictograms.name == "custom_pictograms"
        assert items.name == "items"
        assert {r.id for r in await pictograms.list_image_records()} == {rows[0].id, rows[1].id}
        item_records = await items.list_image_records()
        assert {r.id for r in item_records} == {rows[2].id, rows[3].id}
        assert all(r.owner_id == owner for r in item_records)

    @pytest.mark.asyncio
    async def test_update_and_get(self, session_maker):
        owner = uuid4()
        rows = await _seed(session_maker, owner, "https://elsewhere.example/a.png")
        store = SQLAlchemyRecordStore(session_maker, CustomPictogram)

        await store.update_image_url(rows[0].id, "https://new.example/a.png")

        record = await store.get_record(rows[0].id)
        assert record.image_url == "https://new.example/a.png"

    @pytest.mark.asyncio
    async def test_update_missing_record_raises(self, session_maker):
        store = SQLAlchemyRecordStore(session_maker, CustomPictogram)
        with pytest.raises(LookupError):
            await store.update_image_url(uuid4(), "https://new.example/a.png")

    @pytest.mark.asyncio
    async def test_delete_record(self, session_maker):
        owner = uuid4()
        rows = await _seed(session_maker, owner, "https://elsewhere.example/a.png")
        store = SQLAlchemyRecordStore(session_maker, CustomPictogram)

        assert await store.delete_record(rows[0].id) is True
        assert await store.delete_record(rows[0].id) is False
        assert await store.get_record(rows[0].id) is None

    @pytest.mark.asyncio
    async def test_end_to_end_migration(self, session_maker, engine, classifier, fake_storage):
        owner = uuid4()
        rows = await _seed(session_maker, owner, fake_storage.public_url_for(f"{owner}/1_a.png"))

        result = MigrationBatchResult()
        for store in migration_record_stores(session_maker):
            result = result.merge(await MigrationBatchRunner(store, engine, classifier).run())

        assert (result.migrated_count, result.skipped_count, result.failed_count) == (2, 2, 0)
        pictogram = await SQLAlchemyRecordStore(session_maker, CustomPictogram).get_record(rows[0].id)
        item = await SQLAlchemyRecordStore(session_maker, Item).get_record(rows[2].id)
        assert pictogram.image_url.startswith(fake_storage.public_prefix + f"{owner}/")
        assert item.image_url.startswith(fake_storage.public_prefix + f"{owner}/")
