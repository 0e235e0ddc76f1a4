"""
Unit Tests - Collections and Snapshot Freeze
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from vehicle_specs.catalog import Language
from vehicle_specs.database.models import Collection, InheritanceLevel, MergePolicy, SelectionMode
from vehicle_specs.errors import CorruptStateError, NotFoundError, ValidationError
from vehicle_specs.snapshots import (
    CollectionCreate,
    CollectionUpdate,
    SnapshotManager,
    resolve_item_ids,
)


async def make_collection(collections, db, seeded, **overrides):
    data = {"title": "Octavia 2024", "edition_ids": [seeded.a, seeded.b]}
    data.update(overrides)
    return await collections.create(db, CollectionCreate(**data))


class TestFreeze:
    """Tests for SnapshotManager lock / unlock / resolve"""

    async def test_live_until_locked(self, test_db, seeded, collections, snapshots):
        summary = await make_collection(collections, test_db, seeded)

        view = await snapshots.resolve(test_db, summary.collection_id)

        assert view.source == "live"
        assert view.frozen_at is None
        assert view.row("POWER_KW").values == {seeded.a: 150.0, seeded.b: 150.0}

    async def test_frozen_read_survives_mutation(self, test_db, seeded, collections, snapshots, writer):
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.b, "POWER_KW", 180)
        summary = await make_collection(collections, test_db, seeded)
        collection_id = summary.collection_id

        collection = await snapshots.lock(test_db, collection_id)
        assert collection.is_frozen
        assert collection.frozen_at is not None

        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.b, "POWER_KW", 200)

        view = await snapshots.resolve(test_db, collection_id)
        assert view.source == "snapshot"
        assert view.row("POWER_KW").values == {seeded.a: 150.0, seeded.b: 180.0}

        await snapshots.unlock(test_db, collection_id)
        await snapshots.lock(test_db, collection_id)

        view = await snapshots.resolve(test_db, collection_id)
        assert view.source == "snapshot"
        assert view.row("POWER_KW").values == {seeded.a: 150.0, seeded.b: 200.0}

    async def test_lock_records_naive_utc_time(self, test_db, seeded, collections, snapshots):
        summary = await make_collection(collections, test_db, seeded)
        before = datetime.now(timezone.utc).replace(tzinfo=None)

        collection = await snapshots.lock(test_db, summary.collection_id)

        assert collection.frozen_at.tzinfo is None
        assert before - timedelta(seconds=1) <= collection.frozen_at <= before + timedelta(minutes=1)

    async def test_unlock_returns_to_live(self, test_db, seeded, collections, snapshots, writer):
        summary = await make_collection(collections, test_db, seeded, lock=True)
        assert summary.is_frozen

        await snapshots.unlock(test_db, summary.collection_id)
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.a, "POWER_KW", 190)

        view = await snapshots.resolve(test_db, summary.collection_id)
        assert view.source == "live"
        assert view.row("POWER_KW").values[seeded.a] == 190.0

        collection = await test_db.get(Collection, summary.collection_id)
        assert collection.snapshot_json is None
        assert collection.frozen_at is None

    async def test_relock_replaces_snapshot(self, test_db, seeded, collections, snapshots, writer):
        summary = await make_collection(collections, test_db, seeded, lock=True)
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.a, "SEATS", 4)

        await snapshots.lock(test_db, summary.collection_id)

        view = await snapshots.resolve(test_db, summary.collection_id)
        assert view.row("SEATS").values == {seeded.a: 4, seeded.b: None}

    async def test_snapshot_keeps_collection_options(self, test_db, seeded, collections, snapshots, writer):
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.a, "SEATS", 4)
        summary = await make_collection(
            collections, test_db, seeded, only_differences=True, language=Language.ALT, lock=True
        )

        view = await snapshots.resolve(test_db, summary.collection_id)

        assert [row.code for row in view.rows] == ["SEATS"]
        assert view.rows[0].name_localized == "Seats"

    async def test_corrupt_snapshot_falls_back_to_live(self, test_db, seeded, collections, snapshots, writer):
        summary = await make_collection(collections, test_db, seeded, lock=True)
        collection = await test_db.get(Collection, summary.collection_id)
        collection.snapshot_json = '{"items": [{"id": "not-a-number"'
        await test_db.flush()
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.b, "POWER_KW", 210)

        view = await snapshots.resolve(test_db, summary.collection_id)

        assert view.source == "live"
        assert view.row("POWER_KW").values[seeded.b] == 210.0

    async def test_frozen_without_document_falls_back(self, test_db, seeded, collections, snapshots):
        summary = await make_collection(collections, test_db, seeded)
        collection = await test_db.get(Collection, summary.collection_id)
        collection.is_frozen = True
        await test_db.flush()

        with pytest.raises(CorruptStateError):
            SnapshotManager.thaw(collection)
        view = await snapshots.resolve(test_db, summary.collection_id)
        assert view.source == "live"

    async def test_lock_empty_selection(self, test_db, seeded, collections, snapshots):
        collection = Collection(
            public_uuid="empty", title="Empty", selection_mode=SelectionMode.ALL_YEARS, model_id=None,
        )
        test_db.add(collection)
        await test_db.flush()
        await test_db.refresh(collection)
        collection_id = collection.collection_id

        with pytest.raises(ValidationError):
            await snapshots.lock(test_db, collection_id)

        view = await snapshots.resolve(test_db, collection_id)
        assert view.items == [] and view.rows == []

    async def test_unknown_collection(self, test_db, seeded, snapshots):
        with pytest.raises(NotFoundError):
            await snapshots.lock(test_db, 999)
        with pytest.raises(NotFoundError):
            await snapshots.resolve(test_db, 999)


class TestSelectionModes:

    async def test_explicit_editions_keep_order(self, test_db, seeded, collections):
        summary = await make_collection(collections, test_db, seeded, edition_ids=[seeded.c, seeded.a, seeded.c])
        collection = await test_db.get(Collection, summary.collection_id)

        assert summary.edition_ids == [seeded.c, seeded.a]
        assert await resolve_item_ids(test_db, collection) == [seeded.c, seeded.a]

    async def test_years(self, test_db, seeded, collections):
        summary = await make_collection(
            collections, test_db, seeded,
            selection_mode=SelectionMode.YEARS, edition_ids=[], model_year_ids=[seeded.year_2024],
        )
        collection = await test_db.get(Collection, summary.collection_id)

        assert await resolve_item_ids(test_db, collection) == [seeded.a, seeded.b]

    async def test_all_years_newest_first(self, test_db, seeded, collections):
        summary = await make_collection(
            collections, test_db, seeded,
            selection_mode=SelectionMode.ALL_YEARS, edition_ids=[], model_id=seeded.model_id,
        )
        collection = await test_db.get(Collection, summary.collection_id)

        assert await resolve_item_ids(test_db, collection) == [seeded.c, seeded.a, seeded.b]


class TestCollectionService:
    """Tests for CollectionService"""

    def test_create_requires_selection(self):
        with pytest.raises(PydanticValidationError):
            CollectionCreate(title="No items")
        with pytest.raises(PydanticValidationError):
            CollectionCreate(title="  ", edition_ids=[1])
        with pytest.raises(PydanticValidationError):
            CollectionCreate(title="Years", selection_mode=SelectionMode.YEARS)

    def test_create_defaults(self):
        data = CollectionCreate(title=" Sheet ", edition_ids=[1])
        assert data.title == "Sheet"
        assert data.merge_policy == MergePolicy.CATALOG_WINS
        assert data.language == Language.DEFAULT

    async def test_create_rejects_unknown_edition(self, test_db, seeded, collections):
        with pytest.raises(NotFoundError):
            await make_collection(collections, test_db, seeded, edition_ids=[seeded.a, 5000])

    async def test_get_and_uuid(self, test_db, seeded, collections):
        summary = await make_collection(collections, test_db, seeded)

        by_id = await collections.get(test_db, summary.collection_id)
        by_uuid = await collections.get_by_uuid(test_db, summary.public_uuid)

        assert by_id.collection_id == by_uuid.collection_id
        assert len(summary.public_uuid) == 36

    async def test_list_search_and_pages(self, test_db, seeded, collections):
        for title in ("Octavia spring", "Octavia autumn", "Kodiaq"):
            await make_collection(collections, test_db, seeded, title=title)

        page = await collections.list(test_db, search="octavia", page=1, page_size=1)
        assert page.total == 2
        assert len(page.items) == 1

        everything = await collections.list(test_db)
        assert everything.total == 3

    async def test_update_keeps_snapshot(self, test_db, seeded, collections, snapshots, writer):
        summary = await make_collection(collections, test_db, seeded, lock=True)

        updated = await collections.update(
            test_db, summary.collection_id, CollectionUpdate(title="Renamed", edition_ids=[seeded.c])
        )
        assert updated.title == "Renamed"
        assert updated.edition_ids == [seeded.c]
        assert updated.is_frozen

        view = await snapshots.resolve(test_db, summary.collection_id)
        assert view.source == "snapshot"
        assert [item.id for item in view.items] == [seeded.a, seeded.b]

    async def test_update_rejects_empty_selection(self, test_db, seeded, collections):
        summary = await make_collection(collections, test_db, seeded)

        with pytest.raises(ValidationError):
            await collections.update(test_db, summary.collection_id, CollectionUpdate(edition_ids=[]))

    async def test_delete(self, test_db, seeded, collections):
        summary = await make_collection(collections, test_db, seeded)

        await collections.delete(test_db, summary.collection_id)

        with pytest.raises(NotFoundError):
            await collections.get(test_db, summary.collection_id)
