"""
Unit Tests - Spec Write Workflow
"""
import pytest
from sqlalchemy import func, select

from vehicle_specs.catalog import Language
from vehicle_specs.database.models import (
    AttributeValue,
    AttributeValueI18n,
    EditionSpecs,
    InheritanceLevel,
)
from vehicle_specs.editing import PurgeMode, SpecWriteRequest, TextInput, ValueInput
from vehicle_specs.errors import NotFoundError, ValidationError
from vehicle_specs.resolution import EffectiveValueResolver


async def edition_records(db, edition_id):
    rows = await db.execute(
        select(func.count(AttributeValue.value_id)).where(
            AttributeValue.level == InheritanceLevel.EDITION,
            AttributeValue.owner_id == edition_id,
        )
    )
    return rows.scalar()


class TestWrite:
    """Tests for SpecWriter.write"""

    async def test_values_and_enums(self, test_db, seeded, writer):
        summary = await writer.write(test_db, seeded.a, SpecWriteRequest(
            enums={"DRIVE_TYPE": "AWD"},
            values=[
                ValueInput(code="POWER_KW", value="180.5"),
                ValueInput(code="SEATS", value=5),
                ValueInput(code="HEATED_SEATS", value="no"),
            ],
        ))

        assert summary.values_written == 4
        assert not summary.sidecar_updated

        document = await writer.read(test_db, seeded.a)
        assert document.enums == {"DRIVE_TYPE": "AWD_ON_DEMAND"}
        assert document.values == {"POWER_KW": 180.5, "SEATS": 5.0, "HEATED_SEATS": False}

    async def test_rewrite_updates_in_place(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(values=[ValueInput(code="SEATS", value=5)]))
        await writer.write(test_db, seeded.a, SpecWriteRequest(values=[ValueInput(code="SEATS", value=7)]))

        assert await edition_records(test_db, seeded.a) == 1
        assert (await writer.read(test_db, seeded.a)).values["SEATS"] == 7.0

    async def test_invalid_value_writes_nothing(self, test_db, seeded, writer):
        request = SpecWriteRequest(
            enums={"DRIVE_TYPE": "FWD"},
            values=[ValueInput(code="SEATS", value=5), ValueInput(code="HEATED_SEATS", value="sometimes")],
            sidecar={"RANGE_KM": {"v": 540}},
        )

        with pytest.raises(ValidationError) as exc:
            await writer.write(test_db, seeded.a, request)

        assert exc.value.code == "HEATED_SEATS"
        assert await edition_records(test_db, seeded.a) == 0
        assert await test_db.get(EditionSpecs, seeded.a) is None

    async def test_invalid_enum_rejected(self, test_db, seeded, writer):
        with pytest.raises(ValidationError):
            await writer.write(test_db, seeded.a, SpecWriteRequest(enums={"DRIVE_TYPE": "hover"}))
        with pytest.raises(ValidationError):
            await writer.write(test_db, seeded.a, SpecWriteRequest(enums={"SEATS": "5"}))

    async def test_unknown_code_and_edition(self, test_db, seeded, writer):
        with pytest.raises(NotFoundError):
            await writer.write(test_db, seeded.a, SpecWriteRequest(values=[ValueInput(code="NOPE", value=1)]))
        with pytest.raises(NotFoundError):
            await writer.write(test_db, 999, SpecWriteRequest())

    async def test_localized_texts(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(texts=[
            TextInput(code="COLOR_NOTE", localized_text_by_language={"default": "Металик", "alt": "Metallic"}),
        ]))

        record = (
            await test_db.execute(
                select(AttributeValue).where(
                    AttributeValue.level == InheritanceLevel.EDITION,
                    AttributeValue.owner_id == seeded.a,
                )
            )
        ).scalar_one()
        assert record.value_text == "Металик"
        translations = (await test_db.execute(select(AttributeValueI18n))).scalars().all()
        assert sorted((t.lang, t.value_text) for t in translations) == [("bg", "Металик"), ("en", "Metallic")]

    async def test_alt_only_text_needs_default(self, test_db, seeded, writer):
        with pytest.raises(ValidationError) as exc:
            await writer.write(test_db, seeded.a, SpecWriteRequest(texts=[
                TextInput(code="COLOR_NOTE", localized_text_by_language={"alt": "Metallic", "default": " "}),
            ]))

        assert exc.value.code == "COLOR_NOTE"
        assert await edition_records(test_db, seeded.a) == 0
        assert (await test_db.execute(select(AttributeValueI18n))).scalars().all() == []

    async def test_alt_only_text_keeps_default(self, test_db, seeded, writer, catalog):
        resolver = EffectiveValueResolver(catalog)
        await writer.write(test_db, seeded.a, SpecWriteRequest(texts=[
            TextInput(code="COLOR_NOTE", localized_text_by_language={"default": "Бял", "alt": "White"}),
        ]))

        await writer.write(test_db, seeded.a, SpecWriteRequest(texts=[
            TextInput(code="COLOR_NOTE", localized_text_by_language={"alt": "Pearl white"}),
        ]))

        default = await resolver.resolve_attribute(test_db, seeded.a, "COLOR_NOTE")
        alt = await resolver.resolve_attribute(test_db, seeded.a, "COLOR_NOTE", Language.ALT)
        assert default.value == "Бял"
        assert alt.value == "Pearl white"
        assert (await writer.read(test_db, seeded.a)).texts == {"COLOR_NOTE": "Бял"}

    async def test_plain_text_value_replaces_translations(self, test_db, seeded, writer, catalog):
        resolver = EffectiveValueResolver(catalog)
        await writer.write(test_db, seeded.a, SpecWriteRequest(texts=[
            TextInput(code="COLOR_NOTE", localized_text_by_language={"default": "Стар", "alt": "Old"}),
        ]))

        await writer.write(test_db, seeded.a, SpecWriteRequest(values=[ValueInput(code="COLOR_NOTE", value="Нов")]))

        default = await resolver.resolve_attribute(test_db, seeded.a, "COLOR_NOTE")
        alt = await resolver.resolve_attribute(test_db, seeded.a, "COLOR_NOTE", Language.ALT)
        assert default.value == "Нов"
        assert alt.value == "Нов"
        assert (await test_db.execute(select(AttributeValueI18n))).scalars().all() == []

    async def test_upsert_text_replaces_translations(self, test_db, seeded, writer, catalog):
        resolver = EffectiveValueResolver(catalog)
        await writer.write(test_db, seeded.a, SpecWriteRequest(texts=[
            TextInput(code="COLOR_NOTE", localized_text_by_language={"default": "Стар", "alt": "Old"}),
        ]))

        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.a, "COLOR_NOTE", "Нов")

        default = await resolver.resolve_attribute(test_db, seeded.a, "COLOR_NOTE")
        alt = await resolver.resolve_attribute(test_db, seeded.a, "COLOR_NOTE", Language.ALT)
        assert (default.value, alt.value) == ("Нов", "Нов")

    async def test_text_then_value_in_one_request(self, test_db, seeded, writer, catalog):
        resolver = EffectiveValueResolver(catalog)
        await writer.write(test_db, seeded.a, SpecWriteRequest(
            values=[ValueInput(code="COLOR_NOTE", value="Нов")],
            texts=[TextInput(code="COLOR_NOTE", localized_text_by_language={"default": "Нов", "alt": "New"})],
        ))

        alt = await resolver.resolve_attribute(test_db, seeded.a, "COLOR_NOTE", Language.ALT)
        assert alt.value == "New"

    async def test_text_for_non_text_attribute(self, test_db, seeded, writer):
        with pytest.raises(ValidationError):
            await writer.write(test_db, seeded.a, SpecWriteRequest(texts=[
                TextInput(code="SEATS", localized_text_by_language={"default": "5"}),
            ]))


class TestSidecarWrites:

    async def test_merge_patch_keeps_other_keys(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(sidecar={
            "RANGE_KM": {"v": 540, "dt": "INT", "u": "km"},
            "TOW_HITCH": True,
        }))
        await writer.write(test_db, seeded.a, SpecWriteRequest(sidecar={"RANGE_KM": {"v": 560}}))

        document = await writer.read(test_db, seeded.a)
        assert document.sidecar == {
            "RANGE_KM": {"v": 560, "dt": "int", "u": "km"},
            "TOW_HITCH": {"v": True},
        }

    async def test_merge_patch_null_deletes(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(sidecar={"RANGE_KM": 540, "TOW_HITCH": True}))
        await writer.write(test_db, seeded.a, SpecWriteRequest(sidecar={"TOW_HITCH": None}))

        assert list((await writer.read(test_db, seeded.a)).sidecar) == ["RANGE_KM"]

    async def test_replace_discards_document_and_texts(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(
            sidecar={"RANGE_KM": 540, "TOW_HITCH": True},
            sidecar_texts={Language.ALT: {"TRIM_NOTE": "Sport package"}},
        ))
        await writer.write(test_db, seeded.a, SpecWriteRequest(sidecar={"WARRANTY_YEARS": 5}, replace=True))

        document = await writer.read(test_db, seeded.a)
        assert document.sidecar == {"WARRANTY_YEARS": {"v": 5}}
        assert document.sidecar_texts == {}

    async def test_sidecar_texts_merge(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(
            sidecar_texts={Language.DEFAULT: {"TRIM_NOTE": "Спорт"}, Language.ALT: {"TRIM_NOTE": "Sport"}},
        ))
        await writer.write(test_db, seeded.a, SpecWriteRequest(
            sidecar_texts={Language.ALT: {"TRIM_NOTE": None, "SEAT_NOTE": "Leather"}},
        ))

        texts = (await writer.read(test_db, seeded.a)).sidecar_texts
        assert texts == {"bg": {"TRIM_NOTE": "Спорт"}, "en": {"SEAT_NOTE": "Leather"}}

    async def test_unknown_type_hint_rejected(self, test_db, seeded, writer):
        with pytest.raises(ValidationError):
            await writer.write(test_db, seeded.a, SpecWriteRequest(sidecar={"RANGE_KM": {"v": 1, "dt": "float"}}))

    async def test_corrupt_stored_document_is_patched_as_empty(self, test_db, seeded, writer):
        test_db.add(EditionSpecs(edition_id=seeded.a, specs_json="oops"))
        await test_db.flush()

        await writer.write(test_db, seeded.a, SpecWriteRequest(sidecar={"RANGE_KM": 540}))

        assert (await writer.read(test_db, seeded.a)).sidecar == {"RANGE_KM": {"v": 540}}


class TestUpsertAndPurge:

    async def test_upsert_at_every_level(self, test_db, seeded, writer, catalog):
        resolver = EffectiveValueResolver(catalog)
        await writer.upsert_value(test_db, InheritanceLevel.MODEL_YEAR, seeded.year_2025, "SEATS", 7)

        seats = await resolver.resolve_attribute(test_db, seeded.c, "SEATS")
        assert (seats.value, seats.source_level) == (7, InheritanceLevel.MODEL_YEAR)

    async def test_upsert_unknown_owner(self, test_db, seeded, writer):
        with pytest.raises(NotFoundError):
            await writer.upsert_value(test_db, InheritanceLevel.MODEL_YEAR, 999, "SEATS", 7)

    async def test_purge_json(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(
            sidecar={"RANGE_KM": 540}, values=[ValueInput(code="SEATS", value=5)],
        ))

        removed = await writer.purge(test_db, seeded.a, PurgeMode.JSON)

        assert removed == {"sidecar": 1, "values": 0}
        assert await test_db.get(EditionSpecs, seeded.a) is None
        assert await edition_records(test_db, seeded.a) == 1

    async def test_purge_eav_codes(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(values=[
            ValueInput(code="SEATS", value=5), ValueInput(code="POWER_KW", value=180),
        ]))

        removed = await writer.purge(test_db, seeded.a, PurgeMode.EAV, ["SEATS", "UNKNOWN"])

        assert removed == {"sidecar": 0, "values": 1}
        assert (await writer.read(test_db, seeded.a)).values == {"POWER_KW": 180.0}

    async def test_purge_both(self, test_db, seeded, writer):
        await writer.write(test_db, seeded.a, SpecWriteRequest(
            sidecar={"RANGE_KM": 540},
            texts=[TextInput(code="COLOR_NOTE", localized_text_by_language={"default": "Бял"})],
        ))

        removed = await writer.purge(test_db, seeded.a, PurgeMode.BOTH, ["COLOR_NOTE"])

        assert removed == {"sidecar": 1, "values": 1}
        assert (await test_db.execute(select(AttributeValueI18n))).scalars().all() == []
