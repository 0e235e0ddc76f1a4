"""
Unit Tests - Comparison Engine
"""
import pytest

from vehicle_specs.catalog import Language
from vehicle_specs.comparison import ComparisonOptions
from vehicle_specs.database.models import Edition, EditionSpecs, InheritanceLevel, MergePolicy
from vehicle_specs.errors import NotFoundError, ValidationError

CATALOG_WINS = MergePolicy.CATALOG_WINS
SIDECAR_WINS = MergePolicy.SIDECAR_WINS


class TestCompare:
    """Tests for ComparisonEngine.compare"""

    async def test_single_item_inherits_grandparent(self, test_db, seeded, engine):
        result = await engine.compare(test_db, [seeded.a], ComparisonOptions(), CATALOG_WINS)

        power = result.row("POWER_KW")
        assert power.values == {seeded.a: 150.0}
        assert power.sources == {seeded.a: InheritanceLevel.MODEL}
        assert power.unit == "kW"
        assert [row.code for row in result.rows] == ["POWER_KW"]

    async def test_only_differences_keeps_differing_row(self, test_db, seeded, engine, writer):
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.b, "POWER_KW", 180)

        result = await engine.compare(
            test_db, [seeded.a, seeded.b], ComparisonOptions(only_differences=True), CATALOG_WINS
        )

        power = result.row("POWER_KW")
        assert power.values == {seeded.a: 150.0, seeded.b: 180.0}
        assert power.sources[seeded.b] == InheritanceLevel.EDITION

    async def test_same_item_twice_has_no_differences(self, test_db, seeded, engine, writer):
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.b, "POWER_KW", 180)

        result = await engine.compare(
            test_db, [seeded.a, seeded.a], ComparisonOptions(only_differences=True), CATALOG_WINS
        )

        assert result.row("POWER_KW") is None
        assert [item.id for item in result.items] == [seeded.a]

    async def test_only_differences_ignores_numeric_spelling(self, test_db, seeded, engine, writer):
        # 150 at the edition and 150.0 inherited serialize identically
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.b, "POWER_KW", "150")

        result = await engine.compare(
            test_db, [seeded.a, seeded.b], ComparisonOptions(only_differences=True), CATALOG_WINS
        )

        assert result.row("POWER_KW") is None

    async def test_partially_absent_row_is_a_difference(self, test_db, seeded, engine, writer):
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.a, "HEATED_SEATS", False)

        result = await engine.compare(
            test_db, [seeded.a, seeded.b], ComparisonOptions(only_differences=True), CATALOG_WINS
        )

        heated = result.row("HEATED_SEATS")
        assert heated.values == {seeded.a: False, seeded.b: None}
        assert heated.sources[seeded.b] is None

    async def test_all_absent_rows_are_dropped(self, test_db, seeded, engine):
        result = await engine.compare(test_db, [seeded.a, seeded.b], ComparisonOptions(), CATALOG_WINS)

        assert result.row("SEATS") is None
        assert result.row("DRIVE_TYPE") is None

    async def test_allow_list_applied_after_pivot(self, test_db, seeded, engine, writer):
        await writer.upsert_value(test_db, InheritanceLevel.MODEL, seeded.model_id, "SEATS", 5)

        result = await engine.compare(
            test_db,
            [seeded.a, seeded.b],
            ComparisonOptions(codes=["SEATS", "UNKNOWN_CODE", " "]),
            CATALOG_WINS,
        )

        assert [row.code for row in result.rows] == ["SEATS"]

    async def test_allow_list_is_case_insensitive(self, test_db, seeded, engine, writer):
        await writer.upsert_value(test_db, InheritanceLevel.MODEL, seeded.model_id, "SEATS", 5)

        options = ComparisonOptions(codes=[" seats ", "power_kw"])
        result = await engine.compare(test_db, [seeded.a], options, CATALOG_WINS)

        assert options.codes == ["SEATS", "POWER_KW"]
        assert [row.code for row in result.rows] == ["POWER_KW", "SEATS"]

    async def test_empty_allow_list_means_no_filter(self, test_db, seeded, engine):
        options = ComparisonOptions(codes=[])
        assert options.codes is None

        result = await engine.compare(test_db, [seeded.a], options, CATALOG_WINS)
        assert result.row("POWER_KW") is not None

    async def test_empty_item_list(self, test_db, seeded, engine):
        with pytest.raises(ValidationError):
            await engine.compare(test_db, [], ComparisonOptions(), CATALOG_WINS)

    async def test_unknown_item(self, test_db, seeded, engine):
        with pytest.raises(NotFoundError) as exc:
            await engine.compare(test_db, [seeded.a, 4242], ComparisonOptions(), CATALOG_WINS)
        assert exc.value.value == [4242]

    async def test_alt_language_names_and_labels(self, test_db, seeded, engine, writer):
        await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.a, "DRIVE_TYPE", "4x4")

        result = await engine.compare(
            test_db, [seeded.a], ComparisonOptions(language=Language.ALT), CATALOG_WINS
        )

        drive = result.row("DRIVE_TYPE")
        assert drive.name == "Задвижване"
        assert drive.name_localized == "Drive type"
        assert drive.values[seeded.a] == "AWD (full-time)"


class TestOrdering:

    async def test_headers_in_canonical_order(self, test_db, seeded, engine):
        result = await engine.compare(test_db, [seeded.c, seeded.b, seeded.a], ComparisonOptions(), CATALOG_WINS)

        # make, model, year, then edition name
        assert [item.id for item in result.items] == [seeded.a, seeded.b, seeded.c]
        assert [item.ordinal for item in result.items] == [1, 2, 3]
        first = result.items[0]
        assert (first.name, first.parent_name, first.grandparent_name, first.make_name) == (
            "Ambition", "2024", "Octavia", "Skoda"
        )

    async def test_edition_name_collation(self, test_db, seeded, engine):
        accented = Edition(model_year_id=seeded.year_2024, name="Ádvance")
        test_db.add(accented)
        await test_db.flush()

        headers = await engine.load_headers(test_db, [seeded.b, accented.edition_id, seeded.a])

        assert [h.name for h in headers] == ["Ádvance", "Ambition", "Style"]

    async def test_rows_sorted_by_group_order_name(self, test_db, seeded, engine, writer):
        for code, value in (("SEATS", 5), ("HEATED_SEATS", True), ("DISPLACEMENT_CC", 1498), ("DRIVE_TYPE", "FWD")):
            await writer.upsert_value(test_db, InheritanceLevel.EDITION, seeded.a, code, value)

        result = await engine.compare(test_db, [seeded.a], ComparisonOptions(), CATALOG_WINS)
        again = await engine.compare(test_db, [seeded.a], ComparisonOptions(), CATALOG_WINS)

        codes = [row.code for row in result.rows]
        assert codes == ["POWER_KW", "DISPLACEMENT_CC", "DRIVE_TYPE", "SEATS", "HEATED_SEATS"]
        assert codes == [row.code for row in again.rows]


class TestSidecarInComparison:

    async def test_policy_decides_conflicts(self, test_db, seeded, engine):
        test_db.add(EditionSpecs(edition_id=seeded.a, specs_json={"attributes": {"POWER_KW": {"v": 165}}}))
        await test_db.flush()

        catalog_wins = await engine.compare(test_db, [seeded.a], ComparisonOptions(), CATALOG_WINS)
        sidecar_wins = await engine.compare(test_db, [seeded.a], ComparisonOptions(), SIDECAR_WINS)

        assert catalog_wins.row("POWER_KW").values[seeded.a] == 150.0
        assert sidecar_wins.row("POWER_KW").values[seeded.a] == 165.0
        assert sidecar_wins.row("POWER_KW").sources[seeded.a] == InheritanceLevel.EDITION

    async def test_sidecar_only_attribute_row(self, test_db, seeded, engine):
        test_db.add(EditionSpecs(
            edition_id=seeded.b,
            specs_json={"attributes": {"RANGE_KM": {"v": 540, "dt": "int", "u": "km"}}},
        ))
        await test_db.flush()

        result = await engine.compare(test_db, [seeded.a, seeded.b], ComparisonOptions(), CATALOG_WINS)

        row = result.row("RANGE_KM")
        assert row.name == "Range Km"
        assert row.unit == "km"
        assert row.values == {seeded.a: None, seeded.b: 540}
        assert result.rows[-1].code == "RANGE_KM"


class TestListItemAttributes:

    async def test_unknown_sidecar_code_is_listed(self, test_db, seeded, engine):
        test_db.add(EditionSpecs(
            edition_id=seeded.a,
            specs_json={"attributes": {"HEADLIGHT_LOW_BEAM_TYPE": {"v": "LED"}}},
        ))
        await test_db.flush()

        listing = await engine.list_item_attributes(test_db, seeded.a, Language.DEFAULT, CATALOG_WINS)

        by_code = {entry.code: entry for entry in listing}
        headlight = by_code["HEADLIGHT_LOW_BEAM_TYPE"]
        assert headlight.name == "Headlight Low Beam Type"
        assert headlight.value == "LED"
        assert headlight.from_sidecar
        assert by_code["POWER_KW"].value == 150.0
        assert by_code["POWER_KW"].source_level == InheritanceLevel.MODEL
        assert by_code["SEATS"].value is None
        assert by_code["SEATS"].source_level is None
        assert len(listing) == 7

    async def test_unknown_edition(self, test_db, seeded, engine):
        with pytest.raises(NotFoundError):
            await engine.list_item_attributes(test_db, 999, Language.DEFAULT, CATALOG_WINS)
