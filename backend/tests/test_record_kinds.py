"""
Tests for the safety, rulemaking and activity record kinds.

Covers:
  - each kind writes to its own collection through the gateway
  - declared messages for required fields, list fields and cross-field rules
  - stored documents: kept sanction list, derived year, ISO dates in nested stages
  - filters and analytics specific to each kind (progress, week, sanction type)
"""

from __future__ import annotations

import copy

import pytest

from backend.models.gateway import GatewayFailure, GatewaySuccess
from backend.routes.records import load_records
from backend.services.record_kinds import (
    KEGIATAN,
    LAW_ENFORCEMENT,
    RECORD_KINDS,
    RULEMAKING,
    TINDAK_LANJUT,
    get_kind,
    rulemaking_progress,
)
from engine.recordsync.types import Record
from engine.recordsync.views import derive_view

NEW_KINDS = {
    "knkt": "knktReports",
    "law-enforcement": "lawEnforcementRecords",
    "pemeriksaan": "pemeriksaanRecords",
    "tindak-lanjut": "tindakLanjutRecords",
    "tindak-lanjut-dgca": "tindakLanjutDgcaRecords",
    "rulemaking": "rulemakingRecords",
    "kegiatan": "kegiatanRecords",
}


def stage(deskripsi, tanggal="2023-03-01"):
    return {"pengajuan": {"tanggal": tanggal, "nomor": "UM.1"}, "status": {"deskripsi": deskripsi}}


# ============================================================================
# registry
# ============================================================================


class TestRegistry:
    def test_collections_are_distinct(self):
        collections = [k.collection for k in RECORD_KINDS.values()]
        assert len(collections) == len(set(collections)) == 12

    @pytest.mark.parametrize("name, collection", NEW_KINDS.items())
    async def test_create_writes_to_kind_collection(self, gateway, store, session, kind_payloads, name, collection):
        assert get_kind(name).collection == collection

        result = await gateway.create(name, kind_payloads[name], session)

        assert isinstance(result, GatewaySuccess), result
        assert result.data["id"] in store.collections[collection]

    @pytest.mark.parametrize("name", NEW_KINDS)
    async def test_records_load_with_dates_decoded(self, gateway, store, session, kind_payloads, name):
        await gateway.create(name, kind_payloads[name], session)
        kind = get_kind(name)

        (record,) = await load_records(store, kind)

        for field in kind.timestamp_fields:
            value = record.get(field)
            assert value is None or value.year in (2023, 2024)
        assert record.decode_error is None


# ============================================================================
# validation
# ============================================================================


class TestValidation:
    async def test_knkt_required_message(self, gateway, session, kind_payloads):
        payload = kind_payloads["knkt"]
        payload["nomor_laporan"] = " "

        result = await gateway.create("knkt", payload, session)

        assert isinstance(result, GatewayFailure)
        assert result.field_errors["nomor_laporan"] == ["Nomor Laporan is required."]

    async def test_knkt_status_is_an_enum(self, gateway, session, kind_payloads):
        payload = kind_payloads["knkt"]
        payload["status"] = "Done"

        result = await gateway.create("knkt", payload, session)

        assert "status" in result.field_errors

    async def test_law_enforcement_needs_a_reference(self, gateway, session, kind_payloads):
        payload = kind_payloads["law-enforcement"]
        payload["references"] = []

        result = await gateway.create("law-enforcement", payload, session)

        assert result.field_errors["references"] == ["At least one reference is required."]

    async def test_law_enforcement_needs_party_for_imposition_type(self, gateway, store, session, kind_payloads):
        payload = kind_payloads["law-enforcement"]
        payload["impositionType"] = "personnel"

        result = await gateway.create("law-enforcement", payload, session)

        assert isinstance(result, GatewayFailure)
        assert ["At least one sanctioned party is required."] in result.field_errors.values()
        assert "lawEnforcementRecords" not in store.collections

    async def test_pemeriksaan_file_url_must_be_a_url(self, gateway, session, kind_payloads):
        payload = kind_payloads["pemeriksaan"]
        payload["filePemeriksaanUrl"] = "not a link"

        result = await gateway.create("pemeriksaan", payload, session)

        assert "filePemeriksaanUrl" in result.field_errors

    async def test_pemeriksaan_blank_file_url_allowed(self, gateway, store, session, kind_payloads):
        payload = kind_payloads["pemeriksaan"]
        payload["filePemeriksaanUrl"] = ""

        result = await gateway.create("pemeriksaan", payload, session)

        assert store.collections["pemeriksaanRecords"][result.data["id"]]["filePemeriksaanUrl"] is None

    async def test_tindak_lanjut_needs_a_recommendation(self, gateway, session, kind_payloads):
        payload = kind_payloads["tindak-lanjut"]
        payload["rekomendasi"] = []

        result = await gateway.create("tindak-lanjut", payload, session)

        assert result.field_errors["rekomendasi"] == ["At least one recommendation is required."]

    async def test_tindak_lanjut_nested_message_is_dotted(self, gateway, session, kind_payloads):
        payload = kind_payloads["tindak-lanjut"]
        payload["rekomendasi"][1]["nomor"] = ""

        result = await gateway.create("tindak-lanjut", payload, session)

        assert result.field_errors["rekomendasi.1.nomor"] == ["Nomor rekomendasi is required."]

    async def test_rulemaking_needs_a_stage(self, gateway, session, kind_payloads):
        payload = kind_payloads["rulemaking"]
        del payload["stages"]

        result = await gateway.create("rulemaking", payload, session)

        assert result.field_errors["stages"] == ["At least one stage is required."]

    async def test_kegiatan_end_before_start(self, gateway, session, kind_payloads):
        payload = kind_payloads["kegiatan"]
        payload["tanggalSelesai"] = "2024-03-01"

        result = await gateway.create("kegiatan", payload, session)

        assert result.field_errors["tanggalSelesai"] == ["End date cannot be before start date."]

    async def test_kegiatan_blank_names_do_not_count(self, gateway, session, kind_payloads):
        payload = kind_payloads["kegiatan"]
        payload["nama"] = ["", "  "]

        result = await gateway.create("kegiatan", payload, session)

        assert result.field_errors["nama"] == ["At least one name is required."]


# ============================================================================
# stored documents
# ============================================================================


class TestDocuments:
    async def test_law_enforcement_keeps_only_chosen_party_list(self, gateway, store, session, kind_payloads):
        result = await gateway.create("law-enforcement", kind_payloads["law-enforcement"], session)

        doc = store.collections["lawEnforcementRecords"][result.data["id"]]
        assert doc["sanctionedAoc"] == [{"value": "AOC 121-001"}]
        assert "sanctionedPersonnel" not in doc
        assert "sanctionedOrganization" not in doc
        assert doc["references"][0]["dateLetter"] == "2023-02-14"

    async def test_tindak_lanjut_year_from_event_date(self, gateway, store, session, kind_payloads):
        result = await gateway.create("tindak-lanjut", kind_payloads["tindak-lanjut"], session)

        doc = store.collections["tindakLanjutRecords"][result.data["id"]]
        assert doc["tahun"] == 2023
        assert doc["status"] == "Final"

    async def test_rulemaking_stage_dates_stored_as_iso(self, gateway, store, session, kind_payloads):
        result = await gateway.create("rulemaking", kind_payloads["rulemaking"], session)

        (first,) = store.collections["rulemakingRecords"][result.data["id"]]["stages"]
        assert first["pengajuan"]["tanggal"] == "2023-03-01"
        assert first["status"]["tanggalSurat"] == "2023-03-20"

    async def test_update_recomputes_derived_fields(self, gateway, store, session, kind_payloads):
        payload = kind_payloads["tindak-lanjut"]
        created = await gateway.create("tindak-lanjut", payload, session)
        changed = copy.deepcopy(payload)
        changed["tanggalKejadian"] = "2022-12-30"

        await gateway.update("tindak-lanjut", created.data["id"], changed, session)

        assert store.collections["tindakLanjutRecords"][created.data["id"]]["tahun"] == 2022


# ============================================================================
# filters and analytics
# ============================================================================


class TestRulemakingProgress:
    @pytest.mark.parametrize(
        "deskripsi, expected",
        [
            ("Selesai ditetapkan", "Selesai"),
            ("Dikembalikan untuk perbaikan", "Perlu Revisi"),
            ("Sedang dievaluasi", "Proses Evaluasi"),
        ],
    )
    def test_progress_from_latest_stage(self, deskripsi, expected):
        record = Record(id="a", fields={"stages": [stage("Selesai"), stage(deskripsi)]})
        assert rulemaking_progress(record) == expected

    def test_no_stages_no_progress(self):
        assert rulemaking_progress(Record(id="a", fields={"stages": []})) is None

    def test_analytics(self):
        records = [
            Record(id="a", fields={"kategori": "SI", "stages": [stage("Selesai", "2023-01-05")]}),
            Record(id="b", fields={"kategori": "SI", "stages": [stage("Dikembalikan", "2023-01-20")]}),
            Record(id="c", fields={"kategori": "AC", "stages": [stage("Evaluasi", "2023-02-01")]}),
        ]

        figures = RULEMAKING.compute_analytics(records)

        assert figures["total"] == 3
        assert figures["selesai"] == 1
        assert {b["key"]: b["count"] for b in figures["month"]} == {"2023-01": 2, "2023-02": 1}
        assert [b["key"] for b in figures["kategori"]] == ["SI", "AC"]

    def test_progress_filter(self):
        records = [
            Record(id="a", fields={"stages": [stage("Selesai")]}),
            Record(id="b", fields={"stages": [stage("Dikembalikan")]}),
        ]

        view = derive_view(records, None, {"progress": "Perlu Revisi"}, RULEMAKING.filters, None)

        assert [r.id for r in view.visible_records] == ["b"]
        assert RULEMAKING.options(records, "progress") == ["all", "Perlu Revisi", "Selesai"]


class TestKegiatanFilters:
    async def test_week_and_month_filters(self, gateway, store, session, kind_payloads):
        await gateway.create("kegiatan", kind_payloads["kegiatan"], session)
        later = {**kind_payloads["kegiatan"], "tanggalMulai": "2024-04-02", "tanggalSelesai": "2024-04-02"}
        await gateway.create("kegiatan", later, session)
        records = await load_records(store, KEGIATAN)

        # 2024-03-06 is a Wednesday; its week starts Monday 2024-03-04
        week = derive_view(records, None, {"week": "2024-03-04"}, KEGIATAN.filters, KEGIATAN.default_sort)
        month = derive_view(records, None, {"month": "2024-04"}, KEGIATAN.filters, KEGIATAN.default_sort)

        assert [r.get("tanggalMulai").day for r in week.visible_records] == [6]
        assert [r.get("tanggalMulai").month for r in month.visible_records] == [4]

    async def test_names_counted_per_person(self, gateway, store, session, kind_payloads):
        await gateway.create("kegiatan", kind_payloads["kegiatan"], session)
        solo = {**kind_payloads["kegiatan"], "nama": ["Alex Johnson"]}
        await gateway.create("kegiatan", solo, session)

        figures = KEGIATAN.compute_analytics(await load_records(store, KEGIATAN))

        assert {b["key"]: b["count"] for b in figures["nama"]} == {"Alex Johnson": 2, "Maria Garcia": 1}


class TestSanctionAndRecommendationFigures:
    def test_sanction_type_filter_looks_inside_references(self):
        records = [
            Record(id="a", fields={"references": [{"sanctionType": "Pembekuan", "dateLetter": "2023-02-14"}]}),
            Record(id="b", fields={"references": [{"sanctionType": "Peringatan", "dateLetter": "2022-06-01"}]}),
        ]

        view = derive_view(records, None, {"sanctionType": "Peringatan"}, LAW_ENFORCEMENT.filters, None)
        years = LAW_ENFORCEMENT.options(records, "year")

        assert [r.id for r in view.visible_records] == ["b"]
        assert years == ["all", "2022", "2023"]

    async def test_recommendations_are_summed(self, gateway, store, session, kind_payloads):
        await gateway.create("tindak-lanjut", kind_payloads["tindak-lanjut"], session)
        other = copy.deepcopy(kind_payloads["tindak-lanjut"])
        other["rekomendasi"] = other["rekomendasi"][:1]
        other["penerimaRekomendasi"] = "PT Wings Abadi"
        await gateway.create("tindak-lanjut", other, session)

        records = await load_records(store, TINDAK_LANJUT)
        figures = TINDAK_LANJUT.compute_analytics(records)
        view = derive_view(records, None, {"penerimaRekomendasi": "PT Wings Abadi"}, TINDAK_LANJUT.filters, None)

        assert figures["recommendations"] == 3
        assert {b["key"] for b in figures["tahun"]} == {"2023"}
        assert view.total_count == 1
