"""
Record kind registry.

Each page of the tracker works on one record kind: a collection, a form
model, the filters its table offers, its default ordering and the
analytics its dashboard shows. Everything that differs between pages
lives here; the view, aggregation and gateway code is shared.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Literal, get_args

from pydantic import BaseModel

from backend.models.records import (
    SANCTIONED_FIELDS,
    AccidentIncidentForm,
    CcefodForm,
    GapAnalysisForm,
    GlossaryForm,
    KegiatanForm,
    KnktReportForm,
    LawEnforcementForm,
    PemeriksaanForm,
    PqForm,
    RecordForm,
    RulemakingForm,
    TindakLanjutDgcaForm,
    TindakLanjutForm,
)
from engine.recordsync.aggregate import (
    Selector,
    count_by,
    count_by_multi_value,
    count_where,
    nested_values,
    sum_numbers,
    year_of,
)
from engine.recordsync.timestamps import TimestampDecodeError, decode_timestamp
from engine.recordsync.types import OrderSpec, Record
from engine.recordsync.views import (
    FilterDef,
    SortSpec,
    any_of,
    derived,
    equals,
    filter_options,
    stringify,
    text,
)


class UnknownRecordKind(Exception):
    """No record kind is registered under this name."""


# ---------------------------------------------------------------------------
# Analytics definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Analytic:
    """
    One dashboard figure.

    count_by / count_by_multi_value → list of buckets
    count_where → int, records matching predicate
    sum → int, sum of numbers parsed from the selected field
    """

    name: str
    kind: Literal["count_by", "count_by_multi_value", "count_where", "sum"]
    selector: Selector | None = None
    predicate: Callable[[Record], bool] | None = None

    def compute(self, records: list[Record]) -> Any:
        if self.kind == "count_by":
            return [b.to_dict() for b in count_by(records, self.selector or self.name)]
        if self.kind == "count_by_multi_value":
            return [b.to_dict() for b in count_by_multi_value(records, self.selector or self.name)]
        if self.kind == "count_where":
            return count_where(records, self.predicate or (lambda r: False))
        return sum_numbers(records, self.selector or self.name)


def _field_equals(name: str, value: Any) -> Callable[[Record], bool]:
    return lambda r: r.get(name) == value


def _date(value: Any) -> date | None:
    try:
        decoded = decode_timestamp(value)
    except TimestampDecodeError:
        return None
    return decoded.date() if decoded else None


def _year(value: Any) -> int | None:
    d = _date(value)
    return d.year if d else None


def _month(value: Any) -> str | None:
    """Year and month of a date value as YYYY-MM, or None."""
    d = _date(value)
    return f"{d.year:04d}-{d.month:02d}" if d else None


# ---------------------------------------------------------------------------
# Record kinds
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordKind:
    name: str
    collection: str
    form: type[RecordForm]
    filters: tuple[FilterDef, ...]
    order: OrderSpec = OrderSpec()
    default_sort: SortSpec | None = None
    timestamp_fields: tuple[str, ...] = ()
    rich_text_fields: tuple[str, ...] = ()
    import_defaults: dict[str, Any] = field(default_factory=dict)
    analytics: tuple[Analytic, ...] = ()
    to_document: Callable[[Any], dict[str, Any]] | None = None

    def filter(self, name: str) -> FilterDef:
        for f in self.filters:
            if f.name == name:
                return f
        raise KeyError(name)

    def document(self, form: RecordForm) -> dict[str, Any]:
        """Form → stored field values: JSON-safe, dates as ISO strings, rich text normalized."""
        data = self.to_document(form) if self.to_document else form.model_dump(mode="json")
        for name in self.rich_text_fields:
            value = data.get(name)
            if isinstance(value, str) and value.strip() in ("", "<p></p>"):
                data[name] = ""
        return data

    def overlay_fields(self, document: dict[str, Any]) -> dict[str, Any]:
        """
        Stored field values as the store client will present them, so an
        optimistic payload compares equal to the record that confirms it.
        """
        fields = dict(document)
        for name in self.timestamp_fields:
            if name in fields:
                try:
                    fields[name] = decode_timestamp(fields[name])
                except TimestampDecodeError:
                    fields[name] = None
        return fields

    def coerce_import_row(self, row: dict[str, Any]) -> dict[str, Any]:
        """
        Prepare one CSV row for validation: blank cells become absent, and
        enum fields with a missing or unknown value fall back to their
        import default.
        """
        cleaned = {k: v for k, v in row.items() if k and v not in (None, "")}
        for name, default in self.import_defaults.items():
            allowed = _literal_values(self.form, name)
            if cleaned.get(name) not in allowed:
                cleaned[name] = default
        return cleaned

    def options(self, records: Iterable[Record], filter_name: str) -> list[str]:
        """
        Dropdown values for one filter: the "all" sentinel, then the distinct
        values present in records.

        Raises:
            KeyError: the kind has no such filter
        """
        f = self.filter(filter_name)
        if f.kind == "derived" and f.selector is not None:
            values = {stringify(f.selector(r)) for r in records} - {""}
            return [f.default, *sorted(values)]
        return filter_options(records, f.field or f.name, f.key)

    def compute_analytics(self, records: Iterable[Record]) -> dict[str, Any]:
        items = list(records)
        result: dict[str, Any] = {"total": len(items)}
        for analytic in self.analytics:
            result[analytic.name] = analytic.compute(items)
        return result


def _literal_values(form: type[BaseModel], name: str) -> tuple[Any, ...]:
    info = form.model_fields.get(name)
    if info is None:
        return ()
    return get_args(info.annotation)


def _accident_document(form: AccidentIncidentForm) -> dict[str, Any]:
    data = form.model_dump(mode="json", exclude={"adaKorbanJiwa", "jumlahKorbanJiwa"})
    data["korbanJiwa"] = form.korban_jiwa
    return data


GLOSSARY = RecordKind(
    name="glossary",
    collection="glossaryRecords",
    form=GlossaryForm,
    filters=(equals("status"), text()),
    import_defaults={"status": "Draft"},
    analytics=(Analytic("status", "count_by"),),
)

CCEFOD = RecordKind(
    name="ccefod",
    collection="ccefodRecords",
    form=CcefodForm,
    filters=(
        equals("annex"),
        equals("implementationLevel"),
        equals("adaPerubahan"),
        equals("status"),
        text(),
    ),
    rich_text_fields=("standardPractice",),
    import_defaults={"adaPerubahan": "TIDAK", "status": "Draft"},
    analytics=(
        Analytic("annex", "count_by"),
        Analytic("implementationLevel", "count_by"),
        Analytic("status", "count_by"),
        Analytic("perubahan", "count_where", predicate=_field_equals("adaPerubahan", "YA")),
    ),
)

PQS = RecordKind(
    name="pqs",
    collection="pqsRecords",
    form=PqForm,
    filters=(equals("criticalElement"), equals("icaoStatus"), equals("status"), text()),
    default_sort=SortSpec("pqNumber", "asc"),
    import_defaults={"ppq": "NO", "criticalElement": "CE - 1", "icaoStatus": "Satisfactory", "status": "Draft"},
    analytics=(
        Analytic("status", "count_by"),
        Analytic("icaoStatus", "count_by"),
        Analytic("criticalElement", "count_by"),
        Analytic("final", "count_where", predicate=_field_equals("status", "Final")),
        Analytic("satisfactory", "count_where", predicate=_field_equals("icaoStatus", "Satisfactory")),
    ),
)

GAP_ANALYSIS = RecordKind(
    name="gap-analysis",
    collection="gapAnalysisRecords",
    form=GapAnalysisForm,
    filters=(
        equals("statusItem"),
        equals("annex"),
        any_of("complianceStatus", "evaluations", key="complianceStatus"),
        derived("year", year_of("dateOfEvaluation")),
        text(),
    ),
    timestamp_fields=(
        "dateOfEvaluation",
        "implementationDate",
        "effectiveDate",
        "applicabilityDate",
        "embeddedApplicabilityDate",
    ),
    analytics=(
        Analytic("statusItem", "count_by"),
        Analytic("annex", "count_by"),
        Analytic("typeOfStateLetter", "count_by"),
        Analytic("complianceStatus", "count_by_multi_value", nested_values("evaluations", "complianceStatus")),
    ),
)

ACCIDENT_INCIDENT = RecordKind(
    name="accident-incident",
    collection="accidentIncidentRecords",
    form=AccidentIncidentForm,
    filters=(
        equals("aoc"),
        equals("kategori"),
        equals("taxonomy"),
        derived("year", year_of("tanggal")),
        text(),
    ),
    default_sort=SortSpec("tanggal", "desc"),
    timestamp_fields=("tanggal",),
    analytics=(
        Analytic("kategori", "count_by"),
        Analytic("aoc", "count_by"),
        Analytic("taxonomy", "count_by"),
        Analytic("year", "count_by", year_of("tanggal")),
        Analytic("accidents", "count_where", predicate=_field_equals("kategori", "Accident (A)")),
        Analytic("casualties", "sum", "korbanJiwa"),
    ),
    to_document=_accident_document,
)

KNKT = RecordKind(
    name="knkt",
    collection="knktReports",
    form=KnktReportForm,
    filters=(
        equals("operator"),
        equals("status"),
        equals("taxonomy"),
        derived("year", year_of("tanggal_diterbitkan")),
        text(),
    ),
    default_sort=SortSpec("tanggal_diterbitkan", "desc"),
    timestamp_fields=("tanggal_diterbitkan",),
    analytics=(
        Analytic("status", "count_by"),
        Analytic("operator", "count_by"),
        Analytic("taxonomy", "count_by"),
        Analytic("year", "count_by", year_of("tanggal_diterbitkan")),
        Analytic("final", "count_where", predicate=_field_equals("status", "Final")),
    ),
)


def _law_enforcement_document(form: LawEnforcementForm) -> dict[str, Any]:
    # only the list for the chosen imposition type is kept
    data = form.model_dump(mode="json", exclude={"sanctionedAoc", "sanctionedPersonnel", "sanctionedOrganization"})
    data[SANCTIONED_FIELDS[form.impositionType]] = [{"value": v} for v in form.sanctioned]
    return data


def _first_letter_date(record: Record) -> Any:
    references = record.get("references") or []
    return references[0].get("dateLetter") if references else None


LAW_ENFORCEMENT = RecordKind(
    name="law-enforcement",
    collection="lawEnforcementRecords",
    form=LawEnforcementForm,
    filters=(
        equals("impositionType"),
        any_of("sanctionType", "references", key="sanctionType"),
        derived("year", lambda r: _year(_first_letter_date(r))),
        text(),
    ),
    analytics=(
        Analytic("impositionType", "count_by"),
        Analytic("sanctionType", "count_by_multi_value", nested_values("references", "sanctionType")),
        Analytic("year", "count_by", lambda r: _year(_first_letter_date(r))),
    ),
    to_document=_law_enforcement_document,
)

PEMERIKSAAN = RecordKind(
    name="pemeriksaan",
    collection="pemeriksaanRecords",
    form=PemeriksaanForm,
    filters=(
        equals("operator"),
        equals("kategori"),
        derived("year", year_of("tanggal")),
        text(),
    ),
    default_sort=SortSpec("tanggal", "desc"),
    timestamp_fields=("tanggal",),
    analytics=(
        Analytic("kategori", "count_by"),
        Analytic("operator", "count_by"),
        Analytic("year", "count_by", year_of("tanggal")),
        Analytic("accidents", "count_where", predicate=_field_equals("kategori", "Accident (A)")),
    ),
)


def _tindak_lanjut_document(form: TindakLanjutForm) -> dict[str, Any]:
    data = form.model_dump(mode="json")
    data["tahun"] = form.tanggalKejadian.year
    return data


TINDAK_LANJUT = RecordKind(
    name="tindak-lanjut",
    collection="tindakLanjutRecords",
    form=TindakLanjutForm,
    filters=(equals("penerimaRekomendasi"), equals("tahun"), equals("status"), text()),
    timestamp_fields=("tanggalTerbit", "tanggalKejadian"),
    analytics=(
        Analytic("penerimaRekomendasi", "count_by"),
        Analytic("tahun", "count_by"),
        Analytic("status", "count_by"),
        Analytic("recommendations", "sum", lambda r: len(r.get("rekomendasi") or [])),
    ),
    to_document=_tindak_lanjut_document,
)

TINDAK_LANJUT_DGCA = RecordKind(
    name="tindak-lanjut-dgca",
    collection="tindakLanjutDgcaRecords",
    form=TindakLanjutDgcaForm,
    filters=(equals("operator"), derived("year", year_of("tanggalKejadian")), text()),
    default_sort=SortSpec("tanggalKejadian", "desc"),
    timestamp_fields=("tanggalKejadian", "tanggalTerbit"),
    analytics=(
        Analytic("operator", "count_by"),
        Analytic("year", "count_by", year_of("tanggalKejadian")),
    ),
)

# Progress of a rulemaking proposal, read from its latest stage
PROSES_EVALUASI = "Proses Evaluasi"
PERLU_REVISI = "Perlu Revisi"
SELESAI = "Selesai"


def rulemaking_progress(record: Record) -> str | None:
    stages = record.get("stages") or []
    if not stages:
        return None
    description = str((stages[-1].get("status") or {}).get("deskripsi") or "").lower()
    if "selesai" in description:
        return SELESAI
    if "dikembalikan" in description:
        return PERLU_REVISI
    return PROSES_EVALUASI


def _first_submission_date(record: Record) -> Any:
    stages = record.get("stages") or []
    return (stages[0].get("pengajuan") or {}).get("tanggal") if stages else None


RULEMAKING = RecordKind(
    name="rulemaking",
    collection="rulemakingRecords",
    form=RulemakingForm,
    filters=(
        equals("kategori"),
        derived("progress", rulemaking_progress),
        derived("year", lambda r: _year(_first_submission_date(r))),
        text(),
    ),
    analytics=(
        Analytic("kategori", "count_by"),
        Analytic("progress", "count_by", rulemaking_progress),
        Analytic("month", "count_by", lambda r: _month(_first_submission_date(r))),
        Analytic("selesai", "count_where", predicate=lambda r: rulemaking_progress(r) == SELESAI),
    ),
)


def _week_start(record: Record) -> str | None:
    start = _date(record.get("tanggalMulai"))
    if start is None:
        return None
    return (start - timedelta(days=start.weekday())).isoformat()


KEGIATAN = RecordKind(
    name="kegiatan",
    collection="kegiatanRecords",
    form=KegiatanForm,
    filters=(
        any_of("nama", "nama"),
        equals("lokasi"),
        derived("week", _week_start),
        derived("month", lambda r: _month(r.get("tanggalMulai"))),
        text(),
    ),
    default_sort=SortSpec("tanggalMulai", "desc"),
    timestamp_fields=("tanggalMulai", "tanggalSelesai"),
    analytics=(
        Analytic("nama", "count_by_multi_value"),
        Analytic("lokasi", "count_by"),
        Analytic("month", "count_by", lambda r: _month(r.get("tanggalMulai"))),
    ),
)

RECORD_KINDS: dict[str, RecordKind] = {
    k.name: k
    for k in (
        GLOSSARY,
        CCEFOD,
        PQS,
        GAP_ANALYSIS,
        ACCIDENT_INCIDENT,
        KNKT,
        LAW_ENFORCEMENT,
        PEMERIKSAAN,
        TINDAK_LANJUT,
        TINDAK_LANJUT_DGCA,
        RULEMAKING,
        KEGIATAN,
    )
}



def get_kind(name: str) -> RecordKind:
    """
    Raises:
        UnknownRecordKind: name is not registered
    """
    try:
        return RECORD_KINDS[name]
    except KeyError:
        raise UnknownRecordKind(name) from None
