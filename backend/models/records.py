"""
Record form models.

One pydantic model per record kind. The Action Gateway validates every
incoming payload with these, and the Page Controller validates with the
same models before submitting, so the two checks cannot drift apart.

Unknown keys are dropped. Strings are trimmed before length checks.
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from pydantic_core import PydanticCustomError

Status = Literal["Existing", "Draft", "Final"]


def _required(message: str):
    return Field(min_length=1, json_schema_extra={"error": message})


class RecordForm(BaseModel):
    """Base for every record form."""

    model_config = {"extra": "ignore", "str_strip_whitespace": True}


# ---------------------------------------------------------------------------
# Glossary
# ---------------------------------------------------------------------------


class GlossaryForm(RecordForm):
    tsu: str = _required("TSU is required")
    tsa: str = _required("TSA is required")
    editing: str = _required("Editing is required")
    makna: str = _required("Makna is required")
    keterangan: str = _required("Keterangan / Pengaplikasian is required")
    referensi: str | None = None
    status: Literal["Draft", "Final"]


# ---------------------------------------------------------------------------
# CCEFOD (compliance checklist)
# ---------------------------------------------------------------------------

IMPLEMENTATION_LEVELS = (
    "No difference",
    "More exacting or exceeds",
    "Different in character or other means of compliance",
    "Less protective or patially implemented or not implemented",
    "Not applicable",
    "No  Information  Provided",
    "Insufficient  Information  Provided",
)


class CcefodForm(RecordForm):
    adaPerubahan: Literal["YA", "TIDAK"]
    usulanPerubahan: str | None = None
    isiUsulan: str | None = None
    annex: str = _required("Annex is required")
    annexReference: str = _required("Annex Reference is required")
    standardPractice: str
    legislationReference: str = _required("State Legislation Reference is required")
    implementationLevel: Literal[IMPLEMENTATION_LEVELS]  # type: ignore[valid-type]
    differenceText: str | None = None
    differenceReason: str | None = None
    remarks: str | None = None
    status: Status

    @field_validator("standardPractice")
    @classmethod
    def _rich_text_not_empty(cls, v: str) -> str:
        if not v or v == "<p></p>":
            raise PydanticCustomError("required", "Standard or Recommended Practice is required")
        return v


# ---------------------------------------------------------------------------
# PQ (protocol questions)
# ---------------------------------------------------------------------------


class PqForm(RecordForm):
    pqNumber: str = _required("PQ Number is required")
    protocolQuestion: str = _required("Protocol Question is required")
    guidance: str = _required("Guidance for Review of Evidence is required")
    icaoReferences: str = _required("ICAO References are required")
    ppq: Literal["YES", "NO"]
    criticalElement: Literal["CE - 1", "CE - 2", "CE - 3", "CE - 4", "CE - 5", "CE - 6", "CE - 7", "CE - 8"]
    remarks: str | None = None
    evidence: str | None = None
    answer: str | None = None
    poc: str | None = None
    icaoStatus: Literal["Satisfactory", "No Satisfactory"]
    cap: str | None = None
    sspComponent: str | None = None
    status: Status


# ---------------------------------------------------------------------------
# GAP analysis (state letters)
# ---------------------------------------------------------------------------

COMPLIANCE_STATUSES = (
    "No Differences",
    "More Exacting or Exceeds",
    "Different in character or other means of compliance",
    "Less protective or partially implemented or not implemented",
    "Not Applicable",
)


class Evaluation(RecordForm):
    id: str
    icaoSarp: str = _required("ICAO SARP is required")
    review: str = _required("Review is required")
    complianceStatus: Literal[COMPLIANCE_STATUSES]  # type: ignore[valid-type]
    casrAffected: str = _required("CASR to be affected is required")


class Inspector(RecordForm):
    id: str
    name: str = _required("Inspector name is required")
    signature: str | None = None


class GapAnalysisForm(RecordForm):
    slReferenceNumber: str = _required("SL Reference Number is required")
    annex: str = _required("Annex is required")
    typeOfStateLetter: str = _required("Type of State Letter is required")
    dateOfEvaluation: date | None = None
    subject: str = _required("Subject is required")
    letterName: str | None = None
    letterSubject: str | None = None
    implementationDate: date | None = None
    actionRequired: str = _required("Action Required is required")
    effectiveDate: date | None = None
    applicabilityDate: date | None = None
    embeddedApplicabilityDate: date
    evaluations: list[Evaluation] = Field(min_length=1)
    statusItem: Literal["OPEN", "CLOSED"]
    summary: str | None = None
    inspectors: list[Inspector] | None = None


# ---------------------------------------------------------------------------
# Accident / incident reports
# ---------------------------------------------------------------------------


class AccidentIncidentForm(RecordForm):
    tanggal: date
    kategori: Literal["Accident (A)", "Serious Incident (SI)"]
    aoc: str = _required("AOC is required.")
    registrasiPesawat: str = _required("Registrasi Pesawat is required.")
    tipePesawat: str = _required("Tipe Pesawat is required.")
    lokasi: str = _required("Lokasi is required.")
    taxonomy: str = _required("Taxonomy is required.")
    keteranganKejadian: str | None = None
    adaKorbanJiwa: Literal["Ada", "Tidak Ada"]
    jumlahKorbanJiwa: str | None = Field(default=None, validate_default=True)

    @field_validator("jumlahKorbanJiwa")
    @classmethod
    def _count_required_with_casualties(cls, v: str | None, info: ValidationInfo) -> str | None:
        if info.data.get("adaKorbanJiwa") == "Ada" and not v:
            raise PydanticCustomError("required", "Jumlah korban jiwa is required when there are casualties.")
        return v

    @property
    def korban_jiwa(self) -> str:
        """The combined casualty string stored on the record."""
        if self.adaKorbanJiwa == "Ada":
            return self.jumlahKorbanJiwa or "Ada"
        return "Tidak ada"


def _required_list(message: str):
    return Field(json_schema_extra={"error": message})


def _non_empty(values: list, message: str) -> list:
    if not values:
        raise PydanticCustomError("required", message)
    return values


def _optional_url(v: str | None) -> str | None:
    if v and not v.startswith(("http://", "https://")):
        raise PydanticCustomError("url_parsing", "Input should be a valid URL")
    return v or None


# ---------------------------------------------------------------------------
# KNKT investigation reports
# ---------------------------------------------------------------------------


class KnktReportForm(RecordForm):
    tanggal_diterbitkan: date
    nomor_laporan: str = _required("Nomor Laporan is required.")
    status: Literal["Final", "Preliminary", "Interim Statement", "Draft Final"]
    operator: str = _required("Operator is required.")
    registrasi: str = _required("Registrasi is required.")
    tipe_pesawat: str = _required("Tipe Pesawat is required.")
    lokasi: str = _required("Lokasi is required.")
    taxonomy: str | None = None
    keterangan: str | None = None
    fileUrl: str | None = None

    _check_file_url = field_validator("fileUrl")(_optional_url)


# ---------------------------------------------------------------------------
# Law enforcement (sanctions)
# ---------------------------------------------------------------------------


class SanctionedParty(RecordForm):
    value: str = ""


class LawEnforcementReference(RecordForm):
    id: str
    sanctionType: str = _required("Sanction Type is required.")
    refLetter: str = _required("Ref. Letter is required.")
    dateLetter: date
    fileUrl: str | None = None

    _check_file_url = field_validator("fileUrl")(_optional_url)


SANCTIONED_FIELDS = {
    "aoc": "sanctionedAoc",
    "personnel": "sanctionedPersonnel",
    "organization": "sanctionedOrganization",
}


class LawEnforcementForm(RecordForm):
    impositionType: Literal["aoc", "personnel", "organization"]
    sanctionedAoc: list[SanctionedParty] | None = None
    sanctionedPersonnel: list[SanctionedParty] | None = None
    sanctionedOrganization: list[SanctionedParty] | None = None
    references: list[LawEnforcementReference] = _required_list("At least one reference is required.")

    @field_validator("references")
    @classmethod
    def _references_not_empty(cls, v: list[LawEnforcementReference]) -> list[LawEnforcementReference]:
        return _non_empty(v, "At least one reference is required.")

    @model_validator(mode="after")
    def _sanctioned_matches_imposition(self) -> LawEnforcementForm:
        if not self.sanctioned:
            raise PydanticCustomError("required", "At least one sanctioned party is required.")
        return self

    @property
    def sanctioned(self) -> list[str]:
        """Names of whoever the sanction was imposed on."""
        return [p.value for p in getattr(self, SANCTIONED_FIELDS[self.impositionType]) or [] if p.value]


# ---------------------------------------------------------------------------
# Pemeriksaan (examinations)
# ---------------------------------------------------------------------------


class PemeriksaanForm(RecordForm):
    kategori: Literal["Accident (A)", "Serious Incident (SI)"]
    jenisPesawat: str = _required("Jenis Pesawat is required.")
    registrasi: str = _required("Registrasi is required.")
    tahunPembuatan: str = _required("Tahun Pembuatan is required.")
    operator: str = _required("Operator is required.")
    tanggal: date
    lokasi: str = _required("Lokasi is required.")
    korban: str = _required("Korban is required.")
    ringkasanKejadian: str = _required("Ringkasan Kejadian is required.")
    statusPenanganan: str = _required("Status Penanganan is required.")
    tindakLanjut: str = _required("Tindak Lanjut is required.")
    filePemeriksaanUrl: str | None = None

    _check_file_url = field_validator("filePemeriksaanUrl")(_optional_url)


# ---------------------------------------------------------------------------
# Safety recommendation follow-up (operators and DGCA)
# ---------------------------------------------------------------------------

REPORT_STATUSES = ("Draft", "Final", "Preliminary", "Interim Statement", "Draft Final")


class Rekomendasi(RecordForm):
    id: str
    nomor: str = _required("Nomor rekomendasi is required.")
    deskripsi: str = _required("Deskripsi is required.")


class TindakLanjutForm(RecordForm):
    judulLaporan: str = _required("Judul Laporan is required.")
    nomorLaporan: str = _required("Nomor Laporan is required.")
    tanggalTerbit: date
    tanggalKejadian: date
    status: Literal[REPORT_STATUSES] = "Final"  # type: ignore[valid-type]
    penerimaRekomendasi: str = _required("Penerima Rekomendasi is required.")
    rekomendasi: list[Rekomendasi] = _required_list("At least one recommendation is required.")
    tindakLanjutDkppu: str = _required("Tindak Lanjut DKPPU is required.")
    tindakLanjutOperator: str = _required("Tindak Lanjut Operator is required.")
    registrasiPesawat: str | None = None
    tipePesawat: str | None = None
    lokasiKejadian: str | None = None
    fileUrl: str | None = None

    _check_file_url = field_validator("fileUrl")(_optional_url)

    @field_validator("rekomendasi")
    @classmethod
    def _rekomendasi_not_empty(cls, v: list[Rekomendasi]) -> list[Rekomendasi]:
        return _non_empty(v, "At least one recommendation is required.")


class TindakLanjutDgcaForm(RecordForm):
    judulLaporan: str = _required("Judul Laporan is required.")
    nomorLaporan: str = _required("Nomor Laporan is required.")
    operator: str = _required("Operator is required.")
    tipePesawat: str = _required("Tipe Pesawat is required.")
    registrasi: str = _required("Registrasi is required.")
    lokasi: str = _required("Lokasi is required.")
    tanggalKejadian: date
    tanggalTerbit: date | None = None
    rekomendasiKeDgca: str = _required("Rekomendasi ke DGCA is required.")
    nomorRekomendasi: str = _required("Nomor Rekomendasi is required.")
    tindakLanjutDkppu: str = _required("Tindak Lanjut DKPPU is required.")
    fileUrl: str | None = None

    _check_file_url = field_validator("fileUrl")(_optional_url)


# ---------------------------------------------------------------------------
# Rulemaking monitoring
# ---------------------------------------------------------------------------


class Pengajuan(RecordForm):
    tanggal: date
    nomor: str = _required("Nomor Pengajuan is required.")
    keteranganPengajuan: str | None = None


class StageStatus(RecordForm):
    deskripsi: str = _required("Deskripsi Status is required.")
    nomorSurat: str | None = None
    tanggalSurat: date | None = None


class RulemakingStage(RecordForm):
    pengajuan: Pengajuan
    status: StageStatus
    keterangan: str | None = None


class RulemakingForm(RecordForm):
    perihal: str = _required("Perihal is required.")
    kategori: Literal["PKPS/CASR", "SI", "AC"]
    stages: list[RulemakingStage] = _required_list("At least one stage is required.")
    keterangan: str | None = None

    @field_validator("stages")
    @classmethod
    def _stages_not_empty(cls, v: list[RulemakingStage]) -> list[RulemakingStage]:
        return _non_empty(v, "At least one stage is required.")


# ---------------------------------------------------------------------------
# Kegiatan (activity schedule)
# ---------------------------------------------------------------------------


class KegiatanForm(RecordForm):
    subjek: str = _required("Subjek is required.")
    tanggalMulai: date
    tanggalSelesai: date
    nama: list[str] = _required_list("At least one name is required.")
    lokasi: str = _required("Lokasi is required.")
    catatan: str | None = None

    @field_validator("nama")
    @classmethod
    def _names_not_empty(cls, v: list[str]) -> list[str]:
        return _non_empty([name.strip() for name in v if name.strip()], "At least one name is required.")

    @field_validator("tanggalSelesai")
    @classmethod
    def _ends_after_start(cls, v: date, info: ValidationInfo) -> date:
        start = info.data.get("tanggalMulai")
        if start is not None and v < start:
            raise PydanticCustomError("date_order", "End date cannot be before start date.")
        return v
