"""
Pytest configuration and fixtures for AirTrack backend tests.

Everything runs against MemoryDocumentStore. Tests that need Postgres
skip themselves when DATABASE_URL is not set.
"""

from __future__ import annotations

import os

# Set test environment variables before importing config
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only")
os.environ.setdefault("STORE_BACKEND", "memory")

from datetime import UTC, datetime, timedelta  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from backend.auth import create_jwt  # noqa: E402
from backend.main import app  # noqa: E402
from backend.middleware.rate_limit import import_rate_limiter  # noqa: E402
from backend.models.session import SessionContext  # noqa: E402
from backend.services.action_gateway import ActionGateway  # noqa: E402
from engine.recordsync.transport import MemoryDocumentStore  # noqa: E402

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class StepClock:
    """Deterministic clock: each call advances one second."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class RecordingNotifier:
    """Notifier that keeps what it was told."""

    def __init__(self):
        self.toasts: list[tuple[str, str]] = []
        self.banners: list[str | None] = []

    def toast(self, message: str, *, variant: str = "default") -> None:
        self.toasts.append((message, variant))

    def banner(self, message: str | None) -> None:
        self.banners.append(message)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store(clock):
    return MemoryDocumentStore(clock=clock)


@pytest.fixture
def gateway(store):
    return ActionGateway(store)


@pytest.fixture
def session():
    return SessionContext(user_id="user-1", name="Alex Johnson", avatar_url="https://example.com/a.png")


@pytest.fixture
def other_session():
    return SessionContext(user_id="user-2", name="Maria Garcia")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def glossary_payload():
    return {
        "tsu": "Aerodrome",
        "tsa": "Bandar udara",
        "editing": "Bandar udara",
        "makna": "A defined area intended for aircraft operations.",
        "keterangan": "Annex 14",
        "status": "Draft",
    }


@pytest.fixture
def accident_payload():
    return {
        "tanggal": "2023-06-01",
        "kategori": "Accident (A)",
        "aoc": "AOC 121-001",
        "registrasiPesawat": "PK-ABC",
        "tipePesawat": "B737-800",
        "lokasi": "Jakarta",
        "taxonomy": "RE",
        "adaKorbanJiwa": "Ada",
        "jumlahKorbanJiwa": "2",
    }


@pytest.fixture
def gap_payload():
    return {
        "slReferenceNumber": "AN 11/1.1-23/45",
        "annex": "Annex 11",
        "typeOfStateLetter": "Proposal",
        "dateOfEvaluation": "2023-05-10",
        "subject": "Amendment 52",
        "actionRequired": "Comment",
        "embeddedApplicabilityDate": "2024-11-28",
        "evaluations": [
            {
                "id": "e1",
                "icaoSarp": "2.1.1",
                "review": "Reviewed",
                "complianceStatus": "No Differences",
                "casrAffected": "CASR 170",
            }
        ],
        "statusItem": "OPEN",
    }


@pytest.fixture
def kind_payloads():
    """One valid payload per record kind added for the safety and rulemaking pages."""
    return {
        "knkt": {
            "tanggal_diterbitkan": "2023-04-12",
            "nomor_laporan": "KNKT.23.04.07.04",
            "status": "Final",
            "operator": "PT Lion Mentari Airlines",
            "registrasi": "PK-LQJ",
            "tipe_pesawat": "B737-900ER",
            "lokasi": "Makassar",
            "taxonomy": "RE",
        },
        "law-enforcement": {
            "impositionType": "aoc",
            "sanctionedAoc": [{"value": "AOC 121-001"}],
            "sanctionedPersonnel": [{"value": ""}],
            "sanctionedOrganization": [{"value": ""}],
            "references": [
                {
                    "id": "ref-1",
                    "sanctionType": "Pembekuan",
                    "refLetter": "AU.402/1/2-DKPPU-2023",
                    "dateLetter": "2023-02-14",
                }
            ],
        },
        "pemeriksaan": {
            "kategori": "Serious Incident (SI)",
            "jenisPesawat": "ATR 72-600",
            "registrasi": "PK-WGT",
            "tahunPembuatan": "2015",
            "operator": "PT Wings Abadi",
            "tanggal": "2023-09-03",
            "lokasi": "Kupang",
            "korban": "Tidak ada",
            "ringkasanKejadian": "Runway excursion after landing.",
            "statusPenanganan": "Selesai",
            "tindakLanjut": "- Audit operator\n- Pelatihan ulang",
        },
        "tindak-lanjut": {
            "judulLaporan": "Final Report PK-LQJ",
            "nomorLaporan": "KNKT.23.04",
            "tanggalTerbit": "2023-11-20",
            "tanggalKejadian": "2023-04-12",
            "penerimaRekomendasi": "PT Lion Mentari Airlines",
            "rekomendasi": [
                {"id": "r1", "nomor": "04.O-2023-01", "deskripsi": "Review the stabilized approach SOP"},
                {"id": "r2", "nomor": "04.O-2023-02", "deskripsi": "Recurrent CRM training"},
            ],
            "tindakLanjutDkppu": "Surat ke operator",
            "tindakLanjutOperator": "SOP direvisi",
        },
        "tindak-lanjut-dgca": {
            "judulLaporan": "Final Report PK-WGT",
            "nomorLaporan": "KNKT.23.09",
            "operator": "PT Wings Abadi",
            "tipePesawat": "ATR 72-600",
            "registrasi": "PK-WGT",
            "lokasi": "Kupang",
            "tanggalKejadian": "2023-09-03",
            "rekomendasiKeDgca": "Review runway inspection intervals",
            "nomorRekomendasi": "09.R-2023-01",
            "tindakLanjutDkppu": "Inspeksi dilakukan",
        },
        "rulemaking": {
            "perihal": "Usulan amandemen CASR 121",
            "kategori": "PKPS/CASR",
            "stages": [
                {
                    "pengajuan": {"tanggal": "2023-03-01", "nomor": "UM.001/3/2023"},
                    "status": {
                        "deskripsi": "Dikembalikan untuk perbaikan",
                        "nomorSurat": "HK.002",
                        "tanggalSurat": "2023-03-20",
                    },
                }
            ],
        },
        "kegiatan": {
            "subjek": "Audit AOC 121",
            "tanggalMulai": "2024-03-06",
            "tanggalSelesai": "2024-03-08",
            "nama": ["Alex Johnson", "Maria Garcia"],
            "lokasi": "Jakarta",
        },
    }


@pytest.fixture
def app_store():
    """Fresh in-memory store installed on the app for route tests."""
    store = MemoryDocumentStore()
    app.state.store = store
    import_rate_limiter.reset()
    return store


@pytest.fixture
def auth_cookies():
    return {"session": create_jwt("user-1", "Alex Johnson")}


@pytest_asyncio.fixture
async def async_client(app_store):
    """Async HTTP client against the ASGI app."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest_asyncio.fixture
async def authed_client(app_store, auth_cookies):
    """Async HTTP client carrying user-1's session cookie."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
        cookies=auth_cookies,
    ) as client:
        yield client
