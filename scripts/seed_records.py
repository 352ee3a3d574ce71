#!/usr/bin/env python3
"""
Seed the document store with users and a few sample records.

Usage:
    DATABASE_URL=... JWT_SECRET=... python scripts/seed_records.py

Users are written to the users collection with fixed ids; records go
through the Action Gateway so they carry the same fields a form submit
would produce.
"""

import asyncio
import sys

# Add project root to path
sys.path.insert(0, ".")

from backend.db import close_pool, init_pool
from backend.models.session import SessionContext
from backend.repos.document_repo import PostgresDocumentStore
from backend.services.action_gateway import ActionGateway

USERS = [
    {"id": "admin-00", "name": "Admin User", "email": "admin@example.com", "role": "Sub-Directorate Head"},
    {"id": "user-1", "name": "Alex Johnson", "email": "alex.johnson@example.com", "role": "Team Lead"},
    {"id": "user-2", "name": "Maria Garcia", "email": "maria.garcia@example.com", "role": "PIC"},
]

SAMPLE_RECORDS = {
    "glossary": [
        {
            "tsu": "Aerodrome",
            "tsa": "Bandar udara",
            "editing": "Bandar udara",
            "makna": "A defined area on land or water intended for aircraft operations.",
            "keterangan": "Annex 14",
            "status": "Final",
        },
    ],
    "pqs": [
        {
            "pqNumber": "1.001",
            "protocolQuestion": "Has the State promulgated primary aviation legislation?",
            "guidance": "Review the civil aviation act.",
            "icaoReferences": "CC Art. 37",
            "ppq": "YES",
            "criticalElement": "CE - 1",
            "icaoStatus": "Satisfactory",
            "status": "Final",
        },
    ],
    "accident-incident": [
        {
            "tanggal": "2024-01-15",
            "kategori": "Serious Incident (SI)",
            "aoc": "AOC 121-001",
            "registrasiPesawat": "PK-ABC",
            "tipePesawat": "B737-800",
            "lokasi": "Soekarno-Hatta",
            "taxonomy": "RE",
            "adaKorbanJiwa": "Tidak Ada",
        },
    ],
}


async def main():
    await init_pool()
    store = PostgresDocumentStore()
    gateway = ActionGateway(store)
    session = SessionContext(user_id="admin-00", name="Admin User")

    try:
        for user in USERS:
            data = {k: v for k, v in user.items() if k != "id"}
            await store.set("users", user["id"], data)
        print(f"Seeded {len(USERS)} users")

        for kind, payloads in SAMPLE_RECORDS.items():
            for payload in payloads:
                result = await gateway.create(kind, payload, session)
                if not result.success:
                    print(f"Failed to seed {kind}: {result.message}")
                    sys.exit(1)
            print(f"Seeded {len(payloads)} {kind} records")
    finally:
        await close_pool()


if __name__ == "__main__":
    asyncio.run(main())
