"""
Repository layer for AirTrack.

All SQL lives here and ONLY here. No database access outside this module.
"""

from backend.repos.document_repo import PostgresDocumentStore

__all__ = [
    "PostgresDocumentStore",
]
