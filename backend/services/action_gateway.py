"""
Action Gateway — the server-side mutation boundary.

Every mutation runs the same pipeline:

    validate (kind's pydantic form) → sanitize (kind.document) → write (DocumentStore)

and returns GatewaySuccess or GatewayFailure. Nothing in here raises for a
bad payload or a failed write; callers branch on `success`. An unknown
record kind raises UnknownRecordKind, which is a caller bug.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from backend.config import settings
from backend.models.gateway import FormErrors, GatewayFailure, GatewaySuccess, first_error, form_errors
from backend.models.records import RecordForm
from backend.models.session import SessionContext
from backend.services.record_kinds import RECORD_KINDS, RecordKind, UnknownRecordKind
from engine.recordsync.transport import (
    SERVER_TIMESTAMP,
    DocumentNotFound,
    DocumentStore,
    StoreWriteError,
    WriteOp,
)

logger = logging.getLogger(__name__)

NO_VALID_ROWS = "No valid records found to import. Please check your CSV file structure and data."


def validate_payload(kind: RecordKind, payload: Mapping[str, Any]) -> tuple[RecordForm | None, FormErrors]:
    """
    Validate a payload with the kind's form. Returns (form, {}) or (None, errors).
    Shared by the gateway and the Page Controller.
    """
    try:
        return kind.form.model_validate(dict(payload)), {}
    except ValidationError as e:
        return None, form_errors(e, kind.form)


def _is_blank_row(row: Mapping[str, Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row.values())


class ActionGateway:
    def __init__(
        self,
        store: DocumentStore,
        kinds: Mapping[str, RecordKind] = RECORD_KINDS,
        max_import_rows: int | None = None,
    ):
        self.store = store
        self.kinds = kinds
        self.max_import_rows = max_import_rows or settings.IMPORT_MAX_ROWS

    def kind(self, kind: str | RecordKind) -> RecordKind:
        if isinstance(kind, RecordKind):
            return kind
        try:
            return self.kinds[kind]
        except KeyError:
            raise UnknownRecordKind(kind) from None

    # -- create / update / delete ----------------------------------------------

    async def create(
        self,
        kind: str | RecordKind,
        payload: Mapping[str, Any],
        session: SessionContext,
        record_id: str | None = None,
    ) -> GatewaySuccess | GatewayFailure:
        """
        Create a record. With record_id the caller chooses the id (an
        optimistic create's provisional id); otherwise the store assigns one.
        """
        k = self.kind(kind)
        form, errors = validate_payload(k, payload)
        if form is None:
            logger.info("gateway: %s create rejected: %s", k.name, list(errors))
            return GatewayFailure(error=errors)

        document = k.document(form)
        data = {
            **document,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
            "createdBy": session.user_id,
        }
        try:
            if record_id:
                await self.store.set(k.collection, record_id, data)
                new_id = record_id
            else:
                new_id = await self.store.add(k.collection, data)
        except StoreWriteError as e:
            logger.warning("gateway: %s create failed: %s", k.name, e)
            return GatewayFailure(error=f"Failed to add record: {e}")

        logger.info("gateway: %s created %s by %s", k.name, new_id, session.user_id)
        return GatewaySuccess(data={"id": new_id, **document})

    async def update(
        self,
        kind: str | RecordKind,
        record_id: str,
        payload: Mapping[str, Any],
        session: SessionContext,
    ) -> GatewaySuccess | GatewayFailure:
        k = self.kind(kind)
        form, errors = validate_payload(k, payload)
        if form is None:
            logger.info("gateway: %s update %s rejected: %s", k.name, record_id, list(errors))
            return GatewayFailure(error=errors)

        document = k.document(form)
        try:
            await self.store.update(k.collection, record_id, {**document, "updatedAt": SERVER_TIMESTAMP})
        except DocumentNotFound:
            return GatewayFailure(error="Record not found")
        except StoreWriteError as e:
            logger.warning("gateway: %s update %s failed: %s", k.name, record_id, e)
            return GatewayFailure(error=f"Failed to update record: {e}")

        logger.info("gateway: %s updated %s by %s", k.name, record_id, session.user_id)
        return GatewaySuccess(data={"id": record_id, **document})

    async def delete(
        self,
        kind: str | RecordKind,
        record_id: str,
        session: SessionContext,
    ) -> GatewaySuccess | GatewayFailure:
        k = self.kind(kind)
        try:
            await self.store.delete(k.collection, record_id)
        except StoreWriteError as e:
            logger.warning("gateway: %s delete %s failed: %s", k.name, record_id, e)
            return GatewayFailure(error=f"Failed to delete record: {e}")

        logger.info("gateway: %s deleted %s by %s", k.name, record_id, session.user_id)
        return GatewaySuccess(data={"id": record_id})

    # -- bulk import -------------------------------------------------------------

    async def import_rows(
        self,
        kind: str | RecordKind,
        rows: list[dict[str, Any]],
        session: SessionContext,
    ) -> GatewaySuccess | GatewayFailure:
        """
        Import parsed CSV rows as new records in one batch.

        Blank rows are skipped. Enum columns with missing or unknown values
        take the kind's import defaults. The first invalid row aborts the
        whole import; row numbers count the header as row 1.
        """
        k = self.kind(kind)
        ops: list[WriteOp] = []

        for index, row in enumerate(rows):
            if _is_blank_row(row):
                continue
            if len(ops) >= self.max_import_rows:
                return GatewayFailure(error=f"Too many rows. Import at most {self.max_import_rows} records at a time.")

            form, errors = validate_payload(k, k.coerce_import_row(row))
            if form is None:
                field, message = first_error(errors)
                logger.info("gateway: %s import rejected at row %d: %s", k.name, index + 2, field)
                return GatewayFailure(
                    error=f'Error on CSV row {index + 2}. Field: "{field}", Message: "{message}". Please check your file.'
                )

            data = {
                **k.document(form),
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "createdBy": session.user_id,
            }
            ops.append(WriteOp("set", k.collection, self.store.new_id(), data))

        if not ops:
            return GatewayFailure(error=NO_VALID_ROWS)

        try:
            await self.store.commit(ops)
        except (StoreWriteError, DocumentNotFound) as e:
            logger.warning("gateway: %s import of %d rows failed: %s", k.name, len(ops), e)
            return GatewayFailure(error=f"Failed to import records: {e}")

        logger.info("gateway: %s imported %d records by %s", k.name, len(ops), session.user_id)
        return GatewaySuccess(data={"count": len(ops)})
