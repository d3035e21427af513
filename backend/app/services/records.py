import logging
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import timezone
from decimal import Decimal
from typing import Any
from urllib.parse import quote

from psycopg import Error as PsycopgError

from app.core.errors import IOFailure
from app.models.records import FinancialRecord, RecordFields, RecordKind

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = """
    id::text AS id,
    user_id::text AS user_id,
    title,
    description,
    amount,
    currency_code,
    attachment,
    created_at,
    updated_at
"""


def normalize_record_id(value: Any) -> str | None:
    """Canonical UUID text for ``value``, or None when it cannot be a record id."""
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError, AttributeError):
        return None


def escape_like(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def row_to_record(kind: RecordKind, row: dict[str, Any]) -> FinancialRecord:
    return FinancialRecord(
        id=row["id"],
        owner_id=row["user_id"],
        kind=kind,
        title=row["title"],
        description=row["description"] or "",
        amount=Decimal(row["amount"]),
        currency_code=row["currency_code"],
        attachment=row["attachment"] or None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def attachment_url_for(record: FinancialRecord, listing_path: str = "/records") -> str | None:
    if not record.attachment:
        return None
    return f"{listing_path}/{record.kind.value}/{record.id}/attachments/{quote(record.attachment)}"


def serialize_record(record: FinancialRecord, listing_path: str = "/records") -> dict[str, Any]:
    return {
        "id": record.id,
        "kind": record.kind.value,
        "title": record.title,
        "description": record.description,
        "amount": str(record.amount),
        "currency_code": record.currency_code,
        "attachment": record.attachment,
        "attachment_url": attachment_url_for(record, listing_path),
        "created_at": record.created_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
        "updated_at": record.updated_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


class RecordRepository:
    """Owner-scoped CRUD over one record table.

    A record owned by someone else is reported exactly like a missing one
    (``None``), so callers cannot tell other users' ids apart from absent ones.
    """

    def __init__(self, db_conn: Callable[[], AbstractContextManager], kind: RecordKind) -> None:
        self._db_conn = db_conn
        self.kind = kind

    def _fetch_one(self, sql: str, params: tuple, commit: bool = False) -> FinancialRecord | None:
        try:
            with self._db_conn() as conn, conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                if commit:
                    conn.commit()
        except PsycopgError as exc:
            logger.error("%s query failed: %s", self.kind.label, exc)
            raise IOFailure(str(exc)) from exc
        return row_to_record(self.kind, row) if row else None

    def find_by_id(self, record_id: str, owner_id: str) -> FinancialRecord | None:
        record_id = normalize_record_id(record_id)
        if record_id is None:
            return None
        return self._fetch_one(
            f"""
            SELECT {_RECORD_COLUMNS}
            FROM {self.kind.table}
            WHERE id=%s::uuid AND user_id=%s::uuid
            """,
            (record_id, owner_id),
        )

    def list(self, owner_id: str, title_contains: str | None = None) -> list[FinancialRecord]:
        sql = f"""
            SELECT {_RECORD_COLUMNS}
            FROM {self.kind.table}
            WHERE user_id=%s::uuid
        """
        params: list[Any] = [owner_id]
        if title_contains:
            sql += " AND title ILIKE %s ESCAPE '\\'"
            params.append(escape_like(title_contains))
        sql += " ORDER BY created_at DESC, id DESC"

        try:
            with self._db_conn() as conn, conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
        except PsycopgError as exc:
            logger.error("%s listing failed: %s", self.kind.label, exc)
            raise IOFailure(str(exc)) from exc
        return [row_to_record(self.kind, row) for row in rows]

    def latest(self, owner_id: str) -> FinancialRecord | None:
        return self._fetch_one(
            f"""
            SELECT {_RECORD_COLUMNS}
            FROM {self.kind.table}
            WHERE user_id=%s::uuid
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (owner_id,),
        )

    def create(self, owner_id: str, fields: RecordFields, attachment: str | None = None) -> FinancialRecord:
        record = self._fetch_one(
            f"""
            INSERT INTO {self.kind.table} (user_id, title, description, amount, currency_code, attachment)
            VALUES (%s::uuid, %s, %s, %s, %s, %s)
            RETURNING {_RECORD_COLUMNS}
            """,
            (owner_id, fields.title, fields.description, fields.amount, fields.currency_code, attachment),
            commit=True,
        )
        if record is None:
            raise IOFailure(f"{self.kind.table} insert returned no row")
        return record

    def update(
        self,
        record_id: str,
        owner_id: str,
        fields: RecordFields,
        attachment: str | None = None,
    ) -> FinancialRecord | None:
        """Replace the editable fields; ``attachment=None`` keeps the current pointer."""
        record_id = normalize_record_id(record_id)
        if record_id is None:
            return None
        return self._fetch_one(
            f"""
            UPDATE {self.kind.table}
            SET title=%s,
                description=%s,
                amount=%s,
                currency_code=%s,
                attachment=COALESCE(%s, attachment),
                updated_at=now()
            WHERE id=%s::uuid AND user_id=%s::uuid
            RETURNING {_RECORD_COLUMNS}
            """,
            (
                fields.title,
                fields.description,
                fields.amount,
                fields.currency_code,
                attachment,
                record_id,
                owner_id,
            ),
            commit=True,
        )

    def clear_attachment(self, record_id: str, owner_id: str, expected_name: str) -> FinancialRecord | None:
        """Null the pointer only while it still names ``expected_name``."""
        record_id = normalize_record_id(record_id)
        if record_id is None:
            return None
        return self._fetch_one(
            f"""
            UPDATE {self.kind.table}
            SET attachment=NULL, updated_at=now()
            WHERE id=%s::uuid AND user_id=%s::uuid AND attachment=%s
            RETURNING {_RECORD_COLUMNS}
            """,
            (record_id, owner_id, expected_name),
            commit=True,
        )

    def delete(self, record_id: str, owner_id: str) -> FinancialRecord | None:
        record_id = normalize_record_id(record_id)
        if record_id is None:
            return None
        return self._fetch_one(
            f"""
            DELETE FROM {self.kind.table}
            WHERE id=%s::uuid AND user_id=%s::uuid
            RETURNING {_RECORD_COLUMNS}
            """,
            (record_id, owner_id),
            commit=True,
        )
