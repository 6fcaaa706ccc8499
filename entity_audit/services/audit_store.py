"""
Audit store: durable, append-only storage for audit records.

The store owns version assignment. Appending reads the entity's
highest version and writes the next one as a conditional insert:
the unique constraint on (auditable_type, auditable_id,
version) rejects a second writer that read the same maximum, so
two records can never share a version and none is skipped.

Reads return records in ascending version order.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from entity_audit.config import get_settings
from entity_audit.errors import PersistenceFailure
from entity_audit.models.audit_record import AuditRecord
from entity_audit.observability import get_logger
from entity_audit.schemas.audit import AuditRecordCreate, AuditRecordResponse

logger = get_logger(__name__)


def _dialect_name(bind: Any) -> str:
    # Sessions expose their engine through get_bind(), connections directly.
    engine = bind.get_bind() if hasattr(bind, "get_bind") else bind
    return engine.dialect.name


class AuditStore(ABC):
    """
    Where audit records go.

    `bind` is the SQLAlchemy Session or Connection to work on.
    During a flush it is the flush's own connection, which puts
    the audit write in the same transaction as the mutation.
    """

    @abstractmethod
    def append(
        self, record: AuditRecordCreate, bind: Any = None
    ) -> AuditRecordResponse:
        """Persist a record with the entity's next version."""

    @abstractmethod
    def records_for(
        self, auditable_type: str, auditable_id: str, bind: Any = None
    ) -> list[AuditRecordResponse]:
        """All records of one entity, oldest version first."""

    @abstractmethod
    def records_for_owner(
        self, owner_type: str, owner_id: str, bind: Any = None
    ) -> list[AuditRecordResponse]:
        """All records filed under one owner, oldest first."""


class SqlAlchemyAuditStore(AuditStore):
    """
    Stores records in the `audits` table through SQLAlchemy Core.

    A writer that loses the version race hits the unique constraint
    and retries with a fresh maximum, up to max_attempts times. On
    databases with row-level concurrency every attempt runs in a
    SAVEPOINT so the failed insert does not poison the surrounding
    transaction. SQLite has no such poisoning: a failed statement
    leaves the transaction usable, so there the insert is retried
    directly. Two SQLite readers recording finds can still both read
    the same maximum before either takes the write lock; the retry
    covers that.
    """

    def __init__(self, max_attempts: int | None = None):
        if max_attempts is None:
            max_attempts = get_settings().AUDIT_VERSION_RETRIES
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.table = AuditRecord.__table__

    def append(
        self, record: AuditRecordCreate, bind: Any = None
    ) -> AuditRecordResponse:
        if bind is None:
            raise PersistenceFailure("SqlAlchemyAuditStore needs a session or connection")

        try:
            changes = record.changes_json()
        except TypeError as e:
            raise PersistenceFailure(str(e)) from e

        use_savepoint = _dialect_name(bind) != "sqlite"
        attempts = self.max_attempts
        last_error = None

        for attempt in range(1, attempts + 1):
            try:
                if use_savepoint:
                    with bind.begin_nested():
                        return self._insert_next_version(record, changes, bind)
                return self._insert_next_version(record, changes, bind)
            except IntegrityError as e:
                logger.info(
                    "audit_version_conflict",
                    auditable_type=record.auditable_type,
                    auditable_id=record.auditable_id,
                    attempt=attempt,
                )
                last_error = e
            except SQLAlchemyError as e:
                raise PersistenceFailure(f"Audit append failed: {e}") from e

        raise PersistenceFailure(
            f"Could not assign a version to {record.auditable_type}"
            f"#{record.auditable_id} after {attempts} attempt(s)"
        ) from last_error

    def _insert_next_version(
        self, record: AuditRecordCreate, changes: dict, bind: Any
    ) -> AuditRecordResponse:
        table = self.table
        current = bind.execute(
            select(func.max(table.c.version)).where(
                table.c.auditable_type == record.auditable_type,
                table.c.auditable_id == record.auditable_id,
            )
        ).scalar()
        version = (current or 0) + 1

        result = bind.execute(
            insert(table).values(
                auditable_id=record.auditable_id,
                auditable_type=record.auditable_type,
                owner_id=record.owner_id,
                owner_type=record.owner_type,
                user_id=record.user_id,
                user_type=record.user_type,
                action=record.action,
                changes=changes,
                comment=record.comment,
                version=version,
                created_at=record.created_at,
            )
        )
        return AuditRecordResponse(
            **dict(record),
            id=result.inserted_primary_key[0],
            version=version,
        )

    def records_for(
        self, auditable_type: str, auditable_id: str, bind: Any = None
    ) -> list[AuditRecordResponse]:
        table = self.table
        return self._fetch(
            bind,
            select(table)
            .where(
                table.c.auditable_type == auditable_type,
                table.c.auditable_id == auditable_id,
            )
            .order_by(table.c.version),
        )

    def records_for_owner(
        self, owner_type: str, owner_id: str, bind: Any = None
    ) -> list[AuditRecordResponse]:
        table = self.table
        return self._fetch(
            bind,
            select(table)
            .where(
                table.c.owner_type == owner_type,
                table.c.owner_id == owner_id,
            )
            .order_by(table.c.created_at, table.c.id),
        )

    def _fetch(self, bind: Any, statement) -> list[AuditRecordResponse]:
        if bind is None:
            raise ValueError("SqlAlchemyAuditStore needs a session or connection")
        rows = bind.execute(statement).mappings().all()
        return [AuditRecordResponse.model_validate(dict(row)) for row in rows]


class InMemoryAuditStore(AuditStore):
    """
    In-memory store for tests and for embedding without a database.

    A single lock makes read-max-then-append atomic, so concurrent
    threads get gap-free versions just like the SQL store.
    """

    def __init__(self):
        self._records: list[AuditRecordResponse] = []
        self._lock = threading.Lock()

    def append(
        self, record: AuditRecordCreate, bind: Any = None
    ) -> AuditRecordResponse:
        try:
            record.changes_json()
        except TypeError as e:
            raise PersistenceFailure(str(e)) from e

        with self._lock:
            current = max(
                (r.version for r in self._records
                 if r.auditable_type == record.auditable_type
                 and r.auditable_id == record.auditable_id),
                default=0,
            )
            stored = AuditRecordResponse(
                **dict(record),
                id=len(self._records) + 1,
                version=current + 1,
            )
            self._records.append(stored)
        return stored

    def records_for(
        self, auditable_type: str, auditable_id: str, bind: Any = None
    ) -> list[AuditRecordResponse]:
        with self._lock:
            results = [
                r for r in self._records
                if r.auditable_type == auditable_type
                and r.auditable_id == auditable_id
            ]
        results.sort(key=lambda r: r.version)
        return results

    def records_for_owner(
        self, owner_type: str, owner_id: str, bind: Any = None
    ) -> list[AuditRecordResponse]:
        with self._lock:
            results = [
                r for r in self._records
                if r.owner_type == owner_type and r.owner_id == owner_id
            ]
        results.sort(key=lambda r: (r.created_at, r.id))
        return results

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
