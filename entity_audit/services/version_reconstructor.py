"""
Version reconstructor: rebuilds an entity's attributes from its audits.

A snapshot is a fold: start from an empty dict and apply each
record's `after` values in version order. Destroy records fold the
same way, so a snapshot taken after deletion shows the attributes
blanked out. Attributes no record ever captured are simply absent.
Nothing here writes; the same records always give the same snapshot.
"""

from collections.abc import Iterable
from datetime import datetime, timezone
from itertools import takewhile
from typing import Any

from entity_audit.schemas.audit import AuditRecordResponse, SnapshotResponse
from entity_audit.services.audit_store import AuditStore


def as_storage_time(timestamp: datetime) -> datetime:
    """Timestamps are stored as naive UTC; convert aware ones to match."""
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(timezone.utc).replace(tzinfo=None)


def fold(records: Iterable[AuditRecordResponse]) -> dict[str, Any]:
    snapshot: dict[str, Any] = {}
    for record in records:
        for name, change in record.changes.items():
            snapshot[name] = change.after
    return snapshot


def records_until(
    records: Iterable[AuditRecordResponse], timestamp: datetime
) -> list[AuditRecordResponse]:
    """The prefix of version-ordered records created at or before timestamp."""
    cutoff = as_storage_time(timestamp)
    return list(takewhile(lambda r: r.created_at <= cutoff, records))


def records_through_version(
    records: Iterable[AuditRecordResponse], version: int
) -> list[AuditRecordResponse]:
    return [r for r in records if r.version <= version]


class VersionReconstructor:

    def __init__(self, store: AuditStore):
        self.store = store

    def attributes_at(
        self,
        auditable_type: str,
        auditable_id: str,
        timestamp: datetime,
        bind: Any = None,
    ) -> dict[str, Any]:
        """
        Attribute state as of `timestamp`.

        Before the entity's first record the snapshot is empty.
        """
        records = self.store.records_for(auditable_type, auditable_id, bind)
        return fold(records_until(records, timestamp))

    def attributes_at_version(
        self,
        auditable_type: str,
        auditable_id: str,
        version: int,
        bind: Any = None,
    ) -> dict[str, Any]:
        """Attribute state right after the given version was recorded."""
        records = self.store.records_for(auditable_type, auditable_id, bind)
        return fold(records_through_version(records, version))

    def latest_snapshot(
        self,
        auditable_type: str,
        auditable_id: str,
        bind: Any = None,
    ) -> dict[str, Any]:
        return fold(self.store.records_for(auditable_type, auditable_id, bind))

    def snapshot(
        self,
        auditable_type: str,
        auditable_id: str,
        bind: Any = None,
        *,
        at: datetime | None = None,
        version: int | None = None,
    ) -> SnapshotResponse:
        """
        Snapshot at a timestamp, at a version, or the latest one.

        Raises ValueError if the entity has no audit records at all.
        """
        records = self.store.records_for(auditable_type, auditable_id, bind)
        if not records:
            raise ValueError(
                f"No audit records found for {auditable_type} {auditable_id}"
            )

        if version is not None:
            records = records_through_version(records, version)
        elif at is not None:
            records = records_until(records, at)

        return SnapshotResponse(
            auditable_type=auditable_type,
            auditable_id=auditable_id,
            version=records[-1].version if records else None,
            as_of=at,
            attributes=fold(records),
        )
