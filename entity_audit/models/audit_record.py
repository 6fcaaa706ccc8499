"""
Audit record model.

One row per audited lifecycle event: who did what to which
entity, which attributes changed, and the entity's version
after the event. Versions are per entity and gap-free; the
unique constraint on (auditable_type, auditable_id, version)
is what keeps two concurrent writers from claiming the same one.
"""

from datetime import datetime

from sqlalchemy import (
    String, DateTime, Integer, Text, JSON,
    Enum as SAEnum, Index, UniqueConstraint, event,
)
from sqlalchemy.orm import Mapped, mapped_column

from entity_audit.models.base import Base
from entity_audit.models.enums import AuditAction


class AuditRecord(Base):
    """
    Immutable record of an audited event.

    Like ledger entries, audit records are append-only.
    The engine never updates or deletes one once written.
    """

    __tablename__ = "audits"
    __table_args__ = (
        UniqueConstraint(
            "auditable_type", "auditable_id", "version",
            name="uq_audits_auditable_version",
        ),
        Index("ix_audits_owner", "owner_type", "owner_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    auditable_id: Mapped[str] = mapped_column(String(64), nullable=False)
    auditable_type: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_type: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action: Mapped[AuditAction] = mapped_column(
        SAEnum(
            AuditAction,
            name="audit_action_enum",
            values_callable=lambda actions: [a.value for a in actions],
        ),
        nullable=False,
    )
    # attribute name -> {"before": tagged value, "after": tagged value}
    changes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AuditRecord {self.auditable_type}#{self.auditable_id} "
            f"v{self.version} {self.action.value}>"
        )


@event.listens_for(AuditRecord, "before_update")
@event.listens_for(AuditRecord, "before_delete")
def _reject_mutation(mapper, connection, target):
    raise ValueError("Audit records are immutable")
