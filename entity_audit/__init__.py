"""
Entity Audit: records who changed what, when and why on SQLAlchemy
models, and rebuilds a model's attributes as of any past instant.

    from entity_audit import audit, audit_as, attributes_at

    audit(Book, "create", "update", "destroy", except_="isbn")

    with audit_as(editor):
        book.title = "Second Edition"
        db.commit()

    attributes_at(db, book, last_week)
"""

from entity_audit.errors import (
    AuditError,
    BrokenOwnerChain,
    InvalidPolicy,
    PersistenceFailure,
    PolicyConflict,
)
from entity_audit.models.enums import AuditAction
from entity_audit.services.auditor import Auditor, default_auditor
from entity_audit.services.execution_context import (
    UserRef,
    audit_as,
    execution_context,
    set_current_user,
    with_auditing,
    without_auditing,
)

audit = default_auditor.audit
audit_strict = default_auditor.audit_strict
records_for = default_auditor.records_for
latest_snapshot = default_auditor.latest_snapshot
attributes_at = default_auditor.attributes_at
attributes_at_version = default_auditor.attributes_at_version

__all__ = [
    "AuditAction",
    "AuditError",
    "Auditor",
    "BrokenOwnerChain",
    "InvalidPolicy",
    "PersistenceFailure",
    "PolicyConflict",
    "UserRef",
    "attributes_at",
    "attributes_at_version",
    "audit",
    "audit_as",
    "audit_strict",
    "default_auditor",
    "execution_context",
    "latest_snapshot",
    "records_for",
    "set_current_user",
    "with_auditing",
    "without_auditing",
]
