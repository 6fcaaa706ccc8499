"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from entity_audit.models.base import Base
from entity_audit.models.enums import AuditAction
from entity_audit.models.audit_record import AuditRecord

__all__ = [
    "Base",
    "AuditAction",
    "AuditRecord",
]
