"""Audit engine services."""

from entity_audit.services.policy_registry import AuditPolicy, PolicyRegistry
from entity_audit.services.audit_store import (
    AuditStore,
    InMemoryAuditStore,
    SqlAlchemyAuditStore,
)
from entity_audit.services.audit_interceptor import AuditInterceptor
from entity_audit.services.version_reconstructor import VersionReconstructor
from entity_audit.services.auditor import Auditor, default_auditor

__all__ = [
    "AuditPolicy",
    "PolicyRegistry",
    "AuditStore",
    "InMemoryAuditStore",
    "SqlAlchemyAuditStore",
    "AuditInterceptor",
    "VersionReconstructor",
    "Auditor",
    "default_auditor",
]
