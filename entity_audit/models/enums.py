"""
Shared enumerations for database models.
"""

import enum


class AuditAction(str, enum.Enum):
    """Lifecycle events an audit policy can be attached to."""
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
    FIND = "find"

    @property
    def is_mutation(self) -> bool:
        return self is not AuditAction.FIND
