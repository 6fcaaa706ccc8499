"""
Auditor: registration, interception and queries behind one object.

    auditor.audit(Book, "create", "update", except_=("isbn",))
    auditor.audit_strict(Account, "update", on="customer")

    auditor.records_for(db, book)
    auditor.attributes_at(db, book, yesterday)

Declaring a policy installs the event listeners, so nothing else is
needed to start auditing.
"""

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from entity_audit.models.enums import AuditAction
from entity_audit.schemas.audit import AuditRecordResponse
from entity_audit.services.audit_interceptor import AuditInterceptor
from entity_audit.services.audit_store import AuditStore, SqlAlchemyAuditStore
from entity_audit.services.entity_reflection import entity_identity
from entity_audit.services.policy_registry import (
    AuditPolicy,
    MessageFn,
    PolicyRegistry,
)
from entity_audit.services.version_reconstructor import VersionReconstructor


class Auditor:

    def __init__(
        self,
        registry: PolicyRegistry | None = None,
        store: AuditStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.registry = registry or PolicyRegistry()
        self.store = store or SqlAlchemyAuditStore()
        self.interceptor = AuditInterceptor(self.registry, self.store, clock=clock)
        self.reconstructor = VersionReconstructor(self.store)

    def install(self) -> None:
        self.interceptor.install()

    def uninstall(self) -> None:
        self.interceptor.uninstall()

    # --- Registration ---

    def audit(
        self,
        entity_type: type,
        *actions: AuditAction | str,
        only: str | Iterable[str] = (),
        except_: str | Iterable[str] = (),
        on: str | Iterable[str] = (),
        message: MessageFn | None = None,
    ) -> list[AuditPolicy]:
        """Audit the given actions; failures to record are logged and dropped."""
        return self._register(entity_type, actions, only, except_, on, message, False)

    def audit_strict(
        self,
        entity_type: type,
        *actions: AuditAction | str,
        only: str | Iterable[str] = (),
        except_: str | Iterable[str] = (),
        on: str | Iterable[str] = (),
        message: MessageFn | None = None,
    ) -> list[AuditPolicy]:
        """Audit the given actions; a failure to record fails the mutation."""
        return self._register(entity_type, actions, only, except_, on, message, True)

    def _register(self, entity_type, actions, only, except_, on, message, fail_closed):
        policies = self.registry.register(
            entity_type,
            actions,
            only=only,
            except_=except_,
            on=on,
            message=message,
            fail_closed=fail_closed,
        )
        self.install()
        return policies

    # --- Queries ---

    def records_for(self, db: Session, entity: Any) -> list[AuditRecordResponse]:
        auditable_id, auditable_type = entity_identity(entity)
        return self.store.records_for(auditable_type, auditable_id, db)

    def latest_snapshot(self, db: Session, entity: Any) -> dict[str, Any]:
        auditable_id, auditable_type = entity_identity(entity)
        return self.reconstructor.latest_snapshot(auditable_type, auditable_id, db)

    def attributes_at(
        self, db: Session, entity: Any, timestamp: datetime
    ) -> dict[str, Any]:
        auditable_id, auditable_type = entity_identity(entity)
        return self.reconstructor.attributes_at(
            auditable_type, auditable_id, timestamp, db
        )

    def attributes_at_version(
        self, db: Session, entity: Any, version: int
    ) -> dict[str, Any]:
        auditable_id, auditable_type = entity_identity(entity)
        return self.reconstructor.attributes_at_version(
            auditable_type, auditable_id, version, db
        )


default_auditor = Auditor()
