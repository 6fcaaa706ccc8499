"""
Audit interceptor: the control point around every lifecycle event.

Listens to SQLAlchemy's mapper events (after_insert, after_update,
before_delete) and the instance load event, which stand in for
create, update, destroy and find. Each event is handled inline,
inside the flush and on the flush's own connection, so the audit
record commits or rolls back together with the mutation it
describes. Find records are the exception: they commit on their own
connection, since a read is often never committed.

Per event:
1. auditing disabled in the execution context -> nothing happens
2. no policy for (entity type, action) -> nothing happens
3. acting user = innermost audit_as() override, else current user
4. filter the entity's attributes through the policy
5. diff before/after (no diff for find)
6. resolve the owner through the policy's association chain
7. build the comment with the policy's message callback
8-9. append to the store, which assigns the next version
10. on BrokenOwnerChain or PersistenceFailure (which also covers a
    failing message callback or an unidentifiable user): re-raise
    when the policy is fail-closed (mutations only), otherwise log
    and go on

The execution context consulted is the one in effect when the
session flushes, not when the attribute was assigned.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapper

from entity_audit.config import get_settings
from entity_audit.errors import BrokenOwnerChain, PersistenceFailure
from entity_audit.models.enums import AuditAction
from entity_audit.observability import get_logger
from entity_audit.schemas.audit import AuditRecordCreate, AuditRecordResponse
from entity_audit.services.attribute_filter import filter_attributes
from entity_audit.services.audit_store import AuditStore
from entity_audit.services.change_detector import changes_for_action
from entity_audit.services.entity_reflection import (
    attribute_names,
    attribute_values,
    entity_identity,
    fetch_unloaded_previous_values,
    has_column_changes,
    identify_user,
    previous_values,
)
from entity_audit.services.execution_context import current_context
from entity_audit.services.owner_resolver import resolve_owner
from entity_audit.services.policy_registry import AuditPolicy, PolicyRegistry

logger = get_logger(__name__)

# InstanceState.info key carrying previous values from before_update.
PREVIOUS_VALUES_KEY = "entity_audit.previous_values"


def utc_now() -> datetime:
    """Current UTC time, naive, which is how audit timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuditInterceptor:

    def __init__(
        self,
        registry: PolicyRegistry,
        store: AuditStore,
        clock: Callable[[], datetime] | None = None,
        ignored_attributes: frozenset[str] | None = None,
    ):
        self.registry = registry
        self.store = store
        self.clock = clock or utc_now
        if ignored_attributes is None:
            ignored_attributes = get_settings().AUDIT_IGNORED_ATTRIBUTES
        self.ignored_attributes = frozenset(ignored_attributes)
        self._installed = False

    # --- Event wiring ---

    def _listeners(self):
        return (
            ("after_insert", self._after_insert),
            ("before_update", self._before_update),
            ("after_update", self._after_update),
            ("before_delete", self._before_delete),
            ("load", self._after_find),
        )

    def install(self) -> None:
        """Listen to lifecycle events of every mapped class."""
        if self._installed:
            return
        for name, listener in self._listeners():
            event.listen(Mapper, name, listener)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        for name, listener in self._listeners():
            event.remove(Mapper, name, listener)
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def _wants(self, target, action: AuditAction) -> bool:
        return (
            current_context().auditing_enabled
            and self.registry.lookup(type(target), action) is not None
        )

    def _after_insert(self, mapper, connection, target):
        self.intercept(target, AuditAction.CREATE, connection)

    def _before_update(self, mapper, connection, target):
        # Old values the session never loaded are still in the row.
        if not self._wants(target, AuditAction.UPDATE):
            return
        inspect(target).info[PREVIOUS_VALUES_KEY] = (
            fetch_unloaded_previous_values(target, connection)
        )

    def _after_update(self, mapper, connection, target):
        fetched = inspect(target).info.pop(PREVIOUS_VALUES_KEY, None)
        # after_update also fires for objects that were only marked
        # dirty; no column changed means no UPDATE was emitted.
        if not has_column_changes(target):
            return
        self.intercept(target, AuditAction.UPDATE, connection, fetched)

    def _before_delete(self, mapper, connection, target):
        self.intercept(target, AuditAction.DESTROY, connection)

    def _after_find(self, target, context):
        if not self._wants(target, AuditAction.FIND):
            return
        # Readers rarely commit, so a find record gets a transaction of
        # its own on a separate connection.
        bind = context.session.get_bind(mapper=inspect(type(target)))
        try:
            with bind.engine.begin() as connection:
                self.intercept(target, AuditAction.FIND, connection)
        except SQLAlchemyError as e:
            self._log_dropped(target, AuditAction.FIND, e)

    # --- Auditing ---

    def intercept(
        self,
        entity: Any,
        action: AuditAction,
        bind: Any = None,
        fetched: dict[str, Any] | None = None,
    ) -> AuditRecordResponse | None:
        """
        Audit one lifecycle event of one entity.

        Returns the stored record, or None when nothing was audited.
        """
        context = current_context()
        if not context.auditing_enabled:
            return None

        policy = self.registry.lookup(type(entity), action)
        if policy is None:
            return None

        try:
            record = self.build_record(
                entity, action, policy, context.acting_user, fetched
            )
            stored = self.store.append(record, bind)
        except (BrokenOwnerChain, PersistenceFailure) as e:
            if policy.effectively_fail_closed:
                auditable_id, auditable_type = entity_identity(entity)
                logger.error(
                    "audit_failed",
                    auditable_type=auditable_type,
                    auditable_id=auditable_id,
                    action=action.value,
                    error=str(e),
                )
                raise
            self._log_dropped(entity, action, e)
            return None

        logger.debug(
            "audit_recorded",
            auditable_type=stored.auditable_type,
            auditable_id=stored.auditable_id,
            action=action.value,
            version=stored.version,
            changed=sorted(stored.changes),
        )
        return stored

    def _log_dropped(self, entity: Any, action: AuditAction, error: Exception) -> None:
        auditable_id, auditable_type = entity_identity(entity)
        logger.warning(
            "audit_dropped",
            auditable_type=auditable_type,
            auditable_id=auditable_id,
            action=action.value,
            error=str(error),
        )

    def build_record(
        self,
        entity: Any,
        action: AuditAction,
        policy: AuditPolicy,
        acting_user: Any,
        fetched: dict[str, Any] | None = None,
    ) -> AuditRecordCreate:
        """
        Assemble an audit record for an event.

        Raises BrokenOwnerChain, or PersistenceFailure when the message
        callback fails or the acting user cannot be identified.
        """
        candidates = [
            name for name in attribute_names(entity)
            if name not in self.ignored_attributes
        ]
        eligible = filter_attributes(policy, candidates)

        if action == AuditAction.FIND:
            changes = {}
        else:
            current = attribute_values(entity, eligible)
            previous = (
                previous_values(entity, eligible, fetched)
                if action == AuditAction.UPDATE else {}
            )
            changes = changes_for_action(action, current, previous, eligible)

        owner_id, owner_type = resolve_owner(entity, policy.owner_chain)

        comment = None
        if policy.message_fn is not None:
            try:
                comment = policy.message_fn(entity, acting_user, action)
            except Exception as e:
                raise PersistenceFailure(f"Audit message callback failed: {e}") from e

        auditable_id, auditable_type = entity_identity(entity)
        try:
            user_id, user_type = identify_user(acting_user)
        except TypeError as e:
            raise PersistenceFailure(str(e)) from e

        return AuditRecordCreate(
            auditable_id=auditable_id,
            auditable_type=auditable_type,
            owner_id=owner_id,
            owner_type=owner_type,
            user_id=user_id,
            user_type=user_type,
            action=action,
            changes=changes,
            comment=comment,
            created_at=self.clock(),
        )
