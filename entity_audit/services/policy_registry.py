"""
Policy registry: which entity types and actions get audited, and how.

A policy is keyed by (entity class, action). Registering the same
pair again replaces the earlier policy outright; options are never
merged. Everything that can be checked without a live entity is
checked here, so a bad declaration fails at startup rather than on
the first audited write.
"""

from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel

from entity_audit.errors import InvalidPolicy, PolicyConflict
from entity_audit.models.audit_record import AuditRecord
from entity_audit.models.enums import AuditAction
from entity_audit.observability import get_logger
from entity_audit.services.entity_reflection import entity_type_name, is_mapped
from entity_audit.services.owner_resolver import validate_owner_chain

logger = get_logger(__name__)

MessageFn = Callable[[Any, Any, AuditAction], str]


class AuditPolicy(BaseModel):
    """How one action on one entity type is audited."""
    entity_type: type
    action: AuditAction
    included_attributes: frozenset[str] = frozenset()
    excluded_attributes: frozenset[str] = frozenset()
    owner_chain: tuple[str, ...] = ()
    message_fn: MessageFn | None = None
    fail_closed: bool = False

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def effectively_fail_closed(self) -> bool:
        """Reads are never failed because their audit could not be written."""
        return self.fail_closed and self.action.is_mutation


def _names(value: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _parse_actions(
    entity_name: str, actions: Iterable[AuditAction | str]
) -> list[AuditAction]:
    parsed = []
    for action in actions:
        try:
            parsed.append(AuditAction(action))
        except ValueError:
            raise InvalidPolicy(f"{entity_name}: unknown action {action!r}")
    if not parsed:
        raise InvalidPolicy(f"{entity_name}: at least one action is required")
    return parsed


class PolicyRegistry:

    def __init__(self):
        self._policies: dict[tuple[type, AuditAction], AuditPolicy] = {}

    def register(
        self,
        entity_type: type,
        actions: Iterable[AuditAction | str],
        *,
        only: str | Iterable[str] = (),
        except_: str | Iterable[str] = (),
        on: str | Iterable[str] = (),
        message: MessageFn | None = None,
        fail_closed: bool = False,
    ) -> list[AuditPolicy]:
        """
        Register a policy for each of the given actions.

        Raises InvalidPolicy for unknown actions, unmapped classes or
        an owner chain that does not follow scalar relationships, and
        PolicyConflict when both `only` and `except_` are given.
        """
        name = entity_type_name(entity_type)
        parsed = _parse_actions(name, _names(actions))

        if not isinstance(entity_type, type) or not is_mapped(entity_type):
            raise InvalidPolicy(f"{name} is not a mapped class")
        if issubclass(entity_type, AuditRecord):
            raise InvalidPolicy("Audit records cannot themselves be audited")

        included = frozenset(_names(only))
        excluded = frozenset(_names(except_))
        if included and excluded:
            raise PolicyConflict(name, ",".join(a.value for a in parsed))

        owner_chain = _names(on)
        validate_owner_chain(entity_type, owner_chain)

        if fail_closed and AuditAction.FIND in parsed:
            logger.warning(
                "fail_closed_ignored_for_find",
                entity_type=name,
                detail="find audits are always fail-open",
            )

        policies = []
        for action in parsed:
            policy = AuditPolicy(
                entity_type=entity_type,
                action=action,
                included_attributes=included,
                excluded_attributes=excluded,
                owner_chain=owner_chain,
                message_fn=message,
                fail_closed=fail_closed,
            )
            if (entity_type, action) in self._policies:
                logger.info("policy_replaced", entity_type=name, action=action.value)
            self._policies[(entity_type, action)] = policy
            policies.append(policy)

        logger.info(
            "policy_registered",
            entity_type=name,
            actions=[a.value for a in parsed],
            fail_closed=fail_closed,
        )
        return policies

    def lookup(
        self, entity_type: type, action: AuditAction | str
    ) -> AuditPolicy | None:
        """
        Return the policy for (entity_type, action), or None.

        Subclasses of an audited class share its policies unless
        they register their own.
        """
        action = AuditAction(action)
        for cls in entity_type.__mro__:
            policy = self._policies.get((cls, action))
            if policy is not None:
                return policy
        return None

    def policies(self) -> list[AuditPolicy]:
        return list(self._policies.values())

    def clear(self) -> None:
        self._policies.clear()
