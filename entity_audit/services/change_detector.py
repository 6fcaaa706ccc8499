"""
Change detector: the before/after diff for one lifecycle event.

create:  before is empty, so every eligible attribute holding a
         value shows up as changed from nothing.
update:  attributes whose value differs.
destroy: after is empty, so every attribute that held a value
         shows up as changed to nothing.
find:    no diff at all; the record only marks the access.

Missing keys compare as None. Comparison is by equality, so
Decimal("1.0") and Decimal("1.00") are not a change.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from entity_audit.models.enums import AuditAction
from entity_audit.schemas.audit import AttributeChange


def detect_changes(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    eligible_attributes: Iterable[str],
) -> dict[str, AttributeChange]:
    changes = {}
    for name in sorted(eligible_attributes):
        old, new = before.get(name), after.get(name)
        if old != new:
            changes[name] = AttributeChange(before=old, after=new)
    return changes


def changes_for_action(
    action: AuditAction,
    current: Mapping[str, Any],
    previous: Mapping[str, Any],
    eligible_attributes: Iterable[str],
) -> dict[str, AttributeChange]:
    """Pick the before/after sides for an action and diff them."""
    if action == AuditAction.CREATE:
        return detect_changes({}, current, eligible_attributes)
    if action == AuditAction.UPDATE:
        return detect_changes(previous, current, eligible_attributes)
    if action == AuditAction.DESTROY:
        return detect_changes(current, {}, eligible_attributes)
    return {}
