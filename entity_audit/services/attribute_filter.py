"""
Attribute filter: which of an entity's attributes a policy audits.
"""

from collections.abc import Iterable

from entity_audit.services.policy_registry import AuditPolicy


def filter_attributes(
    policy: AuditPolicy, candidate_attributes: Iterable[str]
) -> set[str]:
    """
    Return the subset of candidate attributes eligible for auditing.

    `only` wins when set; otherwise everything but `except`.
    The registry guarantees the two are never both set.
    """
    candidates = set(candidate_attributes)
    if policy.included_attributes:
        return candidates & policy.included_attributes
    return candidates - policy.excluded_attributes
