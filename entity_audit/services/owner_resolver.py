"""
Owner resolver: walks an association chain to the record an
entity's audits are filed under.

With on=("customer", "company") an Account's audits belong to
account.customer.company. The chain is checked against the
mapped relationships when the policy is registered, so at audit
time the only thing that can go wrong is a link being empty.
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.exc import NoInspectionAvailable

from entity_audit.errors import BrokenOwnerChain, InvalidPolicy
from entity_audit.services.entity_reflection import (
    entity_identity,
    entity_type_name,
)


def validate_owner_chain(
    entity_type: type, owner_chain: Sequence[str]
) -> tuple[type, ...]:
    """
    Check every link of a chain ahead of time.

    Each link must name a scalar (many-to-one or one-to-one)
    relationship on the class the previous link leads to.
    Returns the classes visited, owner last.
    """
    visited = []
    current = entity_type
    for link in owner_chain:
        try:
            mapper = inspect(current)
        except NoInspectionAvailable:
            raise InvalidPolicy(f"{entity_type_name(current)} is not a mapped class")

        if link not in mapper.relationships:
            raise InvalidPolicy(
                f"{entity_type_name(current)} has no relationship '{link}'"
            )
        relationship = mapper.relationships[link]
        if relationship.uselist:
            raise InvalidPolicy(
                f"{entity_type_name(current)}.{link} is a collection "
                f"and cannot lead to a single owner"
            )
        current = relationship.mapper.class_
        visited.append(current)
    return tuple(visited)


def resolve_owner(entity: Any, owner_chain: Sequence[str]) -> tuple[str, str]:
    """
    Return (owner_id, owner_type) for an entity.

    An empty chain makes the entity its own owner. Raises
    BrokenOwnerChain when a link yields no associated entity.
    """
    owner = entity
    for link in owner_chain:
        owner = getattr(owner, link)
        if owner is None:
            raise BrokenOwnerChain(
                entity_type_name(entity), tuple(owner_chain), link
            )
    return entity_identity(owner)
