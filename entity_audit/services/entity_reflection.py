"""
Entity reflection via SQLAlchemy's inspection API.

This is the only module that knows how a mapped entity exposes
its identity, its column attributes and their previous values.
Everything else in the engine works with plain names and dicts.
"""

from typing import Any

from sqlalchemy import inspect, select
from sqlalchemy.exc import NoInspectionAvailable

from entity_audit.services.execution_context import UserRef


def entity_type_name(entity_or_type: Any) -> str:
    cls = entity_or_type if isinstance(entity_or_type, type) else type(entity_or_type)
    return cls.__name__


def is_mapped(obj: Any) -> bool:
    try:
        inspect(obj)
    except NoInspectionAvailable:
        return False
    return True


def entity_identity(entity: Any) -> tuple[str, str]:
    """
    Return (id, type name) for a mapped instance.

    Composite primary keys are joined with commas. The key is read
    from the instance's attributes rather than the identity map,
    so it is already available inside after_insert.
    """
    mapper = inspect(type(entity))
    key = mapper.primary_key_from_instance(entity)
    return ",".join(str(part) for part in key), entity_type_name(entity)


def attribute_names(entity: Any) -> list[str]:
    """Column attributes of the entity, primary keys excluded."""
    mapper = inspect(type(entity))
    primary_keys = {
        mapper.get_property_by_column(column).key
        for column in mapper.primary_key
    }
    return [
        attr.key for attr in mapper.column_attrs
        if attr.key not in primary_keys
    ]


def attribute_values(entity: Any, names) -> dict[str, Any]:
    return {name: getattr(entity, name) for name in names}


def fetch_unloaded_previous_values(entity: Any, connection: Any) -> dict[str, Any]:
    """
    Read the stored values of changed attributes whose old value
    was never loaded (typically expired by a commit, then assigned).

    Only meaningful before the UPDATE is emitted.
    """
    state = inspect(entity)
    mapper = state.mapper
    unloaded = []
    for attr in mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.added and not history.deleted:
            unloaded.append(attr)
    if not unloaded or state.identity is None:
        return {}

    criteria = [
        column == value
        for column, value in zip(mapper.primary_key, state.identity)
    ]
    row = connection.execute(
        select(*[attr.columns[0] for attr in unloaded]).where(*criteria)
    ).first()
    if row is None:
        return {}
    return {attr.key: value for attr, value in zip(unloaded, row)}


def previous_values(
    entity: Any, names, fetched: dict[str, Any] | None = None
) -> dict[str, Any]:
    """
    Attribute values as they were before the pending flush.

    Reads attribute history, which SQLAlchemy keeps until the flush
    completes, falling back to `fetched` (see
    fetch_unloaded_previous_values) for old values that were never
    loaded. Without either, a changed attribute's old value is None.
    """
    fetched = fetched or {}
    state = inspect(entity)
    values = {}
    for name in names:
        history = state.attrs[name].history
        if history.has_changes():
            if history.deleted:
                values[name] = history.deleted[0]
            else:
                values[name] = fetched.get(name)
        else:
            values[name] = getattr(entity, name)
    return values


def has_column_changes(entity: Any) -> bool:
    state = inspect(entity)
    return any(
        state.attrs[attr.key].history.has_changes()
        for attr in state.mapper.column_attrs
    )


def identify_user(user: Any) -> tuple[str | None, str | None]:
    """Return (user_id, user_type) for an acting user, or (None, None)."""
    if user is None:
        return None, None
    if isinstance(user, UserRef):
        return user.id, user.type
    if is_mapped(user):
        return entity_identity(user)

    user_id = getattr(user, "id", None)
    if user_id is None:
        raise TypeError(
            f"Cannot identify acting user of type {type(user).__name__}"
        )
    return str(user_id), entity_type_name(user)
