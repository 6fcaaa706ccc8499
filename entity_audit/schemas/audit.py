"""
Pydantic schemas for audit records and snapshots.

Attribute values inside `changes` are stored as tagged pairs,
{"type": "decimal", "value": "10.50"}, so that a Decimal comes
back as a Decimal and a datetime as a datetime when a snapshot
is rebuilt. Only the primitive types an attribute column can
hold are supported.
"""

import enum
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator

from entity_audit.models.enums import AuditAction


# Order matters: bool is an int, datetime is a date.
_ENCODERS = (
    ("bool", bool, lambda v: v),
    ("int", int, lambda v: v),
    ("float", float, lambda v: v),
    ("str", str, lambda v: v),
    ("decimal", Decimal, str),
    ("datetime", datetime, lambda v: v.isoformat()),
    ("date", date, lambda v: v.isoformat()),
    ("time", time, lambda v: v.isoformat()),
    ("uuid", uuid.UUID, str),
)

_DECODERS = {
    "null": lambda v: None,
    "bool": bool,
    "int": int,
    "float": float,
    "str": str,
    "decimal": Decimal,
    "datetime": datetime.fromisoformat,
    "date": date.fromisoformat,
    "time": time.fromisoformat,
    "uuid": uuid.UUID,
}


def encode_value(value: Any) -> dict[str, Any]:
    """
    Tag a python value for JSON storage.

    Enums are stored by value. Raises TypeError for anything
    that is not a supported primitive.
    """
    if isinstance(value, enum.Enum):
        value = value.value
    if value is None:
        return {"type": "null", "value": None}
    for tag, python_type, dump in _ENCODERS:
        if isinstance(value, python_type):
            return {"type": tag, "value": dump(value)}
    raise TypeError(f"Cannot audit a value of type {type(value).__name__}")


def decode_value(tagged: dict[str, Any]) -> Any:
    """Inverse of encode_value."""
    try:
        decoder = _DECODERS[tagged["type"]]
    except KeyError:
        raise ValueError(f"Unknown value tag: {tagged.get('type')!r}")
    return decoder(tagged["value"])


# --- Record Schemas ---

class AttributeChange(BaseModel):
    """The before/after pair for one changed attribute."""
    before: Any = None
    after: Any = None

    model_config = {"frozen": True}

    def to_json(self) -> dict[str, Any]:
        return {
            "before": encode_value(self.before),
            "after": encode_value(self.after),
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "AttributeChange":
        return cls(
            before=decode_value(data["before"]),
            after=decode_value(data["after"]),
        )


class AuditRecordCreate(BaseModel):
    """
    A fully assembled audit record, minus its version.

    The version is assigned by the store at append time,
    atomically with the write.
    """
    auditable_id: str
    auditable_type: str
    owner_id: str
    owner_type: str
    user_id: str | None = None
    user_type: str | None = None
    action: AuditAction
    changes: dict[str, AttributeChange] = Field(default_factory=dict)
    comment: str | None = None
    created_at: datetime

    model_config = {"frozen": True}

    @field_validator("changes", mode="before")
    @classmethod
    def decode_stored_changes(cls, v: Any) -> Any:
        # Rows read back from the database carry tagged JSON.
        if not isinstance(v, dict):
            return v
        decoded = {}
        for name, change in v.items():
            if isinstance(change, dict) and isinstance(change.get("before"), dict):
                change = AttributeChange.from_json(change)
            decoded[name] = change
        return decoded

    def changes_json(self) -> dict[str, Any]:
        return {name: c.to_json() for name, c in self.changes.items()}


class AuditRecordResponse(AuditRecordCreate):
    """A persisted audit record."""
    id: int | None = None
    version: int = Field(gt=0)

    model_config = {"frozen": True, "from_attributes": True}


class SnapshotResponse(BaseModel):
    """Reconstructed attribute state of an entity."""
    auditable_type: str
    auditable_id: str
    version: int | None
    as_of: datetime | None
    attributes: dict[str, Any]
