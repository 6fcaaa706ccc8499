"""
Execution context: the acting user and the auditing switch.

The context lives in a ContextVar, so each thread and each asyncio
task sees its own copy and never another unit of work's user or
enabled flag. Context values are immutable; the scoped helpers set
a modified copy and reset the variable on exit, which restores the
prior state on every exit path, including exceptions.

    with execution_context(current_user=operator):
        with audit_as(UserRef(id="7", type="Job")):
            ...  # audited as Job#7
        with without_auditing():
            ...  # nothing audited
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

from pydantic import BaseModel

from entity_audit.config import get_settings


class UserRef(BaseModel):
    """Identity of an acting user that is not a mapped entity."""
    id: str
    type: str

    model_config = {"frozen": True}

    @classmethod
    def parse(cls, value: str) -> "UserRef":
        """Parse "<type>:<id>", e.g. "Operator:42"."""
        user_type, sep, user_id = value.partition(":")
        if not sep or not user_type or not user_id:
            raise ValueError(f"Expected '<type>:<id>', got {value!r}")
        return cls(id=user_id, type=user_type)


class ExecutionContext(BaseModel):
    current_user: Any = None
    auditing_enabled: bool = True
    user_override_stack: tuple[Any, ...] = ()

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def acting_user(self) -> Any:
        """Last override pushed, else the current user, else None."""
        if self.user_override_stack:
            return self.user_override_stack[-1]
        return self.current_user


_context: ContextVar[ExecutionContext] = ContextVar("entity_audit_context")


def _fresh_context(current_user: Any = None) -> ExecutionContext:
    return ExecutionContext(
        current_user=current_user,
        auditing_enabled=get_settings().AUDITING_ENABLED,
    )


def current_context() -> ExecutionContext:
    context = _context.get(None)
    if context is None:
        return _fresh_context()
    return context


@contextmanager
def _scoped(context: ExecutionContext) -> Iterator[ExecutionContext]:
    token = _context.set(context)
    try:
        yield context
    finally:
        _context.reset(token)


@contextmanager
def execution_context(current_user: Any = None) -> Iterator[ExecutionContext]:
    """Open a fresh context for one unit of work (a request, a job)."""
    with _scoped(_fresh_context(current_user)) as context:
        yield context


def set_current_user(user: Any) -> None:
    """
    Set the acting user for the rest of the calling unit of work.

    Inside a scoped block the change ends with the block.
    """
    _context.set(current_context().model_copy(update={"current_user": user}))


@contextmanager
def without_auditing() -> Iterator[ExecutionContext]:
    """Suppress all auditing within the block."""
    context = current_context().model_copy(update={"auditing_enabled": False})
    with _scoped(context):
        yield context


@contextmanager
def with_auditing() -> Iterator[ExecutionContext]:
    """Re-enable auditing within the block, e.g. inside without_auditing()."""
    context = current_context().model_copy(update={"auditing_enabled": True})
    with _scoped(context):
        yield context


@contextmanager
def audit_as(user: Any) -> Iterator[ExecutionContext]:
    """Attribute every audit created within the block to `user`."""
    context = current_context()
    context = context.model_copy(
        update={"user_override_stack": context.user_override_stack + (user,)}
    )
    with _scoped(context):
        yield context
