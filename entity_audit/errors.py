"""
Audit error kinds.

Registration errors (InvalidPolicy, PolicyConflict) are raised the
moment a policy is declared. BrokenOwnerChain and PersistenceFailure
happen while an event is being audited and are subject to the
policy's fail mode: swallowed and logged when fail-open, propagated
to the triggering create/update/destroy when fail-closed.
"""


class AuditError(Exception):
    """Base class for everything the audit engine raises."""


class InvalidPolicy(AuditError):
    """A policy declaration that can never be honored."""


class PolicyConflict(InvalidPolicy):
    """Both `only` and `except` were given for the same entity and action."""

    def __init__(self, entity_type: str, action: str):
        self.entity_type = entity_type
        self.action = action
        super().__init__(
            f"{entity_type}/{action}: 'only' and 'except' are mutually exclusive"
        )


class BrokenOwnerChain(AuditError):
    """An association in the owner chain yielded nothing."""

    def __init__(self, entity_type: str, chain: tuple[str, ...], link: str):
        self.entity_type = entity_type
        self.chain = chain
        self.link = link
        super().__init__(
            f"Owner chain {'.'.join(chain)} of {entity_type} "
            f"is broken at '{link}'"
        )


class PersistenceFailure(AuditError):
    """The audit store rejected an append or could not confirm it."""
