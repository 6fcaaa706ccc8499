"""
Tests for policy registration and lookup.
"""

import pytest
from structlog.testing import capture_logs

from domain import Account, Book, Customer
from entity_audit.errors import InvalidPolicy, PolicyConflict
from entity_audit.models.audit_record import AuditRecord
from entity_audit.models.enums import AuditAction
from entity_audit.services.policy_registry import PolicyRegistry


class NotMapped:
    pass


class SpecialBook(Book):
    """Single-table subclass sharing Book's policies."""


class TestRegister:

    def test_one_policy_per_action(self):
        registry = PolicyRegistry()
        policies = registry.register(Book, ["create", "update"], except_="isbn")

        assert [p.action for p in policies] == [AuditAction.CREATE, AuditAction.UPDATE]
        assert all(p.excluded_attributes == {"isbn"} for p in policies)
        assert registry.lookup(Book, AuditAction.DESTROY) is None

    def test_only_and_except_together_conflict(self):
        registry = PolicyRegistry()
        with pytest.raises(PolicyConflict):
            registry.register(Book, ["update"], only="title", except_="isbn")
        assert registry.policies() == []

    def test_conflict_is_an_invalid_policy(self):
        with pytest.raises(InvalidPolicy):
            PolicyRegistry().register(Book, ["create"], only="title", except_="isbn")

    def test_unknown_action_rejected(self):
        with pytest.raises(InvalidPolicy, match="unknown action"):
            PolicyRegistry().register(Book, ["publish"])

    def test_no_actions_rejected(self):
        with pytest.raises(InvalidPolicy, match="at least one action"):
            PolicyRegistry().register(Book, [])

    def test_unmapped_class_rejected(self):
        with pytest.raises(InvalidPolicy, match="not a mapped class"):
            PolicyRegistry().register(NotMapped, ["create"])

    def test_audit_records_cannot_be_audited(self):
        with pytest.raises(InvalidPolicy):
            PolicyRegistry().register(AuditRecord, ["create"])

    def test_invalid_owner_chain_rejected_at_registration(self):
        with pytest.raises(InvalidPolicy, match="no relationship 'bank'"):
            PolicyRegistry().register(Account, ["update"], on=("customer", "bank"))

    def test_collection_link_rejected(self):
        with pytest.raises(InvalidPolicy, match="collection"):
            PolicyRegistry().register(Customer, ["update"], on="accounts")


class TestReplacement:

    def test_last_registration_wins_without_merging(self):
        registry = PolicyRegistry()
        registry.register(Book, ["update"], only=("title",))
        registry.register(Book, ["update"], except_=("isbn",))

        policy = registry.lookup(Book, "update")
        assert policy.included_attributes == frozenset()
        assert policy.excluded_attributes == {"isbn"}
        assert len(registry.policies()) == 1

    def test_replacement_is_logged(self):
        registry = PolicyRegistry()
        registry.register(Book, ["update"])
        with capture_logs() as logs:
            registry.register(Book, ["update"], only="title")

        assert any(log["event"] == "policy_replaced" for log in logs)


class TestFailMode:

    def test_fail_closed_find_is_still_fail_open(self):
        registry = PolicyRegistry()
        with capture_logs() as logs:
            registry.register(Book, ["find", "update"], fail_closed=True)

        assert not registry.lookup(Book, "find").effectively_fail_closed
        assert registry.lookup(Book, "update").effectively_fail_closed
        warnings = [log for log in logs if log["log_level"] == "warning"]
        assert warnings[0]["event"] == "fail_closed_ignored_for_find"

    def test_default_is_fail_open(self):
        registry = PolicyRegistry()
        registry.register(Book, ["destroy"])
        assert not registry.lookup(Book, "destroy").effectively_fail_closed


def test_subclass_inherits_policy():
    registry = PolicyRegistry()
    registry.register(Book, ["update"], only="title")

    assert registry.lookup(SpecialBook, "update").included_attributes == {"title"}
