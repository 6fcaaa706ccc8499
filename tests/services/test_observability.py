"""
Tests for log redaction.
"""

from entity_audit.observability import Redactor


def redact(event_dict):
    return Redactor()(None, "info", event_dict)


def test_sensitive_keys_masked():
    result = redact({"event": "login", "password": "hunter2", "SSN": "123"})
    assert result == {"event": "login", "password": "[REDACTED]", "SSN": "[REDACTED]"}


def test_nested_keys_masked():
    result = redact({"event": "audit_recorded", "changes": {"ssn": "123", "email": "a@b.c"}})
    assert result["changes"] == {"ssn": "[REDACTED]", "email": "a@b.c"}


def test_other_keys_untouched():
    event = {"event": "audit_recorded", "auditable_type": "Book", "version": 3}
    assert redact(event) == event
