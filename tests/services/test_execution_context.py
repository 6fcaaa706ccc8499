"""
Tests for the execution context: acting user, overrides and
the auditing switch, and their isolation between concurrent
units of work.
"""

import asyncio
import threading

import pytest

from entity_audit.services.execution_context import (
    UserRef,
    audit_as,
    current_context,
    execution_context,
    set_current_user,
    with_auditing,
    without_auditing,
)

ALICE = UserRef(id="1", type="Operator")
BOB = UserRef(id="2", type="Operator")
JOB = UserRef(id="nightly", type="Job")


class TestUserRef:

    def test_parse(self):
        assert UserRef.parse("Operator:42") == UserRef(id="42", type="Operator")

    @pytest.mark.parametrize("value", ["Operator", ":42", "Operator:", ""])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            UserRef.parse(value)


class TestActingUser:

    def test_defaults(self):
        context = current_context()
        assert context.acting_user is None
        assert context.auditing_enabled is True

    def test_current_user(self):
        with execution_context(current_user=ALICE):
            assert current_context().acting_user == ALICE
        assert current_context().acting_user is None

    def test_set_current_user_ends_with_block(self):
        with execution_context():
            set_current_user(BOB)
            assert current_context().current_user == BOB
        assert current_context().current_user is None

    def test_innermost_override_wins(self):
        with execution_context(current_user=ALICE):
            with audit_as(BOB):
                with audit_as(JOB):
                    assert current_context().acting_user == JOB
                assert current_context().acting_user == BOB
            assert current_context().acting_user == ALICE

    def test_override_restored_on_exception(self):
        with execution_context(current_user=ALICE):
            with pytest.raises(RuntimeError):
                with audit_as(BOB):
                    raise RuntimeError("boom")
            assert current_context().acting_user == ALICE
            assert current_context().user_override_stack == ()


class TestAuditingSwitch:

    def test_without_auditing(self):
        with without_auditing():
            assert current_context().auditing_enabled is False
        assert current_context().auditing_enabled is True

    def test_with_auditing_inside_without(self):
        with without_auditing():
            with with_auditing():
                assert current_context().auditing_enabled is True
            assert current_context().auditing_enabled is False

    def test_switch_restored_on_exception(self):
        with pytest.raises(ValueError):
            with without_auditing():
                raise ValueError("boom")
        assert current_context().auditing_enabled is True

    def test_usable_as_decorator(self):
        @without_auditing()
        def job():
            return current_context().auditing_enabled

        assert job() is False
        assert job() is False
        assert current_context().auditing_enabled is True


class TestIsolation:

    def test_threads_do_not_share_context(self):
        ready = threading.Barrier(2)
        seen = {}

        def worker(name, user, enabled):
            switch = with_auditing if enabled else without_auditing
            with execution_context(current_user=user), switch():
                ready.wait()
                context = current_context()
                seen[name] = (context.acting_user, context.auditing_enabled)

        threads = [
            threading.Thread(target=worker, args=("a", ALICE, True)),
            threading.Thread(target=worker, args=("b", BOB, False)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert seen == {"a": (ALICE, True), "b": (BOB, False)}

    def test_asyncio_tasks_do_not_share_context(self):
        async def task(user, override=None):
            with execution_context(current_user=user):
                await asyncio.sleep(0)
                if override is not None:
                    set_current_user(override)
                await asyncio.sleep(0)
                return current_context().acting_user

        async def main():
            return await asyncio.gather(task(ALICE), task(BOB, override=JOB))

        assert asyncio.run(main()) == [ALICE, JOB]
