from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from models.login_attempt import LoginAttempt
from security.attempt_store import AttemptStore
from security.exceptions import StorageUnavailable


def test_record_sets_fields(store, clock):
    attempt = store.record("10.0.0.1", "user@x.com")

    assert attempt.id is not None
    assert attempt.client_address == "10.0.0.1"
    assert attempt.account_identifier == "user@x.com"
    assert attempt.occurred_at == clock.now
    assert attempt.blocked is False


def test_record_without_identifier(store):
    attempt = store.record("10.0.0.1")
    assert attempt.account_identifier is None


def test_count_by_address_and_account_matches_identifier(store):
    store.record("10.0.0.1", "a@x.com")
    store.record("10.0.0.1", "a@x.com")
    store.record("10.0.0.1", "b@x.com")
    store.record("10.0.0.2", "a@x.com")

    assert store.count_by_address_and_account("10.0.0.1", "a@x.com", 600) == 2
    assert store.count_by_address_and_account("10.0.0.1", "b@x.com", 600) == 1


def test_count_without_identifier_ignores_identifier_column(store):
    store.record("10.0.0.1", "a@x.com")
    store.record("10.0.0.1", None)
    store.record("10.0.0.1", "b@x.com")

    # not "identifier IS NULL": every record from the address counts
    assert store.count_by_address_and_account("10.0.0.1", None, 600) == 3


def test_count_by_address_and_by_account(store):
    store.record("10.0.0.1", "a@x.com")
    store.record("10.0.0.2", "a@x.com")
    store.record("10.0.0.1", "b@x.com")

    assert store.count_by_address("10.0.0.1", 600) == 2
    assert store.count_by_account("a@x.com", 600) == 2
    assert store.count_by_account("nobody@x.com", 600) == 0


def test_attempts_older_than_window_do_not_count(store, clock):
    store.record("10.0.0.1", "a@x.com")
    clock.advance(601)
    store.record("10.0.0.1", "a@x.com")

    assert store.count_by_address_and_account("10.0.0.1", "a@x.com", 600) == 1
    assert store.count_by_address("10.0.0.1", 600) == 1
    assert store.count_by_account("a@x.com", 600) == 1


def test_is_blocked_at_threshold(store):
    store.record("10.0.0.1", "a@x.com")
    store.record("10.0.0.1", "a@x.com")
    assert store.is_blocked("10.0.0.1", "a@x.com", 3, 600) is False

    store.record("10.0.0.1", "a@x.com")
    assert store.is_blocked("10.0.0.1", "a@x.com", 3, 600) is True


def test_list_recent_is_newest_first(store, clock):
    first = store.record("10.0.0.1", "a@x.com")
    clock.advance(10)
    second = store.record("10.0.0.1", "a@x.com")
    clock.advance(10)
    third = store.record("10.0.0.1", "a@x.com")

    attempts = store.list_recent("10.0.0.1", "a@x.com", 600)
    assert [a.id for a in attempts] == [third.id, second.id, first.id]


def test_list_recent_filters_can_be_widened(store):
    store.record("10.0.0.1", "a@x.com")
    store.record("10.0.0.2", "a@x.com")
    store.record("10.0.0.1", "b@x.com")

    assert len(store.list_recent("", "a@x.com", 600)) == 2
    assert len(store.list_recent("10.0.0.1", None, 600)) == 2
    assert len(store.list_recent("", None, 600)) == 3


def test_mark_blocked_only_touches_flag(store, clock):
    attempt = store.record("10.0.0.1", "a@x.com")
    occurred = attempt.occurred_at

    store.mark_blocked(attempt)

    reloaded = store.session.get(LoginAttempt, attempt.id)
    assert reloaded.blocked is True
    assert reloaded.occurred_at == occurred
    # the flag is advisory, counting is unchanged
    assert store.count_by_address("10.0.0.1", 600) == 1


def test_cleanup_removes_only_records_older_than_watch_period(store, clock):
    store.record("10.0.0.1", "old@x.com")
    clock.advance(100)
    store.record("10.0.0.1", "edge@x.com")
    clock.advance(3600)
    store.record("10.0.0.1", "new@x.com")

    # now - 3600 is exactly the "edge" record, which must survive
    deleted = store.cleanup(3600)

    assert deleted == 1
    remaining = {a.account_identifier for a in store.list_recent("", None, 10 ** 6)}
    assert remaining == {"edge@x.com", "new@x.com"}


def test_cleanup_is_idempotent(store, clock):
    store.record("10.0.0.1")
    store.record("10.0.0.2")
    clock.advance(7200)

    assert store.cleanup(3600) == 2
    assert store.cleanup(3600) == 0


def test_storage_errors_surface_as_storage_unavailable(clock):
    session = MagicMock()
    error = OperationalError("INSERT", {}, Exception("database is locked"))
    session.commit.side_effect = error
    store = AttemptStore(session=session, clock=clock)

    with pytest.raises(StorageUnavailable) as exc_info:
        store.record("10.0.0.1", "a@x.com")

    assert exc_info.value.__cause__ is error
    session.rollback.assert_called_once()


def test_count_errors_surface_as_storage_unavailable(clock):
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT", {}, Exception("no such table"))
    store = AttemptStore(session=session, clock=clock)

    with pytest.raises(StorageUnavailable):
        store.count_by_address("10.0.0.1", 600)
    session.rollback.assert_called_once()


def test_list_recent_needs_a_window(store):
    store.record("10.0.0.1", "a@x.com")

    with pytest.raises(TypeError):
        store.list_recent("10.0.0.1", "a@x.com")
