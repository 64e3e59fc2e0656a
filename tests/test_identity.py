import pytest
from flask import request

from security.identity import AttemptSource, client_address, extract_identifier
from utils.intervals import interval_to_seconds, seconds_to_interval


def test_extract_identifier_first_non_empty_wins():
    fields = {"_username": "  ", "username": None, "email": "user@x.com"}
    assert extract_identifier(fields) == "user@x.com"


def test_extract_identifier_custom_candidates():
    fields = {"login": "bob", "email": "bob@x.com"}
    assert extract_identifier(fields, ("login", "email")) == "bob"


def test_extract_identifier_none_when_absent():
    assert extract_identifier({"password": "hunter2"}) is None


def test_extract_identifier_is_cut_to_column_width():
    assert extract_identifier({"username": "x" * 300}) == "x" * 255


def test_source_address_is_cut_to_column_width():
    assert AttemptSource("a" * 100).address == "a" * 45


def test_source_without_address_is_unknown():
    assert AttemptSource().address == "unknown"


def test_client_address_from_request(app):
    with app.test_request_context("/", environ_base={"REMOTE_ADDR": "192.168.1.1"}):
        assert client_address(request) == "192.168.1.1"


def test_client_address_ignores_forwarded_for(app):
    with app.test_request_context(
        "/", headers={"X-Forwarded-For": "203.0.113.7"}, environ_base={"REMOTE_ADDR": "192.168.1.1"}
    ):
        assert client_address(request) == "192.168.1.1"


def test_from_request_reads_form_fields(app):
    with app.test_request_context("/", method="POST", data={"username": "form"}):
        source = AttemptSource.from_request(request)
        assert source.identifier() == "form"


@pytest.mark.parametrize("interval,seconds", [
    ("30 seconds", 30),
    ("1 minute", 60),
    ("10 minutes", 600),
    ("1 hour", 3600),
    ("2 Days", 172800),
    ("1 week", 604800),
])
def test_interval_to_seconds(interval, seconds):
    assert interval_to_seconds(interval) == seconds


def test_interval_to_seconds_rejects_garbage():
    with pytest.raises(ValueError):
        interval_to_seconds("ten minutes")


@pytest.mark.parametrize("seconds,interval", [
    (45, "45 seconds"),
    (60, "1 minute"),
    (600, "10 minutes"),
    (3600, "1 hour"),
    (7200, "2 hours"),
])
def test_seconds_to_interval(seconds, interval):
    assert seconds_to_interval(seconds) == interval
