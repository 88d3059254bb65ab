import json
import queue

import pytest

from bridge.database import CloudDatabase, Query, StoreError
from bridge.fields import Record, RecordID


class StubResponse:
    def __init__(self, body, status_code=200):
        self._body = body
        self.status_code = status_code
        self.text = json.dumps(body)
        self.content = self.text.encode()

    def json(self):
        return self._body


class StubSession:
    """Answers every request with the same canned body."""

    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code

    def _respond(self, url, **kwargs):
        return StubResponse(self.body, self.status_code)

    post = get = delete = _respond


def run(body, operation, argument, status_code=200):
    db = CloudDatabase("http://store", session=StubSession(body, status_code), max_workers=1)
    outcomes = queue.Queue()
    try:
        getattr(db, operation)(argument, lambda result, error: outcomes.put((result, error)))
        return outcomes.get(timeout=5)
    finally:
        db.close()


@pytest.mark.parametrize(
    "body,operation,argument",
    [
        (["not", "a", "map"], "perform", Query("Task")),
        ({"records": [5]}, "perform", Query("Task")),
        ({"records": [{"recordName": "A"}]}, "perform", Query("Task")),
        ({"record": "A"}, "fetch", RecordID("A")),
        ({"record": {"recordType": "Task", "fields": ["title"]}}, "save", Record("Task")),
    ],
)
def test_malformed_responses_always_complete(body, operation, argument):
    result, error = run(body, operation, argument)

    assert result is None
    assert isinstance(error, StoreError)


def test_store_detail_becomes_description():
    result, error = run({"detail": "Record not found"}, "fetch", RecordID("A"), status_code=404)

    assert result is None
    assert error.description == "Record not found"
    assert error.status_code == 404


def test_missing_result_completes_with_neither():
    assert run({}, "delete", RecordID("A")) == (None, None)
    assert run({"records": None}, "perform", Query("Task")) == (None, None)


def test_unknown_scope_rejected():
    with pytest.raises(ValueError, match="Unknown database scope"):
        CloudDatabase("http://store", scope="elsewhere")
