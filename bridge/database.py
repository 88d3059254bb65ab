import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import requests

from bridge.fields import FieldValue, Record, RecordID, Reference

logger = logging.getLogger(__name__)

TRUE_PREDICATE = "TRUEPREDICATE"
SCOPES = ("private", "public", "shared")

Completion = Callable[[Any, Optional["StoreError"]], None]


class StoreError(Exception):
    """Failure reported by the record store, or by the transport to it."""

    def __init__(self, description: str, status_code: Optional[int] = None):
        super().__init__(description)
        self.description = description
        self.status_code = status_code


@dataclass
class Query:
    record_type: str
    predicate: str = TRUE_PREDICATE
    arguments: List[Any] = field(default_factory=list)

    def to_wire(self) -> dict:
        return {
            "recordType": self.record_type,
            "predicate": self.predicate,
            "arguments": [_argument_to_wire(arg) for arg in self.arguments],
        }


def _argument_to_wire(value: Any) -> dict:
    # A bare record ID is compared against reference fields
    if isinstance(value, RecordID):
        value = Reference(value)
    return FieldValue.from_python(value).to_wire()


class CloudDatabase:
    """Callback-style client for one database of the record store.

    Every call runs on a worker thread and reports back through
    ``completion(result, error)`` on that same thread. Callers that must
    finish on a particular thread have to hop there themselves.
    """

    def __init__(self, base_url: str, scope: str = "private", session=None, max_workers: int = 4):
        if scope not in SCOPES:
            raise ValueError(f"Unknown database scope '{scope}'")
        self.base_url = base_url.rstrip("/")
        self.scope = scope
        self.session = session or requests.Session()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="record-store")

    @property
    def records_url(self) -> str:
        return f"{self.base_url}/databases/{self.scope}/records"

    def save(self, record: Record, completion: Completion):
        self._submit(self._save, completion, record)

    def fetch(self, record_id: RecordID, completion: Completion):
        self._submit(self._fetch, completion, record_id)

    def delete(self, record_id: RecordID, completion: Completion):
        self._submit(self._delete, completion, record_id)

    def perform(self, query: Query, completion: Completion):
        self._submit(self._perform, completion, query)

    def close(self):
        self._executor.shutdown(wait=True)

    def _submit(self, operation, completion: Completion, argument):
        def run():
            try:
                result = operation(argument)
            except StoreError as exc:
                completion(None, exc)
                return
            except requests.RequestException as exc:
                completion(None, StoreError(str(exc)))
                return
            except Exception as exc:
                # completion must always run or the caller never settles
                logger.exception("Malformed response from record store")
                completion(None, StoreError(f"Malformed response from record store: {exc}"))
                return
            completion(result, None)

        self._executor.submit(run)

    def _check(self, resp) -> dict:
        if resp.status_code >= 400:
            raise StoreError(_describe(resp), resp.status_code)
        if not resp.content:
            return {}
        body = resp.json()
        if not isinstance(body, dict):
            raise StoreError(f"Unexpected response body from record store: {body!r}", resp.status_code)
        return body

    def _save(self, record: Record) -> Optional[Record]:
        logger.debug("Saving %s record %s", record.record_type, record.record_name or "<new>")
        body = self._check(self.session.post(self.records_url, json=record.to_wire()))
        saved = body.get("record")
        return Record.from_wire(saved) if saved else None

    def _fetch(self, record_id: RecordID) -> Optional[Record]:
        body = self._check(self.session.get(f"{self.records_url}/{record_id.record_name}"))
        found = body.get("record")
        return Record.from_wire(found) if found else None

    def _delete(self, record_id: RecordID) -> Optional[RecordID]:
        body = self._check(self.session.delete(f"{self.records_url}/{record_id.record_name}"))
        name = body.get("recordName")
        return RecordID(name) if name else None

    def _perform(self, query: Query) -> Optional[List[Record]]:
        body = self._check(self.session.post(f"{self.records_url}/query", json=query.to_wire()))
        records = body.get("records")
        if records is None:
            return None
        return [Record.from_wire(item) for item in records]


def _describe(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, str) and detail:
        return detail
    return resp.text or f"Record store returned HTTP {resp.status_code}"
