import logging
import threading
import time
import uuid
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from recordstore.predicate import PredicateError, field_native, parse_predicate

logger = logging.getLogger(__name__)

app = FastAPI()

# scope -> recordName -> stored record
databases: Dict[str, Dict[str, dict]] = {"private": {}, "public": {}, "shared": {}}
# held by every endpoint that reads or writes a database
lock = threading.Lock()


class FieldIn(BaseModel):
    type: str
    value: Any = None


class RecordIn(BaseModel):
    recordName: Optional[str] = None
    recordType: str
    fields: Dict[str, FieldIn] = {}


class QueryIn(BaseModel):
    recordType: str
    predicate: Optional[str] = None
    arguments: List[FieldIn] = []


def now_millis() -> int:
    return int(time.time() * 1000)


def get_database(scope: str) -> Dict[str, dict]:
    if scope not in databases:
        raise HTTPException(status_code=404, detail=f"Unknown database '{scope}'")
    return databases[scope]


def check_field(store: Dict[str, dict], name: str, field: FieldIn):
    value = field.value
    if field.type == "STRING":
        valid = isinstance(value, str)
    elif field.type in ("INT64", "TIMESTAMP"):
        valid = isinstance(value, int) and not isinstance(value, bool)
    elif field.type == "DOUBLE":
        valid = isinstance(value, (int, float)) and not isinstance(value, bool)
    elif field.type == "REFERENCE":
        valid = isinstance(value, dict) and isinstance(value.get("recordName"), str)
        if valid and value["recordName"] not in store:
            raise HTTPException(
                status_code=404, detail=f"Referenced record '{value['recordName']}' not found"
            )
    else:
        # Types the store does not interpret are kept as sent
        valid = True
    if not valid:
        raise HTTPException(status_code=400, detail=f"Invalid {field.type} value for field '{name}'")


def referrers(store: Dict[str, dict], record_name: str) -> List[str]:
    """Names of records that hold a DELETE_SELF reference to ``record_name``."""
    names = []
    for stored in list(store.values()):
        for field in stored["fields"].values():
            value = field.get("value")
            if (
                field.get("type") == "REFERENCE"
                and value.get("action") == "DELETE_SELF"
                and value.get("recordName") == record_name
            ):
                names.append(stored["recordName"])
                break
    return names


@app.post("/databases/{scope}/records")
def save_record(scope: str, record: RecordIn):
    with lock:
        store = get_database(scope)
        for name, field in record.fields.items():
            check_field(store, name, field)

        existing = store.get(record.recordName) if record.recordName else None
        if existing is not None and existing["recordType"] != record.recordType:
            raise HTTPException(
                status_code=409,
                detail=f"Record '{record.recordName}' has type '{existing['recordType']}', not '{record.recordType}'",
            )

        timestamp = now_millis()
        stored = {
            "recordName": record.recordName or str(uuid.uuid4()).upper(),
            "recordType": record.recordType,
            "created": existing["created"] if existing else {"timestamp": timestamp},
            "modified": {"timestamp": timestamp},
            "fields": {name: field.model_dump() for name, field in record.fields.items()},
        }
        store[stored["recordName"]] = stored
    logger.info("Saved %s record %s in %s database", record.recordType, stored["recordName"], scope)
    return {"record": stored}


@app.get("/databases/{scope}/records/{record_name}")
def fetch_record(scope: str, record_name: str):
    with lock:
        store = get_database(scope)
        if record_name not in store:
            raise HTTPException(status_code=404, detail="Record not found")
        return {"record": store[record_name]}


@app.delete("/databases/{scope}/records/{record_name}")
def delete_record(scope: str, record_name: str):
    with lock:
        store = get_database(scope)
        if record_name not in store:
            raise HTTPException(status_code=404, detail="Record not found")

        pending = [record_name]
        while pending:
            name = pending.pop()
            if name not in store:
                continue
            del store[name]
            if name != record_name:
                logger.info("Cascade deleted record %s", name)
            pending.extend(referrers(store, name))

    logger.info("Deleted record %s from %s database", record_name, scope)
    return {"recordName": record_name}


@app.post("/databases/{scope}/records/query")
def query_records(scope: str, query: QueryIn):
    arguments = [field_native(argument.model_dump()) for argument in query.arguments]
    try:
        predicate = parse_predicate(query.predicate, arguments)
    except PredicateError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    with lock:
        snapshot = list(get_database(scope).values())
    records = [
        stored
        for stored in snapshot
        if stored["recordType"] == query.recordType and predicate.evaluate(stored["fields"])
    ]
    return {"records": records}


@app.get("/health")
def health():
    return {"status": "ok"}
