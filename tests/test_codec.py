import logging
import re
from datetime import datetime, timedelta, timezone

import pytest

from bridge.codec import decode, encode, iso8601, is_reference
from bridge.fields import FieldType, FieldValue, Record, RecordID, Reference, ReferenceAction

ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")


def stored(record: Record, name: str = "REC-1") -> Record:
    """What a store that echoes records unchanged would hand back."""
    wire = record.to_wire()
    wire["recordName"] = name
    wire["created"] = {"timestamp": 1723890000000}
    return Record.from_wire(wire)


def test_encode_tags_plain_values():
    when = datetime(2024, 8, 17, 10, 20, 30, tzinfo=timezone.utc)
    record = encode("Task", {"title": "Buy milk", "done": 0, "weight": 1.5, "due": when})

    assert record.record_type == "Task"
    assert record.record_name is None
    assert record["title"] == FieldValue("STRING", "Buy milk")
    assert record["done"] == FieldValue("INT64", 0)
    assert record["weight"] == FieldValue("DOUBLE", 1.5)
    assert record["due"].type == FieldType.TIMESTAMP


def test_encode_reference_shape():
    record = encode("Task", {"list": {"recordId": "LIST-1"}})

    field = record["list"]
    assert field.type == FieldType.REFERENCE
    assert field.value == Reference(RecordID("LIST-1"), ReferenceAction.DELETE_SELF)


def test_reference_decodes_to_bare_name():
    record = stored(encode("Task", {"list": {"recordId": "LIST-1"}}))

    assert decode(record)["list"] == "LIST-1"


def test_roundtrip_keeps_every_field():
    fields = {"title": "Buy milk", "done": 0, "weight": 2.25, "owner": {"recordId": "USER-9"}}

    data = decode(stored(encode("Task", fields)))

    assert data["id"] == "REC-1"
    assert data["creationDate"] == "2024-08-17T10:20:00Z"
    assert data["title"] == "Buy milk"
    assert data["done"] == 0
    assert data["weight"] == 2.25
    assert data["owner"] == "USER-9"


def test_timestamp_decodes_to_iso8601():
    when = datetime(2024, 8, 17, 10, 20, 30, tzinfo=timezone.utc)

    data = decode(stored(encode("Event", {"at": when})))

    assert data["at"] == "2024-08-17T10:20:30Z"


def test_bool_is_stored_as_integer():
    record = encode("Task", {"done": True})
    assert record["done"] == FieldValue("INT64", 1)


def test_none_clears_field():
    record = encode("Task", {"title": "x"})
    record["title"] = None
    assert "title" not in record


def test_unsupported_python_value_rejected():
    with pytest.raises(ValueError, match="field 'tags'"):
        encode("Task", {"tags": {"a", "b"}})


def test_plain_dict_without_record_id_rejected():
    with pytest.raises(ValueError, match="field 'meta'"):
        encode("Task", {"meta": {"recordId": 5}})


def test_is_reference():
    assert is_reference({"recordId": "X"})
    assert not is_reference({"recordId": 1})
    assert not is_reference("X")


def test_unsupported_field_decodes_to_none(caplog):
    record = stored(encode("Task", {"title": "a", "tags": ["x", "y"]}))

    with caplog.at_level(logging.WARNING, logger="bridge.codec"):
        data = decode(record)

    assert "tags" in data
    assert data["tags"] is None
    assert data["title"] == "a"
    assert "not serializable to JSON" in caplog.text


def test_malformed_supported_value_decodes_to_none():
    record = Record("Task", "REC-1", fields={"count": FieldValue("INT64", "seven")})

    assert decode(record)["count"] is None


def test_missing_creation_date_uses_now():
    before = datetime.now(timezone.utc).replace(microsecond=0)
    data = decode(Record("Task", "REC-1"))

    assert ISO_RE.match(data["creationDate"])
    decoded = datetime.strptime(data["creationDate"], "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    assert before <= decoded <= before + timedelta(seconds=5)


def test_field_named_id_overrides_generated_key():
    record = stored(encode("Task", {"id": "custom"}))
    assert decode(record)["id"] == "custom"


def test_iso8601_naive_is_utc():
    assert iso8601(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05Z"
    offset = timezone(timedelta(hours=2))
    assert iso8601(datetime(2024, 1, 2, 3, 4, 5, tzinfo=offset)) == "2024-01-02T01:04:05Z"


@pytest.mark.parametrize("millis", [2 ** 62, 10 ** 30, -(10 ** 30)])
def test_out_of_range_timestamp_decodes_to_none(millis, caplog):
    record = Record.from_wire(
        {
            "recordName": "REC-1",
            "recordType": "Event",
            "fields": {"at": {"type": "TIMESTAMP", "value": millis}, "title": {"type": "STRING", "value": "a"}},
        }
    )

    with caplog.at_level(logging.WARNING, logger="bridge.codec"):
        data = decode(record)

    assert data["at"] is None
    assert data["title"] == "a"
    assert "not serializable to JSON" in caplog.text


@pytest.mark.parametrize(
    "value",
    [{"recordName": "LIST-1", "action": "VALIDATE"}, {"action": "NONE"}],
)
def test_unreadable_reference_decodes_to_none(value):
    record = Record.from_wire(
        {"recordName": "REC-1", "recordType": "Task", "fields": {"list": {"type": "REFERENCE", "value": value}}}
    )

    assert decode(record)["list"] is None


def test_unreadable_values_are_written_back_unchanged():
    fields = {
        "at": {"type": "TIMESTAMP", "value": 2 ** 62},
        "list": {"type": "REFERENCE", "value": {"recordName": "LIST-1", "action": "VALIDATE"}},
    }
    record = Record.from_wire({"recordName": "REC-1", "recordType": "Task", "fields": fields})

    assert record.to_wire()["fields"] == fields


def test_out_of_range_creation_timestamp_falls_back_to_now():
    record = Record.from_wire({"recordName": "REC-1", "recordType": "Task", "created": {"timestamp": 10 ** 30}})

    assert record.creation_date is None
    assert ISO_RE.match(decode(record)["creationDate"])
