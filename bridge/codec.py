"""Conversion between bridge field maps and store records."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from bridge.fields import FieldType, Record, RecordID, Reference, ReferenceAction

logger = logging.getLogger(__name__)


def iso8601(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def is_reference(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("recordId"), str)


def apply_fields(record: Record, fields: Dict[str, Any]) -> Record:
    """Overwrite ``record`` fields from a bridge field map.

    ``{"recordId": ...}`` values become references that delete the
    holding record when their target is deleted. Referenced records are
    not looked up here; the store rejects dangling ones on save.
    """
    for key, value in fields.items():
        if is_reference(value):
            record_id = RecordID(value["recordId"])
            record[key] = Reference(record_id, ReferenceAction.DELETE_SELF)
        else:
            try:
                record[key] = value
            except ValueError as exc:
                raise ValueError(f"Invalid value for field '{key}': {exc}") from exc
    return record


def encode(record_type: str, fields: Dict[str, Any]) -> Record:
    return apply_fields(Record(record_type), fields)


def decode(record: Record) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    data["id"] = record.record_name
    # Records without a server timestamp get "now"; repeated decodes differ
    data["creationDate"] = iso8601(record.creation_date or datetime.now(timezone.utc))

    for key in record.keys():
        field_value = record[key]
        kind = field_value.type
        value = field_value.value
        if kind == FieldType.STRING and isinstance(value, str):
            data[key] = value
        elif kind == FieldType.INT64 and isinstance(value, int):
            data[key] = value
        elif kind == FieldType.DOUBLE and isinstance(value, (int, float)):
            data[key] = value
        elif kind == FieldType.TIMESTAMP and isinstance(value, datetime):
            data[key] = iso8601(value)
        elif kind == FieldType.REFERENCE and isinstance(value, Reference):
            data[key] = value.record_id.record_name
        else:
            logger.warning(
                "Value for key '%s' in record '%s' is not serializable to JSON. Value type: %s",
                key,
                record.record_name,
                kind,
            )
            data[key] = None

    return data
