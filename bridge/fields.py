from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class FieldType(str, Enum):
    STRING = "STRING"
    INT64 = "INT64"
    DOUBLE = "DOUBLE"
    TIMESTAMP = "TIMESTAMP"
    REFERENCE = "REFERENCE"


class ReferenceAction(str, Enum):
    NONE = "NONE"
    DELETE_SELF = "DELETE_SELF"


# Store-side type that is kept but never interpreted
LIST_TYPE = "LIST"


@dataclass(frozen=True)
class RecordID:
    record_name: str


@dataclass(frozen=True)
class Reference:
    record_id: RecordID
    action: ReferenceAction = ReferenceAction.NONE


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class FieldValue:
    """A single tagged field value.

    ``type`` is the wire tag. Tags outside ``FieldType`` are carried
    through untouched so records written by other clients survive a
    fetch-merge-save.
    """

    type: str
    value: Any

    @classmethod
    def from_python(cls, value: Any) -> "FieldValue":
        if isinstance(value, FieldValue):
            return value
        if isinstance(value, Reference):
            return cls(FieldType.REFERENCE.value, value)
        # bool is an int subclass; check it first
        if isinstance(value, bool):
            return cls(FieldType.INT64.value, int(value))
        if isinstance(value, int):
            if not INT64_MIN <= value <= INT64_MAX:
                raise ValueError(f"Integer {value} does not fit in 64 bits")
            return cls(FieldType.INT64.value, value)
        if isinstance(value, float):
            return cls(FieldType.DOUBLE.value, value)
        if isinstance(value, str):
            return cls(FieldType.STRING.value, value)
        if isinstance(value, datetime):
            return cls(FieldType.TIMESTAMP.value, value)
        if isinstance(value, (list, tuple)):
            return cls(LIST_TYPE, list(value))
        raise ValueError(f"Unsupported value of type {type(value).__name__}")

    def to_wire(self) -> Dict[str, Any]:
        if self.type == FieldType.TIMESTAMP and isinstance(self.value, datetime):
            return {"type": self.type, "value": to_millis(self.value)}
        if self.type == FieldType.REFERENCE and isinstance(self.value, Reference):
            ref = self.value
            return {
                "type": self.type,
                "value": {"recordName": ref.record_id.record_name, "action": ref.action.value},
            }
        return {"type": self.type, "value": self.value}

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "FieldValue":
        """Build a field from its wire form.

        Values that cannot be interpreted under their tag are kept raw; the
        codec decodes them to null and a save writes them back unchanged.
        """
        kind = data.get("type")
        value = data.get("value")
        if kind == FieldType.TIMESTAMP and isinstance(value, (int, float)):
            try:
                return cls(kind, from_millis(value))
            except (ValueError, OverflowError, OSError):
                return cls(kind, value)
        if kind == FieldType.REFERENCE and isinstance(value, dict):
            try:
                action = ReferenceAction(value.get("action") or ReferenceAction.NONE.value)
                return cls(kind, Reference(RecordID(value["recordName"]), action))
            except (KeyError, ValueError):
                return cls(kind, value)
        return cls(kind, value)


@dataclass
class Record:
    record_type: str
    record_name: Optional[str] = None
    creation_date: Optional[datetime] = None
    fields: Dict[str, FieldValue] = field(default_factory=dict)

    def keys(self) -> List[str]:
        return list(self.fields.keys())

    def __getitem__(self, key: str) -> Optional[FieldValue]:
        return self.fields.get(key)

    def __setitem__(self, key: str, value: Any):
        # None clears the field, like the store's own SDKs
        if value is None:
            self.fields.pop(key, None)
            return
        self.fields[key] = FieldValue.from_python(value)

    def __contains__(self, key: str) -> bool:
        return key in self.fields

    def to_wire(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "recordType": self.record_type,
            "fields": {key: value.to_wire() for key, value in self.fields.items()},
        }
        if self.record_name is not None:
            data["recordName"] = self.record_name
        return data

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "Record":
        created = data.get("created") or {}
        creation_date = None
        try:
            creation_date = from_millis(created["timestamp"])
        except (KeyError, TypeError, ValueError, OverflowError, OSError):
            # decode falls back to the current time
            pass
        return cls(
            record_type=data["recordType"],
            record_name=data.get("recordName"),
            creation_date=creation_date,
            fields={
                key: FieldValue.from_wire(value)
                for key, value in (data.get("fields") or {}).items()
            },
        )
