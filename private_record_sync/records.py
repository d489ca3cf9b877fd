"""
Record types and data classes.

Defines the record model shared by the controller and every
record store backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_ZONE_NAME = "_defaultZone"
DEFAULT_OWNER_NAME = "__defaultOwner__"

# The singleton record used by the controller
PERSON_RECORD_TYPE = "Person"
LAST_PERSON_RECORD_NAME = "lastPerson"
LAST_PERSON_TEST_RECORD_NAME = "lastPersonTest"
NAME_FIELD = "name"


class SavePolicy(Enum):
    """How a store reconciles a submitted record with the server copy."""

    IF_SERVER_RECORD_UNCHANGED = "if_server_record_unchanged"  # Reject on change tag mismatch
    CHANGED_KEYS = "changed_keys"  # Merge submitted fields, no change tag check
    ALL_KEYS = "all_keys"  # Replace server record unconditionally


@dataclass(frozen=True)
class RecordID:
    """Identifier of a record within a zone."""

    record_name: str
    zone_name: str = DEFAULT_ZONE_NAME

    def __str__(self) -> str:
        if self.zone_name == DEFAULT_ZONE_NAME:
            return self.record_name
        return f"{self.zone_name}/{self.record_name}"


@dataclass(frozen=True)
class RecordZone:
    """A zone of the private database."""

    zone_name: str
    owner_name: str = DEFAULT_OWNER_NAME


@dataclass
class Record:
    """A record as stored in (or submitted to) a record store.

    Attributes:
        record_type: Schema type of the record, e.g. "Person"
        record_id: Identifier of the record
        fields: Field values keyed by field name
        change_tag: Server revision token, None for records not yet saved
    """

    record_type: str
    record_id: RecordID
    fields: dict[str, Any] = field(default_factory=dict)
    change_tag: str | None = None

    def __getitem__(self, key: str) -> Any:
        return self.fields.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self.fields[key] = value

    def copy(self) -> Record:
        """Return a copy that does not share the fields mapping."""
        return Record(
            record_type=self.record_type,
            record_id=self.record_id,
            fields=dict(self.fields),
            change_tag=self.change_tag,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "record_type": self.record_type,
            "record_name": self.record_id.record_name,
            "zone_name": self.record_id.zone_name,
            "fields": dict(self.fields),
            "change_tag": self.change_tag,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        """Deserialize from dictionary."""
        return cls(
            record_type=data["record_type"],
            record_id=RecordID(
                record_name=data["record_name"],
                zone_name=data.get("zone_name", DEFAULT_ZONE_NAME),
            ),
            fields=dict(data.get("fields") or {}),
            change_tag=data.get("change_tag"),
        )
