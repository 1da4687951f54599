import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Optional


LOGGER = logging.getLogger(__name__)

FLAG_STATUSES = frozenset({"+", "-", "?"})


@dataclass(frozen=True)
class Flag:
    value: str
    modified_ts: Optional[int] = None
    modified_by: Optional[str] = None

    def _base(self) -> str:
        return self.value.split("(", 1)[0].strip()

    @property
    def status(self) -> Optional[str]:
        base = self._base()
        if base and base[-1] in FLAG_STATUSES:
            return base[-1]
        return None

    @property
    def name(self) -> str:
        base = self._base()
        if self.status is not None:
            return base[:-1]
        return base

    @property
    def requestee(self) -> Optional[str]:
        start = self.value.find("(")
        if start == -1:
            return None
        end = self.value.find(")", start)
        if end == -1:
            LOGGER.warning("unclosed parens in flag request %r", self.value)
            return None
        return self.value[start + 1 : end] or None

    def to_dict(self) -> dict[str, object]:
        return {
            "value": self.value,
            "name": self.name,
            "status": self.status,
            "requestee": self.requestee,
            "modified_ts": self.modified_ts,
            "modified_by": self.modified_by,
        }


@dataclass
class Attachment:
    attach_id: str
    created_ts: int
    created_by: str
    fields: dict[str, object] = field(default_factory=dict)
    flags: list[Flag] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        document: dict[str, object] = {
            "_id": f"{self.attach_id}.{self.created_ts}",
            "attach_id": self.attach_id,
            "created_ts": self.created_ts,
            "created_by": self.created_by,
        }
        document.update(_copy_fields(self.fields))
        document["flags"] = [flag.to_dict() for flag in self.flags]
        return document


@dataclass
class BugState:
    """The live accumulator for one record.

    Scalar fields hold strings, set-valued fields hold lists of strings;
    flags are kept apart because they are structured values.
    """

    bug_id: int
    modified_ts: int
    modified_by: str
    reported_by: str
    fields: dict[str, object] = field(default_factory=dict)
    flags: list[Flag] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    expires_on: Optional[int] = None

    @property
    def snapshot_id(self) -> str:
        return f"{self.bug_id}.{self.modified_ts}"

    def find_attachment(self, attach_id: str) -> Optional[Attachment]:
        for attachment in self.attachments:
            if attachment.attach_id == attach_id:
                return attachment
        return None

    def to_dict(self) -> dict[str, object]:
        document: dict[str, object] = {
            "_id": self.snapshot_id,
            "bug_id": self.bug_id,
            "modified_ts": self.modified_ts,
            "modified_by": self.modified_by,
            "reported_by": self.reported_by,
            "expires_on": self.expires_on,
        }
        document.update(_copy_fields(self.fields))
        document["flags"] = [flag.to_dict() for flag in self.flags]
        document["attachments"] = [attachment.to_dict() for attachment in self.attachments]
        return document


def _copy_fields(fields: Mapping[str, object]) -> dict[str, object]:
    copied: dict[str, object] = {}
    for name, value in fields.items():
        copied[name] = list(value) if isinstance(value, list) else value
    return copied


@dataclass(frozen=True)
class ChangeEvent:
    field_name: str
    new_value: str
    old_value: str = ""
    attach_id: str = ""
    creation: bool = False
    # where backward replay took each added value from, None where it was missing
    restore: tuple[Optional[tuple[int, object]], ...] = ()


@dataclass
class ChangeSet:
    bug_id: int
    modified_ts: int
    modified_by: str
    events: list[ChangeEvent] = field(default_factory=list)

    @property
    def change_set_id(self) -> str:
        return f"{self.bug_id}.{self.modified_ts}"


@dataclass(frozen=True)
class Snapshot:
    bug_id: int
    modified_ts: int
    modified_by: str
    expires_on: Optional[int]
    body: Mapping[str, object]

    @property
    def snapshot_id(self) -> str:
        return f"{self.bug_id}.{self.modified_ts}"

    @classmethod
    def from_document(cls, document: Mapping[str, object]) -> "Snapshot":
        expires_on = document.get("expires_on")
        return cls(
            bug_id=int(str(document["bug_id"])),
            modified_ts=int(str(document["modified_ts"])),
            modified_by=str(document.get("modified_by") or ""),
            expires_on=int(str(expires_on)) if expires_on is not None else None,
            body=MappingProxyType(dict(document)),
        )

    @classmethod
    def from_row(cls, row: Mapping[str, object]) -> "Snapshot":
        body = row["body"]
        if isinstance(body, (str, bytes)):
            body = json.loads(body)
        if not isinstance(body, Mapping):
            raise ValueError(f"snapshot body must be a JSON object: {row.get('snapshot_id')}")
        return cls.from_document(body)

    def with_body(self, **updates: object) -> "Snapshot":
        document = dict(self.body)
        document.update(updates)
        return replace(self, body=MappingProxyType(document))

    def with_expiry(self, expires_on: Optional[int]) -> "Snapshot":
        closed = self.with_body(expires_on=expires_on)
        return replace(closed, expires_on=expires_on)

    def document(self) -> dict[str, object]:
        return dict(self.body)

    def to_row(self) -> dict[str, object]:
        return {
            "bug_id": self.bug_id,
            "snapshot_id": self.snapshot_id,
            "modified_ts": self.modified_ts,
            "expires_on": self.expires_on,
            "body": json.dumps(self.document(), indent=2, sort_keys=True, default=str),
        }
