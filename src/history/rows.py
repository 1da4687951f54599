import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Optional, Union


LOGGER = logging.getLogger(__name__)


class SourceTag(IntEnum):
    BUG_FIELD = 1
    BUG_SET_FIELD = 2
    ATTACHMENT_FIELD = 7
    FLAG = 8
    ACTIVITY = 9


def to_epoch_ms(value: object) -> int:
    if isinstance(value, bool):
        raise ValueError(f"timestamp must not be boolean: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return round(value.timestamp() * 1000)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_epoch_ms(datetime.fromisoformat(text))
        except ValueError as exc:
            raise ValueError(f"unparseable timestamp: {value!r}") from exc
    raise ValueError(f"unparseable timestamp: {value!r}")


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value)


@dataclass(frozen=True)
class HistoryRow:
    bug_id: int
    modified_ts: int
    modified_by: str
    field_name: str
    field_value: str
    field_value_removed: str
    attach_id: str
    merge_order: int

    @classmethod
    def from_mapping(cls, row: Mapping[str, object]) -> "HistoryRow":
        try:
            bug_id = int(str(row["bug_id"]))
            merge_order = int(str(row["merge_order"]))
        except (KeyError, ValueError) as exc:
            raise ValueError(f"malformed history row: {dict(row)!r}") from exc
        return cls(
            bug_id=bug_id,
            modified_ts=to_epoch_ms(row.get("modified_ts")),
            modified_by=_text(row.get("modified_by")),
            field_name=_text(row.get("field_name")),
            field_value=_text(row.get("field_value")),
            field_value_removed=_text(row.get("field_value_removed")),
            attach_id=_text(row.get("attach_id")),
            merge_order=merge_order,
        )


@dataclass(frozen=True)
class ScalarFieldRow:
    field_name: str
    value: str


@dataclass(frozen=True)
class SetFieldRow:
    field_name: str
    value: str


@dataclass(frozen=True)
class AttachmentFieldRow:
    modified_ts: int
    modified_by: str
    attach_id: str
    field_name: str
    value: str


@dataclass(frozen=True)
class FlagRow:
    modified_ts: int
    modified_by: str
    value: str
    attach_id: str


@dataclass(frozen=True)
class ActivityRow:
    modified_ts: int
    modified_by: str
    field_name: str
    new_value: str
    old_value: str
    attach_id: str


RowKind = Union[ScalarFieldRow, SetFieldRow, AttachmentFieldRow, FlagRow, ActivityRow]


def classify_row(row: HistoryRow) -> Optional[RowKind]:
    try:
        tag = SourceTag(row.merge_order)
    except ValueError:
        LOGGER.debug("ignoring row with unknown source tag %s for bug %s", row.merge_order, row.bug_id)
        return None

    if tag == SourceTag.BUG_FIELD:
        return ScalarFieldRow(field_name=row.field_name, value=row.field_value)
    if tag == SourceTag.BUG_SET_FIELD:
        return SetFieldRow(field_name=row.field_name, value=row.field_value)
    if tag == SourceTag.ATTACHMENT_FIELD:
        return AttachmentFieldRow(
            modified_ts=row.modified_ts,
            modified_by=row.modified_by,
            attach_id=row.attach_id,
            field_name=row.field_name,
            value=row.field_value,
        )
    if tag == SourceTag.FLAG:
        return FlagRow(
            modified_ts=row.modified_ts,
            modified_by=row.modified_by,
            value=row.field_value,
            attach_id=row.attach_id,
        )
    return ActivityRow(
        modified_ts=row.modified_ts,
        modified_by=row.modified_by,
        field_name=row.field_name,
        new_value=row.field_value,
        old_value=row.field_value_removed,
        attach_id=row.attach_id,
    )
