import re
from collections.abc import Iterable, Sequence
from typing import Optional, Union

from .models import Attachment, BugState, Flag


FLAGS_FIELD = "flags"
FLAG_ACTIVITY_FIELD = "flagtypes.name"
PARTICIPANTS_FIELD = "cc"

MULTI_VALUE_FIELDS = frozenset(
    {
        FLAGS_FIELD,
        PARTICIPANTS_FIELD,
        "keywords",
        "dependson",
        "blocked",
        "dupe_by",
        "dupe_of",
        "bug_group",
    }
)

_SEPARATOR = re.compile(r"\s*,\s*")
_PENDING_PREFIX = "? "

Slot = tuple[int, object]


def is_multi_field(field_name: str) -> bool:
    return field_name in MULTI_VALUE_FIELDS


def canonical_field_name(field_name: str) -> str:
    if field_name == FLAG_ACTIVITY_FIELD:
        return FLAGS_FIELD
    return field_name


def _strip_pending(value: str) -> str:
    # dependency values are sometimes recorded as "? 12345"
    if value.startswith(_PENDING_PREFIX):
        return value[len(_PENDING_PREFIX):]
    return value


def split_values(field_name: str, value: Optional[str]) -> list[str]:
    """Membership view of a raw activity value.

    Multi-value fields are split on commas; empty pieces are dropped, so an
    empty string means "nothing added" or "nothing removed". Pending markers
    are trimmed from non-flag members so both replay directions see the same
    value.
    """
    text = value or ""
    if not is_multi_field(field_name):
        return [text]
    pieces = [piece for piece in _SEPARATOR.split(text.strip()) if piece]
    if field_name == FLAGS_FIELD:
        return pieces
    return [piece for piece in map(_strip_pending, pieces) if piece]


def collection_of(target: Union[BugState, Attachment], field_name: str) -> Optional[list]:
    if field_name == FLAGS_FIELD:
        return target.flags
    value = target.fields.get(field_name)
    if isinstance(value, list):
        return value
    return None


def _matches(item: object, value: str, field_name: str) -> bool:
    if field_name == FLAGS_FIELD:
        return isinstance(item, Flag) and item.value == value
    return item == value


def _find(values: list, value: str, field_name: str, from_end: bool) -> int:
    indexes = range(len(values) - 1, -1, -1) if from_end else range(len(values))
    for index in indexes:
        if _matches(values[index], value, field_name):
            return index
    return -1


def take_values(
    values: list,
    to_take: Iterable[str],
    field_name: str,
    from_end: bool = False,
) -> list[Optional[Slot]]:
    """Delete each value once.

    Returns one entry per requested value: the index it was removed from and
    the removed item, or None when the value was not present.
    """
    slots: list[Optional[Slot]] = []
    for value in to_take:
        index = _find(values, value, field_name, from_end)
        if index < 0:
            slots.append(None)
            continue
        slots.append((index, values.pop(index)))
    return slots


def remove_values(values: list, to_remove: Iterable[str], field_name: str, from_end: bool = False) -> list[str]:
    """Delete each value once; return the values that were not found."""
    requested = list(to_remove)
    slots = take_values(values, requested, field_name, from_end)
    return [value for value, slot in zip(requested, slots) if slot is None]


def restore_values(values: list, slots: Sequence[Optional[Slot]]) -> None:
    """Put taken items back where they were, undoing take_values."""
    for slot in reversed(slots):
        if slot is not None:
            index, item = slot
            values.insert(index, item)


def insert_values(
    values: list,
    to_insert: Iterable[str],
    field_name: str,
    modified_ts: Optional[int] = None,
    modified_by: Optional[str] = None,
) -> int:
    inserted = 0
    for value in to_insert:
        if field_name == FLAGS_FIELD:
            values.append(Flag(value=value, modified_ts=modified_ts, modified_by=modified_by))
        else:
            values.append(value)
        inserted += 1
    return inserted
