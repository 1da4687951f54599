import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Union

from .assembler import append_set_value, set_scalar, upsert_attachment, upsert_flag_from_current
from .context import RecordContext, start_record
from .models import Snapshot
from .normalizer import apply_historical_diff
from .rebuilder import rebuild_snapshots
from .rows import (
    ActivityRow,
    AttachmentFieldRow,
    FlagRow,
    HistoryRow,
    RowKind,
    ScalarFieldRow,
    SetFieldRow,
    SourceTag,
    classify_row,
)


LOGGER = logging.getLogger(__name__)

RowInput = Union[HistoryRow, Mapping[str, object]]


@dataclass(frozen=True)
class RecordHistory:
    bug_id: int
    snapshots: tuple[Snapshot, ...]
    anomalies: int = 0

    @property
    def head(self) -> Snapshot:
        return self.snapshots[-1]


def _as_row(row: RowInput) -> HistoryRow:
    if isinstance(row, HistoryRow):
        return row
    return HistoryRow.from_mapping(row)


def consume_row(context: RecordContext, kind: RowKind) -> None:
    if isinstance(kind, ScalarFieldRow):
        set_scalar(context, kind.field_name, kind.value)
    elif isinstance(kind, SetFieldRow):
        append_set_value(context, kind.field_name, kind.value)
    elif isinstance(kind, AttachmentFieldRow):
        upsert_attachment(
            context,
            kind.modified_ts,
            kind.modified_by,
            kind.field_name,
            kind.value,
            kind.attach_id,
        )
    elif isinstance(kind, FlagRow):
        upsert_flag_from_current(context, kind.modified_ts, kind.modified_by, kind.value, kind.attach_id)
    elif isinstance(kind, ActivityRow):
        apply_historical_diff(
            context,
            kind.modified_ts,
            kind.modified_by,
            kind.field_name,
            kind.new_value,
            kind.old_value,
            kind.attach_id,
        )


def reconstruct_record(rows: Iterable[RowInput]) -> RecordHistory:
    """Rebuild every version of one record from its contiguous rows."""
    context = None
    for raw in rows:
        row = _as_row(raw)
        if context is None:
            context = start_record(
                bug_id=row.bug_id,
                modified_ts=row.modified_ts,
                modified_by=row.modified_by,
                anchored=row.merge_order == SourceTag.BUG_FIELD,
            )
        elif row.bug_id != context.bug_id:
            raise ValueError(f"row for bug {row.bug_id} mixed into rows of bug {context.bug_id}")

        kind = classify_row(row)
        if kind is not None:
            consume_row(context, kind)

    if context is None:
        raise ValueError("no rows to reconstruct")

    snapshots = rebuild_snapshots(context)
    return RecordHistory(bug_id=context.bug_id, snapshots=tuple(snapshots), anomalies=context.anomalies)


def group_record_rows(rows: Iterable[RowInput]) -> Iterator[list[HistoryRow]]:
    group: list[HistoryRow] = []
    for raw in rows:
        row = _as_row(raw)
        if group and row.bug_id != group[0].bug_id:
            if row.bug_id < group[0].bug_id:
                LOGGER.warning("bug %s arrived after bug %s; input is not ordered by bug id", row.bug_id, group[0].bug_id)
            yield group
            group = []
        group.append(row)
    if group:
        yield group


def reconstruct_histories(rows: Iterable[RowInput]) -> Iterator[RecordHistory]:
    for group in group_record_rows(rows):
        yield reconstruct_record(group)
