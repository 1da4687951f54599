from collections.abc import Iterable, Mapping
from typing import Optional

from src.history.models import Snapshot


def _valid_at(modified_ts: object, expires_on: object, at_ts: int) -> bool:
    if not isinstance(modified_ts, int) or modified_ts > at_ts:
        return False
    return expires_on is None or (isinstance(expires_on, int) and at_ts < expires_on)


def find_snapshot_at(snapshots: Iterable[Snapshot], at_ts: int) -> Optional[Snapshot]:
    for snapshot in snapshots:
        if _valid_at(snapshot.modified_ts, snapshot.expires_on, at_ts):
            return snapshot
    return None


def filter_point_in_time(
    rows: Iterable[Mapping[str, object]], at_ts: int
) -> list[Mapping[str, object]]:
    filtered: list[Mapping[str, object]] = []
    for row in rows:
        if _valid_at(row.get("modified_ts"), row.get("expires_on"), at_ts):
            filtered.append(row)
    filtered.sort(key=lambda row: (row.get("bug_id"), row.get("modified_ts")))
    return filtered
