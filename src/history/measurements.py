from collections.abc import Mapping, Sequence
from typing import Optional

from .models import Snapshot


DAY_MS = 24 * 60 * 60 * 1000

OPEN = "OPEN"
CLOSED = "CLOSED"
REOPENED = "REOPENED"

DEFAULT_MAJOR_STATUS: dict[str, str] = {
    "UNCONFIRMED": OPEN,
    "NEW": OPEN,
    "ASSIGNED": OPEN,
    REOPENED: OPEN,
    "RESOLVED": CLOSED,
    "VERIFIED": CLOSED,
    "CLOSED": CLOSED,
}


def annotate_measurements(
    snapshots: Sequence[Snapshot],
    status_field: str = "bug_status",
    major_status_table: Optional[Mapping[str, str]] = None,
) -> list[Snapshot]:
    """Attach version number, status facets and day counters to each version.

    Counters run from the oldest version forward. The latest version reports
    -1 for its own time in status since its interval is still open.
    """
    table = DEFAULT_MAJOR_STATUS if major_status_table is None else major_status_table

    previous_status: Optional[str] = None
    previous_major_status: Optional[str] = None
    ms_in_status = 0
    ms_in_major_status = 0
    ms_open_accumulated = 0
    reopened = 0

    annotated: list[Snapshot] = []
    for number, snapshot in enumerate(snapshots, start=1):
        is_latest = snapshot.expires_on is None
        raw_status = snapshot.body.get(status_field)
        status = str(raw_status) if raw_status is not None else None
        major_status = table.get(status) if status is not None else None

        previous_status_days = -1
        previous_major_status_days = -1
        if number > 1 and status != previous_status:
            previous_status_days = ms_in_status // DAY_MS
            ms_in_status = 0
            if major_status != previous_major_status:
                if status == REOPENED:
                    reopened += 1
                previous_major_status_days = ms_in_major_status // DAY_MS
                ms_in_major_status = 0

        duration = 0 if is_latest else int(snapshot.expires_on or 0) - snapshot.modified_ts
        ms_in_status += duration
        ms_in_major_status += duration
        if not is_latest and major_status == OPEN:
            ms_open_accumulated += duration

        annotated.append(
            snapshot.with_body(
                number=number,
                major_status=major_status,
                previous_status=previous_status,
                previous_major_status=previous_major_status,
                measurements={
                    "days_in_previous_status": previous_status_days,
                    "days_in_previous_major_status": previous_major_status_days,
                    "days_in_status": -1 if is_latest else ms_in_status // DAY_MS,
                    "days_in_major_status": -1 if is_latest else ms_in_major_status // DAY_MS,
                    "days_open_accumulated": ms_open_accumulated // DAY_MS,
                    "times_reopened": reopened,
                },
            )
        )

        previous_status = status
        previous_major_status = major_status

    return annotated
