import logging
from collections.abc import Sequence

from .models import Snapshot


LOGGER = logging.getLogger(__name__)


class SnapshotOrderError(ValueError):
    pass


def check_contiguous(snapshots: Sequence[Snapshot]) -> None:
    for earlier, later in zip(snapshots, snapshots[1:]):
        if earlier.bug_id != later.bug_id:
            raise SnapshotOrderError(f"versions of bugs {earlier.bug_id} and {later.bug_id} are mixed")
        if later.modified_ts <= earlier.modified_ts:
            raise SnapshotOrderError(
                f"bug {earlier.bug_id}: version {later.snapshot_id} does not follow {earlier.snapshot_id}"
            )
        if earlier.expires_on != later.modified_ts:
            raise SnapshotOrderError(
                f"bug {earlier.bug_id}: version {earlier.snapshot_id} expires at {earlier.expires_on}, "
                f"next version starts at {later.modified_ts}"
            )
    if snapshots and snapshots[-1].expires_on is not None:
        raise SnapshotOrderError(f"bug {snapshots[-1].bug_id}: latest version {snapshots[-1].snapshot_id} is closed")


def rebase(existing: Sequence[Snapshot], rebuilt: Sequence[Snapshot]) -> list[Snapshot]:
    """Prepend persisted versions to a freshly rebuilt history.

    Rebuilt versions already covered by the persisted history are dropped and
    the most recent persisted version is closed where the new ones begin.
    """
    if not existing:
        return list(rebuilt)
    if not rebuilt:
        return list(existing)

    most_recent = existing[-1]
    if most_recent.bug_id != rebuilt[0].bug_id:
        raise SnapshotOrderError(f"cannot rebase bug {rebuilt[0].bug_id} upon bug {most_recent.bug_id}")
    if most_recent.modified_ts > rebuilt[-1].modified_ts:
        LOGGER.warning("persistent version of bug %s newer than version to import", most_recent.bug_id)

    remaining = [snapshot for snapshot in rebuilt if snapshot.modified_ts > most_recent.modified_ts]
    for snapshot in rebuilt:
        if snapshot.modified_ts <= most_recent.modified_ts:
            LOGGER.debug("bug %s: discarding rebuilt version %s", snapshot.bug_id, snapshot.snapshot_id)

    merged = list(existing)
    if remaining:
        merged[-1] = most_recent.with_expiry(remaining[0].modified_ts)
    merged.extend(remaining)
    return merged
