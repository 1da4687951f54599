import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional, Protocol

from src.history.lineage import check_contiguous, rebase
from src.history.measurements import annotate_measurements
from src.history.models import Snapshot
from src.history.reconstruct import RowInput, group_record_rows, reconstruct_record

from .config import Settings
from .revision_store import RevisionStore


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobResult:
    records_processed: int
    records_failed: int
    snapshots_emitted: int
    snapshots_written: int
    snapshots_unchanged: int
    anomalies: int


class SnapshotRepositoryProtocol(Protocol):
    def write_snapshots(self, rows: list[Mapping[str, object]]) -> int: ...

    def read_snapshots(self, bug_id: int) -> list[dict[str, object]]: ...


def _existing_snapshots(repository: SnapshotRepositoryProtocol, bug_id: int) -> list[Snapshot]:
    return [Snapshot.from_row(row) for row in repository.read_snapshots(bug_id)]


def run_history_job(
    rows: Iterable[RowInput],
    repository: SnapshotRepositoryProtocol,
    settings: Optional[Settings] = None,
    revision_store: Optional[RevisionStore] = None,
    incremental: bool = False,
) -> JobResult:
    settings = settings or Settings()
    store = revision_store or RevisionStore()

    processed = 0
    failed = 0
    emitted = 0
    written = 0
    unchanged = 0
    anomalies = 0

    for group in group_record_rows(rows):
        bug_id = group[0].bug_id
        processed += 1
        try:
            history = reconstruct_record(group)
            snapshots = list(history.snapshots)
            if settings.annotate_measurements:
                snapshots = annotate_measurements(snapshots, status_field=settings.status_field)
            existing = _existing_snapshots(repository, bug_id)
            for persisted in existing:
                store.put(persisted.snapshot_id, persisted.body)
            if incremental:
                snapshots = rebase(existing, snapshots)
            check_contiguous(snapshots)
        except Exception:
            LOGGER.exception("bug %s: reconstruction failed, skipping", bug_id)
            failed += 1
            continue

        anomalies += history.anomalies
        emitted += len(history.snapshots)

        pending: list[Mapping[str, object]] = []
        for snapshot in snapshots:
            if store.put(snapshot.snapshot_id, snapshot.body).status == "noop":
                unchanged += 1
                continue
            pending.append(snapshot.to_row())
        written += repository.write_snapshots(pending)

    LOGGER.info(
        "history job finished: %s records (%s failed), %s snapshots written, %s anomalies",
        processed,
        failed,
        written,
        anomalies,
    )
    return JobResult(
        records_processed=processed,
        records_failed=failed,
        snapshots_emitted=emitted,
        snapshots_written=written,
        snapshots_unchanged=unchanged,
        anomalies=anomalies,
    )
