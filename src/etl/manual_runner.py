from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import uuid4

from src.history.reconstruct import RowInput

from .config import Settings
from .job import SnapshotRepositoryProtocol, run_history_job
from .revision_store import RevisionStore


class RunHistoryRepositoryProtocol(Protocol):
    def write_run_history(self, run: Mapping[str, object]) -> None: ...


def run_manual_rebuild(
    rows: Iterable[RowInput],
    repository: SnapshotRepositoryProtocol,
    settings: Optional[Settings] = None,
    run_history_repository: Optional[RunHistoryRepositoryProtocol] = None,
    revision_store: Optional[RevisionStore] = None,
    incremental: bool = False,
) -> dict[str, object]:
    run_id = str(uuid4())
    started_at = datetime.now(timezone.utc)

    try:
        result = run_history_job(
            rows=rows,
            repository=repository,
            settings=settings,
            revision_store=revision_store,
            incremental=incremental,
        )
        degraded = result.records_failed > 0 or result.anomalies > 0
        status = "degraded" if degraded else "success"
        error_message: Optional[str] = None
        records_processed = result.records_processed
        records_failed = result.records_failed
        snapshots_written = result.snapshots_written
        anomalies = result.anomalies
    except Exception as error:
        status = "failed"
        error_message = str(error)
        records_processed = 0
        records_failed = 0
        snapshots_written = 0
        anomalies = 0

    finished_at = datetime.now(timezone.utc)
    run_record: dict[str, object] = {
        "run_id": run_id,
        "started_at": started_at.isoformat(),
        "finished_at": finished_at.isoformat(),
        "status": status,
        "records_processed": records_processed,
        "records_failed": records_failed,
        "snapshots_written": snapshots_written,
        "anomalies": anomalies,
        "error_message": error_message,
    }

    if run_history_repository is not None:
        run_history_repository.write_run_history(run_record)

    return run_record
