import argparse
import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

from src.history.models import Snapshot
from src.history.rows import to_epoch_ms

from .config import Settings, load_settings, parse_shard
from .logging_config import configure_logging
from .manual_runner import run_manual_rebuild
from .pit_query import find_snapshot_at
from .postgres_repository import PostgresRepository
from .repository import InMemoryRepository


LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="history")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rebuild = subparsers.add_parser("rebuild")
    _ = rebuild.add_argument("--bug-id", type=int, action="append", dest="bug_ids")
    _ = rebuild.add_argument("--shard")
    _ = rebuild.add_argument("--incremental", action="store_true")
    _ = rebuild.add_argument("--dry-run", action="store_true")

    replay_file = subparsers.add_parser("replay-file")
    _ = replay_file.add_argument("--input", required=True)
    _ = replay_file.add_argument("--output")

    snapshot_at = subparsers.add_parser("snapshot-at")
    _ = snapshot_at.add_argument("--bug-id", type=int, required=True)
    _ = snapshot_at.add_argument("--at", required=True)

    latest_runs = subparsers.add_parser("latest-runs")
    _ = latest_runs.add_argument("--limit", type=int, default=20)

    return parser


def _require_dsn(settings: Settings) -> str:
    if not settings.dsn:
        raise ValueError("BUGZILLA_ETL_DB_URL or DATABASE_URL is required")
    return settings.dsn


def read_rows_file(path: Path) -> Iterator[dict[str, object]]:
    with path.open(encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                row = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{line_number}: invalid JSON: {exc.msg}") from exc
            if not isinstance(row, dict):
                raise ValueError(f"{path}:{line_number}: row must be a JSON object")
            yield row


def run_rebuild_command(
    bug_ids: Optional[list[int]] = None,
    shard: Optional[str] = None,
    incremental: bool = False,
    dry_run: bool = False,
    settings: Optional[Settings] = None,
) -> dict[str, object]:
    settings = settings or load_settings()
    dsn = _require_dsn(settings)

    source = PostgresRepository(dsn=dsn)
    effective_shard = parse_shard(shard) if shard else settings.shard
    rows = source.read_history_rows(bug_ids=bug_ids, shard=effective_shard)

    if dry_run:
        sink = InMemoryRepository()
        summary = run_manual_rebuild(rows=rows, repository=sink, settings=settings)
        summary["dry_run"] = True
        summary["counts"] = sink.snapshot_counts()
        return summary

    summary = run_manual_rebuild(
        rows=rows,
        repository=source,
        settings=settings,
        run_history_repository=source,
        incremental=incremental,
    )
    summary["dry_run"] = False
    return summary


def run_replay_file_command(
    input_path: str,
    output_path: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> dict[str, object]:
    settings = settings or load_settings()
    sink = InMemoryRepository()
    summary = run_manual_rebuild(
        rows=read_rows_file(Path(input_path)),
        repository=sink,
        settings=settings,
        run_history_repository=sink,
    )

    if output_path:
        with Path(output_path).open("w", encoding="utf-8") as handle:
            for bug_id in sorted({int(str(row["bug_id"])) for row in sink.snapshots.values()}):
                for row in sink.read_snapshots(bug_id):
                    handle.write(json.dumps(row, default=str) + "\n")
        summary["output"] = output_path
    summary["counts"] = sink.snapshot_counts()
    return summary


def read_snapshot_at_command(bug_id: int, at: str, settings: Optional[Settings] = None) -> Optional[dict[str, object]]:
    settings = settings or load_settings()
    repository = PostgresRepository(dsn=_require_dsn(settings))
    snapshots = [Snapshot.from_row(row) for row in repository.read_snapshots(bug_id)]
    snapshot = find_snapshot_at(snapshots, to_epoch_ms(at))
    if snapshot is None:
        return None
    return snapshot.document()


def read_latest_runs_command(limit: int = 20, settings: Optional[Settings] = None) -> list[dict[str, object]]:
    settings = settings or load_settings()
    repository = PostgresRepository(dsn=_require_dsn(settings))
    return repository.read_latest_runs(limit=limit)


def _exit_code(summary: dict[str, object]) -> int:
    return 0 if summary.get("status") == "success" else 2


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings()
    configure_logging(settings.log_level)

    if args.command == "rebuild":
        summary = run_rebuild_command(
            bug_ids=args.bug_ids,
            shard=args.shard,
            incremental=args.incremental,
            dry_run=args.dry_run,
            settings=settings,
        )
        print(json.dumps(summary, default=str))
        return _exit_code(summary)

    if args.command == "replay-file":
        summary = run_replay_file_command(args.input, args.output, settings=settings)
        print(json.dumps(summary, default=str))
        return _exit_code(summary)

    if args.command == "snapshot-at":
        document = read_snapshot_at_command(args.bug_id, args.at, settings=settings)
        if document is None:
            LOGGER.warning("bug %s has no version valid at %s", args.bug_id, args.at)
            return 2
        print(json.dumps(document, default=str, indent=2))
        return 0

    if args.command == "latest-runs":
        rows = read_latest_runs_command(limit=args.limit, settings=settings)
        print(json.dumps(rows, default=str))
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
