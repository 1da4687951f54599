import importlib
import json

import pytest


cli = importlib.import_module("src.etl.cli")
config = importlib.import_module("src.etl.config")
models = importlib.import_module("src.history.models")

Settings = config.Settings


def history_row(merge_order, field_name, field_value="", removed="", ts=10, bug_id=3):
    return {
        "bug_id": bug_id,
        "modified_ts": ts,
        "modified_by": "dev",
        "field_name": field_name,
        "field_value": field_value,
        "field_value_removed": removed,
        "attach_id": "",
        "merge_order": merge_order,
    }


def test_cli_exposes_rebuild_command():
    parser = cli.build_parser()
    args = parser.parse_args(["rebuild", "--bug-id", "1", "--bug-id", "2", "--shard", "0/4", "--dry-run"])

    assert args.command == "rebuild"
    assert args.bug_ids == [1, 2]
    assert args.shard == "0/4"
    assert args.dry_run is True
    assert args.incremental is False


def test_cli_exposes_latest_runs_command_with_defaults():
    args = cli.build_parser().parse_args(["latest-runs"])

    assert args.command == "latest-runs"
    assert args.limit == 20


def test_rebuild_command_requires_database_url():
    with pytest.raises(ValueError):
        cli.run_rebuild_command(settings=Settings())


def test_rebuild_dry_run_reads_shard_and_writes_nothing(monkeypatch):
    calls = {}

    class FakeRepository:
        def __init__(self, dsn: str) -> None:
            self.dsn = dsn

        def read_history_rows(self, bug_ids, shard):
            calls["bug_ids"] = bug_ids
            calls["shard"] = shard
            return [history_row(1, "bug_status", "NEW")]

        def write_snapshots(self, rows):
            raise AssertionError("dry run must not write")

    monkeypatch.setattr(cli, "PostgresRepository", FakeRepository)

    summary = cli.run_rebuild_command(
        bug_ids=[3],
        shard="1/2",
        dry_run=True,
        settings=Settings(dsn="postgres://example"),
    )

    assert calls == {"bug_ids": [3], "shard": (1, 2)}
    assert summary["dry_run"] is True
    assert summary["status"] == "success"
    assert summary["counts"] == {"snapshots": 1, "bugs": 1, "runs": 0}


def test_rebuild_command_persists_versions_and_run(monkeypatch):
    written = []
    runs = []

    class FakeRepository:
        def __init__(self, dsn: str) -> None:
            self.dsn = dsn

        def read_history_rows(self, bug_ids, shard):
            return [
                history_row(1, "bug_status", "ASSIGNED"),
                history_row(9, "bug_status", "ASSIGNED", "NEW", ts=100),
            ]

        def write_snapshots(self, rows):
            written.extend(rows)
            return len(rows)

        def read_snapshots(self, bug_id):
            return []

        def write_run_history(self, run):
            runs.append(run)

    monkeypatch.setattr(cli, "PostgresRepository", FakeRepository)

    summary = cli.run_rebuild_command(settings=Settings(dsn="postgres://example", shard_index=0, shard_count=2))

    assert summary["dry_run"] is False
    assert summary["snapshots_written"] == 2
    assert [row["snapshot_id"] for row in written] == ["3.10", "3.100"]
    assert runs[0]["status"] == "success"


def test_replay_file_command_writes_versions_as_json_lines(tmp_path, monkeypatch, capsys):
    for name in ("HISTORY_LOG_LEVEL", "HISTORY_SHARD", "HISTORY_MEASUREMENTS", "HISTORY_STATUS_FIELD"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    source = tmp_path / "rows.jsonl"
    output = tmp_path / "versions.jsonl"
    rows = [
        history_row(1, "bug_status", "RESOLVED"),
        history_row(9, "bug_status", "RESOLVED", "NEW", ts=200),
        history_row(1, "bug_status", "NEW", bug_id=4),
    ]
    source.write_text("\n".join(json.dumps(row) for row in rows) + "\n\n", encoding="utf-8")

    exit_code = cli.main(["replay-file", "--input", str(source), "--output", str(output)])

    summary = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    lines = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
    assert exit_code == 0
    assert summary["records_processed"] == 2
    assert summary["counts"]["snapshots"] == 3
    assert [line["snapshot_id"] for line in lines] == ["3.10", "3.200", "4.10"]
    assert json.loads(lines[1]["body"])["bug_status"] == "RESOLVED"
    assert json.loads(lines[0]["body"])["measurements"]["days_in_previous_status"] == -1


def test_read_rows_file_rejects_invalid_json(tmp_path):
    source = tmp_path / "broken.jsonl"
    source.write_text('{"bug_id": 1}\nnot json\n', encoding="utf-8")

    with pytest.raises(ValueError, match="broken.jsonl:2"):
        list(cli.read_rows_file(source))


def test_snapshot_at_command_returns_version_valid_at_time(monkeypatch):
    stored = [
        models.Snapshot.from_document({"bug_id": 3, "modified_ts": 10, "expires_on": 200, "bug_status": "NEW"}),
        models.Snapshot.from_document({"bug_id": 3, "modified_ts": 200, "expires_on": None, "bug_status": "RESOLVED"}),
    ]

    class FakeRepository:
        def __init__(self, dsn: str) -> None:
            self.dsn = dsn

        def read_snapshots(self, bug_id):
            assert bug_id == 3
            return [snapshot.to_row() for snapshot in stored]

    monkeypatch.setattr(cli, "PostgresRepository", FakeRepository)
    settings = Settings(dsn="postgres://example")

    assert cli.read_snapshot_at_command(3, "150", settings=settings)["bug_status"] == "NEW"
    assert cli.read_snapshot_at_command(3, "200", settings=settings)["bug_status"] == "RESOLVED"
    assert cli.read_snapshot_at_command(3, "5", settings=settings) is None


def test_read_latest_runs_command_uses_postgres_repository(monkeypatch):
    class FakeRepository:
        def __init__(self, dsn: str) -> None:
            self.dsn = dsn

        def read_latest_runs(self, limit: int):
            return [{"limit": limit, "dsn": self.dsn}]

    monkeypatch.setattr(cli, "PostgresRepository", FakeRepository)

    rows = cli.read_latest_runs_command(limit=3, settings=Settings(dsn="postgres://example"))

    assert rows == [{"limit": 3, "dsn": "postgres://example"}]
