import importlib


InMemoryRepository = importlib.import_module("src.etl.repository").InMemoryRepository


def test_in_memory_repository_upserts_by_snapshot_id():
    repo = InMemoryRepository()

    repo.write_snapshots([{"snapshot_id": "1.20", "bug_id": 1, "modified_ts": 20, "expires_on": None}])
    repo.write_snapshots(
        [
            {"snapshot_id": "1.10", "bug_id": 1, "modified_ts": 10, "expires_on": 20},
            {"snapshot_id": "1.20", "bug_id": 1, "modified_ts": 20, "expires_on": 30},
            {"snapshot_id": "2.10", "bug_id": 2, "modified_ts": 10, "expires_on": None},
        ]
    )

    rows = repo.read_snapshots(1)

    assert [row["snapshot_id"] for row in rows] == ["1.10", "1.20"]
    assert rows[1]["expires_on"] == 30
    assert repo.snapshot_counts() == {"snapshots": 3, "bugs": 2, "runs": 0}


def test_in_memory_repository_returns_latest_runs_first():
    repo = InMemoryRepository()
    repo.write_run_history({"run_id": "run-1"})
    repo.write_run_history({"run_id": "run-2"})

    assert [run["run_id"] for run in repo.read_latest_runs(limit=1)] == ["run-2"]
