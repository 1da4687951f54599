from collections.abc import Mapping


class InMemoryRepository:
    def __init__(self) -> None:
        self.snapshots: dict[str, dict[str, object]] = {}
        self.runs: list[dict[str, object]] = []

    def write_snapshots(self, rows: list[Mapping[str, object]]) -> int:
        for row in rows:
            self.snapshots[str(row["snapshot_id"])] = dict(row)
        return len(rows)

    def read_snapshots(self, bug_id: int) -> list[dict[str, object]]:
        rows = [row for row in self.snapshots.values() if row.get("bug_id") == bug_id]
        rows.sort(key=lambda row: int(str(row["modified_ts"])))
        return rows

    def write_run_history(self, run: Mapping[str, object]) -> None:
        self.runs.append(dict(run))

    def read_latest_runs(self, limit: int = 20) -> list[dict[str, object]]:
        return list(reversed(self.runs))[:limit]

    def snapshot_counts(self) -> dict[str, int]:
        return {
            "snapshots": len(self.snapshots),
            "bugs": len({row.get("bug_id") for row in self.snapshots.values()}),
            "runs": len(self.runs),
        }
