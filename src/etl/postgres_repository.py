from collections.abc import Callable, Mapping, Sequence
from typing import Optional, Protocol, cast

import psycopg2

from src.history.rows import HistoryRow


HISTORY_ROW_COLUMNS = (
    "bug_id",
    "modified_ts",
    "modified_by",
    "field_name",
    "field_value",
    "field_value_removed",
    "attach_id",
    "merge_order",
)


class CursorProtocol(Protocol):
    description: list[tuple[str]]

    def execute(self, sql: str, params: tuple[object, ...]) -> None: ...

    def fetchall(self) -> list[tuple[object, ...]]: ...

    def fetchone(self) -> Optional[tuple[object, ...]]: ...

    def close(self) -> None: ...


class ConnectionProtocol(Protocol):
    def cursor(self) -> CursorProtocol: ...

    def commit(self) -> None: ...

    def close(self) -> None: ...


class PostgresRepository:
    def __init__(
        self,
        dsn: str = "",
        connection_factory: Optional[Callable[[], ConnectionProtocol]] = None,
    ) -> None:
        self._dsn: str = dsn
        self._connection_factory: Optional[Callable[[], ConnectionProtocol]] = (
            connection_factory
        )

    def _connect(self) -> ConnectionProtocol:
        if self._connection_factory is not None:
            return self._connection_factory()
        if not self._dsn:
            raise ValueError("dsn is required when no connection_factory is provided")
        return cast(
            ConnectionProtocol,
            cast(object, psycopg2.connect(self._dsn)),
        )

    def read_history_rows(
        self,
        bug_ids: Optional[Sequence[int]] = None,
        shard: Optional[tuple[int, int]] = None,
    ) -> list[HistoryRow]:
        clauses: list[str] = []
        params: list[object] = []
        if bug_ids:
            clauses.append("bug_id = ANY(%s)")
            params.append(list(bug_ids))
        if shard is not None:
            index, count = shard
            clauses.append("bug_id %% %s = %s")
            params.extend([count, index])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        cursor.execute(
            f"""
            SELECT
                {", ".join(HISTORY_ROW_COLUMNS)}
            FROM bug_history_rows
            {where}
            ORDER BY bug_id ASC, merge_order ASC, modified_ts DESC, id ASC
            """,
            tuple(params),
        )
        rows = cursor.fetchall()
        columns = [desc[0] for desc in cursor.description]
        cursor.close()
        conn.close()
        return [HistoryRow.from_mapping(dict(zip(columns, row))) for row in rows]

    def write_snapshots(self, rows: list[Mapping[str, object]]) -> int:
        if not rows:
            return 0
        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        for row in rows:
            cursor.execute(
                """
                INSERT INTO bug_versions(
                    snapshot_id,
                    bug_id,
                    modified_ts,
                    expires_on,
                    body
                ) VALUES (%s, %s, %s, %s, %s::jsonb)
                ON CONFLICT (snapshot_id) DO UPDATE SET
                    expires_on = EXCLUDED.expires_on,
                    body = EXCLUDED.body,
                    updated_at = NOW()
                """,
                (
                    row["snapshot_id"],
                    row["bug_id"],
                    row["modified_ts"],
                    row.get("expires_on"),
                    row["body"],
                ),
            )
        conn.commit()
        cursor.close()
        conn.close()
        return len(rows)

    def read_snapshots(self, bug_id: int) -> list[dict[str, object]]:
        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        cursor.execute(
            """
            SELECT
                snapshot_id,
                bug_id,
                modified_ts,
                expires_on,
                body
            FROM bug_versions
            WHERE bug_id = %s
            ORDER BY modified_ts ASC
            """,
            (bug_id,),
        )
        rows = cursor.fetchall()
        columns = [desc[0] for desc in cursor.description]
        cursor.close()
        conn.close()
        return [dict(zip(columns, row)) for row in rows]

    def write_run_history(self, run: Mapping[str, object]) -> None:
        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        cursor.execute(
            """
            INSERT INTO history_runs(
                run_id,
                started_at,
                finished_at,
                status,
                records_processed,
                records_failed,
                snapshots_written,
                anomalies,
                error_message
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                run["run_id"],
                run["started_at"],
                run["finished_at"],
                run["status"],
                run["records_processed"],
                run["records_failed"],
                run["snapshots_written"],
                run["anomalies"],
                run["error_message"],
            ),
        )
        conn.commit()
        cursor.close()
        conn.close()

    def read_latest_runs(self, limit: int = 20) -> list[dict[str, object]]:
        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        cursor.execute(
            """
            SELECT
                run_id,
                started_at,
                finished_at,
                status,
                records_processed,
                records_failed,
                snapshots_written,
                anomalies,
                error_message
            FROM history_runs
            ORDER BY finished_at DESC
            LIMIT %s
            """,
            (limit,),
        )
        rows = cursor.fetchall()
        columns = [desc[0] for desc in cursor.description]
        cursor.close()
        conn.close()
        return [dict(zip(columns, row)) for row in rows]
