import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    dsn: str = ""
    status_field: str = "bug_status"
    annotate_measurements: bool = True
    shard_index: int = 0
    shard_count: int = 1
    log_level: str = "INFO"

    @property
    def shard(self) -> Optional[tuple[int, int]]:
        if self.shard_count <= 1:
            return None
        return (self.shard_index, self.shard_count)


def parse_shard(raw: str) -> tuple[int, int]:
    index_text, sep, count_text = raw.strip().partition("/")
    try:
        index = int(index_text)
        count = int(count_text) if sep else 0
    except ValueError as exc:
        raise ValueError(f"shard must look like <index>/<count>: {raw!r}") from exc
    if count < 1 or not (0 <= index < count):
        raise ValueError(f"shard must look like <index>/<count>: {raw!r}")
    return index, count


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ

    shard_index, shard_count = 0, 1
    raw_shard = env.get("HISTORY_SHARD")
    if raw_shard:
        shard_index, shard_count = parse_shard(raw_shard)

    return Settings(
        dsn=env.get("BUGZILLA_ETL_DB_URL") or env.get("DATABASE_URL") or "",
        status_field=env.get("HISTORY_STATUS_FIELD", "bug_status"),
        annotate_measurements=env.get("HISTORY_MEASUREMENTS", "true").lower() == "true",
        shard_index=shard_index,
        shard_count=shard_count,
        log_level=env.get("HISTORY_LOG_LEVEL", "INFO").upper(),
    )
