from pathlib import Path


def test_history_rows_migration_contains_replay_columns_and_order_index():
    sql = Path("migrations/001_bug_history_rows.sql").read_text(encoding="utf-8")

    for column in [
        "bug_id",
        "modified_ts",
        "modified_by",
        "field_name",
        "field_value",
        "field_value_removed",
        "attach_id",
        "merge_order",
    ]:
        assert column in sql
    assert "(bug_id, merge_order, modified_ts DESC, id)" in sql


def test_bug_versions_migration_keys_versions_by_snapshot_id():
    sql = Path("migrations/002_bug_versions.sql").read_text(encoding="utf-8")

    assert "snapshot_id TEXT PRIMARY KEY" in sql
    assert "body JSONB NOT NULL" in sql
    assert "expires_on IS NULL OR expires_on > modified_ts" in sql
