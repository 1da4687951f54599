import importlib
import logging

import pytest


lineage = importlib.import_module("src.history.lineage")
models = importlib.import_module("src.history.models")

Snapshot = models.Snapshot
SnapshotOrderError = lineage.SnapshotOrderError


def version(modified_ts, expires_on, bug_id=4, status="NEW"):
    return Snapshot.from_document(
        {
            "bug_id": bug_id,
            "modified_ts": modified_ts,
            "modified_by": "dev",
            "expires_on": expires_on,
            "bug_status": status,
        }
    )


def test_check_contiguous_accepts_gapless_history():
    lineage.check_contiguous([version(10, 20), version(20, 35), version(35, None)])


def test_check_contiguous_rejects_gap():
    with pytest.raises(SnapshotOrderError):
        lineage.check_contiguous([version(10, 20), version(25, None)])


def test_check_contiguous_rejects_closed_latest_version():
    with pytest.raises(SnapshotOrderError):
        lineage.check_contiguous([version(10, 20)])


def test_check_contiguous_rejects_mixed_bugs():
    with pytest.raises(SnapshotOrderError):
        lineage.check_contiguous([version(10, 20, bug_id=1), version(20, None, bug_id=2)])


def test_rebase_appends_new_versions_and_closes_persisted_head():
    existing = [version(10, 20), version(20, None)]
    rebuilt = [version(10, 20), version(20, 30), version(30, None, status="RESOLVED")]

    merged = lineage.rebase(existing, rebuilt)

    assert [snapshot.modified_ts for snapshot in merged] == [10, 20, 30]
    assert merged[1].expires_on == 30
    assert merged[1].body["expires_on"] == 30
    assert merged[2].body["bug_status"] == "RESOLVED"
    lineage.check_contiguous(merged)


def test_rebase_keeps_persisted_history_when_nothing_is_newer(caplog):
    caplog.set_level(logging.WARNING)
    existing = [version(10, 20), version(20, 50), version(50, None)]

    merged = lineage.rebase(existing, [version(10, 20), version(20, None)])

    assert merged == existing
    assert "newer than version to import" in caplog.text


def test_rebase_without_persisted_history_returns_rebuilt():
    rebuilt = [version(10, None)]

    assert lineage.rebase([], rebuilt) == rebuilt


def test_rebase_rejects_other_bug():
    with pytest.raises(SnapshotOrderError):
        lineage.rebase([version(10, None, bug_id=1)], [version(10, None, bug_id=2)])
