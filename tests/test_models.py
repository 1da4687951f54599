import importlib
import json
import logging


models = importlib.import_module("src.history.models")

Flag = models.Flag
Snapshot = models.Snapshot


def test_flag_parses_name_status_and_requestee():
    flag = Flag(value="review?(bob@example.com)")

    assert flag.name == "review"
    assert flag.status == "?"
    assert flag.requestee == "bob@example.com"


def test_flag_without_status_or_requestee():
    flag = Flag(value="in-testsuite")

    assert flag.name == "in-testsuite"
    assert flag.status is None
    assert flag.requestee is None


def test_flag_with_unclosed_requestee_is_reported(caplog):
    caplog.set_level(logging.WARNING)

    flag = Flag(value="needinfo?(bob")

    assert flag.requestee is None
    assert flag.status == "?"
    assert "unclosed parens" in caplog.text


def test_bug_state_document_copies_lists():
    state = models.BugState(bug_id=7, modified_ts=100, modified_by="dev", reported_by="reporter")
    state.fields["cc"] = ["a"]

    document = state.to_dict()
    state.fields["cc"].append("b")

    assert document["_id"] == "7.100"
    assert document["cc"] == ["a"]
    assert document["flags"] == []
    assert document["attachments"] == []


def test_snapshot_row_round_trips_through_json_body():
    snapshot = Snapshot.from_document(
        {"bug_id": 3, "modified_ts": 100, "modified_by": "dev", "expires_on": 200, "bug_status": "NEW"}
    )

    row = snapshot.to_row()
    restored = Snapshot.from_row(row)

    assert row["snapshot_id"] == "3.100"
    assert row["expires_on"] == 200
    assert json.loads(row["body"])["bug_status"] == "NEW"
    assert restored == snapshot


def test_snapshot_with_expiry_updates_body_and_interval():
    snapshot = Snapshot.from_document({"bug_id": 3, "modified_ts": 100, "expires_on": None})

    closed = snapshot.with_expiry(250)

    assert closed.expires_on == 250
    assert closed.body["expires_on"] == 250
    assert snapshot.expires_on is None
