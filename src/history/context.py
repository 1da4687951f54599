import logging
from dataclasses import dataclass, field
from typing import Optional

from .models import Attachment, BugState, ChangeSet


LOGGER = logging.getLogger(__name__)


@dataclass
class RecordContext:
    """Everything accumulated for one record while its rows stream in.

    A fresh context is built for every record, so nothing leaks between
    records.
    """

    state: BugState
    created_ts: Optional[int] = None
    attachments: dict[str, Attachment] = field(default_factory=dict)
    change_sets: dict[int, ChangeSet] = field(default_factory=dict)
    anomalies: int = 0

    @property
    def bug_id(self) -> int:
        return self.state.bug_id

    @property
    def anchored(self) -> bool:
        return self.created_ts is not None

    def change_set_for(self, modified_ts: int, modified_by: str) -> ChangeSet:
        change_set = self.change_sets.get(modified_ts)
        if change_set is None:
            change_set = ChangeSet(
                bug_id=self.bug_id,
                modified_ts=modified_ts,
                modified_by=modified_by,
            )
            self.change_sets[modified_ts] = change_set
        return change_set

    def anomaly(self, message: str, *args: object) -> None:
        self.anomalies += 1
        LOGGER.warning("bug %s: " + message, self.bug_id, *args)


def start_record(
    bug_id: int,
    modified_ts: int,
    modified_by: str,
    anchored: bool,
) -> RecordContext:
    state = BugState(
        bug_id=bug_id,
        modified_ts=modified_ts,
        modified_by=modified_by,
        reported_by=modified_by,
    )
    context = RecordContext(state=state, created_ts=modified_ts if anchored else None)
    if not anchored:
        context.anomaly("current bugs table record not found")
    return context
