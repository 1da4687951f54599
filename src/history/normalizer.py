"""Change-set grouping fused with backward replay.

Activity rows arrive newest first. Each one is recorded on the change-set
for its timestamp and immediately undone against the accumulator, so once
the last row is consumed the accumulator holds the creation-time record.
"""

import logging
from typing import Optional, Union

from .context import RecordContext
from .fields import Slot, canonical_field_name, collection_of, insert_values, is_multi_field, split_values, take_values
from .models import Attachment, BugState, ChangeEvent


LOGGER = logging.getLogger(__name__)


def apply_historical_diff(
    context: RecordContext,
    modified_ts: int,
    modified_by: str,
    field_name: str,
    new_value: str,
    old_value: str,
    attach_id: str,
) -> None:
    field_name = canonical_field_name(field_name)
    change_set = context.change_set_for(modified_ts, modified_by)

    target: Optional[Union[BugState, Attachment]] = context.state
    if attach_id:
        target = context.attachments.get(attach_id)
        if target is None:
            context.anomaly("unable to find attachment %s for %s change at %s", attach_id, field_name, modified_ts)

    restore: list[Optional[Slot]] = []
    if target is not None:
        restore = revert_event(context, target, field_name, new_value, old_value)

    change_set.events.append(
        ChangeEvent(
            field_name=field_name,
            new_value=new_value,
            old_value=old_value,
            attach_id=attach_id,
            restore=tuple(restore),
        )
    )


def revert_event(
    context: RecordContext,
    target: Union[BugState, Attachment],
    field_name: str,
    new_value: str,
    old_value: str,
) -> list[Optional[Slot]]:
    """Undo one diff against the accumulator.

    Returns where each added value was taken from so forward replay can put
    it back in the same position.
    """
    added = split_values(field_name, new_value)
    removed = split_values(field_name, old_value)

    values = collection_of(target, field_name)
    if values is not None:
        slots = take_values(values, added, field_name)
        missed = [value for value, slot in zip(added, slots) if slot is None]
        if missed:
            context.anomaly("unable to find added value(s) %s:%s while reverting", field_name, missed)
        insert_values(values, removed, field_name)
        return slots
    if is_multi_field(field_name):
        # first time this set-valued field is seen; it was never in current state
        target.fields[field_name] = list(removed)
    else:
        target.fields[field_name] = old_value
    return []
