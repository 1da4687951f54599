"""Forward replay from the creation-time state.

Walks change-sets oldest first and emits one snapshot for the creation state
plus one per change-set, each closed by the next change-set's timestamp.
"""

import logging
from types import MappingProxyType
from typing import Optional, Union

from .context import RecordContext
from .fields import Slot, collection_of, insert_values, is_multi_field, remove_values, restore_values, split_values
from .models import Attachment, BugState, ChangeEvent, ChangeSet, Flag, Snapshot
from .stabilizer import stabilize


LOGGER = logging.getLogger(__name__)


def _creation_ts(context: RecordContext, change_sets: list[ChangeSet]) -> int:
    if context.created_ts is not None:
        return context.created_ts
    if change_sets:
        return change_sets[-1].modified_ts
    return context.state.modified_ts


def rebuild_snapshots(context: RecordContext) -> list[Snapshot]:
    state = context.state
    state.attachments = []
    pending_attachments = sorted(
        context.attachments.values(), key=lambda attachment: (attachment.created_ts, attachment.attach_id)
    )
    # newest first, so pop() yields the oldest
    change_sets = sorted(context.change_sets.values(), key=lambda change_set: change_set.modified_ts, reverse=True)

    created_ts = _creation_ts(context, change_sets)
    if not context.anchored and change_sets:
        # without an anchor row the earliest actor stands in for the reporter
        state.reported_by = change_sets[-1].modified_by
    origin = ChangeSet(bug_id=state.bug_id, modified_ts=created_ts, modified_by=state.reported_by)
    while change_sets and change_sets[-1].modified_ts <= created_ts:
        folded = change_sets.pop()
        LOGGER.debug("bug %s: folding change-set at %s into creation", state.bug_id, folded.modified_ts)
        # events run in reverse, so later change-sets go in front
        origin.events[:0] = folded.events

    snapshots: list[Snapshot] = []
    current: Optional[ChangeSet] = origin
    while current is not None:
        following = change_sets.pop() if change_sets else None

        state.expires_on = following.modified_ts if following is not None else None
        state.modified_ts = current.modified_ts
        state.modified_by = current.modified_by

        while pending_attachments and pending_attachments[0].created_ts <= state.modified_ts:
            attachment = pending_attachments.pop(0)
            LOGGER.debug("bug %s: attaching %s to version %s", state.bug_id, attachment.attach_id, state.modified_ts)
            state.attachments.append(attachment)

        # backward replay undid these front to back
        for event in reversed(current.events):
            apply_event(context, current, event)

        snapshots.append(emit_snapshot(state))
        current = following

    return snapshots


def _event_target(context: RecordContext, event: ChangeEvent) -> Optional[Union[BugState, Attachment]]:
    if not event.attach_id:
        return context.state
    attachment = context.state.find_attachment(event.attach_id)
    if attachment is None and event.attach_id in context.attachments:
        context.anomaly("attachment %s changed before it was created", event.attach_id)
    return attachment


def _stamped(slot: Optional[Slot], change_set: ChangeSet) -> Optional[Slot]:
    """Give a flag re-inserted by backward replay the time and actor that set it."""
    if slot is None:
        return None
    index, item = slot
    if isinstance(item, Flag) and item.modified_ts is None:
        return index, Flag(value=item.value, modified_ts=change_set.modified_ts, modified_by=change_set.modified_by)
    return slot


def apply_event(context: RecordContext, change_set: ChangeSet, event: ChangeEvent) -> None:
    if event.creation:
        return

    target = _event_target(context, event)
    if target is None:
        return

    field_name = event.field_name
    values = collection_of(target, field_name)
    if values is not None:
        removed = split_values(field_name, event.old_value)
        # backward replay appended these, so they are the trailing occurrences
        missed = remove_values(values, removed, field_name, from_end=True)
        if missed:
            context.anomaly("unable to find removed value(s) %s:%s at %s", field_name, missed, change_set.modified_ts)
        added = split_values(field_name, event.new_value)
        if not event.restore:
            insert_values(values, added, field_name, change_set.modified_ts, change_set.modified_by)
            return
        restore_values(values, [_stamped(slot, change_set) for slot in event.restore])
        fresh = [value for value, slot in zip(added, event.restore) if slot is None]
        insert_values(values, fresh, field_name, change_set.modified_ts, change_set.modified_by)
    elif is_multi_field(field_name):
        target.fields[field_name] = split_values(field_name, event.new_value)
    else:
        target.fields[field_name] = event.new_value


def emit_snapshot(state: BugState) -> Snapshot:
    document = stabilize(state.to_dict())
    LOGGER.debug("bug %s: emitting version %s", state.bug_id, state.snapshot_id)
    return Snapshot(
        bug_id=state.bug_id,
        modified_ts=state.modified_ts,
        modified_by=state.modified_by,
        expires_on=state.expires_on,
        body=MappingProxyType(document),
    )
