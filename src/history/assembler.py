import logging

from .context import RecordContext
from .fields import FLAGS_FIELD
from .models import Attachment, ChangeEvent, Flag


LOGGER = logging.getLogger(__name__)


def set_scalar(context: RecordContext, field_name: str, value: str) -> None:
    context.state.fields[field_name] = value


def append_set_value(context: RecordContext, field_name: str, value: str) -> None:
    if field_name == FLAGS_FIELD:
        context.state.flags.append(Flag(value=value))
        return

    current = context.state.fields.setdefault(field_name, [])
    if not isinstance(current, list):
        context.anomaly("unable to append %r to non-list field %s (current value %r)", value, field_name, current)
        return
    current.append(value)


def upsert_attachment(
    context: RecordContext,
    modified_ts: int,
    modified_by: str,
    field_name: str,
    value: str,
    attach_id: str,
) -> Attachment:
    # the creation marker makes the attachment's arrival a snapshot boundary
    change_set = context.change_set_for(modified_ts, modified_by)
    change_set.events.append(
        ChangeEvent(field_name=field_name, new_value=value, attach_id=attach_id, creation=True)
    )

    attachment = context.attachments.get(attach_id)
    if attachment is None:
        attachment = Attachment(attach_id=attach_id, created_ts=modified_ts, created_by=modified_by)
        context.attachments[attach_id] = attachment
        LOGGER.debug("bug %s: new attachment %s at %s", context.bug_id, attach_id, modified_ts)
    attachment.fields[field_name] = value
    return attachment


def upsert_flag_from_current(
    context: RecordContext,
    modified_ts: int,
    modified_by: str,
    value: str,
    attach_id: str,
) -> None:
    flag = Flag(value=value, modified_ts=modified_ts, modified_by=modified_by)
    if not attach_id:
        context.state.flags.append(flag)
        return

    attachment = context.attachments.get(attach_id)
    if attachment is None:
        context.anomaly("unable to find attachment %s for flag %r", attach_id, value)
        return
    attachment.flags.append(flag)
