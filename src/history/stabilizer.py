from collections.abc import Mapping

from .fields import PARTICIPANTS_FIELD


UNORDERED_FIELDS = (PARTICIPANTS_FIELD,)


def stabilize(document: Mapping[str, object]) -> dict[str, object]:
    stable = dict(document)
    for field_name in UNORDERED_FIELDS:
        values = stable.get(field_name)
        if isinstance(values, list) and values:
            stable[field_name] = sorted(values, key=str)
    return stable
