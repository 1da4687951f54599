import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class PutResult:
    status: str
    revision_number: int


def content_hash(body: Mapping[str, object]) -> str:
    return hashlib.sha256(
        json.dumps(dict(body), sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()


class RevisionStore:
    """Remembers the body hash of every snapshot written so far."""

    def __init__(self) -> None:
        self._rows: dict[str, list[str]] = {}

    def put(self, snapshot_id: str, body: Mapping[str, object]) -> PutResult:
        body_hash = content_hash(body)
        hashes = self._rows.setdefault(snapshot_id, [])
        if not hashes:
            hashes.append(body_hash)
            return PutResult(status="inserted", revision_number=1)
        if hashes[-1] == body_hash:
            return PutResult(status="noop", revision_number=len(hashes))
        hashes.append(body_hash)
        return PutResult(status="revision", revision_number=len(hashes))
