"""Snapshot <-> persisted blob.

Layout: ``{"version": 1, "state": {<persisted fields>}}`` as UTF-8 JSON.
Unknown keys in ``state`` are ignored and missing keys take model
defaults, so older and newer blobs both load.
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from floatplan.exceptions import PersistenceError
from floatplan.models.snapshot import EPHEMERAL_FIELDS, PERSISTED_FIELDS, Snapshot

FORMAT_VERSION = 1


def encode(snapshot: Snapshot) -> bytes:
    state = snapshot.model_dump(mode="json", include=set(PERSISTED_FIELDS))
    return json.dumps({"version": FORMAT_VERSION, "state": state}, separators=(",", ":")).encode()


def decode(blob: bytes) -> Snapshot:
    """Parse a persisted blob; raises PersistenceError if it is unusable."""
    try:
        payload = json.loads(blob)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PersistenceError(f"snapshot is not valid JSON: {e}") from e

    if not isinstance(payload, dict) or not isinstance(payload.get("state"), dict):
        raise PersistenceError("snapshot has no state object")

    version = payload.get("version")
    if not isinstance(version, int) or version > FORMAT_VERSION:
        raise PersistenceError(f"unsupported snapshot version {version!r}")

    state = {k: v for k, v in payload["state"].items() if k not in EPHEMERAL_FIELDS}
    try:
        return Snapshot.model_validate(state)
    except ValidationError as e:
        raise PersistenceError(f"snapshot failed validation: {e.error_count()} errors") from e
