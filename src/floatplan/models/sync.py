"""Outbound write intents and queued mutations."""

from __future__ import annotations

from enum import Enum
from typing import Any

from floatplan.models._base import Record
from floatplan.timeutil import UtcDatetime


class MutationType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CHECK_IN = "check_in"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class MutationIntent(Record):
    """What a producer wants delivered; the queue assigns id and bookkeeping."""

    type: MutationType
    endpoint: str
    method: HttpMethod
    body: Any = None


class PendingMutation(Record):
    id: str
    type: MutationType
    endpoint: str
    method: HttpMethod
    body: Any = None
    created_at: UtcDatetime
    retry_count: int = 0
