"""Base model and shared field types for domain records.

Every record inherits from :class:`Record`, which is frozen so the only
way to change state is to build a new record through a store mutator, and
ignores unknown keys so snapshots written by newer versions still load.
"""

from __future__ import annotations

import math
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict


def coerce_finite(value: Any) -> float | None:
    """Map NaN, infinities, sentinels and junk to ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if text in {"", "MM", "--", "NaN", "nan"}:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    return None


FiniteFloat = Annotated[float | None, BeforeValidator(coerce_finite)]
"""Optional measurement; non-finite or unparsable input becomes ``None``."""


class Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class Patch(BaseModel):
    """Partial update for a record; only explicitly set fields apply."""

    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict[str, Any]:
        # getattr keeps nested models as models; model_dump would flatten them.
        return {name: getattr(self, name) for name in self.model_fields_set}
