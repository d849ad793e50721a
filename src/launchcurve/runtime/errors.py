from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class CurveError(Exception):
    """Canonical error type for every market failure.

    `code` is the coarse class (forbidden, invalid_state, limit, ...) and
    `reason` the specific cause, so callers can tell failures apart.
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"
