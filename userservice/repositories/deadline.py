from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from .errors import StorageTimeoutError


@dataclass(frozen=True)
class Deadline:
    """Absolute point in time by which a repository call must finish.

    - Measured with ``time.monotonic()`` so wall-clock changes do not matter.
    - Passed explicitly to every repository method; adapters combine it with
      their own default per-call timeout via :meth:`earliest`.
    """

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + float(seconds))

    @classmethod
    def earliest(cls, deadline: Optional["Deadline"], default_seconds: float) -> "Deadline":
        fallback = cls.after(default_seconds)
        if deadline is None or fallback.expires_at < deadline.expires_at:
            return fallback
        return deadline

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str, subject: Optional[str] = None) -> None:
        """Raise :class:`StorageTimeoutError` if the deadline has passed."""
        if self.expired:
            raise StorageTimeoutError("deadline exceeded", operation=operation, subject=subject)
