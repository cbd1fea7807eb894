"""Injectable sources of time and identifiers."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import uuid4

from tales.storage.common import utc_now


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current timezone-aware UTC time."""
        raise NotImplementedError


class IdGenerator(Protocol):
    """Source of new unique identifiers."""

    def new_id(self) -> str:
        """Return a new unique identifier."""
        raise NotImplementedError


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return utc_now()


class UuidGenerator:
    """Random uuid4 identifiers."""

    def new_id(self) -> str:
        return str(uuid4())
