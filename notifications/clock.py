"""Clock and identifier sources injected into services and repositories."""

import uuid
from datetime import datetime
from typing import Protocol

from django.utils import timezone


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current timezone-aware time."""
        ...


class SystemClock:
    """Clock backed by Django's timezone-aware ``now``."""

    def now(self) -> datetime:
        return timezone.now()


def generate_id() -> str:
    """Return a new random identifier."""
    return str(uuid.uuid4())
