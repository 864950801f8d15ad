"""Bounded diagnostic log for import attempts.

Every extraction attempt is recorded here for post-hoc debugging. The log is
advisory: nothing reads it to make a decision. Entries are mirrored to the
``intake.diagnostics`` logger.
"""

import json
import logging
from collections import deque
from datetime import datetime
from typing import Any, Protocol

logger = logging.getLogger("intake.diagnostics")


class DiagnosticSink(Protocol):
    """Anything that accepts diagnostic events."""

    def record(self, message: str, details: Any = None) -> None: ...


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return str(value)


def _squash(value: str) -> str:
    return " ".join(value.split())


class DiagnosticLog:
    """Append-only ring buffer of formatted diagnostic entries.

    Oldest entries are dropped once ``max_entries`` is reached.
    """

    def __init__(self, max_entries: int = 180) -> None:
        self.max_entries = max_entries
        self._entries: deque[str] = deque(maxlen=max_entries)

    def record(self, message: str, details: Any = None) -> None:
        """Append one entry.

        Args:
            message: Short event description
            details: Optional structured context (serialized to JSON)
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        base = _squash(message) or "Debug event"
        detail_text = _squash(_stringify(details))
        entry = f"[{timestamp}] {base} | {detail_text}" if detail_text else f"[{timestamp}] {base}"
        self._entries.append(entry)
        logger.info(entry)

    def entries(self) -> list[str]:
        """Snapshot of the current entries, oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class NullDiagnosticLog:
    """Sink that discards everything."""

    def record(self, message: str, details: Any = None) -> None:
        return None
