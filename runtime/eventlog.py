from typing import List, Optional, Tuple
from engine.model import Event


class EventLog:
    """Append-only match history polled by the renderer for animation."""

    def __init__(self):
        self._log: List[Event] = []

    def __len__(self) -> int:
        return len(self._log)

    def append(self, evt: Event) -> int:
        """Append one event and return its offset."""
        self._log.append(evt)
        return len(self._log) - 1

    def append_many(self, evts: List[Event]) -> Tuple[int, int]:
        """Append events and return (start_offset, end_offset)."""
        start = len(self._log)
        self._log.extend(evts)
        end = len(self._log) - 1
        return start, end

    def since(self, offset: int, limit: int = 1000, kind: Optional[str] = None) -> Tuple[List[Event], int]:
        """Return events starting from offset, up to limit, optionally of one kind.

        The returned offset is where the next poll should resume.
        """
        offset = max(0, offset)
        chunk = self._log[offset: offset + limit]
        next_offset = offset + len(chunk)
        if kind is not None:
            chunk = [e for e in chunk if e.kind == kind]
        return chunk, next_offset
