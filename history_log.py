from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from logging_utils import log_event
from models import AnalysisResult, Trend


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: datetime
    score: int
    delay_ms: float
    level_diff_db: float
    trend: Trend            # Relative to the previous entry

    @property
    def time_label(self) -> str:
        return self.timestamp.strftime("%H:%M:%S")


class HistoryLog:
    """In-memory, append-only record of completed analyses (lost on exit)."""

    def __init__(self):
        self._entries: list[HistoryEntry] = []

    def append(self, result: AnalysisResult, timestamp: Optional[datetime] = None) -> HistoryEntry:
        previous = self._entries[-1] if self._entries else None
        if previous is None:
            trend = Trend.NONE
        elif result.score > previous.score:
            trend = Trend.UP
        elif result.score < previous.score:
            trend = Trend.DOWN
        else:
            trend = Trend.FLAT

        entry = HistoryEntry(
            timestamp=timestamp or datetime.now(),
            score=result.score,
            delay_ms=result.delay_ms,
            level_diff_db=result.level_diff_db,
            trend=trend,
        )
        self._entries.append(entry)
        log_event("INFO", "History", "Entry added", score=entry.score, trend=trend.value,
                  count=len(self._entries))
        return entry

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def latest(self) -> Optional[HistoryEntry]:
        return self._entries[-1] if self._entries else None

    def recent(self, count: int) -> tuple[HistoryEntry, ...]:
        """Newest entries first, at most count of them."""
        if count <= 0:
            return ()
        return tuple(reversed(self._entries[-count:]))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(tuple(self._entries))
