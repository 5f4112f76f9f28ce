"""
Value types produced while classifying a note.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class SortSuggestion:
    """A destination proposal for one note. Confidence is always in [0, 1]."""
    folder: str
    confidence: float
    reason: str = ""

    def __post_init__(self):
        # frozen dataclass, so clamp through object.__setattr__
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))

    @property
    def is_empty(self) -> bool:
        return not self.folder

    @classmethod
    def empty(cls, reason: str = "") -> "SortSuggestion":
        return cls(folder="", confidence=0.0, reason=reason)


class SortOutcome(Enum):
    MOVED = "moved"
    DRY_RUN = "dry_run"
    READ_ERROR = "read_error"
    TOO_SHORT = "too_short"
    EMBEDDING_FAILED = "embedding_failed"
    NO_SUGGESTION = "no_suggestion"
    BELOW_THRESHOLD = "below_threshold"
    CANCELLED = "cancelled"
    MOVE_FAILED = "move_failed"

    @property
    def is_success(self) -> bool:
        return self in (SortOutcome.MOVED, SortOutcome.DRY_RUN)

    @property
    def is_skip(self) -> bool:
        return self in (SortOutcome.TOO_SHORT, SortOutcome.CANCELLED)


@dataclass
class SortResult:
    outcome: SortOutcome
    source: str
    destination: Optional[str] = None
    suggestion: Optional[SortSuggestion] = None
    strategy: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome.is_success

    @property
    def confidence(self) -> float:
        return self.suggestion.confidence if self.suggestion else 0.0


@dataclass
class SortHistoryEntry:
    note_id: str
    from_path: str
    to_path: str
    confidence: float
    timestamp: float = field(default_factory=time.time)
    id: Optional[int] = None


@dataclass
class InboxSummary:
    sorted: int = 0
    skipped: int = 0
    failed: int = 0
    results: List[SortResult] = field(default_factory=list)

    def tally(self, result: SortResult) -> None:
        if result.success:
            self.sorted += 1
        elif result.outcome.is_skip:
            self.skipped += 1
        else:
            self.failed += 1


@dataclass
class UndoResult:
    success: bool
    entry: Optional[SortHistoryEntry] = None
    error: Optional[str] = None
