"""
Structured logging for the combo advisor.

Every record carries a level and a category so a caller can filter what the
engine did on a given request:
    - MINIMAL: final suggestion or failure
    - SUMMARY: request overview, fast-path hits, search totals
    - DETAILED: the ordered candidate table
    - DEBUG: best-so-far updates, cutoffs, cache hits and misses
    - TRACE: every accepted partial combo

Usage:
    from Advisor.advisor_logging import create_logger

    logger = create_logger("DEBUG", name_of=get_catalog().name_of)
    suggest_combo(settings, stash, queue, logger=logger)
"""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from io import StringIO
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TextIO, Tuple, Union


class LogLevel(IntEnum):
    """How much the advisor reports; higher levels include the lower ones."""
    SILENT = 0
    MINIMAL = 10
    SUMMARY = 20
    DETAILED = 30
    DEBUG = 40
    TRACE = 50


@dataclass
class LogEntry:
    timestamp: datetime
    level: LogLevel
    category: str
    message: str
    data: Optional[Dict[str, Any]] = None

    def format(self, include_timestamp: bool = True, include_level: bool = True) -> str:
        prefix = ""
        if include_timestamp:
            prefix += self.timestamp.strftime("[%H:%M:%S.%f")[:-3] + "] "
        if include_level:
            prefix += f"[{self.level.name:<8}] "
        return f"{prefix}[{self.category}] {self.message}"


@dataclass
class AdvisorLogger:
    """
    Levelled, categorised logger used by the suggestion engine.

    Records are kept in ``entries`` and echoed to ``output`` (stdout by
    default) and, when ``log_to_file`` is set, to that file.

    Attributes
    ----------
    level : LogLevel
        Records above this level are dropped
    output : TextIO | None
        Stream that receives formatted records
    log_to_file : Path | None
        File that also receives formatted records (truncated on open)
    name_of : callable | None
        Modifier id -> display name, used when printing combos
    entries : list[LogEntry]
        Every record kept so far
    """
    level: LogLevel = LogLevel.SUMMARY
    output: Optional[TextIO] = None
    log_to_file: Optional[Path] = None
    include_timestamp: bool = True
    include_level: bool = True
    name_of: Optional[Callable[[int], str]] = None
    entries: List[LogEntry] = field(default_factory=list)
    _file: Optional[TextIO] = field(default=None, repr=False)

    def __post_init__(self):
        if self.output is None:
            self.output = sys.stdout
        if self.log_to_file is not None:
            self._file = Path(self.log_to_file).open("w", encoding="utf-8")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "AdvisorLogger":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def enabled(self, level: LogLevel) -> bool:
        return level <= self.level

    def _emit(self, level: LogLevel, category: str, message: str,
              data: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled(level):
            return

        entry = LogEntry(datetime.now(), level, category, message, data)
        self.entries.append(entry)

        line = entry.format(self.include_timestamp, self.include_level) + "\n"
        for stream in (self.output, self._file):
            if stream is not None:
                stream.write(line)
                stream.flush()

    def _emit_table(self, level: LogLevel, category: str, title: str,
                    headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        if not self.enabled(level):
            return

        cells = [[str(value) for value in row] for row in [headers, *rows]]
        widths = [max(len(row[col]) for row in cells) for col in range(len(headers))]
        rendered = [" | ".join(value.ljust(width) for value, width in zip(row, widths)) for row in cells]

        self._emit(level, category, title)
        self._emit(level, category, rendered[0])
        self._emit(level, category, "-" * len(rendered[0]))
        for line in rendered[1:]:
            self._emit(level, category, line)

    def _combo(self, combo: Optional[Sequence[int]]) -> str:
        if combo is None:
            return "none"
        if self.name_of is None:
            return str(list(combo))
        return "[" + ", ".join(f"{m} {self.name_of(m)}" for m in combo) + "]"

    # -------------------------------------------------------------------------
    # Request
    # -------------------------------------------------------------------------

    def log_request(self, stash: Mapping[int, int], queue: Sequence[int],
                    roster_size: int) -> None:
        owned = sum(1 for count in stash.values() if count > 0)
        self._emit(LogLevel.SUMMARY, "REQUEST",
                   f"Suggesting for queue {self._combo(queue)} "
                   f"({owned} owned modifier types, {roster_size} roster combos)",
                   {"stash": dict(stash), "queue": list(queue)})
        for modifier_id, count in sorted(stash.items()):
            self._emit(LogLevel.TRACE, "STASH", f"  {modifier_id}: {count}")

    def log_queue_full(self, queue: Sequence[int]) -> None:
        self._emit(LogLevel.MINIMAL, "REQUEST",
                   f"Cannot suggest a combo with {len(queue)} queued modifiers")

    def log_missing_roster_ids(self, combo_ids: Sequence[int]) -> None:
        if combo_ids:
            self._emit(LogLevel.SUMMARY, "SETTINGS",
                       f"Roster references unknown combo ids {list(combo_ids)}; skipped")

    def log_fast_path(self, combo: Sequence[int]) -> None:
        self._emit(LogLevel.SUMMARY, "FAST_PATH", f"Roster combo fully owned: {self._combo(combo)}")

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def log_candidates(self, candidates: Sequence[Any]) -> None:
        """Log the candidate count, and at DETAILED the ordered moves."""
        self._emit(LogLevel.SUMMARY, "SEARCH", f"Searching over {len(candidates)} candidates")
        if not candidates or not self.enabled(LogLevel.DETAILED):
            return
        rows = [
            [
                index,
                "filler" if candidate.produced is None else self._combo([candidate.produced]),
                self._combo(sorted(candidate.recipe)),
            ]
            for index, candidate in enumerate(candidates)
        ]
        self._emit_table(LogLevel.DETAILED, "SEARCH", "Candidate moves",
                         ["#", "Produces", "Recipe"], rows)

    def log_partial_combo(self, combo: Sequence[int], value: float) -> None:
        if not self.enabled(LogLevel.TRACE):
            return
        self._emit(LogLevel.TRACE, "SEARCH", f"Accepted {self._combo(combo)} value={value:.2f}")

    def log_best_update(self, combo: Sequence[int], value: float, filler_count: int) -> None:
        self._emit(LogLevel.DEBUG, "SEARCH",
                   f"New best {self._combo(combo)} value={value:.2f} fillers={filler_count}",
                   {"combo": list(combo), "value": value, "fillers": filler_count})

    def log_cutoff(self, reason: str, elapsed_ms: float) -> None:
        self._emit(LogLevel.DEBUG, "SEARCH", f"Stopped ({reason}) after {elapsed_ms:.1f}ms")

    def log_search_complete(self, iterations: int, elapsed_ms: float,
                            combo: Optional[Sequence[int]]) -> None:
        self._emit(LogLevel.SUMMARY, "SEARCH",
                   f"Search complete: {iterations} iterations, {elapsed_ms:.1f}ms, "
                   f"result={self._combo(combo)}")

    # -------------------------------------------------------------------------
    # Result
    # -------------------------------------------------------------------------

    def log_suggestion(self, source: str, combo: Optional[Sequence[int]]) -> None:
        if combo is None:
            self._emit(LogLevel.MINIMAL, "RESULT", "Failed to suggest a combo")
        else:
            self._emit(LogLevel.MINIMAL, "RESULT", f"Suggested {source} combo: {self._combo(combo)}")

    def log_cache(self, hit: bool, key: str) -> None:
        self._emit(LogLevel.DEBUG, "CACHE", f"{'Hit' if hit else 'Miss'} for key {key[:12]}")

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def get_all_entries(self) -> List[LogEntry]:
        return list(self.entries)

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        return [entry for entry in self.entries if entry.level <= level]

    def get_entries_by_category(self, category: str) -> List[LogEntry]:
        return [entry for entry in self.entries if entry.category == category]

    def to_string(self, level: Optional[LogLevel] = None) -> str:
        selected = self.entries if level is None else self.get_entries_by_level(level)
        return "\n".join(entry.format(self.include_timestamp, self.include_level) for entry in selected)

    def clear(self) -> None:
        self.entries.clear()


def _coerce_level(level: Union[LogLevel, str, int]) -> LogLevel:
    if isinstance(level, LogLevel):
        return level
    if isinstance(level, str):
        return LogLevel[level.upper()]
    return LogLevel(level)


def create_logger(
    level: Union[LogLevel, str, int] = LogLevel.SUMMARY,
    output: Optional[TextIO] = None,
    log_file: Optional[Path] = None,
    name_of: Optional[Callable[[int], str]] = None,
) -> AdvisorLogger:
    """
    Build an AdvisorLogger.

    Parameters
    ----------
    level : LogLevel | str | int
        Verbosity, as the enum, its name (case-insensitive) or its value
    output : TextIO | None
        Stream for formatted records; stdout when omitted
    log_file : Path | None
        Also write records to this file
    name_of : callable | None
        Modifier id -> name lookup for readable combos
    """
    return AdvisorLogger(level=_coerce_level(level), output=output, log_to_file=log_file, name_of=name_of)


def create_string_logger(level: LogLevel = LogLevel.DETAILED) -> Tuple[AdvisorLogger, StringIO]:
    """Logger that writes into an in-memory buffer, returned alongside it."""
    buffer = StringIO()
    return AdvisorLogger(level=level, output=buffer), buffer
