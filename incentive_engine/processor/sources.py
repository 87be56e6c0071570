"""File-backed data collaborators with an in-memory TTL cache.

Each source lives in the data directory as ``<source>.xlsx``, ``.xlsm``,
``.csv``, ``.tsv`` or ``.txt`` (first match wins), e.g. ``operations.csv``
or ``goals_volume.xlsx``.  Parsed records are cached per source for
``ttl`` seconds (12 hours by default).

A missing or unreadable file never raises: the fetch returns an empty
collection and the reason is appended to ``warnings``.  Failed loads are
not cached, so the next fetch tries again.
"""

import time
import zipfile
from pathlib import Path

from incentive_engine.engine.incentives import SourceData
from incentive_engine.schema.field_maps import FieldMap, build_default_field_maps, goal_source
from incentive_engine.schema.models import (
    Base,
    ComplianceRecord,
    GoalDefinition,
    GuaranteedBalance,
    LossEvent,
    OperationalRecord,
    Pillar,
    ProtagonismScore,
)

from .ingestion import SOURCE_TYPES, ingest
from .periods import ReportWindow


DEFAULT_TTL = 12 * 60 * 60
FILE_SUFFIXES = (".xlsx", ".xlsm", ".csv", ".tsv", ".txt")


class SourceProvider:
    """Loads and caches every campaign source from a directory.

    Parameters
    ----------
    data_dir : str or Path
        Directory holding the source files.
    field_maps : dict[str, FieldMap], optional
        Mapping table; defaults to the built-in one.
    ttl : float
        Cache lifetime in seconds.
    clock : callable, optional
        Returns the current time in seconds (``time.monotonic`` by default).
    """

    def __init__(self, data_dir, field_maps: dict[str, FieldMap] | None = None,
                 ttl: float = DEFAULT_TTL, clock=None) -> None:
        self.data_dir = Path(data_dir)
        self.field_maps = field_maps if field_maps is not None else build_default_field_maps()
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._cache: dict[str, tuple[float, list]] = {}
        self.warnings: list[str] = []

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def find_file(self, source: str) -> Path | None:
        for suffix in FILE_SUFFIXES:
            path = self.data_dir / f"{source}{suffix}"
            if path.is_file():
                return path
        return None

    def invalidate(self, source: str | None = None) -> None:
        """Drop one cached source, or all of them."""
        if source is None:
            self._cache.clear()
        else:
            self._cache.pop(source, None)

    def _load(self, source: str) -> list:
        if source not in SOURCE_TYPES:
            raise ValueError(
                f"Unknown source type '{source}'. "
                f"Valid types: {', '.join(sorted(SOURCE_TYPES))}"
            )
        now = self._clock()
        cached = self._cache.get(source)
        if cached is not None and now - cached[0] < self.ttl:
            return cached[1]

        path = self.find_file(source)
        if path is None:
            self.warnings.append(f"{source}: no file found in {self.data_dir}")
            return []
        try:
            records = ingest(path, source, self.field_maps.get(source))
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            self.warnings.append(f"{source}: {path.name}: {e}")
            return []

        self._cache[source] = (now, records)
        return records

    # ------------------------------------------------------------------
    # Collaborator contracts
    # ------------------------------------------------------------------

    def fetch_operational_records(self, window: ReportWindow | None = None) -> list[OperationalRecord]:
        records = self._load("operations")
        if window is None:
            return list(records)
        return [r for r in records if window.contains(r.date)]

    def fetch_compliance_records(self) -> list[ComplianceRecord]:
        return list(self._load("compliance"))

    def fetch_loss_events(self, window: ReportWindow | None = None) -> list[LossEvent]:
        events = self._load("losses")
        if window is None:
            return list(events)
        return [e for e in events if window.contains(e.date)]

    def fetch_protagonism_scores(self) -> list[ProtagonismScore]:
        return list(self._load("survey_responses"))

    def fetch_goal_definitions(self, pillar: Pillar) -> list[GoalDefinition]:
        return list(self._load(goal_source(pillar)))

    def fetch_base_directory(self) -> list[Base]:
        return list(self._load("bases"))

    def fetch_guaranteed_balances(self) -> list[GuaranteedBalance]:
        return list(self._load("virtual_bank"))

    def load(self, window: ReportWindow | None = None) -> SourceData:
        """Fetch every source into one bundle.

        With a window, operational records and loss events are limited to
        the window and the window one month earlier, which is all a run or
        a period comparison reads.
        """
        if window is None:
            operations = self.fetch_operational_records()
            losses = self.fetch_loss_events()
        else:
            span = ReportWindow(window.previous().start, window.end)
            operations = self.fetch_operational_records(span)
            losses = self.fetch_loss_events(span)

        return SourceData(
            operational_records=operations,
            compliance_records=self.fetch_compliance_records(),
            loss_events=losses,
            protagonism_scores=self.fetch_protagonism_scores(),
            goal_definitions={p: self.fetch_goal_definitions(p) for p in Pillar},
            bases=self.fetch_base_directory(),
            balances=self.fetch_guaranteed_balances(),
        )
