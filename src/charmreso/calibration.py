"""Run-scoped magnetic-field context and its process-wide cache.

The field source is queried only when the run number changes. Concurrent
callers serialize on one lock for the check-and-refresh step; a hit on the
current run reads a single immutable snapshot without locking.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Mapping

logger = logging.getLogger(__name__)


class CalibrationUnavailableError(RuntimeError):
    """Raised when no field context exists for a required run. Fatal."""


@dataclass(frozen=True)
class FieldContext:
    """Magnetic-field configuration valid for one run."""

    run_number: int
    bz: float
    source: str = ""


FieldFetcher = Callable[[int], "FieldContext | None"]


class StaticFieldSource:
    """Field source backed by an in-memory `run -> bz` mapping."""

    def __init__(self, fields: Mapping[int, float], name: str = "static") -> None:
        self._fields = {int(run): float(bz) for run, bz in fields.items()}
        self.name = name
        self.n_queries = 0

    def __call__(self, run_number: int) -> FieldContext | None:
        self.n_queries += 1
        bz = self._fields.get(run_number)
        if bz is None:
            return None
        return FieldContext(run_number=run_number, bz=bz, source=self.name)


class RunCalibrationCache:
    """Holds the field context of the last run seen and refreshes on change."""

    def __init__(self, fetcher: FieldFetcher) -> None:
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._current: FieldContext | None = None

    @property
    def current(self) -> FieldContext | None:
        return self._current

    def get(self, run_number: int) -> FieldContext:
        """Return the field context for `run_number`, fetching only on run change."""
        current = self._current
        if current is not None and current.run_number == run_number:
            return current
        with self._lock:
            current = self._current
            if current is not None and current.run_number == run_number:
                return current
            context = self._fetcher(run_number)
            if context is None:
                raise CalibrationUnavailableError(
                    f"Magnetic-field object is not available for run={run_number}."
                )
            logger.info(
                "Run changed %s -> %d, Bz = %g",
                "none" if current is None else current.run_number,
                run_number,
                context.bz,
            )
            self._current = context
            return context
