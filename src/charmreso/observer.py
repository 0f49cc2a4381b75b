"""QA side channel for the reduction and resonance passes.

The engines call an observer but never read anything back from it, so
attaching or dropping one cannot change the produced tables.
"""

from __future__ import annotations

import enum
from collections import Counter, defaultdict
from typing import Protocol

import numpy as np


class SelectionStage(enum.Enum):
    """Counted steps of the selection flow."""

    COLLISION_PROCESSED = "collision processed"
    COLLISION_WITHOUT_PAIR = "collision without D-V0 pairs"
    COLLISION_WITH_PAIR = "collision with D-V0 pairs"
    D_CANDIDATE = "D candidate"
    D_SELECTED = "D candidate selected"
    D_WITH_V0 = "D candidate with V0 partner"


class SelectionObserver(Protocol):
    def record_selection_step(self, stage: SelectionStage) -> None: ...

    def record_mass(self, name: str, value: float, pt: float | None = None) -> None: ...


class NullObserver:
    """Observer that drops everything."""

    def record_selection_step(self, stage: SelectionStage) -> None:
        return None

    def record_mass(self, name: str, value: float, pt: float | None = None) -> None:
        return None


class QARegistry:
    """Counts selection steps and keeps the `(value, pt)` samples per histogram."""

    def __init__(self) -> None:
        self.steps: Counter[SelectionStage] = Counter()
        self.samples: dict[str, list[tuple[float, float | None]]] = defaultdict(list)

    def record_selection_step(self, stage: SelectionStage) -> None:
        self.steps[stage] += 1

    def record_mass(self, name: str, value: float, pt: float | None = None) -> None:
        self.samples[name].append((value, pt))

    def values(self, name: str) -> list[float]:
        return [v for v, _ in self.samples.get(name, [])]

    def histogram(self, name: str, bins: int, lo: float, hi: float) -> list[int]:
        """Fixed-width histogram of the samples of `name` over `[lo, hi]`.

        Values outside the range are dropped; `hi` itself falls in the last bin.
        """
        if bins <= 0 or hi <= lo:
            raise ValueError("Histogram needs bins > 0 and hi > lo.")
        counts, _ = np.histogram(np.asarray(self.values(name), dtype=float), bins=bins, range=(lo, hi))
        return counts.tolist()

    def summary_frame(self):
        """Per-histogram entries/mean/min/max as a pandas DataFrame."""
        from .io import _require_pandas

        pd = _require_pandas()
        rows = []
        for name in sorted(self.samples):
            vals = self.values(name)
            rows.append(
                {
                    "histogram": name,
                    "entries": len(vals),
                    "mean": sum(vals) / len(vals) if vals else float("nan"),
                    "min": min(vals) if vals else float("nan"),
                    "max": max(vals) if vals else float("nan"),
                }
            )
        return pd.DataFrame(rows, columns=["histogram", "entries", "mean", "min", "max"])
