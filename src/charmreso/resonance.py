"""Resonance candidates from already-reduced D and V0 tables.

This is the light second pass: the reduced tables are read back and every
D row is combined with the V0 rows of the same collision that are usable for
the channel. Pairs are not deduplicated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from .channels import DecayChannel, channel_spec
from .creator import ReducedTables
from .models import DSelection, PairRecord, ReducedDRecord, ReducedV0Record, ResonanceWindows
from .observer import NullObserver, SelectionObserver, SelectionStage
from .physics import invariant_mass_two_body, pair_pt
from .selection import evaluate_d, is_v0_in_window

logger = logging.getLogger(__name__)


@dataclass
class ResonanceCandidateCreator:
    """Combine reduced D rows with reduced V0 rows into `PairRecord`s."""

    channel: DecayChannel
    windows: ResonanceWindows = field(default_factory=ResonanceWindows)
    observer: SelectionObserver = field(default_factory=NullObserver)

    def partition_v0s(self, v0_rows: Sequence[ReducedV0Record]) -> list[ReducedV0Record]:
        """Keep the V0 rows whose stored bitmask is usable for the channel."""
        bits = channel_spec(self.channel).v0_partition
        return [v for v in v0_rows if v.selection_bitmask & bits]

    def process_collision(
        self,
        collision_ref: int,
        d_rows: Sequence[ReducedDRecord],
        v0_rows: Sequence[ReducedV0Record],
    ) -> list[PairRecord]:
        """Build every accepted (D, V0) pair of one reduced collision."""
        spec = channel_spec(self.channel)
        d_selection = DSelection(inv_mass_window=self.windows.inv_mass_window_d)
        candidates_v0 = self.partition_v0s(v0_rows)
        out: list[PairRecord] = []
        for d in d_rows:
            if abs(d.signed_type) != int(spec.d_variant):
                raise ValueError(
                    f"Channel {self.channel.value} pairs {spec.d_variant.name} rows, "
                    f"got signed type {d.signed_type}."
                )
            self.observer.record_selection_step(SelectionStage.D_CANDIDATE)
            if not evaluate_d(d, self.channel, d_selection):
                continue
            self.observer.record_selection_step(SelectionStage.D_SELECTED)
            hypothesis = spec.v0_hypothesis(d.signed_type)
            counted = False
            for v0 in candidates_v0:
                if not is_v0_in_window(v0, d.signed_type, self.channel, self.windows.inv_mass_window_v0):
                    continue
                if not counted:
                    self.observer.record_selection_step(SelectionStage.D_WITH_V0)
                    counted = True
                inv_mass = invariant_mass_two_body(d.momentum, v0.momentum, spec.d_mass, spec.v0_mass)
                pt_pair = pair_pt(d.momentum, v0.momentum)
                self.observer.record_mass(spec.histogram, inv_mass, pt_pair)
                out.append(
                    PairRecord(
                        collision_ref=collision_ref,
                        inv_mass=inv_mass,
                        pt=pt_pair,
                        inv_mass_d=d.invariant_mass,
                        pt_d=d.pt,
                        inv_mass_v0=v0.mass_for(hypothesis),
                        pt_v0=v0.pt,
                        cos_pa_v0=v0.cos_pa,
                        dca_v0=v0.dca_to_pv,
                        radius_v0=v0.radius,
                    )
                )
        return out

    def process_tables(self, tables: ReducedTables) -> list[PairRecord]:
        """Run `process_collision` over every collision of a reduced set."""
        d_by_ref: dict[int, list[ReducedDRecord]] = {}
        v0_by_ref: dict[int, list[ReducedV0Record]] = {}
        for d in tables.d_candidates:
            d_by_ref.setdefault(d.collision_ref, []).append(d)
        for v0 in tables.v0_candidates:
            v0_by_ref.setdefault(v0.collision_ref, []).append(v0)

        out: list[PairRecord] = []
        for ref in range(len(tables.collisions)):
            out.extend(self.process_collision(ref, d_by_ref.get(ref, []), v0_by_ref.get(ref, [])))
        logger.info(
            "%s: %d resonance candidates from %d reduced collisions",
            self.channel.value,
            len(out),
            len(tables.collisions),
        )
        return out
