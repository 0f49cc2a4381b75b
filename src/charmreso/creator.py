"""Reduction engine pairing D candidates with V0 candidates per collision."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Iterable, NamedTuple, Sequence

from .calibration import FieldContext, RunCalibrationCache
from .channels import DecayChannel, channel_spec, v0_mass_for
from .dedup import V0DeduplicationIndex
from .models import (
    Collision,
    CollisionInput,
    DCandidate,
    DSelection,
    DVariant,
    PairRecord,
    ReducedCollisionRecord,
    ReducedDRecord,
    ReducedV0Record,
    V0Candidate,
    V0Hypothesis,
    V0Selection,
)
from .observer import NullObserver, SelectionObserver, SelectionStage
from .physics import invariant_mass_two_body, pair_pt
from .selection import evaluate_d, evaluate_v0

logger = logging.getLogger(__name__)

_V0_MASS_HISTOGRAMS = (
    (V0Hypothesis.K0S, "hMassK0s"),
    (V0Hypothesis.LAMBDA, "hMassLambda"),
    (V0Hypothesis.ANTI_LAMBDA, "hMassLambda"),
)


class CollisionOutput(NamedTuple):
    """Rows produced by one collision. Everything is empty if no pair was kept."""

    collision: ReducedCollisionRecord | None
    d_records: tuple[ReducedDRecord, ...]
    v0_records: tuple[ReducedV0Record, ...]
    pairs: tuple[PairRecord, ...]
    # original V0 id -> row index in the reduced V0 table
    v0_rows: dict[int, int]

    @property
    def is_empty(self) -> bool:
        return self.collision is None


@dataclass
class ReducedTables:
    """Accumulated output tables of a reduction pass."""

    collisions: list[ReducedCollisionRecord] = field(default_factory=list)
    d_candidates: list[ReducedDRecord] = field(default_factory=list)
    v0_candidates: list[ReducedV0Record] = field(default_factory=list)
    pairs: list[PairRecord] = field(default_factory=list)
    n_original_collisions: int = 0

    @property
    def next_collision_ref(self) -> int:
        return len(self.collisions)

    def append(self, output: CollisionOutput) -> None:
        """Append one collision's rows; empty outputs leave the tables untouched."""
        if output.collision is None:
            return
        self.collisions.append(output.collision)
        self.d_candidates.extend(output.d_records)
        self.v0_candidates.extend(output.v0_records)
        self.pairs.extend(output.pairs)

    def extend(self, other: ReducedTables) -> None:
        """Append all rows of `other`, whose references must already point past this set."""
        self.collisions.extend(other.collisions)
        self.d_candidates.extend(other.d_candidates)
        self.v0_candidates.extend(other.v0_candidates)
        self.pairs.extend(other.pairs)
        self.n_original_collisions += other.n_original_collisions

    def d_for_collision(self, collision_ref: int) -> list[ReducedDRecord]:
        return [d for d in self.d_candidates if d.collision_ref == collision_ref]

    def v0_for_collision(self, collision_ref: int) -> list[ReducedV0Record]:
        return [v for v in self.v0_candidates if v.collision_ref == collision_ref]


@dataclass
class ReducedDataCreator:
    """Build reduced D/V0/collision tables and D-V0 pair candidates.

    Workflow per collision:
    1. Keep D candidates inside the parent-mass window of the channel.
    2. For each kept D, evaluate every V0 against it (shared-track veto,
       topology, mass hypotheses).
    3. Emit one pair row per V0 whose bitmask holds the channel hypothesis.
    4. Store each kept V0 once per collision.
    5. Store the D when it kept at least one V0, and the collision when it
       kept at least one D.
    """

    channel: DecayChannel
    v0_selection: V0Selection = field(default_factory=V0Selection)
    d_selection: DSelection = field(default_factory=DSelection)
    observer: SelectionObserver = field(default_factory=NullObserver)

    def process_collision(
        self,
        collision: Collision,
        d_candidates: Sequence[DCandidate],
        v0_candidates: Sequence[V0Candidate],
        field_context: FieldContext | None = None,
        collision_ref: int = 0,
        v0_offset: int = 0,
    ) -> CollisionOutput:
        """Pair all D and V0 candidates of one collision.

        `collision_ref` is the index the collision row will take in the reduced
        collision table and `v0_offset` the current length of the reduced V0
        table; both are used to fill the cross references.
        """
        spec = channel_spec(self.channel)
        dedup = V0DeduplicationIndex()
        d_records: list[ReducedDRecord] = []
        pairs: list[PairRecord] = []

        for cand in d_candidates:
            if cand.variant != spec.d_variant:
                raise ValueError(
                    f"Channel {self.channel.value} pairs {spec.d_variant.name} candidates, "
                    f"got {cand.variant.name} (candidate {cand.candidate_id})."
                )
            self.observer.record_selection_step(SelectionStage.D_CANDIDATE)
            if not evaluate_d(cand, self.channel, self.d_selection):
                continue
            self.observer.record_selection_step(SelectionStage.D_SELECTED)

            hypothesis = spec.v0_hypothesis(cand.signed_type)
            keep_d = False
            for v0 in v0_candidates:
                mask = evaluate_v0(v0, cand.daughter_track_ids, self.v0_selection)
                if not mask:
                    continue
                self._record_v0_qa(v0, mask)
                if mask & hypothesis:
                    pair = self._make_pair(cand, v0, hypothesis, collision_ref)
                    pairs.append(pair)
                    self.observer.record_mass(
                        spec.histogram, pair.inv_mass - cand.invariant_mass, pair.pt
                    )
                dedup.insert(v0.v0_id, partial(_reduce_v0, v0, mask, collision_ref))
                keep_d = True

            if keep_d:
                d_records.append(_reduce_d(cand, collision_ref))
                self.observer.record_selection_step(SelectionStage.D_WITH_V0)
                if cand.variant == DVariant.DSTAR:
                    self.observer.record_mass("hMassDstar", cand.invariant_mass, cand.pt)
                    self.observer.record_mass("hPtDstar", cand.pt)
                else:
                    self.observer.record_mass("hMassDplus", cand.invariant_mass, cand.pt)
                    self.observer.record_mass("hPtDplus", cand.pt)
                self.observer.record_mass("hDType", cand.signed_type)

        self.observer.record_selection_step(SelectionStage.COLLISION_PROCESSED)
        if not d_records:
            self.observer.record_selection_step(SelectionStage.COLLISION_WITHOUT_PAIR)
            return CollisionOutput(None, (), (), (), {})
        self.observer.record_selection_step(SelectionStage.COLLISION_WITH_PAIR)

        record = ReducedCollisionRecord(
            x=collision.x,
            y=collision.y,
            z=collision.z,
            covariance=collision.covariance,
            flags=0,
            magnetic_field=None if field_context is None else field_context.bz,
        )
        v0_rows = {v0_id: v0_offset + slot for v0_id, slot in dedup.items()}
        return CollisionOutput(record, tuple(d_records), tuple(dedup.rows), tuple(pairs), v0_rows)

    def process_collisions(
        self,
        collisions: Iterable[CollisionInput],
        calibration: RunCalibrationCache,
        tables: ReducedTables | None = None,
    ) -> ReducedTables:
        """Run `process_collision` over a batch and accumulate the tables.

        The field context is resolved for every collision; a missing context
        raises `CalibrationUnavailableError` and aborts the batch. Rows are
        merged into `tables` only once the whole batch went through, so an
        aborted batch leaves them untouched.
        """
        tables = tables if tables is not None else ReducedTables()
        batch = ReducedTables()
        for item in collisions:
            field_context = calibration.get(item.collision.run_number)
            batch.n_original_collisions += 1
            output = self.process_collision(
                collision=item.collision,
                d_candidates=item.d_candidates,
                v0_candidates=item.v0_candidates,
                field_context=field_context,
                collision_ref=tables.next_collision_ref + batch.next_collision_ref,
                v0_offset=len(tables.v0_candidates) + len(batch.v0_candidates),
            )
            logger.debug(
                "collision %d: %d D, %d V0, %d pairs",
                item.collision.collision_id,
                len(output.d_records),
                len(output.v0_records),
                len(output.pairs),
            )
            batch.append(output)
        tables.extend(batch)
        logger.info(
            "%s: kept %d/%d collisions, %d D, %d V0, %d pairs",
            self.channel.value,
            len(tables.collisions),
            tables.n_original_collisions,
            len(tables.d_candidates),
            len(tables.v0_candidates),
            len(tables.pairs),
        )
        return tables

    def _make_pair(
        self,
        cand: DCandidate,
        v0: V0Candidate,
        hypothesis: V0Hypothesis,
        collision_ref: int,
    ) -> PairRecord:
        spec = channel_spec(self.channel)
        inv_mass = invariant_mass_two_body(
            cand.momentum, v0.momentum, spec.d_mass, v0_mass_for(hypothesis)
        )
        pt_pair = pair_pt(cand.momentum, v0.momentum)
        return PairRecord(
            collision_ref=collision_ref,
            inv_mass=inv_mass,
            pt=pt_pair,
            inv_mass_d=cand.invariant_mass,
            pt_d=cand.pt,
            inv_mass_v0=v0.mass_for(hypothesis),
            pt_v0=v0.pt,
            cos_pa_v0=v0.cos_pa,
            dca_v0=v0.dca_to_pv,
            radius_v0=v0.radius,
        )

    def _record_v0_qa(self, v0: V0Candidate, mask: V0Hypothesis) -> None:
        self.observer.record_mass("hPtV0", v0.pt)
        self.observer.record_mass("hV0Type", int(mask))
        for bit, name in _V0_MASS_HISTOGRAMS:
            if mask & bit:
                self.observer.record_mass(name, v0.mass_for(bit), v0.pt)


def _reduce_d(cand: DCandidate, collision_ref: int) -> ReducedDRecord:
    return ReducedDRecord(
        daughter_track_ids=cand.daughter_track_ids,
        collision_ref=collision_ref,
        secondary_vertex=cand.secondary_vertex,
        invariant_mass=cand.invariant_mass,
        px=cand.px,
        py=cand.py,
        pz=cand.pz,
        signed_type=cand.signed_type,
    )


def _reduce_v0(v0: V0Candidate, mask: V0Hypothesis, collision_ref: int) -> ReducedV0Record:
    return ReducedV0Record(
        pos_track_id=v0.pos_track_id,
        neg_track_id=v0.neg_track_id,
        collision_ref=collision_ref,
        decay_vertex=v0.decay_vertex,
        mass_k0s=v0.mass_k0s,
        mass_lambda=v0.mass_lambda,
        mass_anti_lambda=v0.mass_anti_lambda,
        px=v0.px,
        py=v0.py,
        pz=v0.pz,
        cos_pa=v0.cos_pa,
        dca_to_pv=v0.dca_to_pv,
        radius=v0.radius,
        selection_bitmask=mask,
    )
