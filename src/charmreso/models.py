"""Core data models used by the D-V0 reduction framework.

This module defines:
- immutable input objects (`Collision`, `DCandidate`, `V0Candidate`)
- the per-V0 mass-hypothesis bitmask (`V0Hypothesis`)
- reduced output rows (`ReducedCollisionRecord`, `ReducedDRecord`,
  `ReducedV0Record`, `PairRecord`)
- configurable selection controls (`V0Selection`, `DSelection`,
  `ResonanceWindows`)
- a small 4-vector helper (`LorentzVector`).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

Vector3 = tuple[float, float, float]
# (xx, xy, yy, xz, yz, zz)
Covariance6 = tuple[float, float, float, float, float, float]


class DVariant(enum.IntEnum):
    """Species of D candidate, encoded as the magnitude of the signed type."""

    DPLUS = 1
    DSTAR = 2


class V0Hypothesis(enum.IntFlag):
    """Bitmask over the V0 mass hypotheses. Zero means rejected."""

    NONE = 0
    K0S = 1
    LAMBDA = 2
    ANTI_LAMBDA = 4


ALL_V0_HYPOTHESES = V0Hypothesis.K0S | V0Hypothesis.LAMBDA | V0Hypothesis.ANTI_LAMBDA


@dataclass(frozen=True)
class Collision:
    """One collision: primary vertex, covariance and run number."""

    collision_id: int
    x: float
    y: float
    z: float
    covariance: Covariance6
    run_number: int

    @property
    def primary_vertex(self) -> Vector3:
        return self.x, self.y, self.z


@dataclass(frozen=True)
class DCandidate:
    """Heavy-flavour D candidate, already selected upstream.

    For `DVariant.DSTAR` the invariant mass is the mass difference
    `m(D0 pi) - m(D0)` and the sign comes from the soft pion.
    """

    candidate_id: int
    variant: DVariant
    px: float
    py: float
    pz: float
    secondary_vertex: Vector3
    daughter_track_ids: tuple[int, int, int]
    invariant_mass: float
    sign: int

    @property
    def momentum(self) -> Vector3:
        return self.px, self.py, self.pz

    @property
    def pt(self) -> float:
        return (self.px * self.px + self.py * self.py) ** 0.5

    @property
    def signed_type(self) -> int:
        """Species code carrying the charge sign (+-1 for D+, +-2 for D*)."""
        return (1 if self.sign >= 0 else -1) * int(self.variant)


@dataclass(frozen=True)
class V0Candidate:
    """Two-prong weak-decay vertex candidate with precomputed mass hypotheses."""

    v0_id: int
    pos_track_id: int
    neg_track_id: int
    decay_vertex: Vector3
    px: float
    py: float
    pz: float
    mass_k0s: float
    mass_lambda: float
    mass_anti_lambda: float
    cos_pa: float
    dca_to_pv: float
    radius: float
    pos_eta: float = 0.0
    neg_eta: float = 0.0
    dca_daughters: float = 0.0
    dca_pos_to_pv: float = 1.0
    dca_neg_to_pv: float = 1.0

    @property
    def momentum(self) -> Vector3:
        return self.px, self.py, self.pz

    @property
    def pt(self) -> float:
        return (self.px * self.px + self.py * self.py) ** 0.5

    def mass_for(self, hypothesis: V0Hypothesis) -> float:
        """Return the measured invariant mass under one single-bit hypothesis."""
        if hypothesis == V0Hypothesis.K0S:
            return self.mass_k0s
        if hypothesis == V0Hypothesis.LAMBDA:
            return self.mass_lambda
        if hypothesis == V0Hypothesis.ANTI_LAMBDA:
            return self.mass_anti_lambda
        raise ValueError(f"Expected a single V0 hypothesis bit, got {hypothesis!r}.")


@dataclass(frozen=True)
class CollisionInput:
    """One collision payload with its own D and V0 candidate lists."""

    collision: Collision
    d_candidates: tuple[DCandidate, ...]
    v0_candidates: tuple[V0Candidate, ...]


@dataclass(frozen=True)
class ReducedCollisionRecord:
    """Collision row written only when at least one D-V0 pair was kept."""

    x: float
    y: float
    z: float
    covariance: Covariance6
    flags: int = 0
    magnetic_field: float | None = None


@dataclass(frozen=True)
class ReducedDRecord:
    """D candidate row; `collision_ref` indexes the reduced collision table."""

    daughter_track_ids: tuple[int, int, int]
    collision_ref: int
    secondary_vertex: Vector3
    invariant_mass: float
    px: float
    py: float
    pz: float
    signed_type: int

    @property
    def momentum(self) -> Vector3:
        return self.px, self.py, self.pz

    @property
    def pt(self) -> float:
        return (self.px * self.px + self.py * self.py) ** 0.5


@dataclass(frozen=True)
class ReducedV0Record:
    """V0 row stored once per collision per original V0."""

    pos_track_id: int
    neg_track_id: int
    collision_ref: int
    decay_vertex: Vector3
    mass_k0s: float
    mass_lambda: float
    mass_anti_lambda: float
    px: float
    py: float
    pz: float
    cos_pa: float
    dca_to_pv: float
    radius: float
    selection_bitmask: V0Hypothesis

    @property
    def momentum(self) -> Vector3:
        return self.px, self.py, self.pz

    @property
    def pt(self) -> float:
        return (self.px * self.px + self.py * self.py) ** 0.5

    def mass_for(self, hypothesis: V0Hypothesis) -> float:
        """Return the stored invariant mass under one single-bit hypothesis."""
        if hypothesis == V0Hypothesis.K0S:
            return self.mass_k0s
        if hypothesis == V0Hypothesis.LAMBDA:
            return self.mass_lambda
        if hypothesis == V0Hypothesis.ANTI_LAMBDA:
            return self.mass_anti_lambda
        raise ValueError(f"Expected a single V0 hypothesis bit, got {hypothesis!r}.")


@dataclass(frozen=True)
class PairRecord:
    """One resonance candidate built from a (D, V0) pair."""

    collision_ref: int
    inv_mass: float
    pt: float
    inv_mass_d: float
    pt_d: float
    inv_mass_v0: float
    pt_v0: float
    cos_pa_v0: float
    dca_v0: float
    radius_v0: float


@dataclass(frozen=True)
class V0Selection:
    """V0 quality cuts applied against each D candidate."""

    max_daughter_abs_eta: float = 1.0
    min_radius: float = 0.5
    min_cos_pa: float = 0.97
    max_dca_to_pv: float = 0.1
    max_dca_daughters: float = 1.0
    min_daughter_dca_to_pv: float = 0.05
    delta_mass_k0s: float = 0.03
    delta_mass_lambda: float = 0.015


@dataclass(frozen=True)
class DSelection:
    """D candidate mass window around the channel's parent D mass."""

    inv_mass_window: float = 0.5


@dataclass(frozen=True)
class ResonanceWindows:
    """Mass windows for the downstream pass over reduced tables."""

    inv_mass_window_d: float = 0.5
    inv_mass_window_v0: float = 0.5


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties and addition."""

    px: float
    py: float
    pz: float
    e: float

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)
