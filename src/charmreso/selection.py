"""Candidate-level selections for D and V0 candidates.

All functions here are pure: a failed cut is a `False` or an empty bitmask,
never an exception.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from .channels import DecayChannel, channel_spec
from .models import (
    ALL_V0_HYPOTHESES,
    DSelection,
    ReducedV0Record,
    V0Candidate,
    V0Hypothesis,
    V0Selection,
)
from .physics import MASS_K0S, MASS_LAMBDA


class _HasInvariantMass(Protocol):
    invariant_mass: float


def evaluate_d(
    candidate: _HasInvariantMass,
    channel: DecayChannel,
    selection: DSelection | None = None,
) -> bool:
    """Accept a D candidate if its mass lies within the window of the parent D mass.

    The boundary is inclusive.
    """
    selection = selection or DSelection()
    spec = channel_spec(channel)
    mass = candidate.invariant_mass + spec.d_mass_offset
    return abs(mass - spec.d_mass) <= selection.inv_mass_window


def shares_daughters(v0: V0Candidate, d_daughter_track_ids: Sequence[int]) -> bool:
    """True when either V0 daughter is also a D daughter."""
    return v0.pos_track_id in d_daughter_track_ids or v0.neg_track_id in d_daughter_track_ids


def evaluate_v0(
    v0: V0Candidate,
    d_daughter_track_ids: Sequence[int],
    selection: V0Selection | None = None,
) -> V0Hypothesis:
    """Return the bitmask of V0 mass hypotheses surviving the cuts.

    Of the D candidate only its daughter track ids are needed, for the
    shared-track veto.

    Topological cuts reject the V0 as a whole. Mass windows then clear the
    hypotheses one by one, so the result may still be `V0Hypothesis.NONE`.
    """
    cuts = selection or V0Selection()
    if shares_daughters(v0, d_daughter_track_ids):
        return V0Hypothesis.NONE
    if abs(v0.pos_eta) > cuts.max_daughter_abs_eta or abs(v0.neg_eta) > cuts.max_daughter_abs_eta:
        return V0Hypothesis.NONE
    if v0.radius < cuts.min_radius:
        return V0Hypothesis.NONE
    if v0.cos_pa < cuts.min_cos_pa:
        return V0Hypothesis.NONE
    if (
        v0.dca_to_pv > cuts.max_dca_to_pv
        or v0.dca_daughters > cuts.max_dca_daughters
        or abs(v0.dca_pos_to_pv) < cuts.min_daughter_dca_to_pv
        or abs(v0.dca_neg_to_pv) < cuts.min_daughter_dca_to_pv
    ):
        return V0Hypothesis.NONE

    mask = ALL_V0_HYPOTHESES
    if abs(v0.mass_k0s - MASS_K0S) > cuts.delta_mass_k0s:
        mask &= ~V0Hypothesis.K0S
    if abs(v0.mass_lambda - MASS_LAMBDA) > cuts.delta_mass_lambda:
        mask &= ~V0Hypothesis.LAMBDA
    if abs(v0.mass_anti_lambda - MASS_LAMBDA) > cuts.delta_mass_lambda:
        mask &= ~V0Hypothesis.ANTI_LAMBDA
    return V0Hypothesis(mask & ALL_V0_HYPOTHESES)


def is_v0_in_window(
    v0: ReducedV0Record,
    d_signed_type: int,
    channel: DecayChannel,
    window: float,
) -> bool:
    """Mass-window check of a reduced V0 row for the downstream resonance pass."""
    spec = channel_spec(channel)
    mass = v0.mass_for(spec.v0_hypothesis(d_signed_type))
    return abs(mass - spec.v0_mass) <= window
