"""Decay-channel dispatch for D-V0 resonance reconstruction.

The set of channels is closed. Each `DecayChannel` maps to one `ChannelSpec`
holding the D species it pairs, the nominal masses of both legs and the V0
hypothesis rule. Lookups go through `channel_spec`, never through subclassing.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .models import DVariant, V0Hypothesis
from .physics import MASS_D0, MASS_DPLUS, MASS_DSTAR, MASS_K0S, MASS_LAMBDA


class DecayChannel(enum.Enum):
    """Resonance decay channels reconstructed from D and V0 candidates."""

    DS1_TO_DSTAR_K0S = "ds1_to_dstar_k0s"
    DSTAR2_TO_DPLUS_K0S = "dstar2_to_dplus_k0s"
    XC_TO_DPLUS_LAMBDA = "xc_to_dplus_lambda"


@dataclass(frozen=True)
class ChannelSpec:
    """Static recipe for one decay channel."""

    channel: DecayChannel
    d_variant: DVariant
    d_mass: float
    # Added to the D candidate's stored mass before the window check; the D*
    # stores m(D0 pi) - m(D0).
    d_mass_offset: float
    v0_mass: float
    uses_lambda: bool
    histogram: str

    @property
    def v0_partition(self) -> V0Hypothesis:
        """Bits of the stored V0 bitmask that make a row usable for this channel."""
        if self.uses_lambda:
            return V0Hypothesis.LAMBDA | V0Hypothesis.ANTI_LAMBDA
        return V0Hypothesis.K0S

    def v0_hypothesis(self, signed_type: int) -> V0Hypothesis:
        """Pick the V0 hypothesis matching the D charge.

        Lambda for a positive D, anti-Lambda otherwise; K0s channels ignore the sign.
        """
        if not self.uses_lambda:
            return V0Hypothesis.K0S
        return V0Hypothesis.LAMBDA if signed_type > 0 else V0Hypothesis.ANTI_LAMBDA


_CHANNEL_SPECS: dict[DecayChannel, ChannelSpec] = {
    DecayChannel.DS1_TO_DSTAR_K0S: ChannelSpec(
        channel=DecayChannel.DS1_TO_DSTAR_K0S,
        d_variant=DVariant.DSTAR,
        d_mass=MASS_DSTAR,
        d_mass_offset=MASS_D0,
        v0_mass=MASS_K0S,
        uses_lambda=False,
        histogram="hMassDs1",
    ),
    DecayChannel.DSTAR2_TO_DPLUS_K0S: ChannelSpec(
        channel=DecayChannel.DSTAR2_TO_DPLUS_K0S,
        d_variant=DVariant.DPLUS,
        d_mass=MASS_DPLUS,
        d_mass_offset=0.0,
        v0_mass=MASS_K0S,
        uses_lambda=False,
        histogram="hMassDsStar2",
    ),
    DecayChannel.XC_TO_DPLUS_LAMBDA: ChannelSpec(
        channel=DecayChannel.XC_TO_DPLUS_LAMBDA,
        d_variant=DVariant.DPLUS,
        d_mass=MASS_DPLUS,
        d_mass_offset=0.0,
        v0_mass=MASS_LAMBDA,
        uses_lambda=True,
        histogram="hMassXcRes",
    ),
}

_ALIASES: dict[str, DecayChannel] = {
    "a": DecayChannel.DS1_TO_DSTAR_K0S,
    "ds1": DecayChannel.DS1_TO_DSTAR_K0S,
    "b": DecayChannel.DSTAR2_TO_DPLUS_K0S,
    "dsstar2": DecayChannel.DSTAR2_TO_DPLUS_K0S,
    "c": DecayChannel.XC_TO_DPLUS_LAMBDA,
    "xc": DecayChannel.XC_TO_DPLUS_LAMBDA,
}


def channel_spec(channel: DecayChannel) -> ChannelSpec:
    """Return the recipe for `channel`."""
    return _CHANNEL_SPECS[channel]


def channel_from_name(name: str) -> DecayChannel:
    """Resolve a channel value (e.g. `xc_to_dplus_lambda`) or short alias."""
    key = name.strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return DecayChannel(key)
    except ValueError as exc:
        supported = ", ".join(sorted([c.value for c in DecayChannel] + list(_ALIASES)))
        raise ValueError(
            f"Unknown decay channel '{name}'. Supported names: {supported}"
        ) from exc


def v0_mass_for(hypothesis: V0Hypothesis) -> float:
    """Nominal mass of a single-bit V0 hypothesis."""
    if hypothesis == V0Hypothesis.K0S:
        return MASS_K0S
    if hypothesis in (V0Hypothesis.LAMBDA, V0Hypothesis.ANTI_LAMBDA):
        return MASS_LAMBDA
    raise ValueError(f"Expected a single V0 hypothesis bit, got {hypothesis!r}.")
