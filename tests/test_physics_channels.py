"""Unit tests for pair kinematics and decay-channel dispatch."""

from __future__ import annotations

import math
import unittest

from charmreso import DecayChannel, DVariant, V0Hypothesis, channel_from_name, channel_spec
from charmreso.channels import v0_mass_for
from charmreso.physics import (
    MASS_DPLUS,
    MASS_DSTAR,
    MASS_K0S,
    MASS_LAMBDA,
    invariant_mass_two_body,
    pair_pt,
)


class TestPairKinematics(unittest.TestCase):
    """Validate the two-body invariant mass and pair pT."""

    def test_back_to_back_legs_sum_energies(self) -> None:
        """Equal and opposite momenta cancel, leaving the energy sum."""
        p, m1, m2 = 1.0, 1.87, 0.498
        expected = math.sqrt(p * p + m1 * m1) + math.sqrt(p * p + m2 * m2)
        mass = invariant_mass_two_body((0.0, 0.0, p), (0.0, 0.0, -p), m1, m2)
        self.assertAlmostEqual(mass, expected, places=12)

    def test_legs_at_rest_give_mass_sum(self) -> None:
        """Two legs at rest combine to the sum of their masses."""
        mass = invariant_mass_two_body((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), MASS_DPLUS, MASS_K0S)
        self.assertAlmostEqual(mass, MASS_DPLUS + MASS_K0S, places=12)

    def test_mass_matches_two_body_formula(self) -> None:
        """The pair mass agrees with sqrt(E^2 - p^2) for a generic configuration."""
        p1, p2 = (1.0, 0.5, 2.0), (-0.3, 0.8, 0.4)
        e1 = math.sqrt(sum(x * x for x in p1) + MASS_DSTAR**2)
        e2 = math.sqrt(sum(x * x for x in p2) + MASS_K0S**2)
        ptot2 = sum((a + b) ** 2 for a, b in zip(p1, p2))
        mass = invariant_mass_two_body(p1, p2, MASS_DSTAR, MASS_K0S)
        self.assertAlmostEqual(mass, math.sqrt((e1 + e2) ** 2 - ptot2), places=10)

    def test_pair_pt_uses_summed_transverse_momentum(self) -> None:
        """Pair pT is the transverse magnitude of the summed momentum."""
        self.assertAlmostEqual(pair_pt((1.0, 2.0, 5.0), (2.0, 2.0, -1.0)), 5.0, places=12)


class TestChannelDispatch(unittest.TestCase):
    """Validate the closed channel table."""

    def test_channel_table(self) -> None:
        """Each channel maps to its D species and nominal masses."""
        ds1 = channel_spec(DecayChannel.DS1_TO_DSTAR_K0S)
        self.assertEqual(ds1.d_variant, DVariant.DSTAR)
        self.assertEqual(ds1.d_mass, MASS_DSTAR)
        self.assertEqual(ds1.v0_mass, MASS_K0S)
        ds2 = channel_spec(DecayChannel.DSTAR2_TO_DPLUS_K0S)
        self.assertEqual(ds2.d_variant, DVariant.DPLUS)
        self.assertEqual(ds2.d_mass, MASS_DPLUS)
        xc = channel_spec(DecayChannel.XC_TO_DPLUS_LAMBDA)
        self.assertEqual(xc.v0_mass, MASS_LAMBDA)
        self.assertEqual(xc.v0_partition, V0Hypothesis.LAMBDA | V0Hypothesis.ANTI_LAMBDA)

    def test_hypothesis_from_d_sign(self) -> None:
        """Lambda for a positive D, anti-Lambda otherwise; K0s channels ignore sign."""
        xc = channel_spec(DecayChannel.XC_TO_DPLUS_LAMBDA)
        self.assertEqual(xc.v0_hypothesis(1), V0Hypothesis.LAMBDA)
        self.assertEqual(xc.v0_hypothesis(-1), V0Hypothesis.ANTI_LAMBDA)
        ds1 = channel_spec(DecayChannel.DS1_TO_DSTAR_K0S)
        self.assertEqual(ds1.v0_hypothesis(-2), V0Hypothesis.K0S)

    def test_channel_names_and_aliases(self) -> None:
        """Channels resolve from values and short aliases; unknown names raise."""
        self.assertEqual(channel_from_name("xc_to_dplus_lambda"), DecayChannel.XC_TO_DPLUS_LAMBDA)
        self.assertEqual(channel_from_name("A"), DecayChannel.DS1_TO_DSTAR_K0S)
        self.assertEqual(channel_from_name(" dsstar2 "), DecayChannel.DSTAR2_TO_DPLUS_K0S)
        with self.assertRaises(ValueError):
            channel_from_name("bs_to_dk")

    def test_v0_nominal_masses(self) -> None:
        """Single-bit hypotheses map to nominal masses; combined masks raise."""
        self.assertEqual(v0_mass_for(V0Hypothesis.K0S), MASS_K0S)
        self.assertEqual(v0_mass_for(V0Hypothesis.ANTI_LAMBDA), MASS_LAMBDA)
        with self.assertRaises(ValueError):
            v0_mass_for(V0Hypothesis.K0S | V0Hypothesis.LAMBDA)


if __name__ == "__main__":
    unittest.main()
