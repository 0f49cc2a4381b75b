"""Unit tests for the per-collision D-V0 reduction engine."""

from __future__ import annotations

import dataclasses
import math
import unittest

from charmreso import (
    CalibrationUnavailableError,
    Collision,
    CollisionInput,
    DCandidate,
    DecayChannel,
    DVariant,
    QARegistry,
    ReducedDataCreator,
    RunCalibrationCache,
    SelectionStage,
    StaticFieldSource,
    V0Candidate,
    V0Hypothesis,
)
from charmreso.physics import MASS_DPLUS, MASS_K0S, invariant_mass_two_body


def _collision(collision_id: int = 0, run_number: int = 500) -> Collision:
    """Create a collision at the origin."""
    return Collision(
        collision_id=collision_id,
        x=0.0,
        y=0.0,
        z=0.5,
        covariance=(1e-4, 0.0, 1e-4, 0.0, 0.0, 1e-4),
        run_number=run_number,
    )


def _dplus(candidate_id: int, daughters: tuple[int, int, int], sign: int = 1) -> DCandidate:
    """Create a D+ candidate inside the default mass window."""
    return DCandidate(
        candidate_id=candidate_id,
        variant=DVariant.DPLUS,
        px=2.0,
        py=1.0,
        pz=0.5,
        secondary_vertex=(0.02, 0.01, 0.5),
        daughter_track_ids=daughters,
        invariant_mass=1.87,
        sign=sign,
    )


def _v0(v0_id: int, pos: int, neg: int, **overrides) -> V0Candidate:
    """Create a K0s-like V0 passing the default cuts."""
    base = V0Candidate(
        v0_id=v0_id,
        pos_track_id=pos,
        neg_track_id=neg,
        decay_vertex=(1.5, 0.3, 0.6),
        px=1.0,
        py=-0.5,
        pz=0.3,
        mass_k0s=0.497,
        mass_lambda=1.4,
        mass_anti_lambda=1.4,
        cos_pa=0.99,
        dca_to_pv=0.03,
        radius=1.5,
        pos_eta=0.2,
        neg_eta=0.1,
        dca_daughters=0.2,
        dca_pos_to_pv=0.3,
        dca_neg_to_pv=0.3,
    )
    return dataclasses.replace(base, **overrides)


def _lambda_v0(v0_id: int, pos: int, neg: int) -> V0Candidate:
    """V0 compatible with both Lambda and anti-Lambda, with distinct masses."""
    return _v0(v0_id, pos, neg, mass_k0s=0.7, mass_lambda=1.1150, mass_anti_lambda=1.1170)


class TestReducedDataCreator(unittest.TestCase):
    """Validate pairing, deduplication and conditional emission."""

    def test_v0_shared_by_two_d_is_stored_once(self) -> None:
        """One V0 kept by two D candidates gives one V0 row and two pairs."""
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        out = creator.process_collision(
            _collision(),
            [_dplus(0, (1, 2, 3)), _dplus(1, (4, 5, 6))],
            [_v0(77, 20, 21)],
        )
        self.assertIsNotNone(out.collision)
        self.assertEqual(len(out.d_records), 2)
        self.assertEqual(len(out.v0_records), 1)
        self.assertEqual(len(out.pairs), 2)
        self.assertEqual(out.v0_rows, {77: 0})
        self.assertEqual(out.v0_records[0].selection_bitmask, V0Hypothesis.K0S)

    def test_v0_rows_use_table_offset(self) -> None:
        """V0 row indices are offset by the current reduced V0 table length."""
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        out = creator.process_collision(
            _collision(),
            [_dplus(0, (1, 2, 3))],
            [_v0(7, 20, 21), _v0(8, 22, 23)],
            collision_ref=4,
            v0_offset=10,
        )
        self.assertEqual(out.v0_rows, {7: 10, 8: 11})
        self.assertTrue(all(v.collision_ref == 4 for v in out.v0_records))
        self.assertTrue(all(d.collision_ref == 4 for d in out.d_records))
        self.assertTrue(all(p.collision_ref == 4 for p in out.pairs))

    def test_d_without_partner_is_not_stored(self) -> None:
        """A D whose only V0 is vetoed produces nothing, nor does its collision."""
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        out = creator.process_collision(
            _collision(),
            [_dplus(0, (1, 2, 3))],
            [_v0(5, 1, 30)],
        )
        self.assertTrue(out.is_empty)
        self.assertEqual(out.d_records, ())
        self.assertEqual(out.v0_records, ())
        self.assertEqual(out.pairs, ())

    def test_collision_without_selected_d_is_empty(self) -> None:
        """A D outside the mass window never reaches the V0 loop."""
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        far = dataclasses.replace(_dplus(0, (1, 2, 3)), invariant_mass=3.0)
        out = creator.process_collision(_collision(), [far], [_v0(5, 20, 21)])
        self.assertIsNone(out.collision)

    def test_vetoed_v0_still_pairs_with_other_d(self) -> None:
        """A V0 vetoed against one D is evaluated again against the next D."""
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        out = creator.process_collision(
            _collision(),
            [_dplus(0, (20, 2, 3)), _dplus(1, (4, 5, 6))],
            [_v0(9, 20, 21)],
        )
        self.assertEqual(len(out.d_records), 1)
        self.assertEqual(out.d_records[0].daughter_track_ids, (4, 5, 6))
        self.assertEqual(len(out.v0_records), 1)
        self.assertEqual(len(out.pairs), 1)

    def test_pair_mass_uses_nominal_leg_masses(self) -> None:
        """The pair mass is built from nominal D+ and K0s masses."""
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        d = _dplus(0, (1, 2, 3))
        v0 = _v0(1, 20, 21)
        [pair] = creator.process_collision(_collision(), [d], [v0]).pairs
        expected = invariant_mass_two_body(d.momentum, v0.momentum, MASS_DPLUS, MASS_K0S)
        self.assertAlmostEqual(pair.inv_mass, expected, places=12)
        self.assertAlmostEqual(pair.pt, math.hypot(3.0, 0.5), places=12)
        self.assertAlmostEqual(pair.inv_mass_d, 1.87, places=12)
        self.assertAlmostEqual(pair.inv_mass_v0, v0.mass_k0s, places=12)
        self.assertAlmostEqual(pair.pt_d, math.hypot(2.0, 1.0), places=12)
        self.assertAlmostEqual(pair.pt_v0, math.hypot(1.0, 0.5), places=12)
        self.assertEqual(pair.cos_pa_v0, v0.cos_pa)
        self.assertEqual(pair.dca_v0, v0.dca_to_pv)
        self.assertEqual(pair.radius_v0, v0.radius)

    def test_lambda_for_positive_and_anti_lambda_for_negative_d(self) -> None:
        """The Lambda channel picks the hypothesis from the D charge."""
        creator = ReducedDataCreator(channel=DecayChannel.XC_TO_DPLUS_LAMBDA)
        v0 = _lambda_v0(3, 20, 21)
        [pos_pair] = creator.process_collision(_collision(), [_dplus(0, (1, 2, 3), sign=1)], [v0]).pairs
        [neg_pair] = creator.process_collision(_collision(), [_dplus(0, (1, 2, 3), sign=-1)], [v0]).pairs
        self.assertEqual(pos_pair.inv_mass_v0, v0.mass_lambda)
        self.assertEqual(neg_pair.inv_mass_v0, v0.mass_anti_lambda)

    def test_v0_without_channel_hypothesis_is_stored_without_pair(self) -> None:
        """A Lambda-only V0 is kept in the reduced tables of a K0s channel, unpaired."""
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        out = creator.process_collision(_collision(), [_dplus(0, (1, 2, 3))], [_lambda_v0(3, 20, 21)])
        self.assertEqual(len(out.d_records), 1)
        self.assertEqual(len(out.v0_records), 1)
        self.assertEqual(out.pairs, ())

    def test_signed_type_encodes_species_and_charge(self) -> None:
        """D+ rows store +-1, D* rows +-2."""
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        out = creator.process_collision(_collision(), [_dplus(0, (1, 2, 3), sign=-1)], [_v0(1, 20, 21)])
        self.assertEqual(out.d_records[0].signed_type, -1)
        dstar = dataclasses.replace(_dplus(0, (1, 2, 3)), variant=DVariant.DSTAR, invariant_mass=0.1455)
        out = ReducedDataCreator(channel=DecayChannel.DS1_TO_DSTAR_K0S).process_collision(
            _collision(), [dstar], [_v0(1, 20, 21)]
        )
        self.assertEqual(out.d_records[0].signed_type, 2)

    def test_wrong_d_variant_raises(self) -> None:
        """Feeding D* candidates into a D+ channel is a usage error."""
        dstar = dataclasses.replace(_dplus(0, (1, 2, 3)), variant=DVariant.DSTAR)
        with self.assertRaises(ValueError):
            ReducedDataCreator(channel=DecayChannel.XC_TO_DPLUS_LAMBDA).process_collision(
                _collision(), [dstar], []
            )

    def test_observer_does_not_change_output(self) -> None:
        """Outputs are identical with and without a QA observer."""
        ds = [_dplus(0, (1, 2, 3)), _dplus(1, (20, 5, 6))]
        v0s = [_v0(1, 20, 21), _v0(2, 30, 31, radius=0.1)]
        qa = QARegistry()
        plain = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S).process_collision(
            _collision(), ds, v0s
        )
        observed = ReducedDataCreator(
            channel=DecayChannel.DSTAR2_TO_DPLUS_K0S, observer=qa
        ).process_collision(_collision(), ds, v0s)
        self.assertEqual(plain, observed)
        self.assertEqual(qa.steps[SelectionStage.D_CANDIDATE], 2)
        self.assertEqual(qa.steps[SelectionStage.D_WITH_V0], 1)
        self.assertEqual(qa.steps[SelectionStage.COLLISION_WITH_PAIR], 1)
        self.assertEqual(len(qa.values("hMassDsStar2")), 1)
        self.assertEqual(len(qa.values("hMassDplus")), 1)
        self.assertEqual(qa.values("hV0Type"), [int(V0Hypothesis.K0S)])
        self.assertEqual(qa.values("hDType"), [1])
        self.assertEqual(len(qa.values("hPtDplus")), 1)
        self.assertEqual(qa.values("hPtDstar"), [])


class TestProcessCollisions(unittest.TestCase):
    """Validate the batch driver, cross references and calibration handling."""

    def _inputs(self) -> list[CollisionInput]:
        return [
            CollisionInput(_collision(0), (_dplus(0, (1, 2, 3)),), (_v0(1, 20, 21), _v0(2, 22, 23))),
            CollisionInput(_collision(1), (_dplus(0, (1, 2, 3)),), (_v0(1, 1, 21),)),
            CollisionInput(_collision(2, run_number=501), (_dplus(0, (1, 2, 3)),), (_v0(1, 20, 21),)),
        ]

    def test_batch_cross_references(self) -> None:
        """Only collisions with pairs are stored and references follow table order."""
        calibration = RunCalibrationCache(StaticFieldSource({500: -5.0, 501: 5.0}))
        tables = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S).process_collisions(
            self._inputs(), calibration
        )
        self.assertEqual(tables.n_original_collisions, 3)
        self.assertEqual(len(tables.collisions), 2)
        self.assertEqual([d.collision_ref for d in tables.d_candidates], [0, 1])
        self.assertEqual([v.collision_ref for v in tables.v0_candidates], [0, 0, 1])
        self.assertEqual([p.collision_ref for p in tables.pairs], [0, 0, 1])
        self.assertEqual([c.magnetic_field for c in tables.collisions], [-5.0, 5.0])
        self.assertEqual(len(tables.v0_for_collision(0)), 2)
        self.assertEqual(len(tables.d_for_collision(1)), 1)

    def test_same_v0_id_in_new_collision_is_stored_again(self) -> None:
        """Deduplication is per collision: the same id in the next collision gets a new row."""
        calibration = RunCalibrationCache(StaticFieldSource({500: 5.0}))
        inputs = [
            CollisionInput(_collision(0), (_dplus(0, (1, 2, 3)),), (_v0(1, 20, 21),)),
            CollisionInput(_collision(1), (_dplus(0, (1, 2, 3)),), (_v0(1, 20, 21),)),
        ]
        tables = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S).process_collisions(
            inputs, calibration
        )
        self.assertEqual(len(tables.v0_candidates), 2)

    def test_missing_field_aborts_batch(self) -> None:
        """A run without field context raises and stops the batch."""
        calibration = RunCalibrationCache(StaticFieldSource({500: 5.0}))
        with self.assertRaises(CalibrationUnavailableError):
            ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S).process_collisions(
                self._inputs(), calibration
            )

    def test_aborted_batch_leaves_tables_untouched(self) -> None:
        """Rows and the collision counter are merged only when the whole batch succeeds."""
        calibration = RunCalibrationCache(StaticFieldSource({500: 5.0}))
        creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
        tables = creator.process_collisions(self._inputs()[:1], calibration)
        aborted = [
            CollisionInput(_collision(1), (_dplus(0, (1, 2, 3)),), (_v0(1, 20, 21),)),
            CollisionInput(_collision(2, run_number=999), (_dplus(0, (1, 2, 3)),), (_v0(1, 20, 21),)),
        ]
        with self.assertRaises(CalibrationUnavailableError):
            creator.process_collisions(aborted, calibration, tables)
        self.assertEqual(tables.n_original_collisions, 1)
        self.assertEqual(len(tables.collisions), 1)
        self.assertEqual(len(tables.d_candidates), 1)
        self.assertEqual(len(tables.v0_candidates), 2)
        self.assertEqual(len(tables.pairs), 2)

        creator.process_collisions(aborted[:1], calibration, tables)
        self.assertEqual(tables.n_original_collisions, 2)
        self.assertEqual([c.magnetic_field for c in tables.collisions], [5.0, 5.0])
        self.assertEqual([d.collision_ref for d in tables.d_candidates], [0, 1])
        self.assertEqual([v.collision_ref for v in tables.v0_candidates], [0, 0, 1])


if __name__ == "__main__":
    unittest.main()
