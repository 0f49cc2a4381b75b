"""Physics/math helpers for building D-V0 pair kinematics."""

from __future__ import annotations

import math

from .models import LorentzVector, Vector3

# PDG masses in GeV/c^2.
MASS_K0S = 0.497611
MASS_LAMBDA = 1.115683
MASS_DPLUS = 1.86966
MASS_D0 = 1.86484
MASS_DSTAR = 2.01026


def momentum_to_lorentz(momentum: Vector3, mass: float) -> LorentzVector:
    """Convert a 3-momentum plus mass hypothesis into a Lorentz 4-vector."""
    px, py, pz = momentum
    energy = (px * px + py * py + pz * pz + mass * mass) ** 0.5
    return LorentzVector(px=px, py=py, pz=pz, e=energy)


def sum_momenta(*momenta: Vector3) -> Vector3:
    """Component-wise sum of 3-momenta."""
    return (
        sum(p[0] for p in momenta),
        sum(p[1] for p in momenta),
        sum(p[2] for p in momenta),
    )


def pt(momentum: Vector3) -> float:
    """Transverse momentum of a 3-vector."""
    return math.hypot(momentum[0], momentum[1])


def invariant_mass_two_body(
    p1: Vector3,
    p2: Vector3,
    m1: float,
    m2: float,
) -> float:
    """Two-body invariant mass, negative when mass2 is (numerically) below zero.

    `m^2 = (E_1 + E_2)^2 - |p_1 + p_2|^2` with `E_i = sqrt(|p_i|^2 + m_i^2)`.
    """
    p4 = momentum_to_lorentz(p1, m1) + momentum_to_lorentz(p2, m2)
    return p4.mass


def pair_pt(p1: Vector3, p2: Vector3) -> float:
    """Transverse momentum of the summed 3-momentum."""
    return pt(sum_momenta(p1, p2))
