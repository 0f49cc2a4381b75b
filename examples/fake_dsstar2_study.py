"""Toy D*s2(2573)+ -> D+ K0s study with generated D and V0 candidates.

Walkthrough:
1. Generate collisions holding one D*s2 -> D+ K0s decay plus random D+ and V0
   candidates (some V0s share a track with the D, to exercise the veto).
2. Write the collision and field-map JSON inputs.
3. Run the reduction and the resonance pass.
4. Write the pair table and, optionally, a mass histogram.

Run without package installation:
    PYTHONPATH=src python3 examples/fake_dsstar2_study.py --n-collisions 200
"""

from __future__ import annotations

import argparse
import json
import math
from pathlib import Path
from random import Random
from typing import Any

from charmreso import (
    DecayChannel,
    QARegistry,
    ReducedDataCreator,
    ResonanceCandidateCreator,
    RunCalibrationCache,
)
from charmreso.io import load_collisions_json, load_field_map_json, write_pairs_table
from charmreso.physics import MASS_DPLUS, MASS_K0S, MASS_LAMBDA

MASS_DSSTAR2 = 2.5691
RUNS = (529003, 529004)


def parse_args() -> argparse.Namespace:
    """Parse CLI options for the toy study."""
    parser = argparse.ArgumentParser(description="Toy D*s2 -> D+ K0s reconstruction study.")
    parser.add_argument("--n-collisions", type=int, default=200)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--workdir", default="examples/toy_dsstar2")
    parser.add_argument("--plot", action="store_true", help="Write a pair-mass histogram PNG.")
    return parser.parse_args()


def random_unit_vector(rng: Random) -> tuple[float, float, float]:
    """Sample an isotropic 3D unit vector."""
    cos_theta = rng.uniform(-1.0, 1.0)
    sin_theta = math.sqrt(max(0.0, 1.0 - cos_theta * cos_theta))
    phi = rng.uniform(0.0, 2.0 * math.pi)
    return sin_theta * math.cos(phi), sin_theta * math.sin(phi), cos_theta


def two_body_momentum(parent_mass: float, m1: float, m2: float) -> float:
    """Return daughter momentum magnitude in parent rest frame."""
    term = (parent_mass * parent_mass - (m1 + m2) ** 2) * (parent_mass * parent_mass - (m1 - m2) ** 2)
    if term <= 0.0:
        return 0.0
    return math.sqrt(term) / (2.0 * parent_mass)


def boost(p: tuple[float, float, float], e: float, beta: tuple[float, float, float]) -> tuple[float, float, float]:
    """Boost a momentum/energy pair by `beta` and return the lab momentum."""
    bx, by, bz = beta
    b2 = bx * bx + by * by + bz * bz
    if b2 <= 0.0:
        return p
    gamma = 1.0 / math.sqrt(max(1e-16, 1.0 - b2))
    bp = bx * p[0] + by * p[1] + bz * p[2]
    k = (gamma - 1.0) / b2 * bp + gamma * e
    return p[0] + k * bx, p[1] + k * by, p[2] + k * bz


def decay_dsstar2(rng: Random) -> tuple[tuple[float, float, float], tuple[float, float, float]]:
    """Produce D+ and K0s lab momenta from one D*s2 with random pT."""
    u = random_unit_vector(rng)
    p_parent = rng.uniform(2.0, 8.0)
    e_parent = math.sqrt(p_parent * p_parent + MASS_DSSTAR2 * MASS_DSSTAR2)
    beta = tuple(p_parent * c / e_parent for c in u)
    q = two_body_momentum(MASS_DSSTAR2, MASS_DPLUS, MASS_K0S)
    d = random_unit_vector(rng)
    p_d = boost((q * d[0], q * d[1], q * d[2]), math.hypot(q, MASS_DPLUS), beta)
    p_k = boost((-q * d[0], -q * d[1], -q * d[2]), math.hypot(q, MASS_K0S), beta)
    return p_d, p_k


def _d_json(cid: int, p: tuple[float, float, float], tracks: list[int], rng: Random) -> dict[str, Any]:
    return {
        "candidate_id": cid,
        "variant": "dplus",
        "momentum": list(p),
        "secondary_vertex": [rng.gauss(0.0, 0.02), rng.gauss(0.0, 0.02), rng.gauss(0.0, 0.05)],
        "daughter_track_ids": tracks,
        "invariant_mass": rng.gauss(MASS_DPLUS, 0.008),
        "sign": rng.choice((-1, 1)),
    }


def _v0_json(vid: int, p: tuple[float, float, float], tracks: tuple[int, int], rng: Random, k0s: bool) -> dict[str, Any]:
    return {
        "v0_id": vid,
        "pos_track_id": tracks[0],
        "neg_track_id": tracks[1],
        "decay_vertex": [rng.uniform(-5, 5), rng.uniform(-5, 5), rng.uniform(-5, 5)],
        "momentum": list(p),
        "mass_k0s": rng.gauss(MASS_K0S, 0.005) if k0s else rng.uniform(0.35, 0.65),
        "mass_lambda": rng.uniform(1.08, 1.30),
        "mass_anti_lambda": rng.gauss(MASS_LAMBDA, 0.003) if not k0s else rng.uniform(1.08, 1.30),
        "cos_pa": rng.uniform(0.96, 1.0),
        "dca_to_pv": abs(rng.gauss(0.0, 0.06)),
        "radius": rng.uniform(0.3, 30.0),
        "pos_eta": rng.uniform(-1.0, 1.0),
        "neg_eta": rng.uniform(-1.0, 1.0),
        "dca_daughters": abs(rng.gauss(0.0, 0.4)),
        "dca_pos_to_pv": rng.gauss(0.0, 0.3),
        "dca_neg_to_pv": rng.gauss(0.0, 0.3),
    }


def generate_collisions(n: int, rng: Random) -> list[dict[str, Any]]:
    """Generate collision payloads in the loader JSON format."""
    out: list[dict[str, Any]] = []
    for cid in range(n):
        next_track = 0

        def tracks(k: int) -> list[int]:
            nonlocal next_track
            ids = list(range(next_track, next_track + k))
            next_track += k
            return ids

        p_d, p_k = decay_dsstar2(rng)
        d_list = [_d_json(0, p_d, tracks(3), rng)]
        v0_list = [_v0_json(0, p_k, tuple(tracks(2)), rng, k0s=True)]
        for i in range(rng.randint(0, 2)):
            p = tuple(rng.gauss(0.0, 1.5) for _ in range(3))
            d_list.append(_d_json(i + 1, p, tracks(3), rng))
        for i in range(rng.randint(0, 4)):
            p = tuple(rng.gauss(0.0, 1.0) for _ in range(3))
            pair = (rng.choice(d_list[0]["daughter_track_ids"]), tracks(1)[0]) if i == 0 else tuple(tracks(2))
            v0_list.append(_v0_json(i + 1, p, pair, rng, k0s=rng.random() < 0.6))
        out.append(
            {
                "collision_id": cid,
                "x": rng.gauss(0.0, 0.01),
                "y": rng.gauss(0.0, 0.01),
                "z": rng.gauss(0.0, 5.0),
                "covariance": [1e-4, 0.0, 1e-4, 0.0, 0.0, 4e-4],
                "run_number": RUNS[0] if cid < n // 2 else RUNS[1],
                "d_candidates": d_list,
                "v0_candidates": v0_list,
            }
        )
    return out


def maybe_plot(masses: list[float], out_png: Path) -> None:
    """Render the D+ K0s mass histogram around the D*s2 peak."""
    try:
        import matplotlib.pyplot as plt  # type: ignore
    except ModuleNotFoundError:
        print("matplotlib not installed; skipping plot.")
        return
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(masses, bins=80, range=(2.35, 3.0), histtype="step", linewidth=1.4)
    ax.axvline(MASS_DSSTAR2, color="green", linestyle="--", linewidth=1.2, label="D*s2(2573)")
    ax.set_xlabel("m(D+ K0s) [GeV]")
    ax.set_ylabel("Candidates")
    ax.legend()
    fig.tight_layout()
    fig.savefig(out_png, dpi=120)
    plt.close(fig)


def main() -> int:
    """Generate toy inputs, reduce them and reconstruct D*s2 candidates."""
    args = parse_args()
    rng = Random(args.seed)
    workdir = Path(args.workdir)
    workdir.mkdir(parents=True, exist_ok=True)

    collisions_path = workdir / "collisions.json"
    collisions_path.write_text(
        json.dumps({"collisions": generate_collisions(args.n_collisions, rng)}), encoding="utf-8"
    )
    fields_path = workdir / "fields.json"
    fields_path.write_text(json.dumps({"runs": {str(r): {"bz": -5.0} for r in RUNS}}), encoding="utf-8")

    qa = QARegistry()
    channel = DecayChannel.DSTAR2_TO_DPLUS_K0S
    tables = ReducedDataCreator(channel=channel, observer=qa).process_collisions(
        load_collisions_json(collisions_path),
        RunCalibrationCache(load_field_map_json(fields_path)),
    )
    pairs = ResonanceCandidateCreator(channel=channel).process_tables(tables)
    out_path = workdir / "dsstar2_pairs.csv"
    write_pairs_table(out_path, pairs)

    n_peak = sum(1 for p in pairs if abs(p.inv_mass - MASS_DSSTAR2) < 0.01)
    print(f"Kept {len(tables.collisions)}/{tables.n_original_collisions} collisions")
    print(f"Wrote {len(pairs)} candidates to {out_path}, {n_peak} within 10 MeV of the peak")
    if args.plot:
        maybe_plot([p.inv_mass for p in pairs], workdir / "dsstar2_mass.png")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
