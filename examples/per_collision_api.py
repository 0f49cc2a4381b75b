"""Per-collision API example: drive the reduction one collision at a time.

Useful when collisions arrive from a custom reader instead of the JSON loader.
The creator returns one `CollisionOutput` per collision; the caller decides
where the rows go and supplies the running V0 offset.

Run from repository root without installation:
    PYTHONPATH=src python examples/per_collision_api.py --collisions examples/toy_dsstar2/collisions.json
"""

from __future__ import annotations

import argparse

from charmreso import DecayChannel, FieldContext, ReducedDataCreator, ReducedTables
from charmreso.io import load_collisions_json


def main() -> int:
    """Reduce each collision explicitly and print a per-collision summary."""
    parser = argparse.ArgumentParser(description="Per-collision reduction walkthrough.")
    parser.add_argument("--collisions", required=True)
    parser.add_argument("--bz", type=float, default=-5.0, help="Field value used for every run.")
    args = parser.parse_args()

    creator = ReducedDataCreator(channel=DecayChannel.DSTAR2_TO_DPLUS_K0S)
    tables = ReducedTables()
    for item in load_collisions_json(args.collisions):
        tables.n_original_collisions += 1
        output = creator.process_collision(
            item.collision,
            item.d_candidates,
            item.v0_candidates,
            field_context=FieldContext(run_number=item.collision.run_number, bz=args.bz),
            collision_ref=tables.next_collision_ref,
            v0_offset=len(tables.v0_candidates),
        )
        if output.is_empty:
            print(f"collision {item.collision.collision_id}: nothing kept")
            continue
        print(
            f"collision {item.collision.collision_id}: "
            f"{len(output.d_records)} D, {len(output.v0_records)} V0, {len(output.pairs)} pairs"
        )
        tables.append(output)

    print(f"Kept {len(tables.collisions)}/{tables.n_original_collisions} collisions")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
