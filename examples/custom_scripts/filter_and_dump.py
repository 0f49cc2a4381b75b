"""Example custom callback: tighten V0 quality and dump selected resonance pairs."""

from __future__ import annotations

import json
from pathlib import Path


def process(pairs, context):
    """Keep pairs with a well-pointing V0 and write a compact JSON report."""
    selected = [p for p in pairs if p.cos_pa_v0 > 0.995 and p.radius_v0 > 1.0 and p.pt > 2.0]
    payload = {
        "channel": context["channel"].value,
        "n_original_collisions": context["n_original_collisions"],
        "n_selected": len(selected),
        "selected": [
            {
                "collision_ref": p.collision_ref,
                "inv_mass": p.inv_mass,
                "pt": p.pt,
                "inv_mass_v0": p.inv_mass_v0,
            }
            for p in selected
        ],
    }
    out = Path(context["output_path"]).with_name("selected_pairs.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
