"""Input/output helpers for JSON inputs and tabular reduced-data export."""

from __future__ import annotations

import dataclasses
import json
import math
from pathlib import Path
from typing import Any

from .calibration import StaticFieldSource
from .creator import ReducedTables
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
    ResonanceWindows,
    V0Candidate,
    V0Hypothesis,
    V0Selection,
)

TABLE_NAMES = ("collisions", "d_candidates", "v0_candidates", "pairs")
_SUFFIXES = {"parquet": ".parquet", "csv": ".csv", "pkl": ".pkl"}
_COV_KEYS = ("cov_xx", "cov_xy", "cov_yy", "cov_xz", "cov_yz", "cov_zz")


def load_collisions_json(path: str | Path) -> list[CollisionInput]:
    """Load multi-collision input JSON into `CollisionInput` objects.

    Expected shape:
    {
      "collisions": [
        {"collision_id": 0, "x": ..., "y": ..., "z": ..., "covariance": [6 floats],
         "run_number": ..., "d_candidates": [...], "v0_candidates": [...]},
        ...
      ]
    }
    """
    data = _load_json(path)
    collisions_data = data.get("collisions")
    if not isinstance(collisions_data, list):
        raise ValueError("Collisions JSON must contain a list under key 'collisions'.")
    out: list[CollisionInput] = []
    for idx, item in enumerate(collisions_data):
        if not isinstance(item, dict):
            raise ValueError(f"Collision entry at index {idx} must be an object.")
        collision = _parse_collision_item(item, idx)
        context = f"collision {collision.collision_id}"
        d_data = item.get("d_candidates", [])
        v0_data = item.get("v0_candidates", [])
        if not isinstance(d_data, list) or not isinstance(v0_data, list):
            raise ValueError(f"{context}: 'd_candidates' and 'v0_candidates' must be lists.")
        out.append(
            CollisionInput(
                collision=collision,
                d_candidates=tuple(
                    _parse_d_item(d, didx, context) for didx, d in enumerate(d_data)
                ),
                v0_candidates=tuple(
                    _parse_v0_item(v, vidx, context) for vidx, v in enumerate(v0_data)
                ),
            )
        )
    return out


def load_field_map_json(path: str | Path) -> StaticFieldSource:
    """Load a `run -> Bz` map, shaped as `{"runs": {"<run>": {"bz": ...}}}`."""
    data = _load_json(path)
    runs = data.get("runs")
    if not isinstance(runs, dict):
        raise ValueError("Field map JSON must contain an object under key 'runs'.")
    fields: dict[int, float] = {}
    for run, entry in runs.items():
        if isinstance(entry, dict):
            if "bz" not in entry:
                raise ValueError(f"Field map entry for run {run} must define 'bz'.")
            fields[int(run)] = float(entry["bz"])
        else:
            fields[int(run)] = float(entry)
    return StaticFieldSource(fields, name=str(path))


def load_cuts_json(
    path: str | Path,
) -> tuple[V0Selection, DSelection, ResonanceWindows]:
    """Load cut overrides; missing sections keep the defaults."""
    data = _load_json(path)
    return (
        _override(V0Selection(), data.get("v0_selection"), "v0_selection"),
        _override(DSelection(), data.get("d_selection"), "d_selection"),
        _override(ResonanceWindows(), data.get("resonance_windows"), "resonance_windows"),
    )


def write_table(path: str | Path, rows: list[dict[str, Any]], columns: list[str] | None = None) -> None:
    """Write row dictionaries into Parquet/CSV/Pickle table."""
    pd = _require_pandas()
    df = pd.DataFrame(rows, columns=columns)
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def read_table(path: str | Path) -> list[dict[str, Any]]:
    """Read a Parquet/CSV/Pickle table back into row dictionaries."""
    pd = _require_pandas()
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".parquet":
        df = pd.read_parquet(p)
    elif suffix == ".csv":
        df = pd.read_csv(p)
    elif suffix in (".pkl", ".pickle"):
        df = pd.read_pickle(p)
    else:
        raise ValueError("Supported input formats: .parquet, .csv, .pkl")
    return df.to_dict("records")


def write_pairs_table(path: str | Path, pairs: list[PairRecord]) -> None:
    """Write resonance candidates into one table."""
    write_table(path, [dataclasses.asdict(p) for p in pairs], _PAIR_COLUMNS)


def write_reduced_tables(directory: str | Path, tables: ReducedTables, fmt: str = "parquet") -> dict[str, Path]:
    """Write the four reduced tables plus a small JSON manifest into `directory`."""
    suffix = _table_suffix(fmt)
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = {name: out_dir / f"{name}{suffix}" for name in TABLE_NAMES}
    write_table(paths["collisions"], [_collision_row(c) for c in tables.collisions], _COLLISION_COLUMNS)
    write_table(paths["d_candidates"], [_d_row(d) for d in tables.d_candidates], _D_COLUMNS)
    write_table(paths["v0_candidates"], [_v0_row(v) for v in tables.v0_candidates], _V0_COLUMNS)
    write_pairs_table(paths["pairs"], tables.pairs)
    manifest = {"n_original_collisions": tables.n_original_collisions, "format": fmt}
    (out_dir / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    return paths


def load_reduced_tables(directory: str | Path, fmt: str = "parquet") -> ReducedTables:
    """Read tables written by `write_reduced_tables`."""
    suffix = _table_suffix(fmt)
    in_dir = Path(directory)
    tables = ReducedTables(
        collisions=[_parse_collision_row(r) for r in read_table(in_dir / f"collisions{suffix}")],
        d_candidates=[_parse_d_row(r) for r in read_table(in_dir / f"d_candidates{suffix}")],
        v0_candidates=[_parse_v0_row(r) for r in read_table(in_dir / f"v0_candidates{suffix}")],
        pairs=[_parse_pair_row(r) for r in read_table(in_dir / f"pairs{suffix}")],
    )
    manifest = in_dir / "manifest.json"
    if manifest.exists():
        tables.n_original_collisions = int(_load_json(manifest).get("n_original_collisions", 0))
    return tables


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to read/write tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _table_suffix(fmt: str) -> str:
    try:
        return _SUFFIXES[fmt]
    except KeyError as exc:
        raise ValueError(f"Unsupported table format '{fmt}'. Use parquet, csv, or pkl.") from exc


def _override(base: Any, values: Any, section: str) -> Any:
    """Return `base` with fields replaced by the entries of `values`."""
    if values is None:
        return base
    if not isinstance(values, dict):
        raise ValueError(f"Cut section '{section}' must be an object.")
    known = {f.name for f in dataclasses.fields(base)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(
            f"Unknown keys in '{section}': {', '.join(unknown)}. Known: {', '.join(sorted(known))}"
        )
    return dataclasses.replace(base, **{k: float(v) for k, v in values.items()})


def _parse_collision_item(item: dict[str, Any], idx: int) -> Collision:
    """Parse one collision dictionary into a `Collision`."""
    try:
        return Collision(
            collision_id=int(item.get("collision_id", idx)),
            x=float(item["x"]),
            y=float(item["y"]),
            z=float(item["z"]),
            covariance=_parse_floats(item.get("covariance", [0.0] * 6), 6, "covariance"),
            run_number=int(item["run_number"]),
        )
    except KeyError as exc:
        raise ValueError(f"Collision at index {idx} is missing field {exc}.") from exc


def _parse_d_item(item: Any, idx: int, context: str) -> DCandidate:
    """Parse one D candidate dictionary into a `DCandidate`."""
    if not isinstance(item, dict):
        raise ValueError(f"D candidate at index {idx} in {context} must be an object.")
    try:
        px, py, pz = _parse_floats(item["momentum"], 3, "momentum")
        ids = item["daughter_track_ids"]
        if not isinstance(ids, list) or len(ids) != 3:
            raise ValueError(f"D candidate at index {idx} in {context} needs 3 daughter_track_ids.")
        return DCandidate(
            candidate_id=int(item.get("candidate_id", idx)),
            variant=_parse_variant(item.get("variant", "dplus")),
            px=px,
            py=py,
            pz=pz,
            secondary_vertex=_parse_floats(item["secondary_vertex"], 3, "secondary_vertex"),
            daughter_track_ids=(int(ids[0]), int(ids[1]), int(ids[2])),
            invariant_mass=float(item["invariant_mass"]),
            sign=int(item.get("sign", 1)),
        )
    except KeyError as exc:
        raise ValueError(f"D candidate at index {idx} in {context} is missing field {exc}.") from exc


def _parse_v0_item(item: Any, idx: int, context: str) -> V0Candidate:
    """Parse one V0 dictionary into a `V0Candidate`."""
    if not isinstance(item, dict):
        raise ValueError(f"V0 candidate at index {idx} in {context} must be an object.")
    try:
        px, py, pz = _parse_floats(item["momentum"], 3, "momentum")
        return V0Candidate(
            v0_id=int(item.get("v0_id", idx)),
            pos_track_id=int(item["pos_track_id"]),
            neg_track_id=int(item["neg_track_id"]),
            decay_vertex=_parse_floats(item["decay_vertex"], 3, "decay_vertex"),
            px=px,
            py=py,
            pz=pz,
            mass_k0s=float(item["mass_k0s"]),
            mass_lambda=float(item["mass_lambda"]),
            mass_anti_lambda=float(item["mass_anti_lambda"]),
            cos_pa=float(item["cos_pa"]),
            dca_to_pv=float(item["dca_to_pv"]),
            radius=float(item["radius"]),
            pos_eta=float(item.get("pos_eta", 0.0)),
            neg_eta=float(item.get("neg_eta", 0.0)),
            dca_daughters=float(item.get("dca_daughters", 0.0)),
            dca_pos_to_pv=float(item.get("dca_pos_to_pv", 1.0)),
            dca_neg_to_pv=float(item.get("dca_neg_to_pv", 1.0)),
        )
    except KeyError as exc:
        raise ValueError(f"V0 candidate at index {idx} in {context} is missing field {exc}.") from exc


def _parse_variant(value: Any) -> DVariant:
    if isinstance(value, int):
        return DVariant(abs(value))
    key = str(value).strip().lower()
    if key in ("dplus", "d+"):
        return DVariant.DPLUS
    if key in ("dstar", "d*"):
        return DVariant.DSTAR
    raise ValueError(f"Unknown D variant {value!r}. Use 'dplus' or 'dstar'.")


def _parse_floats(value: Any, size: int, name: str) -> tuple[float, ...]:
    """Validate and convert a flat list of `size` numbers."""
    if not isinstance(value, (list, tuple)) or len(value) != size:
        raise ValueError(f"Field '{name}' must be a list of {size} numbers.")
    return tuple(float(x) for x in value)


_COLLISION_COLUMNS = ["x", "y", "z", *_COV_KEYS, "flags", "magnetic_field"]
_D_COLUMNS = [
    "prong0_id", "prong1_id", "prong2_id", "collision_ref",
    "x_secondary_vertex", "y_secondary_vertex", "z_secondary_vertex",
    "invariant_mass", "px", "py", "pz", "signed_type",
]
_V0_COLUMNS = [
    "pos_track_id", "neg_track_id", "collision_ref",
    "x_decay_vertex", "y_decay_vertex", "z_decay_vertex",
    "mass_k0s", "mass_lambda", "mass_anti_lambda",
    "px", "py", "pz", "cos_pa", "dca_to_pv", "radius", "selection_bitmask",
]
_PAIR_COLUMNS = [f.name for f in dataclasses.fields(PairRecord)]


def _collision_row(c: ReducedCollisionRecord) -> dict[str, Any]:
    row: dict[str, Any] = {"x": c.x, "y": c.y, "z": c.z}
    row.update(zip(_COV_KEYS, c.covariance))
    row["flags"] = c.flags
    row["magnetic_field"] = c.magnetic_field
    return row


def _d_row(d: ReducedDRecord) -> dict[str, Any]:
    return {
        "prong0_id": d.daughter_track_ids[0],
        "prong1_id": d.daughter_track_ids[1],
        "prong2_id": d.daughter_track_ids[2],
        "collision_ref": d.collision_ref,
        "x_secondary_vertex": d.secondary_vertex[0],
        "y_secondary_vertex": d.secondary_vertex[1],
        "z_secondary_vertex": d.secondary_vertex[2],
        "invariant_mass": d.invariant_mass,
        "px": d.px,
        "py": d.py,
        "pz": d.pz,
        "signed_type": d.signed_type,
    }


def _v0_row(v: ReducedV0Record) -> dict[str, Any]:
    return {
        "pos_track_id": v.pos_track_id,
        "neg_track_id": v.neg_track_id,
        "collision_ref": v.collision_ref,
        "x_decay_vertex": v.decay_vertex[0],
        "y_decay_vertex": v.decay_vertex[1],
        "z_decay_vertex": v.decay_vertex[2],
        "mass_k0s": v.mass_k0s,
        "mass_lambda": v.mass_lambda,
        "mass_anti_lambda": v.mass_anti_lambda,
        "px": v.px,
        "py": v.py,
        "pz": v.pz,
        "cos_pa": v.cos_pa,
        "dca_to_pv": v.dca_to_pv,
        "radius": v.radius,
        "selection_bitmask": int(v.selection_bitmask),
    }


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


def _parse_collision_row(r: dict[str, Any]) -> ReducedCollisionRecord:
    return ReducedCollisionRecord(
        x=float(r["x"]),
        y=float(r["y"]),
        z=float(r["z"]),
        covariance=tuple(float(r[k]) for k in _COV_KEYS),
        flags=int(r["flags"]),
        magnetic_field=_optional_float(r.get("magnetic_field")),
    )


def _parse_d_row(r: dict[str, Any]) -> ReducedDRecord:
    return ReducedDRecord(
        daughter_track_ids=(int(r["prong0_id"]), int(r["prong1_id"]), int(r["prong2_id"])),
        collision_ref=int(r["collision_ref"]),
        secondary_vertex=(
            float(r["x_secondary_vertex"]),
            float(r["y_secondary_vertex"]),
            float(r["z_secondary_vertex"]),
        ),
        invariant_mass=float(r["invariant_mass"]),
        px=float(r["px"]),
        py=float(r["py"]),
        pz=float(r["pz"]),
        signed_type=int(r["signed_type"]),
    )


def _parse_v0_row(r: dict[str, Any]) -> ReducedV0Record:
    return ReducedV0Record(
        pos_track_id=int(r["pos_track_id"]),
        neg_track_id=int(r["neg_track_id"]),
        collision_ref=int(r["collision_ref"]),
        decay_vertex=(float(r["x_decay_vertex"]), float(r["y_decay_vertex"]), float(r["z_decay_vertex"])),
        mass_k0s=float(r["mass_k0s"]),
        mass_lambda=float(r["mass_lambda"]),
        mass_anti_lambda=float(r["mass_anti_lambda"]),
        px=float(r["px"]),
        py=float(r["py"]),
        pz=float(r["pz"]),
        cos_pa=float(r["cos_pa"]),
        dca_to_pv=float(r["dca_to_pv"]),
        radius=float(r["radius"]),
        selection_bitmask=V0Hypothesis(int(r["selection_bitmask"])),
    )


def _parse_pair_row(r: dict[str, Any]) -> PairRecord:
    values = {name: float(r[name]) for name in _PAIR_COLUMNS}
    values["collision_ref"] = int(r["collision_ref"])
    return PairRecord(**values)


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
