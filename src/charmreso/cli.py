"""Command-line interface for D-V0 reduction and resonance reconstruction."""

from __future__ import annotations

import argparse
import dataclasses
import importlib.util
import logging
import sys
from pathlib import Path
from typing import Any

from .calibration import RunCalibrationCache
from .channels import DecayChannel, channel_from_name
from .creator import ReducedDataCreator
from .io import (
    load_collisions_json,
    load_cuts_json,
    load_field_map_json,
    load_reduced_tables,
    write_pairs_table,
    write_reduced_tables,
)
from .models import DSelection, PairRecord, ResonanceWindows, V0Selection
from .observer import QARegistry
from .resonance import ResonanceCandidateCreator

logger = logging.getLogger(__name__)

_V0_FLAGS = {
    "max_daughter_abs_eta": "Maximum |eta| of both V0 daughters.",
    "min_radius": "Minimum V0 transverse decay radius.",
    "min_cos_pa": "Minimum V0 cosine of pointing angle.",
    "max_dca_to_pv": "Maximum V0 DCA to the primary vertex.",
    "max_dca_daughters": "Maximum DCA between the V0 daughters.",
    "min_daughter_dca_to_pv": "Minimum |DCA| of each V0 daughter to the primary vertex.",
    "delta_mass_k0s": "K0s mass-hypothesis half window.",
    "delta_mass_lambda": "Lambda/anti-Lambda mass-hypothesis half window.",
}


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="charm-reso",
        description="Pair D and V0 candidates into reduced tables and resonance candidates.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    reduce_p = sub.add_parser("reduce", help="Build reduced tables from collision JSON.")
    reduce_p.add_argument("--collisions", required=True, help="Input JSON with key 'collisions'.")
    reduce_p.add_argument(
        "--field-map",
        required=True,
        help="JSON with the magnetic field per run ({'runs': {'<run>': {'bz': ...}}}).",
    )
    _add_common(reduce_p)
    reduce_p.add_argument(
        "--d-mass-window",
        type=float,
        default=None,
        help="Half window around the parent D mass (GeV/c^2).",
    )
    for name, help_text in _V0_FLAGS.items():
        reduce_p.add_argument(f"--{name.replace('_', '-')}", type=float, default=None, help=help_text)
    reduce_p.add_argument("--out-dir", required=True, help="Directory for the reduced tables.")

    reso_p = sub.add_parser("resonances", help="Build resonance candidates from reduced tables.")
    reso_p.add_argument("--reduced-dir", required=True, help="Directory written by 'reduce'.")
    _add_common(reso_p)
    reso_p.add_argument("--inv-mass-window-d", type=float, default=None, help="D mass half window.")
    reso_p.add_argument("--inv-mass-window-v0", type=float, default=None, help="V0 mass half window.")
    reso_p.add_argument("--out", required=True, help="Output table (.parquet, .csv, .pkl).")
    reso_p.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(pairs, context) function.",
    )
    return parser


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--channel",
        required=True,
        help="Decay channel: " + ", ".join(c.value for c in DecayChannel) + " (or a, b, c).",
    )
    parser.add_argument("--cuts", default=None, help="Optional JSON with cut overrides.")
    parser.add_argument(
        "--format",
        default="parquet",
        choices=["parquet", "csv", "pkl"],
        help="Reduced table format.",
    )
    parser.add_argument("--qa", action="store_true", help="Log a QA summary at the end.")


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: dispatch to the reduce or resonances step."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )
    channel = channel_from_name(args.channel)
    v0_selection, d_selection, windows = (
        load_cuts_json(args.cuts) if args.cuts else (V0Selection(), DSelection(), ResonanceWindows())
    )
    qa = QARegistry()
    if args.command == "reduce":
        run_reduce(args, channel, v0_selection, d_selection, qa)
    else:
        run_resonances(args, channel, windows, qa)
    if args.qa:
        for stage, count in qa.steps.items():
            logger.info("%-32s %d", stage.value, count)
        logger.info("%s", qa.summary_frame().to_string(index=False))
    return 0


def run_reduce(
    args: argparse.Namespace,
    channel: DecayChannel,
    v0_selection: V0Selection,
    d_selection: DSelection,
    qa: QARegistry,
) -> None:
    """Load collisions, run the reduction, write the reduced tables."""
    overrides = {
        name: getattr(args, name) for name in _V0_FLAGS if getattr(args, name) is not None
    }
    v0_selection = dataclasses.replace(v0_selection, **overrides)
    if args.d_mass_window is not None:
        d_selection = DSelection(inv_mass_window=args.d_mass_window)

    collisions = load_collisions_json(args.collisions)
    calibration = RunCalibrationCache(load_field_map_json(args.field_map))
    creator = ReducedDataCreator(
        channel=channel,
        v0_selection=v0_selection,
        d_selection=d_selection,
        observer=qa,
    )
    tables = creator.process_collisions(collisions, calibration)
    paths = write_reduced_tables(args.out_dir, tables, args.format)
    logger.info("Wrote reduced tables to %s", Path(paths["collisions"]).parent)


def run_resonances(
    args: argparse.Namespace,
    channel: DecayChannel,
    windows: ResonanceWindows,
    qa: QARegistry,
) -> None:
    """Load reduced tables, build resonance candidates, write the pair table."""
    if args.inv_mass_window_d is not None:
        windows = dataclasses.replace(windows, inv_mass_window_d=args.inv_mass_window_d)
    if args.inv_mass_window_v0 is not None:
        windows = dataclasses.replace(windows, inv_mass_window_v0=args.inv_mass_window_v0)
    tables = load_reduced_tables(args.reduced_dir, args.format)
    pairs = ResonanceCandidateCreator(channel=channel, windows=windows, observer=qa).process_tables(tables)
    write_pairs_table(args.out, pairs)
    logger.info("Wrote %d resonance candidates to %s", len(pairs), args.out)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            pairs=pairs,
            context={
                "reduced_dir": args.reduced_dir,
                "channel": channel,
                "windows": windows,
                "n_original_collisions": tables.n_original_collisions,
                "output_path": args.out,
            },
        )


def run_custom_script(script_path: str, pairs: list[PairRecord], context: dict[str, Any]) -> None:
    """Execute user-supplied post-processing callback `process(pairs, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(pairs, context)."
        )
    process(pairs, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


if __name__ == "__main__":
    raise SystemExit(main())
