"""Offline mass-peak study for resonance pair tables.

Reads a table written by `charm-reso resonances` (or `write_pairs_table`),
applies a channel preset plus optional pandas query and estimates signal and
background from a signal window and two sidebands.
"""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from charmreso.io import _require_pandas


@dataclass(frozen=True)
class PeakConfig:
    """Peak position and window/sideband widths for one resonance."""

    name: str
    mass_center: float
    signal_half_window: float
    sideband_inner: float
    sideband_outer: float
    query: str


PEAKS: dict[str, PeakConfig] = {
    "ds1_2536": PeakConfig(
        name="ds1_2536",
        mass_center=2.53511,
        signal_half_window=0.006,
        sideband_inner=0.015,
        sideband_outer=0.045,
        query="pt_v0 > 0.5",
    ),
    "dsstar2_2573": PeakConfig(
        name="dsstar2_2573",
        mass_center=2.5691,
        signal_half_window=0.020,
        sideband_inner=0.040,
        sideband_outer=0.100,
        query="pt_v0 > 0.5",
    ),
    "xc_dplus_lambda": PeakConfig(
        name="xc_dplus_lambda",
        mass_center=2.940,
        signal_half_window=0.025,
        sideband_inner=0.050,
        sideband_outer=0.120,
        query="cos_pa_v0 > 0.99",
    ),
}


def load_table(path: str):
    """Load a pair table from parquet/csv/pickle."""
    pd = _require_pandas()
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".parquet":
        return pd.read_parquet(p)
    if suffix == ".csv":
        return pd.read_csv(p)
    if suffix in (".pkl", ".pickle"):
        return pd.read_pickle(p)
    raise ValueError("Supported input formats: .parquet, .csv, .pkl")


def estimate_signal_background(masses, peak: PeakConfig) -> dict[str, float]:
    """Estimate S/B assuming a locally flat background under the peak."""
    m0 = peak.mass_center
    w_sig, w_in, w_out = peak.signal_half_window, peak.sideband_inner, peak.sideband_outer
    n_sig_window = float(((masses >= m0 - w_sig) & (masses <= m0 + w_sig)).sum())
    n_sb_left = float(((masses >= m0 - w_out) & (masses <= m0 - w_in)).sum())
    n_sb_right = float(((masses >= m0 + w_in) & (masses <= m0 + w_out)).sum())

    sideband_width = 2.0 * (w_out - w_in)
    bkg_in_signal = (n_sb_left + n_sb_right) / sideband_width * 2.0 * w_sig if sideband_width > 0 else 0.0
    signal_est = n_sig_window - bkg_in_signal
    total = signal_est + bkg_in_signal
    return {
        "n_sig_window": n_sig_window,
        "n_sideband_left": n_sb_left,
        "n_sideband_right": n_sb_right,
        "bkg_in_signal_est": bkg_in_signal,
        "signal_est": signal_est,
        "s_over_b": signal_est / bkg_in_signal if bkg_in_signal > 0 else 0.0,
        "s_over_sqrt_s_plus_b": signal_est / total**0.5 if total > 0 else 0.0,
    }


def maybe_plot(masses, peak: PeakConfig, out_png: Path, bins: int) -> None:
    """Render a mass histogram with the signal window marked."""
    try:
        import matplotlib.pyplot as plt  # type: ignore
    except ModuleNotFoundError:
        print("matplotlib not installed; skipping plot.")
        return

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(masses, bins=bins, histtype="step", linewidth=1.4)
    for sign in (-1.0, 1.0):
        ax.axvline(peak.mass_center + sign * peak.signal_half_window, color="green", linestyle="--")
        ax.axvline(peak.mass_center + sign * peak.sideband_inner, color="orange", linestyle=":")
        ax.axvline(peak.mass_center + sign * peak.sideband_outer, color="orange", linestyle=":")
    ax.set_xlabel("inv_mass [GeV]")
    ax.set_ylabel("Candidates")
    ax.set_title(peak.name)
    fig.tight_layout()
    fig.savefig(out_png, dpi=120)
    plt.close(fig)


def main(argv: list[str] | None = None) -> int:
    """Apply a peak preset to a pair table and print the S/B summary."""
    parser = argparse.ArgumentParser(description="Offline peak study from resonance pair tables.")
    parser.add_argument("--input", required=True, help="Input table (.parquet/.csv/.pkl).")
    parser.add_argument("--peak", default="dsstar2_2573", choices=sorted(PEAKS))
    parser.add_argument("--query", default=None, help="Additional pandas query.")
    parser.add_argument("--bins", type=int, default=120)
    parser.add_argument("--plot", action="store_true", help="Write a histogram PNG next to the input.")
    parser.add_argument("--out-json", default=None, help="Optional JSON summary output path.")
    args = parser.parse_args(argv)

    df = load_table(args.input)
    peak = PEAKS[args.peak]
    selected = df.query(peak.query) if peak.query else df
    if args.query:
        selected = selected.query(args.query)
    masses = selected["inv_mass"]

    summary: dict[str, Any] = {
        "peak": peak.name,
        "n_total_rows": int(len(df)),
        "n_selected_rows": int(len(selected)),
        **estimate_signal_background(masses, peak),
    }
    print(json.dumps(summary, indent=2))
    if args.out_json:
        Path(args.out_json).write_text(json.dumps(summary, indent=2), encoding="utf-8")
    if args.plot:
        maybe_plot(masses, peak, Path(args.input).with_suffix(f".{peak.name}.png"), args.bins)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
