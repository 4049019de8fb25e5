#!/usr/bin/env python3
"""
Plot time-series from the JSONL traffic log written by vplant-sim.

Each line is expected as:
{"topic": "vplant/grid/power_kw", "payload": {"val": ..., "ack": true, "ts": "..."}}

This script:
- loads the log (only ack=true values, i.e. what the plant reported)
- builds one plot per numeric or boolean key
- adds a few combined views (power balance, SoC)

Usage:
  python build_graphics.py --log out/vplant_traffic.jsonl --outdir out/plots

Notes:
- Uses matplotlib only (no seaborn).
- Per charge point keys (evcs.cNN.*) are skipped unless --per-point is set.
"""

import argparse
import os
import re
from typing import Any, Dict, List, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

from vplant.traffic import is_number, load_traffic

_PER_POINT = re.compile(r"^evcs\.c\d{2,3}\.")


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def plot_series(ts: List[Any], ys: List[float], title: str, outpath: str, step: bool = False) -> None:
    plt.figure()
    if step:
        plt.step(ts, ys, where="post")
    else:
        plt.plot(ts, ys)
    plt.title(title)
    plt.xlabel("time")
    plt.ylabel(title)
    plt.tight_layout()
    plt.savefig(outpath, dpi=150)
    plt.close()


def downsample(points: List[Tuple[Any, Any]], max_points: int) -> List[Tuple[Any, Any]]:
    if len(points) <= max_points:
        return points
    step = max(1, len(points) // max_points)
    return points[::step]


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--log", default="out/vplant_traffic.jsonl", help="Traffic JSONL path")
    ap.add_argument("--base-topic", default="vplant", help="Base topic used by the simulator")
    ap.add_argument("--outdir", default="out/plots", help="Where to save PNG plots")
    ap.add_argument("--max-points", type=int, default=5000, help="Cap points per metric (simple downsample)")
    ap.add_argument("--per-point", action="store_true", help="Also plot every charge point")
    args = ap.parse_args()

    df = load_traffic(args.log, args.base_topic)
    if df.empty:
        print("No data found. Check the JSONL path and base topic.")
        return
    df = df[df["ack"]]

    ensure_dir(args.outdir)

    series: Dict[str, List[Tuple[Any, Any]]] = {}
    for ts, key, val in zip(df["ts"], df["key"], df["val"]):
        if val is None:
            continue
        if not args.per_point and _PER_POINT.match(key):
            continue
        series.setdefault(key, []).append((ts, val))

    made = 0
    for metric, pts in series.items():
        pts = downsample(pts, args.max_points)
        ts_list = [p[0] for p in pts]
        vals = [p[1] for p in pts]
        outpath = os.path.join(args.outdir, metric.replace(".", "_") + ".png")

        # the log only carries changes, so everything is drawn as steps
        if all(isinstance(v, bool) for v in vals):
            plot_series(ts_list, [1 if v else 0 for v in vals], metric, outpath, step=True)
            made += 1
        elif all(is_number(v) for v in vals):
            plot_series(ts_list, [float(v) for v in vals], metric, outpath, step=True)
            made += 1

    def try_plot_combo(name: str, metrics_list: List[str], filename: str) -> None:
        data = []
        for m in metrics_list:
            pts = series.get(m)
            if not pts:
                continue
            pts = downsample(pts, args.max_points)
            vals = [p[1] for p in pts]
            if all(is_number(v) for v in vals):
                data.append((m, [p[0] for p in pts], [float(v) for v in vals]))
        if not data:
            return

        plt.figure()
        for m, tss, vss in data:
            plt.step(tss, vss, where="post", label=m)
        plt.title(name)
        plt.xlabel("time")
        plt.legend()
        plt.tight_layout()
        plt.savefig(os.path.join(args.outdir, filename), dpi=150)
        plt.close()

    try_plot_combo(
        "Power balance",
        ["grid.power_kw", "grid.limit_kw", "pv.power_kw", "storage.power_kw", "evcs.total_power_kw"],
        "combo_power_balance.png",
    )
    try_plot_combo(
        "Flexible devices",
        ["heatpump.power_kw", "chp.power_kw", "generator.power_kw"],
        "combo_devices.png",
    )
    try_plot_combo("Storage SoC", ["storage.soc_pct"], "combo_storage_soc.png")

    print(f"Plots saved to: {os.path.abspath(args.outdir)} (generated {made} metric plots + combo plots)")


if __name__ == "__main__":
    main()
