from __future__ import annotations
from typing import Sequence
import matplotlib.pyplot as plt
import numpy as np

from .domain import OutputRow, Track


def make_overlay_figure(track: Track, rows: Sequence[OutputRow]):
    # minutes since the first fix, rows are aligned with track.fixes
    t0 = track.fixes[0].timestamp if track.fixes else 0
    t_min = np.array([(f.timestamp - t0) / 60_000.0 for f in track.fixes[: len(rows)]], dtype=float)

    alt = np.array([r.gps_altitude for r in rows], dtype=float)
    ground = np.array([r.ground_elevation for r in rows], dtype=float)
    agl = np.array([r.height_above_ground for r in rows], dtype=float)
    speed = np.array([r.average_speed for r in rows], dtype=float)
    xc = np.array([r.scoring_distance for r in rows], dtype=float)

    fig, (ax_alt, ax_agl, ax_xc) = plt.subplots(
        nrows=3,
        ncols=1,
        figsize=(14, 9),
        sharex=True,
        gridspec_kw={"height_ratios": [1.4, 1.0, 1.0]},
    )

    # --- Altitude vs terrain ---
    ax_alt.plot(t_min, alt, linewidth=2.0, label="GPS altitude (m)")
    baseline = min(0.0, float(ground.min())) if len(ground) else 0.0
    ax_alt.fill_between(t_min, ground, baseline, alpha=0.25, color="saddlebrown", label="Ground (m)")
    ax_alt.set_ylabel("Altitude (m)")
    ax_alt.grid(True, alpha=0.2)
    ax_alt.legend(loc="upper right")

    # --- AGL ---
    ax_agl.plot(t_min, agl, linewidth=2.0, linestyle="--", label="AGL (m)")
    ax_agl.axhline(0.0, linestyle=":", linewidth=1.2, color="grey")
    ax_agl.set_ylabel("AGL (m)")
    ax_agl.grid(True, alpha=0.2)
    ax_agl.legend(loc="upper right")

    # --- Progressive score (step: one value per chunk) ---
    ax_xc.step(t_min, xc, where="post", linewidth=2.0, label="XC distance (km)")
    ax_xc.set_ylabel("XC (km)")
    ax_xc.set_xlabel("Time since first fix (min)")
    ax_xc.grid(True, alpha=0.2)
    ax_speed = ax_xc.twinx()
    ax_speed.step(t_min, speed, where="post", linewidth=1.5, linestyle="-.", color="tab:orange", label="Avg speed (km/h)")
    ax_speed.set_ylabel("Avg speed (km/h)")
    lines = ax_xc.get_lines() + ax_speed.get_lines()
    ax_xc.legend(lines, [ln.get_label() for ln in lines], loc="upper left")

    fig.suptitle(f"Flight overlay: {track.date or 'unknown date'}", y=0.995)
    fig.tight_layout(rect=(0.0, 0.0, 1.0, 0.98))
    return fig
