"""Merge fixes, ground elevations and score windows into the output series."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence, Union

import pandas as pd

from .domain import AlignmentError, OutputRow, ScoreWindow, Track, to_fixed
from .scoring import windows_per_fix
from .solver import Solution

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "date",
    "altitude(m)",
    "ground alt(m)",
    "agl(m)",
    "xc(km)",
    "avg speed(km/h)",
]


def check_alignment(track: Track, elevations: Sequence[float]) -> None:
    """Raise AlignmentError unless there is exactly one elevation per fix."""
    if len(elevations) != len(track.fixes):
        raise AlignmentError(
            f"Got {len(elevations)} ground elevations for {len(track.fixes)} fixes; "
            "the elevation service skipped at least one batch"
        )


def assemble_rows(
    track: Track,
    elevations: Sequence[float],
    windows: Sequence[ScoreWindow],
    chunk_size: int,
) -> list[OutputRow]:
    """
    Zip fix i, elevation i and the window of fix i's chunk into OutputRow i.

    Raises:
        AlignmentError: if the elevation count does not match the fix count
            (e.g. the elevation service dropped a batch)
    """
    check_alignment(track, elevations)
    fixes = track.fixes
    per_fix = windows_per_fix(windows, chunk_size, len(fixes))
    return [
        OutputRow(
            time=fix.time,
            gps_altitude=fix.gps_altitude,
            ground_elevation=float(elev),
            route_label=w.route_label,
            scoring_distance=w.scoring_distance,
            average_speed=w.average_speed,
        )
        for fix, elev, w in zip(fixes, elevations, per_fix)
    ]


def _fmt_altitude(value: float) -> str:
    # recorded altitudes are whole meters; keep them as written
    return to_fixed(value) if float(value).is_integer() else f"{value}"


def rows_to_frame(rows: Sequence[OutputRow], flight_date: str) -> pd.DataFrame:
    """
    Serialized view of the rows. Rounding happens here only:
    ground / AGL to whole meters, speed to 0.1 km/h.
    """
    return pd.DataFrame(
        {
            "date": [f"{flight_date}T{r.time}Z" for r in rows],
            "altitude(m)": [_fmt_altitude(r.gps_altitude) for r in rows],
            "ground alt(m)": [to_fixed(r.ground_elevation) for r in rows],
            "agl(m)": [to_fixed(r.height_above_ground) for r in rows],
            "xc(km)": [r.route_label for r in rows],
            "avg speed(km/h)": [to_fixed(r.average_speed, 1) for r in rows],
        },
        columns=CSV_COLUMNS,
    )


def write_csv(rows: Sequence[OutputRow], flight_date: str, path: Union[str, Path]) -> Path:
    path = Path(path)
    frame = rows_to_frame(rows, flight_date)
    frame.to_csv(path, index=False, lineterminator="\n")
    logger.info("Wrote %d rows: %s", len(frame), path)
    return path


def route_shape(solution: Solution) -> dict:
    return solution.geojson()


def write_geojson(solution: Solution, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_text(json.dumps(route_shape(solution)), encoding="utf-8")
    logger.info("Wrote route shape: %s", path)
    return path


def output_path_for(input_path: Union[str, Path], suffix: str) -> Path:
    """Same directory and stem as the input, extension replaced (".csv" / ".json")."""
    return Path(input_path).with_suffix(suffix)
