"""Progressive XC scoring over growing prefixes of a track."""

from __future__ import annotations

import logging
import math
from typing import Callable, Optional, Sequence

from .domain import ScoreWindow, ScoringError, Track
from .solver import XCONTEST, ScoreInfo, ScoringType, Solution, Solver, solve

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

DEFAULT_CHUNK_SIZE = 60
MS_PER_HOUR = 3_600_000

_ROUTE_TYPE_LABELS = {
    "fai": "FAI",
    "tri": "flat",
}


def route_type_label(code: Optional[str]) -> Optional[str]:
    return _ROUTE_TYPE_LABELS.get(code) if code else None


def net_distance(score_info: ScoreInfo) -> float:
    """Scoring distance minus penalty; a missing or NaN penalty counts as zero."""
    penalty = score_info.penalty
    if penalty is None or math.isnan(penalty):
        penalty = 0.0
    return score_info.distance - penalty


def solve_to_optimal(
    solver: Solver,
    track: Track,
    rules: Sequence[ScoringType] = XCONTEST,
    noflight: bool = True,
    seed: Optional[Solution] = None,
) -> Solution:
    """Pull candidates from the solver until one is flagged optimal."""
    pulled = 0
    for candidate in solver(track, rules, noflight, seed=seed):
        pulled += 1
        if candidate.optimal:
            logger.debug("Optimal after %d candidate(s) for %d fixes", pulled, len(track))
            return candidate
    raise ScoringError(
        f"Solver finished without an optimal candidate ({pulled} pulled, {len(track)} fixes)"
    )


def window_from_solution(solution: Solution, end: int, elapsed_ms: float) -> ScoreWindow:
    elapsed_hours = elapsed_ms / MS_PER_HOUR
    si = solution.score_info
    if si is None:
        return ScoreWindow(end=end, route_type=None, scoring_distance=0.0,
                           elapsed_hours=elapsed_hours, average_speed=0.0, scored=False)

    distance = net_distance(si)
    code = solution.scoring.code if solution.scoring is not None else None
    # a chunk ending on the very first timestamp has no elapsed time yet
    speed = distance / elapsed_hours if elapsed_hours > 0 else 0.0
    return ScoreWindow(
        end=end,
        route_type=route_type_label(code),
        scoring_distance=distance,
        elapsed_hours=elapsed_hours,
        average_speed=speed,
    )


def score_progressively(
    track: Track,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    solver: Solver = solve,
    rules: Sequence[ScoringType] = XCONTEST,
    noflight: bool = True,
    on_progress: Optional[ProgressCallback] = None,
) -> list[ScoreWindow]:
    """
    Score prefixes of length C, 2C, ... n and return one ScoreWindow per chunk.

    Each iteration re-solves the whole prefix, seeded with the previous
    iteration's result, so with the default solver the values never drop
    as the flight goes on. Elapsed time runs from the first fix of the
    track to the last fix of the current chunk.

    Args:
        track: Normalized track (time-ordered fixes)
        chunk_size: Fixes added per iteration (last chunk may be shorter)
        solver: Candidate generator, see solver.Solver
        rules: Scoring types handed to the solver
        noflight: Passed through to the solver
        on_progress: Called with (processed, total) after each iteration

    Returns:
        List of ScoreWindow, windows[k] covers fixes [k*C, min((k+1)*C, n))
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    fixes = track.fixes
    total = len(fixes)
    if total == 0:
        return []

    first_ts = fixes[0].timestamp
    windows: list[ScoreWindow] = []
    solution: Optional[Solution] = None
    for start in range(0, total, chunk_size):
        end = min(start + chunk_size, total)
        # the shorter prefix's route is still a valid route of the longer one
        solution = solve_to_optimal(solver, track.prefix(end), rules, noflight, seed=solution)
        window = window_from_solution(solution, end, fixes[end - 1].timestamp - first_ts)
        windows.append(window)
        if on_progress is not None:
            on_progress(end, total)

    return windows


def windows_per_fix(windows: Sequence[ScoreWindow], chunk_size: int, total: int) -> list[ScoreWindow]:
    """Expand per-chunk windows so result[i] is the window of the chunk holding fix i."""
    expected = math.ceil(total / chunk_size) if total else 0
    if len(windows) != expected:
        raise ScoringError(
            f"Expected {expected} score windows for {total} fixes, got {len(windows)}"
        )
    return [windows[i // chunk_size] for i in range(total)]
