"""Pipeline orchestration: track -> elevations + progressive score -> rows."""

from __future__ import annotations
from dataclasses import dataclass, field
from functools import partial
import logging
from typing import Callable, Optional

from .domain import OutputRow, OverlayConfig, ScoreWindow, Track
from .igc import TrackSource, load_track
from .elevation import ElevationClient
from .scoring import score_progressively, solve_to_optimal
from .solver import Solution, Solver, get_ruleset, solve
from .assemble import assemble_rows, check_alignment

logger = logging.getLogger(__name__)

# (stage, processed, total)
StageProgress = Callable[[str, int, int], None]


@dataclass
class OverlayResult:
    track: Track
    elevations: list[float] = field(default_factory=list)
    windows: list[ScoreWindow] = field(default_factory=list)
    rows: list[OutputRow] = field(default_factory=list)


def _stage_callback(on_progress: Optional[StageProgress], stage: str):
    return partial(on_progress, stage) if on_progress is not None else None


def make_client(config: OverlayConfig, session=None) -> ElevationClient:
    return ElevationClient(
        config.elevation_url,
        batch_size=config.elevation_batch_size,
        timeout_s=config.request_timeout_s,
        session=session,
    )


def build_overlay(
    source: TrackSource,
    config: OverlayConfig,
    client: Optional[ElevationClient] = None,
    solver: Solver = solve,
    on_progress: Optional[StageProgress] = None,
) -> OverlayResult:
    """
    Run the full per-fix pipeline.

    Nothing is written here; callers serialize the finished rows, so a failure
    in any stage leaves no partial output behind.

    Returns:
        OverlayResult; rows is empty when the track has no fixes (no external
        calls are made in that case)
    """
    rules = get_ruleset(config.ruleset)
    track = load_track(source)
    logger.info("Track length: %d", len(track))
    if len(track) == 0:
        return OverlayResult(track=track)

    client = client if client is not None else make_client(config)

    logger.info("Getting elevation data...")
    elevations = client.lookup_track(track, on_progress=_stage_callback(on_progress, "elevation"))
    logger.info("Elevation data size: %d", len(elevations))
    check_alignment(track, elevations)

    logger.info("Calculating target dataset...")
    windows = score_progressively(
        track,
        chunk_size=config.chunk_size,
        solver=solver,
        rules=rules,
        noflight=config.noflight,
        on_progress=_stage_callback(on_progress, "scoring"),
    )

    rows = assemble_rows(track, elevations, windows, config.chunk_size)
    return OverlayResult(track=track, elevations=elevations, windows=windows, rows=rows)


def build_route_shape(
    source: TrackSource,
    config: OverlayConfig,
    solver: Solver = solve,
) -> tuple[Track, Optional[Solution]]:
    """Solve the whole track once. Solution is None for an empty track."""
    rules = get_ruleset(config.ruleset)
    track = load_track(source)
    logger.info("Track length: %d", len(track))
    if len(track) == 0:
        return track, None
    return track, solve_to_optimal(solver, track, rules, config.noflight)


def analyze(
    source: TrackSource,
    config: OverlayConfig,
    client: Optional[ElevationClient] = None,
    solver: Solver = solve,
    on_progress: Optional[StageProgress] = None,
) -> tuple[Optional[OverlayResult], Optional[str]]:
    """
    Same as build_overlay but reports failures as a message.

    Returns:
        Tuple of (result, error):
        - On success: (OverlayResult, None)
        - On failure or an empty track: (None, error_message)
    """
    try:
        result = build_overlay(source, config, client=client, solver=solver, on_progress=on_progress)
    except Exception as e:
        logger.exception("Overlay pipeline failed")
        return None, str(e)

    if not result.rows:
        return None, "No usable fixes found (missing HFDTE date or B records)."
    return result, None
