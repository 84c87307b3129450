"""
Flight Overlay - progressive XC score and terrain clearance for IGC tracks

Reads a free-flight IGC log, looks up the ground elevation under every fix,
re-scores the flight over growing prefixes, and produces a per-fix series
(altitude, ground, AGL, current best XC route, average speed) for video
overlays or analysis.
"""

from .domain import (
    OverlayConfig,
    Fix,
    Track,
    ScoreWindow,
    OutputRow,
    FlightOverlayError,
    ElevationServiceError,
    ScoringError,
    AlignmentError,
    to_fixed,
)
from .igc import decode_coordinate, parse_igc, load_track
from .elevation import ElevationClient, format_locations
from .solver import Solution, ScoreInfo, ScoringType, XCONTEST, get_ruleset, solve
from .scoring import score_progressively, solve_to_optimal, route_type_label, net_distance
from .assemble import assemble_rows, check_alignment, rows_to_frame, write_csv, write_geojson, output_path_for
from .analyze import OverlayResult, analyze, build_overlay, build_route_shape

__all__ = [
    # Domain models
    "OverlayConfig",
    "Fix",
    "Track",
    "ScoreWindow",
    "OutputRow",
    # Errors
    "FlightOverlayError",
    "ElevationServiceError",
    "ScoringError",
    "AlignmentError",
    # Track loading
    "decode_coordinate",
    "parse_igc",
    "load_track",
    # Elevation
    "ElevationClient",
    "format_locations",
    # Solver
    "Solution",
    "ScoreInfo",
    "ScoringType",
    "XCONTEST",
    "get_ruleset",
    "solve",
    # Progressive scoring
    "score_progressively",
    "solve_to_optimal",
    "route_type_label",
    "net_distance",
    # Output
    "assemble_rows",
    "check_alignment",
    "to_fixed",
    "rows_to_frame",
    "write_csv",
    "write_geojson",
    "output_path_for",
    # Pipeline
    "OverlayResult",
    "analyze",
    "build_overlay",
    "build_route_shape",
]

__version__ = "0.1.0"
