"""
Command line entry points.

flight-overlay <file.igc>   per-fix CSV (altitude, ground, AGL, XC, avg speed)
flight-route <file.igc>     whole-track optimal route as GeoJSON
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from .domain import AlignmentError, ElevationServiceError, FlightOverlayError, OverlayConfig
from .analyze import build_overlay, build_route_shape
from .assemble import output_path_for, write_csv, write_geojson

logger = logging.getLogger("flight_overlay")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NO_INPUT = 2


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
    # urllib3 logs every request at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("matplotlib").setLevel(logging.WARNING)


def _parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("file_path", type=str, help="The IGC file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    return parser


def _resolve_input(file_path: str) -> Optional[Path]:
    source = Path(file_path).expanduser().resolve()
    logger.info("Using this IGC file: %s", source)
    if not source.is_file():
        logger.error("The provided file does not exist")
        return None
    return source


def _log_progress(stage: str, processed: int, total: int) -> None:
    logger.info("[%s] Processed %d/%d", stage, processed, total)


def main_overlay(argv: Optional[Sequence[str]] = None) -> int:
    args = _parser("Annotate an IGC track with ground elevation and a progressive XC score.").parse_args(argv)
    _setup_logging(args.verbose)

    source = _resolve_input(args.file_path)
    if source is None:
        return EXIT_NO_INPUT

    config = OverlayConfig.from_env()
    try:
        result = build_overlay(source, config, on_progress=_log_progress)
    except (ElevationServiceError, AlignmentError) as e:
        logger.error("Elevation lookup failed: %s", e)
        return EXIT_FAILED
    except FlightOverlayError as e:
        logger.error("Scoring failed: %s", e)
        return EXIT_FAILED

    if not result.rows:
        logger.warning("No fixes to process; nothing written")
        return EXIT_OK

    target = output_path_for(source, ".csv")
    logger.info("Writing target file: %s", target)
    write_csv(result.rows, result.track.date, target)
    return EXIT_OK


def main_route(argv: Optional[Sequence[str]] = None) -> int:
    args = _parser("Write the optimal XC route of an IGC track as GeoJSON.").parse_args(argv)
    _setup_logging(args.verbose)

    source = _resolve_input(args.file_path)
    if source is None:
        return EXIT_NO_INPUT

    config = OverlayConfig.from_env()
    try:
        _, solution = build_route_shape(source, config)
    except FlightOverlayError as e:
        logger.error("Scoring failed: %s", e)
        return EXIT_FAILED

    if solution is None:
        logger.warning("No fixes to process; nothing written")
        return EXIT_OK

    si = solution.score_info
    logger.info("Result closing distance: %s", si.closing_distance if si is not None else None)
    write_geojson(solution, output_path_for(source, ".json"))
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main_overlay())
