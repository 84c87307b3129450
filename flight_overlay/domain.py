from __future__ import annotations
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
import os
from typing import Optional


# -----------------------------
# Configuration
# -----------------------------
@dataclass(frozen=True)     # immutable run settings, passed down the pipeline
class OverlayConfig:
    elevation_url: str = "http://localhost:19993/v1/eudem25m"
    elevation_batch_size: int = 100     # max coordinates per elevation request
    chunk_size: int = 60                # fixes added to the scored prefix per iteration
    request_timeout_s: Optional[float] = 60.0
    noflight: bool = True               # score the whole track, no takeoff/landing detection
    ruleset: str = "XContest"

    @classmethod
    def from_env(cls, environ=None) -> "OverlayConfig":
        """Defaults overridden by FLIGHT_OVERLAY_* environment variables."""
        env = os.environ if environ is None else environ
        cfg = cls()
        overrides = {}
        if env.get("FLIGHT_OVERLAY_ELEVATION_URL"):
            overrides["elevation_url"] = env["FLIGHT_OVERLAY_ELEVATION_URL"]
        if env.get("FLIGHT_OVERLAY_CHUNK_SIZE"):
            overrides["chunk_size"] = int(env["FLIGHT_OVERLAY_CHUNK_SIZE"])
        if env.get("FLIGHT_OVERLAY_BATCH_SIZE"):
            overrides["elevation_batch_size"] = int(env["FLIGHT_OVERLAY_BATCH_SIZE"])
        if env.get("FLIGHT_OVERLAY_TIMEOUT_S"):
            overrides["request_timeout_s"] = float(env["FLIGHT_OVERLAY_TIMEOUT_S"])
        return replace(cfg, **overrides)


# -----------------------------
# Errors
# -----------------------------
class FlightOverlayError(Exception):
    """Base class for failures that abort a pipeline run."""


class ElevationServiceError(FlightOverlayError):
    pass


class ScoringError(FlightOverlayError):
    pass


class AlignmentError(FlightOverlayError):
    pass


# -----------------------------
# Track
# -----------------------------
@dataclass(frozen=True)
class Fix:
    time: str               # HH:MM:SS as recorded (UTC)
    timestamp: int          # epoch milliseconds, non-decreasing along the track
    latitude: float
    longitude: float
    gps_altitude: float     # meters, always present in a B record
    pressure_altitude: Optional[float] = None
    valid: bool = True      # 'A' (3D fix) vs 'V' validity flag


@dataclass
class Track:
    date: Optional[str]     # YYYY-MM-DD
    fixes: list[Fix] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.fixes)

    def prefix(self, k: int) -> "Track":
        # new list, the fixes themselves are shared (they are frozen)
        return Track(date=self.date, fixes=self.fixes[:k])


# -----------------------------
# Scoring / output
# -----------------------------
def to_fixed(value: float, digits: int = 0) -> str:
    """Fixed-point text with exact halves rounded away from zero (2.5 -> "3")."""
    quantum = Decimal(1).scaleb(-digits)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ScoreWindow:
    end: int                    # prefix length this result was solved for
    route_type: Optional[str]   # "FAI", "flat" or None (free flight)
    scoring_distance: float     # km, net of penalty
    elapsed_hours: float
    average_speed: float        # km/h
    scored: bool = True

    @property
    def route_label(self) -> str:
        if not self.scored:
            return ""
        parts = [self.route_type, to_fixed(self.scoring_distance), "km"]
        return " ".join(p for p in parts if p)


@dataclass(frozen=True)
class OutputRow:
    time: str
    gps_altitude: float
    ground_elevation: float
    route_label: str
    scoring_distance: float
    average_speed: float

    @property
    def height_above_ground(self) -> float:
        return self.gps_altitude - self.ground_elevation

"""
How the pieces relate:

Track.fixes[i]  ->  elevations[i]  ->  ScoreWindow of the chunk holding i  ->  OutputRow[i]

A ScoreWindow is computed once per chunk, for the prefix ending at that chunk,
and shared by every fix of the chunk. Earlier chunks keep the value they got
at their own iteration, so the series reads like a live replay of the flight.
"""
