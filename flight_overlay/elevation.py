"""Ground elevation lookups against an open-elevation style HTTP service."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

import requests

from .domain import ElevationServiceError, Track

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

DEFAULT_BATCH_SIZE = 100


def format_locations(coords: Sequence[tuple[float, float]]) -> str:
    """Encode coordinates as the service expects: "lat,lon|lat,lon|...", 5 decimals."""
    return "|".join(f"{lat:.5f},{lon:.5f}" for lat, lon in coords)


class ElevationClient:
    """
    Batched, order-preserving elevation lookups.

    Batches are contiguous slices of the input fetched one after another, so
    concatenating the per-batch results keeps elevations[i] aligned with
    coords[i].
    """

    def __init__(
        self,
        base_url: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        timeout_s: Optional[float] = None,
        session=None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.base_url = base_url
        self.batch_size = batch_size
        self.timeout_s = timeout_s
        self.session = session if session is not None else requests.Session()

    def fetch_batch(self, coords: Sequence[tuple[float, float]]) -> list[float]:
        resp = self.session.get(
            self.base_url,
            params={"locations": format_locations(coords)},
            timeout=self.timeout_s,
        )
        if not 200 <= resp.status_code < 300:
            raise ElevationServiceError(
                f"Elevation server replied {resp.status_code}: {resp.text}"
            )

        data = resp.json()
        status = str(data.get("status", ""))
        if not status.startswith("OK"):
            # Known gap: the batch is dropped instead of failing, which shifts every
            # later elevation. The output assembler refuses misaligned results.
            logger.warning("Elevation batch of %d points ignored, status=%r", len(coords), status)
            return []

        return [float(r["elevation"]) for r in data.get("results", [])]

    def lookup(
        self,
        coords: Sequence[tuple[float, float]],
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[float]:
        total = len(coords)
        elevations: list[float] = []
        for start in range(0, total, self.batch_size):
            batch = coords[start:start + self.batch_size]
            elevations.extend(self.fetch_batch(batch))
            if on_progress is not None:
                on_progress(start + len(batch), total)
        return elevations

    def lookup_track(self, track: Track, on_progress: Optional[ProgressCallback] = None) -> list[float]:
        coords = [(f.latitude, f.longitude) for f in track.fixes]
        return self.lookup(coords, on_progress=on_progress)
