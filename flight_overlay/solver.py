"""
Cross-country route optimizer.

`solve` is a generator: it yields progressively better candidates computed on
finer samplings of the track, and the last one it yields is flagged optimal.
Consumers pull until they see `optimal=True` (see scoring.solve_to_optimal).
Passing the previous prefix's result as `seed` keeps its route in every
sample, which makes progressive scores non-decreasing.
Any callable with the same shape can stand in for it (the `Solver` protocol).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Protocol, Sequence

import numpy as np

from .domain import Fix, Track
from .geo import distance_matrix_km, haversine_km

logger = logging.getLogger(__name__)


# -----------------------------
# Rules
# -----------------------------
@dataclass(frozen=True)
class ScoringType:
    code: str                               # "od", "tri", "fai"
    name: str
    multiplier: float
    closing_ratio: Optional[float] = None   # max closing gap / perimeter; None = open route
    min_leg_ratio: float = 0.0              # shortest leg / perimeter (FAI 28% rule)

    @property
    def closed(self) -> bool:
        return self.closing_ratio is not None


XCONTEST: tuple[ScoringType, ...] = (
    ScoringType("od", "Free Flight", 1.0),
    ScoringType("tri", "Flat Triangle", 1.2, closing_ratio=0.2),
    ScoringType("fai", "FAI Triangle", 1.4, closing_ratio=0.2, min_leg_ratio=0.28),
)

RULESETS: dict[str, tuple[ScoringType, ...]] = {
    "XContest": XCONTEST,
}

DEFAULT_RESOLUTIONS = (16, 32, 48)
FREE_FLIGHT_TURNPOINTS = 3
TAKEOFF_SPEED_KMH = 10.0
REFINE_ROUNDS = 3
REFINE_EPS_KM = 1e-9


def get_ruleset(name: str) -> tuple[ScoringType, ...]:
    try:
        return RULESETS[name]
    except KeyError:
        raise ValueError(f"Unknown ruleset {name!r}. Known: {sorted(RULESETS)}") from None


# -----------------------------
# Results
# -----------------------------
LatLon = tuple[float, float]


@dataclass(frozen=True)
class ScoreInfo:
    distance: float                 # km; perimeter for triangles
    penalty: Optional[float]        # km; closing gap for triangles, None for open routes
    score: float                    # points
    route: tuple[LatLon, ...]       # vertices in flight order
    turnpoints: tuple[LatLon, ...]
    closing: Optional[tuple[LatLon, LatLon]] = None
    indices: tuple[int, ...] = ()   # track fix indices: route vertices, then closing pair

    @property
    def closing_distance(self) -> Optional[float]:
        return self.penalty if self.closing is not None else None


@dataclass
class Solution:
    optimal: bool
    scoring: Optional[ScoringType] = None
    score_info: Optional[ScoreInfo] = None
    sampled_points: int = 0

    @property
    def score(self) -> float:
        return self.score_info.score if self.score_info is not None else 0.0

    def geojson(self) -> dict:
        """Winning route as a GeoJSON FeatureCollection ([lon, lat] order)."""
        features: list[dict] = []
        si = self.score_info
        if si is None or self.scoring is None:
            return {"type": "FeatureCollection", "features": features}

        props = {
            "code": self.scoring.code,
            "name": self.scoring.name,
            "multiplier": self.scoring.multiplier,
            "distance": si.distance,
            "penalty": si.penalty,
            "score": si.score,
        }
        features.append({
            "type": "Feature",
            "id": "route",
            "properties": props,
            "geometry": {"type": "LineString", "coordinates": [[lon, lat] for lat, lon in si.route]},
        })
        for n, (lat, lon) in enumerate(si.turnpoints, start=1):
            features.append({
                "type": "Feature",
                "id": f"tp{n}",
                "properties": {"id": f"tp{n}"},
                "geometry": {"type": "Point", "coordinates": [lon, lat]},
            })
        if si.closing is not None:
            (lat_in, lon_in), (lat_out, lon_out) = si.closing
            features.append({
                "type": "Feature",
                "id": "closing",
                "properties": {"id": "closing", "d": si.penalty},
                "geometry": {"type": "LineString", "coordinates": [[lon_in, lat_in], [lon_out, lat_out]]},
            })
        return {"type": "FeatureCollection", "features": features}


class Solver(Protocol):
    def __call__(
        self, track: Track, rules: Sequence[ScoringType] = ..., noflight: bool = ...,
        seed: Optional[Solution] = None,
    ) -> Iterator[Solution]:
        ...


# -----------------------------
# Search helpers
# -----------------------------
def sample_indices(n: int, m: int) -> np.ndarray:
    """Up to m evenly spaced indices into range(n), always keeping first and last."""
    if n <= m:
        return np.arange(n)
    return np.unique(np.linspace(0, n - 1, m).round().astype(int))


def flight_bounds(fixes: Sequence[Fix]) -> tuple[int, int]:
    """[start, end) of the airborne part: first to last fix moving above takeoff speed."""
    if len(fixes) < 2:
        return 0, len(fixes)
    lat = np.array([f.latitude for f in fixes])
    lon = np.array([f.longitude for f in fixes])
    t_h = np.array([f.timestamp for f in fixes], dtype=float) / 3_600_000.0

    dist = haversine_km(lat[:-1], lon[:-1], lat[1:], lon[1:])
    dt = np.diff(t_h)
    speed = np.divide(dist, dt, out=np.zeros_like(dist), where=dt > 0)
    moving = np.where(speed > TAKEOFF_SPEED_KMH)[0]
    if len(moving) == 0:
        return 0, 0
    return int(moving[0]), int(moving[-1]) + 2


def best_open_route(D: np.ndarray, legs: int = FREE_FLIGHT_TURNPOINTS + 1) -> tuple[float, list[int]]:
    """
    Longest chronological path with `legs` legs through the sampled points.

    Dynamic programming over "best distance of a path ending at j"; points may
    repeat (a zero-length leg), which lets short tracks use fewer turnpoints.
    """
    m = len(D)
    forward = np.triu(np.ones((m, m), dtype=bool))     # i <= j
    best = np.zeros(m)
    back: list[np.ndarray] = []
    for _ in range(legs):
        cand = np.where(forward, best[:, None] + D, -np.inf)
        arg = cand.argmax(axis=0)
        best = cand[arg, np.arange(m)]
        back.append(arg)

    end = int(best.argmax())
    path = [end]
    for arg in reversed(back):
        path.append(int(arg[path[-1]]))
    path.reverse()
    return float(best[end]), path


def closing_table(D: np.ndarray) -> np.ndarray:
    """C[a, b] = min D[s, f] over s <= a and f >= b: the smallest gap that closes a loop a..b."""
    C = np.minimum.accumulate(D, axis=0)
    return np.minimum.accumulate(C[:, ::-1], axis=1)[:, ::-1]


def best_triangle(D: np.ndarray, C: np.ndarray, stype: ScoringType) -> Optional[tuple[float, float, tuple[int, int, int]]]:
    """Best (perimeter, closing gap, (i, j, k)) for a closed scoring type, or None."""
    m = len(D)
    if m < 3:
        return None

    i, j, k = np.ogrid[:m, :m, :m]
    leg_a = D[:, :, None]        # i -> j
    leg_b = D[None, :, :]        # j -> k
    leg_c = D[:, None, :]        # k -> i
    perimeter = leg_a + leg_b + leg_c
    closing = C[:, None, :]      # gap around i..k

    valid = (i < j) & (j < k) & (perimeter > 0)
    valid &= closing <= stype.closing_ratio * perimeter
    if stype.min_leg_ratio > 0:
        shortest = np.minimum(np.minimum(leg_a, leg_b), leg_c)
        valid &= shortest >= stype.min_leg_ratio * perimeter

    net = np.where(valid, perimeter - closing, -np.inf)
    flat = int(np.argmax(net))
    if not np.isfinite(net.flat[flat]):
        return None

    a, b, c = np.unravel_index(flat, net.shape)
    return float(perimeter[a, b, c]), float(C[a, c]), (int(a), int(b), int(c))


def _closing_points(D: np.ndarray, first: int, last: int) -> tuple[int, int]:
    sub = D[: first + 1, last:]
    s, f = np.unravel_index(int(np.argmin(sub)), sub.shape)
    return int(s), int(f) + last


def _leg_km(lat: np.ndarray, lon: np.ndarray, i: int, j: int) -> float:
    return float(haversine_km(lat[i], lon[i], lat[j], lon[j]))


def _make_info(
    lat: np.ndarray,
    lon: np.ndarray,
    stype: ScoringType,
    route: Sequence[int],
    closing: Optional[tuple[int, int]],
    offset: int,
) -> ScoreInfo:
    """ScoreInfo for a route given as fix indices into lat/lon (track index = offset + i)."""
    route = tuple(int(i) for i in route)

    def pt(idx: int) -> LatLon:
        return float(lat[idx]), float(lon[idx])

    if stype.closed:
        a, b, c = route
        s, f = int(closing[0]), int(closing[1])
        perimeter = _leg_km(lat, lon, a, b) + _leg_km(lat, lon, b, c) + _leg_km(lat, lon, c, a)
        gap = _leg_km(lat, lon, s, f)
        return ScoreInfo(
            distance=perimeter,
            penalty=gap,
            score=(perimeter - gap) * stype.multiplier,
            route=(pt(a), pt(b), pt(c), pt(a)),
            turnpoints=(pt(a), pt(b), pt(c)),
            closing=(pt(s), pt(f)),
            indices=tuple(offset + i for i in (a, b, c, s, f)),
        )

    distance = sum(_leg_km(lat, lon, i, j) for i, j in zip(route, route[1:]))
    return ScoreInfo(
        distance=distance,
        penalty=None,
        score=distance * stype.multiplier,
        route=tuple(pt(i) for i in route),
        turnpoints=tuple(pt(i) for i in route[1:-1]),
        indices=tuple(offset + i for i in route),
    )


def _score_sample(
    lat: np.ndarray,
    lon: np.ndarray,
    idx: np.ndarray,
    rules: Sequence[ScoringType],
    offset: int = 0,
) -> tuple[Optional[ScoringType], Optional[ScoreInfo]]:
    """Best scoring type and route using only the fixes at idx."""
    D = distance_matrix_km(lat[idx], lon[idx])
    C = closing_table(D)

    best_type: Optional[ScoringType] = None
    best_info: Optional[ScoreInfo] = None
    for stype in rules:
        if stype.closed:
            found = best_triangle(D, C, stype)
            if found is None:
                continue
            _, _, (a, b, c) = found
            s, f = _closing_points(D, a, c)
            info = _make_info(lat, lon, stype, (idx[a], idx[b], idx[c]), (idx[s], idx[f]), offset)
        else:
            _, path = best_open_route(D)
            info = _make_info(lat, lon, stype, [idx[p] for p in path], None, offset)

        if best_info is None or info.score > best_info.score:
            best_type, best_info = stype, info

    return best_type, best_info


# -----------------------------
# Full-resolution refinement
# -----------------------------
def _refine_open(lat: np.ndarray, lon: np.ndarray, path: Sequence[int], radius: int) -> tuple[int, ...]:
    """Move each vertex within `radius` fixes (keeping flight order) while the distance grows."""
    path = list(path)
    last = len(path) - 1
    for _ in range(REFINE_ROUNDS):
        moved = False
        for t, p in enumerate(path):
            lo = max(path[t - 1] if t > 0 else 0, p - radius)
            hi = min(path[t + 1] if t < last else len(lat) - 1, p + radius)
            cand = np.arange(lo, hi + 1)
            gain = np.zeros(len(cand))
            if t > 0:
                q = path[t - 1]
                gain += haversine_km(lat[q], lon[q], lat[cand], lon[cand])
            if t < last:
                q = path[t + 1]
                gain += haversine_km(lat[cand], lon[cand], lat[q], lon[q])
            k = int(np.argmax(gain))
            if gain[k] > gain[p - lo] + REFINE_EPS_KM:
                path[t] = int(cand[k])
                moved = True
        if not moved:
            break
    return tuple(path)


def _refine_triangle(
    lat: np.ndarray,
    lon: np.ndarray,
    stype: ScoringType,
    tri: Sequence[int],
    closing: tuple[int, int],
    radius: int,
) -> tuple[tuple[int, ...], tuple[int, int]]:
    """
    Same local search for a closed route: each vertex, then the closing pair.

    Vertices only move to positions that keep the triangle valid for stype;
    the closing pair only moves to shrink the gap (s <= a and f >= c hold).
    """
    verts = [int(v) for v in tri]
    s, f = int(closing[0]), int(closing[1])
    n = len(lat)
    for _ in range(REFINE_ROUNDS):
        moved = False
        gap = _leg_km(lat, lon, s, f)
        for slot in range(3):
            p = verts[slot]
            lo = verts[slot - 1] + 1 if slot > 0 else s
            hi = verts[slot + 1] - 1 if slot < 2 else f
            lo, hi = max(lo, p - radius), min(hi, p + radius)
            cand = np.arange(lo, hi + 1)

            u, w = verts[(slot + 1) % 3], verts[(slot + 2) % 3]
            leg_u = haversine_km(lat[cand], lon[cand], lat[u], lon[u])
            leg_w = haversine_km(lat[cand], lon[cand], lat[w], lon[w])
            fixed = _leg_km(lat, lon, u, w)
            perimeter = leg_u + leg_w + fixed

            valid = gap <= stype.closing_ratio * perimeter
            if stype.min_leg_ratio > 0:
                shortest = np.minimum(np.minimum(leg_u, leg_w), fixed)
                valid &= shortest >= stype.min_leg_ratio * perimeter
            net = np.where(valid, perimeter - gap, -np.inf)

            k = int(np.argmax(net))
            if net[k] > net[p - lo] + REFINE_EPS_KM:
                verts[slot] = int(cand[k])
                moved = True

        a, c = verts[0], verts[2]
        s_cand = np.arange(max(0, s - radius), min(a, s + radius) + 1)
        f_cand = np.arange(max(c, f - radius), min(n - 1, f + radius) + 1)
        G = haversine_km(lat[s_cand][:, None], lon[s_cand][:, None], lat[f_cand][None, :], lon[f_cand][None, :])
        i, j = np.unravel_index(int(np.argmin(G)), G.shape)
        if G[i, j] < gap - REFINE_EPS_KM:
            s, f = int(s_cand[i]), int(f_cand[j])
            moved = True

        if not moved:
            break
    return tuple(verts), (s, f)


def refine(
    lat: np.ndarray,
    lon: np.ndarray,
    stype: ScoringType,
    info: ScoreInfo,
    radius: int,
    offset: int = 0,
) -> ScoreInfo:
    """Polish a sampled route on the full-resolution fixes; never returns a lower score."""
    rel = [i - offset for i in info.indices]
    if not rel:
        return info
    if stype.closed:
        route, closing = _refine_triangle(lat, lon, stype, rel[:3], (rel[3], rel[4]), radius)
    else:
        route, closing = _refine_open(lat, lon, rel, radius), None
    refined = _make_info(lat, lon, stype, route, closing, offset)
    return refined if refined.score > info.score else info


def _pinned(solution: Optional[Solution], offset: int, n: int) -> np.ndarray:
    """Fix indices of a known route, shifted into the trimmed index range."""
    if solution is None or solution.score_info is None:
        return np.array([], dtype=int)
    rel = np.asarray(solution.score_info.indices, dtype=int) - offset
    return rel[(rel >= 0) & (rel < n)]


# -----------------------------
# Solver
# -----------------------------
def solve(
    track: Track,
    rules: Sequence[ScoringType] = XCONTEST,
    noflight: bool = True,
    resolutions: Sequence[int] = DEFAULT_RESOLUTIONS,
    seed: Optional[Solution] = None,
) -> Iterator[Solution]:
    """
    Yield candidates for coarse to fine samplings; the last one is optimal.

    Every sample also holds the fixes of the best route found so far and of
    `seed` (e.g. the result for a shorter prefix of the same track), so a
    longer prefix never scores below the shorter one. The final candidate is
    refined on the full-resolution fixes around each route vertex.
    """
    fixes = track.fixes
    offset = 0
    if not noflight:
        offset, end = flight_bounds(fixes)
        fixes = fixes[offset:end]

    n = len(fixes)
    if n < 2:
        yield Solution(optimal=True, sampled_points=n)
        return

    lat = np.array([f.latitude for f in fixes])
    lon = np.array([f.longitude for f in fixes])

    pinned = _pinned(seed, offset, n)
    levels = sorted({min(int(r), n) for r in resolutions if r >= 2}) or [min(2, n)]
    best: Optional[Solution] = None
    for level_no, m in enumerate(levels):
        idx = np.union1d(np.union1d(sample_indices(n, m), pinned), _pinned(best, offset, n))
        stype, info = _score_sample(lat, lon, idx, rules, offset)
        if best is None or (info is not None and info.score > best.score):
            best = Solution(optimal=False, scoring=stype, score_info=info, sampled_points=len(idx))

        final = level_no == len(levels) - 1
        if final and best.score_info is not None:
            radius = max(1, int(np.ceil((n - 1) / max(len(idx) - 1, 1))))
            refined = refine(lat, lon, best.scoring, best.score_info, radius, offset)
            best = Solution(optimal=False, scoring=best.scoring, score_info=refined,
                            sampled_points=best.sampled_points)

        logger.debug("Solver level %d/%d: %d points, score %.2f", level_no + 1, len(levels), len(idx), best.score)
        yield Solution(optimal=final, scoring=best.scoring, score_info=best.score_info,
                       sampled_points=best.sampled_points)
