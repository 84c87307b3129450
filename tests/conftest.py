"""Shared fixtures: synthetic tracks, a fake elevation service and a scripted solver."""

import pytest

from flight_overlay.domain import Fix, Track
from flight_overlay.solver import XCONTEST, ScoreInfo, Solution

BASE_TS = 1564048800000  # 2019-07-25T10:00:00Z
SCORING_TYPES = {s.code: s for s in XCONTEST}


def _hms(seconds: int) -> str:
    seconds %= 86400
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"


def _b_record(seconds: int, lat_digits: int, lon_digits: int, gps_alt: int, lat_hemi="N", lon_hemi="E") -> str:
    hms = _hms(seconds).replace(":", "")
    return f"B{hms}{lat_digits:07d}{lat_hemi}{lon_digits:08d}{lon_hemi}A{gps_alt - 20:05d}{gps_alt:05d}"


@pytest.fixture
def make_track():
    """Build a Track of n fixes, 1 s apart, drifting north-east, starting 10:00:00."""
    def _make(n: int, step_s: int = 1, date: str = "2019-07-25") -> Track:
        fixes = [
            Fix(
                time=_hms(36000 + i * step_s),
                timestamp=BASE_TS + i * step_s * 1000,
                latitude=46.0 + i * 0.001,
                longitude=7.0 + i * 0.001,
                gps_altitude=1000.0 + i,
            )
            for i in range(n)
        ]
        return Track(date=date, fixes=fixes)
    return _make


@pytest.fixture
def make_igc():
    """Build IGC text with an HFDTE header (25 Jul 2019) and n B records, 1 s apart."""
    def _make(n: int, header: str = "HFDTEDATE:250719,01", extra_lines=()) -> str:
        lines = ["AXXX001 test logger", header, "HFPLTPILOTINCHARGE:Test Pilot"]
        for i in range(n):
            lines.append(_b_record(36000 + i, 4600000 + 60 * i, 700000 + 60 * i, 1000 + i))
        lines.extend(extra_lines)
        lines.append("GABCDEF")
        return "\r\n".join(lines) + "\r\n"
    return _make


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        return self._payload


class FakeElevationSession:
    """
    Stands in for requests.Session. Elevation of "lat,lon" is lat * 10 so tests
    can check positional alignment. `statuses` scripts the HTTP status per call,
    `service_status` scripts the JSON status field per call.
    """

    def __init__(self, statuses=None, service_status=None):
        self.calls = []
        self.seeds = []
        self.statuses = list(statuses or [])
        self.service_status = list(service_status or [])

    def get(self, url, params=None, timeout=None):
        n = len(self.calls)
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        status_code = self.statuses[n] if n < len(self.statuses) else 200
        if status_code != 200:
            return FakeResponse(status_code, text="Internal Server Error")

        pairs = [p.split(",") for p in params["locations"].split("|")]
        results = [
            {
                "elevation": float(lat) * 10,
                "location": {"lat": float(lat), "lng": float(lon)},
                "dataset": "eudem25m",
            }
            for lat, lon in pairs
        ]
        status = self.service_status[n] if n < len(self.service_status) else "OK"
        return FakeResponse(200, {"status": status, "results": results})

    def batch_sizes(self):
        return [len(c["params"]["locations"].split("|")) for c in self.calls]


@pytest.fixture
def fake_session():
    return FakeElevationSession


class ScriptedSolver:
    """
    Solver double: records prefix lengths, yields `intermediates` non-optimal
    candidates, then an optimal one scoring distance = len(prefix) km.
    """

    def __init__(self, code="fai", penalty=None, intermediates=2, scored=True, finish=True):
        self.calls = []
        self.seeds = []
        self.code = code
        self.penalty = penalty
        self.intermediates = intermediates
        self.scored = scored
        self.finish = finish

    def _candidate(self, n, optimal):
        if not self.scored:
            return Solution(optimal=optimal)
        info = ScoreInfo(
            distance=float(n),
            penalty=self.penalty,
            score=float(n),
            route=((46.0, 7.0), (46.1, 7.1)),
            turnpoints=(),
        )
        return Solution(optimal=optimal, scoring=SCORING_TYPES[self.code], score_info=info)

    def __call__(self, track, rules=XCONTEST, noflight=True, seed=None):
        n = len(track)
        self.calls.append(n)
        self.seeds.append(seed)
        for _ in range(self.intermediates):
            yield Solution(optimal=False, scoring=SCORING_TYPES["od"],
                           score_info=ScoreInfo(distance=-1.0, penalty=None, score=-1.0, route=(), turnpoints=()))
        if self.finish:
            yield self._candidate(n, optimal=True)


@pytest.fixture
def scripted_solver():
    return ScriptedSolver
