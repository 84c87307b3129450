"""Tests for the progressive scoring engine in scoring.py"""

import math
from dataclasses import replace

import pytest

from flight_overlay.domain import ScoreWindow, ScoringError, Track
from flight_overlay.scoring import (
    net_distance,
    route_type_label,
    score_progressively,
    solve_to_optimal,
    window_from_solution,
    windows_per_fix,
)
from flight_overlay.solver import ScoreInfo, Solution


def _info(distance, penalty):
    return ScoreInfo(distance=distance, penalty=penalty, score=distance, route=(), turnpoints=())


class TestRouteTypeLabel:
    @pytest.mark.parametrize(
        "code, label",
        [("fai", "FAI"), ("tri", "flat"), ("od", None), ("", None), (None, None)],
    )
    def test_mapping(self, code, label):
        assert route_type_label(code) == label


class TestNetDistance:
    def test_subtracts_penalty(self):
        assert net_distance(_info(120.0, 4.5)) == pytest.approx(115.5)

    def test_missing_penalty_is_zero(self):
        assert net_distance(_info(120.0, None)) == pytest.approx(120.0)

    def test_nan_penalty_is_zero(self):
        assert net_distance(_info(120.0, float("nan"))) == pytest.approx(120.0)


class TestSolveToOptimal:
    def test_skips_intermediate_candidates(self, make_track, scripted_solver):
        solver = scripted_solver(intermediates=3)
        result = solve_to_optimal(solver, make_track(10))
        assert result.optimal is True
        assert result.score_info.distance == 10.0

    def test_exhausted_solver_raises(self, make_track, scripted_solver):
        solver = scripted_solver(finish=False)
        with pytest.raises(ScoringError, match="without an optimal"):
            solve_to_optimal(solver, make_track(10))


class TestWindowFromSolution:
    def test_label_and_speed(self):
        sol = Solution(optimal=True, scoring=None, score_info=_info(60.0, 2.0))
        w = window_from_solution(sol, end=60, elapsed_ms=2 * 3_600_000)
        assert w.scoring_distance == pytest.approx(58.0)
        assert w.elapsed_hours == pytest.approx(2.0)
        assert w.average_speed == pytest.approx(29.0)
        assert w.route_label == "58 km"

    def test_label_rounds_exact_half_up(self):
        sol = Solution(optimal=True, scoring=None, score_info=_info(2.5, None))
        assert window_from_solution(sol, end=10, elapsed_ms=3_600_000).route_label == "3 km"

    def test_zero_elapsed_gives_zero_speed(self):
        sol = Solution(optimal=True, score_info=_info(0.0, None))
        w = window_from_solution(sol, end=1, elapsed_ms=0)
        assert w.average_speed == 0.0

    def test_unscored_solution(self):
        w = window_from_solution(Solution(optimal=True), end=3, elapsed_ms=2000)
        assert w.scored is False
        assert w.route_label == ""
        assert w.scoring_distance == 0.0


class TestScoreProgressively:
    def test_single_chunk_track(self, make_track, scripted_solver):
        """3 fixes, chunk 60: one solver run, one window."""
        solver = scripted_solver()
        windows = score_progressively(make_track(3), chunk_size=60, solver=solver)
        assert solver.calls == [3]
        assert len(windows) == 1
        assert windows[0].end == 3

    def test_prefix_lengths_grow_by_chunk(self, make_track, scripted_solver):
        """150 fixes, chunk 60: prefixes 60, 120, 150."""
        solver = scripted_solver()
        windows = score_progressively(make_track(150), chunk_size=60, solver=solver)
        assert solver.calls == [60, 120, 150]
        assert [w.end for w in windows] == [60, 120, 150]

    def test_empty_track_no_solver_calls(self, scripted_solver):
        solver = scripted_solver()
        assert score_progressively(Track(date="2019-07-25", fixes=[]), solver=solver) == []
        assert solver.calls == []

    def test_average_speed_formula(self, make_track, scripted_solver):
        # fixes 1 s apart; scripted distance = prefix length, penalty 0.5
        solver = scripted_solver(penalty=0.5)
        windows = score_progressively(make_track(150), chunk_size=60, solver=solver)
        for w in windows:
            elapsed_ms = (w.end - 1) * 1000
            expected = (w.end - 0.5) / (elapsed_ms / 3_600_000)
            assert w.average_speed == pytest.approx(expected)
            assert w.scoring_distance == pytest.approx(w.end - 0.5)

    def test_elapsed_uses_last_fix_of_chunk(self, make_track, scripted_solver):
        windows = score_progressively(make_track(150, step_s=2), chunk_size=60, solver=scripted_solver())
        assert windows[0].elapsed_hours == pytest.approx(59 * 2 / 3600)
        assert windows[2].elapsed_hours == pytest.approx(149 * 2 / 3600)

    def test_earlier_windows_not_updated(self, make_track, scripted_solver):
        windows = score_progressively(make_track(150), chunk_size=60, solver=scripted_solver())
        assert [w.scoring_distance for w in windows] == [60.0, 120.0, 150.0]

    def test_route_labels(self, make_track, scripted_solver):
        windows = score_progressively(make_track(10), chunk_size=5, solver=scripted_solver(code="fai"))
        assert [w.route_label for w in windows] == ["FAI 5 km", "FAI 10 km"]
        windows = score_progressively(make_track(5), chunk_size=5, solver=scripted_solver(code="tri"))
        assert windows[0].route_label == "flat 5 km"
        windows = score_progressively(make_track(5), chunk_size=5, solver=scripted_solver(code="od"))
        assert windows[0].route_label == "5 km"

    def test_progress_callback(self, make_track, scripted_solver):
        seen = []
        score_progressively(make_track(150), chunk_size=60, solver=scripted_solver(),
                            on_progress=lambda p, t: seen.append((p, t)))
        assert seen == [(60, 150), (120, 150), (150, 150)]

    def test_invalid_chunk_size(self, make_track, scripted_solver):
        with pytest.raises(ValueError):
            score_progressively(make_track(3), chunk_size=0, solver=scripted_solver())

    def test_with_real_solver(self, make_track):
        windows = score_progressively(make_track(130), chunk_size=60)
        assert len(windows) == 3
        distances = [w.scoring_distance for w in windows]
        assert distances == sorted(distances)
        assert all(isinstance(w, ScoreWindow) for w in windows)

    def test_off_grid_extreme_point_keeps_score(self, make_track):
        # the last fix of chunk 1 is a far excursion; the 120-fix prefix samples
        # only 48 evenly spaced fixes, which does not include fix 59
        track = make_track(120)
        track.fixes[59] = replace(track.fixes[59], latitude=46.5)
        windows = score_progressively(track, chunk_size=60)
        distances = [w.scoring_distance for w in windows]
        assert distances[0] > 50.0
        assert distances == sorted(distances)

    def test_previous_result_is_passed_as_seed(self, make_track, scripted_solver):
        solver = scripted_solver()
        score_progressively(make_track(150), chunk_size=60, solver=solver)
        assert solver.seeds[0] is None
        assert [s.score_info.distance for s in solver.seeds[1:]] == [60.0, 120.0]


class TestWindowsPerFix:
    def test_chunk_attachment(self, make_track, scripted_solver):
        total, chunk = 150, 60
        windows = score_progressively(make_track(total), chunk_size=chunk, solver=scripted_solver())
        per_fix = windows_per_fix(windows, chunk, total)
        assert len(per_fix) == total
        for k in range(math.ceil(total / chunk)):
            members = per_fix[k * chunk: min((k + 1) * chunk, total)]
            assert all(w is windows[k] for w in members)

    def test_count_mismatch_raises(self):
        w = ScoreWindow(end=60, route_type=None, scoring_distance=1.0, elapsed_hours=1.0, average_speed=1.0)
        with pytest.raises(ScoringError):
            windows_per_fix([w], 60, 150)

    def test_empty(self):
        assert windows_per_fix([], 60, 0) == []
