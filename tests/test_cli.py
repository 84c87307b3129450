"""Tests for the command line entry points in cli.py"""

import json

import pandas as pd
import pytest

from flight_overlay import cli, elevation


@pytest.fixture
def igc_file(tmp_path, make_igc):
    path = tmp_path / "flight.igc"
    path.write_text(make_igc(150), encoding="utf-8")
    return path


@pytest.fixture
def patch_session(monkeypatch, fake_session):
    """Route the default requests.Session to the fake elevation service."""
    def _patch(**kwargs):
        session = fake_session(**kwargs)
        monkeypatch.setattr(elevation.requests, "Session", lambda: session)
        return session
    return _patch


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("FLIGHT_OVERLAY_ELEVATION_URL", "FLIGHT_OVERLAY_CHUNK_SIZE",
                "FLIGHT_OVERLAY_BATCH_SIZE", "FLIGHT_OVERLAY_TIMEOUT_S"):
        monkeypatch.delenv(key, raising=False)


class TestOverlayCommand:
    def test_writes_csv_next_to_input(self, igc_file, patch_session):
        session = patch_session()
        assert cli.main_overlay([str(igc_file)]) == cli.EXIT_OK

        out = igc_file.with_suffix(".csv")
        assert out.exists()
        frame = pd.read_csv(out, keep_default_na=False)
        assert list(frame.columns) == ["date", "altitude(m)", "ground alt(m)", "agl(m)", "xc(km)", "avg speed(km/h)"]
        assert len(frame) == 150
        assert frame["date"].iloc[0] == "2019-07-25T10:00:00Z"
        assert frame["xc(km)"].iloc[-1].endswith("km")
        assert session.batch_sizes() == [100, 50]

    def test_missing_input(self, tmp_path, patch_session):
        session = patch_session()
        assert cli.main_overlay([str(tmp_path / "nope.igc")]) == cli.EXIT_NO_INPUT
        assert session.calls == []
        assert not (tmp_path / "nope.csv").exists()

    def test_http_failure_leaves_no_output(self, igc_file, patch_session, caplog):
        patch_session(statuses=[200, 500])
        assert cli.main_overlay([str(igc_file)]) == cli.EXIT_FAILED
        assert not igc_file.with_suffix(".csv").exists()
        assert "Elevation lookup failed" in caplog.text

    def test_dropped_batch_reported_as_elevation_failure(self, igc_file, patch_session, caplog):
        patch_session(service_status=["OK", "ERROR"])
        assert cli.main_overlay([str(igc_file)]) == cli.EXIT_FAILED
        assert not igc_file.with_suffix(".csv").exists()
        assert "Elevation lookup failed: Got 100 ground elevations for 150 fixes" in caplog.text
        assert "Scoring failed" not in caplog.text
        assert "[scoring]" not in caplog.text

    def test_empty_track_writes_nothing(self, tmp_path, make_igc, patch_session):
        path = tmp_path / "empty.igc"
        path.write_text(make_igc(0), encoding="utf-8")
        session = patch_session()
        assert cli.main_overlay([str(path)]) == cli.EXIT_OK
        assert session.calls == []
        assert not path.with_suffix(".csv").exists()

    def test_elevation_url_from_env(self, igc_file, patch_session, monkeypatch):
        monkeypatch.setenv("FLIGHT_OVERLAY_ELEVATION_URL", "http://dem.example/v1/srtm")
        session = patch_session()
        cli.main_overlay([str(igc_file)])
        assert {c["url"] for c in session.calls} == {"http://dem.example/v1/srtm"}

    def test_help(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main_overlay(["--help"])
        assert exc.value.code == 0
        assert "file_path" in capsys.readouterr().out


class TestRouteCommand:
    def test_writes_geojson(self, igc_file, patch_session):
        session = patch_session()
        assert cli.main_route([str(igc_file)]) == cli.EXIT_OK
        shape = json.loads(igc_file.with_suffix(".json").read_text(encoding="utf-8"))
        assert shape["type"] == "FeatureCollection"
        assert shape["features"][0]["geometry"]["type"] == "LineString"
        # the route command never needs ground elevation
        assert session.calls == []

    def test_missing_input(self, tmp_path):
        assert cli.main_route([str(tmp_path / "nope.igc")]) == cli.EXIT_NO_INPUT
