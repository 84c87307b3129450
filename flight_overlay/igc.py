"""IGC track loading: header date and B-record fixes."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import IO, Optional, Union

from .domain import Fix, Track

logger = logging.getLogger(__name__)

TrackSource = Union[str, Path, IO[bytes], IO[str], Track]

# HFDTE250719 or HFDTEDATE:250719,01
_DATE_RE = re.compile(r"^HFDTE(?:DATE:)?\s*(\d{2})(\d{2})(\d{2})")

B_RECORD_MIN_LEN = 35
DAY_MS = 86_400_000
# a backward step larger than this is a new UTC day, smaller ones are logger glitches
ROLLOVER_MIN_BACKSTEP_MS = 3_600_000


def decode_coordinate(value: int, hemisphere: str) -> float:
    """
    Decode an IGC DDMMmmm / DDDMMmmm integer into signed decimal degrees.

    4836200 N -> 48 + 36200 / 60000 = 48.60333...
    """
    degrees = value // 100000
    minutes_fraction = (value % 100000) / 60000
    decimal = degrees + minutes_fraction
    if hemisphere in ("S", "W"):
        decimal = -decimal
    return decimal


def parse_date_header(line: str) -> Optional[str]:
    m = _DATE_RE.match(line.strip())
    if m is None:
        return None
    day, month, year = m.groups()
    try:
        d = datetime(int("20" + year), int(month), int(day))
    except ValueError:
        return None
    return d.strftime("%Y-%m-%d")


def _epoch_ms(date: str, hh: int, mm: int, ss: int) -> int:
    day = datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    moment = day + timedelta(hours=hh, minutes=mm, seconds=ss)
    return int(moment.timestamp() * 1000)


def parse_fix_line(line: str, date: str) -> Optional[Fix]:
    """Parse one B record; returns None for anything malformed or truncated."""
    line = line.rstrip("\r\n")
    if not line.startswith("B") or len(line) < B_RECORD_MIN_LEN:
        return None

    lat_hemi = line[14]
    lon_hemi = line[23]
    if lat_hemi not in ("N", "S") or lon_hemi not in ("E", "W"):
        return None

    try:
        hh, mm, ss = int(line[1:3]), int(line[3:5]), int(line[5:7])
        lat = decode_coordinate(int(line[7:14]), lat_hemi)
        lon = decode_coordinate(int(line[15:23]), lon_hemi)
        pressure_alt = float(int(line[25:30]))
        gps_alt = float(int(line[30:35]))
    except ValueError:
        return None

    if hh > 23 or mm > 59 or ss > 59:
        return None

    return Fix(
        time=f"{hh:02d}:{mm:02d}:{ss:02d}",
        timestamp=_epoch_ms(date, hh, mm, ss),
        latitude=lat,
        longitude=lon,
        gps_altitude=gps_alt,
        pressure_altitude=pressure_alt,
        valid=line[24] == "A",
    )


def parse_igc(text: str) -> Track:
    """
    Lenient IGC parse.

    Bad lines are skipped. Without a usable HFDTE header no timestamps can be
    built, so the result is an empty track (callers treat that as "nothing to
    process").
    """
    lines = text.splitlines()

    date: Optional[str] = None
    for line in lines:
        if line.startswith("HFDTE"):
            date = parse_date_header(line)
            break

    if date is None:
        logger.debug("No parsable HFDTE header; returning empty track")
        return Track(date=None, fixes=[])

    fixes: list[Fix] = []
    skipped = 0
    backsteps = 0
    day_offset = 0
    for line in lines:
        if not line.startswith("B"):
            continue
        fix = parse_fix_line(line, date)
        if fix is None:
            skipped += 1
            continue

        # midnight rollover: keep timestamps non-decreasing
        ts = fix.timestamp + day_offset
        if fixes and ts < fixes[-1].timestamp:
            if fixes[-1].timestamp - ts <= ROLLOVER_MIN_BACKSTEP_MS:
                backsteps += 1
                continue
            day_offset += DAY_MS
            ts += DAY_MS
        if ts != fix.timestamp:
            fix = replace(fix, timestamp=ts)
        fixes.append(fix)

    if skipped:
        logger.debug("Skipped %d malformed B records", skipped)
    if backsteps:
        logger.debug("Dropped %d fixes whose time stepped backwards", backsteps)

    return Track(date=date, fixes=fixes)


def _read_text(source) -> str:
    if isinstance(source, (str, Path)):
        raw = Path(source).read_bytes()
    else:
        raw = source.read()
        if isinstance(raw, str):
            return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def load_track(source: TrackSource) -> Track:
    """Load a Track from a path, an open stream (e.g. an upload) or an existing Track."""
    if isinstance(source, Track):
        return source
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    return parse_igc(_read_text(source))
