from __future__ import annotations

import os
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytz


# -----------------------
# Clock primitives
# -----------------------
class Clock:
    def now_utc(self) -> datetime:
        raise NotImplementedError


class RealClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    def __init__(self, dt_utc: datetime):
        if dt_utc.tzinfo is None:
            dt_utc = dt_utc.replace(tzinfo=timezone.utc)
        self._dt = dt_utc.astimezone(timezone.utc)

    @staticmethod
    def from_env(var: str = "NOW_UTC") -> Optional["FixedClock"]:
        val = os.getenv(var)
        if not val:
            return None
        return FixedClock(parse_any_datetime(val))

    def now_utc(self) -> datetime:
        return self._dt


def default_clock() -> Clock:
    return FixedClock.from_env() or RealClock()


def parse_any_datetime(s: str) -> datetime:
    s = s.strip()
    if re.fullmatch(r"\d{10}", s):
        return datetime.fromtimestamp(int(s), tz=timezone.utc)
    if re.fullmatch(r"\d{13}", s):
        return datetime.fromtimestamp(int(s) / 1000.0, tz=timezone.utc)
    s = s.replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as e:
        raise ValueError(f"Invalid datetime: {s!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def epoch_seconds(dt: datetime) -> int:
    return int(as_utc(dt).timestamp())


def require_tz(name: str) -> pytz.BaseTzInfo:
    try:
        return pytz.timezone(name)
    except Exception as e:
        raise ValueError(f"Invalid IANA timezone: {name!r}") from e


def meta_range_yesterday(tz_name: str, clock: Optional[Clock] = None) -> Dict[str, str]:
    """Yesterday..today in the account timezone, as Graph `time_range` expects."""
    now = (clock or default_clock()).now_utc().astimezone(require_tz(tz_name))
    yesterday = now - timedelta(days=1)
    return {"since": yesterday.date().isoformat(), "until": now.date().isoformat()}


# -----------------------
# Env helpers
# -----------------------
def getenv_f(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)) or default)
    except ValueError:
        return float(default)


def getenv_b(name: str, default: bool = False) -> bool:
    return (os.getenv(name, str(int(default))) or "").lower() in ("1", "true", "yes", "y")
