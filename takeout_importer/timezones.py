"""
Timezone and activity-time resolution.

Cameras record a naive local "taken" time and, when they have a GPS fix,
a UTC time stamp. Neither says which timezone the photo was taken in. This
module fuses those sources (plus an optional remote timezone lookup) into a
single timestamp with an explicit offset, and reports a warning whenever it
has to give up or settle for a weaker heuristic.

Precedence, each step only tried when the previous one produced nothing:

1. location + GPS UTC time + lookup: the GPS instant in the looked-up zone
2. location + local taken time + lookup: the local time in the looked-up zone
3. local taken time + GPS UTC time: derive the offset from their difference
4. nothing; the caller keeps its own fallback
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from takeout_importer.constants import TZ_SNAP_SECONDS, TZ_TOLERANCE_SECONDS
from takeout_importer.errors import AmbiguousTimeError, ConfigError, RemoteServiceError
from takeout_importer.logging import logger
from takeout_importer.models import Location


_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1

_OFFSET_PAT = re.compile(r'^(?P<sign>[+-])?(?P<hours>\d{1,2}):(?P<minutes>\d{2})$')


@dataclass(frozen=True)
class TimezoneInfo:
    """Answer of the timezone lookup collaborator.

    Attributes:
        offset_seconds: Total UTC offset (raw plus DST) at the queried instant
        zone_id: Zone identifier, e.g. "Australia/Brisbane"
        name: Display name, e.g. "Australian Eastern Standard Time"
    """
    offset_seconds: int
    zone_id: str
    name: str

    @property
    def tzinfo(self) -> timezone:
        """Fixed offset for the queried instant; ValueError when out of range."""
        return timezone(timedelta(seconds=self.offset_seconds))


class TimezoneLookup(Protocol):
    def lookup(self, location: Location, when: datetime) -> TimezoneInfo:
        """Timezone in force at location around when; raises RemoteServiceError."""
        ...


@dataclass
class Resolution:
    """A resolved timestamp (or None) plus the warnings collected on the way."""
    timestamp: Optional[datetime] = None
    warnings: List[str] = field(default_factory=list)


# --- Parsing & Conversion ----------------------------------------------------

def parse_timezone(text: str) -> tzinfo:
    """Parse a fixed offset ``[+-]HH:MM`` or an IANA zone name.

    Raises:
        ConfigError: If the text is neither
    """
    text = text.strip()
    if not text:
        raise ConfigError("Empty timezone")
    m = _OFFSET_PAT.match(text)
    if m:
        hours = int(m.group('hours'))
        minutes = int(m.group('minutes'))
        if hours > 23 or minutes > 59:
            raise ConfigError(f"Timezone offset {text!r} is out of range")
        total = hours * 60 + minutes
        if m.group('sign') == '-':
            total = -total
        return timezone(timedelta(minutes=total))

    try:
        return ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone {text!r}") from e


def localize(naive: datetime, tz: tzinfo) -> datetime:
    """Interpret a naive wall-clock time in tz.

    Raises:
        AmbiguousTimeError: If the wall-clock time occurs twice (DST end) or
            never (DST start) in tz
    """
    first = naive.replace(tzinfo=tz, fold=0)
    second = naive.replace(tzinfo=tz, fold=1)
    if first.utcoffset() == second.utcoffset():
        return first

    round_trip = first.astimezone(timezone.utc).astimezone(tz).replace(tzinfo=None)
    if round_trip != naive:
        raise AmbiguousTimeError(f"{naive} does not exist in timezone {tz}")
    raise AmbiguousTimeError(f"{naive} is ambiguous in timezone {tz}")


def apply_timezone_override(timestamp: Optional[datetime], tz: tzinfo) -> Optional[datetime]:
    """Express an already resolved timestamp in a forced timezone."""
    if timestamp is None:
        return None
    return timestamp.astimezone(tz)


def to_system_local(timestamp: datetime) -> datetime:
    """Express a UTC timestamp in the importing machine's timezone."""
    return timestamp.astimezone()


# --- Derivation --------------------------------------------------------------

def derive_timezone(local: datetime, gps_utc: datetime) -> Resolution:
    """Derive the UTC offset from a naive local time and a GPS UTC time.

    The difference ``local - gps_utc`` is snapped to the nearest 15 minutes;
    it is rejected when the snap moves it by more than 5 minutes.

    Args:
        local: Naive local "taken" time
        gps_utc: Aware UTC time from the GPS receiver

    Returns:
        Resolution holding ``local`` with the derived offset, or no timestamp
        and a warning

    Examples:
        >>> r = derive_timezone(datetime(2018, 3, 2, 19, 20, 9),
        ...                     datetime(2018, 3, 2, 9, 20, tzinfo=timezone.utc))
        >>> r.timestamp.isoformat()
        '2018-03-02T19:20:09+10:00'
    """
    difference = local.replace(tzinfo=timezone.utc) - gps_utc
    seconds = int(difference.total_seconds())
    sign = -1 if seconds < 0 else 1
    magnitude = abs(seconds)

    snapped = (magnitude + TZ_SNAP_SECONDS // 2) // TZ_SNAP_SECONDS * TZ_SNAP_SECONDS
    if abs(snapped - magnitude) > TZ_TOLERANCE_SECONDS:
        return Resolution(None, [
            f"GPS/local difference {difference} ({local} - {gps_utc}) is not close to a 15 minute timezone offset"
        ])

    offset = sign * snapped
    if not _INT32_MIN <= offset <= _INT32_MAX:
        return Resolution(None, [f"GPS/local difference {difference} ({local} - {gps_utc}) is out of range"])

    try:
        tz = timezone(timedelta(seconds=offset))
    except ValueError:
        return Resolution(None, [f"GPS/local difference {difference} ({local} - {gps_utc}) is not a valid timezone offset"])

    try:
        return Resolution(localize(local, tz), [])
    except AmbiguousTimeError as e:
        return Resolution(None, [str(e)])


# --- Resolution --------------------------------------------------------------

def resolve_activity_time(
    taken_local: Optional[datetime],
    gps_utc: Optional[datetime],
    location: Optional[Location],
    timezone_lookup: Optional[TimezoneLookup] = None,
) -> Resolution:
    """Resolve the best activity timestamp from the available sources.

    Args:
        taken_local: Naive local time the media was taken
        gps_utc: Aware UTC time from GPS
        location: Capture location
        timezone_lookup: Optional remote timezone collaborator

    Returns:
        Resolution with an aware timestamp, or None when no step applies
    """
    warnings: List[str] = []

    if location is not None and timezone_lookup is not None:
        if gps_utc is not None:
            info = _lookup(timezone_lookup, location, gps_utc, warnings)
            if info is not None:
                return Resolution(gps_utc.astimezone(info), warnings)

        if taken_local is not None:
            info = _lookup(timezone_lookup, location, taken_local.replace(tzinfo=timezone.utc), warnings)
            if info is not None:
                try:
                    return Resolution(localize(taken_local, info), warnings)
                except AmbiguousTimeError as e:
                    warnings.append(str(e))

    if taken_local is not None and gps_utc is not None:
        derived = derive_timezone(taken_local, gps_utc)
        return Resolution(derived.timestamp, warnings + derived.warnings)

    return Resolution(None, warnings)


def _lookup(
    timezone_lookup: TimezoneLookup,
    location: Location,
    when: datetime,
    warnings: List[str],
) -> Optional[tzinfo]:
    try:
        info = timezone_lookup.lookup(location, when)
    except RemoteServiceError as e:
        warnings.append(f"Timezone lookup failed: {e}")
        return None
    try:
        tz = info.tzinfo
    except ValueError:
        warnings.append(f"Timezone lookup returned invalid offset {info.offset_seconds}")
        return None

    logger.debug(f"Timezone at {location.latitude},{location.longitude} is {info.zone_id} ({info.name})")
    return tz
