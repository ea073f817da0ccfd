"""
Tests for takeout_importer.timezones module.
"""
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from takeout_importer.errors import AmbiguousTimeError, ConfigError, RemoteServiceError
from takeout_importer.models import Location
from takeout_importer.timezones import (
    TimezoneInfo,
    apply_timezone_override,
    derive_timezone,
    localize,
    parse_timezone,
    resolve_activity_time,
)


UTC = timezone.utc
BRISBANE = Location(-27.47, 153.02)


class FakeLookup:
    """Timezone collaborator returning a fixed answer and recording calls."""

    def __init__(self, offset_seconds=36000, fail=False, fail_first=0):
        self.offset_seconds = offset_seconds
        self.fail = fail
        self.fail_first = fail_first
        self.calls = []

    def lookup(self, location, when):
        self.calls.append((location, when))
        if self.fail or len(self.calls) <= self.fail_first:
            raise RemoteServiceError('service unavailable')
        return TimezoneInfo(self.offset_seconds, 'Australia/Brisbane', 'Australian Eastern Standard Time')


class TestParseTimezone:
    """Tests for parse_timezone function."""

    def test_positive_offset(self):
        """Test "+HH:MM"."""
        assert parse_timezone('+10:00').utcoffset(None) == timedelta(hours=10)

    def test_negative_offset_applies_to_minutes(self):
        """The sign applies to the whole offset."""
        assert parse_timezone('-05:30').utcoffset(None) == -timedelta(hours=5, minutes=30)

    def test_unsigned_offset(self):
        """A missing sign means positive."""
        assert parse_timezone('09:30').utcoffset(None) == timedelta(hours=9, minutes=30)

    def test_zone_name(self):
        """IANA names resolve through zoneinfo."""
        assert parse_timezone('Australia/Brisbane') == ZoneInfo('Australia/Brisbane')

    @pytest.mark.parametrize('text', ['+24:00', '+10:60', 'Not/AZone', ''])
    def test_invalid(self, text):
        """Out of range offsets and unknown zones raise ConfigError."""
        with pytest.raises(ConfigError):
            parse_timezone(text)


class TestLocalize:
    """Tests for localize function."""

    def test_fixed_offset(self):
        """Fixed offsets are never ambiguous."""
        tz = timezone(timedelta(hours=10))
        result = localize(datetime(2020, 1, 1, 12, 0), tz)
        assert result.utcoffset() == timedelta(hours=10)

    def test_repeated_hour(self):
        """A wall time repeated at DST end is rejected."""
        with pytest.raises(AmbiguousTimeError, match='ambiguous'):
            localize(datetime(2021, 4, 4, 2, 30), ZoneInfo('Australia/Sydney'))

    def test_skipped_hour(self):
        """A wall time skipped at DST start is rejected."""
        with pytest.raises(AmbiguousTimeError, match='does not exist'):
            localize(datetime(2021, 10, 3, 2, 30), ZoneInfo('Australia/Sydney'))

    def test_regular_time_in_zone(self):
        """Ordinary times get the zone's offset."""
        result = localize(datetime(2021, 7, 1, 12, 0), ZoneInfo('Australia/Sydney'))
        assert result.utcoffset() == timedelta(hours=10)


class TestDeriveTimezone:
    """Tests for derive_timezone function."""

    def test_whole_hour_offset(self):
        """19:20:09 local against 09:20:00 UTC is +10:00."""
        result = derive_timezone(datetime(2018, 3, 2, 19, 20, 9), datetime(2018, 3, 2, 9, 20, 0, tzinfo=UTC))
        assert result.timestamp.isoformat() == '2018-03-02T19:20:09+10:00'
        assert result.warnings == []

    def test_off_grid_difference_rejected(self):
        """A difference 8 minutes off the 15 minute grid gives no result."""
        result = derive_timezone(datetime(2018, 3, 2, 19, 20, 9), datetime(2018, 3, 2, 9, 28, 9, tzinfo=UTC))
        assert result.timestamp is None
        assert len(result.warnings) == 1

    def test_clock_drift_tolerated(self):
        """Up to five minutes of drift still snaps to the offset."""
        result = derive_timezone(datetime(2018, 3, 2, 19, 24, 9), datetime(2018, 3, 2, 9, 20, 0, tzinfo=UTC))
        assert result.timestamp.utcoffset() == timedelta(hours=10)
        assert result.timestamp.replace(tzinfo=None) == datetime(2018, 3, 2, 19, 24, 9)

    def test_negative_offset(self):
        """West of Greenwich the sign is kept."""
        result = derive_timezone(datetime(2018, 3, 2, 4, 0), datetime(2018, 3, 2, 9, 0, tzinfo=UTC))
        assert result.timestamp.utcoffset() == -timedelta(hours=5)

    def test_quarter_hour_offset(self):
        """Nepal's +05:45 lies on the grid."""
        result = derive_timezone(datetime(2018, 3, 2, 14, 45), datetime(2018, 3, 2, 9, 0, tzinfo=UTC))
        assert result.timestamp.utcoffset() == timedelta(hours=5, minutes=45)

    def test_offset_beyond_a_day_rejected(self):
        """Differences of a day or more are not timezone offsets."""
        result = derive_timezone(datetime(2018, 3, 3, 19, 0), datetime(2018, 3, 2, 9, 0, tzinfo=UTC))
        assert result.timestamp is None
        assert result.warnings


class TestResolveActivityTime:
    """Tests for resolve_activity_time precedence."""

    def test_gps_and_location_use_lookup(self):
        """Step 1: the GPS instant is shown in the looked-up zone."""
        lookup = FakeLookup()
        gps = datetime(2018, 3, 2, 9, 20, tzinfo=UTC)
        result = resolve_activity_time(datetime(2018, 3, 2, 19, 20, 9), gps, BRISBANE, lookup)
        assert result.timestamp == gps
        assert result.timestamp.utcoffset() == timedelta(hours=10)
        assert lookup.calls == [(BRISBANE, gps)]

    def test_local_and_location_use_lookup(self):
        """Step 2: without GPS time the local time gets the looked-up zone."""
        result = resolve_activity_time(datetime(2018, 3, 2, 19, 20, 9), None, BRISBANE, FakeLookup())
        assert result.timestamp.isoformat() == '2018-03-02T19:20:09+10:00'

    def test_derivation_without_lookup(self):
        """Step 3: derivation when no lookup is available."""
        result = resolve_activity_time(
            datetime(2018, 3, 2, 19, 20, 9), datetime(2018, 3, 2, 9, 20, tzinfo=UTC), BRISBANE, None
        )
        assert result.timestamp.isoformat() == '2018-03-02T19:20:09+10:00'
        assert result.warnings == []

    def test_failed_lookup_falls_back_with_warning(self):
        """A failed lookup is reported and derivation is used."""
        result = resolve_activity_time(
            datetime(2018, 3, 2, 19, 20, 9),
            datetime(2018, 3, 2, 9, 20, tzinfo=UTC),
            BRISBANE,
            FakeLookup(fail=True),
        )
        assert result.timestamp.isoformat() == '2018-03-02T19:20:09+10:00'
        assert any('Timezone lookup failed' in w for w in result.warnings)

    def test_failed_gps_lookup_retried_for_local_time(self):
        """After the GPS lookup fails the local time is looked up next."""
        lookup = FakeLookup(fail_first=1)
        result = resolve_activity_time(
            datetime(2018, 3, 2, 19, 20, 9), datetime(2018, 3, 2, 9, 28, 9, tzinfo=UTC), BRISBANE, lookup
        )
        assert len(lookup.calls) == 2
        assert result.timestamp.isoformat() == '2018-03-02T19:20:09+10:00'
        assert result.warnings == ['Timezone lookup failed: service unavailable']

    def test_nothing_resolvable(self):
        """Step 4: a bare local time resolves to nothing."""
        result = resolve_activity_time(datetime(2018, 3, 2, 19, 20, 9), None, None, None)
        assert result.timestamp is None
        assert result.warnings == []


class TestApplyTimezoneOverride:
    """Tests for apply_timezone_override function."""

    def test_same_instant(self):
        """The instant is kept, only the offset changes."""
        ts = datetime(2018, 3, 2, 19, 20, tzinfo=timezone(timedelta(hours=10)))
        forced = timezone(timedelta(hours=-5))
        result = apply_timezone_override(ts, forced)
        assert result == ts
        assert result.utcoffset() == timedelta(hours=-5)

    def test_none(self):
        """Unresolved timestamps stay unresolved."""
        assert apply_timezone_override(None, UTC) is None
