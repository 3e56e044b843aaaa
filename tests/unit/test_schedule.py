"""
Tests for schedule configuration.

Coverage:
- "HH:MM" parsing and formatting
- Working day parsing
- Duration bounds
- Loading from the stored row with environment fallback
"""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from booking.schedule import (
    ScheduleConfig,
    booking_instant,
    format_time_of_day,
    load_schedule_config,
    parse_time_of_day,
    parse_work_days,
)
from database.models import ScheduleSettings
from shared.errors import ConfigError


class TestTimeOfDay:
    def test_parse(self):
        assert parse_time_of_day("09:30") == 570

    def test_parse_strips_whitespace(self):
        assert parse_time_of_day(" 18:00 ") == 1080

    def test_format(self):
        assert format_time_of_day(570) == "09:30"

    @pytest.mark.parametrize("value", ["24:00", "10:75", "ten", None])
    def test_invalid(self, value):
        with pytest.raises(ConfigError):
            parse_time_of_day(value)


class TestBookingInstant:
    def test_combines_date_and_time_in_zone(self, schedule_config):
        instant = booking_instant(date(2026, 3, 3), "14:30", schedule_config.tz)
        assert instant.hour == 14
        assert instant.minute == 30
        assert instant.tzinfo == schedule_config.tz


class TestParseWorkDays:
    def test_from_string(self):
        assert parse_work_days("0, 1,2") == frozenset({0, 1, 2})

    def test_from_iterable(self):
        assert parse_work_days([5, 6]) == frozenset({5, 6})

    def test_empty_string(self):
        assert parse_work_days("") == frozenset()

    def test_out_of_range(self):
        with pytest.raises(ConfigError):
            parse_work_days("1,7")

    def test_not_a_number(self):
        with pytest.raises(ConfigError):
            parse_work_days("mon,tue")


class TestScheduleConfig:
    """Test ScheduleConfig construction and validation."""

    @pytest.mark.parametrize("duration", [15, 60, 120])
    def test_duration_within_bounds(self, duration):
        config = ScheduleConfig(
            work_days=frozenset({0}), start_time="09:00", end_time="18:00",
            session_duration=duration,
        )
        config.validate()

    @pytest.mark.parametrize("duration", [10, 121])
    def test_duration_out_of_bounds(self, duration):
        config = ScheduleConfig(
            work_days=frozenset({0}), start_time="09:00", end_time="18:00",
            session_duration=duration,
        )
        with pytest.raises(ConfigError):
            config.validate()

    def test_from_model(self):
        row = ScheduleSettings(
            work_days=[1, 2, 3],
            work_start_time="10:00",
            work_end_time="16:00",
            session_duration=45,
            break_start_time="",
            break_end_time=None,
            session_price=12000,
            office_address="  ",
            confirmation_message_template="Ждём вас, {firstName}",
            reminder_message_template=" ",
        )
        config = ScheduleConfig.from_model(row, timezone="Asia/Almaty")

        assert config.work_days == frozenset({1, 2, 3})
        assert config.session_duration == 45
        assert config.break_start is None
        assert config.office_address is None
        assert config.confirmation_template == "Ждём вас, {firstName}"
        assert config.reminder_template is None

    def test_from_settings(self):
        settings = MagicMock(
            WORK_DAYS="0,1,2,3,4",
            WORK_START_TIME="09:00",
            WORK_END_TIME="19:00",
            SESSION_DURATION_MINUTES=30,
            BREAK_START_TIME="13:00",
            BREAK_END_TIME="14:00",
            SESSION_PRICE=None,
            OFFICE_ADDRESS=None,
            TIMEZONE="Asia/Almaty",
        )
        config = ScheduleConfig.from_settings(settings)

        assert config.work_days == frozenset({0, 1, 2, 3, 4})
        assert config.break_start == "13:00"
        assert config.session_price is None


class TestLoadScheduleConfig:
    """Test load_schedule_config()."""

    @pytest.mark.asyncio
    async def test_uses_stored_row(self, store):
        store.schedule_settings = ScheduleSettings(
            work_days=[5],
            work_start_time="11:00",
            work_end_time="15:00",
            session_duration=60,
        )
        config = await load_schedule_config(store)

        assert config.work_days == frozenset({5})
        assert config.start_time == "11:00"

    @pytest.mark.asyncio
    async def test_falls_back_to_environment(self, store, schedule_config):
        with patch(
            "booking.schedule.ScheduleConfig.from_settings", return_value=schedule_config
        ) as mock_from_settings:
            config = await load_schedule_config(store)

        mock_from_settings.assert_called_once()
        assert config is schedule_config


class TestDefaultScheduleSeed:
    def test_row_built_from_environment(self):
        from database.seeds.schedule_settings import build_default_schedule_settings

        row = build_default_schedule_settings()

        assert row.work_days == [0, 1, 2, 3, 4]
        assert row.work_start_time == "09:00"
        assert row.work_end_time == "19:00"
        assert row.session_duration == 30
        assert row.break_start_time is None
