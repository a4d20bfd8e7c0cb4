import logging
import unittest
from datetime import time
from pathlib import Path

from room_booking import Settings
from room_booking.app_logger import get_logger, setup_logging


class TestSettings(unittest.TestCase):
    def test_defaults(self) -> None:
        settings = Settings.from_env({})

        self.assertEqual(settings.data_dir, Path("data"))
        self.assertEqual((settings.operating_start, settings.operating_end), (time(7, 30), time(17, 30)))
        self.assertEqual(settings.reservation_window_days, 30)
        self.assertEqual(settings.closed_weekdays, frozenset({6}))
        self.assertIsNone(settings.holiday_country)
        self.assertFalse(settings.reject_conflicts_at_creation)
        self.assertEqual(settings.slot_minutes, 30)
        self.assertEqual((settings.min_duration_hours, settings.max_duration_hours), (1.0, 2.0))

    def test_environment_overrides(self) -> None:
        settings = Settings.from_env(
            {
                "ROOM_BOOKING_DATA_DIR": "/tmp/rooms",
                "ROOM_BOOKING_OPEN": "8:00 AM",
                "ROOM_BOOKING_CLOSE": "16:00",
                "ROOM_BOOKING_WINDOW_DAYS": "0",
                "ROOM_BOOKING_HOLIDAY_COUNTRY": "PH",
                "ROOM_BOOKING_STRICT_CREATE": "true",
                "ROOM_BOOKING_LOG_LEVEL": "debug",
                "ROOM_BOOKING_MIN_HOURS": "0",
                "ROOM_BOOKING_MAX_HOURS": "3.5",
            }
        )

        self.assertIsNone(settings.min_duration_hours)
        self.assertEqual(settings.max_duration_hours, 3.5)

        self.assertEqual(settings.data_dir, Path("/tmp/rooms"))
        self.assertEqual((settings.operating_start, settings.operating_end), (time(8, 0), time(16, 0)))
        self.assertIsNone(settings.reservation_window_days)
        self.assertEqual(settings.holiday_country, "PH")
        self.assertTrue(settings.reject_conflicts_at_creation)
        self.assertEqual(settings.log_level, "DEBUG")


class TestAppLogger(unittest.TestCase):
    def test_child_loggers_share_the_package_root(self) -> None:
        self.assertEqual(get_logger("room_booking.service").name, "room_booking.service")
        self.assertEqual(get_logger("web").name, "room_booking.web")
        self.assertEqual(get_logger().name, "room_booking")

    def test_setup_logging_does_not_duplicate_handlers(self) -> None:
        setup_logging("WARNING")
        logger = setup_logging(logging.INFO)

        stream_handlers = [handler for handler in logger.handlers if isinstance(handler, logging.StreamHandler)]
        self.assertEqual(len(stream_handlers), 1)
        self.assertEqual(logger.level, logging.INFO)


if __name__ == "__main__":
    unittest.main()
