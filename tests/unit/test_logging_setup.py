import json
import logging
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "core"))

from fireboard_core.logging_setup import JsonFormatter, get_logger


class LoggingSetupTests(unittest.TestCase):
    def test_json_formatter_carries_error_context(self):
        record = logging.LogRecord("fireboard.collector", logging.WARNING, __file__, 1, "chart failed", None, None)
        record.event = "collect_error"
        record.func = "sessionsGetChartData"
        record.resource = "sessionID:7"
        payload = json.loads(JsonFormatter().format(record))
        self.assertEqual(payload["level"], "WARNING")
        self.assertEqual(payload["msg"], "chart failed")
        self.assertEqual(payload["func"], "sessionsGetChartData")
        self.assertEqual(payload["resource"], "sessionID:7")
        self.assertNotIn("crash_id", payload)

    def test_child_loggers_share_root(self):
        self.assertEqual(get_logger().name, "fireboard")
        self.assertEqual(get_logger("scheduler").name, "fireboard.scheduler")


if __name__ == "__main__":
    unittest.main()
