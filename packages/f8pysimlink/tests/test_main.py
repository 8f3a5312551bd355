import contextlib
import io
import os
import sys
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from f8pysimlink.events import SubscriptionEvent  # noqa: E402
from f8pysimlink.main import _print_event, build_parser  # noqa: E402


class MonitorCliTests(unittest.TestCase):
    def test_print_event_writes_one_line_to_stdout(self) -> None:
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            _print_event(SubscriptionEvent("POS", {"x": 1}, "S1", "*"))
        self.assertEqual(out.getvalue(), "[POS] from=S1 to=*: {'x': 1}\n")

    def test_parser_collects_repeated_topics(self) -> None:
        args = build_parser().parse_args(["--port", "5001", "--topic", "pos", "--topic", "chat"])
        self.assertEqual(args.port, 5001)
        self.assertEqual(args.topic, ["pos", "chat"])
        self.assertIsNone(args.host)


if __name__ == "__main__":
    unittest.main()
