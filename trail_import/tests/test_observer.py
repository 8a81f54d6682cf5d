import logging
import unittest

from trail_import.observer import CollectingObserver, LoggingObserver, get_observer


class TestObservers(unittest.TestCase):
    def test_collecting_observer_records_events(self):
        observer = CollectingObserver()

        observer.event("import_started", format="txt")
        observer.event("import_finished", success=True)

        self.assertEqual(observer.names(), ["import_started", "import_finished"])
        self.assertEqual(observer.events[0][1], {"format": "txt"})

    def test_logging_observer_levels(self):
        observer = LoggingObserver()

        with self.assertLogs("trail_import", level="INFO") as captured:
            observer.event("import_started", format="md", confidence=40)
            observer.event("ai_fallback", reason="timeout")

        self.assertEqual(captured.records[0].levelno, logging.INFO)
        self.assertIn("import_started confidence=40 format='md'", captured.output[0])
        self.assertEqual(captured.records[1].levelno, logging.WARNING)

    def test_get_observer_defaults_to_logging(self):
        collecting = CollectingObserver()

        self.assertIs(get_observer(collecting), collecting)
        self.assertIsInstance(get_observer(), LoggingObserver)


if __name__ == "__main__":
    unittest.main()
