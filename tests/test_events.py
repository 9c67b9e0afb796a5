from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

from planbook.events import EventBus, append_runtime_log


class TestEventBus(unittest.TestCase):
    def test_publish_writes_log_and_notifies(self) -> None:
        with TemporaryDirectory() as tmp:
            event_log = Path(tmp) / "logs" / "events.jsonl"
            captured: list[dict[str, object]] = []

            bus = EventBus(event_log)
            bus.subscribe(lambda event: captured.append(event))
            event = bus.publish_event("task.created", "task H-T1 created", metadata={"task_id": "H-T1"})

            self.assertEqual(1, len(captured))
            self.assertEqual("task.created", captured[0]["type"])
            self.assertEqual("planning", captured[0]["source"])
            self.assertTrue(str(event.get("id", "")).startswith("evt-"))
            self.assertEqual(1, bus.events_written)
            payload = event_log.read_text(encoding="utf-8")
            self.assertIn('"type": "task.created"', payload)
            self.assertIn('"task_id": "H-T1"', payload)

    def test_prefix_subscriptions_and_failing_handlers(self) -> None:
        task_events: list[str] = []
        everything: list[str] = []

        def broken(event: dict[str, object]) -> None:
            raise RuntimeError("boom")

        bus = EventBus()
        bus.subscribe(broken)
        bus.subscribe(lambda event: task_events.append(str(event["type"])), prefix="task.")
        unsubscribe = bus.subscribe(lambda event: everything.append(str(event["message"])))

        bus.publish_event("task.moved", "first", severity="WARN")
        bus.publish_event("okr.status", "second")
        unsubscribe()
        bus.publish_event("task.moved", "third", severity="loud")

        self.assertEqual(["task.moved", "task.moved"], task_events)
        self.assertEqual(["first", "second"], everything)
        self.assertEqual(0, bus.events_written)
        recent = bus.read_recent()
        self.assertEqual(["warn", "info", "info"], [event["severity"] for event in recent])

    def test_memory_window_is_bounded(self) -> None:
        bus = EventBus(keep=3)
        for n in range(5):
            bus.publish_event("task.reordered", f"reorder {n}")
        self.assertEqual(["reorder 2", "reorder 3", "reorder 4"], [event["message"] for event in bus.read_recent(0)])

    def test_read_recent_tails_the_log_across_instances(self) -> None:
        with TemporaryDirectory() as tmp:
            event_log = Path(tmp) / "events.jsonl"
            first = EventBus(event_log)
            for n in range(5):
                first.publish_event("task.reordered", f"reorder {n}")
            with event_log.open("a", encoding="utf-8") as handle:
                handle.write("not json\n\n")

            second = EventBus(event_log)
            recent = second.read_recent(2)
            self.assertEqual(["reorder 3", "reorder 4"], [event["message"] for event in recent])
            self.assertEqual(5, len(second.read_recent(0)))


class TestRuntimeLog(unittest.TestCase):
    def test_lines_are_stamped_and_levelled(self) -> None:
        with TemporaryDirectory() as tmp:
            log_file = Path(tmp) / "logs" / "planbook.log"
            append_runtime_log(log_file, level="WARN", message="cascade   failed:\n H-T2")
            line = log_file.read_text(encoding="utf-8").strip()
            self.assertIn("[warn] cascade failed: H-T2", line)


if __name__ == "__main__":
    unittest.main()
