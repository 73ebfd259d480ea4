"""
Tests for ledger.py - single-slot undo and the bounded command history.
"""
from conftest import FixedClock, make_task
from ledger import UndoLedger
from models import CommandHistoryEntry


def entry(command, ts=0) -> CommandHistoryEntry:
    return CommandHistoryEntry(command=command, added=1, timestamp=ts)


class TestUndoSlot:
    def test_undo_without_snapshot_is_noop(self):
        ledger = UndoLedger()
        assert ledger.undo() is None
        assert ledger.undo() is None
        assert ledger.undo_offered() is False

    def test_undo_returns_snapshot_and_clears_slot(self):
        ledger = UndoLedger()
        tasks = [make_task("t1", "Report")]
        ledger.snapshot_before(tasks, "add milk")

        assert ledger.snapshot.description == "Undo: add milk"
        assert ledger.undo() == tasks
        assert ledger.undo() is None

    def test_snapshot_is_a_copy(self):
        ledger = UndoLedger()
        tasks = [make_task("t1", "Report")]
        ledger.snapshot_before(tasks, "rename")
        tasks[0].title = "Changed afterwards"

        assert ledger.undo()[0].title == "Report"

    def test_newer_snapshot_replaces_older(self):
        ledger = UndoLedger()
        ledger.snapshot_before([make_task("t1", "First")], "one")
        ledger.snapshot_before([make_task("t2", "Second")], "two")

        restored = ledger.undo()
        assert [t.id for t in restored] == ["t2"]
        assert ledger.undo() is None

    def test_offer_expires_but_undo_still_valid(self):
        clock = FixedClock()
        ledger = UndoLedger(undo_window=8, clock=clock)
        ledger.snapshot_before([make_task("t1", "Report")], "add")

        assert ledger.undo_offered() is True
        clock.advance(7.9)
        assert ledger.undo_offered() is True
        clock.advance(0.2)
        assert ledger.undo_offered() is False

        # Expiry only hides the offer
        assert [t.id for t in ledger.undo()] == ["t1"]


class TestHistory:
    def test_newest_first(self):
        ledger = UndoLedger()
        for command in ("a", "b", "c"):
            ledger.push_history(entry(command))
        assert [e.command for e in ledger.recent_history()] == ["c", "b", "a"]
        assert ledger.recent_commands(2) == ["c", "b"]

    def test_bounded_ring_buffer_evicts_oldest(self):
        ledger = UndoLedger(history_size=5)
        for i in range(7):
            ledger.push_history(entry(f"cmd {i}"))
        commands = [e.command for e in ledger.recent_history()]
        assert commands == ["cmd 6", "cmd 5", "cmd 4", "cmd 3", "cmd 2"]

    def test_reset_clears_history_only(self):
        ledger = UndoLedger()
        ledger.push_history(entry("a"))
        ledger.snapshot_before([], "a")

        ledger.reset_history()

        assert ledger.recent_history() == []
        assert ledger.undo() == []
