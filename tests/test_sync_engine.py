"""Tests for the sync engine."""

import threading
import time
from unittest.mock import Mock

import pytest

from quotesync.exceptions import QuoteSyncError, QuoteSyncUnavailableError
from quotesync.models import Record
from quotesync.remote import SimulatedServer
from quotesync.store import MemoryRecordStore
from quotesync.sync import (
    ConflictPolicy,
    SyncAction,
    SyncEngine,
    run_pass,
)


def _record(record_id: str, text: str, updated_at: int) -> Record:
    return Record(id=record_id, text=text, category="Test", updated_at=updated_at)


class TestRunPass:
    """Tests for the pure run_pass merge function."""

    def test_inputs_are_not_modified(self):
        """Both snapshots stay untouched; changes land in a copy."""
        local = {"a": _record("a", "X", 100)}
        remote = {"a": _record("a", "Y", 200), "c": _record("c", "W", 1)}

        plan = run_pass(local, remote, ConflictPolicy.AUTO_REMOTE_WINS)

        assert local == {"a": _record("a", "X", 100)}
        assert plan.updated_local["a"] == _record("a", "Y", 200)
        assert plan.updated_local["c"] == _record("c", "W", 1)

    def test_pushes_and_actions(self):
        """Local-only and locally newer records are staged as pushes."""
        local = {"a": _record("a", "X", 300), "b": _record("b", "Z", 50)}
        remote = {"a": _record("a", "Y", 200)}

        plan = run_pass(local, remote, ConflictPolicy.AUTO_REMOTE_WINS)

        assert [(d.record_id, d.action) for d in plan.pushes] == [
            ("a", SyncAction.LOCAL_PUSHED_TO_SERVER),
            ("b", SyncAction.PUSHED_TO_SERVER),
        ]
        assert plan.updated_local == local
        assert len(plan.actions) == 2
        assert plan.conflicts == []

    def test_manual_policy_collects_conflicts(self):
        """Divergences become conflicts and leave the local record alone."""
        local = {"a": _record("a", "X", 100)}
        remote = {"a": _record("a", "Y", 200)}

        plan = run_pass(local, remote, ConflictPolicy.MANUAL)

        assert plan.updated_local == local
        assert len(plan.conflicts) == 1
        assert plan.conflicts[0].local == local["a"]
        assert plan.conflicts[0].remote == remote["a"]
        assert plan.actions == []
        assert plan.pushes == []


class TestSyncEngine:
    """Tests for SyncEngine passes against a store and a remote service."""

    @pytest.fixture
    def server(self):
        """Create an empty simulated server that keeps pushed timestamps."""
        return SimulatedServer(initial=[], stamp_writes=False)

    @pytest.fixture
    def store(self):
        return MemoryRecordStore()

    @pytest.fixture
    def engine(self, store, server):
        engine = SyncEngine(store, server)
        yield engine
        engine.observers.close()

    def test_remote_only_records_are_added(self, engine, store, server):
        """Remote-only records exist locally with identical content after a pass."""
        server.put_external(_record("s-1", "Remote", 10))
        server.put_external(_record("s-2", "Other", 20))

        result = engine.sync_once()

        assert result.added == 2
        assert store.load() == {
            "s-1": _record("s-1", "Remote", 10),
            "s-2": _record("s-2", "Other", 20),
        }

    def test_local_only_record_is_pushed_once(self, store, server):
        """A local-only record is upserted exactly once with its current content."""
        store.save({"b": _record("b", "Z", 50)})
        engine = SyncEngine(store, server)

        result = engine.sync_once()

        assert server.upserts == [_record("b", "Z", 50)]
        assert store.load() == {"b": _record("b", "Z", 50)}
        assert [(a.action, a.record_id) for a in result.actions] == [
            (SyncAction.PUSHED_TO_SERVER, "b")
        ]
        assert result.local_pushed == 1

    def test_remote_newer_auto_overwrites_local(self, store, server):
        """Under AUTO_REMOTE_WINS the local record becomes the remote record."""
        store.save({"a": _record("a", "X", 100)})
        server.put_external(_record("a", "Y", 200))
        engine = SyncEngine(store, server)

        result = engine.sync_once(ConflictPolicy.AUTO_REMOTE_WINS)

        assert store.load()["a"] == _record("a", "Y", 200)
        assert result.server_wins == 1
        assert len(engine.queue) == 0

    def test_local_newer_auto_pushes(self, store, server):
        """Under AUTO_REMOTE_WINS a newer local record is pushed."""
        store.save({"a": _record("a", "X", 300)})
        server.put_external(_record("a", "Y", 200))
        engine = SyncEngine(store, server)

        result = engine.sync_once(ConflictPolicy.AUTO_REMOTE_WINS)

        assert server.get("a") == _record("a", "X", 300)
        assert result.actions[0].action == SyncAction.LOCAL_PUSHED_TO_SERVER
        assert result.local_pushed == 1

    def test_manual_conflict_scenario(self, store, server):
        """Manual policy queues the conflict and leaves the local store unchanged."""
        store.save({"a": _record("a", "X", 100)})
        server.put_external(_record("a", "Y", 200))
        engine = SyncEngine(store, server)

        result = engine.sync_once(ConflictPolicy.MANUAL)

        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.local == _record("a", "X", 100)
        assert conflict.remote == _record("a", "Y", 200)
        assert store.load() == {"a": _record("a", "X", 100)}
        assert engine.queue.state().pending == ("a",)

        outcome = engine.resolve_one("a", "remote")

        assert outcome.ok
        assert store.load()["a"] == _record("a", "Y", 200)
        assert len(engine.queue) == 0

    def test_repeated_manual_pass_does_not_duplicate_conflicts(self, store, server):
        """A divergence seen again replaces its pending entry."""
        store.save({"a": _record("a", "X", 100)})
        server.put_external(_record("a", "Y", 200))
        engine = SyncEngine(store, server)

        first = engine.sync_once(ConflictPolicy.MANUAL)
        server.put_external(_record("a", "Y2", 300))
        second = engine.sync_once(ConflictPolicy.MANUAL)

        assert first.new_conflicts == 1
        assert second.new_conflicts == 0
        assert len(engine.queue) == 1
        assert engine.queue.get("a").remote.text == "Y2"

    def test_stale_conflicts_are_dropped(self, store, server):
        """Conflicts whose records converged elsewhere leave the queue."""
        store.save({"a": _record("a", "X", 100)})
        server.put_external(_record("a", "Y", 200))
        engine = SyncEngine(store, server)
        engine.sync_once(ConflictPolicy.MANUAL)

        server.put_external(_record("a", "X", 400))
        result = engine.sync_once(ConflictPolicy.MANUAL)

        assert result.conflicts == []
        assert len(engine.queue) == 0

    @pytest.mark.parametrize("policy", list(ConflictPolicy))
    def test_second_pass_is_idempotent(self, store, server, policy):
        """A second pass with no external changes does nothing."""
        store.save(
            {
                "a": _record("a", "X", 100),
                "b": _record("b", "Z", 50),
                "d": _record("d", "Newer", 900),
            }
        )
        server.put_external(_record("a", "Y", 200))
        server.put_external(_record("c", "W", 10))
        server.put_external(_record("d", "Older", 800))
        engine = SyncEngine(store, server)

        engine.sync_once(policy)
        second = engine.sync_once(policy)

        assert second.total_actions == 0
        assert second.new_conflicts == 0

    def test_idempotent_with_server_stamping(self, store):
        """Server-side restamping of pushed records causes no further actions."""
        server = SimulatedServer(initial=[])
        store.save({"b": _record("b", "Z", 50)})
        engine = SyncEngine(store, server)

        engine.sync_once()
        second = engine.sync_once()

        assert second.total_actions == 0

    def test_fetch_failure_aborts_without_local_changes(self, store, server):
        """An unavailable remote aborts the pass before any write."""
        store.save({"b": _record("b", "Z", 50)})
        server.set_available(False)
        engine = SyncEngine(store, server)
        saves_before = store.save_count

        result = engine.sync_once()

        assert result.aborted
        assert "unavailable" in result.error
        assert result.total_actions == 0
        assert store.save_count == saves_before

    def test_load_failure_aborts(self, store, server):
        """A storage failure while reading aborts the pass."""
        store.fail_next_load()
        engine = SyncEngine(store, server)

        result = engine.sync_once()

        assert result.aborted
        assert "Simulated load failure" in result.error

    def test_save_failure_aborts_before_pushes(self, store, server):
        """A storage failure while writing aborts the pass with no pushes."""
        store.save({"b": _record("b", "Z", 50)})
        server.put_external(_record("c", "W", 10))
        store.fail_next_save()
        engine = SyncEngine(store, server)

        result = engine.sync_once()

        assert result.aborted
        assert server.upserts == []
        assert "c" not in store.load()

    def test_save_failure_reports_no_conflicts(self, store, server):
        """A pass aborted by a storage failure queues and reports no conflicts."""
        store.save({"a": _record("a", "X", 100)})
        server.put_external(_record("a", "Y", 200))
        server.put_external(_record("c", "W", 10))
        store.fail_next_save()
        engine = SyncEngine(store, server)

        result = engine.sync_once(ConflictPolicy.MANUAL)

        assert result.aborted
        assert result.conflicts == []
        assert len(engine.queue) == 0
        assert store.load() == {"a": _record("a", "X", 100)}
        engine.observers.close()

    def test_slow_observer_does_not_block_pass(self, engine):
        """A pass returns while its observer is still busy."""
        release = threading.Event()
        received = []

        def slow_observer(outcome, queue_state):
            release.wait(timeout=5)
            received.append(outcome)

        engine.observers.add(slow_observer)

        start = time.monotonic()
        result = engine.sync_once()
        elapsed = time.monotonic() - start

        assert elapsed < 1.0
        assert received == []
        release.set()
        engine.observers.flush(timeout=5)
        assert received == [result]

    def test_push_failure_is_recorded_and_retried(self, store):
        """A failed push is reported per record and retried on the next pass."""
        remote = Mock()
        remote.fetch_all.return_value = []
        remote.upsert.side_effect = [
            QuoteSyncUnavailableError("timeout"),
            {"success": True},
            {"success": True},
        ]
        store.save({"a": _record("a", "X", 1), "b": _record("b", "Z", 2)})
        engine = SyncEngine(store, remote)

        first = engine.sync_once()

        assert not first.aborted
        assert not first.ok
        assert [(f.record_id, f.error) for f in first.failures] == [("a", "timeout")]
        assert first.local_pushed == 1

        remote.fetch_all.return_value = [_record("b", "Z", 2)]
        second = engine.sync_once()

        assert second.ok
        assert [(a.action, a.record_id) for a in second.actions] == [
            (SyncAction.PUSHED_TO_SERVER, "a")
        ]

    def test_non_transport_remote_error_aborts(self, store):
        """Any remote error while fetching aborts the pass."""
        remote = Mock()
        remote.fetch_all.side_effect = QuoteSyncError("status 404")
        engine = SyncEngine(store, remote)

        result = engine.sync_once()

        assert result.error == "status 404"

    def test_dry_run_writes_nothing(self, store, server):
        """A dry run reports the plan without touching either replica."""
        store.save({"b": _record("b", "Z", 50)})
        server.put_external(_record("c", "W", 10))
        engine = SyncEngine(store, server)
        saves_before = store.save_count

        result = engine.sync_once(dry_run=True)

        assert result.dry_run
        assert {a.action for a in result.actions} == {
            SyncAction.ADDED_LOCAL,
            SyncAction.PUSHED_TO_SERVER,
        }
        assert store.save_count == saves_before
        assert server.upserts == []

    def test_dry_run_does_not_touch_queue(self, store, server):
        """Dry runs never enqueue conflicts."""
        store.save({"a": _record("a", "X", 100)})
        server.put_external(_record("a", "Y", 200))
        engine = SyncEngine(store, server)

        result = engine.sync_once(ConflictPolicy.MANUAL, dry_run=True)

        assert len(result.conflicts) == 1
        assert result.new_conflicts == 1
        assert len(engine.queue) == 0

    def test_observers_receive_pass_results(self, store, server):
        """Every pass is reported to registered observers."""
        engine = SyncEngine(store, server)
        received = []
        engine.observers.add(lambda outcome, state: received.append((outcome, state)))

        result = engine.sync_once()
        engine.observers.flush(timeout=5)

        assert len(received) == 1
        assert received[0][0] is result
        assert received[0][1].count == 0
        engine.observers.close()

    def test_string_policy_is_accepted(self, engine):
        """Policies may be given by name."""
        result = engine.sync_once("manual")
        assert result.policy == ConflictPolicy.MANUAL

    def test_result_to_dict(self, store, server):
        """Results serialize for JSON output."""
        store.save({"b": _record("b", "Z", 50)})
        engine = SyncEngine(store, server)

        data = engine.sync_once().to_dict()

        assert data["local_pushed"] == 1
        assert data["actions"] == [
            {"action": "pushed_to_server", "id": "b", "ok": True, "error": None}
        ]
        assert data["error"] is None
