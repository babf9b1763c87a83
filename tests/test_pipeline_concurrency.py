"""Tests for compare-and-set retries in the actor pipeline."""

import threading

import pytest

from trustsafe.config import EngineSettings
from trustsafe.enforcement import ActorPipeline, ViolationRecorder
from trustsafe.errors import ConcurrentUpdateError
from trustsafe.store import TrustStore, ViolationCategory


class RacingStore(TrustStore):
    """Store where another writer bumps the actor right after each read."""

    def __init__(self, races: int):
        super().__init__()
        self.races = races

    def ensure_actor(self, actor_id, role=None):
        actor = super().ensure_actor(actor_id, role)
        if self.races > 0:
            self.races -= 1
            self._execute("UPDATE actors SET version = version + 1 WHERE actor_id = ?", (actor_id,))
        return actor


class TestCompareAndSet:

    def test_lost_race_is_retried(self):
        store = RacingStore(races=1)
        pipeline = ActorPipeline(store, settings=EngineSettings(cas_max_retries=3))
        recorder = ViolationRecorder(pipeline)

        outcome = recorder.record("client_1", ViolationCategory.SPAM, "Spam")

        assert outcome.attempts == 2
        assert outcome.violation_count == 1
        assert len(store.list_violations("client_1")) == 1

    def test_retries_exhausted(self):
        store = RacingStore(races=5)
        pipeline = ActorPipeline(store, settings=EngineSettings(cas_max_retries=3))
        recorder = ViolationRecorder(pipeline)

        with pytest.raises(ConcurrentUpdateError):
            recorder.record_violation("client_1", ViolationCategory.SPAM, "Spam")

        # Every attempt rolled back
        assert store.list_violations("client_1") == []
        assert store.get_actor("client_1").violation_count == 0

    def test_version_increments_per_commit(self):
        store = TrustStore()
        pipeline = ActorPipeline(store, settings=EngineSettings())

        first = pipeline.evaluate("client_1").actor.version
        second = pipeline.evaluate("client_1").actor.version

        assert second == first + 1
        assert store.get_actor("client_1").version == second


class TestConcurrentWriters:

    def test_no_lost_updates(self):
        store = TrustStore()
        pipeline = ActorPipeline(store, settings=EngineSettings(cas_max_retries=20))
        recorder = ViolationRecorder(pipeline)
        errors = []

        def worker(n):
            try:
                recorder.record_violation("supplier_1", ViolationCategory.NO_SHOW, f"No-show {n}")
            except Exception as e:  # surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.get_actor("supplier_1").violation_count == 8
        assert len(store.list_violations("supplier_1")) == 8
