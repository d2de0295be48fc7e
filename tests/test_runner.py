"""Tests for the sync orchestrator."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from sendgrid_connector.connector import Connector
from sendgrid_connector.errors import InvalidCursor, SyncCancelled, TransportError, Unauthorized
from sendgrid_connector.memory_client import InMemorySendGridClient
from sendgrid_connector.runner import SyncRunner
from sendgrid_connector.scope_catalog import SENDGRID_SCOPES
from sendgrid_connector.sink import MemorySink

from tests.helpers import make_teammate


class TestRun:
    def test_full_pass(self, connector) -> None:
        sink = MemorySink()
        results = SyncRunner(connector, sink, backoff_base=0).run()

        assert results["teammate_resources"] == 2
        assert results["teammate_entitlements"] == 2
        assert results["teammate_grants"] == 2
        assert results["subuser_resources"] == 2
        assert results["subuser_grants"] == 1
        assert results["scope_resources"] == len(SENDGRID_SCOPES)
        assert results["scope_entitlements"] == len(SENDGRID_SCOPES)
        assert results["scope_grants"] == 3

        members = sink.grants_for("scope:mail.send:assigned")
        assert sorted(str(g.principal) for g in members) == ["teammate:t1", "teammate:t2"]
        assert sink.checkpoints == {}

    def test_ignore_subusers(self, memory_client) -> None:
        connector = Connector(memory_client, ignore_subusers=True)
        sink = MemorySink()
        results = SyncRunner(connector, sink).run()
        assert results["subuser_resources"] == 0
        assert sink.resources_of("subuser") == []
        assert memory_client.calls_to("get_subusers") == []

    def test_scope_cache_built_once_per_pass(self, connector, memory_client) -> None:
        SyncRunner(connector, MemorySink()).run()
        # One walk for the teammate syncer, one for the cache build.
        assert memory_client.calls_to("get_teammates") == [("",), ("",)]
        assert connector.scope_cache.generation == 1


class TestRetries:
    def test_transport_error_is_retried(self, connector, memory_client) -> None:
        memory_client.failures["get_teammates"] = TransportError("flaky", 502)
        results = SyncRunner(connector, MemorySink(), max_retries=2, backoff_base=0).run()
        assert results["teammate_resources"] == 2

    def test_retries_exhausted(self, connector, memory_client) -> None:
        memory_client.get_subusers = MagicMock(side_effect=TransportError("down", 503))
        runner = SyncRunner(connector, MemorySink(), max_retries=2, backoff_base=0)
        with pytest.raises(TransportError):
            runner.run()
        assert memory_client.get_subusers.call_count == 3

    def test_unauthorized_is_not_retried(self, connector, memory_client) -> None:
        memory_client.failures["get_teammates"] = Unauthorized("unauthorized", 401)
        with pytest.raises(Unauthorized):
            SyncRunner(connector, MemorySink(), max_retries=3, backoff_base=0).run()
        assert len(memory_client.calls_to("get_teammates")) == 1

    def test_cancel_interrupts_backoff(self, connector, memory_client) -> None:
        memory_client.failures["get_teammates"] = TransportError("flaky")
        timer = threading.Timer(0.05, connector.cancel_event.set)
        timer.start()
        try:
            with pytest.raises(SyncCancelled):
                SyncRunner(connector, MemorySink(), max_retries=1, backoff_base=30).run()
        finally:
            timer.cancel()


class TestCancellation:
    def test_cancelled_before_start(self, connector, memory_client) -> None:
        connector.cancel_event.set()
        with pytest.raises(SyncCancelled):
            SyncRunner(connector, MemorySink()).run()
        assert memory_client.calls == []


class TestCheckpoints:
    def test_resume_from_last_finished_page(self) -> None:
        client = InMemorySendGridClient(
            teammates=[make_teammate(f"user{i}", ["mail.send"]) for i in range(5)],
            page_size=2,
        )
        client.failures["get_teammates:2"] = Unauthorized("unauthorized", 401)
        connector = Connector(client)
        sink = MemorySink()

        with pytest.raises(Unauthorized):
            SyncRunner(connector, sink).run()
        assert sink.checkpoints == {"teammate": "2"}
        assert len(sink.resources_of("teammate")) == 2

        client.calls.clear()
        results = SyncRunner(connector, sink).run(resume=True)
        assert results["teammate_resources"] == 3
        assert client.calls_to("get_teammates")[0] == ("2",)
        assert len(sink.resources_of("teammate")) == 5
        assert "teammate" not in sink.checkpoints

    def test_without_resume_starts_over(self) -> None:
        sink = MemorySink()
        sink.save_checkpoint("teammate", "2")
        client = InMemorySendGridClient(teammates=[make_teammate("solo")])
        results = SyncRunner(Connector(client), sink).run(resume=False)
        assert results["teammate_resources"] == 1
        assert client.calls_to("get_teammates")[0] == ("",)

    def test_token_that_does_not_advance(self, connector) -> None:
        connector.teammates.list = MagicMock(return_value=([], "5"))
        with pytest.raises(InvalidCursor):
            SyncRunner(connector, MemorySink()).run()
        assert connector.teammates.list.call_count == 2


class TestTracking:
    def test_success(self, connector) -> None:
        tracker = MagicMock()
        tracker.record_run_start.return_value = "run-1"
        results = SyncRunner(connector, MemorySink()).run_with_tracking(tracker)

        tracker.record_run_start.assert_called_once_with(metadata={"resume": False})
        tracker.record_run_end.assert_called_once_with(
            run_id="run-1", status="SUCCESS", records_upserted=sum(results.values()),
        )

    def test_failure(self, connector, memory_client) -> None:
        memory_client.failures["get_teammates"] = Unauthorized("unauthorized", 401)
        tracker = MagicMock()
        tracker.record_run_start.return_value = "run-2"
        with pytest.raises(Unauthorized):
            SyncRunner(connector, MemorySink()).run_with_tracking(tracker)
        kwargs = tracker.record_run_end.call_args.kwargs
        assert kwargs["status"] == "FAILED"
        assert "unauthorized" in kwargs["error_message"]
        assert "traceback" in kwargs["error_detail"]

    def test_cancelled(self, connector) -> None:
        connector.cancel_event.set()
        tracker = MagicMock()
        with pytest.raises(SyncCancelled):
            SyncRunner(connector, MemorySink()).run_with_tracking(tracker, resume=True)
        tracker.record_run_start.assert_called_once_with(metadata={"resume": True})
        assert tracker.record_run_end.call_args.kwargs["status"] == "CANCELLED"
