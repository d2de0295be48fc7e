"""Sync orchestrator: walks every syncer page by page into a sink.

Pages are strictly sequential. After each list page (its resources,
entitlements and every grant page of those resources) the next list token is
checkpointed, so an interrupted sync can resume from the last finished page.
Only ``TransportError`` is retried; everything else aborts the pass.
"""

from __future__ import annotations

import logging
import threading
import time
import traceback
from typing import Any, Callable, Optional, TypeVar

from sendgrid_connector.connector import Connector
from sendgrid_connector.errors import InvalidCursor, SyncCancelled, TransportError
from sendgrid_connector.resources import Resource
from sendgrid_connector.sink import Sink
from sendgrid_connector.syncers.base import ResourceSyncer

logger = logging.getLogger("sendgrid.runner")

T = TypeVar("T")

MAX_BACKOFF_S = 60.0


class SyncRunner:
    def __init__(
        self,
        connector: Connector,
        sink: Sink,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.connector = connector
        self.sink = sink
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.cancel_event = cancel_event or connector.cancel_event

    def run(self, resume: bool = False) -> dict[str, int]:
        """Run one full sync pass. Returns {counter: records written}."""
        results: dict[str, int] = {}
        for syncer in self.connector.resource_syncers():
            started = time.monotonic()
            counts = self._sync_resource_type(syncer, resume)
            rt = syncer.resource_type.id
            for key, value in counts.items():
                results[f"{rt}_{key}"] = value
            logger.info(
                "Synced %s", rt,
                extra={
                    "resource_type": rt,
                    "records": counts["resources"],
                    "duration_s": round(time.monotonic() - started, 3),
                },
            )
        return results

    def run_with_tracking(self, tracker: Any, resume: bool = False) -> dict[str, int]:
        """Wrap run() with sync-run bookkeeping on ``tracker`` (a ``Database``)."""
        run_id = tracker.record_run_start(metadata={"resume": resume})
        try:
            results = self.run(resume=resume)
        except Exception as exc:
            tracker.record_run_end(
                run_id=run_id,
                status="CANCELLED" if isinstance(exc, SyncCancelled) else "FAILED",
                error_message=str(exc)[:1000],
                error_detail={"traceback": traceback.format_exc()},
            )
            logger.error("Sync failed: %s", exc, extra={"run_id": run_id})
            raise
        total = sum(results.values())
        tracker.record_run_end(run_id=run_id, status="SUCCESS", records_upserted=total)
        logger.info("Sync complete", extra={"records": total, "run_id": run_id})
        return results

    # ------------------------------------------------------------------

    def _sync_resource_type(self, syncer: ResourceSyncer, resume: bool) -> dict[str, int]:
        rt = syncer.resource_type.id
        counts = {"resources": 0, "entitlements": 0, "grants": 0}

        token = self.sink.load_checkpoint(rt) if resume else ""
        if token:
            logger.info("Resuming %s from checkpoint", rt, extra={"resource_type": rt})

        while True:
            self._check_cancelled()
            resources, next_token = self._call(syncer.list, None, token)
            counts["resources"] += self.sink.put_resources(resources)
            for resource in resources:
                entitlements = syncer.entitlements(resource)
                counts["entitlements"] += self.sink.put_entitlements(entitlements)
                counts["grants"] += self._sync_grants(syncer, resource)

            self.sink.save_checkpoint(rt, next_token)
            if not next_token:
                break
            if next_token == token:
                raise InvalidCursor(f"{rt} pagination token did not advance: {token!r}")
            token = next_token
        return counts

    def _sync_grants(self, syncer: ResourceSyncer, resource: Resource) -> int:
        written = 0
        token = ""
        while True:
            self._check_cancelled()
            grants, next_token = self._call(syncer.grants, resource, token)
            written += self.sink.put_grants(grants)
            if not next_token:
                return written
            if next_token == token:
                raise InvalidCursor(
                    f"grant pagination token did not advance for {resource.id}: {token!r}"
                )
            token = next_token

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        for attempt in range(self.max_retries + 1):
            try:
                return fn(*args)
            except TransportError as exc:
                if attempt >= self.max_retries:
                    raise
                self._backoff(attempt, exc)
        raise AssertionError("unreachable")

    def _backoff(self, attempt: int, exc: TransportError) -> None:
        """Exponential backoff, interruptible by cancellation."""
        delay = min(self.backoff_base * (2 ** attempt), MAX_BACKOFF_S)
        logger.warning(
            "Transport error, retrying in %.1fs (attempt %d/%d): %s",
            delay, attempt + 1, self.max_retries, exc,
            extra={"status_code": exc.status_code},
        )
        if self.cancel_event.wait(delay):
            raise SyncCancelled("cancelled while backing off")

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise SyncCancelled("sync cancelled")
