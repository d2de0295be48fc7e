"""Scope -> teammates index built from the teammate list plus detail fetches.

The teammate list endpoint does not carry scopes, so a build walks every page
of teammates and fetches each one individually. A build replaces the whole
index; it is never patched in place. Any failure leaves the cache empty.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from sendgrid_connector import cursor
from sendgrid_connector.client import SendGridClient
from sendgrid_connector.errors import SyncCancelled
from sendgrid_connector.models import Teammate, TeammateScope
from sendgrid_connector.scope_catalog import is_known_scope

logger = logging.getLogger("sendgrid.scope_cache")


class ScopeCache:
    """States: empty -> building -> ready. Reads are only served when ready."""

    def __init__(
        self,
        client: SendGridClient,
        detail_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self._client = client
        self._workers = max(1, detail_workers)
        self._cancel = cancel_event
        self._index: dict[str, list[TeammateScope]] = {}
        self._ready = False
        self._building = False
        self.generation = 0
        self.unknown_scopes: set[str] = set()

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def state(self) -> str:
        if self._building:
            return "building"
        return "ready" if self._ready else "empty"

    def build(self) -> None:
        """Rebuild the index from scratch. Raises the first upstream failure."""
        logger.info("Building scope cache")
        started = time.monotonic()

        self._index = {}
        self._ready = False
        self._building = True
        self.unknown_scopes = set()

        index: dict[str, list[TeammateScope]] = {}
        unknown: set[str] = set()
        teammate_count = 0
        try:
            token = cursor.END
            while True:
                self._check_cancelled()
                teammates, token = self._client.get_teammates(token)
                if not teammates:
                    break
                for detail in self._fetch_details(teammates):
                    teammate_count += 1
                    self._add(index, unknown, detail)
                if not token:
                    break
        finally:
            self._building = False

        self._index = index
        self.unknown_scopes = unknown
        self._ready = True
        self.generation += 1
        logger.info(
            "Scope cache built: %d teammates, %d scopes",
            teammate_count, len(index),
            extra={
                "records": teammate_count,
                "duration_s": round(time.monotonic() - started, 3),
            },
        )

    def get_users_for_scope(self, scope: str) -> list[TeammateScope]:
        """Teammates holding ``scope`` in upstream-list order; empty if unbuilt."""
        if not self._ready:
            return []
        return list(self._index.get(scope, ()))

    def scopes(self) -> list[str]:
        if not self._ready:
            return []
        return sorted(self._index)

    # ------------------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise SyncCancelled("scope cache build cancelled")

    def _fetch_one(self, username: str) -> TeammateScope:
        self._check_cancelled()
        return self._client.get_specific_teammate(username)

    def _fetch_details(self, teammates: list[Teammate]) -> list[TeammateScope]:
        if self._workers == 1:
            return [self._fetch_one(t.username) for t in teammates]

        # Workers share the client's requests.Session. Detail fetches are plain
        # GETs that only read the session (headers, connection pool); nothing
        # here mutates session state mid-build.
        executor = ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="scope-cache",
        )
        futures: list[Future] = []
        try:
            futures = [executor.submit(self._fetch_one, t.username) for t in teammates]
            # Consume in submission order so buckets keep upstream-list order.
            return [f.result() for f in futures]
        except BaseException:
            for f in futures:
                f.cancel()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    @staticmethod
    def _add(
        index: dict[str, list[TeammateScope]],
        unknown: set[str],
        detail: TeammateScope,
    ) -> None:
        seen: set[str] = set()
        for scope in detail.scopes:
            if scope == "":
                logger.warning(
                    "Skipping empty scope", extra={"username": detail.username},
                )
                continue
            if scope in seen:
                continue
            seen.add(scope)
            if not is_known_scope(scope):
                if scope not in unknown:
                    logger.warning(
                        "Teammate holds scope outside the catalog: %s", scope,
                        extra={"username": detail.username, "scope": scope},
                    )
                unknown.add(scope)
                continue
            index.setdefault(scope, []).append(detail)
