"""In-memory ``SendGridClient`` backed by fixture data.

Used for dry runs (``sync --fixture``) and tests. It honours the same cursor
semantics as the HTTP client and records every call so callers can assert on
the number of upstream round trips.
"""

from __future__ import annotations

import json
import threading
from dataclasses import replace
from typing import Any, Optional

from sendgrid_connector import cursor
from sendgrid_connector.client import PAGE_SIZE, SendGridClient
from sendgrid_connector.errors import FieldError, SyncCancelled, UpstreamValidation
from sendgrid_connector.models import (
    PendingInvitation,
    Subuser,
    SubuserCreate,
    Teammate,
    TeammateScope,
    TeammateSubuserAccess,
)

WRITE_OPERATIONS = frozenset({
    "invite_teammate",
    "delete_teammate",
    "set_teammate_scopes",
    "create_subuser",
    "delete_subuser",
    "set_subuser_disabled",
})


class InMemorySendGridClient(SendGridClient):
    def __init__(
        self,
        teammates: Optional[list[TeammateScope]] = None,
        subusers: Optional[list[Subuser]] = None,
        subuser_access: Optional[dict[str, list[TeammateSubuserAccess]]] = None,
        pending: Optional[list[PendingInvitation]] = None,
        page_size: int = PAGE_SIZE,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.teammates: list[TeammateScope] = list(teammates or [])
        self.subusers: list[Subuser] = list(subusers or [])
        self.subuser_access = {k: list(v) for k, v in (subuser_access or {}).items()}
        self.pending: list[PendingInvitation] = list(pending or [])
        self.page_size = page_size
        self.calls: list[tuple[str, tuple]] = []
        # operation name -> exception raised on the next matching call
        self.failures: dict[str, Exception] = {}
        self._cancel = cancel_event
        self._lock = threading.Lock()

    @classmethod
    def from_fixture_file(cls, path: str, **kwargs: Any) -> "InMemorySendGridClient":
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        return cls(
            teammates=[TeammateScope.from_api(t) for t in data.get("teammates", [])],
            subusers=[Subuser.from_api(s) for s in data.get("subusers", [])],
            subuser_access={
                username: [TeammateSubuserAccess.from_api(a) for a in rows]
                for username, rows in data.get("subuser_access", {}).items()
            },
            pending=[PendingInvitation.from_api(p) for p in data.get("pending", [])],
            **kwargs,
        )

    @property
    def writes(self) -> list[tuple[str, tuple]]:
        return [c for c in self.calls if c[0] in WRITE_OPERATIONS]

    def calls_to(self, operation: str) -> list[tuple]:
        return [args for name, args in self.calls if name == operation]

    def _record(self, operation: str, *args: Any) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise SyncCancelled(f"cancelled before {operation}")
        with self._lock:
            self.calls.append((operation, args))
            for key in (f"{operation}:{args[0]}" if args else None, operation):
                if key and key in self.failures:
                    raise self.failures.pop(key)

    def _find(self, username: str) -> TeammateScope:
        for t in self.teammates:
            if t.username == username:
                return t
        raise UpstreamValidation([FieldError("username", "not found")], 404)

    def _offset_slice(self, rows: list, token: str) -> tuple[list, int]:
        offset = cursor.decode_offset(token)
        return rows[offset:offset + self.page_size], offset

    # ------------------------------------------------------------------

    def get_teammates(self, token: str = "") -> tuple[list[Teammate], str]:
        offset = cursor.decode_offset(token)
        self._record("get_teammates", token)
        page, _ = self._offset_slice(self.teammates, token)
        teammates = [t.teammate() for t in page]
        return teammates, cursor.next_offset_token(offset, len(teammates), self.page_size)

    def get_specific_teammate(self, username: str) -> TeammateScope:
        self._record("get_specific_teammate", username)
        found = self._find(username)
        return replace(found, scopes=list(found.scopes))

    def get_pending_teammates(self, token: str = "") -> tuple[list[PendingInvitation], str]:
        offset = cursor.decode_offset(token)
        self._record("get_pending_teammates", token)
        page, _ = self._offset_slice(self.pending, token)
        return list(page), cursor.next_page_token(offset, self.page_size, len(page))

    def get_teammate_subuser_access(
        self, username: str, token: str = ""
    ) -> tuple[list[TeammateSubuserAccess], str]:
        after = cursor.decode_after_id(token)
        self._record("get_teammate_subuser_access", username, token)
        rows = sorted(self.subuser_access.get(username, []), key=lambda a: a.id)
        if after is not None:
            rows = [a for a in rows if a.id > after]
        page = rows[:self.page_size]
        next_token = cursor.END
        if len(rows) > len(page):
            next_token = str(page[-1].id)
        return page, next_token

    def invite_teammate(self, email: str, scopes: list[str], is_admin: bool) -> None:
        self._record("invite_teammate", email, list(scopes), is_admin)
        self.pending.append(PendingInvitation(
            id=len(self.pending) + 1, email=email, scopes=list(scopes), is_admin=is_admin,
        ))

    def delete_teammate(self, username: str) -> None:
        self._record("delete_teammate", username)
        self.teammates.remove(self._find(username))

    def set_teammate_scopes(self, username: str, scopes: list[str], is_admin: bool) -> None:
        self._record("set_teammate_scopes", username, list(scopes), is_admin)
        teammate = self._find(username)
        teammate.scopes = list(scopes)
        teammate.is_admin = is_admin

    def get_subusers(self, token: str = "") -> tuple[list[Subuser], str]:
        offset = cursor.decode_offset(token)
        self._record("get_subusers", token)
        page, _ = self._offset_slice(self.subusers, token)
        return list(page), cursor.next_offset_token(offset, len(page), self.page_size)

    def create_subuser(self, subuser: SubuserCreate) -> None:
        self._record("create_subuser", subuser.username)
        next_id = max((s.id for s in self.subusers), default=0) + 1
        self.subusers.append(Subuser(id=next_id, username=subuser.username, email=subuser.email))

    def delete_subuser(self, username: str) -> None:
        self._record("delete_subuser", username)
        self.subusers = [s for s in self.subusers if s.username != username]

    def set_subuser_disabled(self, username: str, disabled: bool) -> None:
        self._record("set_subuser_disabled", username, disabled)
        for s in self.subusers:
            if s.username == username:
                s.disabled = disabled
