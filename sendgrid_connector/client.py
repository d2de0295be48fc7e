"""SendGrid administrative API access layer.

Each operation issues exactly one authenticated request and either returns
decoded records (plus a continuation token for list operations) or raises one
of the typed failures in ``sendgrid_connector.errors``. Retrying is left to the
caller.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote

import requests

from sendgrid_connector import cursor
from sendgrid_connector.errors import (
    FieldError,
    Forbidden,
    InvalidCursor,
    SyncCancelled,
    TransportError,
    Unauthorized,
    UpstreamValidation,
)
from sendgrid_connector.models import (
    PendingInvitation,
    Subuser,
    SubuserCreate,
    Teammate,
    TeammateScope,
    TeammateSubuserAccess,
)

logger = logging.getLogger("sendgrid.client")

SENDGRID_BASE_URL = "https://api.sendgrid.com/"
SENDGRID_EU_BASE_URL = "https://api.eu.sendgrid.com/"

# Upstream maximum is higher; 500 keeps round-trips low for large tenants.
PAGE_SIZE = 500

TEAMMATES_ENDPOINT = "v3/teammates"
SPECIFIC_TEAMMATE_ENDPOINT = "v3/teammates/{username}"
PENDING_TEAMMATES_ENDPOINT = "v3/teammates/pending"
TEAMMATE_SUBUSER_ACCESS_ENDPOINT = "v3/teammates/{username}/subuser_access"
SUBUSERS_ENDPOINT = "v3/subusers"
SPECIFIC_SUBUSER_ENDPOINT = "v3/subusers/{username}"
SUBUSER_WEBSITE_ACCESS_ENDPOINT = "v3/subusers/{username}/website_access"

# Response body shape per endpoint:
#   "envelope" -> {"result": [...]}
#   "array"    -> [...]
#   "object"   -> {...}
ENDPOINT_SHAPES: dict[str, str] = {
    TEAMMATES_ENDPOINT: "envelope",
    PENDING_TEAMMATES_ENDPOINT: "array",
    SUBUSERS_ENDPOINT: "array",
    TEAMMATE_SUBUSER_ACCESS_ENDPOINT: "object",
    SPECIFIC_TEAMMATE_ENDPOINT: "object",
}


class SendGridClient(ABC):
    """Capabilities the sync drivers need from SendGrid."""

    @abstractmethod
    def get_teammates(self, token: str = "") -> tuple[list[Teammate], str]:
        """One page of teammates (offset cursor)."""

    @abstractmethod
    def get_specific_teammate(self, username: str) -> TeammateScope:
        """A single teammate with its scope list."""

    @abstractmethod
    def get_pending_teammates(self, token: str = "") -> tuple[list[PendingInvitation], str]:
        """One page of pending invitations (offset cursor)."""

    @abstractmethod
    def get_teammate_subuser_access(
        self, username: str, token: str = ""
    ) -> tuple[list[TeammateSubuserAccess], str]:
        """One page of subusers a teammate can access (after-id cursor)."""

    @abstractmethod
    def invite_teammate(self, email: str, scopes: list[str], is_admin: bool) -> None:
        ...

    @abstractmethod
    def delete_teammate(self, username: str) -> None:
        ...

    @abstractmethod
    def set_teammate_scopes(self, username: str, scopes: list[str], is_admin: bool) -> None:
        """Replace a teammate's full scope list."""

    @abstractmethod
    def get_subusers(self, token: str = "") -> tuple[list[Subuser], str]:
        """One page of subusers (offset cursor)."""

    @abstractmethod
    def create_subuser(self, subuser: SubuserCreate) -> None:
        ...

    @abstractmethod
    def delete_subuser(self, username: str) -> None:
        ...

    @abstractmethod
    def set_subuser_disabled(self, username: str, disabled: bool) -> None:
        """Enable or disable website access for a subuser."""

    def close(self) -> None:
        """Release transport resources. Nothing to release by default."""


class HttpSendGridClient(SendGridClient):
    """Production implementation over ``requests``."""

    def __init__(
        self,
        api_key: str,
        base_url: str = SENDGRID_BASE_URL,
        timeout: float = 30.0,
        cancel_event: Optional[threading.Event] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._timeout = timeout
        self._cancel = cancel_event
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        })
        self.page_size = PAGE_SIZE

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _url(self, endpoint: str, **path: str) -> str:
        quoted = {k: quote(v, safe="") for k, v in path.items()}
        return f"{self._base}/{endpoint.format(**quoted)}"

    def _request(
        self,
        method: str,
        endpoint: str,
        path: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        if self._cancel is not None and self._cancel.is_set():
            raise SyncCancelled(f"cancelled before {method} {endpoint}")

        url = self._url(endpoint, **(path or {}))
        try:
            resp = self._session.request(
                method, url, params=params, json=body, timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}", cause=exc) from exc

        status = resp.status_code
        logger.debug("%s %s -> %d", method, url, status, extra={"status_code": status})
        if status == 401:
            raise Unauthorized("unauthorized", status)
        if status == 403:
            raise Forbidden("forbidden", status)
        if status in (400, 404):
            raise UpstreamValidation(_field_errors(resp), status)
        if status < 200 or status >= 300:
            raise TransportError(
                f"{method} {url} returned unexpected status {status}", status_code=status,
            )

        if status == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f"{method} {url} returned an undecodable body", status_code=status, cause=exc,
            ) from exc

    def _list(self, endpoint: str, payload: Any) -> Any:
        shape = ENDPOINT_SHAPES[endpoint]
        if shape == "envelope":
            if not isinstance(payload, dict) or not isinstance(payload.get("result", []), list):
                raise TransportError(f"{endpoint}: expected a result envelope")
            return payload.get("result") or []
        if shape == "array":
            if payload is None:
                return []
            if not isinstance(payload, list):
                raise TransportError(f"{endpoint}: expected a JSON array")
            return payload
        if not isinstance(payload, dict):
            raise TransportError(f"{endpoint}: expected a JSON object")
        return payload

    def _offset_page(self, endpoint: str, token: str) -> tuple[list[dict], int]:
        offset = cursor.offset_cursor(token).position or 0
        payload = self._request(
            "GET", endpoint, params={"limit": self.page_size, "offset": offset},
        )
        return self._list(endpoint, payload), offset

    # ------------------------------------------------------------------
    # Teammates
    # ------------------------------------------------------------------

    def get_teammates(self, token: str = "") -> tuple[list[Teammate], str]:
        """GET /v3/teammates"""
        rows, offset = self._offset_page(TEAMMATES_ENDPOINT, token)
        teammates = _decode(TEAMMATES_ENDPOINT, rows, Teammate)
        return teammates, cursor.next_offset_token(offset, len(teammates), self.page_size)

    def get_specific_teammate(self, username: str) -> TeammateScope:
        """GET /v3/teammates/{username}"""
        payload = self._request(
            "GET", SPECIFIC_TEAMMATE_ENDPOINT, path={"username": username},
        )
        body = self._list(SPECIFIC_TEAMMATE_ENDPOINT, payload)
        return _decode(SPECIFIC_TEAMMATE_ENDPOINT, [body], TeammateScope)[0]

    def get_pending_teammates(self, token: str = "") -> tuple[list[PendingInvitation], str]:
        """GET /v3/teammates/pending"""
        rows, offset = self._offset_page(PENDING_TEAMMATES_ENDPOINT, token)
        pending = _decode(PENDING_TEAMMATES_ENDPOINT, rows, PendingInvitation)
        return pending, cursor.next_page_token(offset, self.page_size, len(pending))

    def get_teammate_subuser_access(
        self, username: str, token: str = ""
    ) -> tuple[list[TeammateSubuserAccess], str]:
        """GET /v3/teammates/{username}/subuser_access"""
        params: dict[str, Any] = {"limit": self.page_size}
        after = cursor.after_id_cursor(token).position
        if after is not None:
            params["after_subuser_id"] = after

        payload = self._request(
            "GET", TEAMMATE_SUBUSER_ACCESS_ENDPOINT,
            path={"username": username}, params=params,
        )
        body = self._list(TEAMMATE_SUBUSER_ACCESS_ENDPOINT, payload)
        access = _decode(
            TEAMMATE_SUBUSER_ACCESS_ENDPOINT, body.get("subuser_access") or [],
            TeammateSubuserAccess,
        )
        try:
            token = cursor.after_id_token(body.get("_metadata"))
        except InvalidCursor as exc:
            raise TransportError(
                f"{TEAMMATE_SUBUSER_ACCESS_ENDPOINT}: {exc}", cause=exc,
            ) from exc
        return access, token

    def invite_teammate(self, email: str, scopes: list[str], is_admin: bool) -> None:
        """POST /v3/teammates"""
        self._request(
            "POST", TEAMMATES_ENDPOINT,
            body={"email": email, "scopes": list(scopes), "is_admin": is_admin},
        )

    def delete_teammate(self, username: str) -> None:
        """DELETE /v3/teammates/{username}"""
        self._request("DELETE", SPECIFIC_TEAMMATE_ENDPOINT, path={"username": username})

    def set_teammate_scopes(self, username: str, scopes: list[str], is_admin: bool) -> None:
        """PATCH /v3/teammates/{username}"""
        self._request(
            "PATCH", SPECIFIC_TEAMMATE_ENDPOINT, path={"username": username},
            body={"scopes": list(scopes), "is_admin": is_admin},
        )

    # ------------------------------------------------------------------
    # Subusers
    # ------------------------------------------------------------------

    def get_subusers(self, token: str = "") -> tuple[list[Subuser], str]:
        """GET /v3/subusers"""
        rows, offset = self._offset_page(SUBUSERS_ENDPOINT, token)
        subusers = _decode(SUBUSERS_ENDPOINT, rows, Subuser)
        return subusers, cursor.next_offset_token(offset, len(subusers), self.page_size)

    def create_subuser(self, subuser: SubuserCreate) -> None:
        """POST /v3/subusers"""
        self._request("POST", SUBUSERS_ENDPOINT, body=subuser.to_payload())

    def delete_subuser(self, username: str) -> None:
        """DELETE /v3/subusers/{username}"""
        self._request("DELETE", SPECIFIC_SUBUSER_ENDPOINT, path={"username": username})

    def set_subuser_disabled(self, username: str, disabled: bool) -> None:
        """PATCH /v3/subusers/{username}/website_access"""
        self._request(
            "PATCH", SUBUSER_WEBSITE_ACCESS_ENDPOINT, path={"username": username},
            body={"disabled": disabled},
        )


def _decode(endpoint: str, rows: Any, model: Any) -> list:
    """Decode response rows with ``model.from_api``; malformed rows are transport failures."""
    if not isinstance(rows, list):
        raise TransportError(f"{endpoint}: expected a list of records")
    try:
        return [model.from_api(r) for r in rows]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise TransportError(f"{endpoint}: malformed record: {exc!r}", cause=exc) from exc


def _field_errors(resp: requests.Response) -> list[FieldError]:
    """Decode ``{"errors": [{"field", "message"}]}``; fall back to the raw body."""
    try:
        body = resp.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and isinstance(body.get("errors"), list):
        errors = []
        for item in body["errors"]:
            if not isinstance(item, dict):
                continue
            errors.append(FieldError(
                field=str(item.get("field") or ""),
                message=str(item.get("message") or ""),
            ))
        if errors:
            return errors

    return [FieldError(field="", message=resp.text or f"HTTP {resp.status_code}")]
