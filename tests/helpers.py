"""Builders shared by the test modules."""

from __future__ import annotations

import json
from typing import Any, Optional
from unittest.mock import MagicMock

from sendgrid_connector.models import TeammateScope


def make_teammate(username: str, scopes: Optional[list[str]] = None, **kwargs: Any) -> TeammateScope:
    return TeammateScope(
        username=username,
        email=kwargs.pop("email", f"{username}@example.com"),
        scopes=list(scopes or []),
        **kwargs,
    )


def make_response(status_code: int = 200, body: Any = None, text: Optional[str] = None) -> MagicMock:
    """A stand-in for ``requests.Response``."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.headers = {}
    if body is not None:
        raw = json.dumps(body)
        resp.json.return_value = body
        resp.text = raw
        resp.content = raw.encode()
    else:
        resp.json.side_effect = ValueError("No JSON")
        resp.text = text or ""
        resp.content = (text or "").encode()
    return resp
