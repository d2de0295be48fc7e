"""Continuation-token codec for the two SendGrid pagination schemes.

Most list endpoints page with ``limit``/``offset`` and the token is the next
row offset. The per-teammate subuser-access endpoint pages with an opaque
``after_subuser_id`` handed back in ``_metadata.next_params``. Both are carried
as plain decimal strings; ``""`` means "start" when passed in and "no more
pages" when handed back. Each list operation declares which strategy it uses.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional

from sendgrid_connector.errors import InvalidCursor

END = ""


class Strategy(enum.Enum):
    OFFSET = "offset"
    AFTER_ID = "after_id"
    NONE = "none"


@dataclass(frozen=True)
class Cursor:
    strategy: Strategy
    position: Optional[int] = None

    @property
    def exhausted(self) -> bool:
        return self.strategy is Strategy.NONE

    def token(self) -> str:
        if self.exhausted or self.position is None:
            return END
        return str(self.position)


def _parse_non_negative(token: str) -> int:
    token = token.strip()
    if not token.isdigit():
        raise InvalidCursor(f"invalid pagination token: {token!r}")
    return int(token)


# ----------------------------------------------------------------------
# Offset style
# ----------------------------------------------------------------------

def decode_offset(token: Optional[str]) -> int:
    """Turn an offset token into a row offset. Empty means the first page."""
    if not token:
        return 0
    return _parse_non_negative(token)


def encode_offset(offset: int) -> str:
    if offset < 0:
        raise ValueError(f"offset must be non-negative, got {offset}")
    return str(offset)


def next_offset_token(offset: int, fetched: int, page_size: int) -> str:
    """Advance by the rows fetched; a short or empty page ends the walk."""
    if fetched <= 0 or fetched < page_size:
        return END
    return encode_offset(offset + fetched)


def next_page_token(offset: int, page_size: int, fetched: int) -> str:
    """Advance by one full page, for endpoints that do not report counts."""
    if fetched < page_size:
        return END
    return encode_offset(offset + page_size)


def offset_cursor(token: Optional[str]) -> Cursor:
    return Cursor(Strategy.OFFSET, decode_offset(token))


# ----------------------------------------------------------------------
# After-ID style
# ----------------------------------------------------------------------

def decode_after_id(token: Optional[str]) -> Optional[int]:
    """Turn an after-id token into a subuser id. Empty means the first page."""
    if not token:
        return None
    return _parse_non_negative(token)


def after_id_token(metadata: Any) -> str:
    """Read ``next_params.after_subuser_id`` from a response ``_metadata`` block."""
    if not isinstance(metadata, dict):
        return END
    next_params = metadata.get("next_params") or {}
    if not isinstance(next_params, dict):
        return END
    raw = next_params.get("after_subuser_id")
    if raw in (None, "", 0, "0"):
        return END
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidCursor(f"invalid after_subuser_id in response: {raw!r}")
    if value <= 0:
        return END
    return str(value)


def after_id_cursor(token: Optional[str]) -> Cursor:
    after = decode_after_id(token)
    return Cursor(Strategy.AFTER_ID, after)
