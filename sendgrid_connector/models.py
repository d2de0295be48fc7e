"""Record types decoded from SendGrid API payloads."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Optional


def _str(data: dict, key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


@dataclass
class Teammate:
    username: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    address: str = ""
    address2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    company: str = ""
    website: str = ""
    phone: str = ""
    is_admin: bool = False
    is_sso: bool = False
    user_type: str = ""
    is_unified: bool = False
    is_partner_sso: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Teammate":
        return cls(**_teammate_kwargs(data))

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.username


def _teammate_kwargs(data: dict[str, Any]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    for f in fields(Teammate):
        if f.type in ("bool", bool):
            kwargs[f.name] = bool(data.get(f.name, False))
        else:
            kwargs[f.name] = _str(data, f.name)
    return kwargs


@dataclass
class TeammateScope(Teammate):
    """A teammate together with its permission scopes (detail endpoint only)."""

    scopes: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TeammateScope":
        scopes = data.get("scopes") or []
        return cls(**_teammate_kwargs(data), scopes=[str(s) for s in scopes])

    def teammate(self) -> Teammate:
        return Teammate(**_teammate_kwargs(asdict(self)))


@dataclass
class Subuser:
    id: int
    username: str
    email: str = ""
    disabled: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Subuser":
        return cls(
            id=int(data["id"]),
            username=_str(data, "username"),
            email=_str(data, "email"),
            disabled=bool(data.get("disabled", False)),
        )


@dataclass
class TeammateSubuserAccess:
    """One subuser a teammate can reach, from ``/teammates/{username}/subuser_access``."""

    id: int
    username: str
    email: str = ""
    disabled: bool = False
    permission_type: str = ""
    scopes: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "TeammateSubuserAccess":
        return cls(
            id=int(data["id"]),
            username=_str(data, "username"),
            email=_str(data, "email"),
            disabled=bool(data.get("disabled", False)),
            permission_type=_str(data, "permission_type"),
            scopes=[str(s) for s in data.get("scopes") or []],
        )


@dataclass
class PendingInvitation:
    id: int = 0
    username: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    scope_group_name: str = ""
    token: str = ""
    scopes: list[str] = field(default_factory=list)
    is_admin: bool = False
    expiration_date: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PendingInvitation":
        expiration = data.get("expiration_date")
        return cls(
            id=int(data.get("id") or 0),
            username=_str(data, "username"),
            email=_str(data, "email"),
            first_name=_str(data, "first_name"),
            last_name=_str(data, "last_name"),
            scope_group_name=_str(data, "scope_group_name"),
            token=_str(data, "token"),
            scopes=[str(s) for s in data.get("scopes") or []],
            is_admin=bool(data.get("is_admin", False)),
            expiration_date=int(expiration) if expiration is not None else None,
        )


@dataclass
class SubuserCreate:
    username: str
    email: str
    password: str
    ips: list[str] = field(default_factory=list)
    region: str = "global"
    include_region: bool = False

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)
