"""Tests for payload decoding and the error taxonomy."""

from __future__ import annotations

from sendgrid_connector.errors import (
    FieldError,
    SendGridError,
    TransportError,
    UpstreamError,
    UpstreamValidation,
)
from sendgrid_connector.models import (
    PendingInvitation,
    SubuserCreate,
    Teammate,
    TeammateScope,
    TeammateSubuserAccess,
)


class TestModels:
    def test_teammate_nulls_become_empty_strings(self) -> None:
        teammate = Teammate.from_api({"username": "t1", "phone": None, "is_admin": None})
        assert teammate.phone == ""
        assert teammate.is_admin is False

    def test_teammate_scope_detail(self) -> None:
        detail = TeammateScope.from_api({
            "username": "t1", "first_name": "Ann", "scopes": ["mail.send"], "is_sso": True,
        })
        assert detail.scopes == ["mail.send"]
        assert detail.display_name == "Ann"
        plain = detail.teammate()
        assert type(plain) is Teammate
        assert plain.is_sso is True

    def test_missing_scopes_is_empty(self) -> None:
        assert TeammateScope.from_api({"username": "t1", "scopes": None}).scopes == []

    def test_subuser_access_rows(self) -> None:
        access = TeammateSubuserAccess.from_api(
            {"id": "7", "username": "s", "scopes": ["mail.send"], "disabled": False},
        )
        assert access.id == 7
        assert access.scopes == ["mail.send"]

    def test_pending_without_expiration(self) -> None:
        pending = PendingInvitation.from_api({"email": "a@example.com"})
        assert pending.expiration_date is None
        assert pending.id == 0

    def test_subuser_create_payload(self) -> None:
        payload = SubuserCreate(username="u", email="u@example.com", password="pw").to_payload()
        assert payload == {
            "username": "u", "email": "u@example.com", "password": "pw",
            "ips": [], "region": "global", "include_region": False,
        }


class TestErrors:
    def test_hierarchy(self) -> None:
        assert issubclass(UpstreamValidation, UpstreamError)
        assert issubclass(TransportError, SendGridError)

    def test_field_error_rendering(self) -> None:
        assert str(FieldError("email", "is required")) == "field: email, message: is required"
        assert str(FieldError("", "raw body")) == "raw body"

    def test_validation_message(self) -> None:
        err = UpstreamValidation(
            [FieldError("a", "bad"), FieldError("b", "worse")], status_code=400,
        )
        assert str(err) == "[400] field: a, message: bad; field: b, message: worse"
        assert str(UpstreamValidation([])) == "validation failed"
