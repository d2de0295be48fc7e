"""Shared test fixtures for the SendGrid connector tests."""

from __future__ import annotations

import logging

import pytest

from sendgrid_connector.connector import Connector
from sendgrid_connector.memory_client import InMemorySendGridClient
from sendgrid_connector.models import Subuser, TeammateScope, TeammateSubuserAccess

from tests.helpers import make_teammate


@pytest.fixture
def t1() -> TeammateScope:
    return make_teammate("t1", ["mail.send"], first_name="Tess", last_name="One")


@pytest.fixture
def t2() -> TeammateScope:
    return make_teammate("t2", ["mail.send", "billing.read"], is_admin=True)


@pytest.fixture
def memory_client(t1, t2) -> InMemorySendGridClient:
    return InMemorySendGridClient(
        teammates=[t1, t2],
        subusers=[
            Subuser(id=11, username="marketing", email="mk@example.com"),
            Subuser(id=12, username="legacy", email="old@example.com", disabled=True),
        ],
        subuser_access={
            "t1": [
                TeammateSubuserAccess(id=11, username="marketing", permission_type="admin"),
                TeammateSubuserAccess(id=12, username="legacy", permission_type="restricted"),
            ],
        },
    )


@pytest.fixture
def connector(memory_client) -> Connector:
    return Connector(memory_client)


@pytest.fixture(autouse=True)
def _reset_sendgrid_logger():
    """configure_logging() detaches the hierarchy from root; undo that for caplog."""
    yield
    root = logging.getLogger("sendgrid")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)
