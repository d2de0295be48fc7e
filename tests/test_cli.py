"""Tests for the command-line interface, driven by a JSON tenant fixture."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from sendgrid_connector.cli import build_parser, main
from sendgrid_connector.connector import Connector

FIXTURE = str(Path(__file__).parent / "fixtures" / "tenant.json")


class TestParser:
    def test_sync_flags(self) -> None:
        args = build_parser().parse_args(["sync", "--dry-run", "--resume"])
        assert args.dry_run and args.resume
        assert args.fixture is None

    def test_subcommand_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_subuser_access_needs_a_direction(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["subuser-access", "--username", "marketing"])


class TestSyncCommand:
    def test_fixture_sync(self, capsys) -> None:
        main(["sync", "--fixture", FIXTURE])
        out = json.loads(capsys.readouterr().out)
        results = out["results"]
        assert results["teammate_resources"] == 3
        assert results["teammate_grants"] == 2
        assert results["subuser_resources"] == 3
        assert results["subuser_grants"] == 2
        assert results["scope_grants"] == 6
        assert out["sink"]["grants"] == 10

    def test_fixture_sync_without_subusers(self, capsys) -> None:
        main(["sync", "--fixture", FIXTURE, "--ignore-subusers"])
        results = json.loads(capsys.readouterr().out)["results"]
        assert results["subuser_resources"] == 0
        assert results["subuser_grants"] == 0


class TestProvisioningCommands:
    def test_grant(self, capsys) -> None:
        main(["grant", "--teammate", "bob", "--scope", "billing.read", "--fixture", FIXTURE])
        out = json.loads(capsys.readouterr().out)
        assert out == {
            "outcome": "granted",
            "grants": ["scope:billing.read:assigned:teammate:bob"],
        }

    def test_grant_already_held(self, capsys) -> None:
        main(["grant", "--teammate", "bob", "--scope", "mail.send", "--fixture", FIXTURE])
        assert json.loads(capsys.readouterr().out)["outcome"] == "already_granted"

    def test_revoke(self, capsys) -> None:
        main(["revoke", "--teammate", "alice", "--scope", "billing.update", "--fixture", FIXTURE])
        assert json.loads(capsys.readouterr().out) == {"outcome": "revoked"}

    def test_unknown_scope_exits_nonzero(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["grant", "--teammate", "bob", "--scope", "nope.read", "--fixture", FIXTURE])
        assert exc_info.value.code == 1

    def test_unknown_teammate_exits_nonzero(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["revoke", "--teammate", "zed", "--scope", "mail.send", "--fixture", FIXTURE])
        assert exc_info.value.code == 1

    def test_connector_closed_after_command(self, capsys) -> None:
        with patch.object(Connector, "close") as close:
            main(["grant", "--teammate", "bob", "--scope", "mail.send", "--fixture", FIXTURE])
        close.assert_called_once()

    def test_connector_closed_when_command_fails(self) -> None:
        with patch.object(Connector, "close") as close, pytest.raises(SystemExit):
            main(["grant", "--teammate", "bob", "--scope", "nope.read", "--fixture", FIXTURE])
        close.assert_called_once()
