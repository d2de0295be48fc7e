"""CLI entry point: sync, scheduler, status and provisioning commands."""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
from contextlib import contextmanager
from dataclasses import asdict
from typing import Iterator, Optional

from sendgrid_connector.config import ConnectorConfig, load_config
from sendgrid_connector.connector import Connector
from sendgrid_connector.errors import ConfigError, SendGridError
from sendgrid_connector.logging_config import configure_logging
from sendgrid_connector.memory_client import InMemorySendGridClient
from sendgrid_connector.models import SubuserCreate, Teammate
from sendgrid_connector.resources import TEAMMATE, Grant, ResourceId
from sendgrid_connector.runner import SyncRunner
from sendgrid_connector.sink import MemorySink
from sendgrid_connector.syncers.scopes import scope_resource
from sendgrid_connector.syncers.teammates import teammate_resource

logger = logging.getLogger("sendgrid.cli")


def _install_signal_handlers(cancel_event: threading.Event) -> dict:
    """Turn SIGINT/SIGTERM into cancellation. Returns the previous handlers."""
    def _cancel(signum, _frame) -> None:
        logger.warning("Received signal %d, cancelling", signum)
        cancel_event.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _cancel)
    return previous


def _restore_signal_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


@contextmanager
def _connector(
    args: argparse.Namespace, cancel_event: threading.Event
) -> Iterator[tuple[Connector, Optional[ConnectorConfig]]]:
    fixture = getattr(args, "fixture", None)
    if fixture:
        client = InMemorySendGridClient.from_fixture_file(fixture, cancel_event=cancel_event)
        connector = Connector(
            client,
            ignore_subusers=getattr(args, "ignore_subusers", False),
            cancel_event=cancel_event,
        )
        config = None
    else:
        config = load_config()
        connector = Connector.from_config(config.sendgrid, cancel_event=cancel_event)
    try:
        yield connector, config
    finally:
        connector.close()


def _open_database(config: ConnectorConfig):
    from sendgrid_connector.db import Database

    db = Database(config.database)
    db.ensure_schema()
    return db


def cmd_sync(args: argparse.Namespace) -> None:
    """Run one full sync pass."""
    cancel_event = threading.Event()
    with _connector(args, cancel_event) as (connector, config):
        max_retries = config.max_retries if config else 0

        previous = _install_signal_handlers(cancel_event)
        try:
            if config is None or args.dry_run or config.database is None:
                sink = MemorySink()
                runner = SyncRunner(connector, sink, max_retries=max_retries)
                results = runner.run(resume=args.resume)
                print(json.dumps({"results": results, "sink": sink.summary()}, indent=2))
                return

            db = _open_database(config)
            try:
                runner = SyncRunner(connector, db, max_retries=max_retries)
                results = runner.run_with_tracking(db, resume=args.resume)
                print(json.dumps({"results": results}, indent=2))
            finally:
                db.close()
        finally:
            _restore_signal_handlers(previous)


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Start the APScheduler-based scheduling loop."""
    from sendgrid_connector.scheduler import start_scheduler

    config = load_config()
    if config.database is None:
        logger.warning("No database configured; scheduled syncs use an in-memory sink")
        start_scheduler(config, MemorySink())
        return
    db = _open_database(config)
    try:
        start_scheduler(config, db, tracker=db)
    finally:
        db.close()


def cmd_status(args: argparse.Namespace) -> None:
    """Show recent sync runs."""
    config = load_config()
    if config.database is None:
        raise ConfigError("status needs DATABASE_URL or PG_HOST")
    db = _open_database(config)
    try:
        runs = db.get_recent_runs(limit=args.limit)
        if not runs:
            print("No sync runs found.")
            return

        fmt = "{:<36}  {:<9}  {:<19}  {:<19}  {:>8}  {}"
        print(fmt.format("RUN ID", "STATUS", "STARTED", "FINISHED", "UPSERTED", "ERROR"))
        print("-" * 120)
        for r in runs:
            print(fmt.format(
                str(r["id"])[:36],
                r["status"],
                str(r["started_at"])[:19] if r["started_at"] else "",
                str(r["finished_at"])[:19] if r["finished_at"] else "",
                r.get("records_upserted", 0),
                (r.get("error_message") or "")[:40],
            ))
    finally:
        db.close()


def cmd_grant(args: argparse.Namespace) -> None:
    with _connector(args, threading.Event()) as (connector, _):
        principal = teammate_resource(Teammate(username=args.teammate))
        entitlement = connector.scopes.entitlements(scope_resource(args.scope))[0]
        result = connector.scopes.grant(principal, entitlement)
    print(json.dumps({"outcome": result.outcome.value, "grants": [g.id for g in result.grants]}))


def cmd_revoke(args: argparse.Namespace) -> None:
    with _connector(args, threading.Event()) as (connector, _):
        entitlement = connector.scopes.entitlements(scope_resource(args.scope))[0]
        grant = Grant(entitlement=entitlement, principal=ResourceId(TEAMMATE.id, args.teammate))
        result = connector.scopes.revoke(grant)
    print(json.dumps({"outcome": result.outcome.value}))


def cmd_invitations(args: argparse.Namespace) -> None:
    """List pending teammate invitations."""
    with _connector(args, threading.Event()) as (connector, _):
        token = ""
        while True:
            pending, token = connector.client.get_pending_teammates(token)
            for invitation in pending:
                print(json.dumps(asdict(invitation)))
            if not pending or not token:
                break


def cmd_invite(args: argparse.Namespace) -> None:
    with _connector(args, threading.Event()) as (connector, _):
        connector.teammates.create_account(args.email, args.scope or [], is_admin=args.admin)


def cmd_delete_teammate(args: argparse.Namespace) -> None:
    with _connector(args, threading.Event()) as (connector, _):
        connector.teammates.delete_resource(ResourceId(TEAMMATE.id, args.username))


def cmd_create_subuser(args: argparse.Namespace) -> None:
    password = os.environ.get("SENDGRID_SUBUSER_PASSWORD", "")
    if not password:
        raise ConfigError("SENDGRID_SUBUSER_PASSWORD environment variable is required")
    with _connector(args, threading.Event()) as (connector, _):
        connector.subusers.create_account(SubuserCreate(
            username=args.username,
            email=args.email,
            password=password,
            ips=args.ip or [],
            region=args.region,
            include_region=args.region != "global",
        ))


def cmd_delete_subuser(args: argparse.Namespace) -> None:
    with _connector(args, threading.Event()) as (connector, _):
        connector.subusers.delete_resource(args.username)


def cmd_subuser_access(args: argparse.Namespace) -> None:
    with _connector(args, threading.Event()) as (connector, _):
        connector.subusers.set_disabled(args.username, disabled=args.disable)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sendgrid-connector",
        description="SendGrid identity connector",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one full sync pass")
    sync_parser.add_argument("--dry-run", action="store_true",
                             help="Write to an in-memory sink and print a summary")
    sync_parser.add_argument("--resume", action="store_true",
                             help="Continue from saved continuation tokens")
    sync_parser.add_argument("--fixture", metavar="FILE",
                             help="Read SendGrid data from a JSON fixture instead of the API")
    sync_parser.add_argument("--ignore-subusers", action="store_true",
                             help="Skip subusers (fixture mode only; else SENDGRID_IGNORE_SUBUSERS)")
    sync_parser.set_defaults(func=cmd_sync)

    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled sync loop")
    sched_parser.set_defaults(func=cmd_scheduler)

    status_parser = subparsers.add_parser("status", help="Show recent sync runs")
    status_parser.add_argument("--limit", "-l", type=int, default=10,
                               help="Number of runs to show (default: 10)")
    status_parser.set_defaults(func=cmd_status)

    for name, func, help_text in (
        ("grant", cmd_grant, "Grant a scope to a teammate"),
        ("revoke", cmd_revoke, "Revoke a scope from a teammate"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("--teammate", required=True, help="Teammate username")
        p.add_argument("--scope", required=True, help="Scope name, e.g. mail.send")
        p.add_argument("--fixture", metavar="FILE", help=argparse.SUPPRESS)
        p.set_defaults(func=func)

    inv_parser = subparsers.add_parser("invitations", help="List pending invitations")
    inv_parser.set_defaults(func=cmd_invitations)

    invite_parser = subparsers.add_parser("invite", help="Invite a teammate")
    invite_parser.add_argument("--email", required=True)
    invite_parser.add_argument("--scope", action="append", help="Repeatable")
    invite_parser.add_argument("--admin", action="store_true")
    invite_parser.set_defaults(func=cmd_invite)

    del_tm_parser = subparsers.add_parser("delete-teammate", help="Delete a teammate")
    del_tm_parser.add_argument("--username", required=True)
    del_tm_parser.set_defaults(func=cmd_delete_teammate)

    create_su_parser = subparsers.add_parser(
        "create-subuser", help="Create a subuser (password from SENDGRID_SUBUSER_PASSWORD)",
    )
    create_su_parser.add_argument("--username", required=True)
    create_su_parser.add_argument("--email", required=True)
    create_su_parser.add_argument("--ip", action="append", help="Repeatable")
    create_su_parser.add_argument("--region", default="global", choices=["global", "eu"])
    create_su_parser.set_defaults(func=cmd_create_subuser)

    del_su_parser = subparsers.add_parser("delete-subuser", help="Delete a subuser")
    del_su_parser.add_argument("--username", required=True)
    del_su_parser.set_defaults(func=cmd_delete_subuser)

    access_parser = subparsers.add_parser(
        "subuser-access", help="Enable or disable website access for a subuser",
    )
    access_parser.add_argument("--username", required=True)
    group = access_parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--disable", action="store_true")
    group.add_argument("--enable", action="store_true")
    access_parser.set_defaults(func=cmd_subuser_access)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    configure_logging(
        os.environ.get("LOG_LEVEL", "INFO"), os.environ.get("LOG_FORMAT", "json"),
    )
    args = build_parser().parse_args(argv)
    try:
        args.func(args)
    except SendGridError as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)
