"""APScheduler-based interval scheduling for the SendGrid sync."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from sendgrid_connector.config import ConnectorConfig
from sendgrid_connector.connector import Connector
from sendgrid_connector.errors import SendGridError
from sendgrid_connector.runner import SyncRunner
from sendgrid_connector.sink import Sink

logger = logging.getLogger("sendgrid.scheduler")

JOB_ID = "sendgrid_sync"


def _run_sync(
    config: ConnectorConfig,
    sink: Sink,
    tracker=None,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """One scheduled pass. A fresh connector per pass keeps the cache per-session."""
    connector = Connector.from_config(config.sendgrid, cancel_event=cancel_event)
    runner = SyncRunner(connector, sink, max_retries=config.max_retries)
    try:
        if tracker is not None:
            runner.run_with_tracking(tracker, resume=True)
        else:
            results = runner.run(resume=True)
            logger.info("Scheduled sync complete: %s", results)
    except SendGridError as exc:
        # The next interval retries; checkpoints let it resume mid-walk.
        logger.error("Scheduled sync failed: %s", exc)
    finally:
        connector.close()


def _on_job_error(event) -> None:
    logger.error("Job %s raised an exception: %s", event.job_id, event.exception)


def build_scheduler(
    config: ConnectorConfig,
    sink: Sink,
    tracker=None,
    cancel_event: Optional[threading.Event] = None,
) -> BlockingScheduler:
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_job(
        _run_sync,
        "interval",
        minutes=config.scheduler.interval_min,
        args=[config, sink, tracker, cancel_event],
        id=JOB_ID,
        max_instances=1,
        misfire_grace_time=config.scheduler.misfire_grace_time,
    )
    return scheduler


def start_scheduler(
    config: ConnectorConfig,
    sink: Sink,
    tracker=None,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """Start the blocking scheduler; returns when it is shut down."""
    scheduler = build_scheduler(config, sink, tracker, cancel_event)
    logger.info(
        "Starting scheduler, syncing every %d minutes", config.scheduler.interval_min,
    )
    scheduler.start()
