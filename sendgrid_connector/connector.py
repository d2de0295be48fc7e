"""Connector assembly: one client, one scope cache, three syncers."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from sendgrid_connector.client import HttpSendGridClient, SendGridClient
from sendgrid_connector.config import SendGridConfig
from sendgrid_connector.scope_cache import ScopeCache
from sendgrid_connector.syncers.base import ResourceSyncer
from sendgrid_connector.syncers.scopes import ScopeSyncer
from sendgrid_connector.syncers.subusers import SubuserSyncer
from sendgrid_connector.syncers.teammates import TeammateSyncer

logger = logging.getLogger("sendgrid.connector")


class Connector:
    """Owns the scope cache for its lifetime; nothing is shared across instances."""

    DISPLAY_NAME = "SendGrid"
    DESCRIPTION = "Connector syncing SendGrid teammates, subusers and scopes."

    def __init__(
        self,
        client: SendGridClient,
        ignore_subusers: bool = False,
        detail_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if client is None:
            raise ValueError("sendgrid client not provided")
        self.client = client
        self.cancel_event = cancel_event or threading.Event()
        self.scope_cache = ScopeCache(
            client, detail_workers=detail_workers, cancel_event=self.cancel_event,
        )
        self.teammates = TeammateSyncer(client)
        self.subusers = SubuserSyncer(client, ignore_subusers=ignore_subusers)
        self.scopes = ScopeSyncer(client, self.scope_cache)

    @classmethod
    def from_config(
        cls, config: SendGridConfig, cancel_event: Optional[threading.Event] = None
    ) -> "Connector":
        cancel_event = cancel_event or threading.Event()
        client = HttpSendGridClient(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout_s,
            cancel_event=cancel_event,
        )
        logger.info("Using SendGrid API at %s", config.base_url)
        return cls(
            client,
            ignore_subusers=config.ignore_subusers,
            detail_workers=config.detail_workers,
            cancel_event=cancel_event,
        )

    def resource_syncers(self) -> list[ResourceSyncer]:
        return [self.teammates, self.subusers, self.scopes]

    def syncer_for(self, resource_type: str) -> ResourceSyncer:
        for syncer in self.resource_syncers():
            if syncer.resource_type.id == resource_type:
                return syncer
        raise KeyError(resource_type)

    def metadata(self) -> dict[str, str]:
        return {"display_name": self.DISPLAY_NAME, "description": self.DESCRIPTION}

    def validate(self) -> None:
        """Exercise the credentials with one teammate page; raises on failure."""
        self.client.get_teammates("")

    def close(self) -> None:
        self.client.close()
