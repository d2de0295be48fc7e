"""Subuser syncer. Subusers are an upgraded SendGrid feature and can be skipped."""

from __future__ import annotations

import logging
from typing import Optional

from sendgrid_connector.client import SendGridClient
from sendgrid_connector.models import Subuser, SubuserCreate
from sendgrid_connector.resources import (
    SUBUSER,
    Entitlement,
    Grant,
    Resource,
    ResourceId,
    assignment_entitlement,
)
from sendgrid_connector.syncers.base import ResourceSyncer

logger = logging.getLogger("sendgrid.subusers")

ASSIGNED_ENTITLEMENT = "assigned"


def subuser_resource(subuser: Subuser, parent: Optional[ResourceId] = None) -> Resource:
    return Resource(
        id=ResourceId(SUBUSER.id, str(subuser.id)),
        display_name=subuser.username,
        profile={
            "user_id": subuser.id,
            "username": subuser.username,
            "email": subuser.email,
        },
        status="disabled" if subuser.disabled else "enabled",
        parent=parent,
    )


class SubuserSyncer(ResourceSyncer):
    RESOURCE_TYPE = SUBUSER

    def __init__(self, client: SendGridClient, ignore_subusers: bool = False) -> None:
        super().__init__(client)
        self.ignore_subusers = ignore_subusers

    def list(
        self, parent: Optional[ResourceId], token: str = ""
    ) -> tuple[list[Resource], str]:
        if self.ignore_subusers:
            return [], ""

        subusers, next_token = self.client.get_subusers(token)
        if not subusers:
            next_token = ""
        return [subuser_resource(s, parent) for s in subusers], next_token

    def entitlements(self, resource: Resource) -> list[Entitlement]:
        if self.ignore_subusers:
            return []
        return [
            assignment_entitlement(
                resource,
                ASSIGNED_ENTITLEMENT,
                grantable_to=SUBUSER,
                display_name=f"{SUBUSER.display_name} {resource.display_name} account",
                description=f"Login assigned to {SUBUSER.display_name}",
            )
        ]

    def grants(self, resource: Resource, token: str = "") -> tuple[list[Grant], str]:
        # The subuser account holds its own login while website access is enabled.
        if self.ignore_subusers or resource.status == "disabled":
            return [], ""
        entitlement = self.entitlements(resource)[0]
        return [Grant(entitlement=entitlement, principal=resource.id)], ""

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    def create_account(self, subuser: SubuserCreate) -> None:
        self.client.create_subuser(subuser)
        logger.info("Created subuser", extra={"username": subuser.username})

    def delete_resource(self, username: str) -> None:
        self.client.delete_subuser(username)
        logger.info("Deleted subuser", extra={"username": username})

    def set_disabled(self, username: str, disabled: bool) -> None:
        self.client.set_subuser_disabled(username, disabled)
        logger.info(
            "Subuser website access %s", "disabled" if disabled else "enabled",
            extra={"username": username},
        )
