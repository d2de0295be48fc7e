"""Teammate syncer: teammates and the subusers each of them can access."""

from __future__ import annotations

import logging
from typing import Optional

from sendgrid_connector.models import Teammate, TeammateSubuserAccess
from sendgrid_connector.resources import (
    SUBUSER,
    TEAMMATE,
    Entitlement,
    Grant,
    Resource,
    ResourceId,
    assignment_entitlement,
)
from sendgrid_connector.syncers.base import ResourceSyncer

logger = logging.getLogger("sendgrid.teammates")

ACCESS_ENTITLEMENT = "access"


def teammate_resource(teammate: Teammate, parent: Optional[ResourceId] = None) -> Resource:
    profile = {
        "username": teammate.username,
        "email": teammate.email,
        "first_name": teammate.first_name,
        "last_name": teammate.last_name,
        "user_type": teammate.user_type,
        "is_admin": teammate.is_admin,
        "is_sso": teammate.is_sso,
        "is_partner_sso": teammate.is_partner_sso,
    }
    return Resource(
        id=ResourceId(TEAMMATE.id, teammate.username),
        display_name=teammate.display_name,
        profile=profile,
        status="enabled",
        parent=parent,
    )


class TeammateSyncer(ResourceSyncer):
    RESOURCE_TYPE = TEAMMATE

    def list(
        self, parent: Optional[ResourceId], token: str = ""
    ) -> tuple[list[Resource], str]:
        teammates, next_token = self.client.get_teammates(token)
        resources = [teammate_resource(t, parent) for t in teammates]
        if not teammates:
            next_token = ""
        return resources, next_token

    def entitlements(self, resource: Resource) -> list[Entitlement]:
        return [
            assignment_entitlement(
                resource,
                ACCESS_ENTITLEMENT,
                grantable_to=SUBUSER,
                display_name=f"{resource.display_name} can access {SUBUSER.display_name}",
                description=f"Teammate access to {SUBUSER.display_name}",
            )
        ]

    def grants(self, resource: Resource, token: str = "") -> tuple[list[Grant], str]:
        username = resource.id.resource
        access, next_token = self.client.get_teammate_subuser_access(username, token)
        logger.debug(
            "Teammate subuser access page: %d entries", len(access),
            extra={"username": username, "records": len(access)},
        )
        entitlement = self.entitlements(resource)[0]
        return [_access_grant(entitlement, a) for a in access], next_token

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    def create_account(self, email: str, scopes: list[str], is_admin: bool = False) -> None:
        """Invite a new teammate. The account appears once the invite is accepted."""
        self.client.invite_teammate(email, [s for s in scopes if s], is_admin)
        logger.info("Invited teammate %s", email)

    def delete_resource(self, resource_id: ResourceId) -> None:
        if resource_id.resource_type != TEAMMATE.id:
            raise ValueError(f"not a teammate resource: {resource_id}")
        self.client.delete_teammate(resource_id.resource)
        logger.info("Deleted teammate", extra={"username": resource_id.resource})


def _access_grant(entitlement: Entitlement, access: TeammateSubuserAccess) -> Grant:
    return Grant(
        entitlement=entitlement,
        principal=ResourceId(SUBUSER.id, str(access.id)),
    )
