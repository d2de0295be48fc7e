"""Scope syncer: the static scope catalog, teammate grants and provisioning."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from sendgrid_connector.client import SendGridClient
from sendgrid_connector.errors import ProvisioningError
from sendgrid_connector.models import TeammateScope
from sendgrid_connector.resources import (
    SCOPE,
    TEAMMATE,
    Entitlement,
    Grant,
    Outcome,
    ProvisioningResult,
    Resource,
    ResourceId,
    assignment_entitlement,
)
from sendgrid_connector.scope_cache import ScopeCache
from sendgrid_connector.scope_catalog import SENDGRID_SCOPES, is_known_scope
from sendgrid_connector.syncers.base import ResourceSyncer

logger = logging.getLogger("sendgrid.scopes")

ASSIGNED_ENTITLEMENT = "assigned"


def scope_resource(scope: str, parent: Optional[ResourceId] = None) -> Resource:
    return Resource(id=ResourceId(SCOPE.id, scope), display_name=scope, parent=parent)


class ScopeSyncer(ResourceSyncer):
    RESOURCE_TYPE = SCOPE

    def __init__(self, client: SendGridClient, cache: ScopeCache) -> None:
        super().__init__(client)
        self.cache = cache
        # username -> [lock, holders]; an entry lives only while someone holds or waits on it.
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    def list(
        self, parent: Optional[ResourceId], token: str = ""
    ) -> tuple[list[Resource], str]:
        # An empty token starts a fresh pass: rebuild once, not per page.
        if not token:
            self.cache.build()
        return [scope_resource(s, parent) for s in SENDGRID_SCOPES], ""

    def entitlements(self, resource: Resource) -> list[Entitlement]:
        return [
            assignment_entitlement(
                resource,
                ASSIGNED_ENTITLEMENT,
                grantable_to=TEAMMATE,
                display_name=f"{TEAMMATE.display_name} scope {resource.display_name}",
                description=f"Assigned {TEAMMATE.display_name} to scopes",
            )
        ]

    def grants(self, resource: Resource, token: str = "") -> tuple[list[Grant], str]:
        entitlement = self.entitlements(resource)[0]
        members = self.cache.get_users_for_scope(resource.id.resource)
        return [_scope_grant(entitlement, m) for m in members], ""

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    @contextmanager
    def _teammate_lock(self, username: str) -> Iterator[None]:
        # Serializes read-modify-write per teammate inside this process only.
        with self._locks_guard:
            entry = self._locks.setdefault(username, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[username]

    @staticmethod
    def _principal_username(principal: ResourceId) -> str:
        if principal.resource_type != TEAMMATE.id:
            raise ProvisioningError(
                f"principal resource type is not {TEAMMATE.id}: {principal}"
            )
        return principal.resource

    def grant(self, principal: Resource, entitlement: Entitlement) -> ProvisioningResult:
        """Add the entitlement's scope to the teammate's scope set."""
        username = self._principal_username(principal.id)
        scope = entitlement.resource.id.resource
        if not scope or not is_known_scope(scope):
            raise ProvisioningError(f"unknown scope: {scope!r}")

        with self._teammate_lock(username):
            teammate = self.client.get_specific_teammate(username)
            if scope in teammate.scopes:
                logger.info(
                    "Scope already granted to teammate",
                    extra={"scope": scope, "username": username},
                )
                return ProvisioningResult(Outcome.ALREADY_GRANTED)

            scopes = [s for s in dict.fromkeys(teammate.scopes) if s]
            scopes.append(scope)
            self.client.set_teammate_scopes(username, scopes, teammate.is_admin)
            teammate.scopes = scopes

        logger.info("Granted scope", extra={"scope": scope, "username": username})
        grant = _scope_grant(self.entitlements(scope_resource(scope))[0], teammate)
        return ProvisioningResult(Outcome.GRANTED, [grant])

    def revoke(self, grant: Grant) -> ProvisioningResult:
        """Remove the grant's scope from the teammate's scope set."""
        username = self._principal_username(grant.principal)
        scope = grant.entitlement.resource.id.resource
        if not scope:
            raise ProvisioningError("empty scope")

        with self._teammate_lock(username):
            teammate = self.client.get_specific_teammate(username)
            try:
                index = teammate.scopes.index(scope)
            except ValueError:
                logger.info(
                    "Scope not found on teammate",
                    extra={"scope": scope, "username": username},
                )
                return ProvisioningResult(Outcome.ALREADY_REVOKED)

            remaining = teammate.scopes[:index] + teammate.scopes[index + 1:]
            remaining = [s for s in remaining if s]
            self.client.set_teammate_scopes(username, remaining, teammate.is_admin)

        logger.info("Revoked scope", extra={"scope": scope, "username": username})
        return ProvisioningResult(Outcome.REVOKED)


def _scope_grant(entitlement: Entitlement, teammate: TeammateScope) -> Grant:
    return Grant(
        entitlement=entitlement,
        principal=ResourceId(TEAMMATE.id, teammate.username),
    )
