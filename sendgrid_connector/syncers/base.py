"""Abstract base class for all resource syncers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from sendgrid_connector.client import SendGridClient
from sendgrid_connector.resources import (
    Entitlement,
    Grant,
    Resource,
    ResourceId,
    ResourceType,
)


class ResourceSyncer(ABC):
    """Each syncer declares RESOURCE_TYPE and pages through its resources.

    ``list`` and ``grants`` take a continuation token ("" for the first page)
    and return the next one ("" when exhausted). Tokens belong to the call
    that issued them and must not be passed to a different operation.
    """

    RESOURCE_TYPE: ResourceType

    def __init__(self, client: SendGridClient) -> None:
        self.client = client

    @property
    def resource_type(self) -> ResourceType:
        return self.RESOURCE_TYPE

    @abstractmethod
    def list(
        self, parent: Optional[ResourceId], token: str = ""
    ) -> tuple[list[Resource], str]:
        """One page of resources."""

    @abstractmethod
    def entitlements(self, resource: Resource) -> list[Entitlement]:
        """Entitlements offered by ``resource``. Never paginated."""

    @abstractmethod
    def grants(self, resource: Resource, token: str = "") -> tuple[list[Grant], str]:
        """One page of grants on ``resource``."""
