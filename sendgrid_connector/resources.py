"""Normalized resource / entitlement / grant objects handed to the sink."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ResourceType:
    id: str
    display_name: str
    traits: tuple[str, ...] = ()


TEAMMATE = ResourceType("teammate", "Teammate", ("user",))
SUBUSER = ResourceType("subuser", "Subuser", ("user",))
SCOPE = ResourceType("scope", "Scope")


@dataclass(frozen=True)
class ResourceId:
    resource_type: str
    resource: str

    def __str__(self) -> str:
        return f"{self.resource_type}:{self.resource}"


@dataclass
class Resource:
    id: ResourceId
    display_name: str
    profile: dict[str, Any] = field(default_factory=dict)
    status: Optional[str] = None  # "enabled" / "disabled" for user-trait types
    parent: Optional[ResourceId] = None


@dataclass
class Entitlement:
    resource: Resource
    slug: str
    display_name: str
    description: str = ""
    grantable_to: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return f"{self.resource.id}:{self.slug}"


@dataclass
class Grant:
    entitlement: Entitlement
    principal: ResourceId

    @property
    def id(self) -> str:
        return f"{self.entitlement.id}:{self.principal}"


def assignment_entitlement(
    resource: Resource,
    slug: str,
    grantable_to: ResourceType,
    display_name: str,
    description: str,
) -> Entitlement:
    return Entitlement(
        resource=resource,
        slug=slug,
        display_name=display_name,
        description=description,
        grantable_to=(grantable_to.id,),
    )


class Outcome(enum.Enum):
    GRANTED = "granted"
    ALREADY_GRANTED = "already_granted"
    REVOKED = "revoked"
    ALREADY_REVOKED = "already_revoked"


@dataclass
class ProvisioningResult:
    outcome: Outcome
    grants: list[Grant] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.outcome in (Outcome.GRANTED, Outcome.REVOKED)
