"""Destination for synced objects, plus continuation-token checkpoints."""

from __future__ import annotations

from abc import ABC, abstractmethod

from sendgrid_connector.resources import Entitlement, Grant, Resource


class Sink(ABC):
    @abstractmethod
    def put_resources(self, resources: list[Resource]) -> int:
        """Store resources. Returns the number written."""

    @abstractmethod
    def put_entitlements(self, entitlements: list[Entitlement]) -> int:
        ...

    @abstractmethod
    def put_grants(self, grants: list[Grant]) -> int:
        ...

    @abstractmethod
    def save_checkpoint(self, resource_type: str, token: str) -> None:
        """Remember the next list token for a resource type ("" clears it)."""

    @abstractmethod
    def load_checkpoint(self, resource_type: str) -> str:
        ...


class MemorySink(Sink):
    """Keeps everything in dicts keyed by stable id."""

    def __init__(self) -> None:
        self.resources: dict[str, Resource] = {}
        self.entitlements: dict[str, Entitlement] = {}
        self.grants: dict[str, Grant] = {}
        self.checkpoints: dict[str, str] = {}

    def put_resources(self, resources: list[Resource]) -> int:
        for r in resources:
            self.resources[str(r.id)] = r
        return len(resources)

    def put_entitlements(self, entitlements: list[Entitlement]) -> int:
        for e in entitlements:
            self.entitlements[e.id] = e
        return len(entitlements)

    def put_grants(self, grants: list[Grant]) -> int:
        for g in grants:
            self.grants[g.id] = g
        return len(grants)

    def save_checkpoint(self, resource_type: str, token: str) -> None:
        if token:
            self.checkpoints[resource_type] = token
        else:
            self.checkpoints.pop(resource_type, None)

    def load_checkpoint(self, resource_type: str) -> str:
        return self.checkpoints.get(resource_type, "")

    def resources_of(self, resource_type: str) -> list[Resource]:
        return [r for r in self.resources.values() if r.id.resource_type == resource_type]

    def grants_for(self, entitlement_id: str) -> list[Grant]:
        return [g for g in self.grants.values() if g.entitlement.id == entitlement_id]

    def summary(self) -> dict[str, int]:
        return {
            "resources": len(self.resources),
            "entitlements": len(self.entitlements),
            "grants": len(self.grants),
        }
