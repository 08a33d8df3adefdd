"""Contracts for the collaborators this subsystem consumes.

The workflow never persists entities or authenticates users itself. It
reads and writes through an ``EntityStore`` and learns who is acting from
an ``IdentityProvider``. In-memory implementations back the tests and the
demo application.
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Protocol

from ..models import Actor, EntityKind


@dataclass(frozen=True)
class StoreResult:
    """Tri-state store response: ``success`` with ``data``, or ``error``."""
    success: bool
    data: Any = None
    error: str | None = None


# =============================================================================
# ENTITY STORE
# =============================================================================


class EntityStore(Protocol):
    def add(self, entity) -> StoreResult: ...

    def get(self, kind: EntityKind, entity_id: str) -> StoreResult: ...

    def update(self, kind: EntityKind, entity_id: str, patch: dict[str, Any]) -> StoreResult: ...

    def list(self, kind: EntityKind) -> StoreResult: ...


class InMemoryEntityStore:
    """Entity store over immutable dataclass records keyed by (kind, id)."""

    def __init__(self, entities: list | None = None):
        self._entities: dict[tuple[EntityKind, str], Any] = {}
        for entity in entities or []:
            self.add(entity)

    def add(self, entity) -> StoreResult:
        self._entities[(entity.kind, entity.id)] = entity
        return StoreResult(success=True, data=entity)

    def get(self, kind: EntityKind, entity_id: str) -> StoreResult:
        entity = self._entities.get((kind, entity_id))
        if entity is None:
            return StoreResult(success=False, error=f"{kind.value} {entity_id} not found")
        return StoreResult(success=True, data=entity)

    def update(self, kind: EntityKind, entity_id: str, patch: dict[str, Any]) -> StoreResult:
        entity = self._entities.get((kind, entity_id))
        if entity is None:
            return StoreResult(success=False, error=f"{kind.value} {entity_id} not found")
        try:
            updated = dataclasses.replace(entity, **patch)
        except TypeError as e:
            return StoreResult(success=False, error=f"Invalid patch for {kind.value} {entity_id}: {e}")
        self._entities[(kind, entity_id)] = updated
        return StoreResult(success=True, data=updated)

    def list(self, kind: EntityKind) -> StoreResult:
        return StoreResult(
            success=True,
            data=[e for (k, _), e in self._entities.items() if k == kind],
        )


# =============================================================================
# IDENTITY
# =============================================================================


class IdentityProvider(Protocol):
    def get_actor(self, actor_id: str) -> Actor | None: ...

    def list_actors(self) -> list[Actor]: ...


class StaticIdentityProvider:
    """A fixed user directory."""

    def __init__(self, actors: list[Actor] | None = None):
        self._actors = {a.id: a for a in actors or []}

    def add(self, actor: Actor) -> None:
        self._actors[actor.id] = actor

    def get_actor(self, actor_id: str) -> Actor | None:
        return self._actors.get(actor_id)

    def list_actors(self) -> list[Actor]:
        return list(self._actors.values())
