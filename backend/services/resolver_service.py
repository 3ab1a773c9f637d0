"""Resource identity resolution across systems that do not share a key space."""

from __future__ import annotations

import time
from threading import RLock
from typing import Any, Callable, Optional

from backend.domain.models import AliasKind, Resource, ResourceFamily
from backend.domain.naming import (
    is_prefix_related,
    normalize_reference,
    numbered_family_match,
    parse_side_name,
    subdivision_match,
)
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class ResolutionError(Exception):
    """Base exception for identity resolution failures."""


class ResourceNotFoundError(ResolutionError):
    """Raised when a resolved id no longer exists in the catalog."""


def heuristic_match(reference: str, resources: list[Resource]) -> Optional[Resource]:
    """Pick the catalog entry a free-text reference most plausibly names.

    Among several family matches the one in a direct prefix relation with the
    reference wins, then the shortest name, then the lowest id.
    """
    normalized = normalize_reference(reference)
    if not normalized:
        return None

    matches: list[tuple[int, int, int, Resource]] = []
    for resource in resources:
        name = normalize_reference(resource.name)
        if not name or name == normalized:
            continue
        if numbered_family_match(normalized, name) or subdivision_match(normalized, name):
            rank = 0 if is_prefix_related(normalized, name) else 1
            matches.append((rank, len(name), resource.resource_id, resource))
    if not matches:
        return None
    matches.sort(key=lambda item: item[:3])
    return matches[0][3]


def build_family(target: Resource, resources: list[Resource]) -> ResourceFamily:
    """Work out which other spaces block or neighbour ``target``."""
    target_name = normalize_reference(target.name)
    target_side = parse_side_name(target.name)
    blocking: set[int] = set()
    adjacent: set[int] = set()

    for resource in resources:
        if resource.resource_id == target.resource_id:
            continue
        name = normalize_reference(resource.name)
        side = parse_side_name(resource.name)

        if target_side is not None:
            if name == target_side.base:
                blocking.add(resource.resource_id)
                continue
            if side is not None and side.base == target_side.base:
                adjacent.add(resource.resource_id)
                continue
        elif side is not None and side.base == target_name:
            blocking.add(resource.resource_id)
            continue

        if numbered_family_match(target_name, name) or subdivision_match(target_name, name):
            adjacent.add(resource.resource_id)

    return ResourceFamily(
        target_id=target.resource_id,
        blocking_ids=frozenset(blocking),
        adjacent_ids=frozenset(adjacent - blocking),
    )


class ResourceResolver:
    """Maps names, short codes and foreign ids to canonical resource ids."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._clock = clock
        self._lock = RLock()
        self._alias_map: Optional[dict[tuple[AliasKind, str], int]] = None
        self._loaded_at = 0.0

    def _aliases(self) -> dict[tuple[AliasKind, str], int]:
        with self._lock:
            ttl = self._settings.resolver_alias_cache_ttl_seconds
            if self._alias_map is not None and self._clock() - self._loaded_at < ttl:
                return self._alias_map
            self._alias_map = self._repository.load_alias_map()
            self._loaded_at = self._clock()
            logger.debug("Alias cache loaded | aliases=%s", len(self._alias_map))
            return self._alias_map

    def invalidate_cache(self) -> None:
        with self._lock:
            self._alias_map = None
            self._loaded_at = 0.0

    def _lookup(self, kind: AliasKind, value: Optional[str]) -> Optional[int]:
        normalized = normalize_reference(value)
        if not normalized:
            return None
        return self._aliases().get((kind, normalized))

    def resolve(
        self,
        reference: Optional[str],
        *,
        foreign_id: Optional[int] = None,
        abbreviation: Optional[str] = None,
        reference_is_foreign_id: bool = False,
    ) -> Optional[int]:
        """Return the canonical resource id, or None when nothing matches."""
        if foreign_id is not None:
            resolved = self._lookup(AliasKind.FOREIGN_ID, str(int(foreign_id)))
            if resolved is not None:
                return resolved

        text = normalize_reference(reference)
        if text and reference_is_foreign_id and text.isdigit():
            resolved = self._lookup(AliasKind.FOREIGN_ID, str(int(text)))
            if resolved is not None:
                return resolved

        resolved = self._lookup(AliasKind.NAME, text)
        if resolved is not None:
            return resolved

        if text:
            match = heuristic_match(text, self._repository.list_resources())
            if match is not None:
                logger.info(
                    "Heuristic resource match | reference=%s | resource_id=%s | name=%s",
                    text,
                    match.resource_id,
                    match.name,
                )
                if self._settings.resolver_persist_heuristic_matches:
                    self._repository.upsert_alias(match.resource_id, AliasKind.NAME, text)
                    self.invalidate_cache()
                return match.resource_id

        for candidate in (abbreviation, text):
            resolved = self._lookup(AliasKind.ABBREVIATION, candidate)
            if resolved is not None:
                return resolved

        if text or foreign_id is not None:
            logger.info(
                "Unresolved resource reference | reference=%s | foreign_id=%s | abbreviation=%s",
                text,
                foreign_id,
                abbreviation,
            )
        return None

    def resolve_provider_room(self, room: Any, foreign_id: Any = None) -> Optional[int]:
        """Resolve a provider room payload: foreign id, then description, then abbreviation.

        The provider returns rooms either as a plain string or as an object
        with ``id``, ``description``/``name`` and ``abbreviation`` keys.
        """
        description: Optional[str] = None
        abbreviation: Optional[str] = None
        if isinstance(room, str):
            description = room
        elif isinstance(room, dict):
            description = room.get("description") or room.get("name")
            abbreviation = room.get("abbreviation")
            if foreign_id is None:
                foreign_id = room.get("id")

        parsed_id: Optional[int] = None
        if foreign_id is not None:
            try:
                parsed_id = int(foreign_id)
            except (TypeError, ValueError):
                parsed_id = None

        return self.resolve(description, foreign_id=parsed_id, abbreviation=abbreviation)

    def get_resource(self, resource_id: int) -> Resource:
        resource = self._repository.get_resource(resource_id)
        if resource is None:
            raise ResourceNotFoundError(f"resource_id {resource_id} not found")
        return resource

    def family(self, resource_id: int) -> ResourceFamily:
        """Expand a resolved id into its blocking and adjacent neighbours."""
        resources = self._repository.list_resources()
        target = next((item for item in resources if item.resource_id == resource_id), None)
        if target is None:
            raise ResourceNotFoundError(f"resource_id {resource_id} not found")
        return build_family(target, resources)
