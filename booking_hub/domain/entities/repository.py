"""Entity registry - Loads the entities the current principal may aggregate over"""

import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from ...config import ENTITIES_ENDPOINT
from ...errors import EntityListError, TransportError
from ...services.api_client import ApiClient, unwrap
from .schemas import Entity

logger = logging.getLogger(__name__)

# Upstream payloads name the same concept differently depending on the resource
_NAME_KEYS = ("displayName", "name", "title")
_KIND_KEYS = ("relationshipKind", "kind", "entityType", "type")
_ENTITY_LIST_KEYS = ("entities", "properties", "tours", "items", "results")


def to_entity(raw: dict[str, Any]) -> Entity:
    """Map a raw upstream entity into an Entity"""
    entity_id = raw.get("id", raw.get("_id"))
    name = next((raw[k] for k in _NAME_KEYS if raw.get(k)), None)
    kind = next((raw[k] for k in _KIND_KEYS if raw.get(k)), "property")
    attributes = {
        k: v
        for k, v in raw.items()
        if k not in ("id", "_id", *_NAME_KEYS, *_KIND_KEYS)
    }
    return Entity(
        id=entity_id,
        display_name=str(name) if name is not None else f"#{entity_id}",
        relationship_kind=str(kind).lower(),
        attributes=attributes,
    )


def _extract_list(body: Any) -> list:
    data = unwrap(body)
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in _ENTITY_LIST_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
    raise EntityListError("Entity list response is not a list")


class EntityRegistry:
    """Session-scoped entity list, loaded once and refreshed on demand"""

    def __init__(self, client: ApiClient, endpoint: str = ENTITIES_ENDPOINT):
        self.client = client
        self.endpoint = endpoint
        self._entities: Optional[list[Entity]] = None

    async def load(self, refresh: bool = False) -> list[Entity]:
        """
        Return the ordered entities visible to the current principal.

        Raises:
            AuthError: if the principal is not authenticated
            EntityListError: if the list cannot be fetched or parsed
        """
        if self._entities is not None and not refresh:
            return list(self._entities)

        try:
            body = await self.client.get(self.endpoint)
        except EntityListError:
            raise
        except TransportError as e:
            logger.error(f"❌ Failed to load entity list: {e}")
            raise EntityListError(f"Failed to load entities: {e}", status_code=e.status_code) from e

        entities: list[Entity] = []
        seen: set[str] = set()
        for raw in _extract_list(body):
            if not isinstance(raw, dict):
                raise EntityListError("Entity list contains a non-object entry")
            try:
                entity = to_entity(raw)
            except PydanticValidationError as e:
                raise EntityListError(f"Malformed entity in list: {e}") from e
            if entity.id in seen:
                logger.debug(f"Skipping repeated entity id {entity.id}")
                continue
            seen.add(entity.id)
            entities.append(entity)

        self._entities = entities
        logger.info(f"✅ Loaded {len(entities)} entities")
        return list(entities)

    def get(self, entity_id: str) -> Optional[Entity]:
        """Look up a loaded entity by id"""
        for entity in self._entities or []:
            if entity.id == str(entity_id):
                return entity
        return None
