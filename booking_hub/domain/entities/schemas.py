"""Entity domain schemas - Pydantic models for the entities a principal controls"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class Entity(BaseModel):
    """An owned resource (property or tour) that owns zero or more records"""

    model_config = {"frozen": True}

    id: str
    display_name: str
    relationship_kind: str = "property"
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        if v is None or str(v).strip() == "":
            raise ValueError("Entity id is required")
        return str(v).strip()


class EntityResponse(BaseModel):
    """Schema for entity response"""

    id: str
    displayName: str
    relationshipKind: str
    attributes: Optional[dict] = None
