"""Template (user-authored field tree) models.

Templates are exchanged as camelCase JSON (``itemFields``, ``systemPrompt``,
``createdAt``) and accepted in either casing.
"""

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class FieldShape(str, Enum):
    """Structural variant of a field definition node."""

    PRIMITIVE = "primitive"
    PRIMITIVE_ARRAY = "primitive_array"
    OBJECT_ARRAY = "object_array"
    OBJECT = "object"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldValidation(_CamelModel):
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    custom_rule: Optional[str] = None


class FieldDefinition(_CamelModel):
    id: str = ""
    name: str
    label: str = Field(default="", validate_default=True)
    type: FieldType = FieldType.STRING
    description: str = ""
    required: bool = False
    default_value: Any = None
    item_fields: Optional[list["FieldDefinition"]] = None
    properties: Optional[list["FieldDefinition"]] = None
    validation: Optional[FieldValidation] = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_unknown_type(cls, value: Any) -> Any:
        if isinstance(value, FieldType):
            return value
        if value not in {t.value for t in FieldType}:
            logger.warning("Unknown field type %r, treating as string", value)
            return FieldType.STRING
        return value

    @field_validator("label", mode="after")
    @classmethod
    def _label_defaults_to_name(cls, value: str, info) -> str:
        return value or info.data.get("name", "")

    @property
    def shape(self) -> FieldShape:
        if self.type == FieldType.ARRAY:
            if self.item_fields:
                return FieldShape.OBJECT_ARRAY
            return FieldShape.PRIMITIVE_ARRAY
        if self.type == FieldType.OBJECT:
            return FieldShape.OBJECT
        return FieldShape.PRIMITIVE

    @property
    def children(self) -> list["FieldDefinition"]:
        """Child definitions for the nested shapes, empty otherwise."""
        if self.shape == FieldShape.OBJECT_ARRAY:
            return list(self.item_fields or [])
        if self.shape == FieldShape.OBJECT:
            return list(self.properties or [])
        return []


class Template(_CamelModel):
    id: str
    name: str
    description: str = ""
    fields: list[FieldDefinition]
    system_prompt: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0

    def export_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ColumnDefinition(BaseModel):
    """Flat display column derived from a template field tree."""

    key: str
    label: str
    type: FieldType
    editable: bool = True
    nested: bool = False
    width: Optional[str] = None
