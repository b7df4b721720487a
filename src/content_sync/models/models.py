"""Data models for content-type definitions and sync progress."""

import re
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)


class InvalidDefinitionError(ValueError):
    """Raised when a content-type definition fails validation."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        """Initialize with a message and the underlying validation errors."""
        super().__init__(message)
        self.errors = errors or []


class InvalidSyncProgressError(ValueError):
    """Raised when sync progress fails validation."""


class ContentCategory(str, Enum):
    """Category of a content type."""

    PAGE = "page"
    COMPONENT = "component"


class FieldDescriptor(BaseModel):
    """Attributes shared by every field type.

    Only the attributes in ``HASHED_ATTRIBUTES`` describe the schema. The rest is
    editor metadata (labels, help text, ordering) and never reaches the hash.
    """

    model_config = ConfigDict(extra="ignore")

    HASHED_ATTRIBUTES: ClassVar[Tuple[str, ...]] = (
        "key",
        "name",
        "type",
        "required",
        "unique",
        "indexed",
        "settings",
    )

    key: str = Field(min_length=1)
    name: str = Field(min_length=1)
    required: bool = False
    unique: bool = False
    indexed: bool = False
    settings: Dict[str, Any] = Field(default_factory=dict)

    # Editor metadata
    label: Optional[str] = None
    help_text: Optional[str] = None
    description: Optional[str] = None
    position: Optional[int] = None

    def semantic_dict(self) -> Dict[str, Any]:
        """Return only the schema-relevant attributes."""
        return {attr: getattr(self, attr) for attr in self.HASHED_ATTRIBUTES}


class TextField(FieldDescriptor):
    """Plain and formatted text fields."""

    type: Literal["text", "string", "richtext", "slug", "email", "url"]


class NumberField(FieldDescriptor):
    """Numeric fields."""

    type: Literal["number", "integer", "float"]


class BooleanField(FieldDescriptor):
    """True/false fields."""

    type: Literal["boolean"]


class DateField(FieldDescriptor):
    """Date and datetime fields."""

    type: Literal["date", "datetime"]


class ReferenceField(FieldDescriptor):
    """Reference to entries of another content type."""

    type: Literal["reference"]

    @model_validator(mode="after")
    def _require_target_type(self) -> "ReferenceField":
        if not self.settings.get("target_type"):
            raise ValueError(
                f"reference field '{self.key}' requires settings.target_type"
            )
        return self


class MediaField(FieldDescriptor):
    """Images, files and other assets."""

    type: Literal["media", "image", "file"]


class ListField(FieldDescriptor):
    """Repeated values of a single item type."""

    type: Literal["list", "array"]

    @model_validator(mode="after")
    def _require_item_type(self) -> "ListField":
        if not self.settings.get("item_type"):
            raise ValueError(f"list field '{self.key}' requires settings.item_type")
        return self


class JsonField(FieldDescriptor):
    """Free-form structured values."""

    type: Literal["json", "object"]


ContentField = Annotated[
    Union[
        TextField,
        NumberField,
        BooleanField,
        DateField,
        ReferenceField,
        MediaField,
        ListField,
        JsonField,
    ],
    Field(discriminator="type"),
]


def _slugify(value: str) -> str:
    slug = re.sub(r"[^0-9a-zA-Z]+", "_", value.strip()).strip("_")
    return slug.lower()


def _normalize_raw_field(raw: Any) -> Any:
    """Fill in key/name from legacy editor attributes before validation."""
    if not isinstance(raw, dict):
        return raw

    data = dict(raw)
    if not data.get("key"):
        if data.get("id"):
            data["key"] = str(data["id"])
        elif data.get("name"):
            data["key"] = _slugify(str(data["name"]))
    if not data.get("name"):
        data["name"] = data.get("label") or data.get("key")
    if isinstance(data.get("type"), str):
        data["type"] = data["type"].strip().lower()
    if data.get("settings") is None:
        data["settings"] = {}
    return data


class ContentTypeDefinition(BaseModel):
    """A content type: a key, a name and a typed list of fields."""

    model_config = ConfigDict(extra="ignore")

    key: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category: ContentCategory = ContentCategory.COMPONENT
    description: Optional[str] = None
    fields: List[ContentField] = Field(default_factory=list)

    @field_validator("key", "name", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        """Strip surrounding whitespace."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("fields", mode="before")
    @classmethod
    def normalize_fields(cls, v: Any) -> Any:
        """Normalize raw field dictionaries coming from the editor or remote."""
        if v is None:
            return []
        if isinstance(v, list):
            return [_normalize_raw_field(item) for item in v]
        return v

    @field_validator("fields")
    @classmethod
    def validate_unique_keys(cls, v: List[FieldDescriptor]) -> List[FieldDescriptor]:
        """Reject duplicate field keys."""
        seen = set()
        for descriptor in v:
            if descriptor.key in seen:
                raise ValueError(f"duplicate field key: {descriptor.key}")
            seen.add(descriptor.key)
        return v

    @classmethod
    def parse(cls, data: Any) -> "ContentTypeDefinition":
        """Validate raw input, raising InvalidDefinitionError on failure.

        Args:
            data: Definition instance or mapping

        Returns:
            Validated ContentTypeDefinition
        """
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            key = data.get("key") if isinstance(data, dict) else None
            raise InvalidDefinitionError(
                f"Invalid content type definition {key or ''}: "
                f"{e.error_count()} error(s)",
                errors=e.errors(include_url=False),
            ) from e

    @property
    def field_keys(self) -> List[str]:
        """Field keys in declaration order."""
        return [f.key for f in self.fields]

    def field_map(self) -> Dict[str, FieldDescriptor]:
        """Map field key to descriptor."""
        return {f.key: f for f in self.fields}

    def with_fields(self, fields: List[Any]) -> "ContentTypeDefinition":
        """Return a copy of this definition with a different field list."""
        data = self.to_payload()
        data["fields"] = [
            f.model_dump(mode="json") if isinstance(f, BaseModel) else f for f in fields
        ]
        return ContentTypeDefinition.parse(data)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return self.model_dump(mode="json", exclude_none=True)


class SyncProgress(BaseModel):
    """Resumable progress of an in-flight sync."""

    model_config = ConfigDict(extra="forbid", strict=True)

    current_step: int = Field(ge=0)
    total_steps: int = Field(ge=1)
    last_processed_id: Optional[str] = None
    processed_count: Optional[int] = Field(default=None, ge=0)
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "SyncProgress":
        if self.current_step > self.total_steps:
            raise ValueError(
                f"current_step ({self.current_step}) exceeds "
                f"total_steps ({self.total_steps})"
            )
        return self

    @classmethod
    def parse(cls, data: Any) -> "SyncProgress":
        """Validate progress, raising InvalidSyncProgressError on failure."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidSyncProgressError(f"Invalid sync progress: {e}") from e

    def to_json(self) -> Dict[str, Any]:
        """Serialize for storage, omitting unset optional values."""
        return self.model_dump(exclude_none=True)
