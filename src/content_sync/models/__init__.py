"""Models for the content sync engine."""

from .models import (
    BooleanField,
    ContentCategory,
    ContentField,
    ContentTypeDefinition,
    DateField,
    FieldDescriptor,
    InvalidDefinitionError,
    InvalidSyncProgressError,
    JsonField,
    ListField,
    MediaField,
    NumberField,
    ReferenceField,
    SyncProgress,
    TextField,
)

__all__ = [
    "BooleanField",
    "ContentCategory",
    "ContentField",
    "ContentTypeDefinition",
    "DateField",
    "FieldDescriptor",
    "InvalidDefinitionError",
    "InvalidSyncProgressError",
    "JsonField",
    "ListField",
    "MediaField",
    "NumberField",
    "ReferenceField",
    "SyncProgress",
    "TextField",
]
