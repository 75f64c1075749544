# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class BaseEntity(BaseModel):
    """Base entity with common fields for all domain objects."""

    model_config = ConfigDict(
        # Documents are stored with camelCase keys
        alias_generator=to_camel,
        # Allow population by field name or alias
        populate_by_name=True,
        # Validate assignment
        validate_assignment=True,
        # Arbitrary types allowed
        arbitrary_types_allowed=True
    )

    id: str = Field(default_factory=generate_object_id, frozen=True, description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, frozen=True, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def to_document(self) -> dict:
        """Serialize to a storage document keyed by camelCase names with `_id`."""
        document = self.model_dump(by_alias=True)
        document["_id"] = document.pop("id")
        return document

    @classmethod
    def from_document(cls, document: dict):
        """Build an entity from a storage document."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


class CatalogEntity(BaseModel):
    """Base model for read-mostly catalog entries owned by configuration."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True
    )

    id: str = Field(..., min_length=1, description="Catalog identifier")
    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    is_active: bool = Field(default=True, description="Whether the entry is in use")

    def to_document(self) -> dict:
        """Serialize to a storage document keyed by camelCase names with `_id`."""
        document = self.model_dump(by_alias=True)
        document["_id"] = document.pop("id")
        return document

    @classmethod
    def from_document(cls, document: dict):
        """Build a catalog entry from a storage document."""
        data = dict(document)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)
