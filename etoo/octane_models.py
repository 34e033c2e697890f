"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Octane Models module.

This module provides Pydantic models for the ALM Octane entities the importer
reads and references: minimal entity references kept in the lookup cache and
the paged collection responses returned by the REST API.
"""

from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator

# Collection names of the workspace REST API
PHASES = "phases"
RELEASES = "releases"
FEATURES = "features"
USER_TAGS = "user_tags"
USER_STORIES = "stories"
USERS = "workspace_users"
LIST_NODES = "list_nodes"
MANUAL_TESTS = "manual_tests"
PRODUCT_AREAS = "product_areas"

MANUAL_TEST_TYPE = "test_manual"
STEP_TYPE = "step"
WORK_ITEM_TYPE = "work_item"


class EntityRef(BaseModel):
    """
    Minimal reference to a remote Octane entity.

    Only the fields needed to reference the entity later are kept: id, name and
    type, plus the email for users and the parent for application modules.
    """

    id: str = Field(..., description="Remote entity id")
    name: str | None = Field(None, description="Display name of the entity")
    type: str | None = Field(None, description="Octane entity type, e.g. workspace_user")
    email: str | None = Field(None, description="Email, only for users")
    parent: "EntityRef | None" = Field(None, description="Parent, only for application modules")

    REFERENCE_FIELDS: ClassVar[tuple[str, ...]] = ("type", "id", "name")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, value):
        """Octane returns ids as strings, but accept numbers too."""
        if value is None or str(value).strip() == "":
            raise ValueError("id must not be empty")
        return str(value)

    @field_validator("parent", mode="before")
    @classmethod
    def validate_parent(cls, value):
        """Treat parents without an id (the root module's parent) as absent."""
        if isinstance(value, dict) and not value.get("id"):
            return None
        return value

    @classmethod
    def from_entity(cls, data: dict[str, Any]) -> "EntityRef":
        """Create a reference from a raw entity returned by the REST API."""
        return cls.model_validate(data)

    def as_reference(self) -> dict[str, Any]:
        """Return the JSON used to reference this entity from another entity."""
        return {key: value for key, value in self.model_dump().items()
                if key in self.REFERENCE_FIELDS and value is not None}

    def with_type(self, entity_type: str) -> "EntityRef":
        """Return a copy of this reference with its type overwritten."""
        return self.model_copy(update={"type": entity_type})


EntityRef.model_rebuild()


class OctaneCollectionResponse(BaseModel):
    """Represents one page of a collection GET."""

    total_count: int | None = Field(None, description="Total number of matching entities")
    data: list[dict[str, Any]] = Field(default_factory=list)
    exceeds_total_count: bool | None = None

    def is_last(self, offset: int) -> bool:
        """Return True when no entity follows the page starting at ``offset``."""
        if not self.data:
            return True
        if self.total_count is None:
            return False
        return offset + len(self.data) >= self.total_count
