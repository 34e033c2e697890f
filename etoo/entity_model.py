"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Entity construction for Octane requests.

This module provides the fluent builder used to assemble manual tests and
minimal references, plus helpers that reduce remote entities to the fields
kept in the lookup cache.
"""

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from etoo.octane_models import EntityRef

T = TypeVar("T")
K = TypeVar("K")
V = TypeVar("V")

Reference = EntityRef | dict[str, Any]


def _reference(value: Reference) -> dict[str, Any]:
    if isinstance(value, EntityRef):
        return value.as_reference()
    return dict(value)


def _multi_reference(values: Iterable[Reference]) -> dict[str, list[dict[str, Any]]]:
    return {"data": [_reference(value) for value in values]}


class EntityModelBuilder:
    """
    Accumulates entity fields and emits only the ones that were set.

    Setters return the builder so calls can be chained. Passing ``None`` to a
    setter leaves the field unset, so optional values can be forwarded without
    checks at the call site.
    """

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}

    def _set(self, name: str, value: Any) -> "EntityModelBuilder":
        if value is not None:
            self._fields[name] = value
        return self

    def id(self, value: str | None) -> "EntityModelBuilder":
        return self._set("id", value)

    def name(self, value: str | None) -> "EntityModelBuilder":
        return self._set("name", value)

    def type(self, value: str | None) -> "EntityModelBuilder":
        return self._set("type", value)

    def email(self, value: str | None) -> "EntityModelBuilder":
        return self._set("email", value)

    def description(self, value: str | None) -> "EntityModelBuilder":
        return self._set("description", value)

    def estimated_duration(self, value: int | None) -> "EntityModelBuilder":
        return self._set("estimated_duration", value)

    def owner(self, value: Reference | None) -> "EntityModelBuilder":
        return self._set("owner", _reference(value) if value is not None else None)

    def designer(self, value: Reference | None) -> "EntityModelBuilder":
        return self._set("designer", _reference(value) if value is not None else None)

    def phase(self, value: Reference | None) -> "EntityModelBuilder":
        return self._set("phase", _reference(value) if value is not None else None)

    def parent(self, value: Reference | None) -> "EntityModelBuilder":
        return self._set("parent", _reference(value) if value is not None else None)

    def test_types(self, values: Iterable[Reference] | None) -> "EntityModelBuilder":
        return self._set("test_type", _multi_reference(values) if values is not None else None)

    def user_tags(self, values: Iterable[Reference] | None) -> "EntityModelBuilder":
        return self._set("user_tags", _multi_reference(values) if values is not None else None)

    def product_areas(self, values: Iterable[Reference] | None) -> "EntityModelBuilder":
        return self._set(
            "product_areas", _multi_reference(values) if values is not None else None
        )

    def covered_content(self, values: Iterable[Reference] | None) -> "EntityModelBuilder":
        return self._set(
            "covered_content", _multi_reference(values) if values is not None else None
        )

    def field(self, name: str, value: Any) -> "EntityModelBuilder":
        """Set an arbitrary field, e.g. a user-defined field."""
        return self._set(name, value)

    def build(self) -> dict[str, Any]:
        return dict(self._fields)


def _get(entity: EntityRef | dict[str, Any], key: str) -> Any:
    if isinstance(entity, EntityRef):
        return getattr(entity, key)
    return entity.get(key)


def essential_fields(entity: EntityRef | dict[str, Any]) -> EntityRef:
    """Reduce an entity to its id, name and type."""
    return EntityRef(id=_get(entity, "id"), name=_get(entity, "name"), type=_get(entity, "type"))


def user_fields(entity: EntityRef | dict[str, Any]) -> EntityRef:
    """Reduce a user to its id, name, type and email."""
    return EntityRef(
        id=_get(entity, "id"),
        name=_get(entity, "name"),
        type=_get(entity, "type"),
        email=_get(entity, "email"),
    )


def application_module_fields(entity: EntityRef | dict[str, Any]) -> EntityRef:
    """Reduce an application module to its id, name, type and parent."""
    parent = _get(entity, "parent")
    return EntityRef(
        id=_get(entity, "id"),
        name=_get(entity, "name"),
        type=_get(entity, "type"),
        parent=essential_fields(parent) if parent and _get(parent, "id") else None,
    )


def map_from_list(
    items: Iterable[T],
    key_fn: Callable[[T], K],
    value_fn: Callable[[T], V],
) -> dict[K, V]:
    """Index ``items`` by ``key_fn``; later items win on duplicate keys."""
    return {key_fn(item): value_fn(item) for item in items}
