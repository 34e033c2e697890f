"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Reference resolution for manual test rows.

Each reference-valued column of a root row is resolved against the lookup
cache. Lookup misses never fail the row: they fall back to a default, omit the
field or drop the single value, and log a warning. Application modules and
user tags missing from the workspace are created on the fly and cached.
"""

import logging
from dataclasses import dataclass

import requests

from etoo.entity_model import EntityModelBuilder
from etoo.excel_import_row import ExcelImportRow
from etoo.octane_client import OctaneError
from etoo.octane_models import (
    FEATURES,
    PRODUCT_AREAS,
    USER_STORIES,
    USER_TAGS,
    WORK_ITEM_TYPE,
    EntityRef,
)
from etoo.run_context import RunContext

logger = logging.getLogger("etoo.reference_resolver")

# Returned by application module resolution when the test cannot be built
ABANDON = None

MIN_ESTIMATED_DURATION = 1
MAX_ESTIMATED_DURATION = 7000

USER_TAG_TYPE = "user_tag"


def split_values(cell: str) -> list[str]:
    """Split a comma separated cell into trimmed values, keeping empty ones."""
    return [value.strip() for value in cell.split(",")]


def _unique(refs: list[EntityRef]) -> list[EntityRef]:
    seen: set[str] = set()
    result = []
    for ref in refs:
        if ref.id not in seen:
            seen.add(ref.id)
            result.append(ref)
    return result


@dataclass
class ResolvedTest:
    """Resolved reference fields of one manual test row."""

    owner: EntityRef
    application_modules: list[EntityRef]
    designer: EntityRef | None = None
    phase: EntityRef | None = None
    test_types: list[EntityRef] | None = None
    user_tags: list[EntityRef] | None = None
    covered_content: list[EntityRef] | None = None
    estimated_duration: int | None = None

    def apply(self, builder: EntityModelBuilder) -> EntityModelBuilder:
        """Set the resolved fields on ``builder``; unresolved ones stay unset."""
        return (
            builder.owner(self.owner)
            .designer(self.designer)
            .phase(self.phase)
            .product_areas(self.application_modules)
            .test_types(self.test_types)
            .user_tags(self.user_tags)
            .covered_content(self.covered_content)
            .estimated_duration(self.estimated_duration)
        )


class ReferenceResolver:
    """Resolves the reference columns of root rows within one run."""

    def __init__(self, context: RunContext):
        self.context = context
        self.cache = context.cache
        self.client = context.client
        self.default_user_email = context.settings.default_user_email

    def resolve(self, row: ExcelImportRow) -> ResolvedTest | None:
        """
        Resolve every reference column of ``row``.

        Returns
        -------
            The resolved fields, or ``ABANDON`` when an application module could
            not be created and the test must not be built

        Raises
        ------
            OctaneError: If a missing user tag cannot be created

        """
        modules = self.application_modules(row)
        if modules is ABANDON:
            return ABANDON

        return ResolvedTest(
            owner=self.owner(row),
            application_modules=modules,
            designer=self.designer(row),
            phase=self.phase(row),
            test_types=self.test_types(row),
            user_tags=self.user_tags(row),
            covered_content=self.covered_content(row),
            estimated_duration=self.estimated_duration(row),
        )

    def owner(self, row: ExcelImportRow) -> EntityRef:
        owner = self.cache.user(row.owner)
        if owner is None:
            logger.warning(
                f"For the entity with unique_id \"{row.unique_id}\" the default value for owner "
                f"\"{self.default_user_email}\" was used instead of \"{row.owner}\""
            )
            return self.cache.default_user
        return owner

    def designer(self, row: ExcelImportRow) -> EntityRef | None:
        if row.designer is None:
            return None
        designer = self.cache.user(row.designer)
        if designer is None:
            logger.warning(
                f"For the entity with unique_id \"{row.unique_id}\" the default value for designer "
                f"\"{self.default_user_email}\" was used instead of \"{row.designer}\""
            )
            return self.cache.default_user
        return designer

    def phase(self, row: ExcelImportRow) -> EntityRef | None:
        if row.phase is None:
            return None
        phase = self.cache.phase(row.phase)
        if phase is None:
            logger.warning(
                f"Phase \"{row.phase}\" not found, the default phase is used for row with "
                f"unique_id \"{row.unique_id}\""
            )
        return phase

    def application_modules(self, row: ExcelImportRow) -> list[EntityRef] | None:
        """Resolve the application modules, creating missing ones under the root module."""
        root = self.cache.root_application_module
        if row.application_modules is None:
            logger.warning(
                f"For the entity with unique_id \"{row.unique_id}\" the root application module "
                f"\"{root.name}\" was used"
            )
            return [root]

        modules = []
        for name in split_values(row.application_modules):
            module = self._get_or_create_application_module(name)
            if module is None:
                return ABANDON
            modules.append(module)
        return _unique(modules)

    def _get_or_create_application_module(self, name: str) -> EntityRef | None:
        root = self.cache.root_application_module
        if name == "":
            return root

        module = self.cache.application_module(name)
        if module is not None:
            return module

        entity = EntityModelBuilder().name(name).parent(root).build()
        try:
            created = self.client.create_entity(PRODUCT_AREAS, entity)
        except (OctaneError, requests.exceptions.RequestException) as e:
            logger.error(f"Application module \"{name}\" could not be created: {e}")
            return None

        module = EntityRef(
            id=created["id"],
            name=name,
            type=created.get("type", "product_area"),
            parent=root,
        )
        self.cache.add_application_module(module)
        logger.info(f"Created application module \"{name}\" with id {module.id}")
        return module

    def test_types(self, row: ExcelImportRow) -> list[EntityRef] | None:
        """Resolve test types; unknown names are dropped."""
        if row.test_type is None:
            default = self.cache.default_test_type
            if default is None:
                logger.warning(
                    f"For the entity with unique_id \"{row.unique_id}\" no test type was set "
                    f"and no default test type exists"
                )
                return None
            logger.warning(
                f"For the entity with unique_id \"{row.unique_id}\" the default value for test type "
                f"\"{default.name}\" was used"
            )
            return [default]

        test_types = []
        for name in split_values(row.test_type):
            test_type = self.cache.test_type(name) if name else None
            if test_type is not None:
                test_types.append(test_type)
        return _unique(test_types)

    def user_tags(self, row: ExcelImportRow) -> list[EntityRef] | None:
        """Resolve user tags, creating the ones that do not exist yet."""
        if row.user_tags is None:
            return None

        tags = []
        for name in split_values(row.user_tags):
            if not name:
                continue
            tag = self.cache.user_tag(name)
            if tag is None:
                created = self.client.create_entity(
                    USER_TAGS, EntityModelBuilder().name(name).type(USER_TAG_TYPE).build()
                )
                tag = EntityRef(id=created["id"], name=name, type=created.get("type", USER_TAG_TYPE))
                self.cache.add_user_tag(tag)
                logger.info(f"Created user tag \"{name}\" with id {tag.id}")
            tags.append(tag)
        return _unique(tags)

    def covered_content(self, row: ExcelImportRow) -> list[EntityRef] | None:
        """Resolve covered stories or features by id, as work items."""
        if row.covered_content is None:
            return None

        covered = []
        for raw_id in split_values(row.covered_content):
            if not raw_id:
                continue
            try:
                entity_id = str(int(float(raw_id)))
            except (ValueError, OverflowError):
                logger.warning(
                    f"For the entity with unique_id \"{row.unique_id}\" the covered content "
                    f"\"{raw_id}\" is not a valid id and will not be used"
                )
                continue

            entity = self.client.get_entity_with_essential_fields(USER_STORIES, entity_id)
            if entity is None:
                entity = self.client.get_entity_with_essential_fields(FEATURES, entity_id)
            if entity is None:
                logger.warning(
                    f"For the entity with unique_id \"{row.unique_id}\" the covered content with "
                    f"id \"{entity_id}\" was not found in Octane"
                )
                continue
            covered.append(entity.with_type(WORK_ITEM_TYPE))
        return _unique(covered)

    def estimated_duration(self, row: ExcelImportRow) -> int | None:
        duration = row.estimated_duration
        if duration is None:
            return None
        if not MIN_ESTIMATED_DURATION <= duration <= MAX_ESTIMATED_DURATION:
            logger.warning(
                f"For the entity with unique_id \"{row.unique_id}\" the estimated duration "
                f"{duration} is out of range and was not used"
            )
            return None
        return duration
