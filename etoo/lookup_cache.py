"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Lookup cache of workspace entities.

The cache is filled once before any row is processed and maps natural keys
(user emails, entity names) to minimal entity references. Entities created
during the run (application modules, user tags) are added to it so that later
rows reuse them.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from etoo.core.config import ImportConfig
from etoo.entity_model import (
    application_module_fields,
    essential_fields,
    map_from_list,
    user_fields,
)
from etoo.octane_client import OctaneClient
from etoo.octane_models import EntityRef

logger = logging.getLogger("etoo.lookup_cache")

TEST_TYPE_LIST = "Test_Type"


class LookupStage(str, Enum):
    """Groups of lookups whose failure is reported with its own status."""

    ENTITIES = "entities"
    PHASES = "phases"
    USER_TAGS = "user_tags"


class LookupInitError(Exception):
    """Raised when a stage of the cache cannot be fetched from Octane."""

    def __init__(self, stage: LookupStage, cause: Exception):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Unable to initialize {stage.value}: {cause}")


def _email_key(email: str) -> str:
    return email.strip().lower()


@dataclass
class LookupCache:
    """
    Name and email keyed references to workspace entities.

    Attributes:
        users: Workspace users keyed by lowercase email
        phases: Manual test phases keyed by name
        user_tags: User tags keyed by name
        application_modules: Application modules keyed by name
        root_application_module: Application module without parent
        test_type_list_values: Values of the Test_Type list keyed by name
        default_test_type: Test type used for rows without one, if it exists
        default_user: User used when an owner or designer is unknown
        releases: Releases keyed by name, filled on first use (None caches a miss)
        default_release_name: Release used when a release value is unknown
        list_roots: List roots keyed by list name, filled on first use (None caches a miss)
    """

    root_application_module: EntityRef
    default_user: EntityRef
    users: dict[str, EntityRef] = field(default_factory=dict)
    phases: dict[str, EntityRef] = field(default_factory=dict)
    user_tags: dict[str, EntityRef] = field(default_factory=dict)
    application_modules: dict[str, EntityRef] = field(default_factory=dict)
    test_type_list_values: dict[str, EntityRef] = field(default_factory=dict)
    default_test_type: EntityRef | None = None
    releases: dict[str, EntityRef | None] = field(default_factory=dict)
    default_release_name: str = "1"
    list_roots: dict[str, EntityRef | None] = field(default_factory=dict)

    @classmethod
    def build(cls, client: OctaneClient, settings: ImportConfig) -> "LookupCache":
        """
        Fetch every lookup table from Octane.

        Raises
        ------
            LookupInitError: With the stage that failed

        """
        try:
            users = map_from_list(
                (user for user in client.get_users() if user.email),
                lambda user: _email_key(user.email),
                user_fields,
            )
            root_module = essential_fields(client.get_application_modules_root())
            modules = map_from_list(
                client.get_application_modules(),
                lambda module: module.name,
                application_module_fields,
            )
            test_types = map_from_list(
                client.get_list(TEST_TYPE_LIST), lambda item: item.name, essential_fields
            )
            default_user = users.get(_email_key(settings.default_user_email))
            if default_user is None:
                found = client.get_user_by_email(settings.default_user_email)
                if found is None:
                    raise LookupError(f"Default user {settings.default_user_email} not found")
                default_user = user_fields(found)
        except Exception as e:
            raise LookupInitError(LookupStage.ENTITIES, e) from e

        default_test_type = test_types.get(settings.default_test_type_name)
        if default_test_type is None:
            logger.warning(
                f"Default test type '{settings.default_test_type_name}' not found in list {TEST_TYPE_LIST}"
            )

        try:
            phases = map_from_list(client.get_phases(), lambda phase: phase.name, essential_fields)
        except Exception as e:
            raise LookupInitError(LookupStage.PHASES, e) from e

        try:
            user_tags = map_from_list(client.get_user_tags(), lambda tag: tag.name, essential_fields)
        except Exception as e:
            raise LookupInitError(LookupStage.USER_TAGS, e) from e

        logger.info(
            f"Lookup cache ready: {len(users)} users, {len(modules)} application modules, "
            f"{len(test_types)} test types, {len(phases)} phases, {len(user_tags)} user tags"
        )
        return cls(
            root_application_module=root_module,
            default_user=default_user,
            users=users,
            phases=phases,
            user_tags=user_tags,
            application_modules=modules,
            test_type_list_values=test_types,
            default_test_type=default_test_type,
            default_release_name=settings.default_release_name,
        )

    def user(self, email: str | None) -> EntityRef | None:
        if not email or not email.strip():
            return None
        return self.users.get(_email_key(email))

    def phase(self, name: str) -> EntityRef | None:
        return self.phases.get(name.strip())

    def test_type(self, name: str) -> EntityRef | None:
        return self.test_type_list_values.get(name.strip())

    def user_tag(self, name: str) -> EntityRef | None:
        return self.user_tags.get(name)

    def add_user_tag(self, tag: EntityRef) -> None:
        self.user_tags[tag.name] = tag

    def application_module(self, name: str) -> EntityRef | None:
        return self.application_modules.get(name)

    def add_application_module(self, module: EntityRef) -> None:
        self.application_modules[module.name] = module
