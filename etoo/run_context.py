"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""State shared by the components of one import run."""

from dataclasses import dataclass, field

from etoo.core.config import ImportConfig
from etoo.core.logging import ErrorTracker
from etoo.lookup_cache import LookupCache
from etoo.migration_status import MigrationStatus
from etoo.octane_client import OctaneClient


@dataclass
class RunContext:
    """
    Everything one run reads and mutates.

    A new context is created per run, so counters, caches and the
    ``unique_id -> remote id`` map never leak between runs.
    """

    settings: ImportConfig
    client: OctaneClient
    cache: LookupCache
    status: MigrationStatus = field(default_factory=MigrationStatus)
    migrated_tests_ids: dict[str, str] = field(default_factory=dict)
    error_tracker: ErrorTracker = field(default_factory=ErrorTracker)

    def record_migrated_test(self, unique_id: str | None, remote_id: str) -> None:
        """Remember the remote id of a created test and count it as migrated."""
        if unique_id is not None:
            self.migrated_tests_ids[unique_id] = remote_id
        self.status.add_migrated_test()
