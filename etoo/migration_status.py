"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Migration outcome tracking.

Holds the per-run counters of migrated and failed tests and steps, and derives
the final status reported to the user from them.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Status(str, Enum):
    """Outcome of an initialization or migration run."""

    # Initialization
    INIT_SHEET_FAILED = "INIT_SHEET_FAILED"  # Spreadsheet could not be read
    INIT_OCTANE_FAILED = "INIT_OCTANE_FAILED"  # Client creation or sign in failed
    INIT_ENTITIES_FAILED = "INIT_ENTITIES_FAILED"  # Users, modules, test types or default user
    INIT_PHASES_FAILED = "INIT_PHASES_FAILED"
    INIT_USER_TAGS_FAILED = "INIT_USER_TAGS_FAILED"
    INIT_SUCCESS = "INIT_SUCCESS"
    CANNOT_MIGRATE = "CANNOT_MIGRATE"  # Migration requested without a successful init

    # Migration
    EMPTY_FILE = "EMPTY_FILE"
    INCORRECT_FILE = "INCORRECT_FILE"
    NO_TESTS_WERE_MIGRATED = "NO_TESTS_WERE_MIGRATED"
    NOT_ALL_TESTS_WERE_MIGRATED = "NOT_ALL_TESTS_WERE_MIGRATED"
    NOT_ALL_STEPS_WERE_UPLOADED = "NOT_ALL_STEPS_WERE_UPLOADED"
    NOT_ALL_TESTS_AND_STEPS_WERE_MIGRATED = "NOT_ALL_TESTS_AND_STEPS_WERE_MIGRATED"
    SUCCESS = "SUCCESS"


class MigrationStatus:
    """
    Thread-safe counters of one migration run.

    Test counters are updated by the driver; step counters are also updated
    from the upload pool's worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.migrated_tests = 0
        self.failed_tests = 0
        self.uploaded_steps = 0
        self.failed_steps = 0

    def add_migrated_test(self) -> None:
        with self._lock:
            self.migrated_tests += 1

    def add_failed_test(self) -> None:
        with self._lock:
            self.failed_tests += 1

    def add_uploaded_steps(self, count: int) -> None:
        with self._lock:
            self.uploaded_steps += count

    def add_failed_steps(self, count: int = 1) -> None:
        with self._lock:
            self.failed_steps += count

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "migrated_tests": self.migrated_tests,
                "failed_tests": self.failed_tests,
                "uploaded_steps": self.uploaded_steps,
                "failed_steps": self.failed_steps,
            }


def compute_status(status: MigrationStatus) -> Status:
    """
    Derive the final status from the counters.

    A run without any test root row is ``EMPTY_FILE``. Otherwise failures of
    both tests and steps win over the narrower partial statuses, and a run where
    every test failed is ``NO_TESTS_WERE_MIGRATED``.
    """
    counters = status.snapshot()
    migrated = counters["migrated_tests"]
    failed_tests = counters["failed_tests"]
    failed_steps = counters["failed_steps"]

    if migrated == 0 and failed_tests == 0:
        return Status.EMPTY_FILE
    if failed_tests and failed_steps:
        return Status.NOT_ALL_TESTS_AND_STEPS_WERE_MIGRATED
    if failed_tests and migrated == 0:
        return Status.NO_TESTS_WERE_MIGRATED
    if failed_steps:
        return Status.NOT_ALL_STEPS_WERE_UPLOADED
    if failed_tests:
        return Status.NOT_ALL_TESTS_WERE_MIGRATED
    return Status.SUCCESS


@dataclass
class MigrationSummary:
    """
    Result of a migration run as shown to the user.

    Attributes:
        status: Final status of the run
        migrated_tests: Number of tests created in Octane
        failed_tests: Number of test rows that could not be created
        uploaded_steps: Number of steps uploaded with their test script
        failed_steps: Number of steps skipped or not uploaded
        errors: Error summary from the run's error tracker
    """

    status: Status
    migrated_tests: int = 0
    failed_tests: int = 0
    uploaded_steps: int = 0
    failed_steps: int = 0
    errors: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_status(
        cls, status: Status, counters: MigrationStatus, errors: dict[str, Any] | None = None
    ) -> "MigrationSummary":
        return cls(status=status, errors=errors or {}, **counters.snapshot())

    @property
    def succeeded(self) -> bool:
        return self.status == Status.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "migrated_tests": self.migrated_tests,
            "failed_tests": self.failed_tests,
            "uploaded_steps": self.uploaded_steps,
            "failed_steps": self.failed_steps,
            "errors": self.errors,
        }
