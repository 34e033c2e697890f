"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Background upload of step scripts.

Scripts are uploaded once their test exists in Octane. Uploads do not feed back
into row processing, so they run on a thread pool while the driver moves on to
the next rows; the driver drains the pool before reading the final counters.
"""

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor, wait

from etoo.core.logging import ErrorTracker
from etoo.migration_status import MigrationStatus
from etoo.octane_client import OctaneClient
from etoo.step_assembler import StepScript, build_script_body

logger = logging.getLogger("etoo.upload_pool")


def default_worker_count() -> int:
    return max(1, (os.cpu_count() or 2) - 1)


class StepUploadPool:
    """
    Thread pool uploading test scripts.

    A successful upload adds the test's step count to ``uploaded_steps``; a
    failed one adds it to ``failed_steps`` and logs the error.
    """

    def __init__(
        self,
        client: OctaneClient,
        status: MigrationStatus,
        max_workers: int | None = None,
        error_tracker: ErrorTracker | None = None,
    ):
        self.client = client
        self.status = status
        self.error_tracker = error_tracker
        self.max_workers = max_workers or default_worker_count()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="etoo-upload"
        )
        self._futures: list[Future] = []

    def submit(self, test_id: str, script: StepScript) -> Future:
        """Queue the upload of ``script`` for the test ``test_id``."""
        future = self._executor.submit(
            self._upload, test_id, build_script_body(script), script.step_count
        )
        self._futures.append(future)
        return future

    def _upload(self, test_id: str, body: str, step_count: int) -> bool:
        try:
            self.client.update_test_script(test_id, body)
        except Exception as e:
            self.status.add_failed_steps(step_count)
            logger.error(f"Error uploading the script of manual test {test_id}: {e}")
            if self.error_tracker is not None:
                self.error_tracker.add_error(
                    e, {"test_id": test_id, "steps": step_count}, log=False
                )
            return False

        self.status.add_uploaded_steps(step_count)
        logger.info(f"Uploaded {step_count} steps for test with id: {test_id}")
        return True

    def drain(self) -> None:
        """Wait for every queued upload and shut the pool down."""
        if self._futures:
            logger.debug(f"Waiting for {len(self._futures)} script uploads")
            wait(self._futures)
        self._executor.shutdown(wait=True)
        self._futures = []

    def __enter__(self) -> "StepUploadPool":
        return self

    def __exit__(self, *exc_info) -> None:
        self.drain()
