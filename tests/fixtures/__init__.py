"""
Fixtures package for the etoo test suite.

This package provides an in-memory Octane workspace and builders for
import rows and workbooks.
"""

# Export Octane fixtures
from tests.fixtures.octane import (
    FakeOctaneClient,
    fake_client,
    import_settings,
    octane_config,
    run_context,
)
