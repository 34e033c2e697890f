"""
Test configuration and fixtures for the etoo project.

This file is the root pytest configuration file that sets up pytest
markers and imports fixtures from the fixtures modules to make them
available to all tests.
"""

import logging

import pytest

from etoo.core.logging import RedactionFilter

# Import fixtures from the fixtures modules to make them available to all tests
from tests.fixtures.octane import fake_client, import_settings, octane_config, run_context


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark a test as a unit test")
    config.addinivalue_line("markers", "integration: mark a test as an integration test")
    config.addinivalue_line("markers", "cli: mark a test that tests CLI functionality")


def _installed_by_etoo(handler: logging.Handler) -> bool:
    return any(isinstance(f, RedactionFilter) for f in handler.filters)


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo handlers installed by configure_logging so caplog keeps working."""
    root = logging.getLogger()
    root_level = root.level
    yield
    for logger in (logging.getLogger("etoo"), root):
        for handler in list(logger.handlers):
            if _installed_by_etoo(handler):
                logger.removeHandler(handler)
                handler.close()
    etoo_logger = logging.getLogger("etoo")
    etoo_logger.propagate = True
    etoo_logger.setLevel(logging.NOTSET)
    root.setLevel(root_level)
