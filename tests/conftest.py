"""Common fixtures for tests."""

import pytest

from tests.mock_utils import patch_mockfirestore


@pytest.fixture(autouse=True, scope="session")
def _patched_mockfirestore():
    """Make mockfirestore accept the keyword arguments the real client takes."""
    patch_mockfirestore()
