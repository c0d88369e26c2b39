"""
Pytest configuration and fixtures for the confidential VM tests.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pulumi
import pytest

# The project modules live at the repository root, next to __main__.py.
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))


class ConfidentialVmMocks(pulumi.runtime.Mocks):
    """Echo resource inputs back as outputs instead of calling Google Cloud."""

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        return [f"{args.name}_id", args.inputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        return {}


pulumi.runtime.set_mocks(ConfidentialVmMocks(), preview=False)


class FakeConfig:
    """Stand-in for pulumi.Config backed by a plain dict."""

    def __init__(self, values=None):
        self.values = values or {}

    def get(self, key):
        return self.values.get(key)

    def get_int(self, key):
        value = self.values.get(key)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            raise pulumi.ConfigTypeError(key, value, "int")

    def get_bool(self, key):
        value = self.values.get(key)
        if value is None:
            return None
        return value in ("true", "True", True)


@pytest.fixture
def fake_config():
    return FakeConfig


@pytest.fixture
def repo_root():
    return ROOT


@pytest.fixture
def mock_docker_client():
    """Mock Docker client for testing."""
    client = MagicMock()
    client.ping.return_value = True
    client.images.build.return_value = (MagicMock(), iter([]))
    client.images.push.return_value = iter(
        [
            {"status": "Preparing"},
            {"status": "Pushed"},
            {"status": "latest: digest: sha256:abc size: 1234"},
        ]
    )
    return client
