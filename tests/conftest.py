"""Pytest configuration and fixtures."""

import json

import pytest

from revive.history import GLOBAL_PATTERNS


@pytest.fixture(autouse=True)
def clear_global_patterns():
    """The global fix-pattern map is process-wide; isolate every test."""
    GLOBAL_PATTERNS.clear()
    yield
    GLOBAL_PATTERNS.clear()


@pytest.fixture
def sample_package_json():
    """Sample package.json content for testing."""
    return """
{
  "name": "legacy-app",
  "scripts": {
    "build": "webpack",
    "test": "jest"
  },
  "dependencies": {
    "express": "^4.18.0",
    "node-sass": "^4.14.1",
    "lodash": "~4.17.21"
  },
  "devDependencies": {
    "node-sass": "^4.14.1",
    "jest": "^26.0.0"
  }
}
"""


@pytest.fixture
def node_repo(tmp_path, sample_package_json):
    """A repository directory holding package.json and an npm lockfile."""
    (tmp_path / "package.json").write_text(sample_package_json)
    (tmp_path / "package-lock.json").write_text("{}")
    return tmp_path
