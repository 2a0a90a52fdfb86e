"""Root pytest configuration for all tests."""

from __future__ import annotations

import logging

import pytest

from layerconf.logging import reset_logging
from tests.utils import InMemoryFileSystem

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture
def file_system():
    """An empty in-memory file system that counts reads."""
    return InMemoryFileSystem()


@pytest.fixture
def clean_logging():
    """Reset layerconf logging before and after a test."""
    reset_logging()
    yield logging.getLogger("layerconf")
    reset_logging()
