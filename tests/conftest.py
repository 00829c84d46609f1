"""
Shared fixtures for the UCASA test suite.

The database URL is pinned to in-memory SQLite before any `src` module
reads the settings, so the app and repository tests never touch disk.
"""

from __future__ import annotations

import os

os.environ.setdefault("UCASA_DB_URL", "sqlite://")

import pytest  # noqa: E402

from helpers import RecordingEmitter  # noqa: E402


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()
