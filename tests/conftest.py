"""Shared fixtures."""

import pytest

from readlite.logging import init_logger


@pytest.fixture(autouse=True)
def event_logger(tmp_path):
    """Keep event logs out of the home directory."""
    return init_logger("test-model", log_dir=tmp_path / "logs", debug=True)
