"""
Pytest configuration for the producer tests.

Puts the repository root on the Python path so the tests can import the
top-level modules without installing the project first.
"""

import logging
import sys
from pathlib import Path

# Add the parent directory to the Python path
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import pytest

from poll import ChannelProducer


@pytest.fixture
def channel():
    return ChannelProducer()


@pytest.fixture
def restore_log_level():
    """Put the root logger level back after a test changes it."""
    root = logging.getLogger()
    original = root.level
    yield root
    root.setLevel(original)
