import os
import sys

import pytest

# Ensure repository root is on sys.path before importing project modules.
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from event_meter.clock import ManualClock  # noqa: E402
from event_meter.stats import default_stats  # noqa: E402


@pytest.fixture(autouse=True)
def reset_stats():
    default_stats.reset()
    yield
    default_stats.reset()


@pytest.fixture
def clock():
    return ManualClock(start=1_700_000_000)
