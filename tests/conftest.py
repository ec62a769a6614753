import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

# Prefer the in-tree package over any installed copy.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from rpc_stats.stats.memory import InMemoryStatsReceiver  # noqa: E402


@pytest.fixture
def receiver() -> InMemoryStatsReceiver:
    return InMemoryStatsReceiver()
