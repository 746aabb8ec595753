import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Environment overrides would redirect every config and store path.
os.environ.pop("POLYFORK_CONFIG", None)
os.environ.pop("POLYFORK_STORE", None)

from polyfork.lib.log import configure_logging
from polyfork.storage import ForkNodeStore, ForkNodesService

configure_logging(verbose=False)


@pytest.fixture
def store_path(tmp_path) -> Path:
    return tmp_path / "state" / "fork-nodes.json"


@pytest.fixture
def store(store_path) -> ForkNodeStore:
    return ForkNodeStore(store_path)


@pytest.fixture
def service(store) -> ForkNodesService:
    return ForkNodesService.local(store)
