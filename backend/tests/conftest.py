import sys
from pathlib import Path

import pytest


# Ensure `backend/` is on sys.path so tests can import local modules
# like `vnb.*`, `geo.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture
def config(monkeypatch):
    from catalog.registry import clear_registry_cache, get_dataset

    monkeypatch.delenv("VNB_DATA_BASE_URL", raising=False)
    monkeypatch.delenv("VNB_DATASET", raising=False)
    clear_registry_cache()
    return get_dataset("germany")


@pytest.fixture
def store(config):
    from state.store import StateStore

    return StateStore.from_config(config)
