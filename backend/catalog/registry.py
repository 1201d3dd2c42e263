from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable

import yaml

from catalog.types import DatasetConfig

DEFAULT_DATASET_ID = "germany"


def _datasets_root() -> Path:
    override = os.getenv("VNB_DATASETS_DIR")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[2] / "datasets"


@dataclass(frozen=True)
class DatasetEntry:
    config: DatasetConfig
    source: Path


def _dataset_files() -> Iterable[Path]:
    root = _datasets_root()
    if not root.is_dir():
        return []
    return sorted(root.glob("*/dataset.yaml"))


def _load_yaml(path: Path) -> dict:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid dataset yaml root: {path}")
    return data


@lru_cache(maxsize=1)
def get_registry() -> dict[str, DatasetEntry]:
    out: dict[str, DatasetEntry] = {}
    for path in _dataset_files():
        cfg = DatasetConfig.model_validate(_load_yaml(path))
        out[cfg.id] = DatasetEntry(config=cfg, source=path)
    return out


def default_dataset_id() -> str:
    env = (os.getenv("VNB_DATASET") or "").strip()
    reg = get_registry()
    if env and env in reg:
        return env
    if DEFAULT_DATASET_ID in reg or not reg:
        return DEFAULT_DATASET_ID
    return next(iter(reg.keys()))


def get_dataset(dataset_id: str | None = None) -> DatasetConfig:
    """
    Resolve a dataset config, applying environment overrides.

    `VNB_DATA_BASE_URL` replaces the configured base URL so the same YAML works
    against a dev server and a static deployment.
    """
    reg = get_registry()
    if not reg:
        raise RuntimeError("No datasets discovered under `datasets/*/dataset.yaml`")
    did = (dataset_id or "").strip() or default_dataset_id()
    if did not in reg:
        raise KeyError(f"Unknown dataset: {did}")
    cfg = reg[did].config
    base_url = (os.getenv("VNB_DATA_BASE_URL") or "").strip()
    if base_url:
        cfg = cfg.model_copy(update={"baseUrl": base_url})
    return cfg


def http_timeout_s() -> float | None:
    raw = (os.getenv("VNB_HTTP_TIMEOUT_S") or "").strip()
    if not raw:
        return None
    try:
        v = float(raw)
    except ValueError:
        return None
    return v if v > 0 else None


def clear_registry_cache() -> None:
    """Forget discovered datasets so the next lookup re-reads the YAML files."""
    get_registry.cache_clear()
