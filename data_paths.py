"""Centralized helpers for resolving the storefront's data directory."""
from __future__ import annotations

import logging
import os
from pathlib import Path

LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent
DATA_DIR_ENV_VAR = "STOREFRONT_DATA_DIR"


def resolve_data_root() -> Path:
    """Return the configured data root without touching the filesystem."""
    override = os.environ.get(DATA_DIR_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return APP_ROOT / "data"


def ensure_data_root() -> Path:
    """Return the canonical data root, creating it as needed."""
    data_root = resolve_data_root()
    if not data_root.exists():
        LOGGER.info("Creating data directory %s", data_root)
    data_root.mkdir(parents=True, exist_ok=True)
    return data_root
