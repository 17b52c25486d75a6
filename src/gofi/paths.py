from __future__ import annotations

from pathlib import Path
import os

APP_NAME = "gofi"


def cache_root() -> Path:
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        base = Path(xdg)
    else:
        base = Path.home() / ".cache"
    root = base / APP_NAME
    root.mkdir(parents=True, exist_ok=True)
    return root


def config_root() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        base = Path(xdg)
    else:
        base = Path.home() / ".config"
    root = base / APP_NAME
    root.mkdir(parents=True, exist_ok=True)
    return root


def default_db_path() -> Path:
    return cache_root() / "gofi.sqlite3"


def default_staging_path() -> Path:
    return cache_root() / "staging"
