from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from gofi.paths import config_root, default_db_path, default_staging_path


@dataclass(slots=True)
class TransferConfig:
    host: str = "0.0.0.0"
    port: int = 1985
    chunk_size: int = 2048
    read_timeout: float = 30.0


@dataclass(slots=True)
class DatagramConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 1985
    max_size: int = 65507


@dataclass(slots=True)
class HTTPConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass(slots=True)
class MergeConfig:
    progress_every: int = 1000


@dataclass(slots=True)
class AppConfig:
    db_path: Path = field(default_factory=default_db_path)
    staging_dir: Path = field(default_factory=default_staging_path)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    datagram: DatagramConfig = field(default_factory=DatagramConfig)
    http: HTTPConfig = field(default_factory=HTTPConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _to_config(data: dict[str, Any]) -> AppConfig:
    return AppConfig(
        db_path=Path(data.get("db_path", str(default_db_path()))).expanduser(),
        staging_dir=Path(data.get("staging_dir", str(default_staging_path()))).expanduser(),
        transfer=TransferConfig(**data.get("transfer", {})),
        datagram=DatagramConfig(**data.get("datagram", {})),
        http=HTTPConfig(**data.get("http", {})),
        merge=MergeConfig(**data.get("merge", {})),
    )


def default_config_path() -> Path:
    return config_root() / "config.yaml"


def load_config(config_path: Path | None = None, overrides: dict[str, Any] | None = None) -> AppConfig:
    path = config_path or default_config_path()
    base: dict[str, Any] = {}
    if path.exists():
        loaded = yaml.safe_load(path.read_text())
        if isinstance(loaded, dict):
            base = loaded
    if overrides:
        base = _merge(base, overrides)
    cfg = _to_config(base)
    cfg.db_path.parent.mkdir(parents=True, exist_ok=True)
    cfg.staging_dir.mkdir(parents=True, exist_ok=True)
    return cfg


def write_default_config(path: Path | None = None) -> Path:
    target = path or default_config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        return target
    target.write_text(
        yaml.safe_dump(
            {
                "db_path": str(default_db_path()),
                "staging_dir": str(default_staging_path()),
                "transfer": {
                    "host": "0.0.0.0",
                    "port": 1985,
                    "chunk_size": 2048,
                    "read_timeout": 30.0,
                },
                "datagram": {
                    "enabled": True,
                    "host": "0.0.0.0",
                    "port": 1985,
                    "max_size": 65507,
                },
                "http": {"host": "127.0.0.1", "port": 8080},
                "merge": {"progress_every": 1000},
            },
            sort_keys=False,
        )
    )
    return target
