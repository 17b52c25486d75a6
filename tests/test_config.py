from pathlib import Path

import yaml

from gofi.config import load_config, write_default_config


def test_yaml_overrides_merge_over_defaults(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        yaml.safe_dump(
            {
                "db_path": str(tmp_path / "catalog" / "gofi.sqlite3"),
                "staging_dir": str(tmp_path / "incoming"),
                "transfer": {"port": 2000},
            }
        )
    )

    cfg = load_config(cfg_path, overrides={"transfer": {"read_timeout": 5}, "http": {"port": 9090}})

    assert cfg.transfer.port == 2000
    assert cfg.transfer.chunk_size == 2048
    assert cfg.transfer.read_timeout == 5
    assert cfg.http.port == 9090
    assert cfg.datagram.port == 1985
    assert cfg.db_path.parent.is_dir()
    assert cfg.staging_dir.is_dir()


def test_default_config_is_written_once(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    write_default_config(target)
    data = yaml.safe_load(target.read_text())
    assert data["transfer"] == {"host": "0.0.0.0", "port": 1985, "chunk_size": 2048, "read_timeout": 30.0}

    target.write_text("merge:\n  progress_every: 5\n")
    write_default_config(target)
    assert load_config(target).merge.progress_every == 5
