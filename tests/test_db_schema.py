from pathlib import Path

from gofi.db import UNIQUE_KEY, Database


REQUIRED_TABLES = {"files", "snapshots"}


def test_schema_tables_exist(tmp_path: Path) -> None:
    db = Database(tmp_path / "gofi.sqlite3")
    db.initialize()
    with db.connect() as conn:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type IN ('table','view')"
        ).fetchall()
    names = {r["name"] for r in rows}
    assert REQUIRED_TABLES.issubset(names)


def test_initialize_is_idempotent(tmp_path: Path) -> None:
    db = Database(tmp_path / "gofi.sqlite3")
    db.initialize()
    with db.connect() as conn:
        conn.execute(
            "INSERT INTO files(name, path, size, isdir, machine, ip) VALUES('a', '/a', 1, 0, 'm', '10.0.0.1')"
        )
    db.initialize()
    assert db.count() == 1


def test_composite_unique_key(tmp_path: Path) -> None:
    db = Database(tmp_path / "gofi.sqlite3")
    db.initialize()
    with db.connect() as conn:
        unique = [r for r in conn.execute("PRAGMA index_list(files)").fetchall() if r["origin"] == "u"]
        assert len(unique) == 1
        cols = conn.execute(f"PRAGMA index_info({unique[0]['name']})").fetchall()
    assert tuple(c["name"] for c in sorted(cols, key=lambda c: c["seqno"])) == UNIQUE_KEY
