from __future__ import annotations

from dataclasses import dataclass, field
import re
import sqlite3
from typing import Any, Mapping

DEFAULT_LIMIT = 100
MAX_LIMIT_DIGITS = 4
DEFAULT_ORDER_BY = "name"

_NOT_DIGITS = re.compile(r"[^0-9]")
_NOT_LETTERS = re.compile(r"[^A-Za-z]")
_NOT_MIME = re.compile(r"[^A-Za-z0-9/;\-=_ ]")

SORTABLE_COLUMNS = {
    "id",
    "name",
    "path",
    "size",
    "isdir",
    "machine",
    "ip",
    "external",
    "filetype",
    "filemime",
    "hash",
    "modified",
}

# Facet name -> catalog column.
FACET_COLUMNS = {
    "filetypes": "filetype",
    "machines": "machine",
    "mimes": "filemime",
}

SIZE_UNITS = "kMGTPE"

ROW_SELECT = """
SELECT id, name, path, size, isdir, machine, ip, external, external_name,
       filetype, filemime, hash, modified
FROM files
"""


def keep_digits(value: str) -> str:
    return _NOT_DIGITS.sub("", value)


def keep_letters(value: str) -> str:
    return _NOT_LETTERS.sub("", value)


def keep_mime(value: str) -> str:
    return _NOT_MIME.sub("", value)


def format_size(size: int) -> str:
    """Decimal (SI) size string: 999 -> '999 B', 1500 -> '1.5 kB'."""
    if size < 1000:
        return f"{size} B"
    div, exp = 1000, 0
    n = size // 1000
    while n >= 1000 and exp < len(SIZE_UNITS) - 1:
        div *= 1000
        exp += 1
        n //= 1000
    return f"{size / div:.1f} {SIZE_UNITS[exp]}B"


def _first(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    if value is None:
        return ""
    return str(value)


def _filter_value(raw: str, cleaned: str) -> str | None:
    if raw.strip() in {"", "*"} or not cleaned:
        return None
    return cleaned


@dataclass(slots=True)
class CatalogQuery:
    limit: int = DEFAULT_LIMIT
    order_by: str = DEFAULT_ORDER_BY
    order: str = "desc"
    filetype: str | None = None
    machine: str | None = None
    filemime: str | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "CatalogQuery":
        """Sanitize untrusted request parameters.

        Every value is reduced to an allow-listed character set; anything
        unusable falls back to the default rather than being rejected.
        """
        limit_raw = keep_digits(_first(params.get("limit")))
        if not limit_raw or len(limit_raw) > MAX_LIMIT_DIGITS:
            limit = DEFAULT_LIMIT
        else:
            limit = int(limit_raw)

        order_by = keep_letters(_first(params.get("order_by"))).lower()
        if order_by not in SORTABLE_COLUMNS:
            order_by = DEFAULT_ORDER_BY

        order = "asc" if keep_letters(_first(params.get("order"))) == "asc" else "desc"

        filetype_raw = _first(params.get("filetype"))
        machine_raw = _first(params.get("machine"))
        filemime_raw = _first(params.get("filemime"))
        return cls(
            limit=limit,
            order_by=order_by,
            order=order,
            filetype=_filter_value(filetype_raw, keep_letters(filetype_raw)),
            machine=_filter_value(machine_raw, keep_letters(machine_raw)),
            filemime=_filter_value(filemime_raw, keep_mime(filemime_raw)),
        )

    def where(self) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        args: list[Any] = []
        if self.filetype:
            clauses.append("filetype = ?")
            args.append(self.filetype)
        if self.machine:
            clauses.append("machine = ?")
            args.append(self.machine)
        if self.filemime:
            clauses.append("filemime = ?")
            args.append(self.filemime)
        if not clauses:
            return "", args
        return "WHERE " + " AND ".join(clauses), args

    def describe(self) -> str:
        parts: list[str] = []
        if self.filetype:
            parts.append(f"file type {self.filetype}")
        if self.machine:
            parts.append(f"machine {self.machine}")
        if self.filemime:
            parts.append(f"mime type {self.filemime}")
        if not parts:
            return "all files"
        return "files with " + " and ".join(parts)


@dataclass(slots=True)
class Facets:
    filetypes: list[str] = field(default_factory=list)
    machines: list[str] = field(default_factory=list)
    mimes: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CatalogView:
    query: CatalogQuery
    rows: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    facets: Facets = field(default_factory=Facets)

    @property
    def description(self) -> str:
        return self.query.describe()


def _row_dict(row: sqlite3.Row) -> dict[str, Any]:
    size = int(row["size"])
    return {
        "id": int(row["id"]),
        "name": str(row["name"]),
        "path": str(row["path"]),
        "size": size,
        "size_human": format_size(size),
        "is_dir": bool(row["isdir"]),
        "machine": str(row["machine"]),
        "ip": str(row["ip"]),
        "external": bool(row["external"]),
        "external_name": str(row["external_name"]),
        "filetype": str(row["filetype"]),
        "filemime": str(row["filemime"]),
        "hash": str(row["hash"]),
        "modified": str(row["modified"]),
    }


def facet_values(conn: sqlite3.Connection, column: str) -> list[str]:
    if column not in FACET_COLUMNS.values():
        raise ValueError(f"not a facet column: {column}")
    rows = conn.execute(
        f"SELECT DISTINCT {column} AS value FROM files WHERE {column} != '' ORDER BY {column} ASC"
    ).fetchall()
    return [str(r["value"]) for r in rows]


def facets(conn: sqlite3.Connection) -> Facets:
    return Facets(**{name: facet_values(conn, column) for name, column in FACET_COLUMNS.items()})


def run_query(conn: sqlite3.Connection, query: CatalogQuery) -> CatalogView:
    where, args = query.where()
    # One read transaction so rows, total and facets see the same catalog state.
    if not conn.in_transaction:
        conn.execute("BEGIN")
    # Column and direction come from fixed sets; only values are bound.
    direction = "ASC" if query.order == "asc" else "DESC"
    sql = f"{ROW_SELECT} {where} ORDER BY {query.order_by} {direction}, id {direction} LIMIT ?"
    rows = conn.execute(sql, [*args, query.limit]).fetchall()
    total = conn.execute(f"SELECT COUNT(*) AS n FROM files {where}", args).fetchone()
    return CatalogView(
        query=query,
        rows=[_row_dict(r) for r in rows],
        total=int(total["n"]),
        facets=facets(conn),
    )
