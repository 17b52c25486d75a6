from __future__ import annotations

from pydantic import BaseModel


class FileRowOutput(BaseModel):
    id: int
    name: str
    path: str
    size: int
    size_human: str
    is_dir: bool
    machine: str
    ip: str
    external: bool = False
    external_name: str = ""
    filetype: str = ""
    filemime: str = ""
    hash: str = ""
    modified: str = ""


class FacetsOutput(BaseModel):
    filetypes: list[str] = []
    machines: list[str] = []
    mimes: list[str] = []


class CatalogViewOutput(BaseModel):
    rows: list[FileRowOutput] = []
    total: int
    limit: int
    order_by: str
    order: str
    filters: str
    facets: FacetsOutput


class SnapshotOutput(BaseModel):
    name: str
    received_at: str
    record_count: int
    inserted: int
    skipped: int


class StatusOutput(BaseModel):
    db_path: str
    staging_dir: str
    files: int
    machines: int
    staged: int
    snapshots: list[SnapshotOutput] = []
