from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True, frozen=True)
class FileRecord:
    name: str
    path: str
    size: int
    is_dir: bool
    machine: str
    ip: str
    external: bool = False
    external_name: str = ""
    filetype: str = ""
    filemime: str = ""
    hash: str = ""
    modified: str = ""
    id: int | None = None

    def key(self) -> tuple[str, str, str, bool, str, str]:
        return (self.path, self.machine, self.ip, self.external, self.external_name, self.hash)


@dataclass(slots=True)
class ReceivedSnapshot:
    path: Path
    name: str
    size: int
