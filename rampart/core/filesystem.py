"""Filesystem access for configuration resources.

Resources are addressed by absolute host paths such as ``/etc/login.defs``.
:class:`LocalFilesystem` maps those paths below a target root so the engine can
operate on an offline tree or a test directory; :class:`MemoryFilesystem`
keeps everything in a dictionary for unit tests.
"""
from __future__ import annotations

import posixpath
import shutil
from pathlib import Path
from typing import Dict, List, Protocol


def _normalise(path: str) -> str:
    if not path.startswith("/"):
        raise ValueError(f"Resource paths must be absolute: {path!r}")
    return posixpath.normpath(path)


class Filesystem(Protocol):
    """Operations the engine needs from a filesystem."""

    root: str

    def exists(self, path: str) -> bool: ...

    def is_dir(self, path: str) -> bool: ...

    def read_bytes(self, path: str) -> bytes: ...

    def write_bytes(self, path: str, data: bytes) -> None: ...

    def read_text(self, path: str) -> str: ...

    def write_text(self, path: str, text: str) -> None: ...

    def copy(self, src: str, dst: str) -> None: ...

    def remove(self, path: str) -> None: ...

    def rmtree(self, path: str) -> None: ...

    def chmod(self, path: str, mode: int) -> None: ...

    def mode(self, path: str) -> int: ...

    def listdir(self, path: str) -> List[str]: ...

    def find(self, top: str, names: List[str]) -> List[str]: ...


class LocalFilesystem:
    """Real filesystem below ``root`` (``/`` for the live host)."""

    def __init__(self, root: str | Path = "/") -> None:
        self.root = str(Path(root).resolve())

    def host_path(self, path: str) -> Path:
        """Translate a resource path into a path on the local disk."""

        relative = _normalise(path).lstrip("/")
        return Path(self.root, relative) if relative else Path(self.root)

    def exists(self, path: str) -> bool:
        return self.host_path(path).is_file()

    def is_dir(self, path: str) -> bool:
        return self.host_path(path).is_dir()

    def read_bytes(self, path: str) -> bytes:
        return self.host_path(path).read_bytes()

    def write_bytes(self, path: str, data: bytes) -> None:
        target = self.host_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def read_text(self, path: str) -> str:
        return self.host_path(path).read_text(encoding="utf-8")

    def write_text(self, path: str, text: str) -> None:
        self.write_bytes(path, text.encode("utf-8"))

    def copy(self, src: str, dst: str) -> None:
        shutil.copy2(self.host_path(src), self.host_path(dst))

    def remove(self, path: str) -> None:
        self.host_path(path).unlink()

    def rmtree(self, path: str) -> None:
        shutil.rmtree(self.host_path(path))

    def chmod(self, path: str, mode: int) -> None:
        self.host_path(path).chmod(mode)

    def mode(self, path: str) -> int:
        return self.host_path(path).stat().st_mode & 0o7777

    def listdir(self, path: str) -> List[str]:
        directory = self.host_path(path)
        if not directory.is_dir():
            return []
        return sorted(entry.name for entry in directory.iterdir())

    def find(self, top: str, names: List[str]) -> List[str]:
        base = self.host_path(top)
        if not base.is_dir():
            return []

        matches: List[str] = []
        for candidate in sorted(base.rglob("*")):
            if candidate.name in names and candidate.is_file() and not candidate.is_symlink():
                relative = candidate.relative_to(self.root).as_posix()
                matches.append("/" + relative)
        return matches


class MemoryFilesystem:
    """Dictionary-backed filesystem for tests and dry planning."""

    def __init__(self, files: Dict[str, bytes | str] | None = None) -> None:
        self.root = "/"
        self._files: Dict[str, bytes] = {}
        self._modes: Dict[str, int] = {}
        for path, data in (files or {}).items():
            self.write_bytes(path, data.encode("utf-8") if isinstance(data, str) else data)

    def exists(self, path: str) -> bool:
        return _normalise(path) in self._files

    def is_dir(self, path: str) -> bool:
        prefix = _normalise(path).rstrip("/") + "/"
        return any(name.startswith(prefix) for name in self._files)

    def read_bytes(self, path: str) -> bytes:
        key = _normalise(path)
        if key not in self._files:
            raise FileNotFoundError(path)
        return self._files[key]

    def write_bytes(self, path: str, data: bytes) -> None:
        key = _normalise(path)
        self._files[key] = bytes(data)
        self._modes.setdefault(key, 0o644)

    def read_text(self, path: str) -> str:
        return self.read_bytes(path).decode("utf-8")

    def write_text(self, path: str, text: str) -> None:
        self.write_bytes(path, text.encode("utf-8"))

    def copy(self, src: str, dst: str) -> None:
        self.write_bytes(dst, self.read_bytes(src))
        self._modes[_normalise(dst)] = self._modes[_normalise(src)]

    def remove(self, path: str) -> None:
        key = _normalise(path)
        if key not in self._files:
            raise FileNotFoundError(path)
        del self._files[key]
        self._modes.pop(key, None)

    def rmtree(self, path: str) -> None:
        prefix = _normalise(path).rstrip("/") + "/"
        for name in [n for n in self._files if n.startswith(prefix)]:
            del self._files[name]
            self._modes.pop(name, None)

    def chmod(self, path: str, mode: int) -> None:
        key = _normalise(path)
        if key not in self._files:
            raise FileNotFoundError(path)
        self._modes[key] = mode

    def mode(self, path: str) -> int:
        key = _normalise(path)
        if key not in self._files:
            raise FileNotFoundError(path)
        return self._modes[key]

    def listdir(self, path: str) -> List[str]:
        prefix = _normalise(path).rstrip("/") + "/"
        entries = {name[len(prefix):].split("/", 1)[0] for name in self._files if name.startswith(prefix)}
        return sorted(entries)

    def find(self, top: str, names: List[str]) -> List[str]:
        prefix = _normalise(top).rstrip("/") + "/"
        return sorted(
            name for name in self._files if name.startswith(prefix) and posixpath.basename(name) in names
        )


__all__ = ["Filesystem", "LocalFilesystem", "MemoryFilesystem"]
