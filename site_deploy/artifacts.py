"""Snapshot of a build output directory."""

import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Tuple

from shared.errors import BuildFailure
from shared.logger import StructuredLogger

IGNORED_FILES = {".DS_Store", "Thumbs.db"}

CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class ArtifactFile:
    """One file in the build output."""

    relative_path: str
    size: int
    mtime: float


@dataclass(frozen=True)
class BuildArtifactSet:
    """Immutable snapshot of a build output tree, paths sorted POSIX-style."""

    root: Path
    files: Tuple[ArtifactFile, ...]

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self) -> Iterator[ArtifactFile]:
        return iter(self.files)

    @property
    def is_empty(self) -> bool:
        return not self.files

    @property
    def relative_paths(self) -> Tuple[str, ...]:
        return tuple(f.relative_path for f in self.files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size for f in self.files)

    def local_path(self, relative_path: str) -> Path:
        return self.root.joinpath(*relative_path.split("/"))

    @classmethod
    def snapshot(cls, root) -> "BuildArtifactSet":
        """Walk ``root`` once and freeze what is there."""
        root = Path(root)
        if not root.is_dir():
            raise BuildFailure(f"Build output directory not found: {root}")

        files = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for name in filenames:
                if name in IGNORED_FILES:
                    continue
                full = Path(dirpath) / name
                stat = full.stat()
                relative = full.relative_to(root).as_posix()
                files.append(ArtifactFile(relative_path=relative, size=stat.st_size, mtime=stat.st_mtime))

        files.sort(key=lambda f: f.relative_path)
        artifact_set = cls(root=root, files=tuple(files))

        StructuredLogger.info(
            "Build artifacts collected",
            root=str(root),
            file_count=len(artifact_set),
            total_bytes=artifact_set.total_bytes,
        )
        return artifact_set


def remote_key(relative_path: str, prefix: str = "") -> str:
    """Object key for a relative path. Stable and one-to-one with the path."""
    path = str(relative_path).replace("\\", "/").lstrip("/")
    prefix = prefix.strip("/")
    return f"{prefix}/{path}" if prefix else path


def relative_path_for_key(key: str, prefix: str = "") -> str:
    """Inverse of ``remote_key``."""
    prefix = prefix.strip("/")
    if prefix and key.startswith(prefix + "/"):
        return key[len(prefix) + 1 :]
    return key


def file_md5(path: Path) -> str:
    """Hex MD5 of a file, read in chunks. Matches a single-part S3 ETag."""
    digest = hashlib.md5()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
