"""File operations scoped to a session's current directory.

Every function takes the root and the session's current directory, joins the
client-supplied name, and re-checks confinement before touching the disk.
These are blocking calls; the HTTP layer runs them off the event loop.
"""
from __future__ import annotations

import logging
import os
import stat
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from pydantic import BaseModel

from .config import COPY_CHUNK_BYTES
from .errors import ClientInputError, InternalIOError, NotFound, StateConflict
from .navigation import clean_name
from .security import canonical_path, confine, virtual_path


log = logging.getLogger(__name__)

DIR_MODE = 0o755


class EntryInfo(BaseModel):
    name: str
    size: int
    is_dir: bool
    mode: str
    modified_at: float


class DirectoryListing(BaseModel):
    path: str
    entries: list[EntryInfo]


def _require_name(name: str | None) -> str:
    if not name:
        raise ClientInputError("Invalid file name")
    return name


def list_directory(root: Path, current_dir: Path) -> DirectoryListing:
    entries: list[EntryInfo] = []
    try:
        with os.scandir(current_dir) as it:
            for entry in it:
                try:
                    st = entry.stat()
                except OSError:
                    # Dangling symlink; describe the link itself.
                    st = entry.stat(follow_symlinks=False)
                entries.append(
                    EntryInfo(
                        name=entry.name,
                        size=st.st_size,
                        is_dir=stat.S_ISDIR(st.st_mode),
                        mode=stat.filemode(st.st_mode),
                        modified_at=st.st_mtime,
                    )
                )
    except OSError as e:
        log.error("Error listing %s: %s", current_dir, e)
        raise InternalIOError("Error listing directory") from e
    entries.sort(key=lambda e: e.name)
    return DirectoryListing(path=virtual_path(current_dir, root), entries=entries)


def format_listing(listing: DirectoryListing) -> str:
    lines = [f"{listing.path}:", f"total {len(listing.entries)}"]
    for e in listing.entries:
        stamp = datetime.fromtimestamp(e.modified_at).strftime("%Y-%m-%d %H:%M")
        suffix = "/" if e.is_dir else ""
        lines.append(f"{e.mode} {e.size:>12} {stamp} {e.name}{suffix}")
    return "\n".join(lines) + "\n"


def save_upload(root: Path, current_dir: Path, filename: str | None, src: BinaryIO, max_bytes: int = 0) -> int:
    """Stream ``src`` into ``filename`` under the current directory.

    Overwrites an existing file. Returns the number of bytes written.
    """
    target = confine(root, current_dir, _require_name(filename))
    if target.is_dir():
        raise StateConflict("A directory with that name exists")

    written = 0
    try:
        out = open(target, "wb")
    except OSError as e:
        log.error("Error creating %s: %s", target, e)
        raise InternalIOError("Error creating file") from e
    with out:
        try:
            while True:
                chunk = src.read(COPY_CHUNK_BYTES)
                if not chunk:
                    break
                written += len(chunk)
                if max_bytes and written > max_bytes:
                    break
                out.write(chunk)
        except OSError as e:
            log.error("Error writing %s: %s", target, e)
            raise InternalIOError("Error writing file") from e

    if max_bytes and written > max_bytes:
        target.unlink(missing_ok=True)
        raise ClientInputError("File too large")
    log.info("Stored %s (%d bytes)", target, written)
    return written


def open_file(root: Path, current_dir: Path, name: str | None) -> tuple[Path, int]:
    """Locate a regular file for reading; returns its path and size."""
    target = confine(root, current_dir, _require_name(name))
    try:
        st = target.stat()
    except (FileNotFoundError, NotADirectoryError) as e:
        raise NotFound("File not found") from e
    except OSError as e:
        log.error("Error getting file info for %s: %s", target, e)
        raise InternalIOError("Error getting file info") from e
    if not stat.S_ISREG(st.st_mode):
        raise StateConflict("Not a file")
    return target, st.st_size


def delete_path(root: Path, current_dir: Path, name: str | None) -> None:
    """Remove a file, or an empty directory, under the current directory."""
    name = _require_name(name)
    confine(root, current_dir, name)
    # Act on the link itself, not on what it points to.
    target = Path(os.path.abspath(os.path.join(current_dir, name)))
    if canonical_path(target) == canonical_path(root):
        raise StateConflict("Cannot delete the root directory")

    try:
        if stat.S_ISDIR(target.lstat().st_mode):
            os.rmdir(target)
        else:
            os.remove(target)
    except (FileNotFoundError, NotADirectoryError) as e:
        raise NotFound("File not found") from e
    except OSError as e:
        log.error("Error deleting %s: %s", target, e)
        raise InternalIOError("Error deleting file") from e
    log.info("Deleted %s", target)


def create_directory(root: Path, current_dir: Path, raw_name: str | None) -> Path:
    target = confine(root, current_dir, clean_name(raw_name))
    try:
        os.mkdir(target, DIR_MODE)
    except FileExistsError as e:
        raise InternalIOError("Directory already exists") from e
    except OSError as e:
        log.error("Error creating directory %s: %s", target, e)
        raise InternalIOError("Error creating directory") from e
    log.info("Created directory %s", target)
    return target
