from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from .errors import ClientInputError, InternalIOError, NotFound, StateConflict
from .security import confine
from .sessions import SessionStore


log = logging.getLogger(__name__)

PARENT = ".."
ROOT_KEYWORD = "root"
_TRIM_CHARS = '/\\ "'


def clean_name(raw: str | None, what: str = "directory") -> str:
    """Strip surrounding slashes, backslashes, spaces and quotes."""
    name = (raw or "").strip(_TRIM_CHARS)
    if not name:
        raise ClientInputError(f"Invalid {what} name")
    return name


def resolve_target(current_dir: Path, target: str, root: Path) -> Path:
    """Pick the candidate directory for a change request.

    Purely lexical; the result still has to pass confinement.
    """
    if target == PARENT:
        return Path(os.path.dirname(os.path.abspath(current_dir)))
    if target == ROOT_KEYWORD:
        return Path(root)
    return Path(os.path.normpath(os.path.join(current_dir, target)))


def navigate(store: SessionStore, token: str, current_dir: Path, raw_target: str | None) -> Path:
    """Change the session's current directory and return the new one.

    ``..`` from root yields a lexical parent outside root, which confinement
    rejects like any other escape.
    """
    target = clean_name(raw_target)
    candidate = resolve_target(current_dir, target, store.root)
    new_dir = confine(store.root, candidate)

    try:
        st = new_dir.stat()
    except (FileNotFoundError, NotADirectoryError) as e:
        raise NotFound("Directory not found") from e
    except OSError as e:
        log.error("Error accessing directory %s: %s", new_dir, e)
        raise InternalIOError("Error accessing directory") from e
    if not stat.S_ISDIR(st.st_mode):
        raise StateConflict("Not a directory")

    if not store.update(token, new_dir):
        log.warning("Session vanished before directory change could be committed")
    log.debug("Session directory changed to %s", new_dir)
    return new_dir
