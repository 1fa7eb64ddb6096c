from __future__ import annotations

import os
import re
import secrets
from pathlib import Path

from .errors import PathViolation


TOKEN_BYTES = 16
_SESSION_TOKEN_RE = re.compile(r"^[0-9a-fA-F]{%d}$" % (TOKEN_BYTES * 2))


def new_session_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def normalize_session_token(token: str) -> str:
    """Validate and normalize a session token.

    Treat tokens as capability credentials; anything that is not exactly the
    hex shape we hand out is rejected before it reaches the session map.
    """
    if not isinstance(token, str):
        raise ValueError("Invalid session token")
    token = token.strip()
    if not _SESSION_TOKEN_RE.match(token):
        raise ValueError("Invalid session token")
    return token.lower()


def canonical_path(path: str | os.PathLike) -> Path:
    """Absolute, lexically cleaned, symlink-resolved form of ``path``.

    The path does not need to exist; missing tails are kept as written.
    """
    return Path(os.path.realpath(os.path.abspath(os.fspath(path))))


def _case_key(path: Path) -> str:
    return os.path.normcase(str(path))


def is_within_root(candidate: str | os.PathLike, root: str | os.PathLike) -> bool:
    """True iff ``candidate`` is ``root`` or lies below it.

    Both sides are canonicalized first, then compared segment by segment so a
    sibling such as ``/srv/data2`` never matches root ``/srv/data``.
    """
    if "\x00" in os.fspath(candidate):
        return False
    cand = canonical_path(candidate)
    base_key = _case_key(canonical_path(root))
    if _case_key(cand) == base_key:
        return True
    return any(_case_key(parent) == base_key for parent in cand.parents)


def confine(root: Path, base: Path, *parts: str) -> Path:
    """Join ``parts`` onto ``base`` and ensure the result stays within ``root``.

    Returns the canonical path, or raises PathViolation.
    """
    candidate = Path(base)
    for part in parts:
        if "\x00" in part:
            raise PathViolation()
        candidate = candidate / part
    if not is_within_root(candidate, root):
        raise PathViolation()
    return canonical_path(candidate)


def virtual_path(path: Path, root: Path) -> str:
    """Render a confined path relative to root, e.g. ``/docs/2024``."""
    rel = canonical_path(path).relative_to(canonical_path(root))
    if rel == Path("."):
        return "/"
    return "/" + rel.as_posix()
