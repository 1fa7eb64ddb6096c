from __future__ import annotations

import logging
import os
from pathlib import Path


# The single directory every session is confined to.
# Default: project-local ./shared. Override with env var FILEJAIL_ROOT.
_root_raw = os.environ.get("FILEJAIL_ROOT")
if _root_raw and _root_raw.strip():
    SHARED_ROOT = Path(_root_raw)
else:
    # filejail_backend/ -> project root
    SHARED_ROOT = Path(__file__).resolve().parent.parent / "shared"
SHARED_ROOT = SHARED_ROOT.resolve()

# How long a session may stay idle before the sweep drops it.
SESSION_TTL_SECONDS = float(os.environ.get("FILEJAIL_SESSION_TTL_SECONDS", "300"))

# How often the server scans for idle sessions.
SWEEP_INTERVAL_SECONDS = float(os.environ.get("FILEJAIL_SWEEP_INTERVAL_SECONDS", "60"))

# Upload cap; 0 disables it.
MAX_UPLOAD_BYTES = int(os.environ.get("FILEJAIL_MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))  # 100MB

LOG_LEVEL = os.environ.get("FILEJAIL_LOG_LEVEL", "INFO").upper()

DEFAULT_PORT = int(os.environ.get("PORT", "8080"))

SESSION_COOKIE = "session_id"
COPY_CHUNK_BYTES = 64 * 1024


def configure_logging(level: str | int = LOG_LEVEL) -> None:
    root_logger = logging.getLogger("filejail_backend")
    if isinstance(level, str):
        level = logging.getLevelName(level)
    root_logger.setLevel(level)
    if root_logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(handler)
