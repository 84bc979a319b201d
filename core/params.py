# =============================================================================
# core/params.py — Persistent key/value store
#
# One file per key inside PARAMS_DIR. Values are raw bytes; booleans are
# stored as b"1" / b"0". Writes go through a temp file + rename so a reader
# never observes a half-written value.
# =============================================================================

import os
import tempfile
from typing import Optional

from config import PARAMS_DIR
from core.logger import get_logger

log = get_logger(__name__)


class Params:
    """
    Directory-backed parameter store.

    Usage:
        params = Params()
        is_rhd = params.get_bool("IsRHD")
        params.put_bool("IsRHD", True)
    """

    def __init__(self, path: str = PARAMS_DIR):
        self.path = path

    def _key_path(self, key: str) -> str:
        if not key or os.sep in key or key.startswith("."):
            raise ValueError(f"Invalid param key: {key!r}")
        return os.path.join(self.path, key)

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes for key, or None if it was never written."""
        try:
            with open(self._key_path(key), "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def get_bool(self, key: str) -> bool:
        return self.get(key) == b"1"

    # ── Writes ────────────────────────────────────────────────────────────────

    def put(self, key: str, value: bytes) -> None:
        target = self._key_path(key)
        os.makedirs(self.path, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=self.path)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
            os.replace(tmp_path, target)
        except BaseException:
            os.unlink(tmp_path)
            raise
        log.debug(f"Param written: {key} ({len(value)} bytes)")

    def put_bool(self, key: str, value: bool) -> None:
        self.put(key, b"1" if value else b"0")

    def remove(self, key: str) -> None:
        try:
            os.unlink(self._key_path(key))
        except FileNotFoundError:
            pass
