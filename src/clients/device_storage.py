import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
_DIR_LOCKS: Dict[Path, threading.RLock] = {}
_DIR_LOCKS_GUARD = threading.Lock()


def _lock_for(base_dir: Path) -> threading.RLock:
    # one lock per directory, shared by every instance pointing at it
    with _DIR_LOCKS_GUARD:
        return _DIR_LOCKS.setdefault(base_dir.resolve(), threading.RLock())


class DeviceStorage:
    """On-device key-value store, one JSON blob per key."""

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = _lock_for(self.base_dir)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.base_dir / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return default
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Unreadable device storage key %s: %s", key, e)
                return default

    def set(self, key: str, value: Any, private: bool = False):
        path = self._path(key)
        payload = json.dumps(value, default=str)
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=f".{key}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                if private:
                    os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise

    def remove(self, *keys: str):
        with self._lock:
            for key in keys:
                path = self._path(key)
                if path.exists():
                    path.unlink()
