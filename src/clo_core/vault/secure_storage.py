"""
Device-local secure key-value storage.

Holds vault passcode hashes only. Values never leave the device and are
never synced to shared storage. The file is written with owner-only
permissions; clearing it means losing vault access (there is no reset).
"""

import json
import os
import threading
from pathlib import Path
from typing import Dict, Optional, Union


class SecureStorage:
    """Interface for device-scoped key-value storage."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete_item(self, key: str) -> None:
        raise NotImplementedError


class FileSecureStorage(SecureStorage):
    """JSON file store with 0600 permissions, written atomically."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Corrupted secure storage file: {self.path}")
        return data

    def _save(self, data: Dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        # Ensure file permissions: owner read/write only
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def delete_item(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)
