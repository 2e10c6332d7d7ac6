"""JSON-backed ``file_id -> stored filename`` index for uploaded sources.

Keeps upload lookups working across dev-server reloads without a database.
"""
import json
import logging
import os
from threading import Lock
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class FileIndex:
    def __init__(self, path: str):
        self._path = path
        self._lock = Lock()
        self._data: Dict[str, str] = {}
        if os.path.exists(self._path):
            try:
                with open(self._path, 'r', encoding='utf-8') as fh:
                    self._data = json.load(fh)
            except (OSError, ValueError):
                logger.exception('file index %s unreadable, starting empty', self._path)
                self._data = {}

    def _persist(self):
        with open(self._path, 'w', encoding='utf-8') as fh:
            json.dump(self._data, fh)

    def set(self, key: str, value: str):
        with self._lock:
            self._data[key] = value
            self._persist()

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def delete(self, key: str):
        with self._lock:
            if key in self._data:
                del self._data[key]
                self._persist()

    def all(self) -> Dict[str, str]:
        return dict(self._data)
