"""Locating data files (such as geo databases) in the usual directories."""

from __future__ import annotations

import logging
import os
import sys
import threading
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from .consts import APP_NAME

log = logging.getLogger(__name__)

CACHE_TIMEOUT = 5.0  # seconds


@dataclass
class _CacheItem:
    filename: str
    path: str
    deadline: float


def _xdg_data_dirs() -> list[str]:
    data_home = os.environ.get("XDG_DATA_HOME") or os.path.join(
        os.path.expanduser("~"), ".local", "share"
    )
    data_dirs = [d for d in os.environ.get("XDG_DATA_DIRS", "").split(":") if d]
    if not data_dirs:
        data_dirs = ["/usr/local/share", "/usr/share"]
    return [data_home, *data_dirs]


class LocationFinder:
    """Finds asset files and remembers the result for a few seconds."""

    def __init__(self, extern_dirs: Optional[Iterable[str]] = None) -> None:
        self._extern_dirs = list(extern_dirs or [])
        self._lock = threading.Lock()
        self._cache: dict[str, _CacheItem] = {}

    def _search_dirs(self) -> list[str]:
        windows = sys.platform == "win32"
        location = os.environ.get("DAE_LOCATION_ASSET", "")
        if location:
            dirs = [location, *self._extern_dirs]
            if not windows:
                dirs += [
                    os.path.join("/usr/local/share", APP_NAME),
                    os.path.join("/usr/share", APP_NAME),
                ]
            dirs += self._extern_dirs
            return dirs
        dirs = list(self._extern_dirs)
        if not windows:
            dirs += [os.path.join(d, APP_NAME) for d in _xdg_data_dirs()]
        else:
            dirs.append(os.path.abspath("./"))
        return dirs

    def _search(self, filename: str) -> str:
        search_dirs = self._search_dirs()
        joined = ", ".join(search_dirs)
        log.debug('Search "%s" in [%s]', filename, joined)
        for search_dir in search_dirs:
            search_path = os.path.join(search_dir, filename)
            try:
                os.stat(search_path)
            except FileNotFoundError:
                continue
            log.debug('Found "%s" at %s', filename, search_path)
            return search_path
        raise FileNotFoundError(f"{filename}: file does not exist in [{joined}]")

    def get_location_asset(self, filename: str) -> str:
        """Return the path of the first existing ``filename`` among the search directories."""
        with self._lock:
            now = time.monotonic()
            for name in [n for n, item in self._cache.items() if now >= item.deadline]:
                del self._cache[name]
            item = self._cache.get(filename)
            if item is not None:
                return item.path
            path = self._search(filename)
            self._cache[filename] = _CacheItem(filename, path, time.monotonic() + CACHE_TIMEOUT)
            return path