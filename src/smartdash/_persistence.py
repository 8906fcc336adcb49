"""Key-value persistence port and adapters.

Provides KeyValueStore (Protocol) and two implementations:

- MemoryStore — dict-backed, lives for the process lifetime
- JsonFileStore — one ``<key>.json`` file per key in a directory

Values are JSON-compatible structures (dicts, lists, strings, numbers,
booleans, ``None``).  Components load once at start and save after
every mutation; they never read back in between.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Port contract for opaque record persistence keyed by a stable name."""

    def load(self, key: str, default: Any) -> Any:
        """Return the last saved value for *key*, or *default*."""
        ...

    def save(self, key: str, value: Any) -> None:
        """Persist *value* under *key*, replacing any previous value."""
        ...


@dataclass
class MemoryStore:
    """In-memory store.

    Values are deep-copied on the way in and out so callers can't
    mutate stored state by accident.
    """

    data: dict[str, Any] = field(default_factory=dict)
    saves: int = field(default=0, init=False)

    def load(self, key: str, default: Any) -> Any:
        if key not in self.data:
            return default
        return copy.deepcopy(self.data[key])

    def save(self, key: str, value: Any) -> None:
        self.data[key] = copy.deepcopy(value)
        self.saves += 1


class JsonFileStore:
    """Directory of JSON files, one per key.

    Writes go to a temporary file that is then renamed over the target,
    so a crash mid-write never leaves a truncated record behind.
    Unreadable or corrupt files are logged and treated as missing.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def load(self, key: str, default: Any) -> Any:
        path = self._path(key)
        try:
            with path.open(encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return default
        except (OSError, ValueError):
            logger.warning("Could not read %s, using default", path, exc_info=True)
            return default

    def save(self, key: str, value: Any) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._directory,
            prefix=f".{key}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(value, fh)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved %s", path)
