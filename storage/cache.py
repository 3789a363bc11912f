"""Local JSON snapshot cache.

One file per collection key, holding a JSON array. A snapshot is replaced as a
whole: it is written to a temporary file in the cache directory and moved into
place with ``os.replace``, so readers see the old or the new snapshot, never a
partial one.
"""

import dataclasses
import json
import logging
import os
import re
import tempfile
from typing import Any, List, Optional, Sequence, Type

logger = logging.getLogger(__name__)

CACHE_DIR = os.path.expanduser("~/.cache/casesheets")

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def _to_jsonable(item: Any) -> Any:
    if hasattr(item, "to_dict"):
        return item.to_dict()
    if dataclasses.is_dataclass(item):
        return dataclasses.asdict(item)
    return item


class LocalCache:
    """Per-collection snapshot store on local disk."""

    def __init__(self, cache_dir: str = CACHE_DIR) -> None:
        if not os.path.exists(cache_dir):
            os.makedirs(cache_dir, exist_ok=True)
        self.cache_dir = cache_dir

    def _path(self, key: str) -> str:
        return os.path.join(self.cache_dir, _UNSAFE.sub("_", key) + ".json")

    def save(self, key: str, items: Sequence[Any]) -> None:
        """Replace the snapshot for ``key`` with ``items``."""
        payload = [_to_jsonable(item) for item in items]
        fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug("Cached %d item(s) under '%s'", len(payload), key)

    def load(self, key: str, entity_type: Optional[Type] = None) -> Optional[List[Any]]:
        """Load the snapshot for ``key``.

        Args:
            key: Collection key
            entity_type: If given, each item is rebuilt with
                         ``entity_type.from_dict`` (or ``entity_type(**item)``)

        Returns:
            None if nothing was ever saved (or the snapshot is unreadable),
            otherwise the list, possibly empty
        """
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache snapshot %s: %s", path, e)
            return None
        if not isinstance(data, list):
            logger.warning("Ignoring malformed cache snapshot %s", path)
            return None
        if entity_type is None:
            return data
        build = getattr(entity_type, "from_dict", None) or (lambda d: entity_type(**d))
        return [build(item) for item in data]

    def invalidate(self, key: str) -> None:
        """Drop the snapshot for ``key`` so that ``load`` reports it absent."""
        try:
            os.unlink(self._path(key))
        except FileNotFoundError:
            pass

    def clear(self) -> None:
        """Drop every snapshot."""
        for name in os.listdir(self.cache_dir):
            if name.endswith(".json"):
                os.unlink(os.path.join(self.cache_dir, name))
