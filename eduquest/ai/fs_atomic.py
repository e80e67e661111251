from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

_log = logging.getLogger(__name__)


def atomic_write_json(path: Path, payload: Any) -> None:
    """Replace `path` with `payload` as key-sorted JSON; readers never see a partial file.

    Sorted keys keep the cache file stable across rewrites of unchanged records.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    body = json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=1)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(body)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def read_json_or_none(path: Path) -> Optional[Any]:
    """Load a JSON document; a missing or corrupt file reads as None."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        _log.warning("ignoring unreadable JSON file %s", path, exc_info=True)
        return None
