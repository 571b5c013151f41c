from __future__ import annotations

import logging
from pathlib import Path

from primer_cache.cache.io import atomic_write_json
from primer_cache.cache.models import Meta

logger = logging.getLogger(__name__)


def read_meta(path: Path) -> Meta:
    if not path.exists():
        return Meta()
    try:
        return Meta.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Failed to read meta file, starting fresh. path=%s", path, exc_info=True)
        return Meta()


def write_meta(path: Path, meta: Meta) -> None:
    atomic_write_json(path, meta.model_dump(mode="json", by_alias=True, exclude_none=True))
