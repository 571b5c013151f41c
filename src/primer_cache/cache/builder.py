"""Publisher-side generation of the registry document from a bundles directory."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from primer_cache.cache.compact import extract_description
from primer_cache.cache.io import atomic_write_text, collect_files
from primer_cache.cache.models import RegistrySchemaVersion

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_CHARS = 80


def _sort_files(files: list[str], index_name: str) -> list[str]:
    rest = sorted(f for f in files if f != index_name)
    return [index_name, *rest] if index_name in files else rest


def _describe(bundle_dir: Path, index_name: str) -> str:
    try:
        content = (bundle_dir / index_name).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return bundle_dir.name
    description = extract_description(content)
    if description.endswith("."):
        description = description[:-1]
    return description[:MAX_DESCRIPTION_CHARS]


def build_registry(source_dir: Path, *, extension: str = ".md") -> dict:
    index_name = f"index{extension}"
    bundles: dict[str, dict] = {}
    for entry in sorted(source_dir.iterdir(), key=lambda p: p.name):
        if entry.name.startswith("_") or not entry.is_dir():
            continue
        files = _sort_files(collect_files(entry, extension), index_name)
        bundles[entry.name] = {"description": _describe(entry, index_name), "files": files}
    return {"version": RegistrySchemaVersion, "primers": bundles}


def write_registry(source_dir: Path, *, registry_file: str = "_manifest.json", extension: str = ".md") -> Path:
    registry = build_registry(source_dir, extension=extension)
    target = source_dir / registry_file
    atomic_write_text(target, json.dumps(registry, indent=2) + "\n")
    logger.info("Registry generated. path=%s bundles=%d", target, len(registry["primers"]))
    for name, bundle in registry["primers"].items():
        logger.info("Registry bundle. name=%s files=%d", name, len(bundle["files"]))
    return target
