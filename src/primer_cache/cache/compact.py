"""
Compact index generation.

A compact index condenses a bundle into a title, a one-line description and a
table of sub-topics, so a consumer can decide which files to read without
loading the whole bundle. Output is a pure function of the files on disk.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from primer_cache.cache.io import collect_files, write_if_changed
from primer_cache.cache.utils import file_to_topic

logger = logging.getLogger(__name__)

DIRECTIVE = (
    "IMPORTANT: Prefer retrieval-led reasoning over pre-training-led reasoning. "
    "Read subtopic files before relying on training data."
)
NO_SECTIONS = "—"


def compact_file_name(extension: str) -> str:
    return f"_compact{extension}"


def extract_title(content: str) -> str:
    for line in content.split("\n"):
        if line.startswith("# "):
            return line[2:].strip()
    return ""


def extract_description(content: str) -> str:
    found_title = False
    for line in content.split("\n"):
        if line.startswith("# "):
            found_title = True
            continue
        if found_title and line.strip() and not line.startswith("#"):
            return line.strip()
    return ""


def extract_h2_headings(content: str) -> list[str]:
    return [line[3:].strip() for line in content.split("\n") if line.startswith("## ")]


def generate_compact(
    bundle_name: str,
    bundle_dir: Path,
    *,
    extension: str = ".md",
    display_root: str = "~/.primer",
) -> Optional[str]:
    """
    Build the compact index text for one bundle directory.

    Returns None when the bundle has no root index file yet.
    """
    index_name = f"index{extension}"
    compact_name = compact_file_name(extension)
    index_path = bundle_dir / index_name
    if not index_path.is_file():
        return None

    index_content = index_path.read_text(encoding="utf-8")
    title = extract_title(index_content)
    if not title:
        logger.debug("Bundle index has no title heading. bundle=%s path=%s", bundle_name, index_path)
    description = extract_description(index_content)

    subtopic_files = sorted(
        f for f in collect_files(bundle_dir, extension) if f not in (index_name, compact_name)
    )

    rows: list[str] = []
    for rel_path in subtopic_files:
        content = (bundle_dir / rel_path).read_text(encoding="utf-8")
        sections = ", ".join(extract_h2_headings(content)) or NO_SECTIONS
        topic = file_to_topic(rel_path, extension)
        rows.append(f"| {topic} | {sections} | {display_root}/{bundle_name}/{rel_path} |")

    lines = [f"# {title}", "", description, "", DIRECTIVE]
    if rows:
        lines.extend(["", "## Subtopics", "", "| Topic | Sections | File |", "|---|---|---|", *rows])
    lines.append("")
    return "\n".join(lines)


def write_compact(
    bundle_name: str,
    bundle_dir: Path,
    *,
    extension: str = ".md",
    display_root: str = "~/.primer",
) -> bool:
    """Regenerate and store the compact index. Returns whether the file changed."""
    content = generate_compact(bundle_name, bundle_dir, extension=extension, display_root=display_root)
    if content is None:
        return False
    changed = write_if_changed(bundle_dir / compact_file_name(extension), content)
    if changed:
        logger.debug("Compact index written. bundle=%s", bundle_name)
    return changed


def generate_all_compact(
    base_dir: Path,
    *,
    extension: str = ".md",
    display_root: str = "~/.primer",
) -> list[str]:
    """Regenerate compact indexes for every bundle directory under `base_dir`."""
    if not base_dir.is_dir():
        return []
    generated: list[str] = []
    for entry in sorted(base_dir.iterdir(), key=lambda p: p.name):
        if entry.name.startswith("_") or not entry.is_dir():
            continue
        content = generate_compact(entry.name, entry, extension=extension, display_root=display_root)
        if content is None:
            continue
        write_if_changed(entry / compact_file_name(extension), content)
        generated.append(entry.name)
    return generated
