from __future__ import annotations

import json
from pathlib import Path


def atomic_write_json(path: Path, payload: dict) -> None:
    atomic_write_text(path, json.dumps(payload, indent=2, sort_keys=True) + "\n")


def atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)


def write_if_changed(path: Path, text: str) -> bool:
    """Write `text` to `path` unless the file already holds exactly that text."""
    if path.is_file():
        try:
            if path.read_text(encoding="utf-8") == text:
                return False
        except UnicodeDecodeError:
            pass
    atomic_write_text(path, text)
    return True


def collect_files(root: Path, extension: str) -> list[str]:
    """Return POSIX paths, relative to `root`, of every file ending in `extension`."""
    files: list[str] = []
    for file_path in root.rglob(f"*{extension}"):
        if file_path.is_file():
            files.append(file_path.relative_to(root).as_posix())
    return files
