from __future__ import annotations

from pathlib import Path

DEFAULT_IGNORES = {
    ".git",
    ".svn",
    ".idea",
    ".vscode",
    ".gradle",
    ".mvn",
    "node_modules",
    "target",
    "build",
    "out",
    "bin",
    "dist",
}


def should_ignore_dir(dir_path: Path) -> bool:
    return dir_path.name in DEFAULT_IGNORES
