from __future__ import annotations

import fnmatch
import os
from pathlib import Path

from routeseq.repo.ignore import should_ignore_dir


def matches_glob(rel_path: str, pattern: str) -> bool:
    """Glob match on a POSIX-style relative path; a leading ``**/`` also matches the root."""
    rel_path = rel_path.replace(os.sep, "/")
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    return pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:])


def scan_source_files(repo_path: Path, glob: str = "**/*.java", max_files: int | None = None) -> list[str]:
    """
    Return absolute paths (as strings) of files under repo_path matching ``glob``.
    Ignored build/VCS directories are pruned. Sorted for deterministic output.
    """
    repo_path = repo_path.resolve()
    out: list[str] = []
    for root, dirs, files in _walk(repo_path):
        root_p = Path(root)

        # prune ignored dirs
        dirs[:] = sorted(d for d in dirs if not should_ignore_dir(root_p / d))

        for f in sorted(files):
            rel = os.path.relpath(str(root_p / f), str(repo_path))
            if matches_glob(rel, glob):
                out.append(str((root_p / f).resolve()))
                if max_files is not None and len(out) >= max_files:
                    return out
    return out


def _walk(repo_path: Path):
    # Separate helper to make unit testing easier (can be mocked)
    return os.walk(repo_path)
