from __future__ import annotations

from typing import Optional


def normalize_path(path: Optional[str]) -> str:
    """
    Trim, ensure a leading "/" and drop trailing slashes.

    "" and None stay "" so the combiner can tell "nothing declared" apart
    from an explicit root.
    """
    p = (path or "").strip()
    if not p:
        return ""
    if not p.startswith("/"):
        p = "/" + p
    stripped = p.rstrip("/")
    return stripped or "/"


def combine_paths(base_path: Optional[str], method_path: Optional[str]) -> str:
    """Join a class-level base path and a method-level path without ever producing "//"."""
    base = normalize_path(base_path)
    method = normalize_path(method_path)

    if base in ("", "/"):
        return method or "/"
    if method in ("", "/"):
        return base
    return base + method
