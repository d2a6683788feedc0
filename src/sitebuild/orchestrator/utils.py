from __future__ import annotations

"""Small helpers for reading config params and resolving path globs."""

import fnmatch
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Tuple


def _get(d: Dict, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def is_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in "*?[")


def glob_base(pattern: str) -> str:
    """Leading directory of a glob, i.e. every part before the first magic one.

    ``src/**/*.html`` -> ``src``; ``src/fonts/*`` -> ``src/fonts``.
    """
    parts = PurePosixPath(pattern).parts
    base: list[str] = []
    for part in parts:
        if is_glob(part):
            break
        base.append(part)
    else:
        # No magic at all: the base of a plain file is its directory
        base = base[:-1]
    return str(PurePosixPath(*base)) if base else "."


def expand(root: Path, pattern: str) -> List[Tuple[Path, Path]]:
    """Expand a root-relative glob into ``(path, path relative to glob base)``.

    Only files are returned, sorted by path so concatenation order is stable.
    """
    if not is_glob(pattern):
        p = root / pattern
        return [(p, Path(p.name))] if p.is_file() else []
    base_str = glob_base(pattern)
    base = root / base_str
    if not base.is_dir():
        return []
    if base_str == ".":
        rest = pattern
    else:
        rest = str(PurePosixPath(pattern).relative_to(base_str))
    out: list[Tuple[Path, Path]] = []
    for p in sorted(base.glob(rest)):
        if p.is_file():
            out.append((p, p.relative_to(base)))
    return out


def matches(rel_path: str, pattern: str) -> bool:
    """fnmatch with ``**/`` also matching zero directories."""
    rel_path = rel_path.replace("\\", "/")
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    if "**/" in pattern:
        return fnmatch.fnmatch(rel_path, pattern.replace("**/", ""))
    return False


def matches_any(rel_path: str, patterns: Iterable[str]) -> bool:
    return any(matches(rel_path, p) for p in patterns)
