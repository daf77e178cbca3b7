"""Root and key normalization.

Every key a caller passes is joined to the operator root before it reaches a
session, and every key a session lists is stripped of the root before it
reaches the caller.

    root "/a//b/" + key "c"  ->  backend key "/a/b/c"
"""

from __future__ import annotations

import re

_SLASHES = re.compile(r"/{2,}")


def normalize_root(root: str) -> str:
    """Normalize a root path to ``/segment/.../`` form.

    Duplicate slashes collapse, and the result always starts and ends with a
    slash. An empty root is the top level (``/``).

    Examples:
        >>> normalize_root("/a//b/")
        '/a/b/'
        >>> normalize_root("data")
        '/data/'
        >>> normalize_root("")
        '/'
    """
    collapsed = _SLASHES.sub("/", root.strip())
    inner = collapsed.strip("/")
    return f"/{inner}/" if inner else "/"


def normalize_path(path: str) -> str:
    """Normalize a caller key relative to the root.

    Leading slashes are dropped and duplicate slashes collapse; a trailing
    slash is kept since it marks a directory-style prefix.
    """
    return _SLASHES.sub("/", path.strip()).lstrip("/")


def build_abs_path(root: str, path: str) -> str:
    """Join a normalized root and a caller key into a backend key."""
    return root + normalize_path(path)


def build_rel_path(root: str, abs_path: str) -> str:
    """Strip the root from a backend key."""
    if abs_path.startswith(root):
        return abs_path[len(root) :]
    return abs_path.lstrip("/")
