# dotstow - deploy dotfiles packages with GNU Stow
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Utility functions for dotstow.

This module contains the leveled output sink used by every component and
the symlink helpers that decide whether a path is already managed.
"""

from __future__ import annotations

import os
import sys
from typing import Iterable

VERSION = "1.2.0"
PROGRAM_NAME = "dotstow"

_RED = "\033[0;31m"
_GREEN = "\033[0;32m"
_YELLOW = "\033[1;33m"
_NC = "\033[0m"

# Verbosity and colour are module-level state, set once from the config
_debug_level = 0
_color: bool | None = None


def set_debug_level(level: int) -> None:
    """Set verbosity level for debug()."""
    global _debug_level
    _debug_level = level


def set_color(on_or_off: bool | None) -> None:
    """Force colour on or off; None goes back to autodetection."""
    global _color
    _color = on_or_off


def _use_color() -> bool:
    if _color is not None:
        return _color
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def _paint(code: str, glyph: str) -> str:
    return f"{code}{glyph}{_NC}" if _use_color() else glyph


def info(msg: str) -> None:
    print(f"  {msg}")


def step(msg: str) -> None:
    print(f"  {_paint(_GREEN, '→')} {msg}")


def ok(msg: str) -> None:
    print(f"  {_paint(_GREEN, '✓')} {msg}")


def warn(msg: str, file=None) -> None:
    print(f"  {_paint(_YELLOW, '!')} {msg}", file=file or sys.stderr)


def error(msg: str, file=None) -> None:
    print(f"  {_paint(_RED, '✗')} {msg}", file=file or sys.stderr)


def blank() -> None:
    print()


def debug(level: int, *args) -> None:
    """
    Log to STDERR based on debug_level setting.

    Verbosity rules:
        0: normal output only
        >= 1: stow command lines and removals
        >= 2: per-package progress
        >= 3: per-entry detection trace
        >= 4: symlink resolution detail

    Called as debug(level, msg) or debug(level, indent_level, msg).
    """
    if len(args) >= 2 and isinstance(args[0], int):
        indent_level = args[0]
        msg = args[1]
    elif len(args) >= 1:
        indent_level = 0
        msg = args[0]
    else:
        return

    if _debug_level >= level:
        indent = "    " * indent_level
        print(f"{indent}{msg}", file=sys.stderr)


def tildify(path: str, home: str) -> str:
    """Replace the home prefix with ~ for readability."""
    if home and (path == home or path.startswith(home.rstrip("/") + "/")):
        return "~" + path[len(home.rstrip("/")):]
    return path


# ---------------------------------------------------------------------------
# Symlink helpers
# ---------------------------------------------------------------------------


def resolve_link(path: str) -> str:
    """
    Fully resolve path, following every link in the chain.

    Returns the path unchanged when resolution fails, e.g. for a broken link.
    """
    try:
        resolved = os.path.realpath(path, strict=True)
    except (OSError, RuntimeError):
        debug(4, 2, f"resolve_link({path}): unresolvable")
        return path
    debug(4, 2, f"resolve_link({path}): {resolved}")
    return resolved


def symlink_matches(link_path: str, expected: str) -> bool:
    """True if link_path and expected resolve to the same absolute path."""
    return resolve_link(link_path) == resolve_link(expected)


def read_link(path: str) -> str:
    """Raw destination of a link, or an empty string if unreadable."""
    try:
        return os.readlink(path)
    except OSError:
        return ""


def is_within(path: str, root: str) -> bool:
    """True if path is root or lies below it."""
    root = root.rstrip("/") or "/"
    if path == root:
        return True
    prefix = root if root.endswith("/") else root + "/"
    return path.startswith(prefix)


def is_managed(path: str, roots: Iterable[str], stop_at: str) -> bool:
    """
    Determine whether path is stow-managed.

    Walks from path up towards stop_at (exclusive) and returns True as soon
    as a symlink on the way resolves inside one of the managed roots.
    """
    resolved_roots = [resolve_link(root) for root in roots if root]
    stop_at = stop_at.rstrip("/") or "/"
    check_path = path.rstrip("/") or "/"

    while check_path not in (stop_at, "/"):
        if os.path.islink(check_path):
            target = resolve_link(check_path)
            if any(is_within(target, root) for root in resolved_roots):
                debug(4, 1, f"is_managed({path}): via {check_path} => {target}")
                return True
        parent_path = os.path.dirname(check_path)
        if parent_path == check_path:
            break
        check_path = parent_path

    return False
