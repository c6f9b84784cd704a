"""Recover core indices from free-text sensor labels."""

from __future__ import annotations

import re

_CORE_ID_RE = re.compile(r"#?(\d+)")


def resolve_core_id(label: str | None) -> int | None:
    """Return the core index embedded in a sensor label.

    The first run of decimal digits (optionally preceded by ``#``) is the
    index, so ``"CPU Core #1"`` yields ``1`` and ``"Core 3 VID 7"`` yields
    ``3``. Labels without digits yield ``None``, never ``0``.
    """
    if not label:
        return None
    match = _CORE_ID_RE.search(label)
    if match is None:
        return None
    return int(match.group(1))


def label_contains(label: str, term: str) -> bool:
    """Case-insensitive substring test."""
    return term.casefold() in label.casefold()
