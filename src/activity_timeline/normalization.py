"""Utilities to normalize names, titles and subject keys."""

from __future__ import annotations

import re
from typing import Optional

from .config import WindowKeying

UNKNOWN_SUBJECT_KEY = "<unknown>"
UNKNOWN_NAME = "Unknown"
UNTITLED_WINDOW = "Untitled Window"
SCREEN_SUBJECT_KEY = "screen"
ACTIVATION_KEY_PREFIX = "active:"

_WHITESPACE_RUN = re.compile(r"\s{2,}")
_EXECUTABLE_SUFFIXES = (".exe", ".app", ".bin")


def normalize_app_name(name: Optional[str]) -> str:
    """Strip executable suffixes so 'Code.exe' and 'Code' share a key."""
    if not name:
        return UNKNOWN_NAME
    cleaned = name.strip()
    lowered = cleaned.lower()
    for suffix in _EXECUTABLE_SUFFIXES:
        if lowered.endswith(suffix):
            cleaned = cleaned[: -len(suffix)]
            break
    return cleaned or UNKNOWN_NAME


def normalize_window_title(window_title: Optional[str]) -> str:
    if not window_title:
        return UNTITLED_WINDOW
    normalized = _WHITESPACE_RUN.sub(" ", window_title).strip()
    return normalized or UNTITLED_WINDOW


def coerce_subject_key(key: Optional[str]) -> str:
    if key is None:
        return UNKNOWN_SUBJECT_KEY
    stripped = key.strip()
    return stripped or UNKNOWN_SUBJECT_KEY


def window_subject_key(
    app_name: str,
    window_title: str,
    keying: WindowKeying = WindowKeying.PER_WINDOW,
) -> str:
    """Build the correlation key for a window.

    ``PER_WINDOW`` keys every window by ``app + "-" + title``. The coarse
    ``PER_APPLICATION`` policy collapses all windows of an application onto
    the application name, so the first close ends the shared interval.
    """
    if keying is WindowKeying.PER_APPLICATION:
        return app_name
    return f"{app_name}-{window_title}"


def activation_subject_key(app_name: str) -> str:
    return f"{ACTIVATION_KEY_PREFIX}{app_name}"
