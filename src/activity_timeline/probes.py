"""Platform probes queried by the polling event sources."""

from __future__ import annotations

import ctypes
import logging
import os
import re
import subprocess
import sys
from dataclasses import dataclass
from typing import Optional, Protocol

import psutil

from .normalization import normalize_app_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessInfo:
    pid: int
    name: str
    create_time: float


@dataclass(frozen=True, slots=True)
class WindowInfo:
    app_name: str
    window_title: Optional[str]


class ProcessProbe(Protocol):
    def list_processes(self) -> list[ProcessInfo]: ...


class ForegroundProbe(Protocol):
    def get_active_window(self) -> tuple[Optional[str], Optional[str]]: ...


class WindowListProbe(Protocol):
    def list_windows(self) -> list[WindowInfo]: ...


class ScreenLockProbe(Protocol):
    def is_locked(self) -> Optional[bool]: ...


def _process_name(pid: int) -> Optional[str]:
    try:
        return psutil.Process(pid).name() if pid else None
    except (psutil.Error, ProcessLookupError):
        return None


def _run(args: list[str]) -> Optional[str]:
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=2)
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout


class PsutilProcessProbe:
    """Reads the process table through psutil."""

    def list_processes(self) -> list[ProcessInfo]:
        processes: list[ProcessInfo] = []
        for proc in psutil.process_iter(["pid", "name", "create_time"]):
            info = proc.info
            name = info.get("name")
            if not name:
                continue
            processes.append(
                ProcessInfo(
                    pid=info["pid"],
                    name=name,
                    create_time=info.get("create_time") or 0.0,
                )
            )
        return processes


class WindowsForegroundProbe:
    """Retrieves the foreground window title and process name."""

    def __init__(self) -> None:
        from ctypes import wintypes

        self._wintypes = wintypes
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def _window_text(self, hwnd: int) -> Optional[str]:
        length = self._user32.GetWindowTextLengthW(hwnd)
        buffer = ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)
        return buffer.value.strip() or None

    def _window_pid(self, hwnd: int) -> int:
        pid = self._wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        return pid.value

    def get_active_window(self) -> tuple[Optional[str], Optional[str]]:
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None, None
        return _process_name(self._window_pid(hwnd)), self._window_text(hwnd)


class WindowsWindowListProbe(WindowsForegroundProbe):
    """Enumerates visible, titled top-level windows."""

    def list_windows(self) -> list[WindowInfo]:
        windows: list[WindowInfo] = []
        enum_proc = ctypes.WINFUNCTYPE(
            ctypes.c_bool, self._wintypes.HWND, self._wintypes.LPARAM
        )

        def _collect(hwnd: int, _lparam: int) -> bool:
            if not self._user32.IsWindowVisible(hwnd):
                return True
            title = self._window_text(hwnd)
            if title:
                name = _process_name(self._window_pid(hwnd))
                windows.append(WindowInfo(normalize_app_name(name), title))
            return True

        self._user32.EnumWindows(enum_proc(_collect), 0)
        return windows


class WindowsScreenLockProbe:
    """The input desktop cannot be opened while the workstation is locked."""

    DESKTOP_SWITCHDESKTOP = 0x0100

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def is_locked(self) -> Optional[bool]:
        handle = self._user32.OpenInputDesktop(0, False, self.DESKTOP_SWITCHDESKTOP)
        if not handle:
            return True
        try:
            return not self._user32.SwitchDesktop(handle)
        finally:
            self._user32.CloseDesktop(handle)


class X11ForegroundProbe:
    """Uses xprop to read the active window on X11 sessions."""

    _WINDOW_ID = re.compile(r"0x[0-9a-fA-F]+")
    _QUOTED = re.compile(r'"((?:[^"\\]|\\.)*)"')

    def get_active_window(self) -> tuple[Optional[str], Optional[str]]:
        output = _run(["xprop", "-root", "_NET_ACTIVE_WINDOW"])
        match = self._WINDOW_ID.search(output or "")
        if not match or int(match.group(0), 16) == 0:
            return None, None
        props = _run(["xprop", "-id", match.group(0), "_NET_WM_PID", "WM_NAME"])
        if props is None:
            return None, None
        process_name: Optional[str] = None
        window_title: Optional[str] = None
        for line in props.splitlines():
            if line.startswith("_NET_WM_PID"):
                pid_text = line.rsplit("=", 1)[-1].strip()
                if pid_text.isdigit():
                    process_name = _process_name(int(pid_text))
            elif line.startswith("WM_NAME"):
                quoted = self._QUOTED.search(line)
                window_title = quoted.group(1).strip() if quoted else None
        return process_name, window_title or None


class WmctrlWindowListProbe:
    """Lists managed windows through ``wmctrl -lp``."""

    def list_windows(self) -> list[WindowInfo]:
        output = _run(["wmctrl", "-lp"])
        if output is None:
            return []
        windows: list[WindowInfo] = []
        for line in output.splitlines():
            # <id> <desktop> <pid> <host> <title...>
            parts = line.split(None, 4)
            if len(parts) < 5 or parts[1] == "-1":
                continue
            pid = int(parts[2]) if parts[2].isdigit() else 0
            windows.append(WindowInfo(normalize_app_name(_process_name(pid)), parts[4].strip()))
        return windows


_FIELD_SEPARATOR = "|||"

_FRONTMOST_SCRIPT = """
tell application "System Events"
    set frontApp to first application process whose frontmost is true
    set appName to name of frontApp
    try
        set windowName to ""
        if (count of windows of frontApp) > 0 then
            set windowName to name of front window of frontApp
        end if
        return appName & "|||" & windowName
    on error
        return appName & "|||"
    end try
end tell
"""

_WINDOW_LIST_SCRIPT = """
set output to ""
tell application "System Events"
    repeat with proc in (every application process whose visible is true)
        set appName to name of proc
        try
            repeat with windowName in (name of every window of proc)
                set output to output & appName & "|||" & windowName & linefeed
            end repeat
        end try
    end repeat
end tell
return output
"""


class MacForegroundProbe:
    """Asks System Events for the frontmost application and its front window."""

    def get_active_window(self) -> tuple[Optional[str], Optional[str]]:
        output = _run(["osascript", "-e", _FRONTMOST_SCRIPT])
        if not output or not output.strip():
            return None, None
        app_name, _, window_title = output.strip().partition(_FIELD_SEPARATOR)
        return app_name.strip() or None, window_title.strip() or None


class MacWindowListProbe:
    """Lists the windows of every visible application process via System Events."""

    def list_windows(self) -> list[WindowInfo]:
        output = _run(["osascript", "-e", _WINDOW_LIST_SCRIPT])
        if output is None:
            return []
        windows: list[WindowInfo] = []
        for line in output.splitlines():
            app_name, separator, window_title = line.partition(_FIELD_SEPARATOR)
            if not separator or not app_name.strip():
                continue
            windows.append(
                WindowInfo(normalize_app_name(app_name), window_title.strip() or None)
            )
        return windows


class MacScreenLockProbe:
    """Reads CGSSessionScreenIsLocked from the console session registry."""

    def is_locked(self) -> Optional[bool]:
        output = _run(["ioreg", "-n", "Root", "-d1"])
        if output is None:
            return None
        return '"CGSSessionScreenIsLocked"=Yes' in output


class LoginctlScreenLockProbe:
    """Reads systemd-logind's LockedHint for the current session."""

    def __init__(self, session_id: Optional[str] = None) -> None:
        self._session_id = session_id or os.environ.get("XDG_SESSION_ID")

    def is_locked(self) -> Optional[bool]:
        if not self._session_id:
            return None
        output = _run(
            ["loginctl", "show-session", self._session_id, "-p", "LockedHint", "--value"]
        )
        if output is None:
            return None
        return output.strip().lower() == "yes"


class NullProbe:
    """Reports nothing on platforms without a supported facility."""

    def get_active_window(self) -> tuple[Optional[str], Optional[str]]:
        return None, None

    def list_windows(self) -> list[WindowInfo]:
        return []

    def is_locked(self) -> Optional[bool]:
        return None


def default_foreground_probe() -> ForegroundProbe:
    if sys.platform == "win32":
        return WindowsForegroundProbe()
    if sys.platform.startswith("linux"):
        return X11ForegroundProbe()
    if sys.platform == "darwin":
        return MacForegroundProbe()
    logger.info("No foreground-window probe for %s.", sys.platform)
    return NullProbe()


def default_window_list_probe() -> WindowListProbe:
    if sys.platform == "win32":
        return WindowsWindowListProbe()
    if sys.platform.startswith("linux"):
        return WmctrlWindowListProbe()
    if sys.platform == "darwin":
        return MacWindowListProbe()
    logger.info("No window-list probe for %s.", sys.platform)
    return NullProbe()


def default_screen_lock_probe() -> ScreenLockProbe:
    if sys.platform == "win32":
        return WindowsScreenLockProbe()
    if sys.platform.startswith("linux"):
        return LoginctlScreenLockProbe()
    if sys.platform == "darwin":
        return MacScreenLockProbe()
    logger.info("No screen-lock probe for %s.", sys.platform)
    return NullProbe()
