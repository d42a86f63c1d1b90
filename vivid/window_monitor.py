"""
Window Monitor - Identify the focused application
=================================================
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

IS_WAYLAND = (os.environ.get('XDG_SESSION_TYPE') == 'wayland' or
              os.environ.get('WAYLAND_DISPLAY') is not None)

# Try to import Xlib for X11 support
try:
    from Xlib import X, display
    XLIB_AVAILABLE = True
except ImportError:
    XLIB_AVAILABLE = False
    if not IS_WAYLAND:
        logger.info("python-xlib not available, falling back to xdotool")


@dataclass
class WindowInfo:
    """Identity of the focused window."""
    window_id: int
    title: str
    window_class: str
    pid: int
    exe_path: str = ""


def exe_path_for_pid(pid: int) -> str:
    """Resolve the executable of a process from /proc, empty if unknown."""
    if pid <= 0:
        return ""
    try:
        return os.readlink(f"/proc/{pid}/exe")
    except OSError:
        pass
    # Processes of other users hide exe but usually expose cmdline
    try:
        with open(f"/proc/{pid}/cmdline", 'rb') as f:
            return f.read().split(b'\0', 1)[0].decode('utf-8', errors='replace')
    except OSError:
        return ""


class WindowMonitorX11:
    """Active window lookup through python-xlib (EWMH properties)."""

    def __init__(self):
        """Initialize X11 window monitor."""
        if not XLIB_AVAILABLE:
            raise RuntimeError("Xlib not available")

        self._display = display.Display()
        self._root = self._display.screen().root
        self._atoms = {
            'active_window': self._display.intern_atom('_NET_ACTIVE_WINDOW'),
            'wm_name': self._display.intern_atom('_NET_WM_NAME'),
            'wm_pid': self._display.intern_atom('_NET_WM_PID'),
        }

    def get_active_window(self) -> Optional[WindowInfo]:
        """
        Get information about the currently active window.

        Returns:
            WindowInfo for the active window, or None if no window is active
        """
        try:
            prop = self._root.get_full_property(self._atoms['active_window'], X.AnyPropertyType)
            if not prop or not prop.value:
                return None

            window_id = prop.value[0]
            if window_id == 0:
                return None

            window = self._display.create_resource_object('window', window_id)

            wm_class = window.get_wm_class()
            window_class = wm_class[1] if wm_class else ""

            title = ""
            prop = window.get_full_property(self._atoms['wm_name'], X.AnyPropertyType)
            if prop and prop.value:
                value = prop.value
                title = value.decode('utf-8', errors='replace') if isinstance(value, bytes) else str(value)
            if not title:
                title = window.get_wm_name() or ""

            pid = 0
            prop = window.get_full_property(self._atoms['wm_pid'], X.AnyPropertyType)
            if prop and prop.value:
                pid = int(prop.value[0])

            return WindowInfo(
                window_id=window_id,
                title=title,
                window_class=window_class,
                pid=pid,
                exe_path=exe_path_for_pid(pid),
            )
        except Exception as e:
            logger.debug(f"Error getting active window: {e}")
            return None


class WindowMonitorXdotool:
    """Active window lookup through xdotool (fallback when Xlib is missing)."""

    def __init__(self, timeout: float = 2):
        self.timeout = timeout

    def _xdotool(self, *args: str) -> Optional[str]:
        result = subprocess.run(
            ["xdotool", *args],
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def get_active_window(self) -> Optional[WindowInfo]:
        """Get information about the currently active window."""
        try:
            window = self._xdotool("getactivewindow")
            if not window:
                return None
            window_id = int(window)

            title = self._xdotool("getwindowname", str(window_id)) or ""
            window_class = self._xdotool("getwindowclassname", str(window_id)) or ""

            pid_text = self._xdotool("getwindowpid", str(window_id))
            pid = int(pid_text) if pid_text and pid_text.isdigit() else 0

            return WindowInfo(
                window_id=window_id,
                title=title,
                window_class=window_class,
                pid=pid,
                exe_path=exe_path_for_pid(pid),
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.debug(f"Error getting active window: {e}")
            return None


class WindowMonitor:
    """
    Unified active-window lookup using the best available method.
    """

    def __init__(self):
        """Initialize window monitor with best available backend."""
        if XLIB_AVAILABLE and not IS_WAYLAND:
            try:
                self._backend = WindowMonitorX11()
                self._backend_name = "X11/Xlib"
            except Exception as e:
                logger.warning(f"Failed to initialize X11 backend: {e}")
                self._backend = WindowMonitorXdotool()
                self._backend_name = "xdotool"
        else:
            # On Wayland xdotool only sees XWayland windows
            self._backend = WindowMonitorXdotool()
            self._backend_name = "xdotool"

        logger.info(f"Using window monitor backend: {self._backend_name}")

    @property
    def backend_name(self) -> str:
        return self._backend_name

    def get_active_window(self) -> Optional[WindowInfo]:
        """Get information about the currently active window."""
        return self._backend.get_active_window()
