"""
Focus Monitor - Apply profiles for the focused application
==========================================================
"""

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

from .errors import DisplayNotFoundError
from .profiles import AppProfile
from .window_monitor import WindowMonitor

if TYPE_CHECKING:
    from .controller import VibranceController

logger = logging.getLogger(__name__)


class FocusState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class FocusMonitor:
    """
    Background poller that switches vibrance with the focused application.

    Every ``interval`` seconds the focused window is read, profiles are
    evaluated in store order and the first enabled match has its target
    values applied through the controller. When nothing matches, every
    display goes back to neutral. The monitor keeps no copy of controller
    state; it only calls the controller's public methods.
    """

    def __init__(
        self,
        controller: 'VibranceController',
        window_monitor: Optional[WindowMonitor] = None,
        interval: float = 1.0,
    ):
        """
        Args:
            controller: Controller that owns displays, backend and profiles
            window_monitor: Source of the focused window (created on first use)
            interval: Polling interval in seconds
        """
        self.controller = controller
        self.window_monitor = window_monitor
        self.interval = interval
        self._state = FocusState.STOPPED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._active_profile: Optional[str] = None

    @property
    def state(self) -> FocusState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is FocusState.RUNNING

    @property
    def active_profile(self) -> Optional[str]:
        """Name of the profile applied by the last tick, if any."""
        return self._active_profile

    def enable(self):
        """Start polling (Stopped → Running)."""
        with self._state_lock:
            if self._state is FocusState.RUNNING:
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._monitor_loop,
                args=(self._stop_event,),
                name="vivid-focus-monitor",
                daemon=True,
            )
            self._state = FocusState.RUNNING
            self._thread.start()
        logger.info(f"Focus monitor started (interval {self.interval:.1f}s)")

    def disable(self, reset: bool = True):
        """
        Stop polling (Running → Stopped).

        Args:
            reset: Return all displays to neutral after stopping
        """
        with self._state_lock:
            if self._state is FocusState.STOPPED:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._state = FocusState.STOPPED

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval + 5)
        self._active_profile = None
        logger.info("Focus monitor stopped")

        if reset:
            self.controller.reset_all()

    def _monitor_loop(self, stop_event: threading.Event):
        """Main monitoring loop (polling-based)."""
        while not stop_event.is_set():
            try:
                self.tick(stop_event)
            except Exception as e:
                logger.error(f"Error in focus monitor loop: {e}")
            stop_event.wait(self.interval)

    def read_identity(self) -> Tuple[str, str]:
        """
        Read the focused window.

        Returns:
            (window title, executable path); empty strings on failure
        """
        try:
            if self.window_monitor is None:
                self.window_monitor = WindowMonitor()
            window = self.window_monitor.get_active_window()
        except Exception as e:
            logger.debug(f"Cannot read focused window: {e}")
            return "", ""

        if window is None:
            return "", ""
        return window.title or "", window.exe_path or ""

    def tick(self, stop_event: Optional[threading.Event] = None) -> Optional[AppProfile]:
        """
        Run one polling step.

        Args:
            stop_event: When set, remaining profile targets are skipped

        Returns:
            The profile that was applied, or None if nothing matched
        """
        title, exe_path = self.read_identity()
        profile = None
        if title or exe_path:
            profile = self.controller.profiles.find_match(title, exe_path)

        if profile is None:
            if self._active_profile is not None:
                logger.info(f"Leaving profile '{self._active_profile}'")
            self._active_profile = None
            if any(d.current_vibrance != 0 for d in self.controller.get_displays()):
                self.controller.reset_all()
            return None

        if profile.name != self._active_profile:
            logger.info(f"Switching to profile '{profile.name}' for window '{title}'")
            self._active_profile = profile.name

        for display_id, target in profile.display_vibrance.items():
            if stop_event is not None and stop_event.is_set():
                logger.debug(f"Focus monitor stopping, skipping rest of profile '{profile.name}'")
                break
            if self.controller.get_vibrance(display_id) == target:
                continue
            try:
                if not self.controller.set_vibrance(display_id, target):
                    logger.warning(f"Profile '{profile.name}': could not set {display_id} to {target}")
            except DisplayNotFoundError:
                logger.warning(f"Profile '{profile.name}' targets unknown display {display_id}")
        return profile
