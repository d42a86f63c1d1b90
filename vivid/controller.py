"""
Vibrance Controller - Public surface for presentation and CLI code
==================================================================

Owns the display inventory, the active backend method, the settings file
and the profile store. All of this shared state is guarded by one lock,
which is never held while an external tool runs: callers snapshot what
they need, release the lock, invoke the backend and re-acquire the lock
to commit. Calls for the same display are serialized by a per-display
lock held across the backend call, so a newer value cannot be overtaken
by an older one.
"""

import copy
import logging
import shutil
import threading
from typing import Any, Dict, List, Optional, Tuple

from .backends import (
    BackendMethod,
    BackendSelector,
    default_methods,
)
from .config import Config
from .ddc import DDCController
from .display import Display, DisplayInventory
from .errors import (
    ApplyError,
    BackendUnavailableError,
    DisplayNotFoundError,
    ExternalToolFailedError,
    PersistenceError,
)
from .focus_monitor import FocusMonitor
from .mapper import (
    SAFE_VIBRANCE_MAX,
    SAFE_VIBRANCE_MIN,
    VIBRANCE_NEUTRAL,
    clamp_vibrance,
)
from .profiles import AppProfile, ProfileStore
from .settings import Settings
from .window_monitor import WindowMonitor

logger = logging.getLogger(__name__)

EXTERNAL_TOOLS = ("xrandr", "ddcutil", "xdotool")


def check_tools() -> Dict[str, bool]:
    """Which external tools used by the backends are installed."""
    return {tool: shutil.which(tool) is not None for tool in EXTERNAL_TOOLS}


def build_selector(config: Config) -> BackendSelector:
    """Backend selector with every method configured from ``config``."""
    ddc = DDCController(
        retry_count=config.ddc.retry_count,
        sleep_multiplier=config.ddc.sleep_multiplier,
        timeout=config.backends.tool_timeout,
    )
    methods = default_methods(
        mapping=config.mapping,
        timeout=config.backends.tool_timeout,
        ddc=ddc,
        vcp=config.ddc.vcp_code,
    )
    return BackendSelector(methods, disabled=config.backends.disabled)


class VibranceController:
    """
    Get, set and reset vibrance per display, manage profiles and focus mode.

    The backend is selected once at construction. When the active method
    fails with BackendUnavailableError or ExternalToolFailedError, one
    re-selection pass runs and the call is retried once with the new
    method; Demo is always reachable, so applying can always succeed.
    Call :meth:`shutdown` before discarding the controller to return
    every display to neutral.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        settings: Optional[Settings] = None,
        inventory: Optional[DisplayInventory] = None,
        selector: Optional[BackendSelector] = None,
        window_monitor: Optional[WindowMonitor] = None,
    ):
        """
        Initialize the controller: load settings, enumerate displays and
        select a backend.

        Args:
            config: Tunables, or None for defaults
            settings: Settings file (loaded from config.settings_path if None)
            inventory: Display inventory, or None for xrandr/DRM discovery
            selector: Backend selector, or None for all methods from config
            window_monitor: Focused-window source for the focus monitor
        """
        self.config = config or Config()
        self._lock = threading.RLock()
        self._reselect_lock = threading.Lock()
        self._display_locks: Dict[str, threading.Lock] = {}
        self._displays: Dict[str, Display] = {}
        self._method: Optional[BackendMethod] = None
        self._ready = False
        self._shut_down = False
        self.last_persistence_error: Optional[PersistenceError] = None

        if settings is None:
            settings = Settings(self.config.settings_path)
            try:
                settings.load()
            except PersistenceError as e:
                logger.error(f"{e}; continuing with defaults")
                self.last_persistence_error = e
        self.settings = settings
        self.profiles = ProfileStore(self.settings, lock=self._lock)

        self.inventory = inventory or DisplayInventory()
        self.selector = selector or build_selector(self.config)
        self.focus_monitor = FocusMonitor(
            self,
            window_monitor=window_monitor,
            interval=self.config.focus.poll_interval,
        )
        self._initialize()

    def _initialize(self):
        displays = self.inventory.enumerate()
        method = self.selector.select()
        with self._lock:
            self._set_displays(displays)
            self._method = method
            self._ready = True
        logger.info(f"Vivid ready with {len(displays)} display(s) using {method.display_name}")

    def _set_displays(self, displays: List[Display]):
        previous = self._displays
        self._displays = {}
        for display in displays:
            if display.id in previous:
                display.current_vibrance = previous[display.id].current_vibrance
            self._displays[display.id] = display
            self._display_locks.setdefault(display.id, threading.Lock())
            # Every known display gets a display_<id> entry in the settings file
            self.settings.display_vibrance.setdefault(display.id, VIBRANCE_NEUTRAL)

    def _is_shut_down(self) -> bool:
        with self._lock:
            return self._shut_down

    def _persist(self):
        """Write settings; failures are logged and kept for the caller."""
        try:
            self.settings.save()
            self.last_persistence_error = None
        except PersistenceError as e:
            logger.error(f"{e}; keeping changes in memory")
            self.last_persistence_error = e

    # Displays

    def get_displays(self) -> List[Display]:
        """Cached inventory (copies)."""
        with self._lock:
            return [copy.copy(d) for d in self._displays.values()]

    def rescan(self) -> List[Display]:
        """Re-enumerate displays, keeping cached values of displays still present."""
        displays = self.inventory.enumerate()
        with self._lock:
            self._set_displays(displays)
        logger.info(f"Display inventory rebuilt: {len(displays)} display(s)")
        return self.get_displays()

    def get_vibrance(self, display_id: str) -> int:
        """Last applied value, 0 if the display is unknown."""
        with self._lock:
            display = self._displays.get(display_id)
            return display.current_vibrance if display else VIBRANCE_NEUTRAL

    # Applying

    def _call_method(self, method: BackendMethod, display_id: str, value: int):
        if value == VIBRANCE_NEUTRAL:
            method.reset(display_id)
        else:
            method.apply(display_id, value)

    def _reselect(self, failed: BackendMethod) -> BackendMethod:
        """Replace a failed active method; probing runs outside the main lock."""
        with self._reselect_lock:
            with self._lock:
                current = self._method
            if current is not failed:
                # Another caller already switched away from it
                return current
            method = self.selector.reselect(failed)
            with self._lock:
                self._method = method
            logger.info(f"Switched backend: {failed.display_name} → {method.display_name}")
            return method

    def _release_from(self, method: BackendMethod, display_id: str):
        """Best-effort reset of a display through an abandoned method."""
        try:
            method.reset(display_id)
        except ApplyError as e:
            logger.debug(f"Could not reset {display_id} through {method.display_name}: {e}")

    def _apply(self, display_id: str, value: int, allow_reselect: bool = True) -> Tuple[bool, Optional[BackendMethod]]:
        """
        Apply through the active method, re-selecting once on failure.

        Returns:
            (success, abandoned method if a switch happened)
        """
        with self._lock:
            method = self._method
            previous = self._displays[display_id].current_vibrance if display_id in self._displays else 0

        try:
            self._call_method(method, display_id, value)
            return True, None
        except DisplayNotFoundError as e:
            logger.error(f"{method.display_name}: {e}")
            return False, None
        except (BackendUnavailableError, ExternalToolFailedError) as e:
            logger.warning(f"{method.display_name} failed for {display_id}: {e}")
            if not allow_reselect:
                return False, None

        new_method = self._reselect(method)
        if previous != VIBRANCE_NEUTRAL:
            self._release_from(method, display_id)
        try:
            self._call_method(new_method, display_id, value)
            return True, method
        except ApplyError as e:
            logger.error(f"Failed to set {display_id} to {value} after re-selection: {e}")
            return False, method

    def _commit(self, display_id: str, value: int):
        with self._lock:
            display = self._displays.get(display_id)
            if display is None:
                # Removed by a concurrent rescan
                return
            display.current_vibrance = value
            self.settings.display_vibrance[display_id] = value
            self._persist()

    def _reapply_after_switch(self, abandoned: BackendMethod, exclude: str):
        """Move displays still carrying a value from the abandoned method to the new one."""
        with self._lock:
            targets = [
                (d.id, d.current_vibrance, self._display_locks[d.id])
                for d in self._displays.values()
                if d.id != exclude and d.current_vibrance != VIBRANCE_NEUTRAL
            ]

        for display_id, value, display_lock in targets:
            with display_lock:
                if self._is_shut_down():
                    return
                self._release_from(abandoned, display_id)
                ok, _ = self._apply(display_id, value, allow_reselect=False)
            if not ok:
                logger.warning(f"Could not re-apply {value} to {display_id} after backend switch")

    def set_vibrance(self, display_id: str, value) -> bool:
        """
        Set vibrance for one display.

        After :meth:`shutdown` only resets are accepted.

        Args:
            display_id: Display id from get_displays()
            value: Vibrance, clamped to [-100, 100]

        Returns:
            True if the value was applied

        Raises:
            DisplayNotFoundError: If the display is not in the inventory

        """
        value = clamp_vibrance(value)
        with self._lock:
            if display_id not in self._displays:
                raise DisplayNotFoundError(display_id)
            display_lock = self._display_locks[display_id]

        with display_lock:
            if value != VIBRANCE_NEUTRAL and self._is_shut_down():
                logger.warning(f"Ignoring vibrance {value} for {display_id}: controller is shut down")
                return False
            ok, abandoned = self._apply(display_id, value)
            if ok:
                self._commit(display_id, value)
                logger.info(f"Set {display_id} vibrance to {value}")

        if abandoned is not None:
            self._reapply_after_switch(abandoned, exclude=display_id)
        return ok

    def set_vibrance_safe(self, display_id: str, value) -> bool:
        """Set vibrance limited to the conservative [-75, 75] range."""
        return self.set_vibrance(display_id, clamp_vibrance(value, SAFE_VIBRANCE_MIN, SAFE_VIBRANCE_MAX))

    def reset_display(self, display_id: str) -> bool:
        """Return one display to neutral."""
        return self.set_vibrance(display_id, VIBRANCE_NEUTRAL)

    def reset_all(self) -> bool:
        """
        Return every known display to neutral.

        Every display is attempted even if an earlier one fails.

        Returns:
            True if all displays were reset
        """
        with self._lock:
            display_ids = list(self._displays)

        success = True
        for display_id in display_ids:
            try:
                success &= self.reset_display(display_id)
            except DisplayNotFoundError:
                # Removed by a concurrent rescan
                continue
        if success:
            logger.info("Reset all displays")
        else:
            logger.warning("Some displays could not be reset")
        return success

    def restore_saved(self) -> bool:
        """Re-apply persisted per-display values to displays currently present."""
        with self._lock:
            saved = [
                (display_id, value)
                for display_id, value in self.settings.display_vibrance.items()
                if display_id in self._displays and value != VIBRANCE_NEUTRAL
            ]
        success = True
        for display_id, value in saved:
            success &= self.set_vibrance(display_id, value)
        return success

    # Profiles

    def save_profile(self, profile: AppProfile) -> bool:
        """
        Insert or replace a profile by name.

        Returns:
            True if the change was also written to disk
        """
        try:
            self.profiles.save_profile(profile)
        except PersistenceError as e:
            logger.error(f"{e}; profile kept in memory")
            self.last_persistence_error = e
            return False
        self.last_persistence_error = None
        return True

    def delete_profile(self, name: str) -> bool:
        """
        Delete a profile by name.

        Returns:
            True if a profile was removed (see last_persistence_error for disk state)
        """
        try:
            removed = self.profiles.delete_profile(name)
        except PersistenceError as e:
            logger.error(f"{e}; deletion kept in memory")
            self.last_persistence_error = e
            return True
        if removed:
            self.last_persistence_error = None
        return removed

    def list_profiles(self) -> List[AppProfile]:
        return self.profiles.list_profiles()

    def find_profile(self, name: str) -> Optional[AppProfile]:
        return self.profiles.find_profile(name)

    # Focus mode

    def set_focus_mode(self, enabled: bool):
        """Start or stop the focus monitor and remember the choice."""
        if enabled:
            self.focus_monitor.enable()
        else:
            self.focus_monitor.disable()
        with self._lock:
            self.settings.focus_mode = bool(enabled)
            self._persist()

    def is_focus_mode_enabled(self) -> bool:
        return self.focus_monitor.is_running

    def restore_focus_mode(self):
        """Start the focus monitor if it was enabled in the saved settings."""
        if self.settings.focus_mode:
            self.focus_monitor.enable()

    # Status

    def get_active_method(self) -> Optional[BackendMethod]:
        with self._lock:
            return self._method

    def get_active_method_name(self) -> str:
        with self._lock:
            return self._method.display_name if self._method else "None"

    def is_ready(self) -> bool:
        with self._lock:
            return self._ready and not self._shut_down

    def status(self) -> Dict[str, Any]:
        """Summary for status displays."""
        with self._lock:
            return {
                'method': self._method.display_name if self._method else "None",
                'ready': self._ready and not self._shut_down,
                'session': self.selector.session_type,
                'focus_mode': self.focus_monitor.is_running,
                'displays': {d.id: d.current_vibrance for d in self._displays.values()},
                'profiles': len(self.settings.profiles),
            }

    def shutdown(self) -> bool:
        """
        Stop the focus monitor and return every display to neutral.

        Safe to call more than once.

        Returns:
            True if all displays were reset
        """
        with self._lock:
            if self._shut_down:
                return True
            self._shut_down = True

        logger.info("Safety shutdown: resetting all displays")
        self.focus_monitor.disable(reset=False)
        return self.reset_all()
