"""
Profile Store - Application profiles and their target vibrance
==============================================================
"""

import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from .mapper import clamp_vibrance

if TYPE_CHECKING:
    from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class AppProfile:
    """A rule binding an application to per-display vibrance values."""
    name: str
    executable: str = ""          # Executable path fragment
    window_title: str = ""        # Window title fragment
    path_matching: bool = False   # Match executable instead of title
    enabled: bool = True
    display_vibrance: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        self.display_vibrance = {
            str(display_id): clamp_vibrance(value)
            for display_id, value in self.display_vibrance.items()
        }

    @property
    def match_key(self) -> str:
        return self.executable if self.path_matching else self.window_title

    def matches(self, title: str, exe_path: str = "") -> bool:
        """
        Check whether this profile applies to a window.

        Substring containment against the executable path or the window
        title, ignoring case. An empty match key never matches.
        """
        key = self.match_key
        if not key:
            return False
        identity = exe_path if self.path_matching else title
        return key.casefold() in (identity or "").casefold()


class ProfileStore:
    """
    Named application profiles, kept in order and persisted on every change.

    Mutations update memory first and then write the whole settings file
    (atomically, see :meth:`Settings.save`). A failed write raises
    PersistenceError but leaves the in-memory change in place.
    """

    def __init__(self, settings: 'Settings', lock: Optional[threading.RLock] = None):
        """
        Args:
            settings: Settings file that owns the profile list
            lock: Lock shared with the controller, or None for a private one
        """
        self.settings = settings
        self._lock = lock or threading.RLock()

    def save_profile(self, profile: AppProfile):
        """Insert or replace the profile with the same name."""
        stored = copy.deepcopy(profile)
        with self._lock:
            profiles = self.settings.profiles
            for i, existing in enumerate(profiles):
                if existing.name == profile.name:
                    profiles[i] = stored
                    logger.info(f"Updated profile '{profile.name}'")
                    break
            else:
                profiles.append(stored)
                logger.info(f"Added profile '{profile.name}'")
            self.settings.save()

    def delete_profile(self, name: str) -> bool:
        """
        Remove a profile by name.

        Returns:
            True if a profile was removed
        """
        with self._lock:
            profiles = self.settings.profiles
            for i, existing in enumerate(profiles):
                if existing.name == name:
                    del profiles[i]
                    logger.info(f"Deleted profile '{name}'")
                    self.settings.save()
                    return True
        logger.debug(f"No profile named '{name}' to delete")
        return False

    def list_profiles(self) -> List[AppProfile]:
        with self._lock:
            return copy.deepcopy(self.settings.profiles)

    def find_profile(self, name: str) -> Optional[AppProfile]:
        with self._lock:
            for profile in self.settings.profiles:
                if profile.name == name:
                    return copy.deepcopy(profile)
        return None

    def find_match(self, title: str, exe_path: str = "") -> Optional[AppProfile]:
        """First enabled profile, in store order, matching the window."""
        with self._lock:
            for profile in self.settings.profiles:
                if profile.enabled and profile.matches(title, exe_path):
                    return copy.deepcopy(profile)
        return None
