"""
Settings File - Line-oriented key=value persistence
===================================================

Format::

    focus_mode=0
    display_DP-1=40
    profile_start=Games
    profile_path=/usr/bin/steam
    profile_title=
    profile_pathmatching=1
    profile_enabled=1
    profile_vibrance_DP-1=60
    profile_end

Unknown keys and malformed lines are ignored. Writes go to a temporary
file in the same directory which then replaces the settings file, so a
crash mid-write leaves the previous file intact.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from .errors import PersistenceError
from .mapper import clamp_vibrance
from .profiles import AppProfile

logger = logging.getLogger(__name__)

DISPLAY_PREFIX = "display_"
PROFILE_VIBRANCE_PREFIX = "profile_vibrance_"


def _parse_bool(value: str) -> bool:
    return value.strip() == "1"


def _parse_vibrance(value: str) -> Optional[int]:
    try:
        return clamp_vibrance(float(value))
    except ValueError:
        return None


class Settings:
    """User state: focus mode, last per-display values and profiles."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.focus_mode = False
        self.display_vibrance: Dict[str, int] = {}
        self.profiles: List[AppProfile] = []

    def load(self) -> bool:
        """
        Load settings from file.

        Returns:
            True if a file was read, False if it does not exist (defaults)

        Raises:
            PersistenceError: If the file exists but cannot be read
        """
        self.focus_mode = False
        self.display_vibrance = {}
        self.profiles = []

        if not self.path.exists():
            logger.info(f"Settings file not found, using defaults: {self.path}")
            return False

        try:
            text = self.path.read_text()
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Cannot read settings file {self.path}: {e}") from e

        self.parse(text)
        logger.info(f"Loaded settings from {self.path} ({len(self.profiles)} profile(s))")
        return True

    def parse(self, text: str):
        """Replace the current state with the contents of ``text``."""
        self.focus_mode = False
        self.display_vibrance = {}
        self.profiles = []
        current: Optional[AppProfile] = None

        for line_number, raw_line in enumerate(text.splitlines(), 1):
            line = raw_line.strip()
            if not line or line.startswith('#'):
                continue

            if line == "profile_end":
                if current is not None:
                    self.profiles.append(current)
                current = None
                continue

            key, sep, value = line.partition('=')
            if not sep:
                logger.debug(f"Ignoring malformed settings line {line_number}: {line!r}")
                continue
            key = key.strip()
            value = value.strip()

            if key == "profile_start":
                if current is not None:
                    logger.warning(f"Profile '{current.name}' has no profile_end, keeping it")
                    self.profiles.append(current)
                current = AppProfile(name=value)
            elif current is not None and key.startswith("profile_"):
                self._parse_profile_key(current, key, value, line_number)
            elif key == "focus_mode":
                self.focus_mode = _parse_bool(value)
            elif key.startswith(DISPLAY_PREFIX) and len(key) > len(DISPLAY_PREFIX):
                vibrance = _parse_vibrance(value)
                if vibrance is None:
                    logger.debug(f"Ignoring invalid vibrance on line {line_number}: {value!r}")
                else:
                    self.display_vibrance[key[len(DISPLAY_PREFIX):]] = vibrance

        if current is not None:
            logger.warning(f"Profile '{current.name}' has no profile_end, keeping it")
            self.profiles.append(current)

    @staticmethod
    def _parse_profile_key(profile: AppProfile, key: str, value: str, line_number: int):
        if key == "profile_path":
            profile.executable = value
        elif key == "profile_title":
            profile.window_title = value
        elif key == "profile_pathmatching":
            profile.path_matching = _parse_bool(value)
        elif key == "profile_enabled":
            profile.enabled = _parse_bool(value)
        elif key.startswith(PROFILE_VIBRANCE_PREFIX) and len(key) > len(PROFILE_VIBRANCE_PREFIX):
            vibrance = _parse_vibrance(value)
            if vibrance is None:
                logger.debug(f"Ignoring invalid profile vibrance on line {line_number}: {value!r}")
            else:
                profile.display_vibrance[key[len(PROFILE_VIBRANCE_PREFIX):]] = vibrance

    def serialize(self) -> str:
        """Render the current state in the settings file format."""
        lines = [f"focus_mode={1 if self.focus_mode else 0}"]
        for display_id, vibrance in self.display_vibrance.items():
            lines.append(f"{DISPLAY_PREFIX}{display_id}={vibrance}")

        for profile in self.profiles:
            lines.append(f"profile_start={profile.name}")
            lines.append(f"profile_path={profile.executable}")
            lines.append(f"profile_title={profile.window_title}")
            lines.append(f"profile_pathmatching={1 if profile.path_matching else 0}")
            lines.append(f"profile_enabled={1 if profile.enabled else 0}")
            for display_id, vibrance in profile.display_vibrance.items():
                lines.append(f"{PROFILE_VIBRANCE_PREFIX}{display_id}={vibrance}")
            lines.append("profile_end")
        return '\n'.join(lines) + '\n'

    def save(self):
        """
        Write the settings file atomically.

        Raises:
            PersistenceError: If the file cannot be written
        """
        text = self.serialize()
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".vivid-", suffix=".tmp", dir=self.path.parent)
            with os.fdopen(fd, 'w') as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
            logger.debug(f"Saved settings to {self.path}")
        except OSError as e:
            raise PersistenceError(f"Cannot write settings file {self.path}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
