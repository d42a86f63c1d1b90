"""
Display Inventory - Enumerate connected outputs
===============================================
"""

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)

DRM_ROOT = Path("/sys/class/drm")
PLACEHOLDER_PREFIX = "placeholder-"


@dataclass
class Display:
    """One connected output."""
    id: str                     # Platform identifier (e.g., "DP-1")
    name: str                   # Human-readable label, may equal id
    connected: bool = True
    current_vibrance: int = 0   # Last value applied through the controller

    @property
    def is_placeholder(self) -> bool:
        return self.id.startswith(PLACEHOLDER_PREFIX)


def query_xrandr_outputs(timeout: float = 10) -> List[str]:
    """
    Get the names of connected outputs from xrandr.

    Returns:
        Output names in xrandr order, empty on any failure
    """
    try:
        result = subprocess.run(
            ["xrandr", "--query"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"xrandr query failed: {e}")
        return []

    if result.returncode != 0:
        logger.debug(f"xrandr query exited with status {result.returncode}")
        return []

    return parse_xrandr_outputs(result.stdout)


def parse_xrandr_outputs(text: str) -> List[str]:
    """Extract connected output names from ``xrandr --query`` output."""
    outputs = []
    for line in text.splitlines():
        # Match lines like: "DisplayPort-0 connected primary 5118x3412+0+0"
        match = re.match(r'^(\S+)\s+connected\b', line)
        if match:
            outputs.append(match.group(1))
    return outputs


def query_drm_connectors(drm_root: Path = DRM_ROOT) -> List[str]:
    """
    Get connected outputs from DRM sysfs (works without an X server).

    Connector directories look like "card1-DP-1"; the "cardN-" prefix is
    stripped so ids resemble xrandr/compositor names.
    """
    outputs = []
    try:
        status_files = sorted(drm_root.glob("card*-*/status"))
    except OSError as e:
        logger.debug(f"Cannot scan {drm_root}: {e}")
        return []

    for status_file in status_files:
        try:
            status = status_file.read_text().strip()
        except OSError:
            continue
        if status != "connected":
            continue
        connector = status_file.parent.name
        match = re.match(r'card\d+-(.+)', connector)
        outputs.append(match.group(1) if match else connector)
    return outputs


def placeholder_displays(count: int = 2) -> List[Display]:
    """Fixed stand-in displays for headless sessions."""
    return [
        Display(id=f"{PLACEHOLDER_PREFIX}{i}", name=f"Placeholder Display {i}")
        for i in range(1, count + 1)
    ]


class DisplayInventory:
    """
    Enumerates connected displays.

    Sources are queried in order and the first non-empty result wins. When
    every source fails or returns nothing (headless, container, CI), a set
    of placeholder displays is returned instead, so enumerate() never
    raises and never returns an empty list.
    """

    def __init__(
        self,
        query: Optional[Callable[[], Sequence[str]]] = None,
        placeholder_count: int = 2,
    ):
        """
        Args:
            query: Single query function to use instead of xrandr + DRM sysfs
            placeholder_count: Number of placeholder displays on fallback
        """
        if query is not None:
            self._sources = [query]
        else:
            self._sources = [query_xrandr_outputs, query_drm_connectors]
        self.placeholder_count = placeholder_count

    def _query(self) -> List[str]:
        for source in self._sources:
            try:
                ids = list(source() or [])
            except Exception as e:
                logger.warning(f"Display query failed: {e}")
                continue

            unique = []
            for display_id in ids:
                display_id = str(display_id).strip()
                if display_id and display_id not in unique:
                    unique.append(display_id)
            if unique:
                return unique
        return []

    def enumerate(self) -> List[Display]:
        """Return the connected displays, or placeholders if none are found."""
        ids = self._query()
        if not ids:
            logger.info("No connected displays found, using placeholder displays")
            return placeholder_displays(self.placeholder_count)

        for display_id in ids:
            logger.info(f"Found display: {display_id}")
        return [Display(id=display_id, name=display_id) for display_id in ids]
