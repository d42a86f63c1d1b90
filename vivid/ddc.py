"""
DDC/CI Controller - Interface to ddcutil for monitor communication
==================================================================
"""

import logging
import re
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import BackendUnavailableError, ExternalToolFailedError

logger = logging.getLogger(__name__)

VCP_SATURATION = 0x8A


@dataclass
class MonitorInfo:
    """Information about a monitor detected by ddcutil."""
    display_number: int
    model: str
    serial: str
    manufacturer: str
    i2c_bus: str
    drm_connector: str = ""  # DRM connector name (e.g., "card1-DP-1")

    def __str__(self):
        return f"{self.manufacturer} {self.model} (Display {self.display_number})"

    @property
    def connector(self) -> str:
        """DRM connector without the card prefix (e.g., "DP-1")."""
        match = re.match(r'card\d+-(.+)', self.drm_connector)
        return match.group(1) if match else self.drm_connector

    def connector_aliases(self) -> List[str]:
        """
        Output names this monitor may have under X11 or a compositor.

        DRM connectors are like "card1-DP-1", xrandr outputs like
        "DisplayPort-0" (amdgpu) or "DP-1" (modesetting).
        """
        aliases = []
        if self.connector:
            aliases.append(self.connector)

        match = re.match(r'card\d+-(\w+?)(?:-A)?-(\d+)$', self.drm_connector)
        if not match:
            return aliases

        drm_type = match.group(1)
        drm_num = int(match.group(2))
        if drm_type == "DP":
            aliases.extend([f"DisplayPort-{drm_num - 1}", f"DisplayPort-{drm_num}",
                            f"DP-{drm_num - 1}"])
        elif drm_type == "HDMI":
            aliases.extend([f"HDMI-{drm_num}", f"HDMI-{drm_num - 1}",
                            f"HDMI-A-{drm_num - 1}"])
        elif drm_type == "eDP":
            aliases.extend(["eDP", f"eDP-{drm_num - 1}"])
        return aliases


def parse_detect_output(text: str) -> List[MonitorInfo]:
    """
    Parse ``ddcutil detect --terse`` output.

    Blocks are separated by blank lines and start with "Display N". Lines
    that do not fit the format are ignored; a block without a display
    number ("Invalid display") yields no monitor.
    """
    monitors = []
    current: Dict[str, Any] = {}

    def flush():
        if current.get('display_number'):
            monitors.append(MonitorInfo(
                display_number=current['display_number'],
                model=current.get('model', 'Unknown'),
                serial=current.get('serial', ''),
                manufacturer=current.get('manufacturer', 'Unknown'),
                i2c_bus=current.get('i2c_bus', ''),
                drm_connector=current.get('drm_connector', ''),
            ))

    for line in text.split('\n'):
        line = line.strip()
        if not line:
            flush()
            current = {}
            continue

        if line.startswith('Display'):
            match = re.match(r'Display (\d+)', line)
            if match:
                current['display_number'] = int(match.group(1))
        elif ':' in line:
            key, _, value = line.partition(':')
            key = key.strip().lower().replace(' ', '_')
            value = value.strip()

            # Terse format has "Monitor: MFG:Model:Serial"
            if key == 'monitor' and ':' in value:
                parts = value.split(':')
                current['manufacturer'] = parts[0] or 'Unknown'
                if len(parts) >= 2:
                    current['model'] = parts[1] or 'Unknown'
                if len(parts) >= 3:
                    current['serial'] = parts[2]
            elif key == 'i2c_bus':
                current['i2c_bus'] = value
            elif key == 'drm_connector':
                current['drm_connector'] = value

    flush()
    return monitors


class DDCController:
    """
    Controller for DDC/CI communication with monitors via ddcutil.

    One instance serves every monitor; commands are serialized and rate
    limited because concurrent I2C traffic makes ddcutil fail.
    """

    def __init__(
        self,
        retry_count: int = 1,
        sleep_multiplier: float = 0.5,
        timeout: float = 5.0,
    ):
        """
        Initialize DDC controller.

        Args:
            retry_count: Number of attempts for failed commands
            sleep_multiplier: ddcutil --sleep-multiplier value
            timeout: Per-command timeout in seconds
        """
        self.retry_count = max(1, retry_count)
        self.sleep_multiplier = sleep_multiplier
        self.timeout = timeout
        self._lock = threading.Lock()
        self._last_command_time = 0.0
        self._min_command_interval = 0.1 * sleep_multiplier
        # Cache of last-set VCP values to avoid redundant DDC writes
        self._vcp_cache: Dict[Tuple[int, int], int] = {}
        self._monitors: Optional[List[MonitorInfo]] = None

    def _run_ddcutil(
        self,
        command: List[str],
        display_number: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a ddcutil command with retry logic.

        Raises:
            BackendUnavailableError: If ddcutil cannot be started
            ExternalToolFailedError: If the command fails after retries
        """
        timeout = timeout or self.timeout
        full_command = ["ddcutil", "--sleep-multiplier", f"{self.sleep_multiplier:.1f}"]
        if display_number is not None:
            full_command.extend(["--display", str(display_number)])
        full_command.extend(command)
        cmd_text = ' '.join(full_command)

        with self._lock:
            # Rate limiting
            elapsed = time.time() - self._last_command_time
            if elapsed < self._min_command_interval:
                time.sleep(self._min_command_interval - elapsed)

            last_error: Optional[ExternalToolFailedError] = None
            for attempt in range(self.retry_count):
                logger.debug(f"DDC running (attempt {attempt + 1}): {cmd_text}")
                try:
                    result = subprocess.run(
                        full_command,
                        capture_output=True,
                        text=True,
                        timeout=timeout,
                    )
                except (FileNotFoundError, PermissionError) as e:
                    raise BackendUnavailableError(f"ddcutil cannot be started: {e}") from e
                except subprocess.TimeoutExpired:
                    logger.warning(f"DDC command timed out after {timeout:.1f}s: {cmd_text}")
                    last_error = ExternalToolFailedError(cmd_text, None)
                    continue
                finally:
                    self._last_command_time = time.time()

                if result.returncode == 0:
                    return result

                stderr_msg = result.stderr.strip() if result.stderr else ""
                logger.warning(
                    f"DDC command failed (attempt {attempt + 1}/{self.retry_count}): "
                    f"{cmd_text} → {stderr_msg or '(no stderr)'}"
                )
                last_error = ExternalToolFailedError(cmd_text, result.returncode, stderr_msg)
                if attempt < self.retry_count - 1:
                    time.sleep(0.3 * (attempt + 1))

        raise last_error

    def detect_monitors(self, refresh: bool = False) -> List[MonitorInfo]:
        """
        Detect all DDC/CI capable monitors (cached).

        Raises:
            BackendUnavailableError: If ddcutil cannot be started
            ExternalToolFailedError: If detection fails
        """
        if self._monitors is not None and not refresh:
            return self._monitors

        result = self._run_ddcutil(["detect", "--terse"], timeout=max(self.timeout, 30))
        monitors = parse_detect_output(result.stdout)
        for m in monitors:
            logger.info(f"DDC monitor: {m} connector={m.connector or 'unknown'}")
        self._monitors = monitors
        return monitors

    def find_monitor(self, display_id: str) -> Optional[MonitorInfo]:
        """
        Find the monitor for a display id.

        Accepts the ddcutil display number ("2"), "DDC-2", the DRM connector
        ("DP-1", "card1-DP-1") or an xrandr output name ("DisplayPort-0").
        """
        monitors = self.detect_monitors()

        number = display_id[4:] if display_id.startswith("DDC-") else display_id
        if number.isdigit():
            for m in monitors:
                if m.display_number == int(number):
                    return m

        # Exact connector matches first, then the alias guesses
        for m in monitors:
            if display_id in (m.drm_connector, m.connector):
                return m
        for m in monitors:
            if display_id in m.connector_aliases():
                logger.debug(f"Matched output '{display_id}' to DDC display {m.display_number}")
                return m
        return None

    def set_vcp(self, display_number: int, feature_code: int, value: int, force: bool = False):
        """
        Set a VCP feature value on one monitor.

        Raises:
            BackendUnavailableError: If ddcutil cannot be started
            ExternalToolFailedError: If the write fails
        """
        key = (display_number, feature_code)
        if not force and self._vcp_cache.get(key) == value:
            logger.debug(f"Skipping VCP 0x{feature_code:02x} on display {display_number} - already {value}")
            return

        try:
            self._run_ddcutil(
                ["setvcp", f"0x{feature_code:02x}", str(value), "--noverify"],
                display_number=display_number,
            )
        except ExternalToolFailedError:
            # Next attempt must actually send
            self._vcp_cache.pop(key, None)
            raise
        self._vcp_cache[key] = value
        logger.info(f"Set VCP 0x{feature_code:02x} to {value} on display {display_number}")
