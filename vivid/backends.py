"""
Backends - Vibrance control methods and backend selection
=========================================================

Each method knows how to probe its own availability and how to apply a
vibrance value to one display. The selector probes them in priority order
and keeps the first usable one; Demo always probes true, so selection
never comes back empty-handed.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Sequence

import numpy as np

from .ddc import DDCController, VCP_SATURATION
from .errors import (
    ApplyError,
    BackendUnavailableError,
    ExternalToolFailedError,
)
from .mapper import (
    DEFAULT_MAPPING,
    MappingConstants,
    VIBRANCE_NEUTRAL,
    clamp_vibrance,
    gamma_triplet,
    saturation_matrix,
    vcp_code,
)

logger = logging.getLogger(__name__)

SESSION_X11 = "x11"
SESSION_WAYLAND = "wayland"
SESSION_UNKNOWN = "unknown"

DRM_ROOT = Path("/sys/class/drm")
AMD_VENDOR_ID = "0x1002"
AMDGPU_MODULE = Path("/sys/module/amdgpu")


def detect_session_type(environ=None) -> str:
    """Return "wayland", "x11" or "unknown" for the current session."""
    environ = os.environ if environ is None else environ
    session = environ.get('XDG_SESSION_TYPE', '').lower()
    if session in (SESSION_X11, SESSION_WAYLAND):
        return session
    if environ.get('WAYLAND_DISPLAY'):
        return SESSION_WAYLAND
    if environ.get('DISPLAY'):
        return SESSION_X11
    return SESSION_UNKNOWN


def run_tool(args: List[str], timeout: float = 5.0) -> subprocess.CompletedProcess:
    """
    Run an external tool and check its exit status.

    Raises:
        BackendUnavailableError: If the tool cannot be started
        ExternalToolFailedError: If it exits non-zero or times out
    """
    command = ' '.join(args)
    logger.debug(f"Running: {command}")
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise BackendUnavailableError(f"{args[0]} cannot be started: {e}") from e
    except subprocess.TimeoutExpired as e:
        raise ExternalToolFailedError(command, None) from e

    if result.returncode != 0:
        stderr = result.stderr.strip() if result.stderr else ""
        raise ExternalToolFailedError(command, result.returncode, stderr)
    return result


def ctm_property_value(matrix: np.ndarray) -> str:
    """
    Encode a 3x3 matrix as the xrandr CTM output property.

    The kernel expects nine S31.32 sign-magnitude fixed-point values in
    row-major order; xrandr takes each as two 32-bit words, low word first.
    """
    words = []
    for coefficient in np.asarray(matrix, dtype=float).reshape(9):
        magnitude = int(round(abs(float(coefficient)) * (1 << 32)))
        magnitude = min(magnitude, (1 << 63) - 1)
        high = (magnitude >> 32) & 0x7FFFFFFF
        if coefficient < 0 and magnitude:
            high |= 0x80000000
        words.extend([magnitude & 0xFFFFFFFF, high])
    return ','.join(str(w) for w in words)


class BackendMethod:
    """
    Base class for vibrance control methods.

    Methods hold no per-display state; every call names the display.
    """

    key = ""
    display_name = ""
    # Session types this method may run under (None = any)
    sessions: Optional[FrozenSet[str]] = None

    def supports_session(self, session_type: str) -> bool:
        return self.sessions is None or session_type in self.sessions

    def probe(self) -> bool:
        """Cheap, side-effect-free availability check."""
        raise NotImplementedError

    def apply(self, display_id: str, value: int):
        """
        Apply a vibrance value to one display.

        Raises:
            ApplyError: BackendUnavailableError, DisplayNotFoundError or
                ExternalToolFailedError
        """
        raise NotImplementedError

    def reset(self, display_id: str):
        """Return one display to neutral."""
        self.apply(display_id, VIBRANCE_NEUTRAL)

    def __repr__(self):
        return f"<{type(self).__name__} {self.key}>"


class GammaFallback(BackendMethod):
    """Per-channel gamma through ``xrandr --gamma``; last resort before Demo."""

    key = "gamma"
    display_name = "XRandR Gamma"

    def __init__(self, mapping: MappingConstants = DEFAULT_MAPPING, timeout: float = 5.0):
        self.mapping = mapping
        self.timeout = timeout

    def probe(self) -> bool:
        return shutil.which("xrandr") is not None

    def apply(self, display_id: str, value: int):
        red, green, blue = gamma_triplet(value, self.mapping)
        run_tool(
            ["xrandr", "--output", display_id, "--gamma", f"{red}:{green}:{blue}"],
            timeout=self.timeout,
        )
        logger.info(f"Applied gamma {red}:{green}:{blue} to {display_id} (vibrance {value})")

    def reset(self, display_id: str):
        run_tool(["xrandr", "--output", display_id, "--gamma", "1:1:1"], timeout=self.timeout)


class VendorDriver(BackendMethod):
    """
    AMD GPU with the amdgpu driver loaded.

    There is no vendor-specific saturation path: applying goes through the
    gamma method, which is what is known to be safe on these cards.
    """

    key = "vendor"
    display_name = "AMD Safe Mode"

    def __init__(
        self,
        gamma: GammaFallback,
        drm_root: Path = DRM_ROOT,
        module_path: Path = AMDGPU_MODULE,
    ):
        self.gamma = gamma
        self.drm_root = drm_root
        self.module_path = module_path

    def _has_amd_gpu(self) -> bool:
        try:
            vendor_files = sorted(self.drm_root.glob("card[0-9]*/device/vendor"))
        except OSError:
            return False
        for vendor_file in vendor_files:
            try:
                if vendor_file.read_text().strip() == AMD_VENDOR_ID:
                    return True
            except OSError:
                continue
        return False

    def probe(self) -> bool:
        if not self._has_amd_gpu():
            return False
        logger.debug("AMD GPU detected")
        if not self.module_path.exists():
            logger.debug("amdgpu driver module not loaded")
            return False
        return self.gamma.probe()

    def apply(self, display_id: str, value: int):
        self.gamma.apply(display_id, value)

    def reset(self, display_id: str):
        self.gamma.reset(display_id)


class DisplayProtocolTransform(BackendMethod):
    """Saturation matrix through the RandR "CTM" output property (X11 only)."""

    key = "xrandr-ctm"
    display_name = "XRandR Color Transform"
    sessions = frozenset({SESSION_X11})

    def __init__(self, mapping: MappingConstants = DEFAULT_MAPPING, timeout: float = 5.0):
        self.mapping = mapping
        self.timeout = timeout

    def probe(self) -> bool:
        if shutil.which("xrandr") is None:
            return False
        try:
            result = run_tool(["xrandr", "--prop"], timeout=self.timeout)
        except (BackendUnavailableError, ExternalToolFailedError) as e:
            logger.debug(f"xrandr --prop failed: {e}")
            return False
        return any(line.strip().startswith("CTM:") for line in result.stdout.splitlines())

    def apply(self, display_id: str, value: int):
        matrix = saturation_matrix(value, self.mapping)
        run_tool(
            ["xrandr", "--output", display_id, "--set", "CTM", ctm_property_value(matrix)],
            timeout=self.timeout,
        )
        logger.info(f"Applied CTM to {display_id} (vibrance {value})")


class CompositorColorManagement(BackendMethod):
    """
    Wayland color-management protocol.

    The protocol is not finalized, so this method never probes true.
    """

    key = "wayland-cm"
    display_name = "Wayland Color Management"
    sessions = frozenset({SESSION_WAYLAND})

    def probe(self) -> bool:
        logger.debug("Wayland color management not implemented")
        return False

    def apply(self, display_id: str, value: int):
        raise BackendUnavailableError("Wayland color management is not implemented")


class ExternalMonitorProtocol(BackendMethod):
    """DDC/CI saturation (VCP 0x8A) through ddcutil."""

    key = "ddc"
    display_name = "DDC/CI"

    def __init__(self, ddc: Optional[DDCController] = None, vcp: int = VCP_SATURATION):
        self.ddc = ddc or DDCController()
        self.vcp = vcp

    def probe(self) -> bool:
        """Available only when ddcutil is installed and sees at least one monitor."""
        if shutil.which("ddcutil") is None:
            return False
        try:
            displays = self.enumerate_displays()
        except ApplyError as e:
            logger.debug(f"ddcutil detect failed: {e}")
            return False
        if not displays:
            logger.debug("ddcutil found no DDC/CI capable monitors")
            return False
        return True

    def enumerate_displays(self) -> List[str]:
        """Identifiers of the monitors ddcutil can reach."""
        return [m.connector or str(m.display_number) for m in self.ddc.detect_monitors()]

    def apply(self, display_id: str, value: int):
        monitor = self.ddc.find_monitor(display_id)
        if monitor is None:
            # Output exists but has no DDC/CI path
            raise BackendUnavailableError(f"No DDC/CI monitor for display {display_id}")
        self.ddc.set_vcp(monitor.display_number, self.vcp, vcp_code(value))


class Demo(BackendMethod):
    """No-op method used when nothing real is available."""

    key = "demo"
    display_name = "Demo Mode (Interface Testing)"

    def probe(self) -> bool:
        return True

    def apply(self, display_id: str, value: int):
        logger.info(f"Demo mode: {display_id} vibrance simulated at {clamp_vibrance(value)}")

    def reset(self, display_id: str):
        logger.info(f"Demo mode: {display_id} reset simulated")


def default_methods(
    mapping: MappingConstants = DEFAULT_MAPPING,
    timeout: float = 5.0,
    ddc: Optional[DDCController] = None,
    vcp: int = VCP_SATURATION,
) -> List[BackendMethod]:
    """All methods in priority order."""
    gamma = GammaFallback(mapping, timeout)
    return [
        VendorDriver(gamma),
        CompositorColorManagement(),
        DisplayProtocolTransform(mapping, timeout),
        ExternalMonitorProtocol(ddc, vcp),
        gamma,
        Demo(),
    ]


class BackendSelector:
    """
    Chain of responsibility over backend methods.

    Methods are probed in list order; the first that probes true becomes
    active. Methods whose session gate excludes the current session, and
    methods disabled in the configuration, are skipped. A Demo method is
    always kept at the end of the chain.
    """

    def __init__(
        self,
        methods: Optional[Sequence[BackendMethod]] = None,
        session_type: Optional[str] = None,
        disabled: Iterable[str] = (),
    ):
        self.methods: List[BackendMethod] = list(methods) if methods is not None else default_methods()
        if not any(isinstance(m, Demo) for m in self.methods):
            self.methods.append(Demo())
        self.session_type = session_type or detect_session_type()
        self.disabled = set(disabled) - {Demo.key}
        self.active: Optional[BackendMethod] = None

    def _eligible(self, method: BackendMethod) -> bool:
        if isinstance(method, Demo):
            return True
        if method.key in self.disabled:
            logger.debug(f"Skipping {method.display_name}: disabled in configuration")
            return False
        if not method.supports_session(self.session_type):
            logger.debug(f"Skipping {method.display_name}: not supported on {self.session_type} sessions")
            return False
        return True

    def _probe(self, method: BackendMethod) -> bool:
        try:
            return bool(method.probe())
        except Exception as e:
            logger.warning(f"Probe for {method.display_name} failed: {e}")
            return False

    def select(self, start: int = 0) -> BackendMethod:
        """Probe methods from position ``start`` and activate the first usable one."""
        for method in self.methods[start:]:
            if self._eligible(method) and self._probe(method):
                self.active = method
                logger.info(f"Using {method.display_name} method")
                return method

        # Only reachable when start skips past the Demo entry
        demo = next(m for m in self.methods if isinstance(m, Demo))
        self.active = demo
        logger.info(f"Using {demo.display_name} method")
        return demo

    def reselect(self, failed: BackendMethod) -> BackendMethod:
        """Select again, starting after the method that just failed."""
        try:
            start = self.methods.index(failed) + 1
        except ValueError:
            start = 0
        logger.warning(f"{failed.display_name} method failed, selecting another backend")
        return self.select(start)

    @property
    def active_name(self) -> str:
        return self.active.display_name if self.active else "None"
