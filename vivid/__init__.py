"""
Vivid - Digital vibrance control for Linux
==========================================

Adjust the color saturation of connected displays with whatever mechanism
the machine supports:
- AMD GPUs with amdgpu (gamma based)
- XRandR color transform matrix (X11)
- DDC/CI saturation through ddcutil
- XRandR gamma as a last resort
- Demo mode when nothing is available

and switch it automatically with the focused application.
"""

__version__ = "1.0.0"
__author__ = "Vivid"

from .backends import BackendSelector
from .config import Config
from .controller import VibranceController
from .display import Display, DisplayInventory
from .focus_monitor import FocusMonitor
from .profiles import AppProfile, ProfileStore
from .settings import Settings

__all__ = [
    "AppProfile",
    "BackendSelector",
    "Config",
    "Display",
    "DisplayInventory",
    "FocusMonitor",
    "ProfileStore",
    "Settings",
    "VibranceController",
]
