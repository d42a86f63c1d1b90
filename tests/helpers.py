"""
Shared fixtures for the test suite.
"""

import sys
import tempfile
from pathlib import Path
from unittest.mock import Mock

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vivid.backends import BackendMethod, BackendSelector
from vivid.config import Config
from vivid.controller import VibranceController
from vivid.display import DisplayInventory
from vivid.settings import Settings


class RecordingMethod(BackendMethod):
    """Backend method that records calls and fails on demand."""

    def __init__(self, key="recording", available=True, sessions=None):
        self.key = key
        self.display_name = f"Recording {key}"
        self.sessions = sessions
        self.available = available
        self.calls = []
        self.probe_count = 0
        # Exception to raise per display id (or "*" for every display)
        self.failures = {}

    def probe(self):
        self.probe_count += 1
        return self.available

    def _maybe_fail(self, display_id):
        error = self.failures.get(display_id) or self.failures.get("*")
        if error is not None:
            raise error

    def apply(self, display_id, value):
        self.calls.append(("apply", display_id, value))
        self._maybe_fail(display_id)

    def reset(self, display_id):
        self.calls.append(("reset", display_id, 0))
        self._maybe_fail(display_id)

    def values_for(self, display_id):
        return [value for _, d, value in self.calls if d == display_id]


def make_controller(test_case, display_ids, methods, session_type="x11", window_monitor=None):
    """Controller wired to injected collaborators and a temporary settings file."""
    tmp = tempfile.TemporaryDirectory()
    test_case.addCleanup(tmp.cleanup)
    tmp_path = Path(tmp.name)

    settings = Settings(tmp_path / "vivid.conf")
    inventory = DisplayInventory(query=lambda: list(display_ids))
    selector = BackendSelector(methods, session_type=session_type)
    controller = VibranceController(
        config=Config(tmp_path / "config.yaml"),
        settings=settings,
        inventory=inventory,
        selector=selector,
        window_monitor=window_monitor or Mock(get_active_window=Mock(return_value=None)),
    )
    test_case.addCleanup(controller.focus_monitor.disable, False)
    return controller
