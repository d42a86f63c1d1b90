#!/usr/bin/env python3
"""
Tests for display enumeration and the placeholder fallback.
"""

import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vivid.display import (
    DisplayInventory,
    parse_xrandr_outputs,
    query_drm_connectors,
    query_xrandr_outputs,
)

XRANDR_OUTPUT = """\
Screen 0: minimum 320 x 200, current 6400 x 2160, maximum 16384 x 16384
DisplayPort-0 connected primary 3840x2160+0+0 (normal left inverted right x axis y axis) 600mm x 340mm
   3840x2160     60.00*+  30.00
DisplayPort-1 disconnected (normal left inverted right x axis y axis)
HDMI-A-0 connected 2560x1440+3840+0 (normal left inverted right x axis y axis) 597mm x 336mm
   2560x1440     59.95*+
DVI-D-0 connected (normal left inverted right x axis y axis)
"""


class TestXrandrParsing(unittest.TestCase):

    def test_only_connected_outputs_are_listed(self):
        self.assertEqual(
            parse_xrandr_outputs(XRANDR_OUTPUT),
            ["DisplayPort-0", "HDMI-A-0", "DVI-D-0"],
        )

    def test_query_failure_returns_empty(self):
        with patch('vivid.display.subprocess.run', side_effect=FileNotFoundError("xrandr")):
            self.assertEqual(query_xrandr_outputs(), [])

    def test_query_non_zero_exit_returns_empty(self):
        result = Mock(returncode=1, stdout="", stderr="Can't open display")
        with patch('vivid.display.subprocess.run', return_value=result):
            self.assertEqual(query_xrandr_outputs(), [])

    def test_query_parses_stdout(self):
        result = Mock(returncode=0, stdout=XRANDR_OUTPUT, stderr="")
        with patch('vivid.display.subprocess.run', return_value=result) as run:
            self.assertEqual(query_xrandr_outputs()[0], "DisplayPort-0")
        self.assertEqual(run.call_args[0][0], ["xrandr", "--query"])


class TestDrmConnectors(unittest.TestCase):

    def test_connected_connectors_without_card_prefix(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            for name, status in [("card1-DP-1", "connected"),
                                 ("card1-DP-2", "disconnected"),
                                 ("card1-eDP-1", "connected\n")]:
                (root / name).mkdir()
                (root / name / "status").write_text(status)
            (root / "card1").mkdir()

            self.assertEqual(query_drm_connectors(root), ["DP-1", "eDP-1"])

    def test_missing_root_returns_empty(self):
        self.assertEqual(query_drm_connectors(Path("/nonexistent/drm")), [])


class TestDisplayInventory(unittest.TestCase):

    def test_enumerates_query_results(self):
        inventory = DisplayInventory(query=lambda: ["DP-1", " HDMI-A-1 ", "DP-1", ""])
        displays = inventory.enumerate()
        self.assertEqual([d.id for d in displays], ["DP-1", "HDMI-A-1"])
        self.assertTrue(all(d.connected for d in displays))
        self.assertTrue(all(d.current_vibrance == 0 for d in displays))

    def test_empty_result_falls_back_to_placeholders(self):
        displays = DisplayInventory(query=lambda: []).enumerate()
        self.assertEqual([d.id for d in displays], ["placeholder-1", "placeholder-2"])
        self.assertEqual(displays[0].name, "Placeholder Display 1")
        self.assertTrue(displays[0].is_placeholder)

    def test_failing_query_never_raises(self):
        def broken():
            raise RuntimeError("no display server")

        displays = DisplayInventory(query=broken, placeholder_count=1).enumerate()
        self.assertEqual([d.id for d in displays], ["placeholder-1"])

    def test_default_sources_fall_through_to_drm(self):
        with patch('vivid.display.query_xrandr_outputs', return_value=[]), \
             patch('vivid.display.query_drm_connectors', return_value=["eDP-1"]):
            displays = DisplayInventory().enumerate()
        self.assertEqual([d.id for d in displays], ["eDP-1"])


if __name__ == '__main__':
    unittest.main()
