#!/usr/bin/env python3
"""
Tests for the ddcutil wrapper.
"""

import subprocess
import sys
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vivid.ddc import DDCController, MonitorInfo, parse_detect_output
from vivid.errors import BackendUnavailableError, ExternalToolFailedError

DETECT_OUTPUT = """\
Display 1
   I2C bus:  /dev/i2c-4
   DRM connector:           card1-DP-1
   Monitor:                 BNQ:BenQ RD280UA:ABC123

Invalid display
   I2C bus:  /dev/i2c-5
   Monitor:                 XXX

Display 2
   I2C bus:  /dev/i2c-6
   DRM connector:           card1-HDMI-A-1
   Monitor:                 DEL:DELL U2720Q:
garbage line without structure
"""


def completed(returncode=0, stdout="", stderr=""):
    return Mock(returncode=returncode, stdout=stdout, stderr=stderr)


class TestDetectParsing(unittest.TestCase):

    def test_valid_blocks_become_monitors(self):
        monitors = parse_detect_output(DETECT_OUTPUT)
        self.assertEqual([m.display_number for m in monitors], [1, 2])

        first = monitors[0]
        self.assertEqual(first.manufacturer, "BNQ")
        self.assertEqual(first.model, "BenQ RD280UA")
        self.assertEqual(first.serial, "ABC123")
        self.assertEqual(first.i2c_bus, "/dev/i2c-4")
        self.assertEqual(first.connector, "DP-1")

        self.assertEqual(monitors[1].serial, "")
        self.assertEqual(monitors[1].connector, "HDMI-A-1")

    def test_empty_output(self):
        self.assertEqual(parse_detect_output(""), [])

    def test_connector_aliases(self):
        dp = MonitorInfo(1, "M", "", "X", "", drm_connector="card1-DP-1")
        self.assertIn("DisplayPort-0", dp.connector_aliases())
        self.assertIn("DP-1", dp.connector_aliases())

        hdmi = MonitorInfo(2, "M", "", "X", "", drm_connector="card0-HDMI-A-1")
        self.assertIn("HDMI-A-0", hdmi.connector_aliases())
        self.assertIn("HDMI-1", hdmi.connector_aliases())


class TestDDCController(unittest.TestCase):

    def setUp(self):
        self.ddc = DDCController(retry_count=1, sleep_multiplier=0.0)

    def test_find_monitor_by_number_connector_and_alias(self):
        with patch('vivid.ddc.subprocess.run', return_value=completed(stdout=DETECT_OUTPUT)) as run:
            self.assertEqual(self.ddc.find_monitor("2").display_number, 2)
            self.assertEqual(self.ddc.find_monitor("DDC-1").display_number, 1)
            self.assertEqual(self.ddc.find_monitor("HDMI-A-1").display_number, 2)
            self.assertEqual(self.ddc.find_monitor("DisplayPort-0").display_number, 1)
            self.assertIsNone(self.ddc.find_monitor("VGA-1"))
        # Detection is cached
        self.assertEqual(run.call_count, 1)
        self.assertIn("detect", run.call_args[0][0])

    def test_set_vcp_command_and_cache(self):
        with patch('vivid.ddc.subprocess.run', return_value=completed()) as run:
            self.ddc.set_vcp(2, 0x8A, 70)
            self.ddc.set_vcp(2, 0x8A, 70)
        self.assertEqual(run.call_count, 1)
        command = run.call_args[0][0]
        self.assertEqual(command[0], "ddcutil")
        self.assertEqual(command[command.index("--display") + 1], "2")
        self.assertEqual(command[-4:], ["setvcp", "0x8a", "70", "--noverify"])

    def test_set_vcp_failure_clears_cache(self):
        with patch('vivid.ddc.subprocess.run', return_value=completed()):
            self.ddc.set_vcp(1, 0x8A, 50)
        with patch('vivid.ddc.subprocess.run', return_value=completed(1, stderr="DDC communication failed")):
            with self.assertRaises(ExternalToolFailedError) as ctx:
                self.ddc.set_vcp(1, 0x8A, 60)
        self.assertEqual(ctx.exception.exit_code, 1)
        with patch('vivid.ddc.subprocess.run', return_value=completed()) as run:
            self.ddc.set_vcp(1, 0x8A, 50)
        self.assertEqual(run.call_count, 1)

    def test_missing_ddcutil_is_unavailable(self):
        with patch('vivid.ddc.subprocess.run', side_effect=FileNotFoundError("ddcutil")):
            with self.assertRaises(BackendUnavailableError):
                self.ddc.detect_monitors()

    def test_timeout_is_tool_failure(self):
        timeout = subprocess.TimeoutExpired(cmd="ddcutil", timeout=5)
        with patch('vivid.ddc.subprocess.run', side_effect=timeout):
            with self.assertRaises(ExternalToolFailedError) as ctx:
                self.ddc.set_vcp(1, 0x8A, 10)
        self.assertIsNone(ctx.exception.exit_code)


if __name__ == '__main__':
    unittest.main()
