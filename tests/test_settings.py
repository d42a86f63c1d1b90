#!/usr/bin/env python3
"""
Tests for the key=value settings file.
"""

import sys
import tempfile
import unittest
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vivid.errors import PersistenceError
from vivid.profiles import AppProfile
from vivid.settings import Settings

SAMPLE = """\
focus_mode=1
display_DP-1=40
display_HDMI-A-1=-250
display_broken=abc
something_new=ignored
this line has no separator
profile_start=Games
profile_path=/usr/bin/steam
profile_title=
profile_pathmatching=1
profile_enabled=1
profile_vibrance_DP-1=60
profile_vibrance_HDMI-A-1=20
profile_end
profile_start=Browser
profile_title=Firefox
profile_pathmatching=0
profile_enabled=0
profile_end
"""


class TestSettingsParsing(unittest.TestCase):

    def test_parse_sample(self):
        settings = Settings(Path("/unused"))
        settings.parse(SAMPLE)

        self.assertTrue(settings.focus_mode)
        self.assertEqual(settings.display_vibrance, {"DP-1": 40, "HDMI-A-1": -100})
        self.assertEqual([p.name for p in settings.profiles], ["Games", "Browser"])

        games = settings.profiles[0]
        self.assertEqual(games.executable, "/usr/bin/steam")
        self.assertEqual(games.window_title, "")
        self.assertTrue(games.path_matching)
        self.assertTrue(games.enabled)
        self.assertEqual(games.display_vibrance, {"DP-1": 60, "HDMI-A-1": 20})

        browser = settings.profiles[1]
        self.assertEqual(browser.window_title, "Firefox")
        self.assertFalse(browser.path_matching)
        self.assertFalse(browser.enabled)

    def test_unterminated_profile_is_kept(self):
        settings = Settings(Path("/unused"))
        settings.parse("profile_start=Open\nprofile_title=Editor\n")
        self.assertEqual(len(settings.profiles), 1)
        self.assertEqual(settings.profiles[0].window_title, "Editor")

    def test_serialized_text_parses_back(self):
        settings = Settings(Path("/unused"))
        settings.focus_mode = True
        settings.display_vibrance = {"DP-1": 25}
        settings.profiles = [AppProfile("Games", executable="steam", path_matching=True,
                                        display_vibrance={"DP-1": 80})]

        text = settings.serialize()
        self.assertIn("focus_mode=1\n", text)
        self.assertIn("display_DP-1=25\n", text)
        self.assertIn("profile_vibrance_DP-1=80\nprofile_end\n", text)

        reloaded = Settings(Path("/unused"))
        reloaded.parse(text)
        self.assertTrue(reloaded.focus_mode)
        self.assertEqual(reloaded.display_vibrance, {"DP-1": 25})
        self.assertEqual(reloaded.profiles, settings.profiles)


class TestSettingsFile(unittest.TestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = Path(tmp.name)

    def test_missing_file_gives_defaults(self):
        settings = Settings(self.dir / "vivid.conf")
        self.assertFalse(settings.load())
        self.assertFalse(settings.focus_mode)
        self.assertEqual(settings.display_vibrance, {})
        self.assertEqual(settings.profiles, [])

    def test_save_then_load(self):
        path = self.dir / "nested" / "vivid.conf"
        settings = Settings(path)
        settings.display_vibrance["DP-1"] = -30
        settings.profiles.append(AppProfile("Term", window_title="Terminal"))
        settings.save()

        loaded = Settings(path)
        self.assertTrue(loaded.load())
        self.assertEqual(loaded.display_vibrance, {"DP-1": -30})
        self.assertEqual(loaded.profiles[0].window_title, "Terminal")

    def test_save_leaves_no_temporary_files(self):
        settings = Settings(self.dir / "vivid.conf")
        settings.save()
        settings.focus_mode = True
        settings.save()
        self.assertEqual([p.name for p in self.dir.iterdir()], ["vivid.conf"])
        self.assertEqual((self.dir / "vivid.conf").read_text(), "focus_mode=1\n")

    def test_unwritable_location_raises(self):
        blocker = self.dir / "not-a-directory"
        blocker.write_text("")
        settings = Settings(blocker / "vivid.conf")
        with self.assertRaises(PersistenceError):
            settings.save()

    def test_unreadable_file_raises(self):
        path = self.dir / "vivid.conf"
        path.mkdir()
        with self.assertRaises(PersistenceError):
            Settings(path).load()


if __name__ == '__main__':
    unittest.main()
