#!/usr/bin/env python3
"""
Vivid - Digital Vibrance Control for Linux
==========================================

Adjust display saturation with the best mechanism this machine supports
(AMD gamma, XRandR color transform, DDC/CI, XRandR gamma) or demo mode,
and optionally follow the focused application with per-app profiles.

Usage:
    python main.py [--config PATH] [--debug] COMMAND

    Commands:
        --list-displays                       List displays and current vibrance
        --status                              Show method and current values
        --display NAME --set-vibrance V       Set vibrance (-100 to +100)
        --display NAME --set-saturation P     Set saturation (0 to 200, 100 = normal)
        --display NAME --reset                Reset one display
        --reset-all                           Reset every display
        --list-profiles                       List application profiles
        --add-profile NAME --title T|--path P [--target DISPLAY=V ...] [--disabled]
        --delete-profile NAME                 Delete a profile
        --daemon                              Follow the focused application until stopped
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional


def setup_logging(debug: bool = False, log_file: Optional[Path] = None):
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
    )

logger = logging.getLogger(__name__)

LOG_FILE = Path.home() / ".local" / "share" / "vivid" / "vivid.log"


def parse_targets(values: List[str]) -> Dict[str, int]:
    """Parse DISPLAY=VALUE pairs."""
    from vivid.mapper import clamp_vibrance

    targets = {}
    for item in values or []:
        display_id, sep, value = item.rpartition('=')
        if not sep or not display_id:
            raise ValueError(f"Expected DISPLAY=VALUE, got '{item}'")
        targets[display_id] = clamp_vibrance(float(value))
    return targets


def report_persistence(controller) -> int:
    """Print a pending persistence error; returns an exit code."""
    if controller.last_persistence_error:
        print(f"Warning: {controller.last_persistence_error}")
        return 1
    return 0


def list_displays(controller) -> int:
    displays = controller.get_displays()
    print("Available displays:")
    for d in displays:
        print(f"  {d.id} ({d.name}) - {d.current_vibrance}")
    return 0


def show_status(controller) -> int:
    from vivid.controller import check_tools

    status = controller.status()
    print("Vivid Status:")
    print(f"  Method:      {status['method']}")
    print(f"  Initialized: {'Yes' if status['ready'] else 'No'}")
    print(f"  Session:     {status['session']}")
    print(f"  Profiles:    {status['profiles']}")
    print(f"  Displays:    {len(status['displays'])} found")
    for display_id, value in status['displays'].items():
        print(f"    {display_id}: {value}")
    print("  Tools:")
    for tool, available in check_tools().items():
        print(f"    {tool}: {'found' if available else 'missing'}")
    return 0


def list_profiles(controller) -> int:
    profiles = controller.list_profiles()
    if not profiles:
        print("No profiles.")
        return 0
    for p in profiles:
        kind = "path" if p.path_matching else "title"
        state = "enabled" if p.enabled else "disabled"
        targets = ", ".join(f"{k}={v}" for k, v in p.display_vibrance.items()) or "none"
        print(f"  {p.name}: {kind} contains '{p.match_key}' ({state}) → {targets}")
    return 0


def control_display(controller, args) -> int:
    from vivid.errors import DisplayNotFoundError
    from vivid.mapper import from_legacy_percent

    try:
        if args.reset:
            ok = controller.reset_display(args.display)
            value = 0
        elif args.set_saturation is not None:
            value = from_legacy_percent(args.set_saturation)
            ok = controller.set_vibrance(args.display, value)
        elif args.set_vibrance is not None:
            value = args.set_vibrance
            ok = controller.set_vibrance(args.display, value)
        else:
            print("Error: --display requires --set-vibrance, --set-saturation or --reset")
            return 1
    except DisplayNotFoundError as e:
        print(f"Error: {e}")
        return 1

    if not ok:
        print(f"Failed to set vibrance for {args.display}")
        return 1
    print(f"Set {args.display} vibrance to {controller.get_vibrance(args.display)}")
    report_persistence(controller)
    return 0


def add_profile(controller, args) -> int:
    from vivid.profiles import AppProfile

    if not args.title and not args.path:
        print("Error: --add-profile requires --title or --path")
        return 1
    try:
        targets = parse_targets(args.target)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    profile = AppProfile(
        name=args.add_profile,
        executable=args.path or "",
        window_title=args.title or "",
        path_matching=bool(args.path),
        enabled=not args.disabled,
        display_vibrance=targets,
    )
    controller.save_profile(profile)
    print(f"Saved profile '{profile.name}'")
    return report_persistence(controller)


def run_daemon(controller) -> int:
    """Follow the focused application until SIGINT/SIGTERM, then revert."""
    stop = threading.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        stop.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        controller.restore_saved()
        controller.set_focus_mode(True)
        while not stop.is_set():
            stop.wait(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        controller.shutdown()
    return 0


def main():
    """Main entry point."""
    from vivid import __version__

    parser = argparse.ArgumentParser(
        description="Vivid - digital vibrance control for Linux",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument('--config', '-c', type=Path, help='Path to configuration file')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', '-v', action='version', version=f'%(prog)s {__version__}')

    commands = parser.add_mutually_exclusive_group()
    commands.add_argument('--list-displays', '-l', action='store_true', help='List displays')
    commands.add_argument('--status', '-s', action='store_true', help='Show current status and method')
    commands.add_argument('--display', '-d', metavar='NAME', help='Display to control')
    commands.add_argument('--reset-all', action='store_true', help='Reset every display')
    commands.add_argument('--list-profiles', action='store_true', help='List application profiles')
    commands.add_argument('--add-profile', metavar='NAME', help='Add or replace a profile')
    commands.add_argument('--delete-profile', metavar='NAME', help='Delete a profile')
    commands.add_argument('--daemon', action='store_true', help='Follow the focused application')

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument('--set-vibrance', type=float, metavar='VALUE', help='Vibrance (-100 to +100)')
    actions.add_argument('--set-saturation', type=float, metavar='PERCENT', help='Saturation (0 to 200)')
    actions.add_argument('--reset', action='store_true', help='Reset the display')

    match = parser.add_mutually_exclusive_group()
    match.add_argument('--title', metavar='TEXT', help='Window title fragment for --add-profile')
    match.add_argument('--path', metavar='TEXT', help='Executable path fragment for --add-profile')
    parser.add_argument('--target', action='append', metavar='DISPLAY=VALUE',
                        help='Per-display vibrance for --add-profile (repeatable)')
    parser.add_argument('--disabled', action='store_true', help='Store the profile disabled')

    args = parser.parse_args()

    setup_logging(args.debug, LOG_FILE if args.daemon else None)

    from vivid.config import Config
    from vivid.controller import VibranceController

    config = Config(args.config)
    config.load()
    controller = VibranceController(config)

    if args.list_displays:
        return list_displays(controller)
    if args.status:
        return show_status(controller)
    if args.display:
        return control_display(controller, args)
    if args.reset_all:
        ok = controller.reset_all()
        print("Reset all displays" if ok else "Some displays could not be reset")
        return 0 if ok else 1
    if args.list_profiles:
        return list_profiles(controller)
    if args.add_profile:
        return add_profile(controller, args)
    if args.delete_profile:
        if not controller.delete_profile(args.delete_profile):
            print(f"No profile named '{args.delete_profile}'")
            return 1
        print(f"Deleted profile '{args.delete_profile}'")
        return report_persistence(controller)
    if args.daemon:
        return run_daemon(controller)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
