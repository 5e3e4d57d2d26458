"""
Command-line interface for the MIDI -> RCON bridge.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from .bridge import ConfigWatcher, RconBridge, report_parse_result
from .config import DEFAULT_CONFIG_FILE, Config
from .devices import DeviceError, list_midi_ports
from .learn import run_learn
from .parser import load_config_file
from .rcon import RconClient, RconError
from .surfaces import ControlSurfaceCatalog, SurfaceFileError, build_catalog


def load_catalog(args: argparse.Namespace) -> ControlSurfaceCatalog | None:
    """Build the surface catalog, printing the error if a file is bad."""
    try:
        return build_catalog(Path(p) for p in args.surfaces)
    except SurfaceFileError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


def print_ports() -> None:
    print("Available ports:")
    for i, port in enumerate(list_midi_ports()):
        print(f"  [{i}] {port}")


def cmd_run(args: argparse.Namespace) -> int:
    """Run the bridge."""
    config_path = Path(args.config)

    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        return 1

    catalog = load_catalog(args)
    if catalog is None:
        return 1

    # Take the timestamp before reading so edits made meanwhile are picked up
    watcher = ConfigWatcher(config_path)
    result = load_config_file(config_path, Config(), catalog)
    report_parse_result(result)
    if not result.success:
        return 1
    config = result.config

    rcon = RconClient(config.address, config.port, config.password)
    try:
        rcon.open()
    except RconError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Connected to {rcon.target}")

    bridge = RconBridge(
        config_path,
        config,
        catalog,
        rcon,
        watcher=watcher,
        poll_interval=args.poll_interval,
    )

    print()
    print("-" * 60)
    print("Press Ctrl+C to stop")
    print("-" * 60)
    print()

    try:
        asyncio.run(bridge.run())
    except DeviceError as e:
        print(f"Error: {e}", file=sys.stderr)
        print_ports()
        return 1
    except KeyboardInterrupt:
        pass
    finally:
        bridge.rcon.close()

    print("\n" + "-" * 60)
    print("Shutting down...")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Parse the config file and report problems."""
    catalog = load_catalog(args)
    if catalog is None:
        return 1

    result = load_config_file(Path(args.config), Config(), catalog)
    report_parse_result(result)
    if not result.success:
        return 1

    config = result.config
    print(f"Server: {config.address}:{config.port}")
    for channel, command in sorted(config.buttons.items()):
        print(f"  button {channel}: {command}")
    for channel, knob in sorted(config.knobs.items()):
        print(f"  knob {channel}: {knob.command} {knob.min_value:g}..{knob.max_value:g}")
    return 0


def cmd_list_devices(args: argparse.Namespace) -> int:
    """List available MIDI devices."""
    ports = list_midi_ports()

    if not ports:
        print("No MIDI input ports found.")
        return 0

    print("Available MIDI input ports:")
    print()
    for i, port in enumerate(ports):
        print(f"  [{i}] {port}")
    print()

    return 0


def cmd_list_surfaces(args: argparse.Namespace) -> int:
    """List known control surfaces and their aliases."""
    catalog = load_catalog(args)
    if catalog is None:
        return 1

    for name in catalog.profile_names():
        profile = catalog.get_profile(name) or {}
        print(f"{name}:")
        by_channel = sorted(profile.items(), key=lambda item: (item[1].kind.value, item[1].channel))
        for alias, surface in by_channel:
            print(f"  {alias:12} {surface}")
        print()

    return 0


def cmd_learn(args: argparse.Namespace) -> int:
    """Capture a device's controls into a surface file."""
    return run_learn(args.device, args.name, Path(args.output), args.duration)


def device_selector(value: str) -> int | str:
    """argparse type: a port index or a port-name substring."""
    return int(value) if value.isdecimal() else value


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="midi-rcon",
        description="Send game-server RCON commands from a MIDI control surface",
    )
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_FILE,
        help=f"Path to config file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "-s", "--surfaces",
        action="append",
        default=[],
        metavar="FILE",
        help="YAML file with extra control-surface profiles (repeatable)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=1.0,
        help="Seconds between config file checks (default: 1.0)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run command (default)
    run_parser = subparsers.add_parser("run", help="Run the bridge")
    run_parser.set_defaults(func=cmd_run)

    check_parser = subparsers.add_parser("check", help="Validate the config file")
    check_parser.set_defaults(func=cmd_check)

    list_dev_parser = subparsers.add_parser("list-devices", help="List MIDI devices")
    list_dev_parser.set_defaults(func=cmd_list_devices)

    list_surf_parser = subparsers.add_parser("list-surfaces", help="List control surfaces")
    list_surf_parser.set_defaults(func=cmd_list_surfaces)

    learn_parser = subparsers.add_parser("learn", help="Capture a device's controls")
    learn_parser.add_argument(
        "-d", "--device",
        type=device_selector,
        default=0,
        help="Port index or name substring (default: 0)",
    )
    learn_parser.add_argument("-n", "--name", default="learned", help="Surface name")
    learn_parser.add_argument("-o", "--output", default="surfaces.yaml", help="Surface file to update")
    learn_parser.add_argument("--duration", type=float, default=30.0, help="Capture time in seconds")
    learn_parser.set_defaults(func=cmd_learn)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args.func = cmd_run

    # Keep console output in step with what goes over the wire
    sys.stdout.reconfigure(line_buffering=True)

    sys.exit(args.func(args))
