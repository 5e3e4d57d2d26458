"""
Surface learning mode.

Records the controls of a connected device and writes them out as a
control-surface profile that `device_map` can select.
"""

import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

import mido
import yaml

from .devices import DeviceError, list_midi_ports, select_port
from .messages import ControlEvent, parse_midi_message
from .surfaces import ControlKind, ControlSurface, dump_surfaces, parse_surfaces


@dataclass
class CapturedControl:
    """A control seen during capture, with the values it sent."""
    channel: int
    count: int = 0
    values: set[int] = field(default_factory=set)

    def update(self, value: int) -> None:
        self.count += 1
        self.values.add(value)

    @property
    def kind(self) -> ControlKind:
        # Buttons only ever send their on/off values
        if len(self.values) <= 2:
            return ControlKind.BUTTON
        return ControlKind.SLIDER


def record_events(events: Iterable[ControlEvent]) -> list[CapturedControl]:
    """Fold a stream of events into one CapturedControl per channel."""
    controls: dict[int, CapturedControl] = {}
    for event in events:
        control = controls.setdefault(event.channel, CapturedControl(event.channel))
        control.update(event.value)
    return sorted(controls.values(), key=lambda c: c.channel)


def build_profile(controls: Iterable[CapturedControl]) -> dict[str, ControlSurface]:
    """Name each captured control `<kind><channel>`, e.g. `button41`."""
    return {
        f"{control.kind}{control.channel}": ControlSurface(control.kind, control.channel)
        for control in controls
    }


def write_profile(path: Path, name: str, profile: dict[str, ControlSurface]) -> None:
    """Add or replace profile `name` in a surface file, creating it if needed."""
    profiles: dict[str, dict[str, ControlSurface]] = {}
    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f)
        if raw:
            profiles = parse_surfaces(raw)

    profiles[name] = profile

    with open(path, "w") as f:
        yaml.safe_dump(dump_surfaces(profiles), f, default_flow_style=False, sort_keys=False)


def capture_events(port_name: str, duration: float = 30.0) -> list[ControlEvent]:
    """
    Capture control changes from a port.

    Args:
        port_name: Name of the MIDI port to listen on.
        duration: Maximum capture time in seconds (or until Ctrl+C).
    """
    events: list[ControlEvent] = []
    print(f"\nCapturing from: {port_name}")
    print("Press buttons, turn knobs, move faders...")
    print(f"Press Ctrl+C when done (or wait {duration:.0f}s)")
    print()

    start_time = time.time()

    try:
        with mido.open_input(port_name) as port:
            while time.time() - start_time < duration:
                for msg in port.iter_pending():
                    event = parse_midi_message(msg)
                    if event is None:
                        continue
                    events.append(event)
                    elapsed = time.time() - start_time
                    print(f"  [{elapsed:5.1f}s] {event}")
                time.sleep(0.01)
    except KeyboardInterrupt:
        print("\n\nCapture stopped.")

    return events


def run_learn(selector: int | str, name: str, output: Path, duration: float) -> int:
    """
    Capture a device's controls and save them as surface profile `name`.

    Returns:
        Exit code (0 for success).
    """
    try:
        port_name = select_port(list_midi_ports(), selector)
    except DeviceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        controls = record_events(capture_events(port_name, duration))
    except OSError as e:
        print(f"Error: failed to open midi device '{port_name}': {e}", file=sys.stderr)
        return 1

    if not controls:
        print("\nNo controls captured.")
        return 1

    print()
    print(f"Captured {len(controls)} control(s):")
    for control in controls:
        print(f"  CC {control.channel}: {control.kind} ({control.count} events)")

    profile = build_profile(controls)
    try:
        write_profile(output, name, profile)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: couldn't update {output}: {e}", file=sys.stderr)
        return 1
    print(f"\nSurface '{name}' written to: {output}")
    print("Rename the aliases and change sliders to knobs where needed, then")
    print(f"load it with --surfaces {output} and select it with 'device_map {name}'.")
    return 0
