"""
MIDI device management.

Finds the configured input port and delivers its control-change events.
"""

from dataclasses import dataclass
from typing import Callable

import mido

from .config import describe_device
from .messages import ControlEvent, parse_midi_message


class DeviceError(Exception):
    """The MIDI device could not be found or opened."""


def list_midi_ports() -> list[str]:
    """List all available MIDI input ports."""
    return mido.get_input_names()


def select_port(ports: list[str], selector: int | str) -> str:
    """
    Pick the port a device selector refers to.

    Args:
        ports: Available input port names.
        selector: Port index, or a substring of the port name.

    Returns:
        The matching port name.
    """
    if isinstance(selector, int):
        if 0 <= selector < len(ports):
            return ports[selector]
    else:
        for port_name in ports:
            if selector in port_name:
                return port_name

    raise DeviceError(f"failed to detect midi {describe_device(selector)}")


@dataclass
class MidiDevice:
    """An open MIDI input port."""
    selector: int | str
    port_name: str
    port: mido.ports.BaseInput | None = None

    def __str__(self) -> str:
        return self.port_name

    def open(self, on_event: Callable[[ControlEvent], None]) -> None:
        """
        Open the port, calling `on_event` for every control change.

        The callback runs on the MIDI backend's thread.
        """
        def callback(raw_msg) -> None:
            event = parse_midi_message(raw_msg)
            if event is not None:
                on_event(event)

        try:
            self.port = mido.open_input(self.port_name, callback=callback)
        except Exception as e:
            raise DeviceError(f"failed to open midi device '{self.port_name}': {e}") from e

    def close(self) -> None:
        if self.port is not None:
            self.port.close()
            self.port = None


def open_device(
    selector: int | str,
    on_event: Callable[[ControlEvent], None],
) -> MidiDevice:
    """Find and open the device matching `selector`."""
    port_name = select_port(list_midi_ports(), selector)
    device = MidiDevice(selector=selector, port_name=port_name)
    device.open(on_event)
    return device
