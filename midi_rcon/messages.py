"""
MIDI event types.

The bridge only cares about control-change events: which control moved
and where it moved to.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ControlEvent:
    """A control moved: `channel` is the control number, `value` its position."""
    channel: int
    value: int

    def __str__(self) -> str:
        return f"CC {self.channel} val={self.value}"


def parse_midi_message(msg) -> ControlEvent | None:
    """Parse a mido message into a ControlEvent (None for anything else)."""
    if msg.type == "control_change":
        return ControlEvent(channel=msg.control, value=msg.value)
    return None
