"""
Runtime mapping table and action resolution.

Turns a (channel, value) MIDI event into the RCON command to send.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from .config import Config, KnobMapping


@dataclass(frozen=True)
class MappingTable:
    """
    Read-only snapshot of the committed button and knob mappings.

    Replaced as a whole on reload, never updated in place.
    """
    buttons: Mapping[int, str]
    knobs: Mapping[int, KnobMapping]

    @classmethod
    def from_config(cls, config: Config) -> "MappingTable":
        return cls(
            buttons=MappingProxyType(dict(config.buttons)),
            knobs=MappingProxyType(dict(config.knobs)),
        )

    def is_mapped(self, channel: int) -> bool:
        return channel in self.buttons or channel in self.knobs


def interpolate(mapping: KnobMapping, value: int) -> float:
    """Map a 0-127 MIDI value linearly onto [min_value, max_value]."""
    t = max(0.0, min(1.0, value / 127))
    return mapping.min_value * (1.0 - t) + mapping.max_value * t


def resolve_command(table: MappingTable, channel: int, value: int) -> str | None:
    """
    Resolve a MIDI event to an RCON command.

    Buttons fire only on press (value > 0). Knobs and sliders always produce
    `<command> <value>` with three decimals.

    Returns:
        The command string, or None if nothing should be sent.
    """
    command = table.buttons.get(channel)
    if command is not None:
        return command if value > 0 else None

    knob = table.knobs.get(channel)
    if knob is not None:
        return f"{knob.command} {interpolate(knob, value):.3f}"

    return None
