"""
Configuration data model.

Holds the committed bridge configuration and the mutable working copy the
parser builds on each (re)load.
"""

import os
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

DEFAULT_ADDRESS = "127.0.0.1"
DEFAULT_PORT = 27910
DEFAULT_CONFIG_FILE = "midi_rcon.conf"


@dataclass(frozen=True)
class KnobMapping:
    """Continuous control: emits `<command> <interpolated value>`."""
    command: str
    min_value: float
    max_value: float


@dataclass(frozen=True)
class Config:
    """
    A committed, fully validated configuration.

    Only ever produced by a successful parse; never modified in place.
    """
    address: str = DEFAULT_ADDRESS
    port: int = DEFAULT_PORT
    password: str = ""
    device: int | str = 0  # port index, or port-name substring
    surface: str | None = None  # active control-surface profile
    buttons: Mapping[int, str] = field(default_factory=dict)
    knobs: Mapping[int, KnobMapping] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "buttons", MappingProxyType(dict(self.buttons)))
        object.__setattr__(self, "knobs", MappingProxyType(dict(self.knobs)))


@dataclass
class WorkingConfig:
    """Mutable copy of a Config that directives are applied to."""
    address: str
    port: int
    password: str
    device: int | str
    buttons: dict[int, str]
    knobs: dict[int, KnobMapping]

    @classmethod
    def from_config(cls, config: Config) -> "WorkingConfig":
        return cls(
            address=config.address,
            port=config.port,
            password=config.password,
            device=config.device,
            buttons=dict(config.buttons),
            knobs=dict(config.knobs),
        )

    def map_button(self, channel: int, command: str) -> None:
        self.knobs.pop(channel, None)
        self.buttons[channel] = command

    def map_knob(self, channel: int, mapping: KnobMapping) -> None:
        self.buttons.pop(channel, None)
        self.knobs[channel] = mapping

    def freeze(self, surface: str | None) -> Config:
        return Config(
            address=self.address,
            port=self.port,
            password=self.password,
            device=self.device,
            surface=surface,
            buttons=self.buttons,
            knobs=self.knobs,
        )


_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')


def expand_env_vars(value: str) -> str:
    """Expand environment variables in a string.

    Supports ${VAR} syntax. Unset variables expand to an empty string.
    """
    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return _ENV_PATTERN.sub(replacer, value)


def describe_device(device: int | str) -> str:
    """Human-readable form of a device selector."""
    if isinstance(device, int):
        return f"device #{device}"
    return f"device matching '{device}'"
