"""
MIDI control surface to game-server RCON bridge.

Provides the config parser, control-surface catalog and action resolver.
"""

from .config import Config, KnobMapping
from .mapping import MappingTable, resolve_command
from .parser import ConfigError, ParseResult, load_config_file, parse_config
from .surfaces import ControlKind, ControlSurface, ControlSurfaceCatalog, SurfaceSelector
from .tokenizer import LineTokenizer, tokenize

__version__ = "0.1.0"

__all__ = [
    "Config",
    "ConfigError",
    "ControlKind",
    "ControlSurface",
    "ControlSurfaceCatalog",
    "KnobMapping",
    "LineTokenizer",
    "MappingTable",
    "ParseResult",
    "SurfaceSelector",
    "load_config_file",
    "parse_config",
    "resolve_command",
    "tokenize",
]
