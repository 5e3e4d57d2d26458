"""
Configuration file parser.

Reads the line-oriented directive language, resolves control-surface aliases
and produces a new Config. Parsing is best-effort: every bad line is
reported, and the new Config is only committed if there were none.
"""

import io
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from .config import Config, KnobMapping, WorkingConfig, expand_env_vars
from .surfaces import ControlKind, ControlSurfaceCatalog, SurfaceSelector
from .tokenizer import LineTokenizer

# Base-10 integer spanning the whole token
_INTEGER = re.compile(r"[+-]?[0-9]+")
_PORT = re.compile(r"[0-9]+")
# Plain decimal or exponent notation; no nan, inf or digit separators
_FLOAT = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")


@dataclass(frozen=True)
class ConfigError:
    """A problem found while parsing, tied to a file and (usually) a line."""
    filename: str
    lineno: int | None
    message: str

    def __str__(self) -> str:
        if self.lineno is None:
            return f"{self.filename}: {self.message}"
        return f"{self.filename}:{self.lineno}: {self.message}"


@dataclass
class ParseResult:
    """Outcome of a parse: the config to use from now on, and what went wrong."""
    config: Config
    success: bool
    errors: list[ConfigError] = field(default_factory=list)


class DirectiveError(Exception):
    """A single directive could not be applied."""


@dataclass
class _ParseState:
    working: WorkingConfig
    selector: SurfaceSelector


def parse_channel(
    token: str,
    selector: SurfaceSelector,
    kind: ControlKind,
    directive: str,
) -> int:
    """
    Resolve a channel token to a MIDI channel number.

    A token that is entirely a base-10 integer is used as-is; anything else
    is looked up as an alias in the active surface profile and must be of
    the given kind.
    """
    if _INTEGER.fullmatch(token):
        channel = int(token)
        if not 0 <= channel <= 127:
            raise DirectiveError(f"channel {channel} out of range (0-127)")
        return channel

    surface = selector.resolve(token)
    if surface is None:
        raise DirectiveError(f"invalid channel number or {directive} alias '{token}'")
    if surface.kind is not kind:
        raise DirectiveError(f"control surface '{token}' is not a {directive}")
    return surface.channel


def _require(token: str | None, directive: str) -> str:
    if token is None:
        raise DirectiveError(f"insufficient parameters for '{directive}'")
    return token


def _parse_float(token: str, what: str) -> float:
    value = float(token) if _FLOAT.fullmatch(token) else math.nan
    if not math.isfinite(value):
        raise DirectiveError(f"invalid {what} value '{token}'")
    return value


def _next_param(tokens: LineTokenizer) -> str | None:
    """Next parameter token with ${VAR} references expanded."""
    token = tokens.next_token()
    if token is None:
        return None
    value = expand_env_vars(token)
    # A reference to an unset variable counts as a missing parameter
    if token and not value:
        return None
    return value


class ConfigParser:
    """
    Parses configuration text against a control-surface catalog.

    Each directive handler receives the parse state, a tokenizer positioned
    after the directive name, and the directive name itself.
    """

    def __init__(self, catalog: ControlSurfaceCatalog, filename: str = "<config>"):
        self.catalog = catalog
        self.filename = filename
        self._handlers: dict[str, Callable[[_ParseState, LineTokenizer, str], None]] = {
            "connect": self._connect,
            "password": self._password,
            "device": self._device,
            "device_name": self._device_name,
            "device_map": self._device_map,
            "button": self._button,
            "knob": self._knob,
            "slider": self._knob,
        }

    def parse(self, source: str | Iterable[str], previous: Config) -> ParseResult:
        """
        Parse `source`, seeding the new configuration from `previous`.

        Returns:
            A ParseResult whose config is the new Config on success, or
            `previous` unchanged on failure.
        """
        lines = io.StringIO(source) if isinstance(source, str) else source
        state = _ParseState(
            working=WorkingConfig.from_config(previous),
            selector=SurfaceSelector(self.catalog, previous.surface),
        )
        errors: list[ConfigError] = []

        for lineno, line in enumerate(lines, 1):
            try:
                self._parse_line(state, line)
            except DirectiveError as e:
                errors.append(ConfigError(self.filename, lineno, str(e)))

        if not state.working.password:
            errors.append(ConfigError(self.filename, None, "password not specified"))

        if errors:
            return ParseResult(config=previous, success=False, errors=errors)

        config = state.working.freeze(state.selector.profile_name)
        return ParseResult(config=config, success=True)

    def _parse_line(self, state: _ParseState, line: str) -> None:
        line = line.split("#", 1)[0].rstrip("\n")
        tokens = LineTokenizer(line)

        directive = tokens.next_token()
        if directive is None:
            return

        handler = self._handlers.get(directive)
        if handler is None:
            raise DirectiveError(f"unknown directive '{directive}'")
        handler(state, tokens, directive)

    def _connect(self, state: _ParseState, tokens: LineTokenizer, directive: str) -> None:
        address = _require(_next_param(tokens), directive)
        port = _next_param(tokens)

        if port is not None:
            if not _PORT.fullmatch(port) or not 0 <= int(port) <= 65535:
                raise DirectiveError(f"invalid port '{port}'")
            state.working.port = int(port)
        state.working.address = address

    def _password(self, state: _ParseState, tokens: LineTokenizer, directive: str) -> None:
        state.working.password = _require(_next_param(tokens), directive)

    def _device(self, state: _ParseState, tokens: LineTokenizer, directive: str) -> None:
        device = _require(_next_param(tokens), directive)
        if not _INTEGER.fullmatch(device):
            raise DirectiveError(f"invalid device index '{device}'")
        state.working.device = int(device)

    def _device_name(self, state: _ParseState, tokens: LineTokenizer, directive: str) -> None:
        state.working.device = _require(_next_param(tokens), directive)

    def _device_map(self, state: _ParseState, tokens: LineTokenizer, directive: str) -> None:
        profile = _require(_next_param(tokens), directive)
        if not state.selector.select_profile(profile):
            raise DirectiveError(f"unsupported control surface type '{profile}'")

    def _button(self, state: _ParseState, tokens: LineTokenizer, directive: str) -> None:
        channel = _require(_next_param(tokens), directive)
        command = tokens.rest()
        if not command:
            raise DirectiveError(f"insufficient parameters for '{directive}'")

        number = parse_channel(channel, state.selector, ControlKind.BUTTON, directive)
        state.working.map_button(number, command)

    def _knob(self, state: _ParseState, tokens: LineTokenizer, directive: str) -> None:
        channel = _next_param(tokens)
        cvar = _next_param(tokens)
        vmin = _next_param(tokens)
        vmax = _next_param(tokens)
        if channel is None or cvar is None or vmin is None or vmax is None:
            raise DirectiveError(f"insufficient parameters for '{directive}'")

        mapping = KnobMapping(
            command=cvar,
            min_value=_parse_float(vmin, "minimum"),
            max_value=_parse_float(vmax, "maximum"),
        )
        kind = ControlKind.ROTARY_KNOB if directive == "knob" else ControlKind.SLIDER
        number = parse_channel(channel, state.selector, kind, directive)
        state.working.map_knob(number, mapping)


def parse_config(
    source: str | Iterable[str],
    previous: Config | None = None,
    catalog: ControlSurfaceCatalog | None = None,
    filename: str = "<config>",
) -> ParseResult:
    """Parse configuration text; see ConfigParser.parse."""
    if previous is None:
        previous = Config()
    if catalog is None:
        catalog = ControlSurfaceCatalog.builtin()
    return ConfigParser(catalog, filename).parse(source, previous)


def load_config_file(
    path: Path,
    previous: Config | None = None,
    catalog: ControlSurfaceCatalog | None = None,
) -> ParseResult:
    """Read and parse a configuration file."""
    if previous is None:
        previous = Config()
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return parse_config(f, previous, catalog, filename=str(path))
    except OSError as e:
        error = ConfigError(str(path), None, f"couldn't open: {e.strerror or e}")
        return ParseResult(config=previous, success=False, errors=[error])
