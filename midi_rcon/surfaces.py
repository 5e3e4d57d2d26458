"""
Control-surface catalog.

Named hardware profiles mapping symbolic aliases ("play", "kn3") to the
physical control they stand for.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import yaml


class ControlKind(Enum):
    """Kind of physical control."""
    BUTTON = "button"
    SLIDER = "slider"
    ROTARY_KNOB = "knob"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ControlSurface:
    """A physical control on a specific hardware profile."""
    kind: ControlKind
    channel: int

    def __str__(self) -> str:
        return f"{self.kind} {self.channel}"


def _profile(
    buttons: Mapping[str, int] = MappingProxyType({}),
    sliders: Mapping[str, int] = MappingProxyType({}),
    knobs: Mapping[str, int] = MappingProxyType({}),
) -> dict[str, ControlSurface]:
    """Build a profile from per-kind alias -> channel tables."""
    profile: dict[str, ControlSurface] = {}
    for kind, table in (
        (ControlKind.BUTTON, buttons),
        (ControlKind.SLIDER, sliders),
        (ControlKind.ROTARY_KNOB, knobs),
    ):
        for alias, channel in table.items():
            profile[alias] = ControlSurface(kind, channel)
    return profile


# Korg nanoKONTROL2 in its factory CC mode
NANOKONTROL2 = _profile(
    buttons={
        "rewind": 43,
        "fwd": 44,
        "stop": 42,
        "play": 41,
        "rec": 45,
        "cycle": 46,
        "marker_set": 60,
        "marker_prev": 61,
        "marker_next": 62,
        "track_prev": 58,
        "track_next": 59,
        **{f"S{i}": 32 + i for i in range(8)},
        **{f"M{i}": 48 + i for i in range(8)},
        **{f"R{i}": 64 + i for i in range(8)},
    },
    sliders={f"sl{i}": i for i in range(8)},
    knobs={f"kn{i}": 16 + i for i in range(8)},
)

BUILTIN_SURFACES: dict[str, dict[str, ControlSurface]] = {
    "nanoKONTROL2": NANOKONTROL2,
}


class ControlSurfaceCatalog:
    """
    Read-only registry of control-surface profiles.

    Built once at startup and never mutated afterwards.
    """

    def __init__(self, profiles: Mapping[str, Mapping[str, ControlSurface]]):
        self._profiles = MappingProxyType({
            name: MappingProxyType(dict(aliases))
            for name, aliases in profiles.items()
        })

    @classmethod
    def builtin(cls) -> "ControlSurfaceCatalog":
        """Catalog containing only the built-in profiles."""
        return cls(BUILTIN_SURFACES)

    def __contains__(self, name: object) -> bool:
        return name in self._profiles

    def profile_names(self) -> list[str]:
        return sorted(self._profiles)

    def get_profile(self, name: str) -> Mapping[str, ControlSurface] | None:
        return self._profiles.get(name)

    def merged(
        self, profiles: Mapping[str, Mapping[str, ControlSurface]]
    ) -> "ControlSurfaceCatalog":
        """Return a new catalog with `profiles` added (replacing same-named ones)."""
        combined = dict(self._profiles)
        combined.update(profiles)
        return ControlSurfaceCatalog(combined)


class SurfaceSelector:
    """
    The active profile of a catalog during one parse pass.

    `device_map` selects the profile, later `button`/`knob`/`slider`
    directives resolve their aliases against it.
    """

    def __init__(self, catalog: ControlSurfaceCatalog, profile: str | None = None):
        self.catalog = catalog
        self._profile_name: str | None = None
        if profile is not None:
            self.select_profile(profile)

    @property
    def profile_name(self) -> str | None:
        return self._profile_name

    def select_profile(self, name: str) -> bool:
        """
        Make `name` the active profile.

        Returns:
            False, leaving the current selection untouched, if the catalog
            has no such profile.
        """
        if name not in self.catalog:
            return False
        self._profile_name = name
        return True

    def resolve(self, alias: str) -> ControlSurface | None:
        """Look up an alias in the active profile."""
        if self._profile_name is None:
            return None
        profile = self.catalog.get_profile(self._profile_name)
        if profile is None:
            return None
        return profile.get(alias)


class SurfaceFileError(ValueError):
    """A surface profile file could not be loaded."""


_KIND_NAMES = {kind.value: kind for kind in ControlKind}


def parse_surface_entry(alias: str, data: Any) -> ControlSurface:
    """Parse one `alias: {type: ..., channel: ...}` entry."""
    if not isinstance(data, dict):
        raise ValueError(f"'{alias}' must be a mapping with 'type' and 'channel'")

    kind = _KIND_NAMES.get(str(data.get("type", "")).lower())
    if kind is None:
        choices = ", ".join(_KIND_NAMES)
        raise ValueError(f"'{alias}' has invalid type {data.get('type')!r} (expected one of: {choices})")

    channel = data.get("channel")
    # bool is an int subclass, reject it explicitly
    if isinstance(channel, bool) or not isinstance(channel, int) or not 0 <= channel <= 127:
        raise ValueError(f"'{alias}' has invalid channel {channel!r} (expected 0-127)")

    return ControlSurface(kind, channel)


def parse_surfaces(raw: Any) -> dict[str, dict[str, ControlSurface]]:
    """Parse the `surfaces:` section of a loaded YAML document."""
    if not isinstance(raw, dict) or not isinstance(raw.get("surfaces"), dict):
        raise ValueError("expected a top-level 'surfaces' mapping")

    profiles: dict[str, dict[str, ControlSurface]] = {}
    for name, aliases in raw["surfaces"].items():
        if not isinstance(aliases, dict):
            raise ValueError(f"surface '{name}' must map aliases to controls")
        profiles[str(name)] = {
            str(alias): parse_surface_entry(str(alias), data)
            for alias, data in aliases.items()
        }
    return profiles


def load_surfaces(path: Path) -> dict[str, dict[str, ControlSurface]]:
    """Load control-surface profiles from a YAML file."""
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise SurfaceFileError(f"{path}: {e.strerror or e}") from e
    except yaml.YAMLError as e:
        raise SurfaceFileError(f"{path}: invalid YAML: {e}") from e

    try:
        return parse_surfaces(raw)
    except ValueError as e:
        raise SurfaceFileError(f"{path}: {e}") from e


def build_catalog(surface_files: Iterable[Path] = ()) -> ControlSurfaceCatalog:
    """Built-in catalog extended with the profiles from `surface_files`."""
    catalog = ControlSurfaceCatalog.builtin()
    for path in surface_files:
        catalog = catalog.merged(load_surfaces(path))
    return catalog


def dump_surfaces(profiles: Mapping[str, Mapping[str, ControlSurface]]) -> dict[str, Any]:
    """Convert profiles to the plain structure written to YAML."""
    return {
        "surfaces": {
            name: {
                alias: {"type": surface.kind.value, "channel": surface.channel}
                for alias, surface in aliases.items()
            }
            for name, aliases in profiles.items()
        }
    }
