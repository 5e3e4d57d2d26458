"""Pytest fixtures for tests."""

import pytest

from midi_rcon.config import Config, KnobMapping
from midi_rcon.surfaces import ControlSurfaceCatalog


@pytest.fixture
def catalog():
    """Catalog with only the built-in surfaces."""
    return ControlSurfaceCatalog.builtin()


@pytest.fixture
def basic_config_text():
    """A small valid configuration."""
    return (
        "password x\n"
        "connect 10.0.0.1 1234\n"
        "device_map nanoKONTROL2\n"
        "button play say hello\n"
        "knob kn0 sensitivity 0.0 5.0\n"
    )


@pytest.fixture
def committed_config():
    """A configuration as it would be after a successful parse."""
    return Config(
        address="10.0.0.1",
        port=1234,
        password="x",
        surface="nanoKONTROL2",
        buttons={41: "say hello"},
        knobs={16: KnobMapping("sensitivity", 0.0, 5.0)},
    )


@pytest.fixture
def write_config(tmp_path):
    """Write config text to a file and return its path."""
    def _write(text, name="midi_rcon.conf"):
        path = tmp_path / name
        path.write_text(text)
        return path
    return _write
