"""Tests for event dispatch, reloading and the run loop."""

import asyncio
import os
from unittest.mock import MagicMock

import pytest

from midi_rcon.bridge import ConfigWatcher, RconBridge
from midi_rcon.devices import DeviceError
from midi_rcon.messages import ControlEvent
from midi_rcon.parser import parse_config
from midi_rcon.rcon import RconError, frame_command


class FakeRcon:
    """Records commands instead of sending datagrams."""

    fail_open = False

    def __init__(self, address, port, password):
        self.address = address
        self.port = port
        self.password = password
        self.sent = []
        self.closed = False

    @property
    def target(self):
        return f"{self.address}:{self.port}"

    def open(self):
        if self.fail_open:
            raise RconError("failed to create UDP socket")

    def close(self):
        self.closed = True

    def send(self, command):
        self.sent.append(frame_command(self.password, command))


class FakeDevice:
    def __init__(self, selector, on_event):
        self.selector = selector
        self.on_event = on_event
        self.closed = False

    def __str__(self):
        return f"fake {self.selector}"

    def close(self):
        self.closed = True


def set_mtime(path, offset):
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + offset))


@pytest.fixture
def make_bridge(write_config, catalog, monkeypatch):
    """Build a bridge around a config file, with fake transport and device."""
    monkeypatch.setattr("midi_rcon.bridge.RconClient", FakeRcon)

    def _make(text, device_opener=FakeDevice):
        path = write_config(text)
        result = parse_config(text, catalog=catalog, filename=str(path))
        assert result.success
        config = result.config
        rcon = FakeRcon(config.address, config.port, config.password)
        bridge = RconBridge(path, config, catalog, rcon, poll_interval=0.01, device_opener=device_opener)
        monkeypatch.setattr(bridge, "_install_signal_handlers", lambda: None)
        return bridge
    return _make


@pytest.mark.unit
class TestHandle:
    """Test routing of single events."""

    def test_end_to_end_button(self, make_bridge, capsys):
        bridge = make_bridge(
            "password x\nconnect 10.0.0.1 1234\ndevice_map nanoKONTROL2\nbutton play say hello\n"
        )
        assert bridge.handle(ControlEvent(41, 127)) == "say hello"
        assert bridge.rcon.sent == [b"\xff\xff\xff\xffrcon x say hello\x00"]
        assert 'button "say hello"' in capsys.readouterr().out

    def test_button_fires_once_per_press(self, make_bridge):
        bridge = make_bridge("password x\nbutton 41 say hello\n")
        bridge.handle(ControlEvent(41, 0))
        bridge.handle(ControlEvent(41, 1))
        bridge.handle(ControlEvent(41, 0))
        assert bridge.rcon.sent == [b"\xff\xff\xff\xffrcon x say hello\x00"]

    def test_knob(self, make_bridge):
        bridge = make_bridge("password x\nknob 16 sensitivity 0.0 5.0\n")
        assert bridge.handle(ControlEvent(16, 64)) == "sensitivity 2.520"

    def test_unmapped_is_informational(self, make_bridge, capsys):
        bridge = make_bridge("password x\n")
        assert bridge.handle(ControlEvent(7, 10)) is None
        assert bridge.rcon.sent == []
        captured = capsys.readouterr()
        assert "unmapped" in captured.out
        assert captured.err == ""

    def test_send_error_is_reported(self, make_bridge, capsys):
        bridge = make_bridge("password x\nbutton 1 pause\n")
        bridge.rcon.send = MagicMock(side_effect=RconError("network unreachable"))
        bridge.handle(ControlEvent(1, 127))
        assert "network unreachable" in capsys.readouterr().err


@pytest.mark.integration
class TestReload:
    """Test reloading the config file."""

    def test_successful_reload_swaps_table(self, make_bridge, capsys):
        bridge = make_bridge("password x\nbutton 1 pause\n")
        old_table = bridge.table
        bridge.config_path.write_text("password x\nbutton 2 unpause\n")

        assert bridge.reload()
        assert bridge.table is not old_table
        assert dict(bridge.table.buttons) == {1: "pause", 2: "unpause"}
        assert dict(old_table.buttons) == {1: "pause"}
        assert "Mapping 0 knobs and 2 buttons" in capsys.readouterr().out

    def test_broken_reload_keeps_everything(self, make_bridge, capsys):
        bridge = make_bridge("password x\nbutton 1 pause\n")
        config, table = bridge.config, bridge.table
        bridge.config_path.write_text("password x\nbutton 2 unpause\nknob 3 fov\n")

        assert not bridge.reload()
        assert bridge.config is config
        assert bridge.table is table
        assert ":3: insufficient parameters for 'knob'" in capsys.readouterr().err

    def test_password_change(self, make_bridge):
        bridge = make_bridge("password x\nbutton 1 pause\n")
        rcon = bridge.rcon
        bridge.config_path.write_text("password y\n")
        bridge.reload()
        assert bridge.rcon is rcon
        bridge.handle(ControlEvent(1, 127))
        assert rcon.sent == [b"\xff\xff\xff\xffrcon y pause\x00"]

    def test_address_change_reconnects(self, make_bridge):
        bridge = make_bridge("password x\n")
        old = bridge.rcon
        bridge.config_path.write_text("connect 10.0.0.9 4000\n")
        bridge.reload()
        assert bridge.rcon is not old
        assert old.closed
        assert bridge.rcon.target == "10.0.0.9:4000"

    def test_failed_reconnect_keeps_connection(self, make_bridge, monkeypatch, capsys):
        bridge = make_bridge("password x\nbutton 1 pause\n")
        old = bridge.rcon
        monkeypatch.setattr(FakeRcon, "fail_open", True)
        bridge.config_path.write_text("connect 10.0.0.9 4000\nbutton 2 unpause\n")

        assert bridge.reload()
        assert bridge.rcon is old
        assert not old.closed
        assert 2 in bridge.table.buttons
        assert "still sending to 127.0.0.1:27910" in capsys.readouterr().err

    def test_failed_reconnect_is_retried(self, make_bridge, monkeypatch, capsys):
        bridge = make_bridge("password x\n")
        old = bridge.rcon
        monkeypatch.setattr(FakeRcon, "fail_open", True)
        bridge.config_path.write_text("password x\nconnect 10.0.0.9 4000\n")
        bridge.reload()
        bridge.sync_connections()
        bridge.sync_connections()
        assert bridge.rcon is old
        assert capsys.readouterr().err.count("still sending to") == 1

        monkeypatch.setattr(FakeRcon, "fail_open", False)
        bridge.sync_connections()
        assert bridge.rcon.target == "10.0.0.9:4000"
        assert old.closed
        assert "Connected to 10.0.0.9:4000" in capsys.readouterr().out

    def test_reconnect_retried_by_run_loop(self, make_bridge, monkeypatch):
        bridge = make_bridge("password x\n")
        monkeypatch.setattr(FakeRcon, "fail_open", True)
        bridge.config_path.write_text("password x\nconnect 10.0.0.9 4000\n")
        bridge.reload()

        async def scenario():
            task = asyncio.create_task(bridge.run())
            await asyncio.sleep(0.05)
            assert bridge.rcon.target == "127.0.0.1:27910"
            monkeypatch.setattr(FakeRcon, "fail_open", False)
            await asyncio.sleep(0.05)
            bridge.stop()
            await asyncio.wait_for(task, timeout=2)

        asyncio.run(scenario())
        assert bridge.rcon.target == "10.0.0.9:4000"

    def test_device_change_reopens(self, make_bridge):
        bridge = make_bridge("password x\n")
        old = FakeDevice(0, None)
        bridge.device = old
        bridge.config_path.write_text("device_name nano\n")
        bridge.reload()
        assert old.closed
        assert bridge.device.selector == "nano"

    def test_failed_device_change_keeps_device(self, make_bridge, capsys):
        def opener(selector, on_event):
            raise DeviceError(f"failed to detect midi device matching '{selector}'")

        bridge = make_bridge("password x\n", device_opener=opener)
        old = FakeDevice(0, None)
        bridge.device = old
        bridge.config_path.write_text("device_name nano\n")

        assert bridge.reload()
        assert bridge.device is old
        assert not old.closed
        assert bridge.config.device == "nano"
        assert "failed to detect" in capsys.readouterr().err

    def test_failed_device_change_is_retried(self, make_bridge, capsys):
        available = []

        def opener(selector, on_event):
            if selector not in available:
                raise DeviceError(f"failed to detect midi device matching '{selector}'")
            return FakeDevice(selector, on_event)

        bridge = make_bridge("password x\n", device_opener=opener)
        old = FakeDevice(0, None)
        bridge.device = old
        bridge.config_path.write_text("device_name nano\n")
        bridge.reload()
        bridge.sync_connections()
        assert bridge.device is old
        assert capsys.readouterr().err.count("staying on fake 0") == 1

        available.append("nano")
        bridge.sync_connections()
        assert old.closed
        assert bridge.device.selector == "nano"


@pytest.mark.integration
class TestConfigWatcher:
    """Test modification detection."""

    def test_detects_change_once(self, write_config):
        path = write_config("password x\n")
        watcher = ConfigWatcher(path)
        assert not watcher.changed()
        set_mtime(path, 1_000_000_000)
        assert watcher.changed()
        assert not watcher.changed()

    def test_missing_file_reported_once(self, tmp_path, capsys):
        watcher = ConfigWatcher(tmp_path / "gone.conf")
        assert not watcher.changed()
        assert not watcher.changed()
        assert capsys.readouterr().err.count("couldn't open") == 1


@pytest.mark.integration
class TestRun:
    """Test the event loop."""

    def test_dispatch_reload_and_stop(self, make_bridge):
        bridge = make_bridge("password x\nbutton 41 say hello\n")

        async def scenario():
            task = asyncio.create_task(bridge.run())
            await asyncio.sleep(0.05)
            device = bridge.device
            device.on_event(ControlEvent(41, 127))
            await asyncio.sleep(0.05)

            bridge.config_path.write_text("password x\nbutton 41 say bye\n")
            set_mtime(bridge.config_path, 1_000_000_000)
            await asyncio.sleep(0.05)
            device.on_event(ControlEvent(41, 127))
            await asyncio.sleep(0.05)

            bridge.stop()
            await asyncio.wait_for(task, timeout=2)
            return device

        device = asyncio.run(scenario())
        assert bridge.rcon.sent == [
            b"\xff\xff\xff\xffrcon x say hello\x00",
            b"\xff\xff\xff\xffrcon x say bye\x00",
        ]
        assert device.closed

    def test_device_error_propagates(self, make_bridge):
        def opener(selector, on_event):
            raise DeviceError("failed to detect midi device #0")

        bridge = make_bridge("password x\n", device_opener=opener)
        with pytest.raises(DeviceError):
            asyncio.run(bridge.run())
