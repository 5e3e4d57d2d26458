"""
The MIDI -> RCON bridge.

Routes control events to RCON commands and hot-reloads the configuration
file when it changes.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Callable

from .config import Config, describe_device
from .devices import DeviceError, MidiDevice, open_device
from .mapping import MappingTable, resolve_command
from .messages import ControlEvent
from .parser import ParseResult, load_config_file
from .rcon import RconClient, RconError
from .surfaces import ControlSurfaceCatalog


def report_parse_result(result: ParseResult) -> None:
    """Print parse errors, or the mapping summary on success."""
    for error in result.errors:
        print(error, file=sys.stderr)
    if result.success:
        config = result.config
        print(f"Mapping {len(config.knobs)} knobs and {len(config.buttons)} buttons")


class ConfigWatcher:
    """Detects modifications of the config file by its mtime."""

    def __init__(self, path: Path):
        self.path = path
        self._mtime = self._stat()
        self._reported = False

    def _stat(self) -> int | None:
        try:
            return self.path.stat().st_mtime_ns
        except OSError:
            return None

    def changed(self) -> bool:
        """True once for every new modification time seen."""
        mtime = self._stat()
        if mtime is None:
            if not self._reported:
                print(f"Error: couldn't open {self.path}", file=sys.stderr)
                self._reported = True
            return False

        self._reported = False
        if mtime == self._mtime:
            return False
        self._mtime = mtime
        return True


class RconBridge:
    """
    Owns the committed configuration and everything built from it.

    All dispatching and reloading happens on the asyncio loop, so the
    mapping table is always swapped between two events, never during one.
    """

    def __init__(
        self,
        config_path: Path,
        config: Config,
        catalog: ControlSurfaceCatalog,
        rcon: RconClient,
        watcher: ConfigWatcher | None = None,
        poll_interval: float = 1.0,
        device_opener: Callable[[int | str, Callable[[ControlEvent], None]], MidiDevice] = open_device,
    ):
        self.config_path = config_path
        self.catalog = catalog
        self.config = config
        self.table = MappingTable.from_config(config)
        self.rcon = rcon
        self.watcher = watcher if watcher is not None else ConfigWatcher(config_path)
        self.poll_interval = poll_interval
        self.device: MidiDevice | None = None
        self._device_opener = device_opener
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[ControlEvent | None] | None = None
        self._running = False
        self._failures: dict[str, str] = {}

    def handle(self, event: ControlEvent) -> str | None:
        """
        Resolve an event and send the resulting command, if any.

        Returns:
            The command that was sent.
        """
        table = self.table
        command = resolve_command(table, event.channel, event.value)

        if event.channel in table.buttons:
            if command is not None:
                print(f"{event} -> button \"{command}\"")
        elif event.channel in table.knobs:
            print(f"{event} -> knob \"{command}\"")
        else:
            print(f"{event} (unmapped)")

        if command is not None:
            try:
                self.rcon.send(command)
            except RconError as e:
                print(f"Error: {e}", file=sys.stderr)
        return command

    def reload(self) -> bool:
        """Re-read the config file, applying it only if it parses cleanly."""
        result = load_config_file(self.config_path, self.config, self.catalog)
        report_parse_result(result)
        if result.success:
            self.apply(result.config)
        return result.success

    def apply(self, config: Config) -> None:
        """
        Commit a new configuration.

        The new mappings take effect immediately. Connection changes are
        attempted right away and, if they fail, retried on every poll tick
        while the previous connection stays in use.
        """
        self.config = config
        self.table = MappingTable.from_config(config)
        self.rcon.password = config.password
        self.sync_connections()

    def sync_connections(self) -> None:
        """Bring the live UDP client and MIDI port in line with the config."""
        config = self.config
        if (config.address, config.port) != (self.rcon.address, self.rcon.port):
            self._reconnect(config)
        if self.device is not None and config.device != self.device.selector:
            self._reopen_device(config.device)

    def _report_failure(self, key: str, message: str) -> None:
        # Retries happen every tick; only print when the failure changes
        if self._failures.get(key) != message:
            self._failures[key] = message
            print(message, file=sys.stderr)

    def _reconnect(self, config: Config) -> None:
        client = RconClient(config.address, config.port, config.password)
        try:
            client.open()
        except RconError as e:
            self._report_failure("rcon", f"Error: {e}; still sending to {self.rcon.target}")
            return
        self._failures.pop("rcon", None)
        self.rcon.close()
        self.rcon = client
        print(f"Connected to {client.target}")

    def _reopen_device(self, selector: int | str) -> None:
        old = self.device
        try:
            device = self._device_opener(selector, self._on_event)
        except DeviceError as e:
            self._report_failure("device", f"Error: {e}; staying on {old}")
            return
        self._failures.pop("device", None)
        if old is not None:
            old.close()
        self.device = device
        print(f"Listening on: {device}")

    def _on_event(self, event: ControlEvent) -> None:
        # Called from the MIDI backend thread
        if self._loop is not None and self._queue is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def stop(self) -> None:
        """Ask the run loop to finish after the current event."""
        self._running = False
        if self._loop is not None and self._queue is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)

    def _install_signal_handlers(self) -> None:
        assert self._loop is not None
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # add_signal_handler is unavailable on Windows
                signal.signal(sig, lambda signum, frame: self.stop())

    async def run(self) -> None:
        """
        Open the MIDI device and process events until stopped.

        Raises:
            DeviceError: If the device cannot be opened.
        """
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self.device = self._device_opener(self.config.device, self._on_event)
        print(f"Listening on: {self.device} ({describe_device(self.config.device)})")

        self._install_signal_handlers()
        self._running = True
        try:
            while self._running:
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    event = None

                if event is not None:
                    self.handle(event)

                if not self._running:
                    break
                if self.watcher.changed():
                    print("Reloading config file", file=sys.stderr)
                    self.reload()
                else:
                    self.sync_connections()
        finally:
            self._running = False
            if self.device is not None:
                self.device.close()
