"""
RCON over UDP.
"""

import socket
from dataclasses import dataclass, field

RCON_HEADER = b"\xff\xff\xff\xff"


class RconError(Exception):
    """The RCON socket could not be set up or used."""


def frame_command(password: str, command: str) -> bytes:
    """Build the datagram for one RCON command."""
    text = f"rcon {password} {command}".encode("ascii", errors="replace")
    return RCON_HEADER + text + b"\x00"


@dataclass
class RconClient:
    """Sends RCON commands to a game server as single UDP datagrams."""
    address: str
    port: int
    password: str
    _sock: socket.socket | None = field(default=None, init=False, repr=False, compare=False)
    _target: tuple | None = field(default=None, init=False, repr=False, compare=False)

    @property
    def target(self) -> str:
        return f"{self.address}:{self.port}"

    def open(self) -> None:
        """Resolve the server address and create the socket."""
        try:
            infos = socket.getaddrinfo(
                self.address, self.port, socket.AF_INET, socket.SOCK_DGRAM
            )
        except socket.gaierror as e:
            raise RconError(f"failed to resolve the target address '{self.address}': {e}") from e

        family, socktype, proto, _, sockaddr = infos[0]
        try:
            self._sock = socket.socket(family, socktype, proto)
        except OSError as e:
            raise RconError(f"failed to create UDP socket: {e}") from e
        self._target = sockaddr

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def send(self, command: str) -> None:
        """Send one command."""
        if self._sock is None:
            raise RconError("socket is not open")
        try:
            self._sock.sendto(frame_command(self.password, command), self._target)
        except OSError as e:
            raise RconError(f"failed to send to {self.target}: {e}") from e

    def __enter__(self) -> "RconClient":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
