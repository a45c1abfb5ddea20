"""
Connectivity probes. is_online() is synchronous and has no side effects
beyond a short-lived TCP connection.
"""

import socket
from typing import Protocol


class ConnectivityProbe(Protocol):
    def is_online(self) -> bool: ...


class SocketConnectivityProbe:
    """
    Online check by opening a TCP connection.

    Defaults to a public DNS resolver on port 53, which answers quickly and
    needs no name resolution of its own.
    """

    def __init__(self, host: str = "1.1.1.1", port: int = 53, timeout: float = 1.0):
        self.host = host
        self.port = port
        self.timeout = timeout

    def is_online(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError:
            return False
