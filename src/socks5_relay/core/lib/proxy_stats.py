"""Statistics tracking for the SOCKS proxy server.

This module keeps process-wide counters for the proxy server:
- Active and total connection counts
- Connections that ended in a handshake or dial failure
- Bytes relayed in each direction

The counters are updated from many handler and relay threads at once and are
protected by a single lock. They are informational only and never influence
how a connection is handled.

Example:
    from .proxy_stats import proxy_stats

    proxy_stats.connection_started()
    proxy_stats.update_bytes(sent=1024, received=2048)
"""

import threading
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time copy of the counters."""

    active_connections: int
    total_connections: int
    failed_connections: int
    total_bytes_sent: int
    total_bytes_received: int
    uptime: float


class ProxyStats:
    """Thread-safe statistics tracker for the SOCKS proxy server."""

    def __init__(self) -> None:
        """Initialize proxy statistics tracker with zeroed counters."""
        self.active_connections = 0
        self.total_connections = 0
        self.failed_connections = 0
        self.total_bytes_sent = 0
        self.total_bytes_received = 0
        self.start_time = time.monotonic()
        self._lock = threading.Lock()

    def update_bytes(self, sent: int, received: int) -> None:
        """Update byte transfer statistics.

        Args:
            sent: Bytes forwarded from clients to destinations
            received: Bytes forwarded from destinations to clients
        """
        with self._lock:
            self.total_bytes_sent += sent
            self.total_bytes_received += received

    def connection_started(self) -> None:
        """Increment the active connection counter."""
        with self._lock:
            self.active_connections += 1
            self.total_connections += 1

    def connection_ended(self, *, failed: bool = False) -> None:
        """Decrement the active connection counter."""
        with self._lock:
            self.active_connections -= 1
            if failed:
                self.failed_connections += 1

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                active_connections=self.active_connections,
                total_connections=self.total_connections,
                failed_connections=self.failed_connections,
                total_bytes_sent=self.total_bytes_sent,
                total_bytes_received=self.total_bytes_received,
                uptime=time.monotonic() - self.start_time,
            )


# Global statistics object
proxy_stats = ProxyStats()
