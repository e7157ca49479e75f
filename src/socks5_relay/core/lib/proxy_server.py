"""SOCKS proxy server implementation.

This module implements the listener side of the proxy:
- A threading TCP server that hands every accepted socket to its own handler thread
- Isolation of handler failures from the acceptor and from other connections
- Clean shutdown with a statistics summary

Example:
    # Serve until interrupted
    run_server(ProxyConfig(host="127.0.0.1", port=1080))
"""

import contextlib
import socket
import socketserver

from loguru import logger
from rich.console import Console

from socks5_relay.core.config import ProxyConfig
from socks5_relay.core.lib.proxy_stats import proxy_stats
from socks5_relay.core.lib.resolver import AddressResolver
from socks5_relay.core.utils.utils import format_bytes

from .socks_handler import SocksHandler

console = Console()


class SocksProxy(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """SOCKS proxy server implementation."""

    allow_reuse_address = True
    daemon_threads = True
    request_queue_size = 100

    def __init__(self, config: ProxyConfig, handler_class: type[socketserver.BaseRequestHandler] = SocksHandler) -> None:
        """Bind the listening socket.

        Args:
            config: Listen address, relay buffer size and resolver settings
            handler_class: Request handler run for every accepted connection
        """
        self.config = config
        self.buffer_size = config.buffer_size
        self.resolver = AddressResolver(config.nameservers)
        super().__init__((config.host, config.port), handler_class)

    def server_bind(self) -> None:
        """Bind the server socket with reuse options."""
        self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        super().server_bind()

    def handle_error(self, request, client_address) -> None:
        """Log errors that escaped a handler instead of printing to stderr."""
        logger.opt(exception=True).error(f"Unhandled error serving {client_address}")


def log_summary() -> None:
    """Log the statistics gathered since startup."""
    stats = proxy_stats.snapshot()
    logger.info(
        f"Served {stats.total_connections} connections "
        f"({stats.failed_connections} failed, {stats.active_connections} active) in {stats.uptime:.0f}s, "
        f"{format_bytes(stats.total_bytes_sent)} sent, {format_bytes(stats.total_bytes_received)} received"
    )


def run_server(config: ProxyConfig) -> None:
    """Serve SOCKS5 clients until interrupted.

    Args:
        config: Validated proxy configuration
    """
    server: SocksProxy | None = None
    try:
        server = SocksProxy(config)
        host, port = server.server_address[:2]
        logger.info(f"Listening on {host}:{port}")
        console.print(f"[green]SOCKS5 proxy server started on {host}:{port}")
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
        console.print("\n[yellow]Shutting down proxy server...")
    finally:
        if server:
            with contextlib.suppress(OSError):
                server.server_close()
            logger.info("Server closed")
            log_summary()
