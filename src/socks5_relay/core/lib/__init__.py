"""Core proxy library components."""

from .proxy_server import SocksProxy, run_server
from .proxy_stats import ProxyStats
from .relay import relay
from .resolver import AddressResolver, Destination
from .socks_handler import ConnectionHandler, ConnectionState, SocksHandler, handle_connection

__all__ = [
    "AddressResolver",
    "ConnectionHandler",
    "ConnectionState",
    "Destination",
    "handle_connection",
    "ProxyStats",
    "relay",
    "run_server",
    "SocksHandler",
    "SocksProxy",
]
