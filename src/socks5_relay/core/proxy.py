"""Main entry points of the SOCKS proxy server.

This module exposes the small public API the command line and embedding code
need, without the internals of the handler and relay modules:

Example:
    from socks5_relay.core.proxy import ProxyConfig, run_server

    run_server(ProxyConfig(host="127.0.0.1", port=1080))

Attributes:
    __all__ (list): List of public components exposed by this module
"""

from .config import ProxyConfig, load_config
from .lib import SocksProxy, handle_connection, run_server

__all__ = ["handle_connection", "load_config", "ProxyConfig", "run_server", "SocksProxy"]
