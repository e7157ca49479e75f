"""Core proxy server implementation.

This package contains the core components of the SOCKS proxy server:
- SOCKS5 wire codec and connection state machine
- Destination resolution
- Bi-directional relay
- Threaded listener
- Configuration, statistics and exceptions
"""
