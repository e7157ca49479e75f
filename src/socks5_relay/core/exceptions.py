"""Custom exceptions for the proxy server.

This module defines the error taxonomy used throughout the proxy server:
- Handshake and request parsing failures (terminal, no reply is sent)
- Dial failures (translated into a SOCKS5 reply status before closing)
- Stream closure during forwarding (expected, never escalated)
- Configuration problems

Dial errors carry the reply code the client is told about, so the connection
handler can answer without knowing which concrete failure occurred.

Example:
    try:
        destination = resolver.resolve(request)
    except DNSResolutionError as e:
        client.sendall(encode_reply(e.reply_code, ...))
"""

from typing import Final

# Reply codes shared with the wire codec
REP_GENERAL_FAILURE: Final = 0x01
REP_NETWORK_UNREACHABLE: Final = 0x03
REP_HOST_UNREACHABLE: Final = 0x04
REP_CONNECTION_REFUSED: Final = 0x05


class ProxyError(Exception):
    """Base exception for proxy errors."""


class ConfigError(ProxyError):
    """Raised when the proxy configuration is invalid."""


class StreamClosedError(ProxyError):
    """Raised when a stream ends before the expected number of bytes arrived."""


class ProtocolError(ProxyError):
    """Raised when a client violates the supported SOCKS5 subset."""


class MalformedGreetingError(ProtocolError):
    """Raised when the client greeting cannot be decoded."""


class UnsupportedAuthError(ProtocolError):
    """Raised when the client does not offer the no-authentication method."""


class MalformedRequestError(ProtocolError):
    """Raised when the client request cannot be decoded."""


class UnsupportedCommandError(ProtocolError):
    """Raised for any command other than CONNECT."""


class UnsupportedAddressFamilyError(ProtocolError):
    """Raised for IPv6 destination addresses."""


class DialError(ProxyError):
    """Base exception for failures reaching the requested destination."""

    reply_code: int = REP_GENERAL_FAILURE


class DNSResolutionError(DialError):
    """Raised when DNS resolution fails."""

    reply_code: int = REP_HOST_UNREACHABLE


class TargetRefusedError(DialError):
    """Raised when the destination refuses the connection."""

    reply_code: int = REP_CONNECTION_REFUSED


class DialFailedError(DialError):
    """Raised for any other dial failure.

    The reply code is picked per instance to be the closest SOCKS5 status.
    """

    def __init__(self, message: str, reply_code: int = REP_GENERAL_FAILURE) -> None:
        super().__init__(message)
        self.reply_code = reply_code
