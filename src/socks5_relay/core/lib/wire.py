"""SOCKS5 wire format encoding and decoding.

This module implements the fixed binary layouts of the SOCKS5 subset served by
the proxy (RFC 1928):
- Client greeting and method selection
- CONNECT requests with IPv4 or domain-name destinations
- Replies carrying a status code and the echoed destination

All functions are free of I/O. Decoders pull bytes from a source object that
exposes ``read_exact(n)``; they consume exactly the bytes the layout specifies
and never over-read, so the same decoders work on sockets and on in-memory
buffers.

Example:
    request = decode_request_bytes(bytes.fromhex("0501000105b8d8220050"))
    reply = encode_reply(REP_SUCCESS, request.address_type, request.address, request.port)
"""

import socket
import struct
from dataclasses import dataclass
from typing import Final, Protocol

from socks5_relay.core.exceptions import (
    REP_CONNECTION_REFUSED,
    REP_GENERAL_FAILURE,
    REP_HOST_UNREACHABLE,
    REP_NETWORK_UNREACHABLE,
    MalformedGreetingError,
    MalformedRequestError,
    StreamClosedError,
    UnsupportedAuthError,
)

# SOCKS protocol constants
SOCKS_VERSION: Final = 5
RESERVED: Final = 0

# Authentication methods
METHOD_NO_AUTH: Final = 0x00

# Commands
CMD_CONNECT: Final = 1
CMD_BIND: Final = 2
CMD_UDP_ASSOCIATE: Final = 3

# Address types
ADDR_TYPE_IPV4: Final = 1
ADDR_TYPE_DOMAIN: Final = 3
ADDR_TYPE_IPV6: Final = 4

IPV4_LENGTH: Final = 4
IPV6_LENGTH: Final = 16

# Response codes
REP_SUCCESS: Final = 0x00

__all__ = [
    "ADDR_TYPE_DOMAIN",
    "ADDR_TYPE_IPV4",
    "ADDR_TYPE_IPV6",
    "BufferSource",
    "ByteSource",
    "CMD_BIND",
    "CMD_CONNECT",
    "CMD_UDP_ASSOCIATE",
    "ConnectRequest",
    "Greeting",
    "METHOD_NO_AUTH",
    "REP_CONNECTION_REFUSED",
    "REP_GENERAL_FAILURE",
    "REP_HOST_UNREACHABLE",
    "REP_NETWORK_UNREACHABLE",
    "REP_SUCCESS",
    "SOCKS_VERSION",
    "SocketSource",
    "decode_greeting",
    "decode_greeting_bytes",
    "decode_request",
    "decode_request_bytes",
    "encode_greeting",
    "encode_method_selection",
    "encode_reply",
    "encode_request",
    "select_method",
]


class ByteSource(Protocol):
    """Anything the decoders can pull an exact number of bytes from."""

    def read_exact(self, size: int) -> bytes: ...


class BufferSource:
    """Byte source backed by an in-memory buffer."""

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def read_exact(self, size: int) -> bytes:
        if size > self.remaining:
            msg = f"needed {size} bytes, {self.remaining} available"
            raise StreamClosedError(msg)
        chunk = self._data[self._offset : self._offset + size].tobytes()
        self._offset += size
        return chunk


class SocketSource:
    """Byte source reading from a connected stream socket."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock

    def read_exact(self, size: int) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            chunk = self.sock.recv(size - len(buf))
            if not chunk:
                msg = f"stream closed after {len(buf)} of {size} bytes"
                raise StreamClosedError(msg)
            buf += chunk
        return bytes(buf)


@dataclass(frozen=True)
class Greeting:
    """Authentication methods offered by the client, in the client's order."""

    methods: bytes


@dataclass(frozen=True)
class ConnectRequest:
    """A decoded SOCKS5 request.

    Attributes:
        command: Requested command code (only CONNECT is served)
        address_type: ADDR_TYPE_IPV4, ADDR_TYPE_DOMAIN or ADDR_TYPE_IPV6
        address: Dotted IPv4, domain name, or IPv6 text form
        port: Destination port
    """

    command: int
    address_type: int
    address: str
    port: int


def _read(source: ByteSource, size: int, field: str, error: type[Exception]) -> bytes:
    try:
        return source.read_exact(size)
    except StreamClosedError as e:
        msg = f"short read in {field}: {e}"
        raise error(msg) from e


def decode_greeting(source: ByteSource) -> Greeting:
    """Decode ``VER NMETHODS METHODS``.

    Raises:
        MalformedGreetingError: On a wrong version byte or a short read
    """
    version, nmethods = struct.unpack("!BB", _read(source, 2, "greeting header", MalformedGreetingError))
    if version != SOCKS_VERSION:
        msg = f"invalid version {version:#04x} in greeting"
        raise MalformedGreetingError(msg)
    methods = _read(source, nmethods, "greeting methods", MalformedGreetingError)
    return Greeting(methods=methods)


def decode_greeting_bytes(data: bytes) -> Greeting:
    """Decode a complete greeting frame, rejecting trailing bytes."""
    source = BufferSource(data)
    greeting = decode_greeting(source)
    if source.remaining:
        msg = f"{source.remaining} trailing bytes after greeting"
        raise MalformedGreetingError(msg)
    return greeting


def select_method(greeting: Greeting) -> int:
    """Pick the authentication method; only no-auth is supported.

    Raises:
        UnsupportedAuthError: If the client did not offer no-auth
    """
    if METHOD_NO_AUTH not in greeting.methods:
        msg = f"no acceptable method in {greeting.methods.hex() or 'empty list'}"
        raise UnsupportedAuthError(msg)
    return METHOD_NO_AUTH


def encode_greeting(methods: bytes) -> bytes:
    return struct.pack("!BB", SOCKS_VERSION, len(methods)) + methods


def encode_method_selection(method: int) -> bytes:
    return struct.pack("!BB", SOCKS_VERSION, method)


def _decode_address(source: ByteSource, address_type: int) -> str:
    if address_type == ADDR_TYPE_IPV4:
        return socket.inet_ntoa(_read(source, IPV4_LENGTH, "IPv4 address", MalformedRequestError))
    if address_type == ADDR_TYPE_DOMAIN:
        (length,) = struct.unpack("!B", _read(source, 1, "domain length", MalformedRequestError))
        if length == 0:
            msg = "empty domain name"
            raise MalformedRequestError(msg)
        raw = _read(source, length, "domain name", MalformedRequestError)
        try:
            return raw.decode()
        except UnicodeDecodeError as e:
            msg = f"undecodable domain name {raw!r}"
            raise MalformedRequestError(msg) from e
    if address_type == ADDR_TYPE_IPV6:
        return socket.inet_ntop(socket.AF_INET6, _read(source, IPV6_LENGTH, "IPv6 address", MalformedRequestError))
    msg = f"unknown address type {address_type:#04x}"
    raise MalformedRequestError(msg)


def _encode_address(address_type: int, address: str) -> bytes:
    if address_type == ADDR_TYPE_IPV4:
        return socket.inet_aton(address)
    if address_type == ADDR_TYPE_DOMAIN:
        raw = address.encode()
        if not 0 < len(raw) <= 255:
            msg = f"domain name must be 1-255 bytes, got {len(raw)}"
            raise ValueError(msg)
        return struct.pack("!B", len(raw)) + raw
    if address_type == ADDR_TYPE_IPV6:
        return socket.inet_pton(socket.AF_INET6, address)
    msg = f"unknown address type {address_type}"
    raise ValueError(msg)


def decode_request(source: ByteSource) -> ConnectRequest:
    """Decode ``VER CMD RSV ATYP DST.ADDR DST.PORT``.

    The command is returned as sent; whether it is supported is decided by
    the connection handler.

    Raises:
        MalformedRequestError: Naming the field that was invalid
    """
    version, command, reserved, address_type = struct.unpack(
        "!BBBB", _read(source, 4, "request header", MalformedRequestError)
    )
    if version != SOCKS_VERSION:
        msg = f"invalid version {version:#04x} in request"
        raise MalformedRequestError(msg)
    if reserved != RESERVED:
        msg = f"reserved byte is {reserved:#04x}, expected 0x00"
        raise MalformedRequestError(msg)
    address = _decode_address(source, address_type)
    (port,) = struct.unpack("!H", _read(source, 2, "port", MalformedRequestError))
    return ConnectRequest(command=command, address_type=address_type, address=address, port=port)


def decode_request_bytes(data: bytes) -> ConnectRequest:
    """Decode a complete request frame, rejecting trailing bytes."""
    source = BufferSource(data)
    request = decode_request(source)
    if source.remaining:
        msg = f"{source.remaining} trailing bytes after request"
        raise MalformedRequestError(msg)
    return request


def encode_request(request: ConnectRequest) -> bytes:
    header = struct.pack("!BBBB", SOCKS_VERSION, request.command, RESERVED, request.address_type)
    return header + _encode_address(request.address_type, request.address) + struct.pack("!H", request.port)


def encode_reply(status: int, address_type: int, address: str, port: int) -> bytes:
    """Encode ``VER REP RSV ATYP BND.ADDR BND.PORT``."""
    header = struct.pack("!BBBB", SOCKS_VERSION, status, RESERVED, address_type)
    return header + _encode_address(address_type, address) + struct.pack("!H", port)
