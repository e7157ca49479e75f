"""SOCKS protocol handler implementation for the proxy server.

This module drives one client connection through the SOCKS5 subset served by
the proxy (RFC 1928):
- Method negotiation (no-auth only)
- CONNECT requests to IPv4 addresses or domain names
- Resolution and dialing of the destination
- Reply encoding
- Bi-directional data forwarding

Every connection moves through an explicit state machine::

    AWAIT_GREETING -> AWAIT_REQUEST -> CONNECTING -> RELAYING -> CLOSED

with FAILED reachable from the first three states. Handshake and request
failures close the client without a reply. Dial failures are reported once
with the matching reply status and then close the client. Every exit goes
through the same cleanup path, which closes the client socket and the
destination socket if one was opened.

Example:
    # The handler is automatically used by the SocksProxy server class
    server = SocksProxy((host, port), SocksHandler)
    server.serve_forever()
"""

import enum
import errno
import socket
import socketserver
from typing import Final

from loguru import logger

from socks5_relay.core.exceptions import (
    REP_GENERAL_FAILURE,
    REP_HOST_UNREACHABLE,
    REP_NETWORK_UNREACHABLE,
    DialError,
    DialFailedError,
    ProtocolError,
    TargetRefusedError,
    UnsupportedAddressFamilyError,
    UnsupportedCommandError,
)
from socks5_relay.core.lib.proxy_stats import proxy_stats
from socks5_relay.core.lib.relay import DEFAULT_BUFFER_SIZE, close_stream, relay
from socks5_relay.core.lib.resolver import AddressResolver, Destination
from socks5_relay.core.lib.wire import (
    ADDR_TYPE_IPV6,
    CMD_CONNECT,
    REP_SUCCESS,
    ConnectRequest,
    SocketSource,
    decode_greeting,
    decode_request,
    encode_method_selection,
    encode_reply,
    select_method,
)

# errno values reported as "host unreachable" rather than a general failure
HOST_UNREACHABLE_ERRNOS: Final = frozenset({errno.EHOSTUNREACH, errno.EHOSTDOWN, errno.ETIMEDOUT})
NETWORK_UNREACHABLE_ERRNOS: Final = frozenset({errno.ENETUNREACH, errno.ENETDOWN})


class ConnectionState(enum.Enum):
    AWAIT_GREETING = "await_greeting"
    AWAIT_REQUEST = "await_request"
    CONNECTING = "connecting"
    RELAYING = "relaying"
    CLOSED = "closed"
    FAILED = "failed"


def dial(destination: Destination) -> socket.socket:
    """Open a TCP connection to the destination.

    Raises:
        TargetRefusedError: If the destination refused the connection
        DialFailedError: For any other socket error, with the closest reply code
    """
    try:
        return socket.create_connection(destination)
    except ConnectionRefusedError as e:
        msg = f"{destination.host}:{destination.port} refused the connection"
        raise TargetRefusedError(msg) from e
    except OSError as e:
        if isinstance(e, TimeoutError) or e.errno in HOST_UNREACHABLE_ERRNOS:
            reply_code = REP_HOST_UNREACHABLE
        elif e.errno in NETWORK_UNREACHABLE_ERRNOS:
            reply_code = REP_NETWORK_UNREACHABLE
        else:
            reply_code = REP_GENERAL_FAILURE
        msg = f"could not connect to {destination.host}:{destination.port}: {e}"
        raise DialFailedError(msg, reply_code) from e


class ConnectionHandler:
    """State machine for a single SOCKS client.

    The handler owns the client socket from construction on and the target
    socket from a successful dial on. Both are closed by the time ``run``
    returns.
    """

    def __init__(
        self,
        client: socket.socket,
        client_address: tuple | None = None,
        *,
        resolver: AddressResolver | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> None:
        self.client = client
        self.client_address = client_address
        self.resolver = resolver or AddressResolver()
        self.buffer_size = buffer_size
        self.source = SocketSource(client)
        self.target: socket.socket | None = None
        self.state = ConnectionState.AWAIT_GREETING

    @property
    def peer(self) -> str:
        if self.client_address:
            return f"{self.client_address[0]}:{self.client_address[1]}"
        return repr(self.client)

    def _transition(self, state: ConnectionState) -> None:
        logger.debug(f"{self.peer}: {self.state.value} -> {state.value}")
        self.state = state

    def _negotiate(self) -> None:
        """Read the greeting and accept no-auth."""
        greeting = decode_greeting(self.source)
        method = select_method(greeting)
        self.client.sendall(encode_method_selection(method))
        self._transition(ConnectionState.AWAIT_REQUEST)

    def _read_request(self) -> ConnectRequest:
        request = decode_request(self.source)
        if request.command != CMD_CONNECT:
            msg = f"command {request.command:#04x} is not supported"
            raise UnsupportedCommandError(msg)
        if request.address_type == ADDR_TYPE_IPV6:
            msg = f"IPv6 destination {request.address} is not supported"
            raise UnsupportedAddressFamilyError(msg)
        logger.debug(f"{self.peer}: CONNECT {request.address}:{request.port}")
        self._transition(ConnectionState.CONNECTING)
        return request

    def _send_reply(self, status: int, request: ConnectRequest) -> None:
        self.client.sendall(encode_reply(status, request.address_type, request.address, request.port))

    def _connect(self, request: ConnectRequest) -> socket.socket:
        """Resolve and dial the destination, then tell the client how it went."""
        try:
            destination = self.resolver.resolve(request)
            target = self.target = dial(destination)
        except DialError as e:
            self._send_reply(e.reply_code, request)
            raise
        self._send_reply(REP_SUCCESS, request)
        logger.info(f"{self.peer}: connected to {request.address}:{request.port} ({destination.host})")
        self._transition(ConnectionState.RELAYING)
        return target

    def _forward(self, target: socket.socket) -> None:
        sent, received = relay(self.client, target, self.buffer_size)
        proxy_stats.update_bytes(sent, received)
        logger.debug(f"{self.peer}: relay finished, {sent} bytes sent, {received} bytes received")
        self._transition(ConnectionState.CLOSED)

    def _close(self) -> None:
        close_stream(self.client)
        if self.target is not None:
            close_stream(self.target)

    def run(self) -> ConnectionState:
        """Drive the connection to a terminal state.

        Returns:
            ConnectionState: CLOSED or FAILED
        """
        proxy_stats.connection_started()
        try:
            self._negotiate()
            request = self._read_request()
            target = self._connect(request)
            self._forward(target)
        except ProtocolError as e:
            logger.info(f"{self.peer}: rejected in {self.state.value}: {e}")
            self._transition(ConnectionState.FAILED)
        except DialError as e:
            logger.info(f"{self.peer}: {e}")
            self._transition(ConnectionState.FAILED)
        except OSError as e:
            logger.debug(f"{self.peer}: socket error in {self.state.value}: {e}")
            self._transition(ConnectionState.FAILED)
        except Exception:
            logger.exception(f"{self.peer}: error handling SOCKS connection")
            self._transition(ConnectionState.FAILED)
        finally:
            self._close()
            proxy_stats.connection_ended(failed=self.state is not ConnectionState.CLOSED)
        return self.state


def handle_connection(
    client: socket.socket,
    client_address: tuple | None = None,
    *,
    resolver: AddressResolver | None = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> None:
    """Serve one accepted client socket until it is closed."""
    ConnectionHandler(client, client_address, resolver=resolver, buffer_size=buffer_size).run()


class SocksHandler(socketserver.BaseRequestHandler):
    """Handle incoming SOCKS5 connections."""

    def handle(self) -> None:
        """Handle incoming SOCKS5 connection."""
        handle_connection(
            self.request,
            self.client_address,
            resolver=getattr(self.server, "resolver", None),
            buffer_size=getattr(self.server, "buffer_size", DEFAULT_BUFFER_SIZE),
        )
