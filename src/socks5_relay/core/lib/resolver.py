"""Destination resolution using the system resolver or dnspython."""

import socket
from typing import TYPE_CHECKING, Final, NamedTuple, cast

import dns.exception
import dns.resolver
from loguru import logger

from socks5_relay.core.exceptions import DNSResolutionError, MalformedRequestError, UnsupportedAddressFamilyError
from socks5_relay.core.lib.wire import ADDR_TYPE_DOMAIN, ADDR_TYPE_IPV4, ADDR_TYPE_IPV6, ConnectRequest

if TYPE_CHECKING:
    from collections.abc import Sequence

    from dns.resolver import Resolver

# DNS resolver constants
DEFAULT_TIMEOUT: Final = 1.0  # seconds
DEFAULT_LIFETIME: Final = 3.0  # seconds


class Destination(NamedTuple):
    """A connectable IPv4 endpoint."""

    host: str
    port: int


class AddressResolver:
    """Turn a request's address field into a connectable destination.

    Domain names go through ``socket.getaddrinfo`` unless nameservers are
    given, in which case an A query is sent to them with dnspython. Nothing is
    cached; every request resolves on its own.
    """

    def __init__(self, nameservers: "Sequence[str]" = ()) -> None:
        """Initialize the resolver.

        Args:
            nameservers: IPv4 nameservers to query instead of the system resolver
        """
        self.resolver: Resolver | None = None
        if nameservers:
            self.resolver = cast("Resolver", dns.resolver.Resolver(configure=False))
            self.resolver.timeout = DEFAULT_TIMEOUT
            self.resolver.lifetime = DEFAULT_LIFETIME
            self.resolver.nameservers = list(nameservers)

    def _resolve_system(self, domain: str, port: int) -> str:
        try:
            addrinfo = socket.getaddrinfo(domain, port, socket.AF_INET, socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            msg = f"could not resolve {domain}: {e}"
            raise DNSResolutionError(msg) from e
        if not addrinfo:
            msg = f"no IPv4 address for {domain}"
            raise DNSResolutionError(msg)
        return addrinfo[0][4][0]

    def _resolve_configured(self, resolver: "Resolver", domain: str) -> str:
        try:
            answer = resolver.resolve(domain, "A")
        except dns.exception.DNSException as e:
            msg = f"could not resolve {domain} via {', '.join(map(str, resolver.nameservers))}: {e}"
            raise DNSResolutionError(msg) from e
        return str(answer[0])

    def resolve_name(self, domain: str, port: int = 0) -> str:
        """Resolve a domain name to an IPv4 address.

        Raises:
            DNSResolutionError: If resolution fails
        """
        if self.resolver is not None:
            ip = self._resolve_configured(self.resolver, domain)
        else:
            ip = self._resolve_system(domain, port)
        logger.debug(f"Resolved {domain} to {ip}")
        return ip

    def resolve(self, request: ConnectRequest) -> Destination:
        """Resolve a decoded request to a destination.

        Args:
            request: Decoded CONNECT request

        Returns:
            Destination: IPv4 address and port to dial

        Raises:
            DNSResolutionError: If the domain does not resolve
            UnsupportedAddressFamilyError: For IPv6 requests
        """
        if request.address_type == ADDR_TYPE_IPV4:
            return Destination(request.address, request.port)
        if request.address_type == ADDR_TYPE_DOMAIN:
            return Destination(self.resolve_name(request.address, request.port), request.port)
        if request.address_type == ADDR_TYPE_IPV6:
            msg = f"IPv6 destination {request.address} is not supported"
            raise UnsupportedAddressFamilyError(msg)
        msg = f"unknown address type {request.address_type:#04x}"
        raise MalformedRequestError(msg)
