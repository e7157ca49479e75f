import pytest

from socks5_relay.core.exceptions import MalformedGreetingError, MalformedRequestError, UnsupportedAuthError
from socks5_relay.core.lib.wire import (
    ADDR_TYPE_DOMAIN,
    ADDR_TYPE_IPV4,
    ADDR_TYPE_IPV6,
    CMD_BIND,
    CMD_CONNECT,
    REP_CONNECTION_REFUSED,
    REP_SUCCESS,
    BufferSource,
    ConnectRequest,
    Greeting,
    decode_greeting,
    decode_greeting_bytes,
    decode_request,
    decode_request_bytes,
    encode_greeting,
    encode_method_selection,
    encode_reply,
    encode_request,
    select_method,
)


class TestGreeting:
    def test_decodes_methods_in_order(self):
        assert decode_greeting_bytes(bytes([5, 3, 2, 0, 1])) == Greeting(methods=b"\x02\x00\x01")

    def test_single_no_auth_method(self):
        greeting = decode_greeting_bytes(bytes.fromhex("050100"))
        assert select_method(greeting) == 0
        assert encode_method_selection(select_method(greeting)) == b"\x05\x00"

    def test_wrong_version(self):
        with pytest.raises(MalformedGreetingError, match="version"):
            decode_greeting_bytes(bytes.fromhex("040100"))

    def test_fewer_methods_than_announced(self):
        with pytest.raises(MalformedGreetingError, match="greeting methods"):
            decode_greeting_bytes(bytes([5, 3, 0]))

    def test_missing_header(self):
        with pytest.raises(MalformedGreetingError, match="greeting header"):
            decode_greeting_bytes(b"\x05")

    def test_trailing_bytes_rejected(self):
        with pytest.raises(MalformedGreetingError, match="trailing"):
            decode_greeting_bytes(bytes.fromhex("05010000"))

    def test_does_not_read_past_greeting(self):
        source = BufferSource(bytes.fromhex("0501000501"))
        decode_greeting(source)
        assert source.remaining == 2

    @pytest.mark.parametrize("methods", [b"", b"\x02", b"\x01\x02\xff"])
    def test_no_auth_missing(self, methods):
        with pytest.raises(UnsupportedAuthError):
            select_method(decode_greeting_bytes(encode_greeting(methods)))


class TestRequest:
    def test_ipv4_connect(self):
        request = decode_request_bytes(bytes.fromhex("05010001 5DB8D822 0050"))
        assert request == ConnectRequest(CMD_CONNECT, ADDR_TYPE_IPV4, "93.184.216.34", 80)

    def test_domain_connect(self):
        data = bytes([5, 1, 0, 3, 11]) + b"example.com" + b"\x01\xbb"
        request = decode_request_bytes(data)
        assert request == ConnectRequest(CMD_CONNECT, ADDR_TYPE_DOMAIN, "example.com", 443)

    def test_ipv6_layout_is_consumed(self):
        data = bytes([5, 1, 0, 4]) + bytes(15) + b"\x01" + b"\x00\x16"
        source = BufferSource(data + b"extra")
        request = decode_request(source)
        assert request.address_type == ADDR_TYPE_IPV6
        assert request.address == "::1"
        assert request.port == 22
        assert source.remaining == len(b"extra")

    def test_other_commands_are_decoded(self):
        request = decode_request_bytes(bytes.fromhex("050200017f0000010050"))
        assert request.command == CMD_BIND

    @pytest.mark.parametrize(
        ("data", "field"),
        [
            (bytes.fromhex("04010001 7f000001 0050"), "version"),
            (bytes.fromhex("05010101 7f000001 0050"), "reserved"),
            (bytes.fromhex("05010002 7f000001 0050"), "address type"),
            (bytes.fromhex("050100"), "request header"),
            (bytes.fromhex("05010001 7f00"), "IPv4 address"),
            (bytes.fromhex("05010001 7f000001 00"), "port"),
            (bytes.fromhex("05010003"), "domain length"),
            (bytes.fromhex("05010003 00 0050"), "empty domain"),
            (bytes.fromhex("05010003 05 6162"), "domain name"),
            (bytes.fromhex("05010003 02 fffe 0050"), "undecodable"),
        ],
    )
    def test_malformed_fields_are_named(self, data, field):
        with pytest.raises(MalformedRequestError, match=field):
            decode_request_bytes(data)

    def test_trailing_bytes_rejected(self):
        with pytest.raises(MalformedRequestError, match="trailing"):
            decode_request_bytes(bytes.fromhex("050100017f000001005000"))

    @pytest.mark.parametrize(
        "request_",
        [
            ConnectRequest(CMD_CONNECT, ADDR_TYPE_IPV4, "93.184.216.34", 80),
            ConnectRequest(CMD_CONNECT, ADDR_TYPE_DOMAIN, "example.com", 65535),
            ConnectRequest(CMD_BIND, ADDR_TYPE_IPV4, "0.0.0.0", 0),
        ],
    )
    def test_round_trip(self, request_):
        assert decode_request_bytes(encode_request(request_)) == request_


class TestReply:
    def test_success_echoes_ipv4_destination(self):
        reply = encode_reply(REP_SUCCESS, ADDR_TYPE_IPV4, "93.184.216.34", 80)
        assert reply == bytes.fromhex("05000001 5DB8D822 0050")

    def test_refused_echoes_domain_destination(self):
        reply = encode_reply(REP_CONNECTION_REFUSED, ADDR_TYPE_DOMAIN, "example.com", 80)
        assert reply == bytes([5, 5, 0, 3, 11]) + b"example.com" + b"\x00\x50"

    def test_domain_too_long(self):
        with pytest.raises(ValueError, match="1-255"):
            encode_reply(REP_SUCCESS, ADDR_TYPE_DOMAIN, "a" * 256, 80)
