import socket
import threading

import pytest

from socks5_relay.core.lib.socks_handler import ConnectionHandler
from tests.helpers import TIMEOUT


class EchoServer:
    """Loopback TCP server that echoes every connection back to itself."""

    def __init__(self) -> None:
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(16)
        self.port = self.sock.getsockname()[1]
        self.accepted = 0
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        while True:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                return
            self.accepted += 1
            threading.Thread(target=self._echo, args=(conn,), daemon=True).start()

    @staticmethod
    def _echo(conn: socket.socket) -> None:
        with conn:
            try:
                while data := conn.recv(4096):
                    conn.sendall(data)
            except OSError:
                pass

    def close(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
        self._thread.join(TIMEOUT)


@pytest.fixture
def echo_server():
    server = EchoServer()
    yield server
    server.close()


class HandlerRun:
    """A ConnectionHandler running in a thread against one end of a socket pair."""

    def __init__(self, **handler_kwargs) -> None:
        self.client, server_side = socket.socketpair()
        self.client.settimeout(TIMEOUT)
        self.handler = ConnectionHandler(server_side, **handler_kwargs)
        self.result = None
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.start()

    def _run(self) -> None:
        self.result = self.handler.run()

    def wait(self):
        self.thread.join(TIMEOUT)
        assert not self.thread.is_alive(), "handler did not finish"
        return self.result


@pytest.fixture
def run_handler():
    runs = []

    def start(**handler_kwargs) -> HandlerRun:
        run = HandlerRun(**handler_kwargs)
        runs.append(run)
        return run

    yield start
    for run in runs:
        run.client.close()
        run.thread.join(TIMEOUT)
