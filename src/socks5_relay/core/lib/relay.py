"""Bi-directional data forwarding between two connected sockets.

Each direction runs in its own thread and copies one chunk at a time:
read whatever is available, write it verbatim to the peer, repeat. Nothing is
queued beyond the chunk in flight.

As soon as either direction sees end-of-stream or a socket error, both sockets
are shut down. That wakes the other direction out of its blocking ``recv`` or
``sendall`` so it ends too. The sockets are closed only after both threads
have been joined, so no thread ever touches a descriptor that was already
released.

Example:
    sent, received = relay(client, target)
"""

import contextlib
import socket
import threading
from typing import Final

from loguru import logger

DEFAULT_BUFFER_SIZE: Final = 4096


def close_stream(sock: socket.socket) -> None:
    """Shut down and close a socket, ignoring sockets that are already gone."""
    with contextlib.suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)
    sock.close()


class _Link:
    """Shutdown coordination for one socket pair."""

    def __init__(self, a: socket.socket, b: socket.socket) -> None:
        self.a = a
        self.b = b
        self._lock = threading.Lock()
        self._broken = False

    def break_(self) -> None:
        with self._lock:
            if self._broken:
                return
            self._broken = True
        for sock in (self.a, self.b):
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)


def _pipe(link: _Link, src: socket.socket, dst: socket.socket, buffer_size: int, counts: list[int], index: int) -> None:
    try:
        while True:
            data = src.recv(buffer_size)
            if not data:
                break
            dst.sendall(data)
            counts[index] += len(data)
    except OSError as e:
        logger.debug(f"Forward stopped: {e}")
    finally:
        link.break_()


def relay(a: socket.socket, b: socket.socket, buffer_size: int = DEFAULT_BUFFER_SIZE) -> tuple[int, int]:
    """Forward data between ``a`` and ``b`` until either side closes.

    Both sockets are closed when this returns.

    Args:
        a: First connected socket (the client)
        b: Second connected socket (the destination)
        buffer_size: Maximum bytes read per chunk

    Returns:
        tuple[int, int]: Bytes copied from ``a`` to ``b`` and from ``b`` to ``a``
    """
    link = _Link(a, b)
    counts = [0, 0]
    threads = [
        threading.Thread(target=_pipe, args=(link, a, b, buffer_size, counts, 0), name="relay-forward", daemon=True),
        threading.Thread(target=_pipe, args=(link, b, a, buffer_size, counts, 1), name="relay-backward", daemon=True),
    ]
    try:
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
    finally:
        link.break_()
        for sock in (a, b):
            sock.close()
    return counts[0], counts[1]
