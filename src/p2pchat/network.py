# src/p2pchat/network.py
"""
UDP transport for p2pchat.

A single datagram endpoint serves both the receiving and the sending task;
sends and receives are independent system calls, so no locking is needed.
"""

import asyncio
import errno
import logging
import socket
from typing import Optional, Tuple

from .robustness import ErrorType, TransportError, handle_exception

logger = logging.getLogger(__name__)

Address = Tuple[str, int]

MAX_PACKET_SIZE = 65535
ADDR_IN_USE = {errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE)}


def _family_for(host: str) -> int:
    # IPv6 literal or '::'
    if isinstance(host, str) and ":" in host:
        return socket.AF_INET6
    return socket.AF_INET


@handle_exception(ErrorType.NETWORK)
def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a UDP socket to ``(host, port)``.

    If the port is taken, bind once more to an OS-assigned port on the same
    host instead of failing. Any other error is fatal.
    """
    sock = socket.socket(_family_for(host), socket.SOCK_DGRAM)
    try:
        try:
            sock.bind((host, port))
        except OSError as e:
            if e.errno not in ADDR_IN_USE:
                raise
            logger.info(f"{host}:{port} already in use, falling back to an ephemeral port")
            sock.bind((host, 0))
    except OSError:
        sock.close()
        raise
    sock.setblocking(False)
    return sock


class DatagramQueueProtocol(asyncio.DatagramProtocol):
    def __init__(self, queue: asyncio.Queue, max_size: int = MAX_PACKET_SIZE):
        self.queue = queue
        self.max_size = max_size
        # set while UDPTransport.sendto is inside transport.sendto()
        self.sending = False
        self.send_error: Optional[Exception] = None

    def datagram_received(self, data, addr):
        if len(data) > self.max_size:
            logger.debug(f"Dropping {len(data)} byte datagram from {addr}: over {self.max_size}")
            return
        self.queue.put_nowait((data, addr))

    def error_received(self, exc):
        # asyncio reports a failed sendto() here instead of raising it
        if self.sending:
            self.send_error = exc
            return
        # ICMP errors for a peer that is not up yet are routine on UDP
        logger.warning(f"UDP socket error received: {exc}")

    def connection_lost(self, exc):
        self.queue.put_nowait(None)


class UDPTransport:
    """asyncio UDP endpoint with a receive queue."""

    def __init__(self, bind_host: str = "127.0.0.1", listen_port: int = 6000, max_datagram_size: int = MAX_PACKET_SIZE):
        self.bind_host = bind_host
        self.listen_port = listen_port
        self.max_datagram_size = max_datagram_size
        self.transport: Optional[asyncio.DatagramTransport] = None
        self.protocol: Optional[DatagramQueueProtocol] = None
        self._receive_queue: asyncio.Queue = asyncio.Queue()

    @handle_exception(ErrorType.NETWORK)
    async def start(self) -> Address:
        loop = asyncio.get_running_loop()
        sock = bind_socket(self.bind_host, self.listen_port)
        self.transport, self.protocol = await loop.create_datagram_endpoint(
            lambda: DatagramQueueProtocol(self._receive_queue, self.max_datagram_size),
            sock=sock,
        )
        logger.info(f"UDP transport started on {self.local_address}")
        return self.local_address

    @property
    def local_address(self) -> Optional[Address]:
        if self.transport is None:
            return None
        sockname = self.transport.get_extra_info("sockname")
        return tuple(sockname[:2]) if sockname else None

    @handle_exception(ErrorType.NETWORK)
    def sendto(self, data: bytes, addr: Address) -> None:
        """Send one datagram. Raises TransportError if the OS rejects it."""
        if self.transport is None or self.transport.is_closing():
            raise TransportError("Transport not started", context={"addr": addr})
        self.protocol.sending = True
        try:
            self.transport.sendto(data, addr)
        finally:
            self.protocol.sending = False
        error, self.protocol.send_error = self.protocol.send_error, None
        if error is not None:
            raise TransportError(f"Send to {addr} failed: {error}", context={"addr": addr}) from error

    async def receive_datagram(self) -> Tuple[bytes, Address]:
        item = await self._receive_queue.get()
        if item is None:
            raise TransportError("Transport closed")
        return item

    def close(self) -> None:
        if self.transport is not None and not self.transport.is_closing():
            self.transport.close()
            logger.info("UDP transport stopped")
