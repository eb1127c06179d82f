# tests/test_network.py
"""Tests for network module."""

import asyncio
import socket

import pytest

from p2pchat.network import UDPTransport, bind_socket
from p2pchat.robustness import ErrorType, TransportError


def test_udp_transport():
    """Test UDP transport defaults."""
    transport = UDPTransport()
    assert transport.bind_host == "127.0.0.1"
    assert transport.listen_port == 6000
    assert transport.local_address is None


def test_bind_socket_falls_back_when_port_taken():
    holder = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    holder.bind(("127.0.0.1", 0))
    taken = holder.getsockname()[1]
    try:
        sock = bind_socket("127.0.0.1", taken)
        try:
            host, port = sock.getsockname()
            assert host == "127.0.0.1"
            assert port not in (0, taken)
        finally:
            sock.close()
    finally:
        holder.close()


def test_bind_socket_other_errors_are_fatal():
    with pytest.raises(TransportError) as exc_info:
        bind_socket("192.0.2.1", 0)  # TEST-NET, not a local address
    assert exc_info.value.error_type == ErrorType.NETWORK


def test_sendto_before_start():
    transport = UDPTransport("127.0.0.1", 0)
    with pytest.raises(TransportError):
        transport.sendto(b"data", ("127.0.0.1", 9))


@pytest.mark.asyncio
async def test_send_and_receive():
    a = UDPTransport("127.0.0.1", 0)
    b = UDPTransport("127.0.0.1", 0)
    await a.start()
    await b.start()
    try:
        a.sendto(b"ping", b.local_address)
        data, addr = await asyncio.wait_for(b.receive_datagram(), timeout=2)
        assert data == b"ping"
        assert addr == a.local_address
    finally:
        a.close()
        b.close()


@pytest.mark.asyncio
async def test_start_falls_back_to_ephemeral_port():
    first = UDPTransport("127.0.0.1", 0)
    await first.start()
    second = UDPTransport("127.0.0.1", first.local_address[1])
    try:
        await second.start()
        assert second.local_address[0] == "127.0.0.1"
        assert second.local_address != first.local_address
    finally:
        first.close()
        second.close()


@pytest.mark.asyncio
async def test_oversized_datagrams_dropped():
    receiver = UDPTransport("127.0.0.1", 0, max_datagram_size=128)
    sender = UDPTransport("127.0.0.1", 0)
    await receiver.start()
    await sender.start()
    try:
        sender.sendto(b"x" * 129, receiver.local_address)
        sender.sendto(b"small", receiver.local_address)
        data, _ = await asyncio.wait_for(receiver.receive_datagram(), timeout=2)
        assert data == b"small"
    finally:
        receiver.close()
        sender.close()


@pytest.mark.asyncio
async def test_receive_after_close_raises():
    transport = UDPTransport("127.0.0.1", 0)
    await transport.start()
    transport.close()
    with pytest.raises(TransportError):
        await asyncio.wait_for(transport.receive_datagram(), timeout=2)
    with pytest.raises(TransportError):
        transport.sendto(b"late", ("127.0.0.1", 9))


@pytest.mark.asyncio
async def test_rejected_send_raises():
    transport = UDPTransport("127.0.0.1", 0)
    await transport.start()
    try:
        # no SO_BROADCAST on the socket, the kernel refuses
        with pytest.raises(TransportError) as exc_info:
            transport.sendto(b"data", ("255.255.255.255", 9))
        assert exc_info.value.context["addr"] == ("255.255.255.255", 9)
        with pytest.raises(TransportError):
            transport.sendto(b"data", ("::1", 9))
    finally:
        transport.close()


@pytest.mark.asyncio
async def test_receive_side_errors_are_not_fatal():
    a = UDPTransport("127.0.0.1", 0)
    b = UDPTransport("127.0.0.1", 0)
    await a.start()
    await b.start()
    try:
        a.protocol.error_received(ConnectionRefusedError("port unreachable"))
        a.sendto(b"ping", b.local_address)
        data, _ = await asyncio.wait_for(b.receive_datagram(), timeout=2)
        assert data == b"ping"
    finally:
        a.close()
        b.close()
