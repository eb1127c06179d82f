# tests/test_handshake.py
"""Tests for handshake module."""

import dataclasses

import pytest

from p2pchat.framing import Frame, announce
from p2pchat.handshake import HandshakeCoordinator, HandshakeState, PeerInfo

LOCAL_ADDR = ("127.0.0.1", 6000)
ALICE_ADDR = ("127.0.0.1", 6001)
BOB_ADDR = ("127.0.0.1", 6002)


def test_initial_state(alice):
    coordinator = HandshakeCoordinator(alice.public, LOCAL_ADDR)
    assert coordinator.state is HandshakeState.AWAITING_PEER
    assert coordinator.peer is None
    assert not coordinator.peer_known


def test_first_frame_discovers_peer(alice, bob):
    coordinator = HandshakeCoordinator(bob.public, BOB_ADDR)
    peer = coordinator.observe(announce(alice.public), ALICE_ADDR)
    assert peer == PeerInfo(address=ALICE_ADDR, public_key=alice.public)
    assert coordinator.state is HandshakeState.PEER_KNOWN
    assert coordinator.peer is peer


def test_first_writer_wins(alice, bob, mallory):
    coordinator = HandshakeCoordinator(bob.public, BOB_ADDR)
    first = coordinator.observe(announce(alice.public), ALICE_ADDR)
    assert coordinator.observe(announce(mallory.public), ("10.0.0.9", 7000)) is None
    assert coordinator.observe(announce(alice.public), ALICE_ADDR) is None
    assert coordinator.peer is first
    assert coordinator.peer.public_key == alice.public


def test_own_traffic_ignored(alice):
    coordinator = HandshakeCoordinator(alice.public, LOCAL_ADDR)
    assert coordinator.observe(announce(alice.public), LOCAL_ADDR) is None
    assert coordinator.state is HandshakeState.AWAITING_PEER


def test_full_frame_also_discovers(alice, bob):
    coordinator = HandshakeCoordinator(bob.public, BOB_ADDR)
    frame = Frame(alice.public, bob.public, b"\x01" * 24, b"c" * 20)
    peer = coordinator.observe(frame, ALICE_ADDR)
    assert peer.public_key == alice.public
    assert coordinator.accepts(frame)


def test_accepts(alice, bob, mallory):
    coordinator = HandshakeCoordinator(bob.public, BOB_ADDR)
    to_bob = Frame(alice.public, bob.public, b"\x01" * 24, b"c" * 20)
    to_mallory = Frame(alice.public, mallory.public, b"\x01" * 24, b"c" * 20)

    assert not coordinator.accepts(to_bob)  # still awaiting

    coordinator.observe(announce(alice.public), ALICE_ADDR)
    assert coordinator.accepts(to_bob)
    assert not coordinator.accepts(to_mallory)
    assert not coordinator.accepts(announce(alice.public))


def test_peer_info_is_immutable(alice):
    peer = PeerInfo(address=ALICE_ADDR, public_key=alice.public)
    with pytest.raises(dataclasses.FrozenInstanceError):
        peer.public_key = b"\x00" * 32


def test_convergence(alice, bob):
    """Test both sides end up holding each other's key and address."""
    a = HandshakeCoordinator(alice.public, ALICE_ADDR)
    b = HandshakeCoordinator(bob.public, BOB_ADDR)

    # A announces to the rendezvous address, which is B
    b.observe(announce(alice.public), ALICE_ADDR)
    # B replies to the address it observed
    a.observe(announce(bob.public), BOB_ADDR)

    assert a.peer_known and b.peer_known
    assert a.peer == PeerInfo(BOB_ADDR, bob.public)
    assert b.peer == PeerInfo(ALICE_ADDR, alice.public)
