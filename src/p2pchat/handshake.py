# src/p2pchat/handshake.py
"""
Peer discovery for p2pchat.

Neither side knows the other's address or key up front. The first frame
that arrives from a foreign address names its sender: that address and the
frame's source key become the peer for the rest of the session.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .framing import Frame

logger = logging.getLogger(__name__)

Address = Tuple[str, int]


class HandshakeState(Enum):
    AWAITING_PEER = "AWAITING_PEER"
    PEER_KNOWN = "PEER_KNOWN"


@dataclass(frozen=True)
class PeerInfo:
    address: Address
    public_key: bytes
    discovered_at: float = field(default_factory=time.time, compare=False)


class HandshakeCoordinator:
    """Two-state machine turning inbound frames into a PeerInfo, once."""

    def __init__(self, local_public_key: bytes, local_address: Optional[Address] = None):
        self.local_public_key = local_public_key
        self.local_address = local_address
        self.state = HandshakeState.AWAITING_PEER
        self.peer: Optional[PeerInfo] = None

    @property
    def peer_known(self) -> bool:
        return self.state is HandshakeState.PEER_KNOWN

    def is_own_traffic(self, address: Address) -> bool:
        return self.local_address is not None and tuple(address[:2]) == tuple(self.local_address[:2])

    def observe(self, frame: Frame, address: Address) -> Optional[PeerInfo]:
        """Feed one decoded frame; return the new PeerInfo on discovery.

        Returns None for frames from the local address and for every frame
        after the first discovery.
        """
        if self.state is HandshakeState.PEER_KNOWN or self.is_own_traffic(address):
            return None
        self.peer = PeerInfo(address=tuple(address[:2]), public_key=frame.src_public_key)
        self.state = HandshakeState.PEER_KNOWN
        logger.info(f"Discovered peer {self.peer.public_key.hex()[:16]} at {self.peer.address}")
        return self.peer

    def accepts(self, frame: Frame) -> bool:
        """True when the frame carries a message for the local key."""
        return self.peer_known and frame.addressed_to(self.local_public_key)
