# src/p2pchat/session.py
"""
Chat session for p2pchat.

Two tasks share one UDP endpoint. The receiver decodes datagrams, drives the
handshake coordinator and surfaces decrypted messages. The sender reads
user input, announces the local key until a peer is known, then encrypts
and sends each line. The discovered peer crosses from receiver to sender
exactly once, through an unbounded queue the sender polls without
blocking.
"""

import asyncio
import logging
import sys
import threading
from enum import Enum
from typing import Optional, TextIO, Tuple

from . import framing
from .crypto import KeyPair, check_peer_key, decrypt, encrypt, generate_keypair, generate_nonce
from .framing import Frame
from .handshake import HandshakeCoordinator, PeerInfo
from .network import MAX_PACKET_SIZE, UDPTransport
from .robustness import AuthFailure, FrameError, log_with_context

logger = logging.getLogger(__name__)

Address = Tuple[str, int]

DEFAULT_QUIT_TOKEN = ":quit"


class Terminate(Enum):
    LOCAL_QUIT = "local_quit"
    REMOTE_QUIT = "remote_quit"


class TerminalConsole:
    """Line-oriented terminal I/O used by the session."""

    prompt_text = "message: "

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

    def readline(self) -> Optional[str]:
        """Return the next line without its newline, or None at end of input."""
        line = self.stdin.readline()
        if line == "":
            return None
        return line.rstrip("\r\n")

    def show(self, text: str) -> None:
        print(text, file=self.stdout, flush=True)

    def prompt(self) -> None:
        print(self.prompt_text, end="", file=self.stdout, flush=True)


def _pump_input(console, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
    while True:
        try:
            line = console.readline()
        except (OSError, ValueError) as e:
            logger.error(f"Reading input failed: {e}")
            line = None
        try:
            loop.call_soon_threadsafe(lines.put_nowait, line)
        except RuntimeError:
            # event loop already closed, session is over
            return
        if line is None:
            return


class ChatSession:
    def __init__(
        self,
        transport: UDPTransport,
        rendezvous: Address,
        keypair: Optional[KeyPair] = None,
        console=None,
        quit_token: str = DEFAULT_QUIT_TOKEN,
    ):
        self.transport = transport
        self.rendezvous = tuple(rendezvous)
        self.keypair = keypair or generate_keypair()
        self.console = console or TerminalConsole()
        self.quit_token = quit_token.strip()
        self.coordinator = HandshakeCoordinator(self.keypair.public, transport.local_address)
        self.handoff: asyncio.Queue = asyncio.Queue()
        # owned by the sender once handed off
        self.peer: Optional[PeerInfo] = None

        self.messages_sent = 0
        self.messages_received = 0
        self.datagrams_dropped = 0
        self.auth_failures = 0

    # ----- receiver -----

    async def receiver_loop(self) -> Terminate:
        while True:
            data, addr = await self.transport.receive_datagram()
            result = self.handle_datagram(data, addr)
            if result is not None:
                return result

    def handle_datagram(self, data: bytes, addr: Address) -> Optional[Terminate]:
        """Process one inbound datagram. Never raises for bad input."""
        if self.coordinator.is_own_traffic(addr):
            self.datagrams_dropped += 1
            return None

        try:
            frame = framing.decode(data)
        except FrameError as e:
            self.datagrams_dropped += 1
            log_with_context(
                f"Dropping malformed datagram: {e}",
                "debug",
                {"addr": addr, "kind": e.kind.value, **e.context},
                name=__name__,
            )
            return None

        if not self.coordinator.peer_known:
            try:
                check_peer_key(frame.src_public_key, self.keypair.secret)
            except AuthFailure as e:
                self.datagrams_dropped += 1
                log_with_context(f"Ignoring unusable peer key: {e}", "warning", {"addr": addr, **e.context}, name=__name__)
                return None
            peer = self.coordinator.observe(frame, addr)
            if peer is not None:
                self.handoff.put_nowait(peer)
            if frame.is_announce:
                return None

        if not self.coordinator.accepts(frame):
            self.datagrams_dropped += 1
            return None
        return self._deliver(frame)

    def _deliver(self, frame: Frame) -> Optional[Terminate]:
        peer = self.coordinator.peer
        try:
            plaintext = decrypt(frame.ciphertext, frame.nonce, peer.public_key, self.keypair.secret)
        except AuthFailure as e:
            self.auth_failures += 1
            log_with_context(f"Could not decrypt message: {e}", "warning", {"peer": peer.address}, name=__name__)
            self.console.show(f"Err: {e}")
            return None

        try:
            text = plaintext.decode("utf-8")
        except UnicodeDecodeError:
            self.datagrams_dropped += 1
            logger.debug("Dropping message that is not valid UTF-8")
            return None

        if text.strip() == self.quit_token:
            self.console.show("Chat session has been terminated")
            return Terminate.REMOTE_QUIT

        self.messages_received += 1
        self.console.show("")
        self.console.show(f"chat: {text}")
        self.console.prompt()
        return None

    # ----- sender -----

    async def sender_loop(self, lines: asyncio.Queue) -> Terminate:
        self.console.show("Waiting for chat mate")
        while True:
            line = await lines.get()
            self.poll_handoff()
            text = self.quit_token if line is None else line.strip()

            if self.peer is None:
                if text == self.quit_token:
                    self.console.show("Bye Bye!")
                    return Terminate.LOCAL_QUIT
                self.send_announce(self.rendezvous)
                continue

            self.send_message(text)
            if text == self.quit_token:
                self.console.show("Bye Bye!")
                return Terminate.LOCAL_QUIT
            self.console.prompt()

    def poll_handoff(self) -> Optional[PeerInfo]:
        """Drain the handoff queue; only the first PeerInfo counts."""
        while True:
            try:
                peer = self.handoff.get_nowait()
            except asyncio.QueueEmpty:
                return self.peer
            if self.peer is not None:
                continue
            self.peer = peer
            # let the other side learn us even if our announces went elsewhere
            self.send_announce(peer.address)
            self.console.show("Type a message and hit Enter to send it")
            self.console.show(f"To quit type {self.quit_token} and hit Enter")

    def send_announce(self, addr: Address) -> None:
        self.transport.sendto(framing.encode_announce(self.keypair.public), addr)
        logger.debug(f"Announced {self.keypair.fingerprint()} to {addr}")

    def send_message(self, text: str) -> None:
        nonce = generate_nonce()
        ciphertext = encrypt(text.encode("utf-8"), nonce, self.peer.public_key, self.keypair.secret)
        frame = Frame(
            src_public_key=self.keypair.public,
            dst_public_key=self.peer.public_key,
            nonce=nonce,
            ciphertext=ciphertext,
        )
        self.transport.sendto(framing.encode(frame), self.peer.address)
        self.messages_sent += 1

    # ----- lifecycle -----

    async def run(self) -> Terminate:
        """Run both loops until either side quits.

        Returns the Terminate reason; a TransportError from either loop
        propagates.
        """
        loop = asyncio.get_running_loop()
        lines: asyncio.Queue = asyncio.Queue()
        threading.Thread(
            target=_pump_input, args=(self.console, loop, lines), name="p2pchat-input", daemon=True
        ).start()

        receiver = asyncio.create_task(self.receiver_loop(), name="p2pchat-receiver")
        sender = asyncio.create_task(self.sender_loop(lines), name="p2pchat-sender")
        try:
            done, _ = await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (receiver, sender):
                task.cancel()
            await asyncio.gather(receiver, sender, return_exceptions=True)

        finished = sender if sender in done else receiver
        result = finished.result()
        logger.info(
            f"Session ended: {result.value}",
            extra={"context": {"sent": self.messages_sent, "received": self.messages_received}},
        )
        return result


async def run(
    local_bind_address: Address,
    rendezvous_address: Address,
    *,
    keypair: Optional[KeyPair] = None,
    console=None,
    quit_token: str = DEFAULT_QUIT_TOKEN,
    max_datagram_size: int = MAX_PACKET_SIZE,
) -> Terminate:
    """Bind, chat until someone quits, and close the socket.

    Raises TransportError if the socket cannot be set up or a send fails.
    """
    host, port = local_bind_address
    transport = UDPTransport(host, port, max_datagram_size)
    await transport.start()
    try:
        session = ChatSession(transport, rendezvous_address, keypair=keypair, console=console, quit_token=quit_token)
        return await session.run()
    finally:
        transport.close()
