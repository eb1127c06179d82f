"""
Wire framing for p2pchat datagrams.

One datagram carries one frame, four fields separated by a newline byte:

    src_public_key(32) \\n dst_public_key(32) \\n nonce(24) \\n ciphertext

An announce frame carries only the source key followed by a newline. Fields
are not escaped. Keys and nonces are random bytes and may contain 0x0a
themselves, so frames are read by position: the delimiters must sit right
after each fixed-width field.
"""

from dataclasses import dataclass

from .crypto import NONCE_BYTES, PUBLIC_KEY_BYTES
from .robustness import FrameError, FrameErrorKind

DELIMITER = b"\n"
FIELD_COUNT = 4

_DST_START = PUBLIC_KEY_BYTES + 1
_NONCE_START = _DST_START + PUBLIC_KEY_BYTES + 1
_BODY_START = _NONCE_START + NONCE_BYTES + 1
MIN_FRAME_BYTES = _BODY_START


@dataclass(frozen=True)
class Frame:
    src_public_key: bytes
    dst_public_key: bytes = b""
    nonce: bytes = b""
    ciphertext: bytes = b""

    @property
    def is_announce(self) -> bool:
        return not (self.dst_public_key or self.nonce or self.ciphertext)

    def addressed_to(self, public_key: bytes) -> bool:
        return not self.is_announce and self.dst_public_key == public_key


def announce(public_key: bytes) -> Frame:
    return Frame(src_public_key=public_key)


def encode(frame: Frame) -> bytes:
    if len(frame.src_public_key) != PUBLIC_KEY_BYTES:
        raise ValueError(f"source key must be {PUBLIC_KEY_BYTES} bytes")
    if frame.is_announce:
        return frame.src_public_key + DELIMITER
    if len(frame.dst_public_key) != PUBLIC_KEY_BYTES:
        raise ValueError(f"destination key must be {PUBLIC_KEY_BYTES} bytes")
    if len(frame.nonce) != NONCE_BYTES:
        raise ValueError(f"nonce must be {NONCE_BYTES} bytes")
    return DELIMITER.join(
        (frame.src_public_key, frame.dst_public_key, frame.nonce, frame.ciphertext)
    )


def encode_announce(public_key: bytes) -> bytes:
    return encode(announce(public_key))


def _is_announce(data: bytes) -> bool:
    # src, src\n and src\n\n all announce the sender's key
    tail = data[PUBLIC_KEY_BYTES:]
    return len(data) >= PUBLIC_KEY_BYTES and tail in (b"", DELIMITER, DELIMITER * 2)


def _delimited(data: bytes) -> bool:
    return all(
        data[i : i + 1] == DELIMITER
        for i in (_DST_START - 1, _NONCE_START - 1, _BODY_START - 1)
    )


def decode(data: bytes) -> Frame:
    data = bytes(data)

    if _is_announce(data):
        return Frame(src_public_key=data[:PUBLIC_KEY_BYTES])

    if len(data) >= MIN_FRAME_BYTES and _delimited(data):
        return Frame(
            src_public_key=data[:PUBLIC_KEY_BYTES],
            dst_public_key=data[_DST_START : _DST_START + PUBLIC_KEY_BYTES],
            nonce=data[_NONCE_START : _NONCE_START + NONCE_BYTES],
            ciphertext=data[_BODY_START:],
        )

    parts = data.split(DELIMITER, FIELD_COUNT - 1)
    if len(data) < MIN_FRAME_BYTES or len(parts) < FIELD_COUNT:
        raise FrameError(
            FrameErrorKind.TOO_FEW_FIELDS,
            f"expected {FIELD_COUNT} fields, got {len(parts)}",
            context={"length": len(data), "fields": len(parts)},
        )
    raise FrameError(
        FrameErrorKind.INVALID_LENGTH,
        "fixed-width field has wrong length",
        context={"src": len(parts[0]), "dst": len(parts[1]), "nonce": len(parts[2])},
    )
