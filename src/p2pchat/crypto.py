# src/p2pchat/crypto.py
"""
Public-key authenticated encryption for p2pchat.

Thin layer over libsodium's ``crypto_box`` (X25519 key agreement,
XSalsa20-Poly1305) as exposed by PyNaCl. Keys and nonces travel as raw
bytes so they can be placed on the wire without conversion.
"""

import logging
from dataclasses import dataclass, field

import nacl.bindings
import nacl.exceptions
import nacl.utils
from nacl.public import Box, PrivateKey, PublicKey

from .robustness import AuthFailure

logger = logging.getLogger(__name__)

PUBLIC_KEY_BYTES = PublicKey.SIZE
SECRET_KEY_BYTES = PrivateKey.SIZE
SEED_BYTES = PrivateKey.SEED_SIZE
NONCE_BYTES = Box.NONCE_SIZE
MAC_BYTES = nacl.bindings.crypto_box_ZEROBYTES - nacl.bindings.crypto_box_BOXZEROBYTES


@dataclass(frozen=True)
class KeyPair:
    public: bytes
    secret: bytes = field(repr=False)

    def __post_init__(self):
        _check_length("public key", self.public, PUBLIC_KEY_BYTES)
        _check_length("secret key", self.secret, SECRET_KEY_BYTES)

    def fingerprint(self) -> str:
        """Short hex prefix of the public key, for logs and prompts."""
        return self.public.hex()[:16]


def _check_length(what: str, value: bytes, expected: int) -> None:
    if not isinstance(value, (bytes, bytearray)) or len(value) != expected:
        got = len(value) if isinstance(value, (bytes, bytearray)) else type(value).__name__
        raise ValueError(f"{what} must be {expected} bytes, got {got}")


def generate_keypair() -> KeyPair:
    sk = PrivateKey.generate()
    return KeyPair(public=bytes(sk.public_key), secret=bytes(sk))


def keypair_from_seed(seed: bytes) -> KeyPair:
    """Deterministic key pair from a 32-byte seed."""
    _check_length("seed", seed, SEED_BYTES)
    sk = PrivateKey.from_seed(bytes(seed))
    return KeyPair(public=bytes(sk.public_key), secret=bytes(sk))


def derive_public(secret: bytes) -> bytes:
    """Scalar-multiply the Curve25519 base point by ``secret``."""
    _check_length("secret key", secret, SECRET_KEY_BYTES)
    return nacl.bindings.crypto_scalarmult_base(bytes(secret))


def generate_nonce() -> bytes:
    return nacl.utils.random(NONCE_BYTES)


def _box(peer_public: bytes, local_secret: bytes) -> Box:
    try:
        return Box(PrivateKey(bytes(local_secret)), PublicKey(bytes(peer_public)))
    except nacl.exceptions.CryptoError as e:
        # low-order points give an all-zero shared secret, which libsodium refuses
        raise AuthFailure("peer public key rejected", context={"peer": bytes(peer_public).hex()[:16]}) from e


def check_peer_key(peer_public: bytes, local_secret: bytes) -> None:
    """Raise AuthFailure unless a shared key can be agreed with ``peer_public``."""
    _check_length("peer public key", peer_public, PUBLIC_KEY_BYTES)
    _check_length("secret key", local_secret, SECRET_KEY_BYTES)
    _box(peer_public, local_secret)


def encrypt(plaintext: bytes, nonce: bytes, peer_public: bytes, local_secret: bytes) -> bytes:
    """Encrypt and authenticate ``plaintext`` for the holder of ``peer_public``.

    The result is the bare ciphertext (MAC included, nonce not prepended),
    ``len(plaintext) + MAC_BYTES`` bytes long. Raises AuthFailure for a peer
    key no shared key can be agreed with.
    """
    _check_length("nonce", nonce, NONCE_BYTES)
    _check_length("peer public key", peer_public, PUBLIC_KEY_BYTES)
    _check_length("secret key", local_secret, SECRET_KEY_BYTES)
    return _box(peer_public, local_secret).encrypt(bytes(plaintext), bytes(nonce)).ciphertext


def decrypt(ciphertext: bytes, nonce: bytes, peer_public: bytes, local_secret: bytes) -> bytes:
    """Verify and decrypt ``ciphertext`` sent by the holder of ``peer_public``.

    Raises AuthFailure when the MAC does not verify; no plaintext is
    returned in that case.
    """
    _check_length("nonce", nonce, NONCE_BYTES)
    _check_length("peer public key", peer_public, PUBLIC_KEY_BYTES)
    _check_length("secret key", local_secret, SECRET_KEY_BYTES)
    if len(ciphertext) < MAC_BYTES:
        raise AuthFailure(
            "ciphertext shorter than MAC",
            context={"length": len(ciphertext), "mac_bytes": MAC_BYTES},
        )
    box = _box(peer_public, local_secret)
    try:
        return box.decrypt(bytes(ciphertext), bytes(nonce))
    except nacl.exceptions.CryptoError as e:
        logger.debug(f"Decryption failed: {e}")
        raise AuthFailure("message authentication failed") from e
