"""
Ephemeral decryption keys
=========================
Each decryption grant gets a fresh X25519 key pair. Decrypted values travel
back sealed to the grant's public key (X25519 ECDH, HKDF-SHA256, AES-GCM) and
are opened with the private key that never leaves this process.
"""

import secrets

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .errors import DecryptionError
from .types import Keypair

SEAL_INFO = b"veilvoting-user-decrypt-v1"
NONCE_SIZE = 12
KEY_SIZE = 32
VALUE_SIZE = 32


def generate_keypair() -> Keypair:
    private_key = X25519PrivateKey.generate()
    public_raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw)
    private_raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption())
    return Keypair(public_key='0x' + public_raw.hex(), private_key='0x' + private_raw.hex())


def _raw(hex_key: str) -> bytes:
    text = hex_key[2:] if hex_key.startswith('0x') else hex_key
    raw = bytes.fromhex(text)
    if len(raw) != KEY_SIZE:
        raise DecryptionError(f"Expected a {KEY_SIZE}-byte key, got {len(raw)} bytes")
    return raw


def handle_context(handle: str) -> bytes:
    """Associated data binding a sealed value to its ciphertext handle"""
    text = handle[2:] if handle.lower().startswith('0x') else handle
    return bytes.fromhex(text)


def _derive(shared: bytes, ephemeral_public: bytes, recipient_public: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=ephemeral_public + recipient_public,
        info=SEAL_INFO,
    ).derive(shared)


def seal_value(value: int, public_key: str, associated_data: bytes = b"") -> str:
    """Encrypt ``value`` so only the holder of ``public_key``'s private half can read it"""
    recipient_raw = _raw(public_key)
    recipient = X25519PublicKey.from_public_bytes(recipient_raw)

    ephemeral = X25519PrivateKey.generate()
    ephemeral_raw = ephemeral.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw)

    key = _derive(ephemeral.exchange(recipient), ephemeral_raw, recipient_raw)
    nonce = secrets.token_bytes(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(
        nonce, int(value).to_bytes(VALUE_SIZE, 'big'), associated_data)
    return '0x' + (ephemeral_raw + nonce + ciphertext).hex()


def open_value(sealed: str, keypair: Keypair, associated_data: bytes = b"") -> int:
    text = sealed[2:] if sealed.startswith('0x') else sealed
    blob = bytes.fromhex(text)
    if len(blob) < KEY_SIZE + NONCE_SIZE + 16:
        raise DecryptionError("Sealed value is truncated")

    ephemeral_raw = blob[:KEY_SIZE]
    nonce = blob[KEY_SIZE:KEY_SIZE + NONCE_SIZE]
    ciphertext = blob[KEY_SIZE + NONCE_SIZE:]

    private_key = X25519PrivateKey.from_private_bytes(_raw(keypair.private_key))
    shared = private_key.exchange(X25519PublicKey.from_public_bytes(ephemeral_raw))
    key = _derive(shared, ephemeral_raw, _raw(keypair.public_key))
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, associated_data)
    except Exception as e:
        raise DecryptionError("Sealed value does not open with this key pair") from e
    return int.from_bytes(plaintext, 'big')
