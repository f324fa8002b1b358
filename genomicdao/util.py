"""
Utility functions for the custody pipeline.

Provides hashing, encoding, identifier and comparison helpers.
"""

import base64
import hashlib
import hmac
import secrets
import uuid
from typing import Union

from Crypto.Hash import keccak


def sha256_bytes(data: Union[bytes, str]) -> bytes:
    """Compute SHA-256 hash and return as bytes."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).digest()


def keccak256(data: Union[bytes, str]) -> bytes:
    """
    Compute Ethereum-flavoured Keccak-256 (pre-NIST padding).

    This is not SHA3-256; the two differ in their padding byte.
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return keccak.new(digest_bits=256, data=data).digest()


def int_to_min_bytes(value: int) -> bytes:
    """Big-endian encoding with leading zero bytes stripped (0 encodes as b'')."""
    if value < 0:
        raise ValueError("negative integers have no unsigned encoding")
    return value.to_bytes((value.bit_length() + 7) // 8, 'big')


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """Base64 decode string to bytes."""
    return base64.b64decode(s.encode('ascii'), validate=True)


def strip_0x(s: str) -> str:
    return s[2:] if s[:2] in ('0x', '0X') else s


def constant_time_compare(a: Union[str, bytes], b: Union[str, bytes]) -> bool:
    """
    Compare two strings/bytes in constant time to prevent timing attacks.
    """
    if isinstance(a, str):
        a = a.encode('utf-8')
    if isinstance(b, str):
        b = b.encode('utf-8')
    return hmac.compare_digest(a, b)


def generate_id(length: int = 16) -> str:
    """Generate a cryptographically secure random ID."""
    return secrets.token_hex(length)


def generate_doc_id() -> str:
    """Fresh opaque document identifier for the confirmation phase."""
    return str(uuid.uuid4())


def random_uint32() -> int:
    return secrets.randbelow(2 ** 32)


def mask_sensitive(value: str, visible_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only the last N characters.
    Useful for logging.
    """
    if len(value) <= visible_chars:
        return '*' * len(value)
    return '*' * (len(value) - visible_chars) + value[-visible_chars:]

