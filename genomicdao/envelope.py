"""
Envelope Engine

Seals a payload under AES-256-GCM with a key derived from secp256k1 key
material, and opens it again with integrity verification.

Artifact layout (bit-exact, persisted and exchanged):

    digest[32] || nonce[12] || ciphertext[N]

digest is SHA-256 of the plaintext and doubles as the AEAD associated data,
so altering either the digest or the ciphertext makes opening fail.

The symmetric key is SHA-256(X || Y) over the public point coordinates. A
holder of only the public key reaches the same key as the private key holder;
this is a self-consistent derivation, not a key exchange between two parties.
"""

import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailure, CipherError, IntegrityViolation, MalformedArtifact
from .keys import KeyMaterial
from .util import constant_time_compare, int_to_min_bytes, sha256_bytes

DIGEST_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
HEADER_SIZE = DIGEST_SIZE + NONCE_SIZE


@dataclass(frozen=True)
class SealedArtifact:
    """Parsed view of a sealed envelope."""
    digest: bytes
    nonce: bytes
    ciphertext: bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> "SealedArtifact":
        if len(data) < HEADER_SIZE:
            raise MalformedArtifact(len(data), HEADER_SIZE)
        return cls(
            digest=bytes(data[:DIGEST_SIZE]),
            nonce=bytes(data[DIGEST_SIZE:HEADER_SIZE]),
            ciphertext=bytes(data[HEADER_SIZE:]),
        )

    def to_bytes(self) -> bytes:
        return self.digest + self.nonce + self.ciphertext


def derive_key(key_material: KeyMaterial) -> bytes:
    """
    Derive the 32-byte symmetric key for a key pair.

    Only the public point is used, so the private and public halves of one
    pair always derive the same key. Coordinates are encoded big-endian with
    leading zero bytes stripped.
    """
    x, y = key_material.point()
    return sha256_bytes(int_to_min_bytes(x) + int_to_min_bytes(y))


def _cipher(key_material: KeyMaterial) -> AESGCM:
    try:
        return AESGCM(derive_key(key_material))
    except ValueError as e:
        raise CipherError("creating cipher failed") from e


def seal(plaintext: bytes, key_material: KeyMaterial) -> bytes:
    """Encrypt plaintext into a sealed artifact."""
    digest = sha256_bytes(plaintext)
    aesgcm = _cipher(key_material)
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = aesgcm.encrypt(nonce, plaintext, digest)
    return SealedArtifact(digest=digest, nonce=nonce, ciphertext=ciphertext).to_bytes()


def open_envelope(sealed: bytes, key_material: KeyMaterial) -> bytes:
    """
    Decrypt a sealed artifact and verify it against its stored digest.

    Raises:
        MalformedArtifact: shorter than digest + nonce
        AuthenticationFailure: AEAD tag rejected (ciphertext or digest altered)
        IntegrityViolation: plaintext does not hash to the stored digest
    """
    artifact = SealedArtifact.from_bytes(sealed)
    aesgcm = _cipher(key_material)

    try:
        plaintext = aesgcm.decrypt(artifact.nonce, artifact.ciphertext, artifact.digest)
    except InvalidTag as e:
        raise AuthenticationFailure() from e

    # Independent of the AEAD tag: the recovered plaintext must hash to the stored digest.
    if not constant_time_compare(artifact.digest, sha256_bytes(plaintext)):
        raise IntegrityViolation()

    return plaintext
