"""
Detached signatures over sealed artifacts.

Signatures use the ledger's account scheme: secp256k1 over a Keccak-256
digest, 65 bytes r || s || v with v in {0, 1}, so the signer's address can be
recovered from (digest, signature) alone.
"""

from typing import Tuple

from coincurve import PublicKey

from .errors import InvalidKeyMaterial, SigningFailure
from .keys import KeyMaterial, public_key_to_address
from .util import keccak256

SIGNATURE_SIZE = 65


def content_hash(sealed: bytes) -> bytes:
    """Keccak-256 over the whole sealed artifact (digest, nonce and ciphertext)."""
    return keccak256(sealed)


def sign_artifact(sealed: bytes, key_material: KeyMaterial) -> Tuple[bytes, bytes]:
    """
    Hash and sign a sealed artifact.

    Returns:
        Tuple of (keccak_hash, recoverable_signature)
    """
    digest = content_hash(sealed)
    try:
        signature = key_material.signing_key().sign_recoverable(digest, hasher=None)
    except InvalidKeyMaterial as e:
        raise SigningFailure("signing requires a private key") from e
    except (ValueError, TypeError) as e:
        raise SigningFailure("failed to sign data") from e
    return digest, signature


def recover_signer(digest: bytes, signature: bytes) -> str:
    """Recover the checksummed address that produced signature over digest."""
    if len(signature) != SIGNATURE_SIZE:
        raise SigningFailure(f"signature must be {SIGNATURE_SIZE} bytes")
    try:
        public_key = PublicKey.from_signature_and_message(signature, digest, hasher=None)
    except (ValueError, TypeError) as e:
        raise SigningFailure("signature recovery failed") from e
    return public_key_to_address(public_key.format(compressed=False))


def verify_signature(digest: bytes, signature: bytes, address: str) -> bool:
    """True if signature over digest was produced by the key behind address."""
    try:
        return recover_signer(digest, signature).lower() == address.lower()
    except SigningFailure:
        return False
