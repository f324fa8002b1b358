"""
Key material for the custody pipeline.

Wraps secp256k1 key pairs (the ledger's account curve) and the JSON key files
used by the service and CLI.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from coincurve import PrivateKey, PublicKey
from web3 import Web3

from .errors import InvalidKeyMaterial
from .util import keccak256, strip_0x


@dataclass(frozen=True)
class KeyMaterial:
    """
    A secp256k1 key pair, or only its public half.

    The public key is always held in 65-byte uncompressed form so that the
    point coordinates are available without the private scalar.
    """
    public_key: bytes
    private_key: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def generate(cls) -> "KeyMaterial":
        return cls.from_private_bytes(PrivateKey().secret)

    @classmethod
    def from_private_bytes(cls, secret: bytes) -> "KeyMaterial":
        try:
            sk = PrivateKey(secret)
        except (ValueError, TypeError) as e:
            raise InvalidKeyMaterial("invalid secp256k1 private key") from e
        return cls(public_key=sk.public_key.format(compressed=False), private_key=sk.secret)

    @classmethod
    def from_private_hex(cls, key_hex: str) -> "KeyMaterial":
        try:
            secret = bytes.fromhex(strip_0x(key_hex.strip()))
        except ValueError as e:
            raise InvalidKeyMaterial("private key is not valid hex") from e
        if len(secret) != 32:
            raise InvalidKeyMaterial("private key must be 32 bytes")
        return cls.from_private_bytes(secret)

    @classmethod
    def from_public_bytes(cls, data: bytes) -> "KeyMaterial":
        """Accepts compressed (33 bytes) or uncompressed (65 bytes) points."""
        try:
            pk = PublicKey(data)
        except (ValueError, TypeError) as e:
            raise InvalidKeyMaterial("invalid secp256k1 public key") from e
        return cls(public_key=pk.format(compressed=False))

    @classmethod
    def from_public_hex(cls, key_hex: str) -> "KeyMaterial":
        try:
            data = bytes.fromhex(strip_0x(key_hex.strip()))
        except ValueError as e:
            raise InvalidKeyMaterial("public key is not valid hex") from e
        return cls.from_public_bytes(data)

    @property
    def has_private(self) -> bool:
        return self.private_key is not None

    def public_only(self) -> "KeyMaterial":
        return KeyMaterial(public_key=self.public_key)

    def point(self) -> Tuple[int, int]:
        """The (X, Y) coordinates of the public point."""
        return PublicKey(self.public_key).point()

    @property
    def address(self) -> str:
        return public_key_to_address(self.public_key)

    def signing_key(self) -> PrivateKey:
        if self.private_key is None:
            raise InvalidKeyMaterial("private key required")
        return PrivateKey(self.private_key)

    def private_key_hex(self) -> str:
        if self.private_key is None:
            raise InvalidKeyMaterial("private key required")
        return self.private_key.hex()

    # ------------------------------------------------------------
    # Key files
    # ------------------------------------------------------------

    def save(self, path: str) -> None:
        """Write a key file; private keys are written with 0600 permissions."""
        doc = {
            "address": self.address,
            "public_key_hex": self.public_key.hex(),
        }
        if self.private_key is not None:
            doc["private_key_hex"] = self.private_key.hex()

        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(doc, f, indent=2)

    @classmethod
    def load(cls, path: str) -> "KeyMaterial":
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if raw.get("private_key_hex"):
            return cls.from_private_hex(raw["private_key_hex"])
        if raw.get("public_key_hex"):
            return cls.from_public_hex(raw["public_key_hex"])
        raise InvalidKeyMaterial(f"no key found in {path}")


def public_key_to_address(public_key: bytes) -> str:
    """EIP-55 checksummed account address of an uncompressed public key."""
    if len(public_key) != 65 or public_key[0] != 0x04:
        public_key = PublicKey(public_key).format(compressed=False)
    return Web3.to_checksum_address("0x" + keccak256(public_key[1:])[-20:].hex())
