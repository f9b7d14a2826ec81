from __future__ import annotations

import json
from pathlib import Path
from typing import Union

from nacl.signing import SigningKey
from solders.pubkey import Pubkey
from solders.signature import Signature


class Identity:
    """Ed25519 signing identity of the gateway's trader.

    The secret never changes after load, so a single instance is shared by
    every request and :meth:`sign` is a pure function of its input.
    """

    def __init__(self, signing_key: SigningKey) -> None:
        self._signing_key = signing_key
        self._pubkey = Pubkey.from_bytes(bytes(signing_key.verify_key))

    @classmethod
    def from_secret(cls, secret: bytes) -> "Identity":
        """Accept a 32 byte seed or the 64 byte seed+pubkey Solana keypair form."""
        secret = bytes(secret)
        if len(secret) not in (32, 64):
            raise ValueError(f"keypair must be 32 or 64 bytes, got {len(secret)}")
        identity = cls(SigningKey(secret[:32]))
        if len(secret) == 64 and secret[32:] != bytes(identity.pubkey):
            raise ValueError("keypair public half does not match its secret")
        return identity

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Identity":
        """Read a Solana CLI keypair file (a JSON array of 64 integers)."""
        with Path(path).expanduser().open("r", encoding="utf-8") as handle:
            values = json.load(handle)
        if not isinstance(values, list):
            raise ValueError(f"{path}: expected a JSON array of bytes")
        return cls.from_secret(bytes(values))

    @property
    def pubkey(self) -> Pubkey:
        return self._pubkey

    def sign(self, message: bytes) -> Signature:
        return Signature.from_bytes(self._signing_key.sign(bytes(message)).signature)

    def __repr__(self) -> str:
        return f"Identity({self._pubkey})"


__all__ = ["Identity"]
