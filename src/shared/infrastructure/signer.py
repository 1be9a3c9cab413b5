"""
Key Custody
===========
Signing capability for actors, kept outside the packing pipeline.

The builder asks custody for one signature per (signer, message) and
drops the result into the transaction; it never sees a keypair. Nothing
in this module logs, prints or returns secret key material.

Usage:
    custody = KeypairCustody([payer_kp, *actor_kps])
    sig = custody.sign(payer_kp.pubkey(), message_bytes)
"""

from typing import Dict, Iterable, Protocol, runtime_checkable

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from src.shared.execution.execution_result import SigningError
from src.shared.system.logging import Logger


@runtime_checkable
class KeyCustody(Protocol):
    """Anything that can sign arbitrary bytes on behalf of a pubkey."""

    def holds(self, signer: Pubkey) -> bool:
        ...

    def sign(self, signer: Pubkey, payload: bytes) -> Signature:
        ...


class KeypairCustody:
    """In-memory vault of solders Keypairs."""

    def __init__(self, keypairs: Iterable[Keypair] = ()):
        self._vault: Dict[Pubkey, Keypair] = {}
        for keypair in keypairs:
            self.add(keypair)

    @classmethod
    def from_base58_secrets(cls, secrets: Iterable[str]) -> "KeypairCustody":
        return cls(Keypair.from_base58_string(s) for s in secrets)

    def add(self, keypair: Keypair) -> Pubkey:
        pubkey = keypair.pubkey()
        self._vault[pubkey] = keypair
        return pubkey

    def holds(self, signer: Pubkey) -> bool:
        return signer in self._vault

    def sign(self, signer: Pubkey, payload: bytes) -> Signature:
        keypair = self._vault.get(signer)
        if keypair is None:
            Logger.error(f"[SIGNER] No key in custody for {signer}")
            raise SigningError(str(signer), "not in custody")
        return keypair.sign_message(payload)

    def __len__(self) -> int:
        return len(self._vault)

    def __repr__(self) -> str:
        return f"KeypairCustody({len(self._vault)} keys)"
