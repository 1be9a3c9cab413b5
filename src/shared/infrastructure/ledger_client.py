"""
Ledger RPC Adapter
==================
Thin async wrapper around solana-py's AsyncClient exposing only the
calls the packing pipeline needs:

- get_account_data       (lookup tables, bonding curves)
- get_latest_blockhash   (message assembly)
- get_signature_status   (verification poll)
- get_token_account_balance / get_balance (reserves, actor balances)

Errors propagate. Call sites that can tolerate partial data (table
fetch, balance reads) catch and convert to absent/zero themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed, Commitment
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.system.logging import Logger


COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


def _confirmation_name(status: Any) -> Optional[str]:
    if status is None:
        return None
    if status == TransactionConfirmationStatus.Finalized:
        return "finalized"
    if status == TransactionConfirmationStatus.Confirmed:
        return "confirmed"
    if status == TransactionConfirmationStatus.Processed:
        return "processed"
    return str(status).rsplit(".", 1)[-1].lower()


@dataclass(frozen=True)
class SignatureState:
    """Result of one signature status lookup."""

    found: bool
    confirmation: Optional[str] = None  # processed / confirmed / finalized
    err: Any = None

    def reached(self, commitment: str) -> bool:
        if not self.found or self.confirmation is None:
            return False
        return COMMITMENT_RANK.get(self.confirmation, -1) >= COMMITMENT_RANK[commitment]


class LedgerClient:
    """
    Async ledger reader.

    Usage:
        ledger = LedgerClient(Settings.RPC_URL)
        data = await ledger.get_account_data(table_address)
        await ledger.close()
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        commitment: Commitment = Confirmed,
        client: Optional[AsyncClient] = None,
    ):
        config = InfrastructureConfig()
        self.rpc_url = rpc_url or config.rpc_url
        self.commitment = commitment
        self._client = client or AsyncClient(
            self.rpc_url, commitment=commitment, timeout=config.rpc_timeout_sec
        )

    async def get_account_data(self, address: Pubkey) -> Optional[bytes]:
        """Raw account bytes, or None when the account does not exist."""
        resp = await self._client.get_account_info(address, commitment=self.commitment)
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    async def get_latest_blockhash(self) -> Hash:
        resp = await self._client.get_latest_blockhash(self.commitment)
        blockhash = resp.value.blockhash
        Logger.debug(f"[LEDGER] Fresh blockhash: {str(blockhash)[:16]}...")
        return blockhash

    async def get_signature_status(
        self,
        signature: str,
        search_history: bool = True,
    ) -> SignatureState:
        resp = await self._client.get_signature_statuses(
            [Signature.from_string(signature)],
            search_transaction_history=search_history,
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            return SignatureState(found=False)
        return SignatureState(
            found=True,
            confirmation=_confirmation_name(status.confirmation_status),
            err=status.err,
        )

    async def get_token_account_balance(self, address: Pubkey) -> int:
        resp = await self._client.get_token_account_balance(address, commitment=self.commitment)
        return int(resp.value.amount)

    async def get_balance(self, address: Pubkey) -> int:
        resp = await self._client.get_balance(address, commitment=self.commitment)
        return int(resp.value)

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
