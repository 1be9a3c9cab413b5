"""
Jito Block Engine Adapter (Async)
=================================
JSON-RPC client for the bundle relay.

Features:
- Async HTTP (httpx) to prevent event loop blocking
- Regional failover with rotation
- Tip (incentive collector) accounts with a TTL cache
- Relay errors classified into RelayErrorKind instead of returning None
"""

import time
import random
import asyncio
import httpx
import base58
from typing import Any, Dict, List, Optional, Sequence

from src.shared.config.bundling import BundlingConfig
from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.execution.execution_result import RelayError, RelayErrorKind
from src.shared.system.logging import Logger


class JitoAdapter:
    TIP_CACHE_TTL = 300
    RATE_LIMIT_COOLDOWN = 5
    RETRY_BACKOFF = 0.2

    def __init__(
        self,
        region: Optional[str] = None,
        config: Optional[InfrastructureConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        bundling: Optional[BundlingConfig] = None,
    ):
        self.config = config or InfrastructureConfig()
        self.bundling = bundling or BundlingConfig()
        region = region or self.config.block_engine_region

        all_endpoints = list(self.config.regional_endpoints.values())
        preferred = self.config.regional_endpoints.get(region, self.config.block_engine_url)
        fallback = [ep for ep in all_endpoints if ep != preferred]
        random.shuffle(fallback)
        self._endpoints = [preferred] + fallback
        self._current_endpoint_idx = 0
        self.api_url = self._endpoints[0]

        self._client = client
        self.max_retries = max_retries

        self._tip_accounts: List[str] = []
        self._tip_accounts_fetched = 0.0
        self._bundles_submitted = 0
        self._bundles_rejected = 0
        self._rate_limited_until = 0.0

    def _rotate_endpoint(self):
        self._current_endpoint_idx = (self._current_endpoint_idx + 1) % len(self._endpoints)
        self.api_url = self._endpoints[self._current_endpoint_idx]
        Logger.info(f"[JITO] Rotating endpoint to: {self.api_url.split('//')[1].split('.')[0]}")

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.api_url, json=payload)
        async with httpx.AsyncClient(timeout=self.config.relay_timeout_sec) as client:
            return await client.post(self.api_url, json=payload)

    async def _rpc_call(self, method: str, params: Optional[list] = None) -> Dict[str, Any]:
        """
        POST one JSON-RPC request, rotating regions on transport errors.

        Raises:
            RelayError: RATE_LIMITED when every attempt hit 429 (or during
                cooldown), UNREACHABLE when no region answered, or the
                classified kind of a JSON-RPC error body.
        """
        if time.time() < self._rate_limited_until:
            raise RelayError(RelayErrorKind.RATE_LIMITED, "relay cooldown in effect")

        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}
        rate_limited = 0
        last_error = ""

        for attempt in range(self.max_retries):
            try:
                response = await self._post(payload)
            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                Logger.debug(f"[JITO] {method} transport error: {last_error}")
                self._rotate_endpoint()
                await asyncio.sleep(self.RETRY_BACKOFF)
                continue

            if response.status_code == 429:
                rate_limited += 1
                Logger.warning(f"[JITO] Rate limit (429) on {self.api_url}")
                self._rotate_endpoint()
                await asyncio.sleep(self.RETRY_BACKOFF)
                continue

            if response.status_code != 200:
                last_error = f"HTTP {response.status_code}"
                Logger.debug(f"[JITO] {method} {last_error}")
                self._rotate_endpoint()
                continue

            try:
                body = response.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                last_error = "HTTP 200 without a JSON-RPC body"
                Logger.debug(f"[JITO] {method} {last_error}")
                self._rotate_endpoint()
                continue

            error = body.get("error")
            if error:
                message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                raise RelayError.from_message(message)
            return body

        if rate_limited == self.max_retries:
            self._rate_limited_until = time.time() + self.RATE_LIMIT_COOLDOWN
            Logger.warning(f"[JITO] Rate limited on every region. Cooldown {self.RATE_LIMIT_COOLDOWN}s")
            raise RelayError(RelayErrorKind.RATE_LIMITED, "rate limited on every region")

        Logger.warning(f"[JITO] All regions failed for {method}: {last_error}")
        raise RelayError(RelayErrorKind.UNREACHABLE, last_error)

    # ═══════════════════════════════════════════════════════════════════
    # TIP ACCOUNTS
    # ═══════════════════════════════════════════════════════════════════

    async def get_tip_accounts(self, force_refresh: bool = False) -> List[str]:
        """Live collector set; falls back to the cached or configured set."""
        now = time.time()
        if not force_refresh and self._tip_accounts:
            if now - self._tip_accounts_fetched < self.TIP_CACHE_TTL:
                return self._tip_accounts

        try:
            response = await self._rpc_call("getTipAccounts")
        except RelayError as e:
            Logger.warning(f"[JITO] getTipAccounts failed ({e}), using cached set")
            return self._tip_accounts or list(self.bundling.tip_accounts)

        accounts = response.get("result", [])
        if isinstance(accounts, list) and accounts:
            self._tip_accounts = accounts
            self._tip_accounts_fetched = now
            Logger.info(f"[JITO] Cached {len(accounts)} tip accounts")
            return accounts
        return self._tip_accounts or list(self.bundling.tip_accounts)

    # ═══════════════════════════════════════════════════════════════════
    # BUNDLES
    # ═══════════════════════════════════════════════════════════════════

    async def send_bundle(self, transactions: Sequence[bytes]) -> str:
        """
        Submit serialized signed transactions as one bundle.

        Returns:
            The relay's bundle id

        Raises:
            RelayError: classified relay failure
        """
        if not transactions:
            raise ValueError("Cannot send an empty bundle")
        limit = self.bundling.max_units_per_bundle
        if len(transactions) > limit:
            raise RelayError(
                RelayErrorKind.BUNDLE_TOO_LARGE,
                f"{len(transactions)} transactions, relay accepts {limit}",
            )

        encoded = [base58.b58encode(tx).decode("ascii") for tx in transactions]
        self._bundles_submitted += 1

        try:
            response = await self._rpc_call("sendBundle", [encoded])
        except RelayError as e:
            self._bundles_rejected += 1
            Logger.warning(f"[JITO] Submit failed: {e}")
            raise

        bundle_id = response.get("result")
        if not bundle_id:
            self._bundles_rejected += 1
            raise RelayError(RelayErrorKind.REJECTED, "relay returned no bundle id")

        Logger.info(f"[JITO] Bundle submitted: {bundle_id[:16]}...")
        return bundle_id

    def get_stats(self) -> Dict[str, int]:
        return {
            "bundles_submitted": self._bundles_submitted,
            "bundles_rejected": self._bundles_rejected,
        }
