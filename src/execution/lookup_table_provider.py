"""
Lookup Table Provider
=====================
Process-wide cache of address lookup tables plus the selector that picks
which cached tables best compress a message's address set.

Two problems:
1. Avoid refetching tables within a run (cache, filled on miss or when a
   collaborator creates/extends a table).
2. Choose at most 3 tables so the message fits under the wire ceiling.

Relay constraint: a table created or extended inside a bundle must not be
used for compression inside that same bundle. Only register tables here
once they are finalized on the ledger.

Selection is a single-pass, fixed-priority greedy: tables are ranked once
by how many candidate addresses they hold and walked in that order. It is
not re-ranked after each pick.
"""

from __future__ import annotations

import asyncio
import struct
import time
from typing import Dict, Iterable, List, Optional, Sequence, Set

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from src.shared.config.bundling import BundlingConfig
from src.shared.infrastructure.ledger_client import LedgerClient
from src.shared.models.bundle_types import ActorInstructions, LookupTable
from src.shared.system.logging import Logger


LOOKUP_TABLE_META_SIZE = 56
DEACTIVATION_SLOT_OFFSET = 4
LAST_EXTENDED_SLOT_OFFSET = 12


def decode_lookup_table(address: Pubkey, data: bytes) -> LookupTable:
    """Parse the on-ledger lookup table account layout."""
    if len(data) < LOOKUP_TABLE_META_SIZE:
        raise ValueError(f"Lookup table account too short: {len(data)} bytes")

    deactivation_slot, = struct.unpack_from("<Q", data, DEACTIVATION_SLOT_OFFSET)
    last_extended_slot, = struct.unpack_from("<Q", data, LAST_EXTENDED_SLOT_OFFSET)

    body = data[LOOKUP_TABLE_META_SIZE:]
    members = [
        Pubkey.from_bytes(body[i:i + 32])
        for i in range(0, len(body) - len(body) % 32, 32)
    ]
    return LookupTable(
        address=address,
        members=members,
        last_extended_slot=last_extended_slot,
        deactivation_slot=deactivation_slot,
    )


def collect_addresses(instructions: Sequence[Instruction]) -> Set[Pubkey]:
    """
    Candidate addresses for compression.

    Signers and invoked program ids must stay in the static key list, so
    only non-signer account metas are returned.
    """
    addresses: Set[Pubkey] = set()
    programs = {ix.program_id for ix in instructions}
    for ix in instructions:
        for meta in ix.accounts:
            if not meta.is_signer and meta.pubkey not in programs:
                addresses.add(meta.pubkey)
    return addresses


def candidate_addresses(entries: Sequence[ActorInstructions]) -> Set[Pubkey]:
    """
    Candidate addresses from factory output.

    Each entry's declared touched set is used, or its account metas when it
    declared none. Declared signers, signer metas and invoked program ids
    are dropped from the union.
    """
    instructions = [ix for entry in entries for ix in entry.instructions]
    excluded = {ix.program_id for ix in instructions}
    excluded.update(signer for entry in entries for signer in entry.signers)
    excluded.update(meta.pubkey for ix in instructions for meta in ix.accounts if meta.is_signer)

    addresses: Set[Pubkey] = set()
    for entry in entries:
        addresses |= entry.touched or collect_addresses(entry.instructions)
    return addresses - excluded


class LookupTableCache:
    """
    Cache + optimizer.

    Reads are lock-free. Fetch-and-insert is serialized per table address
    so concurrent misses on one table trigger a single ledger read.

    Usage:
        cache = LookupTableCache(ledger)
        await cache.get_table(lut_address)
        tables = cache.select_tables(collect_addresses(instructions))
    """

    def __init__(
        self,
        ledger: Optional[LedgerClient] = None,
        config: Optional[BundlingConfig] = None,
        ttl_s: Optional[float] = None,
    ):
        self.ledger = ledger
        self.config = config or BundlingConfig()
        self.ttl_s = ttl_s

        self._tables: Dict[Pubkey, LookupTable] = {}
        self._tables_containing: Dict[Pubkey, Set[Pubkey]] = {}
        self._members_of: Dict[Pubkey, Set[Pubkey]] = {}
        self._locks: Dict[Pubkey, asyncio.Lock] = {}

        self._fetches = 0
        self._hits = 0

    # ═══════════════════════════════════════════════════════════════════
    # CACHE POPULATION
    # ═══════════════════════════════════════════════════════════════════

    def insert(self, table: LookupTable) -> None:
        """Add or replace a table, keeping both indices consistent."""
        self._unindex(table.address)

        self._tables[table.address] = table
        members = set(table.members)
        self._members_of[table.address] = members
        for member in members:
            self._tables_containing.setdefault(member, set()).add(table.address)

        Logger.debug(f"[LUT] Cached {table.address} ({len(table.members)} addresses)")

    def register_extension(self, address: Pubkey, new_members: Sequence[Pubkey], slot: int = 0) -> LookupTable:
        """Record a table a collaborator just created or extended."""
        existing = self._tables.get(address)
        members = (list(existing.members) if existing else []) + list(new_members)
        table = LookupTable(
            address=address,
            members=members,
            last_extended_slot=slot or (existing.last_extended_slot if existing else 0),
        )
        self.insert(table)
        return table

    def _unindex(self, address: Pubkey) -> None:
        old_members = self._members_of.pop(address, set())
        for member in old_members:
            holders = self._tables_containing.get(member)
            if holders is None:
                continue
            holders.discard(address)
            if not holders:
                del self._tables_containing[member]
        self._tables.pop(address, None)

    def _fresh(self, address: Pubkey) -> Optional[LookupTable]:
        table = self._tables.get(address)
        if table is None:
            return None
        if self.ttl_s is not None and time.monotonic() - table.cached_at > self.ttl_s:
            return None
        return table

    async def get_table(self, address: Pubkey) -> Optional[LookupTable]:
        """Cached table, else fetch and insert. None means the table does not exist."""
        table = self._fresh(address)
        if table is not None:
            self._hits += 1
            return table

        lock = self._locks.setdefault(address, asyncio.Lock())
        async with lock:
            table = self._fresh(address)
            if table is not None:
                self._hits += 1
                return table

            if self.ledger is None:
                return None

            self._fetches += 1
            try:
                data = await self.ledger.get_account_data(address)
            except Exception as e:
                Logger.warning(f"[LUT] Fetch failed for {address}: {e}")
                return None

            if data is None:
                Logger.debug(f"[LUT] Table {address} not found")
                return None

            try:
                table = decode_lookup_table(address, data)
            except ValueError as e:
                Logger.warning(f"[LUT] Undecodable table {address}: {e}")
                return None

            self.insert(table)
            return table

    async def preload(self, addresses: Iterable[Pubkey]) -> List[LookupTable]:
        """Warm the cache concurrently; tables that do not exist are skipped."""
        results = await asyncio.gather(*(self.get_table(a) for a in set(addresses)))
        loaded = [t for t in results if t is not None]
        Logger.info(f"[LUT] Preloaded {len(loaded)} tables")
        return loaded

    def prune_expired(self) -> int:
        """Drop entries older than ttl_s. No-op when no TTL is set."""
        if self.ttl_s is None:
            return 0
        now = time.monotonic()
        expired = [a for a, t in self._tables.items() if now - t.cached_at > self.ttl_s]
        for address in expired:
            self._unindex(address)
        return len(expired)

    # ═══════════════════════════════════════════════════════════════════
    # SELECTION
    # ═══════════════════════════════════════════════════════════════════

    def select_tables(self, candidates: Iterable[Pubkey]) -> List[LookupTable]:
        """
        Pick up to max_lookup_tables cached tables covering the candidates.

        A table is taken only if it covers at least min_addresses_per_table
        of the still-uncovered addresses. Stops once one or no address is
        left uncovered, since a single address costs the same inline.
        Tables past ttl_s are ignored until get_table refetches them.
        """
        max_tables = self.config.max_lookup_tables
        min_matches = self.config.min_addresses_per_table

        intersections: Dict[Pubkey, int] = {}
        remaining: Set[Pubkey] = set()

        for address in set(candidates):
            holders = [
                t for t in self._tables_containing.get(address, ())
                if self._fresh(t) is not None
            ]
            if not holders:
                continue
            remaining.add(address)
            for table_address in holders:
                intersections[table_address] = intersections.get(table_address, 0) + 1

        ranked = sorted(intersections.items(), key=lambda kv: (-kv[1], bytes(kv[0])))

        selected: List[LookupTable] = []
        for table_address, count in ranked:
            if len(selected) >= max_tables:
                break
            if len(remaining) <= 1:
                break
            if count < min_matches:
                break

            match = remaining & self._members_of[table_address]
            if len(match) >= min_matches:
                selected.append(self._tables[table_address])
                remaining -= match

        if selected:
            Logger.debug(
                f"[LUT] Selected {len(selected)} tables, {len(remaining)} addresses left inline"
            )
        return selected

    # ═══════════════════════════════════════════════════════════════════
    # INTROSPECTION
    # ═══════════════════════════════════════════════════════════════════

    def tables_containing(self, address: Pubkey) -> Set[Pubkey]:
        return set(self._tables_containing.get(address, set()))

    def members_of(self, table_address: Pubkey) -> Set[Pubkey]:
        return set(self._members_of.get(table_address, set()))

    def __contains__(self, address: Pubkey) -> bool:
        return address in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def get_stats(self) -> Dict[str, int]:
        return {
            "tables": len(self._tables),
            "indexed_addresses": len(self._tables_containing),
            "fetches": self._fetches,
            "hits": self._hits,
        }


# Singleton access
_cache: Optional[LookupTableCache] = None


def get_lookup_table_cache(ledger: Optional[LedgerClient] = None) -> LookupTableCache:
    global _cache
    if _cache is None:
        from config.settings import Settings
        _cache = LookupTableCache(ledger=ledger, ttl_s=Settings.LUT_CACHE_TTL_S)
    elif ledger is not None and _cache.ledger is None:
        _cache.ledger = ledger
    return _cache
