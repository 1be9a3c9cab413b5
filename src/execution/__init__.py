"""
Execution Pipeline
==================
Bundle packing and relay layer.

Components:
- quote_estimator: Constant-product quotes (The Oracle)
- AllocationPlanner: Spreads a target across actors (The Quartermaster)
- LookupTableCache: Table cache + compression selector (The Librarian)
- BundleBuilder: Size-bounded signed messages (The Architect)
- BundleSubmitter: Relay submission + verification (The Pilot)
- BundlePipeline: End-to-end run
"""

from src.execution.quote_estimator import (
    quote,
    estimate,
    fallback_quote,
    VirtualReserveSource,
    LivePoolSource,
)

from src.execution.allocation_planner import (
    AllocationPlanner,
    split_into_bundles,
)

from src.execution.lookup_table_provider import (
    LookupTableCache,
    candidate_addresses,
    collect_addresses,
    decode_lookup_table,
    get_lookup_table_cache,
)

from src.execution.instruction_factory import (
    InstructionShape,
    BONDING_CURVE_SHAPE,
    POOL_SWAP_SHAPE,
    TRANSFER_SHAPE,
    ActorInstructionFactory,
    TransferInstructionFactory,
    TransferDirection,
    QuotedInstructionFactory,
)

from src.execution.bundle_builder import BundleBuilder

from src.execution.bundle_submitter import (
    BundleSubmitter,
    VerificationPolicy,
    ANY_UNIT,
    ALL_UNITS,
)

from src.execution.bundle_pipeline import (
    BundlePipeline,
    PipelineReport,
    load_actor_balances,
)


__all__ = [
    # Quotes
    "quote",
    "estimate",
    "fallback_quote",
    "VirtualReserveSource",
    "LivePoolSource",
    # Planner
    "AllocationPlanner",
    "split_into_bundles",
    # Lookup tables
    "LookupTableCache",
    "candidate_addresses",
    "collect_addresses",
    "decode_lookup_table",
    "get_lookup_table_cache",
    # Factory
    "InstructionShape",
    "BONDING_CURVE_SHAPE",
    "POOL_SWAP_SHAPE",
    "TRANSFER_SHAPE",
    "ActorInstructionFactory",
    "TransferInstructionFactory",
    "TransferDirection",
    "QuotedInstructionFactory",
    # Builder
    "BundleBuilder",
    # Submitter
    "BundleSubmitter",
    "VerificationPolicy",
    "ANY_UNIT",
    "ALL_UNITS",
    # Pipeline
    "BundlePipeline",
    "PipelineReport",
    "load_actor_balances",
]
