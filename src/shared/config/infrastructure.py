from dataclasses import dataclass, field
from typing import Dict

from config.settings import Settings


@dataclass
class InfrastructureConfig:
    rpc_url: str = Settings.RPC_URL
    block_engine_url: str = Settings.BLOCK_ENGINE_URL
    block_engine_region: str = Settings.BLOCK_ENGINE_REGION

    # Regional block engines, used for failover rotation
    regional_endpoints: Dict[str, str] = field(default_factory=lambda: {
        "mainnet": "https://mainnet.block-engine.jito.wtf/api/v1/bundles",
        "amsterdam": "https://amsterdam.mainnet.block-engine.jito.wtf/api/v1/bundles",
        "frankfurt": "https://frankfurt.mainnet.block-engine.jito.wtf/api/v1/bundles",
        "ny": "https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles",
        "tokyo": "https://tokyo.mainnet.block-engine.jito.wtf/api/v1/bundles",
    })

    # Network Limits
    relay_timeout_sec: float = Settings.RELAY_TIMEOUT_S
    rpc_timeout_sec: float = 10.0
