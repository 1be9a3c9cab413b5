import os
from dotenv import load_dotenv

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


def _env_list(name: str, default: list) -> list:
    raw = os.getenv(name, "")
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or list(default)


def _env_optional_float(name: str):
    raw = os.getenv(name, "")
    return float(raw) if raw else None


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # BUNDLE FORGE CONFIGURATION (Environment-Based)
    # ═══════════════════════════════════════════════════════════════════

    # Console output (file log is always written)
    SILENT_MODE = os.getenv("SILENT_MODE", "false").lower() == "true"

    # ═══════════════════════════════════════════════════════════════════
    # ENDPOINTS
    # ═══════════════════════════════════════════════════════════════════
    RPC_URL = os.getenv("RPC_URL", "https://api.mainnet-beta.solana.com")
    BLOCK_ENGINE_URL = os.getenv(
        "BLOCK_ENGINE_URL", "https://mainnet.block-engine.jito.wtf/api/v1/bundles"
    )
    BLOCK_ENGINE_REGION = os.getenv("BLOCK_ENGINE_REGION", "amsterdam")
    RELAY_TIMEOUT_S = float(os.getenv("RELAY_TIMEOUT_S", "5"))

    # ═══════════════════════════════════════════════════════════════════
    # MESSAGE PACKING
    # ═══════════════════════════════════════════════════════════════════
    MAX_TX_SIZE = int(os.getenv("MAX_TX_SIZE", "1232"))  # Wire ceiling per message
    ACTORS_PER_TX_BONDING_CURVE = int(os.getenv("ACTORS_PER_TX_BONDING_CURVE", "5"))
    ACTORS_PER_TX_POOL_SWAP = int(os.getenv("ACTORS_PER_TX_POOL_SWAP", "3"))
    ACTORS_PER_TX_TRANSFER = int(os.getenv("ACTORS_PER_TX_TRANSFER", "8"))
    MAX_ACTORS_PER_BUNDLE = int(os.getenv("MAX_ACTORS_PER_BUNDLE", "15"))
    MAX_UNITS_PER_BUNDLE = int(os.getenv("MAX_UNITS_PER_BUNDLE", "5"))  # Block engine limit

    # ═══════════════════════════════════════════════════════════════════
    # ADDRESS LOOKUP TABLES
    # ═══════════════════════════════════════════════════════════════════
    MAX_LOOKUP_TABLES = int(os.getenv("MAX_LOOKUP_TABLES", "3"))
    MIN_ADDRESSES_PER_TABLE = int(os.getenv("MIN_ADDRESSES_PER_TABLE", "2"))
    LUT_CACHE_TTL_S = _env_optional_float("LUT_CACHE_TTL_S")  # None = never evict

    # ═══════════════════════════════════════════════════════════════════
    # RELAY INCENTIVE (Jito tip)
    # ═══════════════════════════════════════════════════════════════════
    TIP_ACCOUNTS = _env_list(
        "TIP_ACCOUNTS",
        [
            "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
            "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
            "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
            "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
            "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
            "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
            "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
            "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
        ],
    )
    DEFAULT_TIP_LAMPORTS = int(os.getenv("DEFAULT_TIP_LAMPORTS", "10000000"))  # 0.01 SOL

    # ═══════════════════════════════════════════════════════════════════
    # SUBMISSION & VERIFICATION
    # ═══════════════════════════════════════════════════════════════════
    BUNDLE_SETTLE_DELAY_S = float(os.getenv("BUNDLE_SETTLE_DELAY_S", "10"))
    SEARCH_TRANSACTION_HISTORY = True
    VERIFY_COMMITMENT = os.getenv("VERIFY_COMMITMENT", "confirmed")

    # ═══════════════════════════════════════════════════════════════════
    # ALLOCATION PLANNER (lamports)
    # ═══════════════════════════════════════════════════════════════════
    DUST_THRESHOLD_LAMPORTS = int(os.getenv("DUST_THRESHOLD_LAMPORTS", "10000000"))  # 0.01 SOL
    FEE_RESERVE_LAMPORTS = int(os.getenv("FEE_RESERVE_LAMPORTS", "20000000"))  # 0.02 SOL
    MIN_ALLOCATION_LAMPORTS = int(os.getenv("MIN_ALLOCATION_LAMPORTS", "10000000"))  # 0.01 SOL
    POOL_USAGE_CEILING = 0.95  # 5% of the pool stays behind as fee buffer
    JITTER_LOW = 0.7
    JITTER_HIGH = 1.3
    REMAINING_CAP_RATIO = 0.8
    TOKEN_DUST_THRESHOLD = int(os.getenv("TOKEN_DUST_THRESHOLD", "1000000"))  # 1 token @ 6 dp

    # ═══════════════════════════════════════════════════════════════════
    # QUOTE ESTIMATOR
    # ═══════════════════════════════════════════════════════════════════
    DEFAULT_SLIPPAGE_PERCENT = int(os.getenv("DEFAULT_SLIPPAGE_PERCENT", "10"))
    FALLBACK_QUOTE_OUTPUT = 1_000_000  # Nominal estimate when reserves are unreadable
