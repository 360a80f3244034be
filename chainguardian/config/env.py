"""
Environment variable loading for ChainGuardian.

- SOLANA_NETWORK: devnet | mainnet (default: mainnet)
- SOLANA_RPC_URL: RPC endpoint
- HELIUS_API_KEY: Helius API key (used for the RPC URL when SOLANA_RPC_URL is unset)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is chainguardian/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEVNET_RPC_URL = "https://api.devnet.solana.com"
MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
HELIUS_DEVNET_URL_TEMPLATE = "https://devnet.helius-rpc.com/?api-key={key}"


def load_guardian_env() -> None:
    """Load .env from project root. Existing environment variables win; safe to call repeatedly."""
    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def get_solana_network() -> str:
    """Return SOLANA_NETWORK from env: devnet | mainnet. Default: mainnet."""
    load_guardian_env()
    raw = (os.getenv("SOLANA_NETWORK") or os.getenv("SOLANA_CLUSTER") or "mainnet").strip().lower()
    if raw == "devnet":
        return "devnet"
    return "mainnet"


def get_solana_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_API_KEY (network-specific) > devnet/mainnet default.
    """
    load_guardian_env()
    url = (os.getenv("SOLANA_RPC_URL") or "").strip()
    if url:
        return url
    network = get_solana_network()
    key = (os.getenv("HELIUS_API_KEY") or "").strip()
    if key:
        template = HELIUS_DEVNET_URL_TEMPLATE if network == "devnet" else HELIUS_MAINNET_URL_TEMPLATE
        return template.format(key=key)
    return DEVNET_RPC_URL if network == "devnet" else MAINNET_RPC_URL


def mask_rpc_url(url: str) -> str:
    """Hide the API key part of an RPC URL for logs and status output."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
