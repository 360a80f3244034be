"""
Token risk scan for a wallet's SPL holdings.

Reads token accounts (getTokenAccountsByOwner, jsonParsed), skips zero balances,
and scores each held mint on three signals:
- verification: mint is on the verified list (built-in stablecoins/wSOL plus
  an optional JSON list at VERIFIED_TOKENS_PATH);
- liquidity: Birdeye token overview when BIRDEYE_API_KEY is set, else a
  neutral-low default;
- rugpull indicators from the mint account (freeze/mint authority, supply, decimals).

The wallet score is the balance-weighted mean of per-token risk values.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any

import httpx

from chainguardian.config import get_settings
from chainguardian.core.exceptions import RPCError
from chainguardian.guardian_logging import get_logger
from chainguardian.analytics.solana_rpc import fetch_account_info, fetch_token_accounts_by_owner

logger = get_logger(__name__)

BIRDEYE_TOKEN_OVERVIEW_URL = "https://public-api.birdeye.so/defi/token_overview"
DEFAULT_LIQUIDITY_SCORE = 0.3

# USDC, USDT, wrapped SOL
BUILTIN_VERIFIED_MINTS = frozenset(
    {
        "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
        "So11111111111111111111111111111111111111112",
    }
)

CRITICAL_INDICATORS = frozenset({"HAS_FREEZE_AUTHORITY", "HAS_MINT_AUTHORITY"})
WARNING_INDICATORS = frozenset({"EXCESSIVE_SUPPLY", "UNUSUAL_DECIMALS"})
EXCESSIVE_SUPPLY = 1e12

RISK_LEVEL_VALUES = {"CRITICAL": 1.0, "HIGH": 0.8, "MEDIUM": 0.5, "LOW": 0.2}
TOKEN_RISK_CONFIDENCE = 0.8


@dataclass
class TokenRisk:
    token_address: str
    mint_address: str
    balance: float
    is_verified: bool
    liquidity_score: float
    risk_level: str
    confidence: float
    rugpull_indicators: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@lru_cache(maxsize=1)
def _load_verified_mints() -> frozenset[str]:
    """Built-in verified mints plus VERIFIED_TOKENS_PATH (JSON list of mints) when present."""
    path_str = (os.getenv("VERIFIED_TOKENS_PATH") or "").strip()
    if not path_str:
        return BUILTIN_VERIFIED_MINTS
    path = Path(path_str)
    if not path.is_file():
        logger.debug("token_scanner_verified_list_missing", path=path_str)
        return BUILTIN_VERIFIED_MINTS
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("token_scanner_verified_list_load_failed", path=path_str, error=str(e))
        return BUILTIN_VERIFIED_MINTS
    if not isinstance(data, list):
        return BUILTIN_VERIFIED_MINTS
    return BUILTIN_VERIFIED_MINTS | {str(m).strip() for m in data if m}


def is_verified_mint(mint: str) -> bool:
    return mint in _load_verified_mints()


def liquidity_tier(liquidity_usd: float) -> float:
    """Map USD liquidity to a 0..1 score."""
    if liquidity_usd > 1_000_000:
        return 1.0
    if liquidity_usd > 100_000:
        return 0.8
    if liquidity_usd > 10_000:
        return 0.6
    if liquidity_usd > 1_000:
        return 0.4
    return 0.2


def fetch_liquidity_score(mint: str) -> float:
    api_key = get_settings().birdeye_api_key
    if not api_key:
        return DEFAULT_LIQUIDITY_SCORE
    try:
        with httpx.Client(timeout=get_settings().rpc_timeout_sec) as client:
            resp = client.get(
                BIRDEYE_TOKEN_OVERVIEW_URL,
                params={"address": mint},
                headers={"X-API-KEY": api_key, "Accept": "application/json"},
            )
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("token_scanner_liquidity_failed", mint=mint[:16], error=str(e))
        return DEFAULT_LIQUIDITY_SCORE
    liquidity = (data.get("data") or {}).get("liquidity") if isinstance(data, dict) else None
    if liquidity is None:
        return DEFAULT_LIQUIDITY_SCORE
    return liquidity_tier(float(liquidity))


def check_rugpull_indicators(mint: str) -> list[str]:
    """Indicators from the parsed mint account; empty when the account cannot be read."""
    try:
        account = fetch_account_info(mint)
    except RPCError as e:
        logger.debug("token_scanner_mint_info_failed", mint=mint[:16], error=str(e))
        return []
    try:
        info = account["data"]["parsed"]["info"]
    except (KeyError, TypeError):
        return []
    indicators: list[str] = []
    if info.get("freezeAuthority"):
        indicators.append("HAS_FREEZE_AUTHORITY")
    if info.get("mintAuthority"):
        indicators.append("HAS_MINT_AUTHORITY")
    try:
        if float(info.get("supply") or 0) > EXCESSIVE_SUPPLY:
            indicators.append("EXCESSIVE_SUPPLY")
    except (TypeError, ValueError):
        pass
    decimals = info.get("decimals")
    if isinstance(decimals, int) and not 6 <= decimals <= 9:
        indicators.append("UNUSUAL_DECIMALS")
    return indicators


def classify_token_risk(is_verified: bool, liquidity_score: float, indicators: list[str]) -> str:
    score = 0.0
    if not is_verified:
        score += 0.3
    if liquidity_score < 0.2:
        score += 0.4
    elif liquidity_score < 0.5:
        score += 0.2
    for indicator in indicators:
        if indicator in CRITICAL_INDICATORS:
            score += 0.3
        elif indicator in WARNING_INDICATORS:
            score += 0.1
    if score >= 0.8:
        return "CRITICAL"
    if score >= 0.6:
        return "HIGH"
    if score >= 0.3:
        return "MEDIUM"
    return "LOW"


def wallet_risk_score(risks: list[TokenRisk]) -> float:
    """Balance-weighted mean of per-token risk values; 0.0 for no holdings."""
    total_weight = sum(r.balance for r in risks)
    if total_weight <= 0:
        return 0.0
    return sum(r.balance * RISK_LEVEL_VALUES[r.risk_level] for r in risks) / total_weight


def _analyze_token_account(account: dict[str, Any]) -> TokenRisk | None:
    info = account["account"]["data"]["parsed"]["info"]
    mint = str(info["mint"])
    amount = info["tokenAmount"]
    balance = float(amount["amount"]) / (10 ** int(amount["decimals"]))
    if balance == 0.0:
        return None
    verified = is_verified_mint(mint)
    liquidity = fetch_liquidity_score(mint)
    indicators = check_rugpull_indicators(mint)
    return TokenRisk(
        token_address=str(account.get("pubkey", "")),
        mint_address=mint,
        balance=balance,
        is_verified=verified,
        liquidity_score=liquidity,
        risk_level=classify_token_risk(verified, liquidity, indicators),
        confidence=TOKEN_RISK_CONFIDENCE,
        rugpull_indicators=indicators,
    )


def token_recommendations(risks: list[TokenRisk]) -> list[str]:
    recs: list[str] = []
    levels = {r.risk_level for r in risks}
    if "CRITICAL" in levels:
        recs.append("URGENT: Consider selling or moving tokens rated CRITICAL")
        recs.append("Investigate tokens with freeze or mint authority; their issuers can still manipulate them")
    if "HIGH" in levels:
        recs.append("Review tokens rated HIGH and plan an exit strategy")
        recs.append("Monitor liquidity of high-risk tokens closely")
    if any(not r.is_verified for r in risks):
        recs.append("Verify unverified tokens through official project channels")
    if any(r.liquidity_score < 0.3 for r in risks):
        recs.append("Low-liquidity tokens may be difficult to sell")
    if not recs:
        recs.append("No immediate action required; token exposure looks low risk")
    return recs


def scan_wallet_tokens(wallet_address: str, params: Any = None) -> dict[str, Any]:
    """
    Scan a wallet's SPL token holdings.

    Raises RPCError when the token accounts cannot be fetched. A single
    malformed account is logged and skipped.
    """
    accounts = fetch_token_accounts_by_owner(wallet_address)
    risks: list[TokenRisk] = []
    for account in accounts:
        try:
            risk = _analyze_token_account(account)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("token_scanner_account_skipped", pubkey=account.get("pubkey"), error=str(e))
            continue
        if risk is not None:
            risks.append(risk)

    counts = {level: sum(1 for r in risks if r.risk_level == level) for level in RISK_LEVEL_VALUES}
    score = wallet_risk_score(risks)
    logger.info(
        "token_scan_done",
        wallet=wallet_address[:16] + "...",
        tokens_analyzed=len(accounts),
        risks=len(risks),
        wallet_risk_score=round(score, 4),
    )
    return {
        "wallet_address": wallet_address,
        "tokens_analyzed": len(accounts),
        "wallet_risk_score": score,
        "total_risks_found": len(risks),
        "critical_risks": counts["CRITICAL"],
        "high_risks": counts["HIGH"],
        "medium_risks": counts["MEDIUM"],
        "low_risks": counts["LOW"],
        "detailed_risks": [r.to_dict() for r in risks],
        "recommendations": token_recommendations(risks),
        "scan_timestamp": datetime.now(timezone.utc).isoformat(),
    }
