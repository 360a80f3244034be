"""
Transaction-history risk scan.

Fetches the wallet's most recent signatures (getSignaturesForAddress, limit =
tx_limit), then each transaction (getTransaction, jsonParsed) in batches of 10
with a short pause between batches for rate limits. Per transaction:
- RISKY_PROGRAM_INTERACTION: instruction targets a listed risky program (HIGH)
- LARGE_TOKEN_TRANSFER: SPL transfer amount above 1e9 base units (MEDIUM)
- HIGH_PRIORITY_FEE: fee above 10000 lamports, possible MEV (MEDIUM)
- COMPLEX_TRANSACTION: more than 20 top-level instructions (LOW)
- FAILED_TRANSACTION: meta.err set (LOW)
"""

from __future__ import annotations

import json
import os
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any

from chainguardian.analytics.solana_rpc import TOKEN_PROGRAM_ID, fetch_signatures, fetch_transaction
from chainguardian.core.exceptions import RPCError
from chainguardian.guardian_logging import get_logger
from chainguardian.swarm.models import DEFAULT_TX_LIMIT

logger = get_logger(__name__)

BATCH_SIZE = 10
BATCH_DELAY_SEC = 0.1
LARGE_TRANSFER_AMOUNT = 1e9
HIGH_FEE_LAMPORTS = 10_000
COMPLEX_INSTRUCTION_COUNT = 20
RECENT_WINDOW_SEC = 24 * 3600
MANY_FAILED_TXS = 5

SEVERITY_WEIGHTS = {"HIGH": 0.8, "MEDIUM": 0.5, "LOW": 0.2}


@dataclass
class TransactionRisk:
    signature: str
    slot: int
    block_time: int | None
    risk_type: str
    severity: str
    description: str
    confidence: float
    involved_addresses: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["timestamp"] = (
            datetime.fromtimestamp(self.block_time, tz=timezone.utc).isoformat()
            if self.block_time is not None
            else None
        )
        return d


@lru_cache(maxsize=1)
def _load_risky_programs() -> frozenset[str]:
    """Program ids from RISKY_PROGRAMS_PATH (JSON list). Empty set when unset or unreadable."""
    path_str = (os.getenv("RISKY_PROGRAMS_PATH") or "").strip()
    if not path_str:
        return frozenset()
    path = Path(path_str)
    if not path.is_file():
        logger.debug("tx_scanner_risky_programs_missing", path=path_str)
        return frozenset()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("tx_scanner_risky_programs_load_failed", path=path_str, error=str(e))
        return frozenset()
    if not isinstance(data, list):
        return frozenset()
    return frozenset(str(p).strip() for p in data if p)


def analyze_transaction(
    tx: dict[str, Any],
    signature: str,
    slot: int,
    risky_programs: frozenset[str] = frozenset(),
) -> list[TransactionRisk]:
    """Risk findings for one jsonParsed transaction."""
    block_time = tx.get("blockTime")
    message = (tx.get("transaction") or {}).get("message") or {}
    instructions = message.get("instructions") or []
    meta = tx.get("meta") or {}
    risks: list[TransactionRisk] = []

    def add(risk_type: str, severity: str, description: str, confidence: float, addresses=None) -> None:
        risks.append(
            TransactionRisk(
                signature=signature,
                slot=slot,
                block_time=block_time,
                risk_type=risk_type,
                severity=severity,
                description=description,
                confidence=confidence,
                involved_addresses=list(addresses or []),
            )
        )

    for ix in instructions:
        program_id = ix.get("programId")
        if program_id and program_id in risky_programs:
            add(
                "RISKY_PROGRAM_INTERACTION",
                "HIGH",
                f"Interaction with known risky program: {program_id}",
                0.9,
                [program_id],
            )
        if program_id == TOKEN_PROGRAM_ID:
            parsed = ix.get("parsed")
            info = parsed.get("info") if isinstance(parsed, dict) else None
            if isinstance(info, dict) and "amount" in info and "destination" in info:
                try:
                    amount = float(info["amount"])
                except (TypeError, ValueError):
                    continue
                if amount > LARGE_TRANSFER_AMOUNT:
                    destination = str(info["destination"])
                    add(
                        "LARGE_TOKEN_TRANSFER",
                        "MEDIUM",
                        f"Large token transfer of {amount:.0f} to {destination}",
                        0.7,
                        [destination],
                    )

    fee = meta.get("fee")
    if isinstance(fee, (int, float)) and fee > HIGH_FEE_LAMPORTS:
        add(
            "HIGH_PRIORITY_FEE",
            "MEDIUM",
            f"Transaction used high priority fee ({fee} lamports), possible MEV",
            0.6,
        )
    if len(instructions) > COMPLEX_INSTRUCTION_COUNT:
        add(
            "COMPLEX_TRANSACTION",
            "LOW",
            f"Transaction has unusually high number of instructions ({len(instructions)})",
            0.4,
        )
    if meta.get("err") is not None:
        add("FAILED_TRANSACTION", "LOW", f"Transaction failed: {meta['err']}", 0.3)
    return risks


def summarize_risks(risks: list[TransactionRisk], now: float | None = None) -> dict[str, Any]:
    if not risks:
        return {
            "total_risks": 0,
            "by_severity": {},
            "by_type": {},
            "recent_risks": 0,
            "overall_risk_score": 0.0,
        }
    now = time.time() if now is None else now
    cutoff = now - RECENT_WINDOW_SEC
    weighted = sum(SEVERITY_WEIGHTS.get(r.severity, 0.1) * r.confidence for r in risks)
    return {
        "total_risks": len(risks),
        "by_severity": dict(Counter(r.severity for r in risks)),
        "by_type": dict(Counter(r.risk_type for r in risks)),
        "recent_risks": sum(1 for r in risks if r.block_time is not None and r.block_time > cutoff),
        "overall_risk_score": min(weighted / len(risks), 1.0),
    }


def transaction_recommendations(risks: list[TransactionRisk], summary: dict[str, Any]) -> list[str]:
    recs: list[str] = []
    types = Counter(r.risk_type for r in risks)
    if any(r.severity == "HIGH" for r in risks):
        recs.append("HIGH RISK: Wallet has interacted with potentially dangerous programs")
        recs.append("Review recent transactions for unauthorized activity")
    if summary.get("recent_risks"):
        recs.append("Suspicious activity in the last 24 hours; monitor the wallet closely")
    if types["HIGH_PRIORITY_FEE"]:
        recs.append("High priority fees detected; possible MEV activity")
    if types["FAILED_TRANSACTION"] > MANY_FAILED_TXS:
        recs.append("Multiple failed transactions; possible attack attempts")
    if not recs:
        recs.append("Transaction history appears normal; no significant risks detected")
    return recs


def scan_wallet_transactions(wallet_address: str, params: Any = None) -> dict[str, Any]:
    """
    Scan recent transaction history of a wallet.

    params may carry tx_limit (TransactionAnalysisParams / WalletAnalysisParams).
    Raises RPCError when signatures cannot be fetched; individual transactions
    that fail to load are skipped.
    """
    tx_limit = int(getattr(params, "tx_limit", DEFAULT_TX_LIMIT) or DEFAULT_TX_LIMIT)
    signatures = fetch_signatures(wallet_address, tx_limit)
    risky_programs = _load_risky_programs()
    risks: list[TransactionRisk] = []
    skipped = 0

    for start in range(0, len(signatures), BATCH_SIZE):
        if start:
            time.sleep(BATCH_DELAY_SEC)
        for sig_info in signatures[start : start + BATCH_SIZE]:
            signature = sig_info.get("signature")
            if not signature:
                continue
            try:
                tx = fetch_transaction(signature)
            except RPCError as e:
                skipped += 1
                logger.debug("tx_scanner_fetch_failed", signature=signature[:16], error=str(e))
                continue
            if not tx:
                continue
            risks.extend(analyze_transaction(tx, signature, int(sig_info.get("slot") or 0), risky_programs))

    summary = summarize_risks(risks)
    logger.info(
        "tx_scan_done",
        wallet=wallet_address[:16] + "...",
        transactions_analyzed=len(signatures),
        risks=len(risks),
        skipped=skipped,
        overall_risk_score=round(summary["overall_risk_score"], 4),
    )
    return {
        "wallet_address": wallet_address,
        "transactions_analyzed": len(signatures),
        "risks_found": len(risks),
        "risk_summary": summary,
        "detailed_risks": [r.to_dict() for r in risks],
        "recommendations": transaction_recommendations(risks, summary),
        "scan_timestamp": datetime.now(timezone.utc).isoformat(),
    }
