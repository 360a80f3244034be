"""
Comprehensive wallet risk evaluation: token scan + transaction scan, aggregated.

overall = 0.5 * token wallet_risk_score + 0.5 * tx overall_risk_score, with the
weights renormalized over the scans that were requested. A requested scan that
fails contributes score 0 and confidence 0 and its error is reported in its
section; the evaluation only fails when every requested scan failed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from statistics import mean
from typing import Any

from chainguardian.analytics.token_scanner import scan_wallet_tokens
from chainguardian.analytics.tx_scanner import scan_wallet_transactions
from chainguardian.core.exceptions import ChainGuardianError, ExecutionError
from chainguardian.guardian_logging import get_logger
from chainguardian.swarm.models import TransactionAnalysisParams, WalletAnalysisParams

logger = get_logger(__name__)

TOKEN_WEIGHT = 0.5
TX_WEIGHT = 0.5

SECURITY_PRACTICES = [
    "Use hardware wallets for large amounts",
    "Verify all transaction details before signing",
    "Never share private keys or seed phrases",
    "Monitor wallet activity regularly",
    "Use reputable dApps and verify URLs",
]


def risk_level_for(score: float) -> str:
    if score >= 0.8:
        return "CRITICAL"
    if score >= 0.6:
        return "HIGH"
    if score >= 0.3:
        return "MEDIUM"
    return "LOW"


def _run_scan(name: str, fn, wallet_address: str, params: Any) -> dict[str, Any]:
    try:
        return fn(wallet_address, params)
    except ChainGuardianError as e:
        logger.warning("risk_evaluator_scan_failed", scan=name, wallet=wallet_address[:16] + "...", error=str(e))
        return {"wallet_address": wallet_address, "error": f"{name} scan failed: {e}"}


def _section_score(section: dict[str, Any] | None, kind: str) -> float:
    if not section or "error" in section:
        return 0.0
    if kind == "token":
        return float(section.get("wallet_risk_score", 0.0))
    return float((section.get("risk_summary") or {}).get("overall_risk_score", 0.0))


def _section_confidence(section: dict[str, Any] | None, kind: str) -> float:
    if not section or "error" in section:
        return 0.0
    if kind == "token":
        return min(section.get("tokens_analyzed", 0) / 10.0, 1.0)
    return min(section.get("transactions_analyzed", 0) / 50.0, 1.0)


def aggregate_assessment(
    wallet_address: str,
    token_results: dict[str, Any] | None,
    tx_results: dict[str, Any] | None,
) -> dict[str, Any]:
    """Combine scan sections (None = not requested) into one assessment."""
    parts: list[tuple[float, float, float]] = []
    if token_results is not None:
        parts.append(
            (TOKEN_WEIGHT, _section_score(token_results, "token"), _section_confidence(token_results, "token"))
        )
    if tx_results is not None:
        parts.append((TX_WEIGHT, _section_score(tx_results, "tx"), _section_confidence(tx_results, "tx")))
    total_weight = sum(w for w, _, _ in parts)
    overall = sum(w * s for w, s, _ in parts) / total_weight if total_weight else 0.0
    confidence = mean(c for _, _, c in parts) if parts else 0.0
    level = risk_level_for(overall)

    recommendations: list[str] = []
    if overall >= 0.8:
        recommendations.append("CRITICAL: Immediate action required; wallet has significant security risks")
        recommendations.append("Consider moving assets to a new, secure wallet")
    elif overall >= 0.6:
        recommendations.append("HIGH RISK: Review and address identified risks promptly")
        recommendations.append("Apply additional security measures")
    for section in (token_results, tx_results):
        if section and "error" not in section:
            recommendations.extend(section.get("recommendations") or [])
    recommendations.extend(SECURITY_PRACTICES)

    summary = {
        "risk_level": level,
        "confidence": f"{confidence * 100:.1f}%",
        "key_findings": [
            f"Analyzed {(token_results or {}).get('tokens_analyzed', 0)} tokens",
            f"Reviewed {(tx_results or {}).get('transactions_analyzed', 0)} transactions",
            f"Overall risk score: {overall * 100:.1f}/100",
        ],
        "immediate_actions": [r for r in recommendations if "URGENT" in r or "CRITICAL" in r],
    }
    return {
        "wallet_address": wallet_address,
        "overall_risk_score": overall,
        "risk_level": level,
        "confidence": confidence,
        "token_analysis": token_results,
        "transaction_analysis": tx_results,
        "recommendations": recommendations,
        "summary": summary,
        "scan_timestamp": datetime.now(timezone.utc).isoformat(),
    }


def evaluate_wallet_risk(wallet_address: str, params: Any = None) -> dict[str, Any]:
    """
    Run the requested scans and aggregate them.

    Raises ExecutionError when every requested scan failed.
    """
    if not isinstance(params, WalletAnalysisParams):
        params = WalletAnalysisParams()
    token_results = None
    tx_results = None
    if params.include_tokens:
        token_results = _run_scan("token", scan_wallet_tokens, wallet_address, params)
    if params.include_transactions:
        tx_results = _run_scan(
            "transaction",
            scan_wallet_transactions,
            wallet_address,
            TransactionAnalysisParams(tx_limit=params.tx_limit),
        )
    sections = [s for s in (token_results, tx_results) if s is not None]
    if sections and all("error" in s for s in sections):
        raise ExecutionError("; ".join(s["error"] for s in sections))

    assessment = aggregate_assessment(wallet_address, token_results, tx_results)
    logger.info(
        "risk_evaluation_done",
        wallet=wallet_address[:16] + "...",
        overall_risk_score=round(assessment["overall_risk_score"], 4),
        risk_level=assessment["risk_level"],
        confidence=round(assessment["confidence"], 3),
    )
    return assessment
