"""
ChainGuardian analytics — the analysis functions executed by swarm workers.

Each takes (wallet_address, parameters) and returns a result dict or raises.
Modules: solana_rpc, token_scanner, tx_scanner, risk_evaluator.
"""

from chainguardian.analytics.token_scanner import scan_wallet_tokens
from chainguardian.analytics.tx_scanner import scan_wallet_transactions
from chainguardian.analytics.risk_evaluator import evaluate_wallet_risk

__all__ = [
    "scan_wallet_tokens",
    "scan_wallet_transactions",
    "evaluate_wallet_risk",
]
