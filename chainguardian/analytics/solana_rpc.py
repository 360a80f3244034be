"""
Minimal Solana JSON-RPC client over httpx.

Every call posts one JSON-RPC 2.0 request and returns the "result" member.
Transport failures, non-2xx responses and JSON-RPC error objects raise RPCError.
"""

from __future__ import annotations

from typing import Any

import httpx

from chainguardian.config import get_settings
from chainguardian.core.exceptions import RPCError
from chainguardian.guardian_logging import get_logger

logger = get_logger(__name__)

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


def rpc_request(
    method: str,
    params: list[Any],
    *,
    rpc_url: str | None = None,
    timeout: float | None = None,
) -> Any:
    """Send one JSON-RPC request; return its result (may be None)."""
    settings = get_settings()
    url = (rpc_url or settings.solana_rpc_url).rstrip("/")
    body = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    try:
        with httpx.Client(timeout=timeout or settings.rpc_timeout_sec) as client:
            resp = client.post(url, json=body)
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("solana_rpc_request_failed", method=method, error=str(e))
        raise RPCError(method, str(e)) from e
    err = data.get("error") if isinstance(data, dict) else None
    if err:
        message = err.get("message", str(err)) if isinstance(err, dict) else str(err)
        logger.debug("solana_rpc_error", method=method, error=message)
        raise RPCError(method, message)
    return data.get("result") if isinstance(data, dict) else None


def fetch_token_accounts_by_owner(owner: str) -> list[dict[str, Any]]:
    """SPL token accounts owned by owner (jsonParsed)."""
    result = rpc_request(
        "getTokenAccountsByOwner",
        [owner, {"programId": TOKEN_PROGRAM_ID}, {"encoding": "jsonParsed"}],
    )
    if not isinstance(result, dict):
        return []
    return list(result.get("value") or [])


def fetch_signatures(address: str, limit: int) -> list[dict[str, Any]]:
    """Most recent signatures for address, newest first."""
    result = rpc_request("getSignaturesForAddress", [address, {"limit": int(limit)}])
    return list(result or [])


def fetch_transaction(signature: str) -> dict[str, Any] | None:
    return rpc_request(
        "getTransaction",
        [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}],
    )


def fetch_account_info(address: str) -> dict[str, Any] | None:
    """Account value (jsonParsed) or None when the account does not exist."""
    result = rpc_request("getAccountInfo", [address, {"encoding": "jsonParsed"}])
    if not isinstance(result, dict):
        return None
    return result.get("value")
