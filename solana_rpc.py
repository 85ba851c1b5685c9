"""
Solana JSON-RPC operations used by the Jupiter MCP tools.

Implements:
- Native (lamport) balance lookup
- Token account lookup by owner and mint, raw account data reads
- SPL token account / mint layout decoding
- Transaction submission and confirmation polling

All calls are synchronous; the tools run them through asyncio.to_thread.
"""

from __future__ import annotations

import base64
import logging
import struct
import time
from typing import Any

import requests
from solders.transaction import VersionedTransaction

from jupiter_errors import (
    HttpError,
    SerializationError,
    SolanaClientError,
    SolanaSdkError,
)
from solana_wallet import SolanaConfig

logger = logging.getLogger(__name__)

# SPL token program account layouts
TOKEN_ACCOUNT_LEN = 165
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64
MINT_LEN = 82
MINT_DECIMALS_OFFSET = 44

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


# ---------------------------------------------------------------------------
# RPC helpers
# ---------------------------------------------------------------------------


def _rpc_call(cfg: SolanaConfig, method: str, params: list[Any]) -> Any:
    """POST a JSON-RPC request to the configured Solana endpoint."""
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    try:
        resp = requests.post(cfg.rpc_url, json=payload, timeout=cfg.http_timeout_s)
    except requests.RequestException as exc:
        raise HttpError(f"{method} request failed: {exc}") from exc
    if resp.status_code >= 400:
        raise SolanaClientError(f"{method} HTTP {resp.status_code}: {resp.text}")
    try:
        body = resp.json()
    except ValueError as exc:
        raise SerializationError(f"{method} returned invalid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise SerializationError(f"{method} returned an unexpected payload")

    error = body.get("error")
    if error:
        if not isinstance(error, dict):
            raise SolanaClientError(f"{method} failed: {error}")
        code = error.get("code")
        message = error.get("message", "unknown error")
        raise SolanaClientError(f"{method} failed ({code}): {message}")
    return body.get("result")


def _decode_account_data(account: dict[str, Any]) -> bytes:
    data = account.get("data")
    if not isinstance(data, list) or not data:
        raise SerializationError("Account data is not base64 encoded")
    try:
        return base64.b64decode(data[0])
    except ValueError as exc:
        raise SerializationError(f"Invalid account data: {exc}") from exc


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def sol_get_balance(cfg: SolanaConfig, address: str) -> int:
    """Return the lamport balance of an address."""
    result = _rpc_call(cfg, "getBalance", [address, {"commitment": cfg.commitment}])
    if not isinstance(result, dict) or "value" not in result:
        raise SerializationError(f"getBalance returned no value for {address}")
    return int(result["value"])


def sol_get_token_accounts(cfg: SolanaConfig, owner: str, mint: str) -> list[str]:
    """Return the addresses of token accounts owned by `owner` for `mint`."""
    result = _rpc_call(
        cfg,
        "getTokenAccountsByOwner",
        [
            owner,
            {"mint": mint},
            {"encoding": "base64", "commitment": cfg.commitment},
        ],
    )
    entries = (result or {}).get("value") or []
    return [entry["pubkey"] for entry in entries]


def sol_get_account_data(cfg: SolanaConfig, address: str) -> bytes:
    result = _rpc_call(
        cfg,
        "getAccountInfo",
        [address, {"encoding": "base64", "commitment": cfg.commitment}],
    )
    account = (result or {}).get("value")
    if account is None:
        raise SolanaClientError(f"AccountNotFound: pubkey={address}")
    return _decode_account_data(account)


def parse_token_account_amount(data: bytes) -> int:
    if len(data) < TOKEN_ACCOUNT_LEN:
        raise SolanaSdkError(
            f"Failed to parse token account: expected {TOKEN_ACCOUNT_LEN} bytes, got {len(data)}"
        )
    (amount,) = struct.unpack_from("<Q", data, TOKEN_ACCOUNT_AMOUNT_OFFSET)
    return amount


def parse_mint_decimals(data: bytes) -> int:
    if len(data) < MINT_LEN:
        raise SolanaSdkError(
            f"Failed to parse mint: expected {MINT_LEN} bytes, got {len(data)}"
        )
    return data[MINT_DECIMALS_OFFSET]


def sol_get_token_balance(
    cfg: SolanaConfig, owner: str, mint: str
) -> tuple[int, int] | None:
    """
    Return (raw amount, decimals) for the owner's token account of `mint`.

    None when the owner holds no token account for the mint.
    """
    accounts = sol_get_token_accounts(cfg, owner, mint)
    if not accounts:
        return None
    if len(accounts) > 1:
        logger.warning(
            "Owner %s has %d token accounts for mint %s; using %s",
            owner,
            len(accounts),
            mint,
            accounts[0],
        )
    amount = parse_token_account_amount(sol_get_account_data(cfg, accounts[0]))
    decimals = parse_mint_decimals(sol_get_account_data(cfg, mint))
    return amount, decimals


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def sol_send_transaction(
    cfg: SolanaConfig,
    tx: VersionedTransaction,
    skip_preflight: bool = False,
) -> str:
    """Submit a signed transaction and return its signature."""
    encoded = base64.b64encode(bytes(tx)).decode("ascii")
    signature = _rpc_call(
        cfg,
        "sendTransaction",
        [
            encoded,
            {
                "encoding": "base64",
                "skipPreflight": skip_preflight,
                "preflightCommitment": cfg.commitment,
            },
        ],
    )
    logger.info("Submitted transaction %s", signature)
    return signature


def sol_confirm_transaction(cfg: SolanaConfig, signature: str) -> None:
    """
    Poll getSignatureStatuses until the configured commitment is reached.

    Raises SolanaClientError if the transaction failed on chain or was not
    confirmed within cfg.confirm_timeout_s.
    """
    target = _COMMITMENT_RANK[cfg.commitment]
    deadline = time.monotonic() + cfg.confirm_timeout_s
    while True:
        result = _rpc_call(
            cfg,
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        statuses = (result or {}).get("value") or [None]
        status = statuses[0]
        if status is not None:
            if status.get("err") is not None:
                raise SolanaClientError(f"Transaction {signature} failed: {status['err']}")
            reached = _COMMITMENT_RANK.get(status.get("confirmationStatus") or "", -1)
            if reached >= target:
                logger.info("Transaction %s reached %s", signature, status["confirmationStatus"])
                return
        if time.monotonic() >= deadline:
            raise SolanaClientError(
                f"Transaction {signature} not confirmed within {cfg.confirm_timeout_s:g}s"
            )
        time.sleep(cfg.confirm_poll_interval_s)
