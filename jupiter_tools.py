"""
MCP tools exposed by the Jupiter server: get_quote, execute_swap and
get_token_balance.

Each tool is a definition (name, description, input schema) plus an async
execute(cfg, arguments) coroutine. Tools keep no state between calls; the
configuration is passed in explicitly.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from mcp.types import CallToolResult, TextContent, Tool
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

import jupiter_api
import solana_rpc
from jupiter_api import QuoteResponse
from jupiter_errors import InvalidInputError, SolanaSdkError
from solana_wallet import (
    SolanaConfig,
    format_sol,
    format_token_amount,
    get_explorer_url,
    load_keypair,
    parse_amount,
    parse_pubkey,
)

logger = logging.getLogger(__name__)

DEFAULT_SLIPPAGE_BPS = 50
DEFAULT_SWAP_MODE = "ExactIn"

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class ToolSpec:
    definition: Tool
    execute: Callable[[SolanaConfig, dict[str, Any]], Awaitable[CallToolResult]]


def _text_result(*texts: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text) for text in texts])


def _parse_arguments(model: type[ModelT], arguments: Any) -> ModelT:
    try:
        return model.model_validate(arguments)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid arguments: {exc}") from exc


# ---------------------------------------------------------------------------
# get_quote
# ---------------------------------------------------------------------------


class QuoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input_mint: StrictStr = Field(alias="inputMint")
    output_mint: StrictStr = Field(alias="outputMint")
    amount: StrictStr
    taker: Optional[StrictStr] = None
    swap_mode: Optional[StrictStr] = Field(default=None, alias="swapMode")
    slippage_bps: Optional[int] = Field(default=None, alias="slippageBps", ge=0, le=65535)


GET_QUOTE_TOOL = Tool(
    name="get_quote",
    description=(
        "Get a price quote for swapping tokens on Solana using Jupiter aggregator. "
        "This shows you how much of the output token you'll receive for a given "
        "amount of input token, including price impact and the best route."
    ),
    inputSchema={
        "type": "object",
        "properties": {
            "inputMint": {
                "type": "string",
                "description": (
                    "The token address (mint) you want to swap FROM "
                    "(e.g., USDC: EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v)"
                ),
            },
            "outputMint": {
                "type": "string",
                "description": (
                    "The token address (mint) you want to swap TO "
                    "(e.g., SOL: So11111111111111111111111111111111111111112)"
                ),
            },
            "amount": {
                "type": "string",
                "description": (
                    "How much of the input token to swap (in the token's smallest unit - "
                    "for USDC with 6 decimals, 1000000 = 1 USDC)"
                ),
            },
            "taker": {
                "type": "string",
                "description": "The wallet address that will perform the swap",
            },
            "swapMode": {
                "type": "string",
                "description": (
                    "Whether you want to specify an exact input amount (ExactIn) or "
                    "exact output amount (ExactOut). Default is ExactIn."
                ),
            },
            "slippageBps": {
                "type": "number",
                "description": (
                    "Maximum acceptable slippage in basis points (100 bps = 1%). "
                    "Default is 50 bps (0.5%). "
                    "Higher values allow more price movement but ensure the swap completes."
                ),
            },
        },
        "required": ["inputMint", "outputMint", "amount"],
    },
)


def _format_quote(quote: QuoteResponse) -> str:
    slippage_pct = quote.slippage_bps / 100
    return (
        "✅ Quote received for your swap:\n\n"
        f"📥 You will send: {quote.in_amount} tokens\n"
        f"📤 You will receive: {quote.out_amount} tokens\n"
        f"🔒 Minimum received: {quote.other_amount_threshold} tokens\n"
        f"💹 Price impact: {quote.price_impact_pct}%\n"
        f"⚡ Slippage tolerance: {quote.slippage_bps} bps ({slippage_pct:g}%)\n"
        f"🛣️  Best route: {' → '.join(quote.route_labels())}\n\n"
        "This quote is ready to use for executing the swap."
    )


async def get_quote(cfg: SolanaConfig, arguments: dict[str, Any]) -> CallToolResult:
    request = _parse_arguments(QuoteRequest, arguments)

    parse_pubkey(request.input_mint)
    parse_pubkey(request.output_mint)
    if request.taker is not None:
        parse_pubkey(request.taker)
    parse_amount(request.amount)

    slippage_bps = (
        request.slippage_bps if request.slippage_bps is not None else DEFAULT_SLIPPAGE_BPS
    )
    params = {
        "inputMint": request.input_mint,
        "outputMint": request.output_mint,
        "amount": request.amount,
        "swapMode": request.swap_mode or DEFAULT_SWAP_MODE,
        "slippageBps": str(slippage_bps),
    }
    if request.taker is not None:
        params["taker"] = request.taker

    quote = await asyncio.to_thread(jupiter_api.jup_get_quote, cfg, params)
    # Second block carries the raw quote so it can be passed to execute_swap.
    quote_json = json.dumps(quote.to_payload())
    return _text_result(_format_quote(quote), quote_json)


# ---------------------------------------------------------------------------
# execute_swap
# ---------------------------------------------------------------------------


class SwapRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quote_response: dict[str, Any] = Field(alias="quoteResponse")
    user_public_key: Optional[StrictStr] = Field(default=None, alias="userPublicKey")
    wrap_and_unwrap_sol: Optional[StrictBool] = Field(default=None, alias="wrapAndUnwrapSol")


EXECUTE_SWAP_TOOL = Tool(
    name="execute_swap",
    description="Execute a swap transaction using Jupiter AG",
    inputSchema={
        "type": "object",
        "properties": {
            "quoteResponse": {
                "type": "object",
                "description": "Quote response from get_quote tool",
            },
            "userPublicKey": {
                "type": "string",
                "description": "User public key (optional, defaults to wallet)",
            },
            "wrapAndUnwrapSol": {
                "type": "boolean",
                "description": "Whether to wrap/unwrap SOL (default: true)",
            },
        },
        "required": ["quoteResponse"],
    },
)


def decode_swap_transaction(swap_transaction: str) -> VersionedTransaction:
    try:
        raw = base64.b64decode(swap_transaction, validate=True)
    except binascii.Error as exc:
        raise SolanaSdkError(f"Failed to decode transaction: {exc}") from exc
    try:
        return VersionedTransaction.from_bytes(raw)
    except Exception as exc:  # noqa: BLE001
        raise SolanaSdkError(f"Failed to deserialize transaction: {exc}") from exc


def sign_transaction(tx: VersionedTransaction, keypair: Keypair) -> VersionedTransaction:
    try:
        return VersionedTransaction(tx.message, [keypair])
    except Exception as exc:  # noqa: BLE001
        raise SolanaSdkError(f"Failed to sign transaction: {exc}") from exc


async def execute_swap(cfg: SolanaConfig, arguments: dict[str, Any]) -> CallToolResult:
    request = _parse_arguments(SwapRequest, arguments)
    try:
        QuoteResponse.model_validate(request.quote_response)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid quoteResponse: {exc}") from exc

    keypair = load_keypair(cfg)
    if request.user_public_key is not None:
        user_public_key = str(parse_pubkey(request.user_public_key))
    else:
        user_public_key = str(keypair.pubkey())
    wrap_and_unwrap_sol = (
        request.wrap_and_unwrap_sol if request.wrap_and_unwrap_sol is not None else True
    )

    swap_transaction = await asyncio.to_thread(
        jupiter_api.jup_build_swap,
        cfg,
        request.quote_response,
        user_public_key,
        wrap_and_unwrap_sol,
    )
    signed = sign_transaction(decode_swap_transaction(swap_transaction), keypair)

    signature = await asyncio.to_thread(solana_rpc.sol_send_transaction, cfg, signed, False)
    await asyncio.to_thread(solana_rpc.sol_confirm_transaction, cfg, signature)

    return _text_result(
        "Swap executed successfully!\n"
        f"Signature: {signature}\n"
        f"Explorer: {get_explorer_url(signature, cfg)}"
    )


# ---------------------------------------------------------------------------
# get_token_balance
# ---------------------------------------------------------------------------


class BalanceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    wallet_address: StrictStr = Field(alias="walletAddress")
    token_mint: Optional[StrictStr] = Field(default=None, alias="tokenMint")


GET_TOKEN_BALANCE_TOOL = Tool(
    name="get_token_balance",
    description="Get SOL or SPL token balance for a wallet",
    inputSchema={
        "type": "object",
        "properties": {
            "walletAddress": {
                "type": "string",
                "description": "Wallet address to check balance for",
            },
            "tokenMint": {
                "type": "string",
                "description": "Token mint address (optional, omit for SOL balance)",
            },
        },
        "required": ["walletAddress"],
    },
)


async def get_token_balance(cfg: SolanaConfig, arguments: dict[str, Any]) -> CallToolResult:
    request = _parse_arguments(BalanceRequest, arguments)
    wallet = str(parse_pubkey(request.wallet_address))

    if request.token_mint is None:
        lamports = await asyncio.to_thread(solana_rpc.sol_get_balance, cfg, wallet)
        return _text_result(f"SOL Balance: {format_sol(lamports)} SOL")

    mint = str(parse_pubkey(request.token_mint))
    balance = await asyncio.to_thread(solana_rpc.sol_get_token_balance, cfg, wallet, mint)
    if balance is None:
        return _text_result("Token account not found - Balance: 0")
    amount, decimals = balance
    return _text_result(f"Token Balance: {format_token_amount(amount, decimals)}")


TOOLS: dict[str, ToolSpec] = {
    spec.definition.name: spec
    for spec in (
        ToolSpec(GET_QUOTE_TOOL, get_quote),
        ToolSpec(EXECUTE_SWAP_TOOL, execute_swap),
        ToolSpec(GET_TOKEN_BALANCE_TOOL, get_token_balance),
    )
}
