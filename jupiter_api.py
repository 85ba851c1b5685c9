"""
Jupiter aggregator HTTP client.

Implements:
- Swap quotes (order endpoint)
- Swap transaction construction from a previously obtained quote
"""

from __future__ import annotations

import copy
import logging
from typing import Any

import requests
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    model_validator,
)

from jupiter_errors import HttpError, JupiterApiError, SerializationError
from solana_wallet import SolanaConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class SwapInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    amm_key: str = Field(alias="ammKey")
    label: str
    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: str = Field(alias="inAmount")
    out_amount: str = Field(alias="outAmount")
    fee_amount: str | None = Field(default=None, alias="feeAmount")
    fee_mint: str | None = Field(default=None, alias="feeMint")


class RoutePlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    swap_info: SwapInfo = Field(alias="swapInfo")
    percent: int | None = None


class QuoteResponse(BaseModel):
    """Quote as returned by Jupiter; unknown fields are kept for the swap request."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    input_mint: str = Field(alias="inputMint")
    output_mint: str = Field(alias="outputMint")
    in_amount: str = Field(alias="inAmount")
    out_amount: str = Field(alias="outAmount")
    other_amount_threshold: str = Field(alias="otherAmountThreshold")
    swap_mode: str = Field(alias="swapMode")
    slippage_bps: int = Field(alias="slippageBps")
    price_impact_pct: str = Field(alias="priceImpactPct")
    route_plan: list[RoutePlan] = Field(alias="routePlan")

    _source: dict[str, Any] | None = PrivateAttr(default=None)

    @model_validator(mode="wrap")
    @classmethod
    def _keep_source(cls, data: Any, handler: Any) -> "QuoteResponse":
        quote = handler(data)
        if isinstance(data, dict):
            quote._source = copy.deepcopy(data)
        return quote

    def to_payload(self) -> dict[str, Any]:
        """The quote exactly as Jupiter returned it, nulls included."""
        if self._source is not None:
            return copy.deepcopy(self._source)
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)

    def route_labels(self) -> list[str]:
        return [hop.swap_info.label for hop in self.route_plan]


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _check_response(resp: requests.Response, endpoint: str) -> Any:
    if not resp.ok:
        body = resp.text or "Unknown error"
        raise JupiterApiError(f"{endpoint} returned HTTP {resp.status_code}: {body}")
    try:
        return resp.json()
    except ValueError as exc:
        raise SerializationError(f"Invalid JSON from Jupiter: {exc}") from exc


def jup_get_quote(cfg: SolanaConfig, params: dict[str, str]) -> QuoteResponse:
    """
    Request a swap quote.

    params carries inputMint, outputMint, amount, swapMode, slippageBps and
    optionally taker, all as strings.
    """
    logger.info(
        "Requesting quote %s -> %s amount=%s",
        params.get("inputMint"),
        params.get("outputMint"),
        params.get("amount"),
    )
    try:
        resp = requests.get(cfg.quote_api_url, params=params, timeout=cfg.http_timeout_s)
    except requests.RequestException as exc:
        raise HttpError(f"Quote request failed: {exc}") from exc

    data = _check_response(resp, "Quote endpoint")
    try:
        return QuoteResponse.model_validate(data)
    except ValidationError as exc:
        raise SerializationError(f"Unexpected quote response: {exc}") from exc


def jup_build_swap(
    cfg: SolanaConfig,
    quote: dict[str, Any],
    user_public_key: str,
    wrap_and_unwrap_sol: bool = True,
) -> str:
    """Ask Jupiter to build the swap transaction; returns it base64 encoded."""
    body = {
        "quoteResponse": quote,
        "userPublicKey": user_public_key,
        "wrapAndUnwrapSol": wrap_and_unwrap_sol,
    }
    try:
        resp = requests.post(cfg.swap_api_url, json=body, timeout=cfg.http_timeout_s)
    except requests.RequestException as exc:
        raise HttpError(f"Swap request failed: {exc}") from exc

    data = _check_response(resp, "Swap endpoint")
    swap_transaction = data.get("swapTransaction") if isinstance(data, dict) else None
    if not isinstance(swap_transaction, str):
        raise SerializationError("Swap response is missing swapTransaction")
    return swap_transaction
