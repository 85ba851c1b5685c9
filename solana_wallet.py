"""
Solana wallet configuration and helpers for the Jupiter MCP server.

Implements:
- SolanaConfig loaded from environment variables or a .env file
- Keypair loading from a base58 secret or a BIP-39 mnemonic
- Public key and amount validation for tool arguments
- Lamport / token amount formatting and explorer links
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Literal

from bip_utils import (
    Base58Decoder,
    Base58Encoder,
    Bip39MnemonicValidator,
    Bip39SeedGenerator,
    Bip44,
    Bip44Changes,
    Bip44Coins,
)
from dotenv import load_dotenv
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from jupiter_errors import (
    Base58DecodeError,
    EnvironmentConfigError,
    InvalidInputError,
    SolanaSdkError,
)

# Load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parent
load_dotenv(PROJECT_ROOT / ".env")

SolanaNetwork = Literal["mainnet-beta", "testnet", "devnet"]
Commitment = Literal["processed", "confirmed", "finalized"]

LAMPORTS_DECIMALS = 9
MAX_U64 = 2**64 - 1

RPC_URLS: dict[str, str] = {
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "devnet": "https://api.devnet.solana.com",
}

_NETWORK_ALIASES: dict[str, SolanaNetwork] = {
    "mainnet-beta": "mainnet-beta",
    "mainnet": "mainnet-beta",
    "testnet": "testnet",
    "devnet": "devnet",
}

EXPLORER_TX_URL = "https://explorer.solana.com/tx"

DEFAULT_QUOTE_API_URL = "https://ultra-api.jup.ag/order"
DEFAULT_SWAP_API_URL = "https://quote-api.jup.ag/v6/swap"


def parse_network(value: str) -> SolanaNetwork:
    network = _NETWORK_ALIASES.get(value.strip().lower())
    if network is None:
        raise EnvironmentConfigError(
            f"Invalid network: {value}. Use 'mainnet-beta', 'testnet', or 'devnet'"
        )
    return network


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise EnvironmentConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class SolanaConfig:
    """
    Configuration for the Jupiter MCP server.

    Values are sourced from environment variables or a .env file.

    Key material:
    - SOLANA_PRIVATE_KEY: base58-encoded 64-byte keypair.
    - SOLANA_MNEMONIC: BIP-39 seed phrase; when set it takes precedence and the
      keypair is derived at m/44'/501'/0'/0'.
    - SOLANA_MNEMONIC_PASSPHRASE: optional BIP-39 passphrase.

    Network:
    - SOLANA_NETWORK: "mainnet-beta" (or "mainnet"), "testnet" or "devnet"
      (defaults to "devnet").
    - SOLANA_RPC_URL: overrides the network's public RPC endpoint.
    - SOLANA_COMMITMENT: "processed", "confirmed" or "finalized".

    Jupiter and timing:
    - JUPITER_QUOTE_API_URL / JUPITER_SWAP_API_URL: aggregator endpoints.
    - JUPITER_HTTP_TIMEOUT: per-request HTTP timeout in seconds.
    - SOLANA_CONFIRM_TIMEOUT / SOLANA_CONFIRM_POLL_INTERVAL: confirmation polling.
    """

    network: SolanaNetwork
    rpc_url: str
    private_key: str
    commitment: Commitment = "confirmed"
    quote_api_url: str = DEFAULT_QUOTE_API_URL
    swap_api_url: str = DEFAULT_SWAP_API_URL
    http_timeout_s: float = 30.0
    confirm_timeout_s: float = 60.0
    confirm_poll_interval_s: float = 0.5

    @classmethod
    def from_env(cls) -> SolanaConfig:
        network = parse_network(os.getenv("SOLANA_NETWORK", "devnet"))
        rpc_url = os.getenv("SOLANA_RPC_URL") or RPC_URLS[network]

        private_key = os.getenv("SOLANA_PRIVATE_KEY")
        mnemonic = os.getenv("SOLANA_MNEMONIC")

        # When both are set, prefer mnemonic (BIP-39) over the raw keypair.
        if mnemonic:
            private_key = _derive_private_key_from_mnemonic(mnemonic)
            del mnemonic
        if not private_key:
            raise EnvironmentConfigError(
                "SOLANA_PRIVATE_KEY environment variable is required "
                "(or set SOLANA_MNEMONIC to derive one)"
            )

        commitment_raw = os.getenv("SOLANA_COMMITMENT", "confirmed").strip().lower()
        if commitment_raw not in ("processed", "confirmed", "finalized"):
            raise EnvironmentConfigError(
                f"Invalid SOLANA_COMMITMENT={commitment_raw!r}. "
                "Expected 'processed', 'confirmed' or 'finalized'."
            )

        return cls(
            network=network,
            rpc_url=rpc_url,
            private_key=private_key,
            commitment=commitment_raw,  # type: ignore[arg-type]
            quote_api_url=os.getenv("JUPITER_QUOTE_API_URL") or DEFAULT_QUOTE_API_URL,
            swap_api_url=os.getenv("JUPITER_SWAP_API_URL") or DEFAULT_SWAP_API_URL,
            http_timeout_s=_env_float("JUPITER_HTTP_TIMEOUT", 30.0),
            confirm_timeout_s=_env_float("SOLANA_CONFIRM_TIMEOUT", 60.0),
            confirm_poll_interval_s=_env_float("SOLANA_CONFIRM_POLL_INTERVAL", 0.5),
        )


def _derive_private_key_from_mnemonic(mnemonic: str) -> str:
    try:
        Bip39MnemonicValidator().Validate(mnemonic)
    except Exception as exc:  # noqa: BLE001
        raise EnvironmentConfigError(
            "SOLANA_MNEMONIC is not a valid BIP-39 seed phrase. "
            "Double-check words and spacing."
        ) from exc

    passphrase = os.getenv("SOLANA_MNEMONIC_PASSPHRASE", "")
    seed_bytes = Bip39SeedGenerator(mnemonic).Generate(passphrase)
    # Solana wallets (Phantom, Solflare, solana-keygen) use m/44'/501'/0'/0'.
    ctx = (
        Bip44.FromSeed(seed_bytes, Bip44Coins.SOLANA)
        .Purpose()
        .Coin()
        .Account(0)
        .Change(Bip44Changes.CHAIN_EXT)
    )
    keypair = Keypair.from_seed(ctx.PrivateKey().Raw().ToBytes())
    return Base58Encoder.Encode(bytes(keypair))


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


def load_keypair(cfg: SolanaConfig) -> Keypair:
    """Decode the configured base58 secret into a signing keypair."""
    try:
        secret = Base58Decoder.Decode(cfg.private_key.strip())
    except ValueError as exc:
        raise Base58DecodeError(str(exc)) from exc
    if len(secret) != 64:
        raise SolanaSdkError(
            f"Invalid private key format: expected 64 bytes, got {len(secret)}"
        )
    try:
        return Keypair.from_bytes(secret)
    except ValueError as exc:
        raise SolanaSdkError(f"Invalid private key format: {exc}") from exc


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def parse_pubkey(value: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid public key '{value}': {exc}") from exc


def parse_amount(value: str) -> int:
    """Parse a smallest-unit amount string as an unsigned 64-bit integer."""
    if not (value.isascii() and value.isdigit()):
        raise InvalidInputError(f"Invalid amount '{value}': expected a non-negative integer")
    amount = int(value)
    if amount > MAX_U64:
        raise InvalidInputError(f"Invalid amount '{value}': number too large")
    return amount


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_token_amount(amount: int, decimals: int) -> str:
    value = Decimal(amount).scaleb(-decimals)
    return f"{value:.{decimals}f}"


def format_sol(lamports: int) -> str:
    return format_token_amount(lamports, LAMPORTS_DECIMALS)


def cluster_param(network: SolanaNetwork) -> str | None:
    if network == "mainnet-beta":
        return None
    return network


def get_explorer_url(signature: Signature | str, cfg: SolanaConfig) -> str:
    url = f"{EXPLORER_TX_URL}/{signature}"
    cluster = cluster_param(cfg.network)
    if cluster:
        url += f"?cluster={cluster}"
    return url
