"""Unit tests for Solana wallet configuration, key loading and formatting."""

import sys
from pathlib import Path

import pytest
from solders.keypair import Keypair

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT))

import solana_wallet  # noqa: E402
from jupiter_errors import (  # noqa: E402
    Base58DecodeError,
    EnvironmentConfigError,
    InvalidInputError,
    SolanaSdkError,
)
from solana_wallet import SolanaConfig  # noqa: E402

TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)

ENV_VARS = (
    "SOLANA_NETWORK",
    "SOLANA_RPC_URL",
    "SOLANA_PRIVATE_KEY",
    "SOLANA_MNEMONIC",
    "SOLANA_MNEMONIC_PASSPHRASE",
    "SOLANA_COMMITMENT",
    "JUPITER_QUOTE_API_URL",
    "JUPITER_SWAP_API_URL",
    "JUPITER_HTTP_TIMEOUT",
    "SOLANA_CONFIRM_TIMEOUT",
    "SOLANA_CONFIRM_POLL_INTERVAL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def _make_cfg(network="devnet", private_key=None):
    return SolanaConfig(
        network=network,
        rpc_url=solana_wallet.RPC_URLS[network],
        private_key=private_key or str(Keypair()),
    )


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def test_format_sol():
    assert solana_wallet.format_sol(1_000_000_000) == "1.000000000"
    assert solana_wallet.format_sol(500_000_000) == "0.500000000"
    assert solana_wallet.format_sol(1) == "0.000000001"
    assert solana_wallet.format_sol(0) == "0.000000000"


def test_format_sol_is_exact_for_large_balances():
    assert solana_wallet.format_sol(2**64 - 1) == "18446744073.709551615"


def test_format_token_amount():
    assert solana_wallet.format_token_amount(1_000_000, 6) == "1.000000"
    assert solana_wallet.format_token_amount(500_000, 6) == "0.500000"
    assert solana_wallet.format_token_amount(42, 0) == "42"


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def test_parse_amount():
    assert solana_wallet.parse_amount("1000") == 1000
    assert solana_wallet.parse_amount("0") == 0
    assert solana_wallet.parse_amount(str(2**64 - 1)) == 2**64 - 1


@pytest.mark.parametrize("value", ["invalid", "-100", "", "1.5", " 10", str(2**64)])
def test_parse_amount_rejects(value):
    with pytest.raises(InvalidInputError):
        solana_wallet.parse_amount(value)


def test_parse_pubkey_accepts_valid_address():
    pubkey = solana_wallet.parse_pubkey("11111111111111111111111111111112")
    assert str(pubkey) == "11111111111111111111111111111112"


def test_parse_pubkey_rejects_invalid_address():
    with pytest.raises(InvalidInputError) as excinfo:
        solana_wallet.parse_pubkey("not-a-valid-address")
    assert "not-a-valid-address" in str(excinfo.value)
    assert str(excinfo.value).startswith("Invalid input:")


# ---------------------------------------------------------------------------
# Explorer links
# ---------------------------------------------------------------------------


def test_explorer_url_includes_cluster_off_mainnet():
    cfg = _make_cfg("devnet")
    assert (
        solana_wallet.get_explorer_url("abc123", cfg)
        == "https://explorer.solana.com/tx/abc123?cluster=devnet"
    )


def test_explorer_url_mainnet_has_no_cluster():
    cfg = _make_cfg("mainnet-beta")
    assert solana_wallet.get_explorer_url("abc123", cfg) == "https://explorer.solana.com/tx/abc123"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_from_env_defaults(clean_env):
    secret = str(Keypair())
    clean_env.setenv("SOLANA_PRIVATE_KEY", secret)

    cfg = SolanaConfig.from_env()

    assert cfg.network == "devnet"
    assert cfg.rpc_url == "https://api.devnet.solana.com"
    assert cfg.private_key == secret
    assert cfg.commitment == "confirmed"
    assert cfg.quote_api_url == solana_wallet.DEFAULT_QUOTE_API_URL
    assert cfg.swap_api_url == solana_wallet.DEFAULT_SWAP_API_URL


def test_from_env_mainnet_alias_and_rpc_override(clean_env):
    clean_env.setenv("SOLANA_PRIVATE_KEY", str(Keypair()))
    clean_env.setenv("SOLANA_NETWORK", "Mainnet")
    clean_env.setenv("SOLANA_RPC_URL", "https://rpc.example.com")
    clean_env.setenv("SOLANA_COMMITMENT", "finalized")

    cfg = SolanaConfig.from_env()

    assert cfg.network == "mainnet-beta"
    assert cfg.rpc_url == "https://rpc.example.com"
    assert cfg.commitment == "finalized"


def test_from_env_requires_key_material(clean_env):
    with pytest.raises(EnvironmentConfigError) as excinfo:
        SolanaConfig.from_env()
    assert "SOLANA_PRIVATE_KEY" in str(excinfo.value)


def test_from_env_rejects_unknown_network(clean_env):
    clean_env.setenv("SOLANA_PRIVATE_KEY", str(Keypair()))
    clean_env.setenv("SOLANA_NETWORK", "localnet")
    with pytest.raises(EnvironmentConfigError):
        SolanaConfig.from_env()


def test_from_env_rejects_unknown_commitment(clean_env):
    clean_env.setenv("SOLANA_PRIVATE_KEY", str(Keypair()))
    clean_env.setenv("SOLANA_COMMITMENT", "recent")
    with pytest.raises(EnvironmentConfigError):
        SolanaConfig.from_env()


def test_from_env_rejects_non_numeric_timeout(clean_env):
    clean_env.setenv("SOLANA_PRIVATE_KEY", str(Keypair()))
    clean_env.setenv("SOLANA_CONFIRM_TIMEOUT", "soon")
    with pytest.raises(EnvironmentConfigError):
        SolanaConfig.from_env()


def test_from_env_mnemonic_takes_precedence(clean_env):
    raw_secret = str(Keypair())
    clean_env.setenv("SOLANA_PRIVATE_KEY", raw_secret)
    clean_env.setenv("SOLANA_MNEMONIC", TEST_MNEMONIC)

    cfg = SolanaConfig.from_env()
    again = SolanaConfig.from_env()

    assert cfg.private_key != raw_secret
    assert cfg.private_key == again.private_key
    keypair = solana_wallet.load_keypair(cfg)
    assert len(str(keypair.pubkey())) >= 32


def test_from_env_rejects_invalid_mnemonic(clean_env):
    clean_env.setenv("SOLANA_MNEMONIC", "not a real seed phrase")
    with pytest.raises(EnvironmentConfigError):
        SolanaConfig.from_env()


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


def test_load_keypair_round_trips_secret():
    keypair = Keypair()
    cfg = _make_cfg(private_key=str(keypair))
    assert solana_wallet.load_keypair(cfg).pubkey() == keypair.pubkey()


def test_load_keypair_rejects_non_base58():
    cfg = _make_cfg(private_key="test_key")
    with pytest.raises(Base58DecodeError):
        solana_wallet.load_keypair(cfg)


def test_load_keypair_rejects_wrong_length():
    cfg = _make_cfg(private_key="11111111111111111111111111111112")
    with pytest.raises(SolanaSdkError) as excinfo:
        solana_wallet.load_keypair(cfg)
    assert "Invalid private key format" in str(excinfo.value)
