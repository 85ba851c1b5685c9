"""
Error kinds raised by the Jupiter MCP server.

Every error renders as "<kind>: <detail>" so the dispatcher can hand the
message text straight back to the MCP client.
"""

from __future__ import annotations


class JupiterMcpError(Exception):
    """Base class for all domain errors surfaced through tools/call."""

    kind = "Error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}"


class SolanaClientError(JupiterMcpError):
    """Solana RPC endpoint returned an error or could not confirm a transaction."""

    kind = "Solana client error"


class SolanaSdkError(JupiterMcpError):
    """Key material, transaction or account data could not be decoded or signed."""

    kind = "Solana SDK error"


class HttpError(JupiterMcpError):
    kind = "HTTP request error"


class SerializationError(JupiterMcpError):
    kind = "Serialization error"


class Base58DecodeError(JupiterMcpError):
    kind = "Base58 decode error"


class EnvironmentConfigError(JupiterMcpError):
    """Configuration or key-material error detected at startup."""

    kind = "Environment error"


class JupiterApiError(JupiterMcpError):
    """Jupiter aggregator answered with a non-success status."""

    kind = "Jupiter API error"


class InvalidInputError(JupiterMcpError):
    kind = "Invalid input"


class McpProtocolError(JupiterMcpError):
    kind = "MCP protocol error"
