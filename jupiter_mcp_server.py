#!/usr/bin/env python3
"""
MCP server for Jupiter swaps and Solana balances.

Speaks newline-delimited JSON-RPC 2.0 on stdin/stdout: one request per input
line, one compact JSON response per output line. Requests are handled strictly
one at a time. Logs go to stderr so stdout carries protocol traffic only.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any, BinaryIO, Literal, Optional, TextIO, Union

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ErrorData,
    JSONRPCError,
    JSONRPCResponse,
)
from pydantic import BaseModel, StrictInt, StrictStr, ValidationError

from jupiter_errors import InvalidInputError, JupiterMcpError, McpProtocolError
from jupiter_tools import TOOLS
from solana_wallet import SolanaConfig

logger = logging.getLogger("jupiter_mcp")

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "jupiter-ag-mcp"
SERVER_VERSION = "1.0.0"

# Id used when the request line could not be parsed at all.
UNKNOWN_REQUEST_ID = "unknown"

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class ProtocolRequest(BaseModel):
    jsonrpc: Literal["2.0"]
    id: Union[StrictStr, StrictInt]
    method: StrictStr
    params: Any = None


class ToolCallParams(BaseModel):
    name: StrictStr
    arguments: Optional[dict[str, Any]] = None


Response = Union[JSONRPCResponse, JSONRPCError]


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Send log records to stderr; stdout is reserved for JSON-RPC traffic."""
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    return logger


def _success(request_id: str | int, result: dict[str, Any]) -> JSONRPCResponse:
    return JSONRPCResponse(jsonrpc="2.0", id=request_id, result=result)


def _error(request_id: str | int, code: int, message: str) -> JSONRPCError:
    return JSONRPCError(
        jsonrpc="2.0",
        id=request_id,
        error=ErrorData(code=code, message=message),
    )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


def initialize_result() -> dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
    }


def list_tools() -> dict[str, Any]:
    return {
        "tools": [
            spec.definition.model_dump(mode="json", by_alias=True, exclude_none=True)
            for spec in TOOLS.values()
        ]
    }


async def call_tool(cfg: SolanaConfig, params: Any) -> dict[str, Any]:
    try:
        call = ToolCallParams.model_validate(params)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid tool call params: {exc}") from exc

    spec = TOOLS.get(call.name)
    if spec is None:
        raise InvalidInputError(f"Unknown tool: {call.name}")

    logger.info("Calling tool %s", call.name)
    result = await spec.execute(cfg, call.arguments or {})
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


async def handle_request(cfg: SolanaConfig, request: ProtocolRequest) -> Response:
    """Dispatch one request; every failure becomes a JSON-RPC error response."""
    method = request.method
    try:
        if method == "initialize":
            logger.info("Client initializing MCP connection")
            return _success(request.id, initialize_result())
        if method == "ping":
            return _success(request.id, {})
        if method == "tools/list":
            return _success(request.id, list_tools())
        if method == "tools/call":
            if request.params is None:
                logger.warning("tools/call request missing params")
                return _error(request.id, INVALID_PARAMS, "Missing params")
            return _success(request.id, await call_tool(cfg, request.params))
    except JupiterMcpError as exc:
        logger.error("Error in %s: %s", method, exc)
        return _error(request.id, INTERNAL_ERROR, str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error in %s", method)
        return _error(request.id, INTERNAL_ERROR, str(exc))

    logger.warning("Unknown method: %s", method)
    return _error(request.id, METHOD_NOT_FOUND, "Method not found")


# ---------------------------------------------------------------------------
# Protocol engine
# ---------------------------------------------------------------------------


def parse_request(line: str) -> ProtocolRequest | None:
    """
    Parse one input line.

    Returns None for notifications (a method without an id), which never get
    a response. Raises McpProtocolError for anything that is not a JSON-RPC
    request.
    """
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise McpProtocolError(f"Invalid JSON: {exc}") from exc

    if isinstance(payload, dict) and "id" not in payload and isinstance(payload.get("method"), str):
        return None
    try:
        return ProtocolRequest.model_validate(payload)
    except ValidationError as exc:
        raise McpProtocolError(f"Invalid request: {exc}") from exc


def write_message(writer: TextIO, message: Response) -> None:
    """Write one response line and flush before anything else is read."""
    data = json.dumps(
        message.model_dump(mode="json", by_alias=True, exclude_none=True),
        separators=(",", ":"),
    )
    writer.write(data + "\n")
    writer.flush()


async def run_stdio(
    cfg: SolanaConfig,
    reader: BinaryIO | TextIO | None = None,
    writer: TextIO | None = None,
) -> None:
    """
    Serve requests until the input stream is exhausted.

    Lines are read as bytes from stdin and decoded here, so undecodable
    input is answered with a parse error like any other malformed line.
    OSError from either stream propagates to the caller.
    """
    reader = reader or sys.stdin.buffer
    writer = writer or sys.stdout
    logger.info("Jupiter AG MCP Server starting on stdio")

    while True:
        line = await asyncio.to_thread(reader.readline)
        if not line:
            logger.info("Client disconnected")
            break

        try:
            text = line.decode("utf-8") if isinstance(line, bytes) else line
        except UnicodeDecodeError as exc:
            logger.error("Failed to decode request: %s", exc)
            write_message(writer, _error(UNKNOWN_REQUEST_ID, PARSE_ERROR, "Parse error"))
            continue

        text = text.strip()
        if not text:
            continue

        try:
            request = parse_request(text)
        except McpProtocolError as exc:
            logger.error("Failed to parse request: %s - Input: %s", exc, text)
            write_message(writer, _error(UNKNOWN_REQUEST_ID, PARSE_ERROR, "Parse error"))
            continue

        if request is None:
            logger.debug("Ignoring notification: %s", text)
            continue

        logger.info("Handling request: %s", request.method)
        response = await handle_request(cfg, request)
        write_message(writer, response)

    logger.info("Jupiter AG MCP Server shutting down")


def main() -> None:
    configure_logging()
    try:
        cfg = SolanaConfig.from_env()
    except JupiterMcpError as exc:
        logger.error("Failed to load configuration: %s", exc)
        sys.exit(1)

    logger.info("Configuration loaded successfully")
    logger.info("Network: %s", cfg.network)
    logger.info("RPC URL: %s", cfg.rpc_url)

    try:
        asyncio.run(run_stdio(cfg))
    except OSError as exc:
        logger.error("Server error: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
