"""MCP server: brainkeep — session memory, notes and credential vault tools.

Protocol: JSON-RPC 2.0 over stdio (NDJSON).

Usage:
  python -m brainkeep serve
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from brainkeep import __version__
from brainkeep.config import BrainkeepConfig
from brainkeep.core import Brainkeep
from brainkeep.tools import TOOL_DEFINITIONS, get_tools, run_tool

logger = logging.getLogger(__name__)

SERVER_NAME = "brainkeep"
PROTOCOL_VERSION = "2024-11-05"


# ── JSON-RPC 2.0 helpers ─────────────────────────────────────


def jsonrpc_result(req_id, result):
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def jsonrpc_error(req_id, code, message):
    return {"jsonrpc": "2.0", "id": req_id, "error": {"code": code, "message": message}}


# ── Request handler ──────────────────────────────────────────


class ToolServer:
    """Answers initialize, tools/list and tools/call for one Brainkeep."""

    def __init__(self, config: BrainkeepConfig, keeper: Brainkeep | None = None) -> None:
        self.config = config
        self.keeper = keeper or Brainkeep(config)
        self.tools = get_tools(self.keeper)

    async def handle_request(self, req: dict) -> dict | None:
        req_id = req.get("id")
        method = req.get("method", "")

        # Notifications (no id) get no response
        if req_id is None:
            if method == "notifications/initialized":
                logger.info("Client initialized")
            return None

        if method == "initialize":
            return jsonrpc_result(req_id, {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            })

        if method == "tools/list":
            return jsonrpc_result(req_id, {"tools": TOOL_DEFINITIONS})

        if method == "tools/call":
            params = req.get("params", {})
            text, is_error = run_tool(
                self.tools,
                params.get("name", ""),
                params.get("arguments") or {},
                self.config.server.max_response_chars,
            )
            result = {"content": [{"type": "text", "text": text}]}
            if is_error:
                result["isError"] = True
            return jsonrpc_result(req_id, result)

        return jsonrpc_error(req_id, -32601, f"Method not found: {method}")

    # ── Stdio transport (NDJSON) ─────────────────────────────

    async def serve(self) -> None:
        logger.info("%s v%s serving %s", SERVER_NAME, __version__, self.config.brain_dir)

        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await asyncio.get_running_loop().connect_read_pipe(lambda: protocol, sys.stdin)

        while True:
            line = await reader.readline()
            if not line:
                break
            line = line.decode("utf-8").strip()
            if not line:
                continue

            try:
                req = json.loads(line)
            except json.JSONDecodeError as e:
                logger.error("Parse error: %s", e)
                sys.stdout.write(json.dumps(jsonrpc_error(None, -32700, "Parse error")) + "\n")
                sys.stdout.flush()
                continue

            logger.debug("<- %s", req.get("method", "?"))
            try:
                response = await self.handle_request(req)
            except Exception as e:
                logger.exception("Handler error")
                response = jsonrpc_error(req.get("id"), -32603, f"Internal error: {e}")
            if response:
                sys.stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
                sys.stdout.flush()
