"""Entry point: python -m brainkeep [serve|status]

- No args / "serve": stdio tool server
- "status":          Print diagnostics and exit
"""

from __future__ import annotations

import asyncio
import logging
import sys

from brainkeep.config import load_config


def _setup_logging(level: str) -> None:
    # stdout carries the protocol; logs go to stderr
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _run_serve() -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from brainkeep.server import ToolServer

    server = ToolServer(config)
    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        pass


def _run_status() -> None:
    config = load_config()
    _setup_logging(config.log_level)

    from brainkeep.core import Brainkeep
    from brainkeep.tools import get_tools, run_tool

    text, is_error = run_tool(get_tools(Brainkeep(config)), "get_status", {})
    print(text)
    if is_error:
        sys.exit(1)


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "serve"

    if cmd == "serve":
        _run_serve()
    elif cmd == "status":
        _run_status()
    else:
        print("Usage: python -m brainkeep [serve|status]")
        print("  serve   stdio tool server (default)")
        print("  status  print diagnostics")
        sys.exit(1)


if __name__ == "__main__":
    main()
