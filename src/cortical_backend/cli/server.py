#!/usr/bin/env python3
"""
CLI entry point for running the HTTP server (cortical-server command).
"""

import argparse
import logging
import sys

from cortical_backend.config import ConfigManager
from cortical_backend.core.exceptions import ConfigError, FunctionConfigError
from cortical_backend.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Serve the function-calling chat API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    cortical-server --config ./assistant.json
    cortical-server --port 8080 --model llama3.2:3b
    ALLOW_COMMANDS=true cortical-server --config ./ops.json
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="Config file (default: ~/.cortical/config.json)")
    parser.add_argument("--host", help="Bind address (overrides server.host)")
    parser.add_argument("--port", type=int, help="Bind port (overrides server.port)")
    parser.add_argument("--model", help="LLM model name (overrides llm.model)")
    parser.add_argument("--allow-commands", action="store_true", help="Enable command functions")
    parser.add_argument("--allow-scripts", action="store_true", help="Enable script functions")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the cortical-server CLI."""
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger = logging.getLogger("cortical_backend.cli")

    try:
        config = ConfigManager(args.config).load()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.model:
        config.llm.model = args.model
    if args.allow_commands:
        config.security.allow_commands = True
    if args.allow_scripts:
        config.security.allow_scripts = True

    # Deferred so --help works without the server stack installed
    import uvicorn

    from cortical_backend.framework import CorticalFramework
    from cortical_backend.server import create_app

    try:
        framework = CorticalFramework(config)
    except (ConfigError, FunctionConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    app = create_app(framework)
    logger.info(f"Serving {config.app.name} on http://{config.server.host}:{config.server.port}")
    logger.info(f"Model: {config.openai_llm.model if config.openai_llm.endpoint else config.llm.model}")
    logger.info(
        f"Commands: {'enabled' if config.security.allow_commands else 'disabled'}, "
        f"scripts: {'enabled' if config.security.allow_scripts else 'disabled'}"
    )
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level="debug" if args.verbose else "info")
    return 0


if __name__ == "__main__":
    sys.exit(main())
