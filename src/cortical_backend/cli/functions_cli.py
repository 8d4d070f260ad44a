#!/usr/bin/env python3
"""
CLI entry point for listing, inspecting, and calling functions (cortical-functions command).
"""

import argparse
import asyncio
import json
import logging
import sys

from cortical_backend.config import ConfigManager
from cortical_backend.core.exceptions import ConfigError, FunctionConfigError
from cortical_backend.framework import CorticalFramework
from cortical_backend.logging import configure_logging


def load_framework(args) -> CorticalFramework:
    config = ConfigManager(args.config).load()
    if args.allow_commands:
        config.security.allow_commands = True
    if args.allow_scripts:
        config.security.allow_scripts = True
    return CorticalFramework(config, require_system_prompt=False).freeze()


def cmd_list(args, framework: CorticalFramework) -> int:
    """List all registered functions."""
    listing = framework.list_functions()
    if args.as_json:
        print(json.dumps(listing, indent=2))
        return 0

    print("\nAvailable functions:")
    for info in listing["functions"]:
        print(f"  - {info['name']} [{info['type']}]")
        if info["description"]:
            print(f"    {info['description']}")
    print()
    return 0


def cmd_info(args, framework: CorticalFramework) -> int:
    """Show detailed info for a specific function."""
    entry = framework.registry.get(args.function)
    if entry is None:
        print(f"Error: Function '{args.function}' not found", file=sys.stderr)
        return 1

    spec = {
        key: getattr(value, "__name__", repr(value)) if callable(value) else value
        for key, value in entry.spec.model_dump(exclude={"description", "parse_args"}, exclude_none=True).items()
    }
    info = entry.info() | {"spec": spec}
    if args.as_json:
        print(json.dumps(info, indent=2, default=str))
        return 0

    print(f"\n{entry.name} [{entry.kind.value}]")
    if entry.description:
        print(f"  {entry.description}")
    for key, value in spec.items():
        print(f"  {key}: {value}")
    print()
    return 0


def cmd_call(args, framework: CorticalFramework) -> int:
    """Detect and run one FUNCTION:<name>:<args> call."""
    events = asyncio.run(framework.call(args.text))
    if events is None:
        print("No registered function call detected", file=sys.stderr)
        return 1
    for event in events:
        print(json.dumps(event.to_dict()))
    return 1 if events[-1].type == "error" else 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the cortical-functions CLI."""
    parser = argparse.ArgumentParser(
        description="List, inspect, and call functions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    cortical-functions list                         List all functions
    cortical-functions info showAlert               Show details for a function
    cortical-functions call "FUNCTION:showAlert:Hi" Run a call and print its events
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="Config file (default: ~/.cortical/config.json)")
    parser.add_argument("--allow-commands", action="store_true", help="Enable command functions")
    parser.add_argument("--allow-scripts", action="store_true", help="Enable script functions")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list command
    list_parser = subparsers.add_parser("list", help="List all registered functions")
    list_parser.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON")
    list_parser.set_defaults(func=cmd_list)

    # info command
    info_parser = subparsers.add_parser("info", help="Show details for a specific function")
    info_parser.add_argument("function", help="Function name")
    info_parser.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON")
    info_parser.set_defaults(func=cmd_info)

    # call command
    call_parser = subparsers.add_parser("call", help="Run a function call and print its events")
    call_parser.add_argument("text", help='Call text, e.g. "FUNCTION:showAlert:Hello"')
    call_parser.set_defaults(func=cmd_call)

    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    # Default to 'list' if no command given
    if args.command is None:
        args.command = "list"
        args.as_json = False
        args.func = cmd_list

    try:
        framework = load_framework(args)
    except (ConfigError, FunctionConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return args.func(args, framework)


if __name__ == "__main__":
    sys.exit(main())
