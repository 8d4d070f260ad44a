"""
CLI module for the cortical_backend package.

Provides command-line interfaces for serving and function inspection.
"""

from cortical_backend.cli.functions_cli import main as functions_main
from cortical_backend.cli.server import main as server_main

__all__ = [
    "server_main",
    "functions_main",
]
