"""
cortical_backend - LLM function-call orchestration

Detects ``FUNCTION:<name>:<arguments>`` calls in chat messages and model
output, runs them through pluggable handlers (HTTP APIs, shell commands,
Python scripts, workflow webhooks, document retrieval, browser actions) and
streams the results to clients as typed events.

Example usage:
    from cortical_backend import CorticalFramework, Config

    config = Config(system_prompt="You are a helpful assistant.")
    framework = CorticalFramework(config)

    @framework.registry.script(name="calculateStats", parse_args="list")
    def calculate_stats(args, caps):
        numbers = [float(n) for n in args]
        return {"count": len(numbers), "mean": sum(numbers) / len(numbers)}

    # Serve over HTTP (requires fastapi + uvicorn)
    from cortical_backend.server import create_app
    app = create_app(framework)
"""

__version__ = "2.0.0"

# Core exports
from cortical_backend.core import (
    DetectedCall,
    DispatchResult,
    FunctionDefinition,
    FunctionKind,
    FunctionRegistry,
)
from cortical_backend.config import Config, ConfigManager
from cortical_backend.engine import StreamRelay
from cortical_backend.framework import CorticalFramework

__all__ = [
    # Version
    "__version__",
    # Core
    "FunctionRegistry",
    "FunctionKind",
    "FunctionDefinition",
    "DetectedCall",
    "DispatchResult",
    # Config
    "Config",
    "ConfigManager",
    # Engine
    "StreamRelay",
    "CorticalFramework",
]
