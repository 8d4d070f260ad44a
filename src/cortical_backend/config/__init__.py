"""Configuration management for cortical-backend."""

from cortical_backend.config.config import (
    DEFAULTS,
    ENV_OVERRIDES,
    ApiKeyConfig,
    AppConfig,
    AuthConfig,
    Config,
    ConfigManager,
    ExamplesConfig,
    LLMConfig,
    OpenAILLMConfig,
    RetrievalConfig,
    SecurityConfig,
    ServerConfig,
    WorkflowConfig,
    get_config,
    get_config_manager,
)

__all__ = [
    "DEFAULTS",
    "ENV_OVERRIDES",
    "Config",
    "ServerConfig",
    "LLMConfig",
    "OpenAILLMConfig",
    "AppConfig",
    "SecurityConfig",
    "AuthConfig",
    "ApiKeyConfig",
    "WorkflowConfig",
    "RetrievalConfig",
    "ExamplesConfig",
    "ConfigManager",
    "get_config",
    "get_config_manager",
]
