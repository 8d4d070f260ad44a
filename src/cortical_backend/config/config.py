"""
Configuration management for cortical-backend.

Settings come from, in increasing priority: DEFAULTS, a JSON file
(~/.cortical/config.json by default), environment variables, and keyword
overrides passed by code or the CLI. The function table may hold Python
callables when the config is built programmatically.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from cortical_backend.core.exceptions import ConfigError
from cortical_backend.engine.detector import DEFAULT_FUNCTION_PATTERN

logger = logging.getLogger(__name__)


# Default values - single source of truth
DEFAULTS: dict[str, Any] = {
    "server": {"host": "localhost", "port": 3001, "cors_enabled": True},
    "llm": {
        "endpoint": "http://localhost:11434/api/generate",
        "model": "gemma3:1b",
        "timeout": 900.0,
        "stream_timeout": 1200.0,
        "detect_function_calls": False,
    },
    "openai_llm": {
        "endpoint": None,
        "model": "gpt-3.5-turbo",
        "api_key": None,
        "timeout": 900.0,
        "stream_timeout": 1200.0,
    },
    "app": {
        "name": "AI Assistant",
        "description": "AI-powered assistant",
        "welcome_message": "Hello! How can I help you today?",
        "browser_actions": True,
    },
    "system_prompt": "",
    "function_pattern": DEFAULT_FUNCTION_PATTERN,
    "security": {"allow_commands": False, "allow_scripts": False},
    "auth": {"enabled": False, "generate_keys": True},
    "workflow": {"endpoint": None},
    "retrieval": {"endpoint": None, "collection_name": None},
    "examples": {
        "enabled": True,
        "count": 6,
        "prompts": [
            "Hello, what can you help me with?",
            "Tell me about your capabilities",
            "What functions do you have available?",
            "Help me get started",
        ],
    },
}

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "ALLOW_COMMANDS": ("security", "allow_commands"),
    "ALLOW_SCRIPTS": ("security", "allow_scripts"),
    "LLM_ENDPOINT": ("llm", "endpoint"),
    "LLM_MODEL": ("llm", "model"),
    "LLM_TIMEOUT": ("llm", "timeout"),
    "LLM_STREAM_TIMEOUT": ("llm", "stream_timeout"),
    "OPENAI_API_KEY": ("openai_llm", "api_key"),
}


class _Section(BaseModel):
    """Accepts snake_case and camelCase keys; ignores unknown keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        arbitrary_types_allowed=True,
    )


class ServerConfig(_Section):
    host: str = Field(
        default=DEFAULTS["server"]["host"],
        validation_alias=AliasChoices("host", "ip"),
        description="Bind address",
    )
    port: int = Field(default=DEFAULTS["server"]["port"], description="Bind port")
    cors_enabled: bool = Field(default=DEFAULTS["server"]["cors_enabled"], description="Allow cross-origin requests")


class LLMConfig(_Section):
    endpoint: str = Field(default=DEFAULTS["llm"]["endpoint"], description="Generate API URL")
    model: str = Field(default=DEFAULTS["llm"]["model"], description="Model name")
    timeout: float = Field(
        default=DEFAULTS["llm"]["timeout"],
        description="Seconds to wait for the backend to answer the opening request",
    )
    stream_timeout: float = Field(
        default=DEFAULTS["llm"]["stream_timeout"],
        description="Seconds allowed for one whole request",
    )
    detect_function_calls: bool = Field(
        default=DEFAULTS["llm"]["detect_function_calls"],
        description="Request a full completion first and check it for a function call",
    )


class OpenAILLMConfig(_Section):
    endpoint: Optional[str] = Field(default=None, description="Chat completions URL; enables this backend")
    model: str = Field(default=DEFAULTS["openai_llm"]["model"], description="Model name")
    api_key: Optional[str] = Field(default=None, description="Bearer token")
    timeout: float = DEFAULTS["openai_llm"]["timeout"]
    stream_timeout: float = DEFAULTS["openai_llm"]["stream_timeout"]


class AppConfig(_Section):
    model_config = ConfigDict(extra="allow")

    name: str = DEFAULTS["app"]["name"]
    description: str = DEFAULTS["app"]["description"]
    welcome_message: str = DEFAULTS["app"]["welcome_message"]
    browser_actions: bool = DEFAULTS["app"]["browser_actions"]


class SecurityConfig(_Section):
    allow_commands: bool = Field(default=False, description="Enable command-kind functions")
    allow_scripts: bool = Field(default=False, description="Enable script-kind functions")


class ApiKeyConfig(_Section):
    name: str = "API Key"
    role: str = "user"


class AuthConfig(_Section):
    enabled: bool = False
    api_keys: dict[str, ApiKeyConfig] = Field(
        default_factory=dict,
        description="Accepted keys mapped to their identity",
    )
    generate_keys: bool = Field(
        default=DEFAULTS["auth"]["generate_keys"],
        description="Generate admin and ui keys at startup when none are configured",
    )


class WorkflowConfig(_Section):
    endpoint: Optional[str] = Field(default=None, description="Workflow server base URL")


class RetrievalConfig(_Section):
    endpoint: Optional[str] = Field(default=None, description="ChromaDB server URL")
    collection_name: Optional[str] = Field(default=None, description="ChromaDB collection")


class ExamplesConfig(_Section):
    enabled: bool = DEFAULTS["examples"]["enabled"]
    count: int = DEFAULTS["examples"]["count"]
    prompts: list[str] = Field(default_factory=lambda: list(DEFAULTS["examples"]["prompts"]))


class Config(_Section):
    """Configuration settings for cortical-backend."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    openai_llm: OpenAILLMConfig = Field(
        default_factory=OpenAILLMConfig,
        validation_alias=AliasChoices("openai_llm", "openAILLM", "openaiLlm"),
    )
    app: AppConfig = Field(default_factory=AppConfig)
    system_prompt: str = Field(default=DEFAULTS["system_prompt"], description="Base system prompt")
    function_pattern: str = Field(
        default=DEFAULTS["function_pattern"],
        description="Regex with groups (name, arguments)",
    )
    functions: dict[str, Any] = Field(default_factory=dict, description="Function table")
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    workflow: WorkflowConfig = Field(
        default_factory=WorkflowConfig,
        validation_alias=AliasChoices("workflow", "n8n"),
    )
    retrieval: RetrievalConfig = Field(
        default_factory=RetrievalConfig,
        validation_alias=AliasChoices("retrieval", "chroma"),
    )
    examples: ExamplesConfig = Field(default_factory=ExamplesConfig)

    def validate_for_serving(self) -> None:
        """Raise ConfigError when the config cannot back a server."""
        if not self.system_prompt:
            raise ConfigError("Missing required config: system_prompt")

    def public_dict(self) -> dict[str, Any]:
        """Settings safe to show to clients or print (no keys, no callables)."""
        return {
            "app": self.app.model_dump(),
            "functions": len(self.functions),
            "auth": {"enabled": self.auth.enabled},
        }


def _parse_env_value(raw: str, current: Any) -> Any:
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, int):
        return int(raw)
    return raw


class ConfigManager:
    """Manages loading and saving configuration."""

    CONFIG_DIR = Path.home() / ".cortical"
    CONFIG_FILE = CONFIG_DIR / "config.json"

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path).expanduser() if path else self.CONFIG_FILE
        self._config: Optional[Config] = None

    @property
    def config(self) -> Config:
        """Get the current config, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def read_file(self) -> dict[str, Any]:
        """Raw JSON content of the config file, or {} when it does not exist."""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid config file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.path} must contain a JSON object")
        return data

    def load(self, env: dict[str, str] | None = None, **overrides: Any) -> Config:
        """Load file, environment and keyword overrides into a Config.

        Args:
            env: Environment mapping; defaults to os.environ.
            **overrides: Top-level keys replacing the file's values.

        Returns:
            The validated Config.
        """
        data = self.read_file()
        for key, value in overrides.items():
            if value is None:
                continue
            # The file may spell the same key in camelCase, which pydantic prefers
            data.pop(to_camel(key), None)
            data[key] = value
        self._config = self.build(data, env=os.environ if env is None else env)
        return self._config

    @staticmethod
    def build(data: dict[str, Any] | None = None, env: dict[str, str] | None = None) -> Config:
        """Validate a config mapping, then apply environment overrides."""
        try:
            config = Config.model_validate(data or {})
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        for var, (section, key) in ENV_OVERRIDES.items():
            raw = (env or {}).get(var)
            if raw is None or raw == "":
                continue
            target = getattr(config, section) if section else config
            try:
                value = _parse_env_value(raw, getattr(target, key))
            except ValueError:
                raise ConfigError(f"Invalid value for {var}: {raw!r}") from None
            setattr(target, key, value)
            logger.debug(f"Config {section}.{key} overridden by ${var}")
        return config

    def save(self, config: Optional[Config] = None) -> Path:
        """Write the config as JSON, dropping functions that hold callables.

        Returns:
            Path to saved config file.
        """
        if config is not None:
            self._config = config
        if self._config is None:
            self._config = Config()

        data = self._config.model_dump(exclude={"functions"})
        functions = {}
        for name, definition in self._config.functions.items():
            try:
                json.dumps(definition)
            except TypeError:
                logger.warning(f"Not saving function '{name}': definition is not JSON serializable")
                continue
            functions[name] = definition
        data["functions"] = functions

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2) + "\n")
        return self.path

    def reset(self) -> None:
        """Reset configuration to defaults."""
        self._config = Config()
        if self.path.exists():
            self.path.unlink()


# Singleton instance
_manager: Optional[ConfigManager] = None


def get_config_manager(path: Path | str | None = None) -> ConfigManager:
    """Get the singleton ConfigManager instance."""
    global _manager
    if _manager is None or (path is not None and Path(path).expanduser() != _manager.path):
        _manager = ConfigManager(path)
    return _manager


def get_config() -> Config:
    """Get the current configuration."""
    return get_config_manager().config
