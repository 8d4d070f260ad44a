"""
Framework assembly: wires configuration, registry, detector, coordinator,
LLM backend and relay into one object the server and CLI share.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from cortical_backend import __version__
from cortical_backend.config import Config
from cortical_backend.core.datamodels import DispatchResult
from cortical_backend.core.registry import FunctionRegistry
from cortical_backend.engine.context import ContextEnhancer
from cortical_backend.engine.detector import FunctionCallDetector
from cortical_backend.engine.dispatch import DispatchCoordinator
from cortical_backend.engine.events import DoneEvent, StatusEvent, StreamEvent
from cortical_backend.engine.llm import LLMBackend, OllamaBackend, OpenAIChatBackend
from cortical_backend.engine.relay import PROCESSING_STATUS, StreamRelay
from cortical_backend.executors.base import ExecutorSettings

logger = logging.getLogger(__name__)


def build_backend(config: Config, client: httpx.AsyncClient | None = None) -> LLMBackend:
    """OpenAI-style backend when its endpoint is configured, else Ollama-style."""
    if config.openai_llm.endpoint:
        return OpenAIChatBackend(
            endpoint=config.openai_llm.endpoint,
            model=config.openai_llm.model,
            timeout=config.openai_llm.timeout,
            api_key=config.openai_llm.api_key,
            client=client,
        )
    return OllamaBackend(
        endpoint=config.llm.endpoint,
        model=config.llm.model,
        timeout=config.llm.timeout,
        client=client,
    )


class CorticalFramework:
    """Owns every long-lived component for one process."""

    def __init__(
        self,
        config: Config | None = None,
        backend: LLMBackend | None = None,
        http_client: httpx.AsyncClient | None = None,
        require_system_prompt: bool = True,
    ):
        self.config = config or Config()
        if require_system_prompt:
            self.config.validate_for_serving()

        self.settings = ExecutorSettings(
            allow_commands=self.config.security.allow_commands,
            allow_scripts=self.config.security.allow_scripts,
            workflow_endpoint=self.config.workflow.endpoint,
            retrieval_endpoint=self.config.retrieval.endpoint,
            retrieval_collection=self.config.retrieval.collection_name,
            http_client=http_client,
        )
        self.registry = FunctionRegistry(self.settings)
        self.registry.register_all(self.config.functions)

        self.detector = FunctionCallDetector(self.registry, self.config.function_pattern)
        self.coordinator = DispatchCoordinator(self.registry)
        self.enhancer = ContextEnhancer()
        self.backend = backend or build_backend(self.config, http_client)

        stream_timeout = (
            self.config.openai_llm.stream_timeout
            if self.config.openai_llm.endpoint
            else self.config.llm.stream_timeout
        )
        self.relay = StreamRelay(
            detector=self.detector,
            coordinator=self.coordinator,
            backend=self.backend,
            enhancer=self.enhancer,
            system_prompt=self.config.system_prompt,
            stream_timeout=stream_timeout,
            detect_in_completion=self.config.llm.detect_function_calls,
        )

    def freeze(self) -> CorticalFramework:
        """Finish registration; called before serving requests."""
        self.registry.freeze()
        self.enhancer.functions = self.registry.list()
        logger.info(
            f"{self.config.app.name}: {len(self.registry)} functions, backend {self.backend!r}"
        )
        return self

    def list_functions(self) -> dict[str, Any]:
        functions = self.registry.list()
        return {"functions": functions, "total": len(functions)}

    def health(self, auth_enabled: bool = False) -> dict[str, Any]:
        return {
            "status": "ok",
            "app": self.config.app.name,
            "version": __version__,
            "features": {
                "functions": len(self.registry),
                "auth": auth_enabled,
                "commands": self.settings.allow_commands,
                "scripts": self.settings.allow_scripts,
            },
            "system": self.enhancer.system_info,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def public_config(self) -> dict[str, Any]:
        return self.config.public_dict() | {"functions": len(self.registry)}

    def examples(self) -> list[str]:
        if not self.config.examples.enabled:
            return []
        return self.config.examples.prompts[: self.config.examples.count]

    async def call(self, text: str) -> list[StreamEvent] | None:
        """Detect and dispatch a single call without any LLM involvement.

        Returns None when ``text`` is not a call to a registered function.
        """
        call = self.detector.detect(text)
        if call is None:
            return None
        result: DispatchResult = await self.coordinator.dispatch(call)
        events: list[StreamEvent] = [StatusEvent(text=PROCESSING_STATUS)]
        events.extend(self.coordinator.events_for(result))
        if not events[-1].is_terminal:
            events.append(DoneEvent())
        return events
