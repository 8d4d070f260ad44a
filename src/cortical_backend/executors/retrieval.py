"""
Retrieval executor: similarity queries against a document store.

The default store is a ChromaDB collection reached over HTTP. Any object
with an async ``query(text, n_results) -> list[str]`` method can be injected
through the function spec instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol
from urllib.parse import urlsplit

from cortical_backend.core.datamodels import DispatchResult, FunctionKind
from cortical_backend.core.exceptions import RetrievalError
from cortical_backend.core.helpers import resolve_value
from cortical_backend.core.specs import FunctionSpec, RetrievalFunctionSpec
from cortical_backend.executors.base import Executor, ExecutorSettings

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    async def query(self, text: str, n_results: int) -> list[str]: ...


class ChromaDocumentStore:
    """ChromaDB collection accessed through ``chromadb.HttpClient``."""

    def __init__(self, endpoint: str, collection_name: str):
        self.endpoint = endpoint
        self.collection_name = collection_name
        self._collection: Any = None

    def _get_collection(self) -> Any:
        if self._collection is not None:
            return self._collection
        try:
            import chromadb
        except ImportError:
            raise RetrievalError(
                "chromadb package not installed. Install with: pip install 'cortical-backend[rag]'"
            ) from None

        parts = urlsplit(self.endpoint)
        client = chromadb.HttpClient(
            host=parts.hostname or "localhost",
            port=parts.port or (443 if parts.scheme == "https" else 8000),
            ssl=parts.scheme == "https",
        )
        self._collection = client.get_or_create_collection(name=self.collection_name)
        return self._collection

    def _query_sync(self, text: str, n_results: int) -> list[str]:
        collection = self._get_collection()
        result = collection.query(query_texts=[text], n_results=n_results)
        documents = result.get("documents") or [[]]
        return [doc for doc in documents[0] if doc]

    async def query(self, text: str, n_results: int) -> list[str]:
        # chromadb's HTTP client is blocking
        return await asyncio.to_thread(self._query_sync, text, n_results)


class RetrievalExecutor(Executor):
    """Returns the matched document texts as a listing."""

    kind = FunctionKind.RETRIEVAL
    spec: RetrievalFunctionSpec

    def __init__(self, name: str, spec: FunctionSpec, settings: ExecutorSettings | None = None):
        super().__init__(name, spec, settings)
        self._config_error: str | None = None
        self.store: DocumentStore | None = self.spec.store

        if self.store is None:
            if not self.settings.retrieval_endpoint:
                self._config_error = "Retrieval store endpoint not configured"
            elif not self.settings.retrieval_collection:
                self._config_error = "Retrieval collection name not configured"
            else:
                self.store = ChromaDocumentStore(
                    self.settings.retrieval_endpoint,
                    self.settings.retrieval_collection,
                )

        if self._config_error:
            logger.warning(f"Retrieval function '{name}' is unusable: {self._config_error}")

    def query_text(self, arguments: Any) -> str:
        if self.spec.query is not None:
            return str(resolve_value(self.spec.query, arguments))
        if isinstance(arguments, dict):
            return str(arguments.get("query", ""))
        return str(arguments)

    async def _run(self, arguments: Any) -> DispatchResult:
        if self._config_error or self.store is None:
            raise RetrievalError(self._config_error or "Retrieval store not configured")

        text = self.query_text(arguments)
        documents = await self.store.query(text, self.spec.n_results)
        logger.debug(f"Retrieval '{self.name}' matched {len(documents)} documents for {text!r}")
        return DispatchResult.listing(documents)
