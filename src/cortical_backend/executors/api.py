"""
API executor: one HTTP request per call.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote_plus

import httpx

from cortical_backend.core.datamodels import DispatchResult, FunctionKind
from cortical_backend.core.exceptions import ExecutorError
from cortical_backend.core.helpers import render_structure, resolve_value
from cortical_backend.core.specs import ApiFunctionSpec
from cortical_backend.executors.base import Executor

logger = logging.getLogger(__name__)

USER_AGENT = "CorticalAI/2.0"
INVALID_RESPONSE = "Invalid response format"


class ApiExecutor(Executor):
    """Calls an HTTP endpoint and returns its JSON body.

    The body is always read as text and parsed as JSON, whatever the
    response's Content-Type says.
    """

    kind = FunctionKind.API
    spec: ApiFunctionSpec

    def _resolve_url(self, arguments: Any) -> str:
        quote = quote_plus if self.spec.quote_args else None
        return str(resolve_value(self.spec.endpoint, arguments, quote=quote))

    def _build_body(self, arguments: Any) -> Any:
        body = self.spec.body
        if callable(body):
            return body(arguments)
        return render_structure(body, arguments)

    async def _run(self, arguments: Any) -> DispatchResult:
        url = self._resolve_url(arguments)
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
            **self.spec.headers,
        }

        content = None
        if self.spec.body is not None:
            content = json.dumps(self._build_body(arguments))
            headers.setdefault("Content-Type", "application/json")

        try:
            async with self.http_client() as client:
                response = await client.request(
                    self.spec.method.upper(),
                    url,
                    headers=headers,
                    content=content,
                    timeout=self.spec.timeout,
                )
        except httpx.HTTPError as e:
            raise ExecutorError(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise ExecutorError(f"HTTP {response.status_code}: {response.reason_phrase}")

        text = response.text
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"Non-JSON response received from {url}: {text[:200]}")
            return DispatchResult.fail(INVALID_RESPONSE)

        if self.spec.transform is not None:
            data = self.spec.transform(data, arguments)

        return DispatchResult.from_payload(data)
