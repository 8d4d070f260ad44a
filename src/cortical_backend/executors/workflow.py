"""
Workflow executor: posts the arguments to a workflow webhook (n8n style).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from cortical_backend.core.datamodels import DispatchResult, FunctionKind
from cortical_backend.core.exceptions import ExecutorError
from cortical_backend.core.specs import WorkflowFunctionSpec
from cortical_backend.executors.base import Executor

logger = logging.getLogger(__name__)

WORKFLOW_SOURCE = "cortical-ai"


def iso_timestamp() -> str:
    """UTC timestamp with millisecond precision, e.g. 2025-01-01T12:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class WorkflowExecutor(Executor):
    """POSTs ``{source, timestamp, data}`` to ``<base>/webhook/<id>``."""

    kind = FunctionKind.WORKFLOW
    spec: WorkflowFunctionSpec

    @property
    def workflow_id(self) -> str:
        return self.spec.webhook_id or self.name

    def _failure_details(self) -> dict[str, Any]:
        return {"workflow": self.workflow_id}

    def webhook_url(self) -> str:
        base = self.spec.endpoint or self.settings.workflow_endpoint
        if not base:
            raise ExecutorError("Workflow endpoint not configured")
        return f"{base.rstrip('/')}/webhook/{self.workflow_id}"

    async def _run(self, arguments: Any) -> DispatchResult:
        url = self.webhook_url()
        headers = {"Content-Type": "application/json"}
        if self.spec.api_key:
            headers["Authorization"] = f"Bearer {self.spec.api_key}"

        envelope = {
            "source": WORKFLOW_SOURCE,
            "timestamp": iso_timestamp(),
            "data": arguments,
        }

        try:
            async with self.http_client() as client:
                response = await client.post(url, json=envelope, headers=headers, timeout=self.spec.timeout)
        except httpx.HTTPError as e:
            raise ExecutorError(f"Workflow request failed: {e}") from e

        if not response.is_success:
            raise ExecutorError(f"Workflow failed: {response.status_code}")

        try:
            result = response.json()
        except ValueError:
            raise ExecutorError("Invalid response format") from None

        logger.debug(f"Workflow '{self.workflow_id}' responded with {response.status_code}")
        return DispatchResult.ok({"workflow": self.workflow_id, "result": result})
